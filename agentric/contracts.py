"""Core message contracts shared by the orchestrator, process manager and handlers."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Priority(str, Enum):
    """Priority of a workflow and of the messages sent on its behalf."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class EventPriority(str, Enum):
    """Priority of system events and of tracked processes."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def from_priority(cls, priority: Priority) -> "EventPriority":
        if priority is Priority.MEDIUM:
            return cls.NORMAL
        return cls(priority.value)


class MessageType(str, Enum):
    """Message types recognised on the agent bus."""

    WORKFLOW_CREATE_REQUEST = "workflow-create-request"
    WORKFLOW_EXECUTE_REQUEST = "workflow-execute-request"
    WORKFLOW_STEP_COMPLETE = "workflow-step-complete"
    WORKFLOW_STATUS_REQUEST = "workflow-status-request"
    WORKFLOW_CREATED = "workflow-created"
    WORKFLOW_EXECUTION_COMPLETE = "workflow-execution-complete"
    WORKFLOW_STATUS_RESPONSE = "workflow-status-response"
    WORKFLOW_TASK = "workflow-task"
    WORKFLOW_TASK_RESULT = "workflow-task-result"

    PROCESS_SPAWN_REQUEST = "process-spawn-request"
    PROCESS_SPAWN_RESPONSE = "process-spawn-response"
    PROCESS_TERMINATE_REQUEST = "process-terminate-request"
    PROCESS_TERMINATE_RESPONSE = "process-terminate-response"
    HEALTH_CHECK_REQUEST = "health-check-request"
    HEALTH_CHECK_RESPONSE = "health-check-response"


class Envelope(BaseModel):
    """Base for everything that travels over a transport.

    Attributes are snake_case in Python and camelCase on the wire.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> str:
        """Serialize envelope to JSON."""
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, data: str):
        """Deserialize envelope from JSON."""
        return cls.model_validate_json(data)


class AgentMessage(Envelope):
    """Typed envelope exchanged between agents."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    from_agent_id: str
    to_agent_id: str
    type: str
    data: Dict[str, Any] = Field(default_factory=dict)
    priority: Priority = Priority.MEDIUM
    timestamp: datetime = Field(default_factory=utcnow)
    requires_response: bool = False
    correlation_id: Optional[str] = None

    def reply(self, type: str, data: Optional[Dict[str, Any]] = None) -> "AgentMessage":
        """Build the response envelope for this message."""
        return AgentMessage(
            from_agent_id=self.to_agent_id,
            to_agent_id=self.from_agent_id,
            type=type,
            data=data or {},
            priority=self.priority,
            requires_response=False,
            correlation_id=self.id,
        )


class SystemEvent(Envelope):
    """Lifecycle notification for external observers."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: str = "system-event"
    source: str
    data: Dict[str, Any] = Field(default_factory=dict)
    priority: EventPriority = EventPriority.NORMAL
    timestamp: datetime = Field(default_factory=utcnow)

    @property
    def event(self) -> Optional[str]:
        """Name of the lifecycle transition carried by this event."""
        return self.data.get("event")


class TaskRequest(BaseModel):
    """Inbound task contract: ``{type, data}``."""

    type: str
    data: Dict[str, Any] = Field(default_factory=dict)
