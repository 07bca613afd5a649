"""Data models for workflow templates, instances and execution records."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..constants import DEFAULT_STEP_TIMEOUT_MS
from ..contracts import Priority, utcnow


class WorkflowStatus(str, Enum):
    CREATED = "created"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (WorkflowStatus.COMPLETED, WorkflowStatus.FAILED)


class StepStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"


class RecoveryAction(str, Enum):
    """Decision taken after a step fails."""

    RETRY = "retry"
    SKIP = "skip"
    ABORT = "abort"


class StepBlueprint(BaseModel):
    """One step of a workflow template."""

    model_config = ConfigDict(frozen=True)

    id: str
    action: str
    required_capability: str
    dependencies: Tuple[str, ...] = ()
    timeout_ms: int = Field(default=DEFAULT_STEP_TIMEOUT_MS, gt=0)
    defaults: Dict[str, Any] = Field(
        default_factory=dict, description="Static input fields for this step"
    )
    parameters: Dict[str, str] = Field(
        default_factory=dict,
        description="Input field -> caller parameter that overrides it",
    )

    def build_input(self, parameters: Dict[str, Any]) -> Dict[str, Any]:
        """Merge caller parameters with this step's defaults and mappings."""
        input_data = {**parameters, **self.defaults}
        for field, parameter in self.parameters.items():
            if parameter in parameters:
                input_data[field] = parameters[parameter]
        return input_data


class WorkflowTemplate(BaseModel):
    """Named, immutable blueprint for a workflow."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    steps: Tuple[StepBlueprint, ...]

    @model_validator(mode="after")
    def _unique_step_ids(self) -> "WorkflowTemplate":
        seen = set()
        for step in self.steps:
            if step.id in seen:
                raise ValueError(f"Duplicate step id in template {self.name}: {step.id}")
            seen.add(step.id)
        return self


class WorkflowStep(BaseModel):
    """A step of a running workflow."""

    id: str
    agent_id: Optional[str] = None
    action: str
    required_capability: str
    input_data: Dict[str, Any] = Field(default_factory=dict)
    output_data: Optional[Any] = None
    status: StepStatus = StepStatus.PENDING
    dependencies: Tuple[str, ...] = ()
    timeout_ms: int = DEFAULT_STEP_TIMEOUT_MS
    attempts: int = 0
    error: Optional[str] = None


class Workflow(BaseModel):
    """Runnable instance of a :class:`WorkflowTemplate`."""

    id: str = Field(default_factory=lambda: f"workflow-{uuid.uuid4()}")
    name: str
    description: str = ""
    template_name: str
    status: WorkflowStatus = WorkflowStatus.CREATED
    priority: Priority = Priority.MEDIUM
    steps: List[WorkflowStep] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    def get_step(self, step_id: str) -> Optional[WorkflowStep]:
        return next((s for s in self.steps if s.id == step_id), None)

    def steps_with_status(self, status: StepStatus) -> List[WorkflowStep]:
        return [s for s in self.steps if s.status == status]


class StepExecution(BaseModel):
    """Outcome of one dispatch attempt of a step."""

    step_id: str
    attempt: int = 1
    agent_id: Optional[str] = None
    status: StepStatus = StepStatus.IN_PROGRESS
    started_at: datetime = Field(default_factory=utcnow)
    ended_at: Optional[datetime] = None
    duration_ms: Optional[float] = None
    result: Optional[Any] = None
    error: Optional[str] = None
    recovery: Optional[RecoveryAction] = None

    def finish(self, status: StepStatus) -> None:
        self.status = status
        self.ended_at = utcnow()
        self.duration_ms = (self.ended_at - self.started_at).total_seconds() * 1000


class WorkflowExecution(BaseModel):
    """Record of a single ``execute`` call on a workflow."""

    workflow_id: str
    workflow_name: str
    status: WorkflowStatus = WorkflowStatus.RUNNING
    order: List[str] = Field(default_factory=list)
    steps: List[StepExecution] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=utcnow)
    ended_at: Optional[datetime] = None
    duration_ms: Optional[float] = None

    def dispatched_steps(self) -> List[str]:
        """Ids of steps that were handed to a handler, in dispatch order."""
        return [s.step_id for s in self.steps if s.agent_id is not None]

    def finish(self, status: WorkflowStatus) -> None:
        self.status = status
        self.ended_at = utcnow()
        self.duration_ms = (self.ended_at - self.started_at).total_seconds() * 1000


class WorkflowStatusReport(BaseModel):
    """Snapshot returned by ``get_workflow_status``."""

    workflow_id: str
    status: str
    progress: float = 0.0
    completed_steps: int = 0
    total_steps: int = 0
    current_step: Optional[str] = None
    estimated_time_remaining_ms: int = 0

    @classmethod
    def not_found(cls, workflow_id: str) -> "WorkflowStatusReport":
        return cls(workflow_id=workflow_id, status="not_found")

    @property
    def found(self) -> bool:
        return self.status != "not_found"
