"""Data models for tracked processes, resource grants and health reports."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..constants import DEFAULT_MAX_RESTARTS
from ..contracts import EventPriority, utcnow


class ProcessStatus(str, Enum):
    """Process state machine.

    starting -> running <-> paused -> stopping -> stopped
    running -> crashed (health sweep gave up restarting it)
    """

    STARTING = "starting"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPING = "stopping"
    STOPPED = "stopped"
    CRASHED = "crashed"


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    CRITICAL = "critical"
    UNRESPONSIVE = "unresponsive"


class ComputeLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ResourceRequest(BaseModel):
    """What a process asks for. Sizes are strings such as ``"512MB"``."""

    memory: Optional[str] = None
    compute: Optional[ComputeLevel] = None
    storage: Optional[str] = None
    network: bool = False
    duration_ms: Optional[int] = Field(default=None, gt=0)
    priority: Optional[EventPriority] = None


class MemoryGrant(BaseModel):
    allocated: str
    bytes: int
    type: str = "heap"


class ComputeGrant(BaseModel):
    threads: int
    priority: int
    cpu_quota: int


class StorageGrant(BaseModel):
    path: str
    size: str
    bytes: int
    type: str = "temporary"


class NetworkGrant(BaseModel):
    bandwidth: str = "100Mbps"
    connections: int = 10
    protocols: List[str] = Field(default_factory=lambda: ["http", "websocket"])


class ResourceAllocation(BaseModel):
    """Handle for resources granted to a process."""

    allocation_id: str = Field(default_factory=lambda: f"alloc-{uuid.uuid4()}")
    owner_pid: Optional[str] = None
    memory: Optional[MemoryGrant] = None
    compute: Optional[ComputeGrant] = None
    storage: Optional[StorageGrant] = None
    network: Optional[NetworkGrant] = None
    allocated_at: datetime = Field(default_factory=utcnow)
    expires_at: Optional[datetime] = None
    usage: Dict[str, Any] = Field(default_factory=dict)


class SpawnConfig(BaseModel):
    """Options accepted by ``ProcessManager.spawn``."""

    name: Optional[str] = None
    priority: EventPriority = EventPriority.NORMAL
    parent_pid: Optional[str] = None
    max_restarts: Optional[int] = Field(default=None, ge=0)
    resources: Optional[ResourceRequest] = None


class ProcessInfo(BaseModel):
    """Lifecycle record of an agent instance."""

    pid: str
    agent_id: str
    name: str
    status: ProcessStatus = ProcessStatus.STARTING
    priority: EventPriority = EventPriority.NORMAL
    parent_pid: Optional[str] = None
    child_pids: List[str] = Field(default_factory=list)
    start_time: datetime = Field(default_factory=utcnow)
    last_activity: datetime = Field(default_factory=utcnow)
    resource_allocations: List[str] = Field(default_factory=list)
    health_status: HealthStatus = HealthStatus.HEALTHY
    restart_count: int = 0
    max_restarts: int = DEFAULT_MAX_RESTARTS


class HealthIssue(BaseModel):
    severity: str
    type: str
    description: str
    timestamp: datetime = Field(default_factory=utcnow)
    resolved: bool = False


class HealthMetrics(BaseModel):
    """Measured, not sampled: everything here comes from the process record."""

    response_time_ms: float
    restart_count: int
    child_count: int
    allocation_count: int


class HealthReport(BaseModel):
    agent_id: str
    pid: str
    status: HealthStatus
    metrics: HealthMetrics
    issues: List[HealthIssue] = Field(default_factory=list)
    last_reported: datetime = Field(default_factory=utcnow)


class SystemHealth(BaseModel):
    total_processes: int
    running_processes: int
    healthy_processes: int
    resource_allocations: int
    system_load: float
