"""Process lifecycle management: spawning, resources and health."""

from .health import HealthMonitor, assess_health
from .manager import ProcessManager
from .models import (
    ComputeLevel,
    HealthIssue,
    HealthMetrics,
    HealthReport,
    HealthStatus,
    ProcessInfo,
    ProcessStatus,
    ResourceAllocation,
    ResourceRequest,
    SpawnConfig,
    SystemHealth,
)
from .resources import ResourceManager, parse_size

__all__ = [
    "ComputeLevel",
    "HealthIssue",
    "HealthMetrics",
    "HealthMonitor",
    "HealthReport",
    "HealthStatus",
    "ProcessInfo",
    "ProcessManager",
    "ProcessStatus",
    "ResourceAllocation",
    "ResourceManager",
    "ResourceRequest",
    "SpawnConfig",
    "SystemHealth",
    "assess_health",
    "parse_size",
]
