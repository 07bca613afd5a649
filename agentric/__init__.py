"""Agentric: workflow orchestration and process lifecycle for cooperating agents."""

from .contracts import AgentMessage, EventPriority, Priority, SystemEvent, TaskRequest
from .config import AgentricConfig, load_config
from .transports import get_transport
from .events import EventEmitter
from .dispatch import CapabilityRegistry, FunctionHandler, SimulatedHandler
from .workflow import TemplateRegistry, WorkflowOrchestrator
from .process import ProcessManager, ResourceManager
from .persistence import get_repository

__version__ = "0.1.0"
__all__ = [
    "AgentMessage",
    "AgentricConfig",
    "CapabilityRegistry",
    "EventEmitter",
    "EventPriority",
    "FunctionHandler",
    "Priority",
    "ProcessManager",
    "ResourceManager",
    "SimulatedHandler",
    "SystemEvent",
    "TaskRequest",
    "TemplateRegistry",
    "WorkflowOrchestrator",
    "get_repository",
    "get_transport",
    "load_config",
]
