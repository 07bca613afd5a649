"""Exception hierarchy for workflow orchestration and process management."""

from __future__ import annotations


class AgentricError(Exception):
    """Base class for all agentric errors."""


class TemplateNotFoundError(AgentricError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Workflow template not found: {name}")


class WorkflowNotFoundError(AgentricError):
    def __init__(self, workflow_id: str) -> None:
        self.workflow_id = workflow_id
        super().__init__(f"Workflow not found: {workflow_id}")


class InvalidStateTransitionError(AgentricError):
    """An action was attempted from a state that does not allow it."""

    def __init__(self, action: str, current_state: str, subject: str = "") -> None:
        self.action = action
        self.current_state = current_state
        self.subject = subject
        target = f" {subject}" if subject else ""
        super().__init__(f"Cannot {action}{target} in {current_state} state")


class CircularDependencyError(AgentricError):
    def __init__(self, step_id: str) -> None:
        self.step_id = step_id
        super().__init__(f"Circular dependency detected involving step: {step_id}")


class UnknownDependencyError(AgentricError):
    def __init__(self, step_id: str, dependency_id: str) -> None:
        self.step_id = step_id
        self.dependency_id = dependency_id
        super().__init__(
            f"Step {step_id} depends on unknown step: {dependency_id}"
        )


class StepTimeoutError(AgentricError):
    def __init__(self, step_id: str, timeout_ms: int) -> None:
        self.step_id = step_id
        self.timeout_ms = timeout_ms
        super().__init__(f"Step {step_id} timed out after {timeout_ms}ms")


class HandlerNotFoundError(AgentricError):
    def __init__(self, capability: str) -> None:
        self.capability = capability
        super().__init__(f"No handler for capability: {capability}")


class ProcessNotFoundError(AgentricError):
    def __init__(self, pid: str) -> None:
        self.pid = pid
        super().__init__(f"Process not found: {pid}")


class ResourceAllocationError(AgentricError):
    """Raised when a resource request cannot be granted."""


class RestartLimitExceededError(AgentricError):
    def __init__(self, pid: str, max_restarts: int) -> None:
        self.pid = pid
        self.max_restarts = max_restarts
        super().__init__(
            f"Process {pid} has exceeded maximum restart attempts ({max_restarts})"
        )


class UnknownTaskTypeError(AgentricError):
    def __init__(self, task_type: str) -> None:
        self.task_type = task_type
        super().__init__(f"Unknown task type: {task_type}")
