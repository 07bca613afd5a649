"""Capability registry and step dispatch for workflow handlers."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Protocol

from .contracts import AgentMessage, MessageType
from .errors import HandlerNotFoundError, StepTimeoutError

logger = logging.getLogger(__name__)

# Agents that historically provide each built-in capability.
DEFAULT_CAPABILITY_AGENTS: Dict[str, str] = {
    "behavior-analysis": "behavior-analyst-001",
    "learning-assessment": "learning-coordinator-001",
    "content-generation": "content-generator-001",
    "data-analysis": "data-analyst-001",
    "error-handling": "error-handler-001",
    "sensory-optimization": "sensory-optimizer-001",
    "difficulty-adaptation": "difficulty-adapter-001",
}


class CapabilityHandler(Protocol):
    """Anything that can serve a ``workflow-task`` message."""

    agent_id: str

    async def handle(self, message: AgentMessage) -> Any:
        """Return an ``AgentMessage`` reply or a mapping with a ``data`` key."""


class CapabilityRegistry:
    """Maps capability names to handlers. Resolved at dispatch time."""

    def __init__(self) -> None:
        self._handlers: Dict[str, CapabilityHandler] = {}

    def register(self, capability: str, handler: CapabilityHandler) -> None:
        previous = self._handlers.get(capability)
        if previous is not None and previous is not handler:
            logger.info(
                f"Replacing handler for {capability}: {previous.agent_id} -> {handler.agent_id}"
            )
        self._handlers[capability] = handler

    def unregister(self, capability: str) -> bool:
        return self._handlers.pop(capability, None) is not None

    def resolve(self, capability: str) -> CapabilityHandler:
        handler = self._handlers.get(capability)
        if handler is None:
            raise HandlerNotFoundError(capability)
        return handler

    def capabilities(self) -> List[str]:
        return list(self._handlers)


async def dispatch_step(
    handler: CapabilityHandler,
    message: AgentMessage,
    step_id: str,
    timeout_ms: int,
) -> Any:
    """Send ``message`` to ``handler`` and return the reply's data.

    Raises:
        StepTimeoutError: the handler did not answer within ``timeout_ms`` or
            answered without data.
    """
    try:
        reply = await asyncio.wait_for(handler.handle(message), timeout_ms / 1000)
    except asyncio.TimeoutError:
        raise StepTimeoutError(step_id, timeout_ms) from None

    if isinstance(reply, AgentMessage):
        return reply.data
    if isinstance(reply, Mapping) and "data" in reply:
        return reply["data"]
    logger.warning(f"Handler {handler.agent_id} replied to step {step_id} without data")
    raise StepTimeoutError(step_id, timeout_ms)


class FunctionHandler:
    """Adapts a coroutine function ``fn(message) -> output`` to a handler."""

    def __init__(
        self,
        agent_id: str,
        fn: Callable[[AgentMessage], Awaitable[Any]],
    ) -> None:
        self.agent_id = agent_id
        self._fn = fn
        self.calls: List[AgentMessage] = []

    async def handle(self, message: AgentMessage) -> AgentMessage:
        self.calls.append(message)
        output = await self._fn(message)
        return message.reply(MessageType.WORKFLOW_TASK_RESULT.value, output)


class SimulatedHandler:
    """Answers every task after a fixed delay, echoing what it was asked."""

    def __init__(self, agent_id: str, latency: float = 0.5) -> None:
        self.agent_id = agent_id
        self.latency = latency

    async def handle(self, message: AgentMessage) -> AgentMessage:
        if self.latency:
            await asyncio.sleep(self.latency)
        return message.reply(
            MessageType.WORKFLOW_TASK_RESULT.value,
            {
                "result": "Step completed successfully",
                "stepId": message.data.get("stepId"),
                "action": message.data.get("action"),
                "handledBy": self.agent_id,
            },
        )


def register_simulated_handlers(
    registry: CapabilityRegistry,
    capabilities: Optional[Iterable[str]] = None,
    latency: float = 0.5,
) -> None:
    """Register a :class:`SimulatedHandler` for each capability."""
    for capability in capabilities or DEFAULT_CAPABILITY_AGENTS:
        agent_id = DEFAULT_CAPABILITY_AGENTS.get(capability, f"{capability}-001")
        registry.register(capability, SimulatedHandler(agent_id, latency=latency))
