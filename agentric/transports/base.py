"""Interface shared by every message transport."""

from __future__ import annotations

import abc
from typing import AsyncIterator, Generic, Optional, Tuple, Type, TypeVar

from ..contracts import AgentMessage, Envelope

RawMessageT = TypeVar("RawMessageT")


class BaseTransport(Generic[RawMessageT], metaclass=abc.ABCMeta):
    """Topic-addressed delivery of envelopes between agents.

    A topic is usually an agent id; lifecycle events go to the shared
    system events topic. Subclasses decide what the raw message handed
    back from ``subscribe`` looks like, and the same raw value must be
    passed back to ``ack``/``nack``.

    Transports are async context managers::

        async with get_transport() as transport:
            await transport.publish("system-events", event)
    """

    async def connect(self) -> None:
        """Establish the broker session. Transports without one do nothing."""

    async def disconnect(self) -> None:
        """Tear down the broker session. Transports without one do nothing."""

    async def __aenter__(self) -> "BaseTransport[RawMessageT]":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    @abc.abstractmethod
    async def publish(self, topic: str, message: Envelope) -> None:
        """Queue ``message`` for whoever consumes ``topic``."""
        raise NotImplementedError

    async def send(self, message: AgentMessage) -> None:
        """Deliver an agent message to the inbox of its recipient."""
        await self.publish(message.to_agent_id, message)

    @abc.abstractmethod
    async def subscribe(
        self,
        topic: str,
        lifespan: Optional[float] = None,
        model: Type[Envelope] = AgentMessage,
    ) -> AsyncIterator[Tuple[RawMessageT, Envelope]]:
        """Consume ``topic``, yielding ``(raw, envelope)`` pairs in arrival order.

        ``lifespan`` bounds how many seconds the subscription stays open;
        ``None`` keeps it open until the consumer stops iterating. Wire
        payloads are decoded with ``model``.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def ack(self, raw_message: RawMessageT) -> None:
        """Mark ``raw_message`` as handled."""
        raise NotImplementedError

    async def nack(self, raw_message: RawMessageT, requeue: bool = True) -> None:
        """Reject ``raw_message``. Without redelivery support this is an ack."""
        await self.ack(raw_message)
