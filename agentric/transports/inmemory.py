"""Transport backed by per-topic queues inside the current process."""

from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from typing import AsyncIterator, Deque, Dict, NamedTuple, Optional, Tuple, Type

from ..contracts import AgentMessage, Envelope
from .base import BaseTransport


class QueuedMessage(NamedTuple):
    topic: str
    payload: str
    envelope: Envelope


class InMemoryTransport(BaseTransport[QueuedMessage]):
    """FIFO queues keyed by topic, with subscribers woken on publish.

    Messages are not shared between processes. Envelopes come back as the
    objects that were published. A nacked message with ``requeue`` goes back
    to the head of its topic so it is delivered next.
    """

    def __init__(self) -> None:
        self._topics: Dict[str, Deque[QueuedMessage]] = defaultdict(deque)
        self._arrived = asyncio.Condition()

    async def publish(self, topic: str, message: Envelope) -> None:
        async with self._arrived:
            self._topics[topic].append(QueuedMessage(topic, message.to_json(), message))
            self._arrived.notify_all()

    async def subscribe(
        self,
        topic: str,
        lifespan: Optional[float] = None,
        model: Type[Envelope] = AgentMessage,
    ) -> AsyncIterator[Tuple[QueuedMessage, Envelope]]:
        """Yield queued messages for ``topic``, waiting for more until ``lifespan`` runs out.

        ``model`` is unused here because nothing is decoded.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + lifespan if lifespan is not None else None
        queue = self._topics[topic]

        while True:
            async with self._arrived:
                while not queue:
                    remaining = None if deadline is None else deadline - loop.time()
                    if remaining is not None and remaining <= 0:
                        return
                    try:
                        await asyncio.wait_for(self._arrived.wait(), remaining)
                    except asyncio.TimeoutError:
                        return
                raw = queue.popleft()
            # Yield outside the condition so consumers may publish.
            yield raw, raw.envelope

    def pending(self, topic: str) -> int:
        """How many messages on ``topic`` have not been delivered yet."""
        return len(self._topics[topic])

    async def ack(self, raw_message: QueuedMessage) -> None:
        """Delivery already removed the message; nothing left to do."""

    async def nack(self, raw_message: QueuedMessage, requeue: bool = True) -> None:
        if not requeue:
            return
        async with self._arrived:
            self._topics[raw_message.topic].appendleft(raw_message)
            self._arrived.notify_all()
