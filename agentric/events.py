"""System event emission for lifecycle observers.

Observers subscribe either to a single event name (``"process_started"``) or
to ``"*"`` for everything. Events are delivered in-process and, when a
transport is configured, also published on the ``system-events`` topic so
that dashboards in other processes can follow along.
"""

from __future__ import annotations

import inspect
import logging
import uuid
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from .constants import SYSTEM_EVENTS_TOPIC
from .contracts import EventPriority, SystemEvent
from .transports import BaseTransport

logger = logging.getLogger(__name__)

EventCallback = Callable[[SystemEvent], Any]

WILDCARD = "*"


class EventEmitter:
    """Fan out :class:`SystemEvent` objects to subscribers."""

    def __init__(
        self,
        transport: Optional[BaseTransport] = None,
        history_size: int = 200,
    ) -> None:
        self._transport = transport
        self._subscribers: Dict[str, Tuple[str, EventCallback]] = {}
        self._history: Deque[SystemEvent] = deque(maxlen=history_size)

    @property
    def history(self) -> List[SystemEvent]:
        """Most recent events, oldest first."""
        return list(self._history)

    def subscribe(self, event_name: str, callback: EventCallback) -> str:
        """Register ``callback`` for ``event_name`` and return a subscription id."""
        subscription_id = f"sub-{uuid.uuid4()}"
        self._subscribers[subscription_id] = (event_name, callback)
        logger.debug(f"Subscribed {subscription_id} to '{event_name}'")
        return subscription_id

    def unsubscribe(self, subscription_id: str) -> bool:
        return self._subscribers.pop(subscription_id, None) is not None

    async def emit(self, event: SystemEvent) -> None:
        """Deliver ``event`` to matching subscribers and the transport."""
        self._history.append(event)
        logger.info(
            f"Emitting {event.type} '{event.event}' from {event.source} "
            f"(priority={event.priority.value})"
        )

        for subscription_id, (event_name, callback) in list(self._subscribers.items()):
            if event_name not in (WILDCARD, event.event):
                continue
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                # Observers must not be able to break a lifecycle transition.
                logger.exception(
                    f"Subscriber {subscription_id} failed handling '{event.event}'"
                )

        if self._transport is not None:
            try:
                await self._transport.publish(SYSTEM_EVENTS_TOPIC, event)
            except Exception as e:
                logger.error(f"Failed to publish '{event.event}' to transport: {e}")

    async def event(
        self,
        name: str,
        source: str,
        priority: EventPriority = EventPriority.NORMAL,
        type: str = "system-event",
        **data: Any,
    ) -> SystemEvent:
        """Build a :class:`SystemEvent` named ``name`` and emit it."""
        event = SystemEvent(
            type=type,
            source=source,
            data={"event": name, **data},
            priority=priority,
        )
        await self.emit(event)
        return event
