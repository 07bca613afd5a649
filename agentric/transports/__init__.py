"""Message transports and the factory that picks one from configuration."""

from __future__ import annotations

import logging
import os
from typing import Callable, Dict, Optional

from ..config import AgentricConfig, TransportConfig, load_config
from .base import BaseTransport
from .inmemory import InMemoryTransport

logger = logging.getLogger(__name__)


def _inmemory(settings: TransportConfig) -> BaseTransport:
    return InMemoryTransport()


def _redis(settings: TransportConfig) -> BaseTransport:
    # Deferred so the redis client stays an optional extra.
    from .redis import RedisTransport

    return RedisTransport(**settings.redis.model_dump())


TRANSPORT_BACKENDS: Dict[str, Callable[[TransportConfig], BaseTransport]] = {
    "inmemory": _inmemory,
    "redis": _redis,
}


def get_transport(
    backend: Optional[str] = None, config: Optional[AgentricConfig] = None
) -> BaseTransport:
    """Build a transport for ``backend``.

    When no backend is named, ``AGENTRIC_TRANSPORT`` is consulted and then
    ``transport.backend`` from the loaded configuration.
    """
    config = config or load_config()
    name = (backend or os.getenv("AGENTRIC_TRANSPORT") or config.transport.backend).lower()
    build = TRANSPORT_BACKENDS.get(name)
    if build is None:
        raise ValueError(f"Unsupported transport backend: {name}")
    logger.debug(f"Using {name} transport")
    return build(config.transport)


__all__ = ["BaseTransport", "InMemoryTransport", "TRANSPORT_BACKENDS", "get_transport"]
