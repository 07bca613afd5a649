"""Redis transport: one list per topic, shared by every agent process."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Optional, Tuple, Type

try:
    import redis.asyncio as redis
except ImportError:
    redis = None

from ..contracts import AgentMessage, Envelope
from .base import BaseTransport

logger = logging.getLogger(__name__)

QUEUE_PREFIX = "agentric"

# Longest single BRPOP wait, so lifespans are honoured promptly.
POLL_SECONDS = 1

# (queue key, json payload)
RedisMessage = Tuple[str, str]


def queue_key(topic: str) -> str:
    return f"{QUEUE_PREFIX}:{topic}"


class RedisTransport(BaseTransport[RedisMessage]):
    """Producers LPUSH onto ``agentric:<topic>`` and consumers BRPOP from it.

    A popped message is gone from Redis, so ``ack`` has nothing to do and
    ``nack(requeue=True)`` pushes the payload back onto the consuming end.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
    ) -> None:
        if redis is None:
            raise ImportError("redis package is required for RedisTransport")

        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self._client: Optional[Any] = None

    async def connect(self) -> None:
        if self._client is not None:
            return
        client = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        await client.ping()
        self._client = client
        logger.info(f"Connected to Redis at {self.host}:{self.port}/{self.db}")

    async def disconnect(self) -> None:
        if self._client is None:
            return
        await self._client.aclose()
        self._client = None

    async def _redis(self) -> Any:
        if self._client is None:
            await self.connect()
        return self._client

    async def publish(self, topic: str, message: Envelope) -> None:
        client = await self._redis()
        await client.lpush(queue_key(topic), message.to_json())

    async def subscribe(
        self,
        topic: str,
        lifespan: Optional[float] = None,
        model: Type[Envelope] = AgentMessage,
    ) -> AsyncIterator[Tuple[RedisMessage, Envelope]]:
        """Block on the topic list, decoding each payload with ``model``.

        Payloads that fail validation are logged and dropped.
        """
        client = await self._redis()
        key = queue_key(topic)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + lifespan if lifespan is not None else None

        while deadline is None or loop.time() < deadline:
            popped = await client.brpop(key, timeout=POLL_SECONDS)
            if not popped:
                continue
            _, payload = popped
            try:
                envelope = model.model_validate(json.loads(payload))
            except ValueError as e:
                # JSONDecodeError and pydantic's ValidationError are both ValueErrors.
                logger.warning(f"Dropping unparsable message on {key}: {e}")
                continue
            yield (key, payload), envelope

    async def ack(self, raw_message: RedisMessage) -> None:
        """BRPOP already removed the message."""

    async def nack(self, raw_message: RedisMessage, requeue: bool = True) -> None:
        if not requeue:
            return
        key, payload = raw_message
        client = await self._redis()
        await client.rpush(key, payload)
