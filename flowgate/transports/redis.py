"""Redis event transport for observers in other processes."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, AsyncIterator, Optional, Tuple

import redis.asyncio as redis
from pydantic import ValidationError

from ..events import EventEnvelope
from .base import BaseTransport

if TYPE_CHECKING:
    from ..config import RedisConfig

logger = logging.getLogger(__name__)


class RedisTransport(BaseTransport[str]):
    """Events as JSON on a Redis list per topic.

    Publishing pushes on the left and trims the list to ``max_backlog`` so an
    absent observer cannot grow it without bound; subscribers pop on the right.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        key_prefix: str = "flowgate",
        max_backlog: int = 10_000,
    ) -> None:
        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.key_prefix = key_prefix
        self.max_backlog = max_backlog
        self._redis: Optional[Any] = None

    @classmethod
    def from_config(cls, config: "RedisConfig") -> "RedisTransport":
        return cls(
            host=config.host,
            port=config.port,
            db=config.db,
            password=config.password,
            key_prefix=config.key_prefix,
            max_backlog=config.max_backlog,
        )

    def key(self, topic: str) -> str:
        return f"{self.key_prefix}:{topic}"

    async def connect(self) -> None:
        if self._redis is not None:
            return
        self._redis = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        await self._redis.ping()
        logger.info(f"Connected to Redis at {self.host}:{self.port}/{self.db}")

    async def disconnect(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    async def publish(self, topic: str, envelope: EventEnvelope) -> None:
        await self.connect()
        key = self.key(topic)
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.lpush(key, envelope.to_json())
            pipe.ltrim(key, 0, self.max_backlog - 1)
            await pipe.execute()

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[str, EventEnvelope]]:
        await self.connect()
        key = self.key(topic)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + lifespan if lifespan is not None else None

        while deadline is None or loop.time() < deadline:
            popped = await self._redis.brpop(key, timeout=1)
            if not popped:
                continue
            _, raw = popped
            try:
                envelope = EventEnvelope.from_json(raw)
            except ValidationError as e:
                logger.warning(f"Dropping malformed event on {key}: {e}")
                continue
            yield raw, envelope

    async def ack(self, raw_message: str) -> None:
        """BRPOP already removed the message; nothing to acknowledge."""
