"""Redis pub/sub publisher used to fan room events out to other nodes."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any

import redis.asyncio as redis_asyncio
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

_REDIS_PUBLISH_ERRORS: tuple[type[BaseException], ...] = (
    RedisError,
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
)


@dataclass(slots=True)
class PublisherConfig:
    """Configuration used for wiring the event publisher."""

    redis_url: str | None
    prefix: str = "studyrooms.events"
    socket_timeout: float | None = 2.0
    socket_connect_timeout: float | None = 2.0


class PublisherUnavailableError(RuntimeError):
    """Raised when publishing while the broker is not connected."""


class RedisEventPublisher:
    """Publishes JSON encoded events on per-user and per-room channels."""

    def __init__(self, config: PublisherConfig) -> None:
        self._config = config
        self._redis: redis_asyncio.Redis | None = None

    @property
    def enabled(self) -> bool:
        return self._config.redis_url is not None

    @property
    def connected(self) -> bool:
        return self._redis is not None

    def channel_for(self, scope: str, target_id: int) -> str:
        return f"{self._config.prefix}.{scope}.{target_id}"

    async def start(self) -> None:
        if not self.enabled or self._redis is not None:
            return
        client = redis_asyncio.from_url(
            self._config.redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=self._config.socket_timeout,
            socket_connect_timeout=self._config.socket_connect_timeout,
        )
        try:
            await client.ping()
        except (OSError, RedisError):
            logger.exception("Failed to connect to Redis event backend")
            await client.aclose()
            raise
        self._redis = client

    async def stop(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    async def publish(self, scope: str, target_id: int, payload: dict[str, Any]) -> None:
        if self._redis is None:
            raise PublisherUnavailableError("Redis backend is not connected")
        channel = self.channel_for(scope, target_id)
        try:
            await self._redis.publish(channel, json.dumps(payload))
        except _REDIS_PUBLISH_ERRORS as exc:
            raise PublisherUnavailableError("Redis backend is unavailable") from exc
        logger.debug("Published room event via Redis", extra={"channel": channel})
