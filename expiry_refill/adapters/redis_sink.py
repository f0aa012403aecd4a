"""
Redis cache sink.

Writes refilled values back with a plain `SET`: no TTL, no NX/XX, no
compare-and-swap. Concurrent writers for the same key resolve as
last-writer-wins.
"""

from __future__ import annotations

from redis.asyncio import Redis
from redis.exceptions import RedisError

from expiry_refill.adapters.abstract import AbstractCacheSink
from expiry_refill.errors import SinkUnavailable
from expiry_refill.utils.logging import get_logger

log = get_logger(__name__)


class RedisCacheSink(AbstractCacheSink):
    """
    Unconditional SET against an async Redis client.

    Attributes:
        _redis: Async Redis client instance.
    """

    def __init__(self, redis_client: Redis) -> None:
        self._redis = redis_client

    async def set(self, key: str, value: str) -> None:
        try:
            await self._redis.set(key, value)
        except RedisError as exc:
            log.warning(
                "Cache write failed",
                extra={"key": key, "error": str(exc), "error_type": type(exc).__name__},
            )
            raise SinkUnavailable(f"Failed to set key '{key}' in cache: {exc}", key=key) from exc


__all__ = ["RedisCacheSink"]
