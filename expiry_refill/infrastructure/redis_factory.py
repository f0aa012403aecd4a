"""
Cache connection factory utilities for Expiry Refill.

Builds `redis.asyncio` clients from settings. The same client type backs both
the notification source (pub/sub) and the cache sink (SET).
"""

from __future__ import annotations

from typing import Optional
from urllib.parse import quote

from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from expiry_refill.config import Settings, get_settings


def build_redis_url(settings: Optional[Settings] = None) -> str:
    """Compose a redis:// (or rediss://) URL from settings; REDIS_URL wins when set."""
    settings = settings or get_settings()
    if settings.redis_url:
        return settings.redis_url
    scheme = "rediss" if settings.redis_ssl else "redis"
    auth = f":{quote(settings.redis_password, safe='')}@" if settings.redis_password else ""
    return f"{scheme}://{auth}{settings.redis_host}:{settings.redis_port}/{settings.redis_db}"


def create_redis_client(url: Optional[str] = None) -> Redis:
    """
    Build an async Redis client without connecting.

    Responses are left as bytes; adapters decode keys explicitly so binary keys
    can be detected instead of silently mangled.
    """
    return Redis.from_url(
        url or build_redis_url(),
        decode_responses=False,
        socket_connect_timeout=5,
        health_check_interval=30,
    )


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((RedisConnectionError, RedisTimeoutError, OSError)),
    reraise=True,
)
async def connect_redis(url: Optional[str] = None) -> Redis:
    """
    Create a client and verify connectivity with PING, retrying transient failures.

    Raises
    ------
    redis.exceptions.ConnectionError
        If the server is unreachable after all retry attempts.
    """
    client = create_redis_client(url)
    try:
        await client.ping()
    except Exception:
        await client.aclose()
        raise
    return client


__all__ = ["build_redis_url", "create_redis_client", "connect_redis"]
