"""
Infrastructure package for Expiry Refill.

Centralizes connectivity concerns (record store pool, cache clients). Keep this
layer focused on I/O and resource management, decoupled from the worker and
runner logic.
"""

from expiry_refill.infrastructure.db_factory import build_dsn, create_async_pool, open_pool
from expiry_refill.infrastructure.redis_factory import (
    build_redis_url,
    connect_redis,
    create_redis_client,
)

__all__ = [
    "build_dsn",
    "create_async_pool",
    "open_pool",
    "build_redis_url",
    "connect_redis",
    "create_redis_client",
]
