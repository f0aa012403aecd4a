"""
Adapters package for Expiry Refill.

Re-exports the abstract interfaces and the concrete Redis and Postgres adapters
so downstream code can import from `expiry_refill.adapters` directly.
"""

from expiry_refill.adapters.abstract import (
    AbstractCacheSink,
    AbstractRecordStore,
    CacheSink,
    NotificationSource,
    RecordStore,
)
from expiry_refill.adapters.postgres_store import PostgresRecordStore
from expiry_refill.adapters.redis_sink import RedisCacheSink
from expiry_refill.adapters.redis_source import RedisNotificationSource

__all__ = [
    # Abstracts
    "AbstractCacheSink",
    "AbstractRecordStore",
    "CacheSink",
    "NotificationSource",
    "RecordStore",
    # Concrete adapters
    "PostgresRecordStore",
    "RedisCacheSink",
    "RedisNotificationSource",
]
