"""
Expiry Refill - cache warming on key expiration.

When a key expires in Redis, the refill worker looks the key up in a document
store (JSONB documents in PostgreSQL) and writes the authoritative value back
into the cache. Keys with no document are written with the "false" sentinel.

The package is organized as:

- Adapters for the notification source, record store and cache sink
- A stateless worker implementing one refill per expiration event
- A runner that bounds concurrency and redelivers transient failures
- A Typer CLI, Pydantic settings and structured logging
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from expiry_refill.config import NOT_FOUND_SENTINEL, Settings, get_settings
from expiry_refill.domain.models import ExpirationEvent, Found, NotFound, Record, RefillOutcome
from expiry_refill.errors import (
    InvalidEvent,
    RefillError,
    SinkTimeout,
    SinkUnavailable,
    StoreTimeout,
    StoreUnavailable,
)
from expiry_refill.runner import RefillRunner, RefillSummary, run_refill
from expiry_refill.utils.logging import configure_logging, get_logger
from expiry_refill.worker import RefillWorker, materialize

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "NOT_FOUND_SENTINEL",
    "Settings",
    "get_settings",
    # Domain
    "ExpirationEvent",
    "Found",
    "NotFound",
    "Record",
    "RefillOutcome",
    # Errors
    "RefillError",
    "InvalidEvent",
    "StoreUnavailable",
    "StoreTimeout",
    "SinkUnavailable",
    "SinkTimeout",
    # Worker and runner
    "RefillWorker",
    "materialize",
    "RefillRunner",
    "RefillSummary",
    "run_refill",
    # Logging
    "configure_logging",
    "get_logger",
]
