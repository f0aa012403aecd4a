"""
Error taxonomy for the refill pipeline.

Adapters translate library exceptions (psycopg, redis) into these types at the
adapter boundary and chain the original exception. The worker never swallows
them; the runner decides whether an event is redelivered.
"""

from __future__ import annotations

from typing import Optional


class RefillError(Exception):
    """Base class for all refill pipeline failures."""

    retryable: bool = False

    def __init__(self, message: str, key: Optional[str] = None) -> None:
        super().__init__(message)
        self.key = key


class InvalidEvent(RefillError):
    """Malformed notification (empty or undecodable key). Dropped, never redelivered."""


class StoreUnavailable(RefillError):
    """The record store query failed (transport, auth, query error or timeout)."""

    retryable = True


class StoreTimeout(StoreUnavailable):
    """The record store query did not finish before the invocation deadline."""


class SinkUnavailable(RefillError):
    """The cache write failed."""

    retryable = True


class SinkTimeout(SinkUnavailable):
    """The cache write did not finish before the invocation deadline."""


__all__ = [
    "RefillError",
    "InvalidEvent",
    "StoreUnavailable",
    "StoreTimeout",
    "SinkUnavailable",
    "SinkTimeout",
]
