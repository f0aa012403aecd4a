"""
Abstract adapter interfaces for Expiry Refill.

The worker only talks to its collaborators through these contracts, so it can be
exercised without a live cache or store. Concrete adapters (Redis source and
sink, Postgres record store) may satisfy the Protocols structurally or subclass
the ABC helpers.
"""

from __future__ import annotations

import abc
from typing import AsyncIterator, List, Protocol, runtime_checkable

from expiry_refill.domain.models import ExpirationEvent, Record


@runtime_checkable
class RecordStore(Protocol):
    """
    Point-lookup service keyed by an indexed field.
    """

    async def lookup_by_key(self, key: str) -> List[Record]:
        """
        Find records whose key field equals `key`.

        Returns
        -------
        List[Record]
            Matching records in the store's natural order; empty when none match.

        Raises
        ------
        StoreUnavailable
            On transport or query failure, never on "not found".
        """
        ...


@runtime_checkable
class CacheSink(Protocol):
    """
    Unconditional key/value writer.
    """

    async def set(self, key: str, value: str) -> None:
        """
        Overwrite `key` with `value` without any conditional check.

        Raises
        ------
        SinkUnavailable
            If the write could not be performed.
        """
        ...


@runtime_checkable
class NotificationSource(Protocol):
    """
    At-least-once stream of expiration events.
    """

    def events(self) -> AsyncIterator[ExpirationEvent]:
        """Yield events as they arrive until the subscription ends."""
        ...


class AbstractRecordStore(abc.ABC):
    """Optional ABC helper for class-based record stores."""

    @abc.abstractmethod
    async def lookup_by_key(self, key: str) -> List[Record]:  # pragma: no cover - interface only
        raise NotImplementedError


class AbstractCacheSink(abc.ABC):
    """Optional ABC helper for class-based cache sinks."""

    @abc.abstractmethod
    async def set(self, key: str, value: str) -> None:  # pragma: no cover - interface only
        raise NotImplementedError


__all__ = [
    "RecordStore",
    "CacheSink",
    "NotificationSource",
    "AbstractRecordStore",
    "AbstractCacheSink",
]
