"""
Refill worker: turn one expiration event into one cache write.

Usage:
    from expiry_refill.worker import RefillWorker

    worker = RefillWorker(store=store, sink=sink)
    outcome = await worker.refill(ExpirationEvent(channel=channel, key="sku-1"))

The worker is stateless across events. `handle_expiration` is a pure read of the
current store state, so re-running it for a redelivered event yields the same
outcome. Failures propagate unchanged; there is no retry loop here.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Optional, Tuple, Type, TypeVar

from expiry_refill.adapters.abstract import CacheSink, RecordStore
from expiry_refill.config import NOT_FOUND_SENTINEL
from expiry_refill.domain.models import ExpirationEvent, Found, NotFound, RefillOutcome
from expiry_refill.errors import InvalidEvent, RefillError, SinkTimeout, StoreTimeout
from expiry_refill.utils.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")


def materialize(outcome: RefillOutcome, sentinel: str = NOT_FOUND_SENTINEL) -> Tuple[str, str]:
    """
    Map an outcome to the (key, value) pair written into the cache.

    A missing record is written as `sentinel` ("false" by default) so known-absent
    keys stop hitting the store. Downstream readers must treat the sentinel as
    "no data".
    """
    if isinstance(outcome, Found):
        return outcome.key, outcome.value
    if isinstance(outcome, NotFound):
        return outcome.key, sentinel
    raise TypeError(f"Unsupported refill outcome: {outcome!r}")


class RefillWorker:
    """
    Resolve expired keys against a record store and republish them to a cache sink.

    Parameters
    ----------
    store : RecordStore
        Authoritative source of values.
    sink : CacheSink
        Cache receiving the refilled values.
    sentinel : str
        Value written for keys with no record.
    timeout : float, optional
        Default per-invocation deadline in seconds for `refill`; None disables it.
    """

    def __init__(
        self,
        store: RecordStore,
        sink: CacheSink,
        sentinel: str = NOT_FOUND_SENTINEL,
        timeout: Optional[float] = None,
    ) -> None:
        self.store = store
        self.sink = sink
        self.sentinel = sentinel
        self.timeout = timeout

    async def handle_expiration(
        self, event: ExpirationEvent, deadline: Optional[float] = None
    ) -> RefillOutcome:
        """
        Look up the expired key and decide what it should be refilled with.

        Parameters
        ----------
        event : ExpirationEvent
            The notification to process.
        deadline : float, optional
            Absolute event-loop time by which the store lookup must finish.

        Returns
        -------
        RefillOutcome
            `Found(key, value)` for the first matching record, else `NotFound(key)`.

        Raises
        ------
        InvalidEvent
            If the event key is empty; the store is not queried.
        StoreUnavailable
            If the lookup fails (`StoreTimeout` when the deadline passes).
        """
        if not event.key:
            log.warning("[REFILL REJECTED] empty key", extra={"channel": event.channel})
            raise InvalidEvent(f"Empty key in notification on channel '{event.channel}'", key=event.key)

        key = event.key
        log.info(f"Key '{key}' has expired.", extra={"key": key, "channel": event.channel})

        records = await self._bounded(self.store.lookup_by_key(key), deadline, StoreTimeout, key)

        if records:
            record = records[0]
            log.info(
                f"[REFILL FOUND] Key: \"{key}\", Value: \"{record.value}\"",
                extra={"key": key, "value": record.value, "matches": len(records)},
            )
            return Found(key=key, value=record.value)

        log.info(f"[REFILL NOT FOUND] Key: \"{key}\"", extra={"key": key})
        return NotFound(key=key)

    def materialize(self, outcome: RefillOutcome) -> Tuple[str, str]:
        """Map an outcome to the cache write using this worker's sentinel."""
        return materialize(outcome, self.sentinel)

    async def refill(
        self, event: ExpirationEvent, timeout: Optional[float] = None
    ) -> RefillOutcome:
        """
        Run one full invocation: lookup, materialize and write back.

        The store failing means the sink is never called. `timeout` (or the
        worker default) bounds the whole invocation; whichever call is in flight
        when it elapses is cancelled.
        """
        budget = timeout if timeout is not None else self.timeout
        deadline = asyncio.get_running_loop().time() + budget if budget is not None else None

        outcome = await self.handle_expiration(event, deadline=deadline)
        key, value = self.materialize(outcome)
        await self._bounded(self.sink.set(key, value), deadline, SinkTimeout, key)
        log.debug("Cache write completed", extra={"key": key, "value": value})
        return outcome

    @staticmethod
    async def _bounded(
        awaitable: Awaitable[T],
        deadline: Optional[float],
        timeout_error: Type[RefillError],
        key: str,
    ) -> T:
        if deadline is None:
            return await awaitable
        remaining = deadline - asyncio.get_running_loop().time()
        try:
            return await asyncio.wait_for(awaitable, timeout=max(remaining, 0.0))
        except asyncio.TimeoutError as exc:
            raise timeout_error(f"Deadline exceeded for key '{key}'", key=key) from exc


__all__ = ["RefillWorker", "materialize"]
