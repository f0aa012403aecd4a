"""
Runner for the refill pipeline: consume a notification source, dispatch one
worker invocation per event, redeliver retryable failures and summarize.

Usage (example from CLI):
    from expiry_refill.runner import run_refill

    summary = await run_refill(source, worker, max_in_flight=32, max_events=100)
    print(summary)

The runner plays the hosting runtime. Pub/sub delivery has no built-in
redelivery, so retryable failures (`StoreUnavailable`, `SinkUnavailable`) are
redelivered here with exponential backoff; the worker itself never retries.
"""

from __future__ import annotations

import asyncio
import time
from typing import Optional, TypedDict

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from expiry_refill.adapters.abstract import NotificationSource
from expiry_refill.domain.models import ExpirationEvent, Found, RefillOutcome
from expiry_refill.errors import InvalidEvent, RefillError
from expiry_refill.utils.logging import get_logger
from expiry_refill.worker import RefillWorker

log = get_logger(__name__)


class RefillSummary(TypedDict):
    """
    Counters for one runner session.

    `failed` counts events that were still failing after every redelivery;
    `redeliveries` counts individual redelivery attempts.
    """

    events: int
    found: int
    not_found: int
    invalid: int
    failed: int
    redeliveries: int
    duration_seconds: float


def _empty_summary() -> RefillSummary:
    return RefillSummary(
        events=0,
        found=0,
        not_found=0,
        invalid=0,
        failed=0,
        redeliveries=0,
        duration_seconds=0.0,
    )


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, RefillError) and exc.retryable


class RefillRunner:
    """
    Dispatch events from a source to a worker with bounded concurrency.

    Parameters
    ----------
    worker : RefillWorker
        Worker handling each event.
    max_in_flight : int
        Maximum concurrent invocations; the listener waits when the bound is hit.
    max_redeliveries : int
        Extra attempts for retryable failures (0 disables redelivery).
    redelivery_wait_min : float
        First backoff delay in seconds; doubles per attempt.
    redelivery_wait_max : float
        Upper bound in seconds for the exponential backoff between attempts.
    """

    def __init__(
        self,
        worker: RefillWorker,
        max_in_flight: int = 32,
        max_redeliveries: int = 2,
        redelivery_wait_min: float = 0.1,
        redelivery_wait_max: float = 10.0,
    ) -> None:
        if max_in_flight < 1:
            raise ValueError("max_in_flight must be at least 1")
        self.worker = worker
        self.max_in_flight = max_in_flight
        self.max_redeliveries = max(max_redeliveries, 0)
        self.redelivery_wait_min = redelivery_wait_min
        self.redelivery_wait_max = redelivery_wait_max
        self.summary = _empty_summary()

    def _before_redelivery(self, retry_state: RetryCallState) -> None:
        self.summary["redeliveries"] += 1
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        log.warning(
            f"[REDELIVERY {retry_state.attempt_number}/{self.max_redeliveries}] "
            f"{getattr(exc, 'key', None)}",
            extra={
                "key": getattr(exc, "key", None),
                "attempt": retry_state.attempt_number,
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
        )

    async def deliver(self, event: ExpirationEvent) -> RefillOutcome:
        """
        Invoke the worker for `event`, redelivering retryable failures.

        Raises the last error once redeliveries are exhausted.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_redeliveries + 1),
            wait=wait_exponential(
                multiplier=self.redelivery_wait_min,
                min=self.redelivery_wait_min,
                max=self.redelivery_wait_max,
            ),
            retry=retry_if_exception(_is_retryable),
            before_sleep=self._before_redelivery,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self.worker.refill(event)
        raise AssertionError("unreachable")  # pragma: no cover

    async def process(self, event: ExpirationEvent) -> Optional[RefillOutcome]:
        """
        Invocation boundary: deliver one event and record the result.

        Failures are logged and counted, never raised, so one event cannot stop
        the listener.
        """
        self.summary["events"] += 1
        try:
            outcome = await self.deliver(event)
        except InvalidEvent as exc:
            self.summary["invalid"] += 1
            log.warning(
                "[REFILL DROPPED] invalid event",
                extra={"channel": event.channel, "error": str(exc)},
            )
            return None
        except RefillError as exc:
            self.summary["failed"] += 1
            log.error(
                f"[REFILL FAILED] {event.key}",
                extra={"key": event.key, "error": str(exc), "error_type": type(exc).__name__},
            )
            return None
        except Exception:  # noqa: BLE001 - intentional broad catch to keep the listener alive
            self.summary["failed"] += 1
            log.exception(f"[REFILL FAILED] {event.key}", extra={"key": event.key})
            return None

        if isinstance(outcome, Found):
            self.summary["found"] += 1
        else:
            self.summary["not_found"] += 1
        return outcome

    async def run(
        self, source: NotificationSource, max_events: Optional[int] = None
    ) -> RefillSummary:
        """
        Consume `source` until it ends, `max_events` events were dispatched, or
        the task is cancelled; in-flight invocations are awaited before returning.

        If the source itself fails, the events it already delivered are still
        processed and the source's exception is then raised unchanged.
        """
        slots = asyncio.Semaphore(self.max_in_flight)
        start = time.perf_counter()
        dispatched = 0

        async def _guarded(event: ExpirationEvent) -> None:
            try:
                await self.process(event)
            finally:
                slots.release()

        log.info(
            "[RUNNER START]",
            extra={"max_in_flight": self.max_in_flight, "max_events": max_events},
        )
        # A failing listener must not cancel events it already accepted: the
        # error is held until the group has drained, then re-raised unwrapped.
        listener_error: Optional[Exception] = None
        try:
            async with asyncio.TaskGroup() as group:
                events = source.events()
                try:
                    async for event in events:
                        await slots.acquire()
                        group.create_task(_guarded(event))
                        dispatched += 1
                        if max_events is not None and dispatched >= max_events:
                            break
                except Exception as exc:
                    listener_error = exc
                    log.error(
                        "[LISTENER FAILED] draining in-flight refills",
                        extra={"error": str(exc), "error_type": type(exc).__name__},
                    )
                finally:
                    aclose = getattr(events, "aclose", None)
                    if aclose is not None:
                        await aclose()
        finally:
            self.summary["duration_seconds"] = round(time.perf_counter() - start, 3)
            log.info("[RUNNER COMPLETE]", extra=dict(self.summary))

        if listener_error is not None:
            raise listener_error
        return self.summary


async def run_refill(
    source: NotificationSource,
    worker: RefillWorker,
    max_in_flight: int = 32,
    max_events: Optional[int] = None,
    max_redeliveries: int = 2,
) -> RefillSummary:
    """
    Run the refill pipeline over `source` and return the session summary.

    Parameters
    ----------
    source : NotificationSource
        Stream of expiration events.
    worker : RefillWorker
        Worker handling each event.
    max_in_flight : int
        Concurrent invocation bound.
    max_events : int | None
        Stop after this many events (None runs until the source ends).
    max_redeliveries : int
        Redelivery attempts for retryable failures.
    """
    runner = RefillRunner(
        worker,
        max_in_flight=max_in_flight,
        max_redeliveries=max_redeliveries,
    )
    return await runner.run(source, max_events=max_events)


__all__ = ["RefillRunner", "RefillSummary", "run_refill"]
