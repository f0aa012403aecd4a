"""In-memory fakes for the record store, cache sink and notification source."""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, Dict, Iterable, List, Optional

from expiry_refill.domain.models import ExpirationEvent, Record

EXPIRED_CHANNEL = "__keyevent@0__:expired"


class FakeRecordStore:
    """
    In-memory record store.

    `error` is raised on every lookup, or only on the first `fail_times` lookups
    when that is set. `delay` suspends each lookup to exercise deadlines and
    concurrency.
    """

    def __init__(
        self,
        records: Iterable[Record] = (),
        error: Optional[Exception] = None,
        fail_times: Optional[int] = None,
        delay: float = 0.0,
    ) -> None:
        self.records: List[Record] = list(records)
        self.error = error
        self.fail_times = fail_times
        self.delay = delay
        self.lookups: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def lookup_by_key(self, key: str) -> List[Record]:
        self.lookups.append(key)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None and (
                self.fail_times is None or len(self.lookups) <= self.fail_times
            ):
                raise self.error
            return [record for record in self.records if record.key == key]
        finally:
            self.in_flight -= 1


class FakeCacheSink:
    """In-memory cache recording every write in order."""

    def __init__(self, error: Optional[Exception] = None, delay: float = 0.0) -> None:
        self.error = error
        self.delay = delay
        self.data: Dict[str, str] = {}
        self.writes: List[tuple[str, str]] = []

    async def set(self, key: str, value: str) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        self.writes.append((key, value))
        self.data[key] = value


class ListSource:
    """Notification source replaying a fixed list of events."""

    def __init__(self, events: Iterable[ExpirationEvent]) -> None:
        self._events = list(events)
        self.yielded = 0
        self.closed = False

    async def events(self) -> AsyncIterator[ExpirationEvent]:
        try:
            for event in self._events:
                self.yielded += 1
                yield event
        finally:
            self.closed = True


def make_event(key: str, channel: str = EXPIRED_CHANNEL) -> ExpirationEvent:
    return ExpirationEvent(channel=channel, key=key)
