from __future__ import annotations

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from expiry_refill.errors import SinkUnavailable, StoreUnavailable
from expiry_refill.runner import RefillRunner, run_refill
from expiry_refill.worker import RefillWorker
from tests.fakes import FakeCacheSink, FakeRecordStore, ListSource, make_event

EVENT_COUNT = 5
IN_FLIGHT_LIMIT = 2
MAX_REDELIVERIES = 2


def _runner(worker: RefillWorker, **kwargs) -> RefillRunner:
    kwargs.setdefault("redelivery_wait_min", 0.0)
    kwargs.setdefault("redelivery_wait_max", 0.0)
    return RefillRunner(worker, **kwargs)


@pytest.mark.asyncio
async def test_run_counts_every_outcome_kind(store, sink) -> None:
    source = ListSource([make_event("sku-1"), make_event("sku-2"), make_event("")])
    runner = _runner(RefillWorker(store=store, sink=sink))

    summary = await runner.run(source)

    assert summary["events"] == 3
    assert summary["found"] == 1
    assert summary["not_found"] == 1
    assert summary["invalid"] == 1
    assert summary["failed"] == 0
    assert summary["redeliveries"] == 0
    assert summary["duration_seconds"] >= 0
    assert sorted(sink.writes) == [("sku-1", "19.99"), ("sku-2", "false")]
    assert source.closed is True


@pytest.mark.asyncio
async def test_transient_store_failure_is_redelivered(sku_record, sink) -> None:
    store = FakeRecordStore(
        records=[sku_record],
        error=StoreUnavailable("connection reset", key="sku-1"),
        fail_times=1,
    )
    runner = _runner(RefillWorker(store=store, sink=sink), max_redeliveries=MAX_REDELIVERIES)

    summary = await runner.run(ListSource([make_event("sku-1")]))

    assert summary["found"] == 1
    assert summary["failed"] == 0
    assert summary["redeliveries"] == 1
    assert store.lookups == ["sku-1", "sku-1"]
    assert sink.data == {"sku-1": "19.99"}


@pytest.mark.asyncio
async def test_persistent_sink_failure_is_reported_after_redeliveries(store) -> None:
    sink = FakeCacheSink(error=SinkUnavailable("READONLY", key="sku-1"))
    runner = _runner(RefillWorker(store=store, sink=sink), max_redeliveries=MAX_REDELIVERIES)

    summary = await runner.run(ListSource([make_event("sku-1"), make_event("sku-2")]))

    assert summary["events"] == 2
    assert summary["failed"] == 2
    assert summary["redeliveries"] == 2 * MAX_REDELIVERIES
    assert len(store.lookups) == 2 * (MAX_REDELIVERIES + 1)


@pytest.mark.asyncio
async def test_invalid_events_are_never_redelivered(store, sink) -> None:
    runner = _runner(RefillWorker(store=store, sink=sink), max_redeliveries=MAX_REDELIVERIES)

    summary = await runner.run(ListSource([make_event("")]))

    assert summary["invalid"] == 1
    assert summary["redeliveries"] == 0
    assert store.lookups == []


@pytest.mark.asyncio
async def test_unexpected_errors_do_not_stop_the_listener(sku_record, sink) -> None:
    store = FakeRecordStore(records=[sku_record], error=RuntimeError("boom"), fail_times=1)
    runner = _runner(RefillWorker(store=store, sink=sink), max_in_flight=1)

    summary = await runner.run(ListSource([make_event("sku-1"), make_event("sku-1")]))

    assert summary["failed"] == 1
    assert summary["found"] == 1
    assert summary["redeliveries"] == 0


@pytest.mark.asyncio
async def test_max_events_stops_the_run_and_closes_the_source(store, sink) -> None:
    source = ListSource([make_event(f"sku-{i}") for i in range(EVENT_COUNT)])
    runner = _runner(RefillWorker(store=store, sink=sink))

    summary = await runner.run(source, max_events=2)

    assert summary["events"] == 2
    assert source.yielded == 2
    assert source.closed is True


@pytest.mark.asyncio
async def test_in_flight_invocations_are_bounded(sku_record, sink) -> None:
    store = FakeRecordStore(records=[sku_record], delay=0.02)
    runner = _runner(RefillWorker(store=store, sink=sink), max_in_flight=IN_FLIGHT_LIMIT)

    summary = await runner.run(ListSource([make_event("sku-1")] * EVENT_COUNT))

    assert summary["found"] == EVENT_COUNT
    assert 1 < store.max_in_flight <= IN_FLIGHT_LIMIT


@pytest.mark.asyncio
async def test_run_refill_wraps_runner(store, sink) -> None:
    summary = await run_refill(
        ListSource([make_event("sku-1")]),
        RefillWorker(store=store, sink=sink),
        max_in_flight=1,
        max_redeliveries=0,
    )

    assert summary["found"] == 1


def test_runner_rejects_non_positive_concurrency(store, sink) -> None:
    with pytest.raises(ValueError):
        RefillRunner(RefillWorker(store=store, sink=sink), max_in_flight=0)


class _DroppingSource:
    """Delivers its events, then fails the way a dropped subscription does."""

    def __init__(self, events, error: Exception) -> None:
        self._events = list(events)
        self._error = error

    async def events(self):
        for event in self._events:
            yield event
        raise self._error


@pytest.mark.asyncio
async def test_listener_failure_drains_accepted_events_and_reraises(sku_record, sink) -> None:
    store = FakeRecordStore(records=[sku_record], delay=0.05)
    source = _DroppingSource([make_event("sku-1")], RedisConnectionError("Connection closed by server."))
    runner = _runner(RefillWorker(store=store, sink=sink))

    with pytest.raises(RedisConnectionError):
        await runner.run(source)

    assert sink.writes == [("sku-1", "19.99")]
    assert runner.summary["events"] == 1
    assert runner.summary["found"] == 1
