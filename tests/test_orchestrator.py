"""Tests for the working set, listeners, retry logic and the reporting engine"""

import asyncio
import time
import pytest
from datetime import date

from scrapledger.constants import ChangeOperation, GroupBy, ListenerState, TransactionKind
from scrapledger.models.criteria import FilterCriteria
from scrapledger.models.report import CustomReport, DailyReport, MonthlyReport
from scrapledger.models.transaction import ChangeEvent
from scrapledger.orchestrator import engine as engine_module
from scrapledger.orchestrator.engine import ReportingEngine
from scrapledger.orchestrator.listener import SourceListener
from scrapledger.orchestrator.retry_handler import (
    async_retry_with_exponential_backoff,
    compute_backoff_delay
)
from scrapledger.orchestrator.store import TransactionStore
from scrapledger.tools.data_source import CounterpartyDirectory, InMemorySource
from scrapledger.tools.unification import TransactionUnifier
from scrapledger.utils.errors import InvalidFilterError, ReportingError


def purchase(pid, created="2024-03-01T08:00:00", **extra):
    record = {
        "id": pid,
        "is_walkin": True,
        "walkin_name": "Peter Mwangi",
        "material_type": "Copper",
        "transaction_date": created[:10],
        "total_amount": 100,
        "weight_kg": 10,
        "created_at": created,
    }
    record.update(extra)
    return record


def sale(sid, created="2024-03-01T10:00:00", **extra):
    record = {
        "id": sid,
        "supplier_id": "buy-1",
        "material_name": "Copper",
        "transaction_date": created[:10],
        "total_amount": 150,
        "weight_kg": 10,
        "created_at": created,
    }
    record.update(extra)
    return record


def event(kind, operation, record):
    return ChangeEvent(source_kind=kind, operation=operation, record=record)


async def wait_for(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def store():
    store = TransactionStore(TransactionUnifier())
    store.replace_source(TransactionKind.PURCHASE, [
        purchase("p-1", "2024-03-01T08:00:00", updated_at="2024-03-02T10:00:00"),
        purchase("p-2", "2024-03-02T08:00:00"),
    ])
    store.replace_source(TransactionKind.SALE, [sale("s-1", "2024-03-01T12:00:00")])
    return store


# Working set

class TestTransactionStore:
    def test_snapshot_is_most_recent_first(self, store):
        assert [t.id for t in store.snapshot()] == ["p-2", "s-1", "p-1"]
        assert store.count(TransactionKind.PURCHASE) == 2
        assert store.count(TransactionKind.SALE) == 1

    def test_same_id_in_both_kinds_is_distinct(self, store):
        assert store.apply(event(TransactionKind.SALE, ChangeOperation.INSERT, sale("p-1")))
        assert store.get(TransactionKind.PURCHASE, "p-1").kind == TransactionKind.PURCHASE
        assert store.get(TransactionKind.SALE, "p-1").kind == TransactionKind.SALE

    def test_insert_is_prepended(self, store):
        assert store.apply(event(TransactionKind.PURCHASE, ChangeOperation.INSERT, purchase("p-3", "2024-02-01T08:00:00")))
        assert store.snapshot()[0].id == "p-3"
        assert len(store) == 4

    def test_duplicate_delivery_is_idempotent(self, store):
        insert = event(TransactionKind.PURCHASE, ChangeOperation.INSERT, purchase("p-3", "2024-03-05T08:00:00"))

        assert store.apply(insert) is True
        version = store.version
        assert store.apply(insert) is False

        assert len(store) == 4
        assert store.version == version

    def test_delete_of_unknown_id_is_a_no_op(self, store):
        before = store.snapshot()

        changed = store.apply(event(TransactionKind.PURCHASE, ChangeOperation.DELETE, {"id": "p-404"}))

        assert changed is False
        assert store.snapshot() == before

    def test_delete_removes_entry(self, store):
        assert store.apply(event(TransactionKind.PURCHASE, ChangeOperation.DELETE, {"id": "p-2"}))
        assert store.get(TransactionKind.PURCHASE, "p-2") is None
        assert len(store) == 2

    def test_update_replaces_in_place(self, store):
        updated = purchase("p-2", "2024-03-02T08:00:00", total_amount=999, updated_at="2024-03-03T08:00:00")

        assert store.apply(event(TransactionKind.PURCHASE, ChangeOperation.UPDATE, updated))

        assert [t.id for t in store.snapshot()] == ["p-2", "s-1", "p-1"]
        assert store.get(TransactionKind.PURCHASE, "p-2").total_amount == 999

    def test_stale_update_is_skipped(self, store):
        older = purchase("p-1", total_amount=1, updated_at="2024-03-02T09:00:00")

        assert store.apply(event(TransactionKind.PURCHASE, ChangeOperation.UPDATE, older)) is False
        assert store.get(TransactionKind.PURCHASE, "p-1").total_amount == 100

    def test_event_without_id_is_dropped(self, store):
        assert store.apply(event(TransactionKind.PURCHASE, ChangeOperation.INSERT, {"material_type": "Copper"})) is False
        assert len(store) == 3

    def test_malformed_record_is_dropped(self, store):
        bad = {"id": "p-9", "created_at": "2024-03-01T08:00:00"}
        assert store.apply(event(TransactionKind.PURCHASE, ChangeOperation.INSERT, bad)) is False
        assert store.get(TransactionKind.PURCHASE, "p-9") is None

    def test_dedup_memory_is_bounded(self):
        store = TransactionStore(TransactionUnifier(), dedup_capacity=2)
        first = event(TransactionKind.PURCHASE, ChangeOperation.INSERT, purchase("p-1"))
        store.apply(first)
        store.apply(event(TransactionKind.PURCHASE, ChangeOperation.INSERT, purchase("p-2")))
        store.apply(event(TransactionKind.PURCHASE, ChangeOperation.INSERT, purchase("p-3")))

        store.apply(event(TransactionKind.PURCHASE, ChangeOperation.DELETE, {"id": "p-1"}))

        # The first key has been evicted, so a redelivery is applied again
        assert store.apply(first) is True
        assert len(store) == 3

    def test_insert_for_present_id_is_a_no_op(self, store):
        """A late insert never overwrites the entry a snapshot already loaded"""
        late = purchase("p-2", "2024-03-02T08:00:00", total_amount=1)
        version = store.version

        assert store.apply(event(TransactionKind.PURCHASE, ChangeOperation.INSERT, late)) is False

        assert store.get(TransactionKind.PURCHASE, "p-2").total_amount == 100
        assert store.version == version

    def test_update_for_absent_id_is_inserted(self, store):
        assert store.apply(event(TransactionKind.PURCHASE, ChangeOperation.UPDATE, purchase("p-8")))
        assert store.snapshot()[0].id == "p-8"

    def test_reload_replaces_only_its_kind(self, store):
        store.replace_source(TransactionKind.PURCHASE, [purchase("p-7")])

        assert store.count(TransactionKind.PURCHASE) == 1
        assert store.get(TransactionKind.SALE, "s-1") is not None

    def test_snapshots_are_immutable(self, store):
        before = store.snapshot()
        store.apply(event(TransactionKind.PURCHASE, ChangeOperation.INSERT, purchase("p-3")))

        assert len(before) == 3
        assert len(store.snapshot()) == 4

    def test_writer_applies_queued_events_in_order(self):
        async def scenario():
            store = TransactionStore(TransactionUnifier())
            notified = []
            store.add_change_listener(lambda: notified.append(store.version))
            await store.start()
            try:
                await store.reload(TransactionKind.PURCHASE, [purchase("p-1")])
                await store.submit(event(TransactionKind.PURCHASE, ChangeOperation.INSERT, purchase("p-2")))
                await store.submit(event(TransactionKind.PURCHASE, ChangeOperation.DELETE, {"id": "p-1"}))
                await store.drain()
            finally:
                await store.stop()
            return store, notified

        store, notified = asyncio.run(scenario())

        assert [t.id for t in store.snapshot()] == ["p-2"]
        assert len(notified) == 3


    def test_cancelled_reload_keeps_writer_alive(self):
        async def scenario():
            store = TransactionStore(TransactionUnifier())
            await store.start()
            try:
                pending = asyncio.create_task(store.reload(TransactionKind.PURCHASE, [purchase("p-1")]))
                await asyncio.sleep(0)
                pending.cancel()
                await asyncio.sleep(0.05)
                await asyncio.wait_for(store.reload(TransactionKind.SALE, [sale("s-1")]), 2)
                writer_alive = not store._writer.done()
            finally:
                await store.stop()
            return store, writer_alive

        store, writer_alive = asyncio.run(scenario())

        assert writer_alive
        assert store.get(TransactionKind.SALE, "s-1") is not None
        assert store.get(TransactionKind.PURCHASE, "p-1") is not None


# Retry handler

def test_backoff_delay_is_capped():
    assert compute_backoff_delay(0, 1.0, 60.0) == 1.0
    assert compute_backoff_delay(3, 1.0, 60.0) == 8.0
    assert compute_backoff_delay(10, 1.0, 60.0) == 60.0


def test_async_retry_calls_on_retry():
    attempts = []
    retries = []

    async def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise ConnectionError("down")
        return "up"

    result = asyncio.run(async_retry_with_exponential_backoff(
        flaky, max_retries=None, base_delay=0, on_retry=lambda n, e, d: retries.append(n)
    ))

    assert result == "up"
    assert retries == [1, 2]


def test_async_retry_exhaustion():
    attempts = []

    async def always_fail():
        attempts.append(1)
        raise ConnectionError("Always fails")

    with pytest.raises(ReportingError):
        asyncio.run(async_retry_with_exponential_backoff(always_fail, max_retries=3, base_delay=0))
    assert len(attempts) == 3


def test_async_retry_only_retries_listed_errors():
    async def broken():
        raise KeyError("not transient")

    with pytest.raises(KeyError):
        asyncio.run(async_retry_with_exponential_backoff(broken, base_delay=0, retry_on=(ConnectionError,)))


# Listener

def _listener(source, store, **kwargs):
    return SourceListener(source, store, reconnect_base_delay=0.01, reconnect_max_delay=0.05, **kwargs)


def test_listener_loads_and_streams():
    async def scenario():
        source = InMemorySource(TransactionKind.PURCHASE, [purchase("p-1"), purchase("p-2")])
        store = TransactionStore(TransactionUnifier())
        await store.start()
        listener = _listener(source, store)
        listener.start()
        try:
            await listener.wait_until_loaded(timeout=2)
            assert len(store) == 2
            source.emit(ChangeOperation.INSERT, purchase("p-3", "2024-03-04T08:00:00"))
            await wait_for(lambda: len(store) == 3)
        finally:
            await listener.stop()
            await store.stop()
        return listener

    listener = asyncio.run(scenario())

    assert listener.history == [
        ListenerState.DISCONNECTED,
        ListenerState.SUBSCRIBING,
        ListenerState.ACTIVE,
        ListenerState.DISCONNECTED
    ]


def test_listener_reconnects_after_transport_loss():
    async def scenario():
        source = InMemorySource(TransactionKind.SALE, [sale("s-1")])
        store = TransactionStore(TransactionUnifier())
        await store.start()
        listener = _listener(source, store)
        listener.start()
        try:
            await listener.wait_until_loaded(timeout=2)
            source.fail()
            await wait_for(lambda: listener.reconnects == 1 and listener.is_active)
            # Changes after the reconnect still arrive
            source.emit(ChangeOperation.INSERT, sale("s-2", "2024-03-05T08:00:00"))
            await wait_for(lambda: len(store) == 2)
        finally:
            await listener.stop()
            await store.stop()
        return source, listener

    source, listener = asyncio.run(scenario())

    assert ListenerState.RECONNECTING in listener.history
    assert source.fetch_calls == 2
    assert listener.state == ListenerState.DISCONNECTED


def test_listener_retries_failed_initial_fetch():
    async def scenario():
        source = InMemorySource(TransactionKind.PURCHASE, [purchase("p-1")])
        source.fail_next_fetch(2)
        store = TransactionStore(TransactionUnifier())
        await store.start()
        listener = _listener(source, store)
        listener.start()
        try:
            await listener.wait_until_loaded(timeout=2)
        finally:
            await listener.stop()
            await store.stop()
        return source, listener, store

    source, listener, store = asyncio.run(scenario())

    assert source.fetch_calls == 3
    assert listener.history[:4] == [
        ListenerState.DISCONNECTED,
        ListenerState.SUBSCRIBING,
        ListenerState.RECONNECTING,
        ListenerState.ACTIVE
    ]
    assert len(store) == 1


def test_listener_gives_up_after_max_attempts():
    async def scenario():
        source = InMemorySource(TransactionKind.PURCHASE, [purchase("p-1")])
        source.fail_next_subscribe(10)
        store = TransactionStore(TransactionUnifier())
        await store.start()
        listener = _listener(source, store, max_reconnect_attempts=2)
        try:
            await asyncio.wait_for(listener.start(), timeout=2)
        finally:
            await store.stop()
        return source, listener

    source, listener = asyncio.run(scenario())

    assert source.subscribe_calls == 2
    assert listener.state == ListenerState.DISCONNECTED
    assert not listener.loaded.is_set()
    assert listener.last_error


def test_illegal_listener_transition_rejected():
    listener = SourceListener(InMemorySource(TransactionKind.SALE), TransactionStore(TransactionUnifier()))
    with pytest.raises(ReportingError):
        listener._transition(ListenerState.ACTIVE)


# Engine

@pytest.fixture
def sources():
    purchases = InMemorySource(TransactionKind.PURCHASE, [
        purchase("p-1", "2024-03-01T08:00:00"),
        purchase("p-2", "2024-03-01T09:30:00", total_amount=250, weight_kg=5),
        purchase("p-3", "2024-03-10T11:00:00"),
    ])
    sales = InMemorySource(TransactionKind.SALE, [sale("s-1", "2024-03-01T14:00:00")])
    return purchases, sales


@pytest.fixture
def directory():
    return CounterpartyDirectory({"buy-1": "Nairobi Copper Works"})


def test_engine_requires_matching_source_kinds(sources, base_config):
    purchases, sales = sources
    with pytest.raises(ReportingError):
        ReportingEngine(sales, purchases, config=base_config)


def test_engine_reports_after_initial_load(sources, directory, base_config):
    purchases, sales = sources

    async def scenario():
        engine = ReportingEngine(purchases, sales, directory, config=base_config)
        assert engine.is_partial
        async with engine:
            await engine.wait_until_loaded(timeout=2)
            report = await engine.daily_report(date(2024, 3, 1))
            states = engine.listener_states()
            partial = engine.is_partial
            summary = engine.summary()
        return report, states, partial, summary, engine

    report, states, partial, summary, engine = asyncio.run(scenario())

    assert isinstance(report, DailyReport)
    assert not partial
    assert not report.partial
    assert states == {"purchase": "active", "sale": "active"}
    assert report.totals.transaction_count == 3
    assert report.purchases.revenue == 350
    assert report.top_counterparties[0].name == "Peter Mwangi"
    assert summary.total_revenue == 150
    assert engine.current_report is report
    assert engine.listener_states() == {"purchase": "disconnected", "sale": "disconnected"}


def test_report_marked_partial_while_a_source_is_down(sources, base_config):
    purchases, sales = sources
    sales.fail_next_subscribe(1000)

    async def scenario():
        async with ReportingEngine(purchases, sales, config=base_config) as engine:
            await engine.wait_until_loaded(TransactionKind.PURCHASE, timeout=2)
            report = await engine.monthly_report(2024, 3)
            return report, engine.listener_states()["sale"]

    report, sale_state = asyncio.run(scenario())

    assert report.partial is True
    assert report.totals.sale_count == 0
    assert sale_state in ("subscribing", "reconnecting")


def test_superseded_computation_is_discarded(sources, base_config):
    purchases, sales = sources

    async def scenario():
        async with ReportingEngine(purchases, sales, config=base_config) as engine:
            await engine.wait_until_loaded(timeout=2)
            results = await asyncio.gather(
                engine.daily_report(date(2024, 3, 1)),
                engine.monthly_report(2024, 3)
            )
            return results, engine.current_report

    (daily, monthly), current = asyncio.run(scenario())

    assert daily is None
    assert isinstance(monthly, MonthlyReport)
    assert current is monthly


def test_displayed_report_refreshes_on_change(sources, base_config):
    purchases, sales = sources

    async def scenario():
        async with ReportingEngine(purchases, sales, config=base_config) as engine:
            await engine.wait_until_loaded(timeout=2)
            report = await engine.daily_report(date(2024, 3, 1))
            purchases.emit(ChangeOperation.INSERT, purchase("p-4", "2024-03-01T16:00:00"))
            await wait_for(lambda: engine.current_report.totals.transaction_count == 4)

            # A delete for an id the working set never held leaves the report alone
            version = engine.store.version
            purchases.deliver(event(TransactionKind.PURCHASE, ChangeOperation.DELETE, {"id": "p-404"}))
            await asyncio.sleep(0.05)
            await engine.drain()
            return report, engine.current_report, version, engine.store.version

    first, refreshed, version_before, version_after = asyncio.run(scenario())

    assert first.totals.transaction_count == 3
    assert refreshed.totals.purchase_count == 3
    assert version_after == version_before


def test_change_during_caller_build_keeps_caller_view(sources, base_config, monkeypatch):
    """A refresh fired mid-build rebuilds the view the caller just asked for"""
    purchases, sales = sources
    build = engine_module.build_custom_report

    def slow_build(*args, **kwargs):
        time.sleep(0.3)
        return build(*args, **kwargs)

    monkeypatch.setattr(engine_module, "build_custom_report", slow_build)
    criteria = FilterCriteria.for_range(date(2024, 3, 1), date(2024, 3, 31), group_by=GroupBy.MATERIAL)

    async def scenario():
        async with ReportingEngine(purchases, sales, config=base_config) as engine:
            await engine.wait_until_loaded(timeout=2)
            await engine.daily_report(date(2024, 3, 1))
            pending = asyncio.create_task(engine.generate_report(criteria))
            await asyncio.sleep(0.05)
            purchases.emit(ChangeOperation.INSERT, purchase("p-4", "2024-03-01T16:00:00"))
            report = await pending
            await wait_for(lambda: engine.current_report.totals.transaction_count == 5)
            return report, engine.current_report

    report, current = asyncio.run(scenario())

    assert isinstance(report, CustomReport)
    assert isinstance(current, CustomReport)
    assert current.groups[0].key == "Copper"


def test_generate_report_validates_criteria(sources, base_config):
    purchases, sales = sources
    engine = ReportingEngine(purchases, sales, config=base_config)

    with pytest.raises(InvalidFilterError):
        asyncio.run(engine.generate_report(FilterCriteria.for_range(date(2024, 3, 31), date(2024, 3, 1))))
    with pytest.raises(InvalidFilterError):
        asyncio.run(engine.generate_report(FilterCriteria.for_range(date(2020, 1, 1), date(2024, 3, 1))))


def test_export_displayed_report(sources, base_config):
    purchases, sales = sources

    async def scenario():
        async with ReportingEngine(purchases, sales, config=base_config) as engine:
            await engine.wait_until_loaded(timeout=2)
            with pytest.raises(ReportingError):
                engine.export()
            await engine.generate_report(
                FilterCriteria.for_range(date(2024, 3, 1), date(2024, 3, 31), group_by=GroupBy.DAY)
            )
            return engine.export()

    text = asyncio.run(scenario())
    lines = text.splitlines()

    assert lines[0].startswith("Date,Transactions,")
    assert lines[1].startswith("2024-03-01,3,2,1,")
    assert lines[2].startswith("2024-03-10,1,1,0,")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
