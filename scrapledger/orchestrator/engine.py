"""Reporting engine - wires sources, listeners, working set and report generators"""

import asyncio
import time
import uuid
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from scrapledger.constants import ListenerState, TransactionKind, DEFAULT_TOP_COUNTERPARTIES, DEFAULT_TOP_DAILY_COUNTERPARTIES
from scrapledger.models.criteria import FilterCriteria
from scrapledger.models.report import BaseReport, CustomReport, DailyReport, MonthlyReport, WeeklyReport
from scrapledger.models.summary import DashboardSummary
from scrapledger.models.transaction import UnifiedTransaction
from scrapledger.orchestrator.listener import SourceListener
from scrapledger.orchestrator.store import TransactionStore
from scrapledger.tools.data_source import CounterpartyDirectory, RecordSource
from scrapledger.tools.export import export_report
from scrapledger.tools.filters import filter_options, validate_criteria
from scrapledger.tools.kpi import calculate_summary
from scrapledger.tools.reports import (
    build_custom_report,
    build_daily_report,
    build_monthly_report,
    build_weekly_report
)
from scrapledger.tools.unification import TransactionUnifier
from scrapledger.utils.config_loader import get_section, load_config
from scrapledger.utils.errors import ReportingError, StaleComputationError
from scrapledger.utils.logging import get_logger
from scrapledger.utils.metrics import (
    report_computation_time,
    reports_generated,
    stale_computations_discarded
)

logger = get_logger(__name__)

ReportBuilder = Callable[[Sequence[UnifiedTransaction], bool], BaseReport]


class ReportingEngine:
    """
    Facade over the live working set and the report generators.

    The most recently requested report is the "displayed" report; it is
    recomputed from the latest state after every applied change. Each
    caller request takes a new request id and a result whose id has been
    superseded by the time it completes is discarded. Refreshes reuse the
    displayed request id, so they never cancel the caller they refresh.
    """

    def __init__(
        self,
        purchase_source: RecordSource,
        sale_source: RecordSource,
        directory: Optional[CounterpartyDirectory] = None,
        config: Optional[Dict[str, Any]] = None
    ):
        if purchase_source.kind != TransactionKind.PURCHASE or sale_source.kind != TransactionKind.SALE:
            raise ReportingError("ReportingEngine needs a purchase source and a sale source")

        self.engine_id = str(uuid.uuid4())
        self.config = config if config is not None else load_config()

        self.unifier = TransactionUnifier.from_config(self.config, directory)
        self.store = TransactionStore(
            self.unifier,
            dedup_capacity=get_section(self.config, 'listener', 'dedup_capacity', 10000)
        )
        self.listeners: Dict[TransactionKind, SourceListener] = {
            source.kind: SourceListener(
                source,
                self.store,
                reconnect_base_delay=get_section(self.config, 'listener', 'reconnect_base_delay', 1.0),
                reconnect_max_delay=get_section(self.config, 'listener', 'reconnect_max_delay', 60.0),
                max_reconnect_attempts=get_section(self.config, 'listener', 'max_reconnect_attempts', 0)
            )
            for source in (purchase_source, sale_source)
        }

        self.current_report: Optional[BaseReport] = None
        self._displayed: Optional[Tuple[str, ReportBuilder, int]] = None
        self._request_id = 0
        self._build_seq = 0
        self._displayed_seq = 0
        self._refresh_tasks: Set[asyncio.Task] = set()
        self.store.add_change_listener(self._on_store_change)

    # Lifecycle

    async def start(self) -> None:
        logger.info(f"🚀 Starting reporting engine: {self.engine_id}")
        await self.store.start()
        for listener in self.listeners.values():
            listener.start()

    async def stop(self) -> None:
        for listener in self.listeners.values():
            await listener.stop()
        for task in list(self._refresh_tasks):
            task.cancel()
        if self._refresh_tasks:
            await asyncio.gather(*self._refresh_tasks, return_exceptions=True)
        await self.store.stop()
        logger.info(f"Reporting engine stopped: {self.engine_id}")

    async def __aenter__(self) -> "ReportingEngine":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def wait_until_loaded(
        self,
        kind: Optional[TransactionKind] = None,
        timeout: Optional[float] = None
    ) -> None:
        """
        Wait for the initial load of one source, or of both

        Raises:
            asyncio.TimeoutError: If the load does not finish within timeout
        """
        kinds = [TransactionKind(kind)] if kind is not None else list(self.listeners)
        waits = [self.listeners[k].loaded.wait() for k in kinds]
        await asyncio.wait_for(asyncio.gather(*waits), timeout)

    async def drain(self) -> None:
        """Wait until queued change events have been applied"""
        await self.store.drain()

    # State

    @property
    def transactions(self) -> Tuple[UnifiedTransaction, ...]:
        """Immutable snapshot of the working set, most recent first"""
        return self.store.snapshot()

    @property
    def is_partial(self) -> bool:
        """True unless every source has loaded and is currently ACTIVE"""
        return not all(
            listener.loaded.is_set() and listener.state == ListenerState.ACTIVE
            for listener in self.listeners.values()
        )

    def listener_states(self) -> Dict[str, str]:
        return {kind.value: listener.state.value for kind, listener in self.listeners.items()}

    def filter_options(self) -> Tuple[List[str], List[str]]:
        return filter_options(self.transactions)

    # Reports

    def _ensure_latest(self, request_id: int) -> None:
        if request_id != self._request_id:
            raise StaleComputationError(request_id, self._request_id)

    async def _compute(
        self,
        report_type: str,
        builder: ReportBuilder,
        request_id: Optional[int] = None
    ) -> Optional[BaseReport]:
        # A caller request selects a new view and supersedes older ones;
        # refreshes rebuild the selected view under its existing id
        if request_id is None:
            self._request_id += 1
            request_id = self._request_id
            self._displayed = (report_type, builder, request_id)
        self._build_seq += 1
        build_seq = self._build_seq
        snapshot = self.store.snapshot()
        partial = self.is_partial
        started = time.time()

        # Snapshot tuples and unified transactions are immutable, so the
        # build can run off the event loop
        report = await asyncio.to_thread(builder, snapshot, partial)

        try:
            self._ensure_latest(request_id)
        except StaleComputationError as e:
            stale_computations_discarded.inc()
            logger.debug("Discarded superseded report", report_type=report_type, error=str(e))
            return None

        if build_seq < self._displayed_seq:
            # A build of the same view from a newer snapshot already landed
            return self.current_report

        report_computation_time.labels(report_type=report_type).observe(time.time() - started)
        reports_generated.labels(report_type=report_type, partial=str(report.partial).lower()).inc()
        self.current_report = report
        self._displayed_seq = build_seq
        return report

    def _on_store_change(self) -> None:
        if self._displayed is None:
            return
        report_type, builder, request_id = self._displayed
        task = asyncio.create_task(self._compute(report_type, builder, request_id))
        self._refresh_tasks.add(task)
        task.add_done_callback(self._refresh_tasks.discard)

    async def generate_report(self, criteria: FilterCriteria) -> Optional[CustomReport]:
        """
        Custom report for caller-supplied criteria

        Returns:
            CustomReport, or None if a newer request superseded this one

        Raises:
            InvalidFilterError: If the criteria fail validation
        """
        validate_criteria(criteria, get_section(self.config, 'filters', 'max_range_days'))
        return await self._compute(
            "custom",
            lambda txns, partial: build_custom_report(txns, criteria, partial=partial)
        )

    async def daily_report(self, day: Optional[date] = None) -> Optional[DailyReport]:
        day = day or date.today()
        top_n = get_section(self.config, 'reports', 'top_daily_counterparties', DEFAULT_TOP_DAILY_COUNTERPARTIES)
        return await self._compute(
            "daily",
            lambda txns, partial: build_daily_report(txns, day, top_n=top_n, partial=partial)
        )

    async def weekly_report(self, day: Optional[date] = None) -> Optional[WeeklyReport]:
        day = day or date.today()
        top_n = get_section(self.config, 'reports', 'top_daily_counterparties', DEFAULT_TOP_DAILY_COUNTERPARTIES)
        return await self._compute(
            "weekly",
            lambda txns, partial: build_weekly_report(txns, day, top_n=top_n, partial=partial)
        )

    async def monthly_report(self, year: Optional[int] = None, month: Optional[int] = None) -> Optional[MonthlyReport]:
        today = date.today()
        year = year or today.year
        month = month or today.month
        top_n = get_section(self.config, 'reports', 'top_counterparties', DEFAULT_TOP_COUNTERPARTIES)
        return await self._compute(
            "monthly",
            lambda txns, partial: build_monthly_report(txns, year, month, top_n=top_n, partial=partial)
        )

    def summary(self, now: Optional[datetime] = None, revenue_basis: Optional[str] = None) -> DashboardSummary:
        basis = revenue_basis or get_section(self.config, 'reports', 'kpi_revenue_basis', 'sales')
        return calculate_summary(self.transactions, now=now, revenue_basis=basis, partial=self.is_partial)

    def export(self, report: Optional[BaseReport] = None) -> str:
        """
        Serialize a report (the displayed one by default)

        Raises:
            ReportingError: If no report is given and none has been computed
        """
        report = report or self.current_report
        if report is None:
            raise ReportingError("No report to export")
        return export_report(report, self.config.get('export'))
