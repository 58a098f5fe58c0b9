"""Report view generators (daily, weekly, monthly, custom)"""

import calendar
from datetime import date, timedelta
from typing import Callable, Dict, List, Optional, Sequence

from scrapledger.constants import (
    GroupBy,
    TransactionKind,
    DEFAULT_TOP_COUNTERPARTIES,
    DEFAULT_TOP_DAILY_COUNTERPARTIES
)
from scrapledger.models.criteria import FilterCriteria
from scrapledger.models.report import (
    CounterpartyRanking,
    CustomReport,
    DailyReport,
    DayBreakdown,
    DistributionEntry,
    HourlyBucket,
    KindSubtotal,
    MaterialPriceAnalysis,
    MonthlyReport,
    WeekBreakdown,
    WeeklyReport
)
from scrapledger.models.transaction import UnifiedTransaction
from scrapledger.tools.aggregation import aggregate, rank_by_revenue
from scrapledger.tools.filters import filter_transactions, in_window, summarize_totals, validate_criteria
from scrapledger.tools.periods import (
    iter_days,
    month_label,
    month_range,
    percent_change,
    previous_month,
    safe_divide,
    week_chunks,
    week_range
)
from scrapledger.utils.logging import get_logger

logger = get_logger(__name__)


def _revenue(transactions: Sequence[UnifiedTransaction]) -> float:
    return sum(txn.total_amount for txn in transactions)


def kind_subtotal(transactions: Sequence[UnifiedTransaction], kind: TransactionKind) -> KindSubtotal:
    subset = [txn for txn in transactions if txn.kind == kind]
    revenue = _revenue(subset)
    weight = sum(txn.weight_kg for txn in subset)
    return KindSubtotal(
        kind=kind,
        count=len(subset),
        revenue=revenue,
        weight=weight,
        avg_price_per_kg=safe_divide(revenue, weight)
    )


def distribution(
    transactions: Sequence[UnifiedTransaction],
    label_of: Callable[[UnifiedTransaction], Optional[str]],
    total: Optional[int] = None
) -> List[DistributionEntry]:
    """
    Count / amount / weight share per categorical value

    Entries are ordered by count descending, first occurrence on ties.
    Transactions whose label is None are skipped. Percentages are taken
    over `total` when given, else over the labelled transactions.
    """
    entries: Dict[str, DistributionEntry] = {}
    for txn in transactions:
        label = label_of(txn)
        if label is None:
            continue
        entry = entries.setdefault(label, DistributionEntry(label=label))
        entry.count += 1
        entry.amount += txn.total_amount
        entry.weight += txn.weight_kg

    if total is None:
        total = sum(entry.count for entry in entries.values())
    for entry in entries.values():
        entry.percentage = safe_divide(entry.count, total) * 100

    return sorted(entries.values(), key=lambda e: e.count, reverse=True)


def hourly_breakdown(transactions: Sequence[UnifiedTransaction]) -> List[HourlyBucket]:
    """Active hours of the day (by created_at), ascending"""
    buckets: Dict[int, HourlyBucket] = {}
    for txn in transactions:
        hour = txn.created_at.hour
        bucket = buckets.setdefault(hour, HourlyBucket(hour=hour, label=f"{hour:02d}:00"))
        if txn.kind == TransactionKind.PURCHASE:
            bucket.purchases += 1
            bucket.purchase_revenue += txn.total_amount
        else:
            bucket.sales += 1
            bucket.sales_revenue += txn.total_amount
    return [buckets[hour] for hour in sorted(buckets)]


def peak_hour(buckets: Sequence[HourlyBucket]) -> Optional[int]:
    """Hour with the most transactions; earliest hour wins ties"""
    best = None
    for bucket in buckets:
        if best is None or bucket.transactions > best.transactions:
            best = bucket
    return best.hour if best is not None else None


def top_counterparties(transactions: Sequence[UnifiedTransaction], limit: int) -> List[CounterpartyRanking]:
    groups = rank_by_revenue(aggregate(transactions, GroupBy.COUNTERPARTY), limit)
    return [
        CounterpartyRanking(
            name=group.key,
            transactions=group.transaction_count,
            revenue=group.total_revenue,
            purchase_revenue=group.purchase_revenue,
            sales_revenue=group.sales_revenue,
            weight=group.total_weight,
            material_count=group.material_count
        )
        for group in groups
    ]


def material_prices(transactions: Sequence[UnifiedTransaction]) -> List[MaterialPriceAnalysis]:
    """Per-material price spread, heaviest material first"""
    groups = aggregate(transactions, GroupBy.MATERIAL)
    analyses = [
        MaterialPriceAnalysis(
            material=group.key,
            transactions=group.transaction_count,
            weight=group.total_weight,
            revenue=group.total_revenue,
            min_price=group.min_price,
            max_price=group.max_price,
            avg_price=group.avg_price_per_kg,
            counterparty_count=group.counterparty_count
        )
        for group in groups
    ]
    return sorted(analyses, key=lambda a: a.weight, reverse=True)


def build_daily_report(
    transactions: Sequence[UnifiedTransaction],
    day: date,
    top_n: int = DEFAULT_TOP_DAILY_COUNTERPARTIES,
    partial: bool = False
) -> DailyReport:
    """
    Single calendar day: kind subtotals, hourly activity, distributions,
    material breakdown and top counterparties

    Args:
        transactions: Full working set (filtered internally)
        day: Report day
        top_n: Number of counterparties to rank
        partial: Whether a source had not finished loading

    Returns:
        DailyReport (well-formed and zeroed when the day is empty)
    """
    day_txns = in_window(transactions, day, day)
    hourly = hourly_breakdown(day_txns)
    purchases = [txn for txn in day_txns if txn.kind == TransactionKind.PURCHASE]

    return DailyReport(
        start=day,
        end=day,
        partial=partial,
        group_by=GroupBy.MATERIAL,
        totals=summarize_totals(day_txns),
        groups=aggregate(day_txns, GroupBy.MATERIAL),
        purchases=kind_subtotal(day_txns, TransactionKind.PURCHASE),
        sales=kind_subtotal(day_txns, TransactionKind.SALE),
        peak_hour=peak_hour(hourly),
        hourly=hourly,
        payment_methods=distribution(day_txns, lambda t: t.payment_method, total=len(day_txns)),
        quality_grades=distribution(purchases, lambda t: t.quality_grade, total=len(day_txns)),
        top_counterparties=top_counterparties(day_txns, top_n)
    )


def build_weekly_report(
    transactions: Sequence[UnifiedTransaction],
    day: date,
    top_n: int = DEFAULT_TOP_DAILY_COUNTERPARTIES,
    partial: bool = False
) -> WeeklyReport:
    """Sunday-to-Saturday week containing `day`, compared with the week before"""
    start, end = week_range(day)
    week_txns = in_window(transactions, start, end)
    previous_txns = in_window(transactions, start - timedelta(days=7), start - timedelta(days=1))

    days = []
    for current in iter_days(start, end):
        subset = [txn for txn in week_txns if txn.transaction_date == current]
        purchase_revenue = sum(t.total_amount for t in subset if t.kind == TransactionKind.PURCHASE)
        sales_revenue = sum(t.total_amount for t in subset if t.kind == TransactionKind.SALE)
        days.append(DayBreakdown(
            day=current,
            day_name=calendar.day_name[current.weekday()],
            transactions=len(subset),
            purchase_revenue=purchase_revenue,
            sales_revenue=sales_revenue,
            revenue=purchase_revenue + sales_revenue,
            weight=sum(t.weight_kg for t in subset)
        ))

    best_day = None
    for breakdown in days:
        if breakdown.transactions and (best_day is None or breakdown.revenue > best_day.revenue):
            best_day = breakdown

    current_revenue = _revenue(week_txns)
    previous_revenue = _revenue(previous_txns)

    return WeeklyReport(
        start=start,
        end=end,
        partial=partial,
        group_by=GroupBy.MATERIAL,
        totals=summarize_totals(week_txns),
        groups=aggregate(week_txns, GroupBy.MATERIAL),
        days=days,
        previous_revenue=previous_revenue,
        revenue_growth=percent_change(current_revenue, previous_revenue),
        best_day=best_day,
        avg_daily_revenue=current_revenue / 7,
        top_counterparties=top_counterparties(week_txns, top_n)
    )


def build_monthly_report(
    transactions: Sequence[UnifiedTransaction],
    year: int,
    month: int,
    top_n: int = DEFAULT_TOP_COUNTERPARTIES,
    partial: bool = False
) -> MonthlyReport:
    """Calendar month with week-by-week rows, month-over-month and year-over-year growth"""
    start, end = month_range(year, month)
    month_txns = in_window(transactions, start, end)

    prev_year, prev_month = previous_month(year, month)
    prev_start, prev_end = month_range(prev_year, prev_month)
    last_year_start, last_year_end = month_range(year - 1, month)

    weeks = []
    for index, (chunk_start, chunk_end) in enumerate(week_chunks(start, end), start=1):
        subset = in_window(month_txns, chunk_start, chunk_end)
        weeks.append(WeekBreakdown(
            label=f"Week {index}",
            start=chunk_start,
            end=chunk_end,
            transactions=len(subset),
            revenue=_revenue(subset),
            weight=sum(t.weight_kg for t in subset)
        ))

    best_week = None
    for week in weeks:
        if week.transactions and (best_week is None or week.revenue > best_week.revenue):
            best_week = week

    current_revenue = _revenue(month_txns)
    previous_month_revenue = _revenue(in_window(transactions, prev_start, prev_end))
    previous_year_revenue = _revenue(in_window(transactions, last_year_start, last_year_end))

    return MonthlyReport(
        start=start,
        end=end,
        partial=partial,
        group_by=GroupBy.MATERIAL,
        month_label=month_label(start),
        totals=summarize_totals(month_txns),
        groups=aggregate(month_txns, GroupBy.MATERIAL),
        weeks=weeks,
        previous_month_revenue=previous_month_revenue,
        month_over_month_growth=percent_change(current_revenue, previous_month_revenue),
        previous_year_revenue=previous_year_revenue,
        year_over_year_growth=percent_change(current_revenue, previous_year_revenue),
        best_week=best_week,
        avg_transactions_per_day=len(month_txns) / end.day,
        top_counterparties=top_counterparties(month_txns, top_n),
        material_prices=material_prices(month_txns)
    )


def build_custom_report(
    transactions: Sequence[UnifiedTransaction],
    criteria: FilterCriteria,
    partial: bool = False
) -> CustomReport:
    """
    Caller-filtered window grouped by the requested dimension

    Raises:
        InvalidFilterError: If the criteria fail validation
    """
    validate_criteria(criteria)
    selected = filter_transactions(transactions, criteria)
    logger.debug(
        "Custom report filter applied",
        matched=len(selected),
        total=len(transactions),
        group_by=criteria.group_by.value
    )

    return CustomReport(
        start=criteria.date_range.start,
        end=criteria.date_range.end,
        partial=partial,
        group_by=criteria.group_by,
        criteria=criteria,
        totals=summarize_totals(selected),
        groups=aggregate(selected, criteria.group_by)
    )
