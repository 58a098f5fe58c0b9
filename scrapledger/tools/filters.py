"""Filter pipeline: criteria validation, matching and whole-set totals"""

from datetime import date
from typing import Iterable, List, Optional, Sequence, Tuple

from scrapledger.models.criteria import FilterCriteria
from scrapledger.models.report import ReportTotals
from scrapledger.models.transaction import UnifiedTransaction
from scrapledger.tools.periods import safe_divide
from scrapledger.utils.errors import InvalidFilterError
from scrapledger.utils.logging import get_logger
from scrapledger.utils.metrics import invalid_filters_rejected

logger = get_logger(__name__)


def validate_criteria(criteria: FilterCriteria, max_range_days: Optional[int] = None) -> FilterCriteria:
    """
    Reject criteria that cannot produce a report

    Args:
        criteria: Caller-supplied criteria
        max_range_days: Optional cap on the window length (inclusive days)

    Returns:
        The same criteria, unchanged

    Raises:
        InvalidFilterError: Missing range, start after end, missing group_by,
            or a window longer than max_range_days
    """
    problem = None

    if criteria.date_range is None:
        problem = "date range is required"
    elif criteria.date_range.start > criteria.date_range.end:
        problem = (
            f"start date {criteria.date_range.start.isoformat()} is after "
            f"end date {criteria.date_range.end.isoformat()}"
        )
    elif criteria.group_by is None:
        problem = "group_by is required"
    elif max_range_days and criteria.date_range.days > max_range_days:
        problem = f"date range spans {criteria.date_range.days} days, limit is {max_range_days}"

    if problem:
        invalid_filters_rejected.inc()
        logger.warning("Rejected filter criteria", reason=problem)
        raise InvalidFilterError(f"Invalid filter criteria: {problem}")

    return criteria


def matches(txn: UnifiedTransaction, criteria: FilterCriteria) -> bool:
    """True when the transaction passes every dimension of the criteria"""
    if criteria.date_range is not None and not criteria.date_range.contains(txn.transaction_date):
        return False
    if criteria.materials and txn.material_name not in criteria.materials:
        return False
    if criteria.counterparties and not (
        txn.counterparty_name in criteria.counterparties or txn.counterparty_key in criteria.counterparties
    ):
        return False
    if criteria.transaction_types and txn.kind not in criteria.transaction_types:
        return False
    return True


def filter_transactions(
    transactions: Iterable[UnifiedTransaction],
    criteria: FilterCriteria
) -> List[UnifiedTransaction]:
    """Subset matching the criteria, in the original order"""
    return [txn for txn in transactions if matches(txn, criteria)]


def in_window(transactions: Iterable[UnifiedTransaction], start: date, end: date) -> List[UnifiedTransaction]:
    """Transactions whose transaction_date falls in [start, end]"""
    return [txn for txn in transactions if start <= txn.transaction_date <= end]


def summarize_totals(transactions: Sequence[UnifiedTransaction]) -> ReportTotals:
    """Whole-set totals; all zeros for an empty set"""
    totals = ReportTotals()
    materials = set()
    counterparties = set()

    for txn in transactions:
        if txn.is_purchase:
            totals.purchase_count += 1
            totals.purchase_revenue += txn.total_amount
            totals.purchase_weight += txn.weight_kg
        else:
            totals.sale_count += 1
            totals.sales_revenue += txn.total_amount
            totals.sale_weight += txn.weight_kg
        materials.add(txn.material_name)
        counterparties.add(txn.counterparty_name)

    totals.transaction_count = totals.purchase_count + totals.sale_count
    totals.total_weight = totals.purchase_weight + totals.sale_weight
    totals.total_revenue = totals.purchase_revenue + totals.sales_revenue
    totals.net_profit = totals.sales_revenue - totals.purchase_revenue
    totals.avg_price_per_kg = safe_divide(totals.total_revenue, totals.total_weight)
    totals.avg_transaction_value = safe_divide(totals.total_revenue, totals.transaction_count)
    totals.margin_percent = safe_divide(totals.net_profit, totals.sales_revenue) * 100
    totals.material_count = len(materials)
    totals.counterparty_count = len(counterparties)
    return totals


def filter_options(transactions: Iterable[UnifiedTransaction]) -> Tuple[List[str], List[str]]:
    """Sorted distinct material and counterparty names, for building filter choices"""
    materials = set()
    counterparties = set()
    for txn in transactions:
        materials.add(txn.material_name)
        counterparties.add(txn.counterparty_name)
    return sorted(materials), sorted(counterparties)
