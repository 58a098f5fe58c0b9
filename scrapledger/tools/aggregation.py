"""Aggregation engine: keyed accumulate/finalize over unified transactions"""

from typing import Any, Dict, Iterable, List, Optional, Tuple

from scrapledger.constants import GroupBy, TransactionKind
from scrapledger.models.aggregate import GroupedAggregate
from scrapledger.models.transaction import UnifiedTransaction
from scrapledger.tools.periods import day_label, month_label, week_label, week_start, safe_divide


def group_key(txn: UnifiedTransaction, group_by: GroupBy) -> Tuple[str, Any]:
    """
    Bucket label and sort key for a transaction

    Returns:
        (label, sort_key); sort_key is a date for time buckets, None otherwise
    """
    day = txn.transaction_date

    if group_by == GroupBy.DAY:
        return day_label(day), day
    if group_by == GroupBy.WEEK:
        return week_label(day), week_start(day)
    if group_by == GroupBy.MONTH:
        return month_label(day), (day.year, day.month)
    if group_by == GroupBy.MATERIAL:
        return txn.material_name, None
    if group_by == GroupBy.COUNTERPARTY:
        return txn.counterparty_name, None

    raise ValueError(f"Unsupported group_by: {group_by}")


class AggregateStore:
    """
    Explicit keyed aggregate store.

    accumulate() folds transactions in one at a time; finalize() computes
    the derived fields and returns the ordered groups. Further transactions
    may be accumulated after a finalize() and finalize() called again.
    """

    def __init__(self, group_by: GroupBy):
        self.group_by = GroupBy(group_by)
        self._groups: Dict[str, GroupedAggregate] = {}
        self._price_bounds: Dict[str, Tuple[float, float]] = {}

    def __len__(self) -> int:
        return len(self._groups)

    def accumulate(self, txn: UnifiedTransaction) -> None:
        key, sort_key = group_key(txn, self.group_by)

        group = self._groups.get(key)
        if group is None:
            group = GroupedAggregate(key=key, sort_key=sort_key)
            self._groups[key] = group

        if txn.kind == TransactionKind.PURCHASE:
            group.purchase_count += 1
            group.purchase_revenue += txn.total_amount
            group.purchase_weight += txn.weight_kg
        else:
            group.sale_count += 1
            group.sales_revenue += txn.total_amount
            group.sale_weight += txn.weight_kg

        group.transaction_count += 1
        group.total_weight += txn.weight_kg
        group.materials.add(txn.material_name)
        group.counterparties.add(txn.counterparty_name)

        # Unweighed transactions carry no usable price
        if txn.weight_kg > 0:
            price = txn.effective_price_per_kg
            bounds = self._price_bounds.get(key)
            if bounds is None:
                self._price_bounds[key] = (price, price)
            else:
                self._price_bounds[key] = (min(bounds[0], price), max(bounds[1], price))

    def accumulate_all(self, transactions: Iterable[UnifiedTransaction]) -> "AggregateStore":
        for txn in transactions:
            self.accumulate(txn)
        return self

    def finalize(self) -> List[GroupedAggregate]:
        """Compute net profit, average price, margin and price bounds, then order the groups"""
        for key, group in self._groups.items():
            group.net_profit = group.sales_revenue - group.purchase_revenue
            group.avg_price_per_kg = safe_divide(group.total_revenue, group.total_weight)
            group.margin_percent = safe_divide(group.net_profit, group.sales_revenue) * 100
            group.min_price, group.max_price = self._price_bounds.get(key, (0.0, 0.0))

        groups = list(self._groups.values())
        if self.group_by.is_time_bucket:
            groups.sort(key=lambda g: g.sort_key)
        else:
            # Stable sort keeps first-occurrence order on ties
            groups.sort(key=lambda g: g.net_profit, reverse=True)
        return groups


def aggregate(transactions: Iterable[UnifiedTransaction], group_by: GroupBy) -> List[GroupedAggregate]:
    """
    Group transactions and compute per-group statistics

    Args:
        transactions: Unified transactions (any order)
        group_by: Grouping dimension

    Returns:
        Ordered list of GroupedAggregate (chronological for time buckets,
        net profit descending for material/counterparty)
    """
    return AggregateStore(group_by).accumulate_all(transactions).finalize()


def rank_by_revenue(groups: List[GroupedAggregate], limit: Optional[int] = None) -> List[GroupedAggregate]:
    """Groups ordered by combined revenue, descending; ties keep input order"""
    ranked = sorted(groups, key=lambda g: g.total_revenue, reverse=True)
    return ranked[:limit] if limit is not None else ranked
