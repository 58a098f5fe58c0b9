"""Summary/KPI calculator over the unified working set"""

from datetime import datetime, timedelta
from typing import Optional, Sequence

import pandas as pd

from scrapledger.constants import KPI_GROWTH_WINDOW_DAYS, PaymentStatus, TransactionKind
from scrapledger.models.summary import DashboardSummary
from scrapledger.models.transaction import UnifiedTransaction
from scrapledger.tools.periods import percent_change, safe_divide, week_start
from scrapledger.utils.logging import get_logger

logger = get_logger(__name__)

REVENUE_BASES = ("sales", "combined")

FRAME_COLUMNS = [
    'id', 'kind', 'counterparty_name', 'counterparty_key', 'material_name',
    'transaction_date', 'created_at', 'total_amount', 'weight_kg', 'payment_status'
]


def transactions_to_frame(transactions: Sequence[UnifiedTransaction]) -> pd.DataFrame:
    """Flatten unified transactions into a DataFrame with datetime columns"""
    if not transactions:
        return pd.DataFrame(columns=FRAME_COLUMNS)

    df = pd.DataFrame([
        {
            'id': txn.id,
            'kind': txn.kind.value,
            'counterparty_name': txn.counterparty_name,
            'counterparty_key': txn.counterparty_key,
            'material_name': txn.material_name,
            'transaction_date': txn.transaction_date,
            'created_at': txn.created_at,
            'total_amount': txn.total_amount,
            'weight_kg': txn.weight_kg,
            'payment_status': (txn.payment_status or '').lower(),
        }
        for txn in transactions
    ], columns=FRAME_COLUMNS)
    df['transaction_date'] = pd.to_datetime(df['transaction_date'])
    df['created_at'] = pd.to_datetime(df['created_at'])
    return df


def _leader(df: pd.DataFrame, by: str, value: str) -> Optional[str]:
    if df.empty:
        return None
    totals = df.groupby(by)[value].sum()
    return str(totals.idxmax())


def calculate_summary(
    transactions: Sequence[UnifiedTransaction],
    now: Optional[datetime] = None,
    revenue_basis: str = "sales",
    window_days: int = KPI_GROWTH_WINDOW_DAYS,
    partial: bool = False
) -> DashboardSummary:
    """
    Compute dashboard KPIs

    Args:
        transactions: Full working set
        now: Reference time (defaults to datetime.now())
        revenue_basis: "sales" counts sale amounts only, "combined" counts both kinds
        window_days: Length of the trailing growth window
        partial: Whether a source had not finished loading

    Returns:
        DashboardSummary (all zeros for an empty set)

    Raises:
        ValueError: If revenue_basis is not recognised
    """
    if revenue_basis not in REVENUE_BASES:
        raise ValueError(f"revenue_basis must be one of {REVENUE_BASES}, got {revenue_basis!r}")

    now = now or datetime.now()
    df = transactions_to_frame(transactions)
    if df.empty:
        return DashboardSummary(revenue_basis=revenue_basis, partial=partial, generated_at=now)

    basis = df[df['kind'] == TransactionKind.SALE.value] if revenue_basis == "sales" else df

    today = pd.Timestamp(now.date())
    recent_start = today - timedelta(days=window_days - 1)
    previous_start = recent_start - timedelta(days=window_days)

    recent = basis[(basis['transaction_date'] >= recent_start) & (basis['transaction_date'] <= today)]
    previous = basis[(basis['transaction_date'] >= previous_start) & (basis['transaction_date'] < recent_start)]

    created_day = df['created_at'].dt.normalize()
    today_mask = created_day == today
    week_mask = (created_day >= pd.Timestamp(week_start(now.date()))) & (created_day <= today)

    total_revenue = float(basis['total_amount'].sum())
    summary = DashboardSummary(
        total_revenue=total_revenue,
        revenue_basis=revenue_basis,
        total_transactions=int(len(df)),
        total_weight=float(df['weight_kg'].sum()),
        avg_transaction_value=safe_divide(total_revenue, len(basis)),
        active_counterparties=int(df['counterparty_key'].nunique()),
        revenue_growth=percent_change(float(recent['total_amount'].sum()), float(previous['total_amount'].sum())),
        today_transactions=int(today_mask.sum()),
        today_revenue=float(basis.loc[today_mask.loc[basis.index], 'total_amount'].sum()),
        week_transactions=int(week_mask.sum()),
        week_revenue=float(basis.loc[week_mask.loc[basis.index], 'total_amount'].sum()),
        completed_transactions=int((df['payment_status'] == PaymentStatus.COMPLETED.value).sum()),
        pending_transactions=int((df['payment_status'] == PaymentStatus.PENDING.value).sum()),
        top_material=_leader(df, 'material_name', 'weight_kg'),
        top_counterparty=_leader(basis, 'counterparty_name', 'total_amount'),
        partial=partial,
        generated_at=now
    )

    logger.debug(
        "Summary calculated",
        transactions=summary.total_transactions,
        revenue=summary.total_revenue,
        basis=revenue_basis
    )
    return summary
