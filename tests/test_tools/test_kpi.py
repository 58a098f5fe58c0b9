"""Tests for the dashboard KPI calculator"""

import pytest
from datetime import date, datetime

from scrapledger.constants import TransactionKind
from scrapledger.tools.kpi import calculate_summary, transactions_to_frame

NOW = datetime(2024, 3, 31, 18, 0)


@pytest.fixture
def working_set(make_txn):
    return [
        make_txn(kind=TransactionKind.SALE, amount=1000, weight=10, day=date(2024, 3, 31),
                 counterparty="Nairobi Copper Works", payment_status="Completed"),
        make_txn(kind=TransactionKind.SALE, amount=500, weight=10, day=date(2024, 2, 20),
                 counterparty="Mombasa Steel Mills", payment_status="pending"),
        make_txn(amount=800, weight=50, day=date(2024, 3, 31), material="Scrap Iron",
                 counterparty="Kamau Metals", payment_status="completed"),
    ]


def test_empty_set_is_all_zero():
    summary = calculate_summary([], now=NOW)

    assert summary.total_revenue == 0
    assert summary.total_transactions == 0
    assert summary.revenue_growth == 0
    assert summary.top_material is None
    assert summary.top_counterparty is None


def test_sales_basis(working_set):
    summary = calculate_summary(working_set, now=NOW)

    assert summary.revenue_basis == "sales"
    assert summary.total_revenue == 1500
    assert summary.avg_transaction_value == pytest.approx(750)
    assert summary.total_transactions == 3
    assert summary.total_weight == 70
    assert summary.active_counterparties == 3
    assert summary.top_counterparty == "Nairobi Copper Works"


def test_combined_basis(working_set):
    summary = calculate_summary(working_set, now=NOW, revenue_basis="combined")

    assert summary.total_revenue == 2300
    assert summary.today_revenue == 1800
    assert summary.top_counterparty == "Nairobi Copper Works"


def test_trailing_window_growth(working_set):
    # 1000 in the last 30 days against 500 in the 30 days before
    summary = calculate_summary(working_set, now=NOW)
    assert summary.revenue_growth == pytest.approx(100.0)


def test_today_and_week_counts(working_set):
    summary = calculate_summary(working_set, now=NOW)

    assert summary.today_transactions == 2
    assert summary.today_revenue == 1000
    # 2024-03-31 is a Sunday, so the week has only just started
    assert summary.week_transactions == 2
    assert summary.week_revenue == 1000


def test_payment_status_counts_are_case_insensitive(working_set):
    summary = calculate_summary(working_set, now=NOW)
    assert summary.completed_transactions == 2
    assert summary.pending_transactions == 1


def test_top_material_by_weight(working_set):
    assert calculate_summary(working_set, now=NOW).top_material == "Scrap Iron"


def test_purchases_only_with_sales_basis(make_txn):
    summary = calculate_summary([make_txn(amount=400)], now=NOW)
    assert summary.total_revenue == 0
    assert summary.top_counterparty is None
    assert summary.total_transactions == 1


def test_unknown_basis_rejected(working_set):
    with pytest.raises(ValueError):
        calculate_summary(working_set, now=NOW, revenue_basis="profit")


def test_frame_columns(working_set):
    df = transactions_to_frame(working_set)
    assert len(df) == 3
    assert str(df["created_at"].dtype).startswith("datetime64")
    assert transactions_to_frame([]).empty


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
