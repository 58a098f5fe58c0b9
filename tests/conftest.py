"""Shared fixtures for reporting engine tests"""

import pytest
from datetime import date, datetime, time
from pathlib import Path

from scrapledger.constants import TransactionKind
from scrapledger.models.transaction import UnifiedTransaction

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES_DIR


@pytest.fixture
def make_txn():
    """Factory for UnifiedTransaction with sensible defaults"""
    counter = {"n": 0}

    def _make(
        kind=TransactionKind.PURCHASE,
        amount=100.0,
        weight=10.0,
        day=date(2024, 3, 1),
        material="Copper",
        counterparty="Kamau Metals",
        hour=9,
        **overrides
    ) -> UnifiedTransaction:
        counter["n"] += 1
        fields = dict(
            id=f"t-{counter['n']}",
            kind=kind,
            counterparty_name=counterparty,
            counterparty_key=counterparty,
            material_name=material,
            transaction_date=day,
            created_at=datetime.combine(day, time(hour, 0)),
            total_amount=amount,
            weight_kg=weight,
            price_per_kg=amount / weight if weight > 0 else 0.0,
        )
        fields.update(overrides)
        return UnifiedTransaction(**fields)

    return _make


@pytest.fixture
def base_config():
    """In-memory engine configuration with fast reconnects"""
    return {
        "version": "test",
        "labels": {},
        "timezone": None,
        "listener": {
            "dedup_capacity": 100,
            "reconnect_base_delay": 0.01,
            "reconnect_max_delay": 0.05,
            "max_reconnect_attempts": 0,
        },
        "filters": {"max_range_days": 400},
        "reports": {
            "top_counterparties": 10,
            "top_daily_counterparties": 5,
            "custom_range_days": 30,
            "kpi_revenue_basis": "sales",
        },
        "export": {"delimiter": ",", "currency_decimals": 2, "weight_decimals": 1, "percent_decimals": 1},
    }
