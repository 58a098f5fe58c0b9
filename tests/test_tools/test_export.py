"""Tests for the export serializer"""

import io
import pytest
import pandas as pd
from datetime import date

from scrapledger.constants import GroupBy, TransactionKind
from scrapledger.models.criteria import FilterCriteria
from scrapledger.models.report import CustomReport
from scrapledger.tools.aggregation import aggregate
from scrapledger.tools.export import export_csv, export_report, export_rows, suggest_filename


@pytest.fixture
def material_groups(make_txn):
    return aggregate([
        make_txn(amount=800, weight=10, material="Copper"),
        make_txn(kind=TransactionKind.SALE, amount=1000, weight=10, material="Copper"),
        make_txn(amount=90.125, weight=3, material="Brass"),
    ], GroupBy.MATERIAL)


def test_header_row_for_categorical_grouping(material_groups):
    text = export_csv(material_groups, GroupBy.MATERIAL)
    header = text.splitlines()[0]

    assert header == (
        "Material,Transactions,Purchases,Sales,Purchase Revenue,Sales Revenue,Revenue,"
        "Net Profit,Weight (kg),Avg Price/kg,Min Price/kg,Max Price/kg,Margin (%)"
    )


def test_time_grouping_adds_distinct_counts(make_txn):
    groups = aggregate([make_txn(material="Copper"), make_txn(material="Brass")], GroupBy.DAY)

    df = export_rows(groups, GroupBy.DAY)

    assert list(df.columns)[0] == "Date"
    assert list(df.columns)[-2:] == ["Materials", "Counterparties"]
    assert df.iloc[0]["Materials"] == 2


def test_rows_follow_group_order(material_groups):
    df = export_rows(material_groups, GroupBy.MATERIAL)
    assert list(df["Material"]) == [g.key for g in material_groups]


def test_fixed_decimal_formatting(material_groups):
    df = export_rows(material_groups, GroupBy.MATERIAL).set_index("Material")

    assert df.loc["Copper", "Revenue"] == "1800.00"
    assert df.loc["Copper", "Weight (kg)"] == "20.0"
    assert df.loc["Copper", "Margin (%)"] == "20.0"


def test_decimal_overrides(material_groups):
    df = export_rows(material_groups, GroupBy.MATERIAL, decimals={"currency": 0}).set_index("Material")
    assert df.loc["Copper", "Revenue"] == "1800"


def test_fields_containing_delimiter_are_quoted(make_txn):
    groups = aggregate([make_txn(counterparty="Kamau Metals, Ltd")], GroupBy.COUNTERPARTY)

    text = export_csv(groups, GroupBy.COUNTERPARTY)

    assert '"Kamau Metals, Ltd"' in text.splitlines()[1]


def test_revenue_round_trips_through_parser(material_groups):
    text = export_csv(material_groups, GroupBy.MATERIAL)

    parsed = pd.read_csv(io.StringIO(text))

    assert parsed["Revenue"].sum() == pytest.approx(sum(g.total_revenue for g in material_groups), abs=0.01)
    assert len(parsed) == len(material_groups)


def test_empty_groups_yield_header_only():
    text = export_csv([], GroupBy.MATERIAL)
    assert len(text.strip().splitlines()) == 1


def test_export_report_uses_config(make_txn):
    txns = [make_txn(amount=10, weight=1, day=date(2024, 3, 1))]
    report = CustomReport(
        start=date(2024, 3, 1),
        end=date(2024, 3, 1),
        group_by=GroupBy.DAY,
        criteria=FilterCriteria.for_range(date(2024, 3, 1), date(2024, 3, 1)),
        groups=aggregate(txns, GroupBy.DAY)
    )

    text = export_report(report, {"delimiter": ";", "currency_decimals": 1})

    lines = text.splitlines()
    assert lines[0].startswith("Date;Transactions;")
    assert lines[1].startswith("2024-03-01;1;1;0;10.0;0.0;10.0;-10.0;")


def test_suggest_filename():
    assert suggest_filename("monthly", date(2024, 3, 31)) == "monthly_report_2024-03-31.csv"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
