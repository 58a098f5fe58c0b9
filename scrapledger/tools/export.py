"""Export serializer: grouped aggregates to a delimited table"""

from datetime import date
from typing import Any, Dict, List, Optional

import pandas as pd

from scrapledger.constants import GroupBy
from scrapledger.models.aggregate import GroupedAggregate
from scrapledger.utils.logging import get_logger

logger = get_logger(__name__)

GROUP_HEADERS = {
    GroupBy.DAY: "Date",
    GroupBy.WEEK: "Week",
    GroupBy.MONTH: "Month",
    GroupBy.MATERIAL: "Material",
    GroupBy.COUNTERPARTY: "Counterparty",
}

DEFAULT_DECIMALS = {"currency": 2, "weight": 1, "percent": 1}


def _fmt(value: float, places: int) -> str:
    return f"{value:.{places}f}"


def export_rows(
    groups: List[GroupedAggregate],
    group_by: GroupBy,
    decimals: Optional[Dict[str, int]] = None
) -> pd.DataFrame:
    """
    Build the export table: one row per group, values pre-formatted

    Args:
        groups: Ordered aggregates
        group_by: Dimension the groups were built with
        decimals: Overrides for currency / weight / percent places

    Returns:
        DataFrame whose columns are the header row
    """
    group_by = GroupBy(group_by)
    places = {**DEFAULT_DECIMALS, **(decimals or {})}
    money, weight, pct = places["currency"], places["weight"], places["percent"]

    columns = [
        GROUP_HEADERS[group_by], "Transactions", "Purchases", "Sales",
        "Purchase Revenue", "Sales Revenue", "Revenue", "Net Profit",
        "Weight (kg)", "Avg Price/kg", "Min Price/kg", "Max Price/kg", "Margin (%)"
    ]
    if group_by.is_time_bucket:
        columns += ["Materials", "Counterparties"]

    rows: List[List[Any]] = []
    for group in groups:
        row = [
            group.key,
            group.transaction_count,
            group.purchase_count,
            group.sale_count,
            _fmt(group.purchase_revenue, money),
            _fmt(group.sales_revenue, money),
            _fmt(group.total_revenue, money),
            _fmt(group.net_profit, money),
            _fmt(group.total_weight, weight),
            _fmt(group.avg_price_per_kg, money),
            _fmt(group.min_price, money),
            _fmt(group.max_price, money),
            _fmt(group.margin_percent, pct),
        ]
        if group_by.is_time_bucket:
            row += [group.material_count, group.counterparty_count]
        rows.append(row)

    return pd.DataFrame(rows, columns=columns)


def export_csv(
    groups: List[GroupedAggregate],
    group_by: GroupBy,
    delimiter: str = ",",
    decimals: Optional[Dict[str, int]] = None
) -> str:
    """Serialize aggregates as delimited text; fields containing the delimiter are quoted"""
    df = export_rows(groups, group_by, decimals)
    return df.to_csv(index=False, sep=delimiter, lineterminator="\n")


def export_report(report, export_config: Optional[Dict[str, Any]] = None) -> str:
    """
    Serialize any report's groups

    Args:
        report: Report exposing `groups` and `group_by`
        export_config: The `export` config section (delimiter, *_decimals)

    Returns:
        Delimited text, header row first
    """
    export_config = export_config or {}
    decimals = {
        "currency": export_config.get("currency_decimals", DEFAULT_DECIMALS["currency"]),
        "weight": export_config.get("weight_decimals", DEFAULT_DECIMALS["weight"]),
        "percent": export_config.get("percent_decimals", DEFAULT_DECIMALS["percent"]),
    }
    text = export_csv(report.groups, report.group_by, export_config.get("delimiter", ","), decimals)
    logger.info(
        "Exported report",
        report_type=report.report_type,
        group_by=GroupBy(report.group_by).value,
        rows=len(report.groups)
    )
    return text


def suggest_filename(report_type: str, on: Optional[date] = None) -> str:
    """e.g. custom_report_2024-03-01.csv"""
    on = on or date.today()
    return f"{report_type}_report_{on.isoformat()}.csv"
