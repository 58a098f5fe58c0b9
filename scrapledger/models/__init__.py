"""Data models for the reporting engine"""

from .records import PurchaseRecord, SaleRecord, CounterpartyRecord
from .transaction import UnifiedTransaction, ChangeEvent
from .aggregate import GroupedAggregate
from .criteria import DateRange, FilterCriteria
from .report import (
    ReportTotals,
    KindSubtotal,
    DistributionEntry,
    HourlyBucket,
    DayBreakdown,
    WeekBreakdown,
    CounterpartyRanking,
    MaterialPriceAnalysis,
    DailyReport,
    WeeklyReport,
    MonthlyReport,
    CustomReport
)
from .summary import DashboardSummary

__all__ = [
    "PurchaseRecord",
    "SaleRecord",
    "CounterpartyRecord",
    "UnifiedTransaction",
    "ChangeEvent",
    "GroupedAggregate",
    "DateRange",
    "FilterCriteria",
    "ReportTotals",
    "KindSubtotal",
    "DistributionEntry",
    "HourlyBucket",
    "DayBreakdown",
    "WeekBreakdown",
    "CounterpartyRanking",
    "MaterialPriceAnalysis",
    "DailyReport",
    "WeeklyReport",
    "MonthlyReport",
    "CustomReport",
    "DashboardSummary"
]
