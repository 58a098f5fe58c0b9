"""Report models (daily, weekly, monthly, custom)"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import List, Optional
from scrapledger.constants import GroupBy, TransactionKind
from scrapledger.models.aggregate import GroupedAggregate
from scrapledger.models.criteria import FilterCriteria


class ReportTotals(BaseModel):
    """Whole-window totals"""

    transaction_count: int = 0
    purchase_count: int = 0
    sale_count: int = 0
    purchase_revenue: float = 0.0
    sales_revenue: float = 0.0
    net_profit: float = 0.0
    total_revenue: float = Field(0.0, description="Combined purchase and sales turnover")
    total_weight: float = 0.0
    purchase_weight: float = 0.0
    sale_weight: float = 0.0
    avg_price_per_kg: float = 0.0
    avg_transaction_value: float = 0.0
    margin_percent: float = 0.0
    material_count: int = 0
    counterparty_count: int = 0


class KindSubtotal(BaseModel):
    """Purchase-only or sale-only subtotal"""

    kind: TransactionKind
    count: int = 0
    revenue: float = 0.0
    weight: float = 0.0
    avg_price_per_kg: float = 0.0


class DistributionEntry(BaseModel):
    """Share of a categorical value (payment method, quality grade)"""

    label: str
    count: int = 0
    amount: float = 0.0
    weight: float = 0.0
    percentage: float = Field(0.0, description="count / total count * 100")


class HourlyBucket(BaseModel):
    """Activity within one hour of the day (by created_at)"""

    hour: int = Field(..., ge=0, le=23)
    label: str = Field(..., description="e.g. 08:00")
    purchases: int = 0
    sales: int = 0
    purchase_revenue: float = 0.0
    sales_revenue: float = 0.0

    @property
    def transactions(self) -> int:
        return self.purchases + self.sales

    @property
    def revenue(self) -> float:
        return self.purchase_revenue + self.sales_revenue


class DayBreakdown(BaseModel):
    """One row of the weekly report"""

    day: date
    day_name: str
    transactions: int = 0
    purchase_revenue: float = 0.0
    sales_revenue: float = 0.0
    revenue: float = 0.0
    weight: float = 0.0


class WeekBreakdown(BaseModel):
    """One seven-day chunk of the monthly report"""

    label: str = Field(..., description="Week 1, Week 2, ...")
    start: date
    end: date
    transactions: int = 0
    revenue: float = 0.0
    weight: float = 0.0

    @property
    def period(self) -> str:
        return f"{self.start.strftime('%b %d')} - {self.end.strftime('%b %d')}"


class CounterpartyRanking(BaseModel):
    """Counterparty ranked by combined revenue"""

    name: str
    transactions: int = 0
    revenue: float = 0.0
    purchase_revenue: float = 0.0
    sales_revenue: float = 0.0
    weight: float = 0.0
    material_count: int = 0


class MaterialPriceAnalysis(BaseModel):
    """Per-material price spread (positive prices only)"""

    material: str
    transactions: int = 0
    weight: float = 0.0
    revenue: float = 0.0
    min_price: float = 0.0
    max_price: float = 0.0
    avg_price: float = 0.0
    counterparty_count: int = 0


class BaseReport(BaseModel):
    """Fields shared by every report"""

    report_type: str
    start: date
    end: date
    generated_at: datetime = Field(default_factory=datetime.now)
    partial: bool = Field(False, description="True while any source has not finished its initial load")
    group_by: GroupBy = GroupBy.MATERIAL
    totals: ReportTotals = Field(default_factory=ReportTotals)
    groups: List[GroupedAggregate] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return self.totals.transaction_count == 0


class DailyReport(BaseReport):
    """Single-day report"""

    report_type: str = "daily"
    purchases: KindSubtotal = Field(default_factory=lambda: KindSubtotal(kind=TransactionKind.PURCHASE))
    sales: KindSubtotal = Field(default_factory=lambda: KindSubtotal(kind=TransactionKind.SALE))
    peak_hour: Optional[int] = Field(None, description="Busiest hour; None when the day is empty")
    hourly: List[HourlyBucket] = Field(default_factory=list)
    payment_methods: List[DistributionEntry] = Field(default_factory=list)
    quality_grades: List[DistributionEntry] = Field(
        default_factory=list, description="Purchase grades; percentages are of all the day's transactions"
    )
    top_counterparties: List[CounterpartyRanking] = Field(default_factory=list)

    @property
    def peak_hour_label(self) -> str:
        return "N/A" if self.peak_hour is None else f"{self.peak_hour:02d}:00"


class WeeklyReport(BaseReport):
    """Sunday-to-Saturday report with growth over the previous week"""

    report_type: str = "weekly"
    days: List[DayBreakdown] = Field(default_factory=list)
    previous_revenue: float = 0.0
    revenue_growth: float = Field(0.0, description="Percent change vs previous week")
    best_day: Optional[DayBreakdown] = None
    avg_daily_revenue: float = 0.0
    top_counterparties: List[CounterpartyRanking] = Field(default_factory=list)


class MonthlyReport(BaseReport):
    """Calendar-month report with month-over-month and year-over-year growth"""

    report_type: str = "monthly"
    month_label: str = ""
    weeks: List[WeekBreakdown] = Field(default_factory=list)
    previous_month_revenue: float = 0.0
    month_over_month_growth: float = 0.0
    previous_year_revenue: float = 0.0
    year_over_year_growth: float = 0.0
    best_week: Optional[WeekBreakdown] = None
    avg_transactions_per_day: float = 0.0
    top_counterparties: List[CounterpartyRanking] = Field(default_factory=list)
    material_prices: List[MaterialPriceAnalysis] = Field(default_factory=list)


class CustomReport(BaseReport):
    """User-filtered report grouped by the requested dimension"""

    report_type: str = "custom"
    criteria: FilterCriteria
