"""Grouped aggregate model"""

from pydantic import BaseModel, Field
from typing import Any, Set


class GroupedAggregate(BaseModel):
    """Per-group totals produced by the aggregation store"""

    key: str = Field(..., description="Group label (date, week, month, material or counterparty)")
    transaction_count: int = Field(0, description="Purchases plus sales")
    purchase_count: int = Field(0)
    sale_count: int = Field(0)
    purchase_revenue: float = Field(0.0, description="Sum of purchase amounts")
    sales_revenue: float = Field(0.0, description="Sum of sale amounts")
    net_profit: float = Field(0.0, description="sales_revenue - purchase_revenue")
    total_weight: float = Field(0.0)
    purchase_weight: float = Field(0.0)
    sale_weight: float = Field(0.0)
    avg_price_per_kg: float = Field(0.0, description="Combined revenue / total weight")
    min_price: float = Field(0.0, description="Lowest per-kg price among weighed transactions")
    max_price: float = Field(0.0, description="Highest per-kg price among weighed transactions")
    margin_percent: float = Field(0.0, description="net_profit / sales_revenue * 100")
    materials: Set[str] = Field(default_factory=set)
    counterparties: Set[str] = Field(default_factory=set)
    sort_key: Any = Field(None, exclude=True, description="Chronological key for time buckets")

    class Config:
        json_schema_extra = {
            "example": {
                "key": "Copper",
                "transaction_count": 2,
                "purchase_count": 1,
                "sale_count": 1,
                "purchase_revenue": 800.0,
                "sales_revenue": 500.0,
                "net_profit": -300.0,
                "total_weight": 15.0,
                "avg_price_per_kg": 86.67,
                "min_price": 80.0,
                "max_price": 100.0,
                "margin_percent": -60.0
            }
        }

    @property
    def total_revenue(self) -> float:
        """Combined purchase and sales turnover"""
        return self.purchase_revenue + self.sales_revenue

    @property
    def material_count(self) -> int:
        return len(self.materials)

    @property
    def counterparty_count(self) -> int:
        return len(self.counterparties)
