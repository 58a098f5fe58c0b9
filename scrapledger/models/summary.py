"""Dashboard KPI summary model"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional


class DashboardSummary(BaseModel):
    """Headline KPIs over the whole working set"""

    total_revenue: float = Field(0.0, description="Revenue on the configured basis")
    revenue_basis: str = Field("sales", description="sales or combined")
    total_transactions: int = 0
    total_weight: float = 0.0
    avg_transaction_value: float = 0.0
    active_counterparties: int = 0
    revenue_growth: float = Field(0.0, description="Trailing window vs the window before it, percent")
    today_transactions: int = 0
    today_revenue: float = 0.0
    week_transactions: int = 0
    week_revenue: float = 0.0
    completed_transactions: int = 0
    pending_transactions: int = 0
    top_material: Optional[str] = Field(None, description="Heaviest material by weight")
    top_counterparty: Optional[str] = Field(None, description="Highest-revenue counterparty")
    partial: bool = False
    generated_at: datetime = Field(default_factory=datetime.now)

    class Config:
        json_schema_extra = {
            "example": {
                "total_revenue": 125000.0,
                "revenue_basis": "sales",
                "total_transactions": 342,
                "total_weight": 18250.5,
                "avg_transaction_value": 731.0,
                "active_counterparties": 41,
                "revenue_growth": 12.5,
                "top_material": "Copper",
                "top_counterparty": "Kamau Metals"
            }
        }
