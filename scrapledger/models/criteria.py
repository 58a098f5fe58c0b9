"""Report filter criteria"""

from pydantic import BaseModel, Field
from datetime import date, datetime, time, timedelta
from typing import Optional, Set
from scrapledger.constants import GroupBy, TransactionKind


class DateRange(BaseModel):
    """Inclusive calendar range; the end day counts through 23:59:59.999"""

    start: date = Field(..., description="First day in range")
    end: date = Field(..., description="Last day in range (inclusive)")

    @property
    def start_of_day(self) -> datetime:
        return datetime.combine(self.start, time.min)

    @property
    def end_of_day(self) -> datetime:
        return datetime.combine(self.end, time(23, 59, 59, 999000))

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    @classmethod
    def last_days(cls, days: int, today: Optional[date] = None) -> "DateRange":
        """Trailing window of `days` days ending today, e.g. last_days(30)"""
        today = today or date.today()
        return cls(start=today - timedelta(days=days - 1), end=today)


class FilterCriteria(BaseModel):
    """
    Filter pipeline input. Empty sets mean "no restriction" on that dimension.
    """

    date_range: Optional[DateRange] = Field(None, description="Required for report generation")
    materials: Set[str] = Field(default_factory=set, description="Allowed material names")
    counterparties: Set[str] = Field(
        default_factory=set,
        description="Allowed counterparty names or keys"
    )
    transaction_types: Set[TransactionKind] = Field(default_factory=set, description="purchase/sale")
    group_by: Optional[GroupBy] = Field(GroupBy.DAY, description="Aggregation dimension")

    class Config:
        json_schema_extra = {
            "example": {
                "date_range": {"start": "2024-03-01", "end": "2024-03-31"},
                "materials": ["Copper"],
                "counterparties": [],
                "transaction_types": ["purchase", "sale"],
                "group_by": "material"
            }
        }

    @classmethod
    def for_range(cls, start: date, end: date, **kwargs) -> "FilterCriteria":
        return cls(date_range=DateRange(start=start, end=end), **kwargs)
