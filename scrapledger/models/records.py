"""Raw upstream record shapes (purchase rows, sale rows, counterparties)"""

import math
from datetime import datetime
from typing import Any, Dict, Optional

import pandas as pd
from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def coerce_timestamp(value: Any) -> Optional[datetime]:
    """Parse ISO strings, dates, datetimes and pandas Timestamps; None if unparseable"""
    if _is_missing(value):
        return None
    ts = pd.to_datetime(value, errors="coerce")
    if pd.isna(ts):
        return None
    return ts.to_pydatetime()


class _RawRecord(BaseModel):
    """Shared coercion rules for upstream rows"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        extra = "ignore"

    @model_validator(mode="before")
    @classmethod
    def _drop_missing(cls, data: Any) -> Any:
        # CSV/JSON loaders hand NaN and empty strings for absent cells
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if not _is_missing(v)}
        return data

    @field_validator("id", mode="before", check_fields=False)
    @classmethod
    def _id_as_str(cls, value: Any) -> Any:
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        return str(value) if value is not None else value

    @field_validator("transaction_date", "created_at", "updated_at", mode="before", check_fields=False)
    @classmethod
    def _parse_timestamp(cls, value: Any) -> Any:
        parsed = coerce_timestamp(value)
        if parsed is None:
            raise ValueError(f"unparseable timestamp: {value!r}")
        return parsed


class PurchaseRecord(_RawRecord):
    """Row of the purchases table (material bought from a supplier or walk-in)"""

    id: str = Field(..., description="Purchase row ID")
    supplier_id: Optional[str] = Field(None, description="Registered supplier ID")
    is_walkin: bool = Field(
        False,
        validation_alias=AliasChoices("is_walkin", "isWalkin", "isWalkIn"),
        description="Walk-in seller without a supplier registration"
    )
    walkin_name: Optional[str] = Field(None, description="Walk-in seller name")
    material_type: Optional[str] = Field(None, description="Material label")
    transaction_date: datetime = Field(..., description="Trade date")
    total_amount: Optional[float] = Field(None, description="Amount paid")
    weight_kg: Optional[float] = Field(None, description="Weighed quantity")
    unit_price: Optional[float] = Field(None, description="Agreed price per kg")
    payment_method: Optional[str] = None
    payment_status: Optional[str] = None
    quality_grade: Optional[str] = None
    notes: Optional[str] = None
    transaction_number: Optional[str] = Field(None, description="Human-readable receipt number")
    created_at: Optional[datetime] = Field(None, description="Ingestion timestamp")
    updated_at: Optional[datetime] = Field(None, description="Last modification timestamp")

    @field_validator("supplier_id", "transaction_number", mode="before")
    @classmethod
    def _as_str(cls, value: Any) -> Any:
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        return str(value)

    @field_validator("is_walkin", mode="before")
    @classmethod
    def _as_bool(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower() in ("true", "1", "yes", "y", "t")
        return value

    class Config:
        json_schema_extra = {
            "example": {
                "id": "p-1001",
                "supplier_id": "sup-7",
                "is_walkin": False,
                "material_type": "Copper",
                "transaction_date": "2024-03-01",
                "total_amount": 800.0,
                "weight_kg": 10.0,
                "unit_price": 80.0,
                "payment_method": "mpesa",
                "payment_status": "completed",
                "quality_grade": "Grade A",
                "transaction_number": "TXN-20240301-001",
                "created_at": "2024-03-01T09:15:00+03:00"
            }
        }


class SaleRecord(_RawRecord):
    """Row of the sales table (material sold to a buyer)"""

    id: str = Field(..., description="Sale row ID")
    transaction_id: Optional[str] = Field(None, description="Human-readable sale number")
    counterparty_id: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("counterparty_id", "counterpartyId", "supplier_id", "supplierId"),
        description="Buyer ID"
    )
    counterparty_name: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("counterparty_name", "counterpartyName", "supplier_name", "supplierName"),
        description="Buyer display name"
    )
    material_name: Optional[str] = Field(None, description="Material label")
    transaction_date: datetime = Field(..., description="Trade date")
    total_amount: Optional[float] = None
    weight_kg: Optional[float] = None
    price_per_kg: Optional[float] = None
    payment_method: Optional[str] = None
    payment_status: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("transaction_id", "counterparty_id", mode="before")
    @classmethod
    def _as_str(cls, value: Any) -> Any:
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        return str(value)


class CounterpartyRecord(_RawRecord):
    """Directory entry: registered supplier or buyer"""

    id: str
    name: str
    status: Optional[str] = "active"


def record_id(raw: Dict[str, Any]) -> Optional[str]:
    """Best-effort ID of a raw row, for logging rejected records"""
    value = raw.get("id") if isinstance(raw, dict) else None
    return None if _is_missing(value) else str(value)
