"""Unified transaction and change-event models"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import Optional, Dict, Any, Tuple
from scrapledger.constants import (
    TransactionKind,
    ChangeOperation,
    DEFAULT_PAYMENT_METHOD,
    DEFAULT_PAYMENT_STATUS
)


class UnifiedTransaction(BaseModel):
    """Normalized purchase or sale. Immutable once built."""

    id: str = Field(..., description="Source row ID (unique within its kind)")
    kind: TransactionKind = Field(..., description="purchase or sale")
    counterparty_name: str = Field(..., description="Resolved supplier/buyer display name")
    counterparty_key: str = Field(..., description="Stable grouping key for the counterparty")
    material_name: str = Field(..., description="Material label")
    transaction_date: date = Field(..., description="Calendar date of the trade (local time)")
    created_at: datetime = Field(..., description="Ingestion timestamp (local, naive)")
    total_amount: float = Field(0.0, ge=0, description="Amount in local currency")
    weight_kg: float = Field(0.0, ge=0, description="Weighed quantity in kg")
    price_per_kg: float = Field(0.0, ge=0, description="Recorded or derived price per kg")
    payment_method: str = Field(DEFAULT_PAYMENT_METHOD, description="cash, mpesa, bank_transfer...")
    payment_status: str = Field(DEFAULT_PAYMENT_STATUS, description="completed, pending, failed")
    quality_grade: Optional[str] = Field(None, description="Purchases only")
    notes: Optional[str] = Field(None, description="Free-text notes")
    reference: Optional[str] = Field(None, description="Receipt / sale number")
    version_marker: Optional[str] = Field(None, description="updated_at, created_at or content hash")

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "id": "p-1001",
                "kind": "purchase",
                "counterparty_name": "Kamau Metals",
                "counterparty_key": "sup-7",
                "material_name": "Copper",
                "transaction_date": "2024-03-01",
                "created_at": "2024-03-01T09:15:00",
                "total_amount": 800.0,
                "weight_kg": 10.0,
                "price_per_kg": 80.0,
                "payment_method": "mpesa",
                "payment_status": "completed",
                "quality_grade": "Grade A",
                "reference": "TXN-20240301-001"
            }
        }

    @property
    def identity(self) -> Tuple[TransactionKind, str]:
        """(kind, id) pair; IDs are only unique within a kind"""
        return (self.kind, self.id)

    @property
    def is_purchase(self) -> bool:
        return self.kind == TransactionKind.PURCHASE

    @property
    def effective_price_per_kg(self) -> float:
        """Amount over weight; the recorded unit price is never trusted"""
        if self.weight_kg > 0:
            return self.total_amount / self.weight_kg
        return 0.0


class ChangeEvent(BaseModel):
    """Insert/update/delete notification pushed by a record source"""

    source_kind: TransactionKind = Field(..., description="Which table emitted the change")
    operation: ChangeOperation = Field(..., description="insert, update or delete")
    record: Dict[str, Any] = Field(..., description="Raw row (new row, or old row for deletes)")
    received_at: datetime = Field(default_factory=datetime.now, description="Delivery timestamp")

    @property
    def record_id(self) -> Optional[str]:
        value = self.record.get("id")
        return None if value is None else str(value)
