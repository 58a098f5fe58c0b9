"""Unification adapter: raw purchase and sale rows into UnifiedTransaction"""

import hashlib
import json
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import ValidationError

from scrapledger.constants import (
    TransactionKind,
    DEFAULT_PAYMENT_METHOD,
    DEFAULT_PAYMENT_STATUS,
    DEFAULT_QUALITY_GRADE,
    WALK_IN_FALLBACK,
    UNKNOWN_SUPPLIER,
    UNKNOWN_CUSTOMER,
    UNKNOWN_MATERIAL
)
from scrapledger.models.records import PurchaseRecord, SaleRecord, coerce_timestamp, record_id
from scrapledger.models.transaction import UnifiedTransaction
from scrapledger.tools.data_source import CounterpartyDirectory
from scrapledger.utils.errors import ConfigurationError, MalformedRecordError
from scrapledger.utils.logging import get_logger
from scrapledger.utils.metrics import malformed_records

logger = get_logger(__name__)

FINGERPRINT_PREFIX = "sha1:"


def _load_zone(name: Optional[str]) -> Optional[ZoneInfo]:
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigurationError(f"Unknown timezone: {name}") from e


def _derive_price(amount: float, weight: float) -> float:
    return amount / weight if weight > 0 else 0.0


def fingerprint(raw: Dict[str, Any]) -> str:
    """Content hash used as a version marker when a row carries no timestamps"""
    canonical = json.dumps(raw, sort_keys=True, default=str)
    return FINGERPRINT_PREFIX + hashlib.sha1(canonical.encode("utf-8")).hexdigest()


def _summarize(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'record'}: {err['msg']}"
        for err in error.errors()
    )


class TransactionUnifier:
    """
    Maps raw source rows to UnifiedTransaction.

    Stateless apart from the injected counterparty directory and the
    configured fallback labels and display timezone.
    """

    def __init__(
        self,
        directory: Optional[CounterpartyDirectory] = None,
        labels: Optional[Dict[str, str]] = None,
        timezone_name: Optional[str] = None
    ):
        self.directory = directory or CounterpartyDirectory()
        labels = labels or {}
        self.walk_in_fallback = labels.get("walk_in_fallback", WALK_IN_FALLBACK)
        self.unknown_supplier = labels.get("unknown_supplier", UNKNOWN_SUPPLIER)
        self.unknown_customer = labels.get("unknown_customer", UNKNOWN_CUSTOMER)
        self.unknown_material = labels.get("unknown_material", UNKNOWN_MATERIAL)
        self.default_payment_method = labels.get("default_payment_method", DEFAULT_PAYMENT_METHOD)
        self.default_payment_status = labels.get("default_payment_status", DEFAULT_PAYMENT_STATUS)
        self.default_quality_grade = labels.get("default_quality_grade", DEFAULT_QUALITY_GRADE)
        self._zone = _load_zone(timezone_name)

    @classmethod
    def from_config(cls, config: Dict[str, Any], directory: Optional[CounterpartyDirectory] = None):
        return cls(directory=directory, labels=config.get("labels"), timezone_name=config.get("timezone"))

    def to_local(self, value: datetime) -> datetime:
        """Aware timestamps to naive local time; naive ones are already local"""
        if value.tzinfo is None:
            return value
        if self._zone is None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value.astimezone(self._zone).replace(tzinfo=None)

    def version_marker(self, raw: Dict[str, Any]) -> str:
        """updated_at, else created_at, else a content fingerprint"""
        for key in ("updated_at", "updatedAt", "created_at", "createdAt"):
            parsed = coerce_timestamp(raw.get(key))
            if parsed is not None:
                return self.to_local(parsed).isoformat()
        return fingerprint(raw)

    def _parse(self, model, raw: Dict[str, Any], kind: TransactionKind):
        if not isinstance(raw, dict):
            raise MalformedRecordError(f"{kind.value} record is not a mapping: {type(raw).__name__}")
        try:
            return model.model_validate(raw)
        except ValidationError as e:
            raise MalformedRecordError(
                f"Malformed {kind.value} record: {_summarize(e)}",
                record_id=record_id(raw)
            ) from e

    def _build(self, raw: Dict[str, Any], **fields) -> UnifiedTransaction:
        try:
            return UnifiedTransaction(version_marker=self.version_marker(raw), **fields)
        except ValidationError as e:
            raise MalformedRecordError(
                f"Malformed {fields['kind'].value} record: {_summarize(e)}",
                record_id=fields.get("id")
            ) from e

    def unify_purchase(self, raw: Dict[str, Any]) -> UnifiedTransaction:
        """
        Unify one purchase row

        Args:
            raw: Purchase row as delivered by the source

        Returns:
            UnifiedTransaction with kind=PURCHASE

        Raises:
            MalformedRecordError: If id or transaction_date is missing or invalid
        """
        record = self._parse(PurchaseRecord, raw, TransactionKind.PURCHASE)

        if record.is_walkin:
            name = record.walkin_name or self.walk_in_fallback
            key = name
        else:
            name = self.directory.lookup(record.supplier_id) or self.unknown_supplier
            key = record.supplier_id or name

        amount = record.total_amount or 0.0
        weight = record.weight_kg or 0.0
        price = record.unit_price if record.unit_price and record.unit_price > 0 else _derive_price(amount, weight)

        return self._build(
            raw,
            id=record.id,
            kind=TransactionKind.PURCHASE,
            counterparty_name=name,
            counterparty_key=key,
            material_name=record.material_type or self.unknown_material,
            transaction_date=self.to_local(record.transaction_date).date(),
            created_at=self.to_local(record.created_at or record.transaction_date),
            total_amount=amount,
            weight_kg=weight,
            price_per_kg=price,
            payment_method=record.payment_method or self.default_payment_method,
            payment_status=record.payment_status or self.default_payment_status,
            quality_grade=record.quality_grade or self.default_quality_grade,
            notes=record.notes,
            reference=record.transaction_number or record.id
        )

    def unify_sale(self, raw: Dict[str, Any]) -> UnifiedTransaction:
        """
        Unify one sale row

        Raises:
            MalformedRecordError: If id or transaction_date is missing or invalid
        """
        record = self._parse(SaleRecord, raw, TransactionKind.SALE)

        name = record.counterparty_name or self.directory.lookup(record.counterparty_id) or self.unknown_customer
        amount = record.total_amount or 0.0
        weight = record.weight_kg or 0.0
        price = record.price_per_kg if record.price_per_kg and record.price_per_kg > 0 else _derive_price(amount, weight)

        return self._build(
            raw,
            id=record.id,
            kind=TransactionKind.SALE,
            counterparty_name=name,
            counterparty_key=record.counterparty_id or name,
            material_name=record.material_name or self.unknown_material,
            transaction_date=self.to_local(record.transaction_date).date(),
            created_at=self.to_local(record.created_at or record.transaction_date),
            total_amount=amount,
            weight_kg=weight,
            price_per_kg=price,
            payment_method=record.payment_method or self.default_payment_method,
            payment_status=record.payment_status or self.default_payment_status,
            notes=record.notes,
            reference=record.transaction_id or record.id
        )

    def unify(self, kind: TransactionKind, raw: Dict[str, Any]) -> UnifiedTransaction:
        if TransactionKind(kind) == TransactionKind.PURCHASE:
            return self.unify_purchase(raw)
        return self.unify_sale(raw)

    def unify_batch(self, kind: TransactionKind, records: Iterable[Dict[str, Any]]) -> List[UnifiedTransaction]:
        """
        Unify a batch, dropping malformed rows

        Returns:
            Unified transactions sorted by created_at, most recent first
        """
        kind = TransactionKind(kind)
        unified = []
        rejected = 0

        for raw in records:
            try:
                unified.append(self.unify(kind, raw))
            except MalformedRecordError as e:
                rejected += 1
                malformed_records.labels(source=kind.value).inc()
                logger.warning("Dropped malformed record", source=kind.value, record_id=e.record_id, error=str(e))

        if rejected:
            logger.info(f"Unified {len(unified)} {kind.value} records, dropped {rejected}")

        unified.sort(key=lambda t: t.created_at, reverse=True)
        return unified


def unify_purchase(raw: Dict[str, Any], directory: Optional[CounterpartyDirectory] = None) -> UnifiedTransaction:
    return TransactionUnifier(directory).unify_purchase(raw)


def unify_sale(raw: Dict[str, Any], directory: Optional[CounterpartyDirectory] = None) -> UnifiedTransaction:
    return TransactionUnifier(directory).unify_sale(raw)


def unify_batch(
    records: Iterable[Dict[str, Any]],
    kind: TransactionKind,
    directory: Optional[CounterpartyDirectory] = None
) -> List[UnifiedTransaction]:
    return TransactionUnifier(directory).unify_batch(kind, records)


def merge_by_recency(*batches: Iterable[UnifiedTransaction]) -> List[UnifiedTransaction]:
    """Merge unified batches into one list, most recent created_at first"""
    merged = [txn for batch in batches for txn in batch]
    merged.sort(key=lambda t: t.created_at, reverse=True)
    return merged
