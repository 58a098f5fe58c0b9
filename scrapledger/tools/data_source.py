"""Record sources: full fetch plus change subscription, with in-memory and fixture adapters."""

import asyncio
import math
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd
from pydantic import ValidationError

from scrapledger.constants import ChangeOperation, TransactionKind
from scrapledger.models.records import CounterpartyRecord, record_id
from scrapledger.models.transaction import ChangeEvent
from scrapledger.utils.errors import SourceUnavailableError
from scrapledger.utils.logging import get_logger

logger = get_logger(__name__)

_CLOSED = object()


def clean_record(record: Dict[str, Any]) -> Dict[str, Any]:
    """Drop NaN cells produced by pandas so absent columns read as missing"""
    return {
        key: value for key, value in record.items()
        if not (isinstance(value, float) and math.isnan(value))
    }


def frame_to_records(df: pd.DataFrame) -> List[Dict[str, Any]]:
    """DataFrame rows to plain dicts, timestamps as ISO strings"""
    if df.empty:
        return []
    df = df.copy()
    for column in df.columns:
        if pd.api.types.is_datetime64_any_dtype(df[column]):
            df[column] = df[column].map(lambda ts: ts.isoformat() if not pd.isna(ts) else None)
    return [clean_record(row) for row in df.to_dict(orient="records")]


class Subscription:
    """
    Async iterator of ChangeEvents for one source.

    Events pushed before the consumer starts iterating are buffered.
    A pushed exception is raised to the consumer and ends the stream.
    """

    def __init__(self, source_kind: TransactionKind):
        self.source_kind = source_kind
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, event: ChangeEvent) -> None:
        if not self._closed:
            self._queue.put_nowait(event)

    def push_error(self, error: BaseException) -> None:
        if not self._closed:
            self._queue.put_nowait(error)
            self._closed = True

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    def __aiter__(self):
        return self

    async def __anext__(self) -> ChangeEvent:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item


class RecordSource(ABC):
    """Queryable, subscribable transaction table"""

    def __init__(self, kind: TransactionKind, name: Optional[str] = None):
        self.kind = kind
        self.name = name or kind.value

    @abstractmethod
    async def fetch_all(self) -> List[Dict[str, Any]]:
        """
        Fetch every raw record, most recent first

        Raises:
            SourceUnavailableError: If the source cannot be read
        """

    @abstractmethod
    async def subscribe(self) -> Subscription:
        """
        Open a change subscription

        Raises:
            SourceUnavailableError: If the subscription cannot be opened
        """


def _created_sort_key(record: Dict[str, Any]) -> str:
    value = record.get("created_at") or record.get("createdAt") or record.get("transaction_date") or ""
    return str(value)


class InMemorySource(RecordSource):
    """
    Mutable in-process table.

    emit() applies a change to the table and notifies open subscriptions,
    deliver() redelivers an event as-is, fail() drops every open
    subscription with a transport error.
    """

    def __init__(
        self,
        kind: TransactionKind,
        records: Optional[Iterable[Dict[str, Any]]] = None,
        name: Optional[str] = None
    ):
        super().__init__(kind, name)
        self._records: List[Dict[str, Any]] = [dict(r) for r in (records or [])]
        self._subscriptions: List[Subscription] = []
        self._fetch_failures = 0
        self._subscribe_failures = 0
        self.fetch_calls = 0
        self.subscribe_calls = 0

    @property
    def records(self) -> List[Dict[str, Any]]:
        return list(self._records)

    def fail_next_fetch(self, times: int = 1) -> None:
        self._fetch_failures += times

    def fail_next_subscribe(self, times: int = 1) -> None:
        self._subscribe_failures += times

    async def fetch_all(self) -> List[Dict[str, Any]]:
        self.fetch_calls += 1
        if self._fetch_failures > 0:
            self._fetch_failures -= 1
            raise SourceUnavailableError(f"Fetch failed for {self.name}", source=self.name)
        return sorted(self._records, key=_created_sort_key, reverse=True)

    async def subscribe(self) -> Subscription:
        self.subscribe_calls += 1
        if self._subscribe_failures > 0:
            self._subscribe_failures -= 1
            raise SourceUnavailableError(f"Subscribe failed for {self.name}", source=self.name)
        subscription = Subscription(self.kind)
        self._subscriptions.append(subscription)
        return subscription

    def emit(self, operation: ChangeOperation, record: Dict[str, Any]) -> ChangeEvent:
        """Apply a change to the table and push it to subscribers"""
        operation = ChangeOperation(operation)
        record = dict(record)
        record_id = normalize_id(record.get("id"))
        index = next(
            (i for i, existing in enumerate(self._records) if normalize_id(existing.get("id")) == record_id),
            None
        )

        if operation == ChangeOperation.DELETE:
            if index is not None:
                self._records.pop(index)
        elif index is None:
            self._records.append(record)
        else:
            self._records[index] = record

        event = ChangeEvent(source_kind=self.kind, operation=operation, record=record)
        self.deliver(event)
        return event

    def deliver(self, event: ChangeEvent) -> None:
        """Push an event to open subscribers without touching the table"""
        self._subscriptions = [s for s in self._subscriptions if not s.closed]
        for subscription in self._subscriptions:
            subscription.push(event)

    def fail(self, error: Optional[BaseException] = None) -> None:
        """Simulate a transport drop on every open subscription"""
        error = error or SourceUnavailableError(f"Connection lost: {self.name}", source=self.name)
        for subscription in self._subscriptions:
            subscription.push_error(error)
        self._subscriptions = []
        logger.warning("Source transport failed", source=self.name)


class JsonFixtureSource(RecordSource):
    """Static source backed by a JSON fixture (list of row objects)"""

    def __init__(self, kind: TransactionKind, fixture_path: str, name: Optional[str] = None):
        super().__init__(kind, name)
        self.fixture_path = Path(fixture_path)

    async def fetch_all(self) -> List[Dict[str, Any]]:
        try:
            df = pd.read_json(self.fixture_path, orient="records", dtype=False, convert_dates=False)
        except (OSError, ValueError) as e:
            raise SourceUnavailableError(
                f"Fixture not readable: {self.fixture_path}: {e}",
                source=self.name
            ) from e

        records = frame_to_records(df)
        logger.info(f"Loaded {len(records)} records from {self.fixture_path.name}", source=self.name)
        return sorted(records, key=_created_sort_key, reverse=True)

    async def subscribe(self) -> Subscription:
        # Fixtures never change; the subscription stays open until closed
        return Subscription(self.kind)


def normalize_id(value: Any) -> str:
    """Stringify an ID, folding pandas float IDs (3.0) back to integers"""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


class CounterpartyDirectory:
    """id -> display name lookup for registered suppliers and buyers"""

    def __init__(self, entries: Optional[Dict[str, str]] = None):
        self._names: Dict[str, str] = {normalize_id(k): v for k, v in (entries or {}).items()}

    @classmethod
    def from_records(cls, records: Iterable[Dict[str, Any]]) -> "CounterpartyDirectory":
        directory = cls()
        for raw in records:
            try:
                entry = CounterpartyRecord.model_validate(raw)
            except ValidationError:
                logger.warning("Skipped directory entry without id or name", record_id=record_id(raw))
                continue
            directory.register(entry.id, entry.name)
        return directory

    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> "CounterpartyDirectory":
        return cls.from_records(frame_to_records(df))

    def register(self, counterparty_id: Any, name: str) -> None:
        self._names[normalize_id(counterparty_id)] = name

    def lookup(self, counterparty_id: Any) -> Optional[str]:
        if counterparty_id is None:
            return None
        return self._names.get(normalize_id(counterparty_id))

    def __contains__(self, counterparty_id: Any) -> bool:
        return counterparty_id is not None and normalize_id(counterparty_id) in self._names

    def __len__(self) -> int:
        return len(self._names)
