"""Working set of unified transactions, owned by a single writer task"""

import asyncio
from collections import OrderedDict
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from scrapledger.constants import ChangeOperation, TransactionKind, DEFAULT_DEDUP_CAPACITY
from scrapledger.models.transaction import ChangeEvent, UnifiedTransaction
from scrapledger.tools.data_source import normalize_id
from scrapledger.tools.unification import FINGERPRINT_PREFIX, TransactionUnifier
from scrapledger.utils.errors import MalformedRecordError
from scrapledger.utils.logging import get_logger
from scrapledger.utils.metrics import (
    change_events_applied,
    change_events_deduplicated,
    malformed_records,
    working_set_size
)

logger = get_logger(__name__)

Identity = Tuple[TransactionKind, str]
DedupKey = Tuple[TransactionKind, str, ChangeOperation, str]


class _Reload:
    """Queue command: replace every entry of one kind with a fresh snapshot"""

    def __init__(self, kind: TransactionKind, records: List[Dict[str, Any]]):
        self.kind = kind
        self.records = records
        self.done = asyncio.get_running_loop().create_future()


def _parse_marker(marker: Optional[str]) -> Optional[datetime]:
    if not marker or marker.startswith(FINGERPRINT_PREFIX):
        return None
    try:
        return datetime.fromisoformat(marker)
    except ValueError:
        return None


class TransactionStore:
    """
    In-memory working set keyed by (kind, id), most recent first.

    Only the writer task started by start() mutates the set: change events
    and reloads are queued and applied one at a time, in arrival order.
    Readers take snapshot() tuples, which never change after they are taken.
    """

    def __init__(self, unifier: TransactionUnifier, dedup_capacity: int = DEFAULT_DEDUP_CAPACITY):
        self.unifier = unifier
        self.dedup_capacity = dedup_capacity
        self._entries: "OrderedDict[Identity, UnifiedTransaction]" = OrderedDict()
        self._versions: Dict[Identity, str] = {}
        self._seen: "OrderedDict[DedupKey, None]" = OrderedDict()
        self._snapshot: Tuple[UnifiedTransaction, ...] = ()
        self._queue: Optional[asyncio.Queue] = None
        self._writer: Optional[asyncio.Task] = None
        self._listeners: List[Callable[[], None]] = []
        self.version = 0

    # Readers

    def snapshot(self) -> Tuple[UnifiedTransaction, ...]:
        return self._snapshot

    def get(self, kind: TransactionKind, txn_id: Any) -> Optional[UnifiedTransaction]:
        return self._entries.get((TransactionKind(kind), normalize_id(txn_id)))

    def __len__(self) -> int:
        return len(self._entries)

    def count(self, kind: TransactionKind) -> int:
        return sum(1 for identity in self._entries if identity[0] == kind)

    def add_change_listener(self, callback: Callable[[], None]) -> None:
        """Register a callback run by the writer after every applied change"""
        self._listeners.append(callback)

    # Writer lifecycle

    async def start(self) -> None:
        if self._writer is not None:
            return
        self._queue = asyncio.Queue()
        self._writer = asyncio.create_task(self._run(), name="transaction-store-writer")

    async def stop(self) -> None:
        if self._writer is None:
            return
        self._writer.cancel()
        try:
            await self._writer
        except asyncio.CancelledError:
            pass
        self._writer = None

    async def submit(self, event: ChangeEvent) -> None:
        """Queue a change event for the writer"""
        await self._queue.put(event)

    async def reload(self, kind: TransactionKind, records: List[Dict[str, Any]]) -> None:
        """Queue a full snapshot replacement and wait until it has been applied"""
        command = _Reload(TransactionKind(kind), records)
        await self._queue.put(command)
        await command.done

    async def drain(self) -> None:
        """Wait until every queued item has been applied"""
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            item = await self._queue.get()
            try:
                if isinstance(item, _Reload):
                    self._apply_reload(item)
                elif self.apply(item):
                    self._notify()
            finally:
                self._queue.task_done()

    def _apply_reload(self, command: _Reload) -> None:
        try:
            self.replace_source(command.kind, command.records)
        except Exception as e:
            logger.error("Reload failed", source=command.kind.value, error=str(e))
            if not command.done.done():
                command.done.set_exception(e)
            return
        # The waiter may have been cancelled while the command sat in the queue
        if not command.done.done():
            command.done.set_result(None)
        self._notify()

    def _notify(self) -> None:
        for callback in self._listeners:
            try:
                callback()
            except Exception as e:
                logger.error("Change listener failed", error=str(e))

    # Mutations (writer only)

    def _publish(self) -> None:
        self._snapshot = tuple(self._entries.values())
        self.version += 1
        for kind in TransactionKind:
            working_set_size.labels(source=kind.value).set(self.count(kind))

    def replace_source(self, kind: TransactionKind, records: List[Dict[str, Any]]) -> int:
        """
        Swap every entry of `kind` for a freshly unified snapshot

        Args:
            kind: Source being reloaded
            records: Raw rows from a full fetch

        Returns:
            Number of unified transactions loaded
        """
        kind = TransactionKind(kind)
        loaded = self.unifier.unify_batch(kind, records)

        kept = [txn for identity, txn in self._entries.items() if identity[0] != kind]
        merged = sorted(kept + loaded, key=lambda t: t.created_at, reverse=True)

        self._entries = OrderedDict((txn.identity, txn) for txn in merged)
        self._versions = {
            identity: marker for identity, marker in self._versions.items() if identity[0] != kind
        }
        for txn in loaded:
            self._versions[txn.identity] = txn.version_marker

        self._publish()
        logger.info(f"Loaded {len(loaded)} {kind.value} transactions", working_set=len(self._entries))
        return len(loaded)

    def _remember(self, key: DedupKey) -> bool:
        """Record a dedup key; False if it was already seen"""
        if key in self._seen:
            self._seen.move_to_end(key)
            return False
        self._seen[key] = None
        while len(self._seen) > self.dedup_capacity:
            self._seen.popitem(last=False)
        return True

    def _is_stale(self, identity: Identity, marker: str) -> bool:
        incoming = _parse_marker(marker)
        current = _parse_marker(self._versions.get(identity))
        return incoming is not None and current is not None and incoming < current

    def apply(self, event: ChangeEvent) -> bool:
        """
        Apply one change event

        Returns:
            True if the working set changed
        """
        kind = TransactionKind(event.source_kind)
        operation = ChangeOperation(event.operation)
        raw_id = event.record.get("id")

        if raw_id is None:
            malformed_records.labels(source=kind.value).inc()
            logger.warning("Dropped change event without id", source=kind.value, operation=operation.value)
            return False

        identity = (kind, normalize_id(raw_id))
        marker = self.unifier.version_marker(event.record)

        if not self._remember((kind, identity[1], operation, marker)):
            change_events_deduplicated.labels(source=kind.value, reason="duplicate").inc()
            logger.debug("Duplicate change event ignored", source=kind.value, record_id=identity[1])
            return False

        if operation == ChangeOperation.DELETE:
            if self._entries.pop(identity, None) is None:
                logger.debug("Delete for unknown transaction ignored", source=kind.value, record_id=identity[1])
                return False
            self._versions.pop(identity, None)
            return self._applied(kind, operation)

        if operation == ChangeOperation.INSERT and identity in self._entries:
            # Already picked up by a snapshot that raced with the insert
            change_events_deduplicated.labels(source=kind.value, reason="present").inc()
            logger.debug("Insert for present transaction ignored", source=kind.value, record_id=identity[1])
            return False

        if self._is_stale(identity, marker):
            change_events_deduplicated.labels(source=kind.value, reason="stale").inc()
            logger.debug("Stale change event ignored", source=kind.value, record_id=identity[1])
            return False

        try:
            txn = self.unifier.unify(kind, event.record)
        except MalformedRecordError as e:
            malformed_records.labels(source=kind.value).inc()
            logger.warning("Dropped malformed change event", source=kind.value, record_id=e.record_id, error=str(e))
            return False

        # An update for an absent identity is treated as an insert
        present = identity in self._entries
        self._entries[identity] = txn
        if not present:
            self._entries.move_to_end(identity, last=False)

        self._versions[identity] = txn.version_marker
        return self._applied(kind, operation)

    def _applied(self, kind: TransactionKind, operation: ChangeOperation) -> bool:
        change_events_applied.labels(source=kind.value, operation=operation.value).inc()
        self._publish()
        return True
