"""Durable, versioned store of queued booking submissions."""
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Optional
from uuid import uuid4

from pydantic import ValidationError

from offline_booking.schemas.queue import (
    QUEUE_SCHEMA_VERSION,
    QueueItem,
    QueueStats,
    QueueStatus,
    StoredQueue,
)
from offline_booking.services.storage import KeyValueStore

logger = logging.getLogger(__name__)

# Timers and wall-clock timestamps are measured on different clocks
DUE_SLACK = timedelta(milliseconds=100)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class QueueStore:
    """
    Queue of booking submissions persisted under a single namespaced key.

    Every mutation is a synchronous read-modify-write against the key-value
    store, so no other coroutine can interleave between reading the queue
    and persisting the change. Storage failures never raise out of this
    class: they are logged, `is_available` turns False, and the last known
    queue is kept in memory until storage recovers.
    """

    def __init__(self, kv_store: KeyValueStore, storage_key: str = "offline_booking_queue"):
        self.kv_store = kv_store
        self.storage_key = storage_key
        self.is_available = True
        self._items: list[QueueItem] = []

    @staticmethod
    def new_id() -> str:
        """Generate a queue item id (also used as the idempotency key)."""
        return f"offline_{uuid4().hex}"

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _read(self) -> list[QueueItem]:
        if not self.is_available:
            # Storage is behind the mirror until the next successful write
            return [item.model_copy(deep=True) for item in self._items]

        try:
            raw = self.kv_store.get(self.storage_key)
        except Exception as e:
            logger.error(f"Error reading offline queue: {e}")
            self.is_available = False
            return [item.model_copy(deep=True) for item in self._items]

        items = self._parse(raw)
        self._items = [item.model_copy(deep=True) for item in items]
        return items

    def _write(self, items: list[QueueItem]) -> bool:
        self._items = [item.model_copy(deep=True) for item in items]
        try:
            envelope = StoredQueue(
                version=QUEUE_SCHEMA_VERSION,
                items=[item.model_dump(mode="json") for item in items],
            )
            self.kv_store.set(self.storage_key, envelope.model_dump_json())
        except Exception as e:
            logger.error(f"Error saving offline queue: {e}")
            self.is_available = False
            return False

        self.is_available = True
        return True

    def _parse(self, raw: Optional[str]) -> list[QueueItem]:
        if not raw:
            return []

        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning(f"Offline queue content is unparsable, treating as empty: {e}")
            return []

        if isinstance(data, list):
            raw_items = [self._migrate_legacy_item(entry) for entry in data]
        elif isinstance(data, dict) and data.get("version") == QUEUE_SCHEMA_VERSION:
            raw_items = data.get("items") or []
        else:
            version = data.get("version") if isinstance(data, dict) else None
            logger.warning(f"Discarding offline queue with unsupported schema version: {version}")
            return []

        items = []
        for entry in raw_items:
            try:
                items.append(QueueItem.model_validate(entry))
            except ValidationError as e:
                logger.warning(f"Discarding malformed offline queue item: {e.error_count()} validation errors")
        return items

    @staticmethod
    def _migrate_legacy_item(entry: Any) -> Any:
        """Convert a version 1 item (`bookingData` plus free-form `metadata`)."""
        if not isinstance(entry, dict):
            return entry

        metadata = entry.get("metadata") or {}
        migrated = {
            "id": entry.get("id"),
            "payload": entry.get("bookingData") or {},
            "status": metadata.get("status", QueueStatus.PENDING.value),
            "attempts": metadata.get("attempts") or 0,
            "last_attempt_at": metadata.get("lastAttempt"),
            "next_retry_at": metadata.get("nextRetry"),
            "completed_at": metadata.get("completedAt"),
            "last_error": metadata.get("error"),
            "server_response": metadata.get("response"),
        }
        if metadata.get("createdAt"):
            migrated["created_at"] = metadata["createdAt"]
        return migrated

    def _update(
        self,
        item_id: str,
        mutate: Callable[[QueueItem], bool],
    ) -> Optional[QueueItem]:
        """Apply `mutate` to one item and persist; `mutate` returns False to skip."""
        items = self._read()
        for item in items:
            if item.id == item_id:
                if not mutate(item):
                    return None
                self._write(items)
                return item.model_copy(deep=True)
        return None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def load(self) -> list[QueueItem]:
        """
        Load the queue at startup.

        Items left in `processing` by a crash are put back to `pending`;
        they may have reached the server already, which the idempotency key
        covers.
        """
        items = self._read()
        recovered = 0
        for item in items:
            if item.status == QueueStatus.PROCESSING:
                item.status = QueueStatus.PENDING
                recovered += 1

        # Rewrites legacy and partially invalid content in the current format
        self._write(items)

        if recovered:
            logger.warning(f"Recovered {recovered} offline bookings interrupted while processing")
        logger.info(f"Loaded offline booking queue with {len(items)} items")
        return items

    def list_items(self) -> list[QueueItem]:
        return self._read()

    def get(self, item_id: str) -> Optional[QueueItem]:
        for item in self._read():
            if item.id == item_id:
                return item
        return None

    def pending_items(self, due_by: Optional[datetime] = None) -> list[QueueItem]:
        """Pending items in queue order, optionally only those due by `due_by`."""
        items = [item for item in self._read() if item.status == QueueStatus.PENDING]
        if due_by is not None:
            items = [item for item in items if item.is_due(due_by + DUE_SLACK)]
        return items

    def stats(self) -> QueueStats:
        items = self._read()
        counts = {status: 0 for status in QueueStatus}
        for item in items:
            counts[item.status] += 1
        return QueueStats(
            total=len(items),
            pending=counts[QueueStatus.PENDING],
            processing=counts[QueueStatus.PROCESSING],
            completed=counts[QueueStatus.COMPLETED],
            failed=counts[QueueStatus.FAILED],
            permanently_failed=counts[QueueStatus.PERMANENTLY_FAILED],
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def enqueue(
        self,
        payload: dict[str, Any],
        item_id: Optional[str] = None,
        last_error: Optional[str] = None,
    ) -> QueueItem:
        """Append a new pending item. Check `is_available` to know if it was persisted."""
        item = QueueItem(
            id=item_id or self.new_id(),
            payload=payload,
            last_error=last_error,
        )
        items = self._read()
        items.append(item)
        self._write(items)

        logger.info(f"Booking added to offline queue: {item.id}")
        return item.model_copy(deep=True)

    def mark_processing(self, item_id: str) -> Optional[QueueItem]:
        """Claim a pending item for one submission attempt."""
        def mutate(item: QueueItem) -> bool:
            if item.status != QueueStatus.PENDING:
                return False
            item.status = QueueStatus.PROCESSING
            item.attempts += 1
            item.last_attempt_at = utc_now()
            return True

        return self._update(item_id, mutate)

    def mark_completed(self, item_id: str, server_response: Any) -> Optional[QueueItem]:
        def mutate(item: QueueItem) -> bool:
            item.status = QueueStatus.COMPLETED
            item.completed_at = utc_now()
            item.next_retry_at = None
            item.last_error = None
            item.server_response = server_response
            return True

        return self._update(item_id, mutate)

    def mark_retry(self, item_id: str, error: str, next_retry_at: datetime) -> Optional[QueueItem]:
        def mutate(item: QueueItem) -> bool:
            item.status = QueueStatus.PENDING
            item.last_error = error
            item.next_retry_at = next_retry_at
            return True

        return self._update(item_id, mutate)

    def mark_permanently_failed(self, item_id: str, error: str) -> Optional[QueueItem]:
        def mutate(item: QueueItem) -> bool:
            item.status = QueueStatus.PERMANENTLY_FAILED
            item.last_error = error
            item.next_retry_at = None
            return True

        return self._update(item_id, mutate)

    def record_failed_attempt(
        self,
        item_id: str,
        error: str,
        next_retry_at: Optional[datetime],
    ) -> Optional[QueueItem]:
        """
        Count a failed attempt made outside the per-item path (bulk sync).

        The item goes back to pending with `next_retry_at`, or to
        permanently_failed when no retry time is given.
        """
        def mutate(item: QueueItem) -> bool:
            item.attempts += 1
            item.last_attempt_at = utc_now()
            item.last_error = error
            if next_retry_at is None:
                item.status = QueueStatus.PERMANENTLY_FAILED
                item.next_retry_at = None
            else:
                item.status = QueueStatus.PENDING
                item.next_retry_at = next_retry_at
            return True

        return self._update(item_id, mutate)

    def claim_pending(self) -> list[QueueItem]:
        """Move every pending item to processing (bulk sync) and return them."""
        items = self._read()
        claimed = []
        for item in items:
            if item.status == QueueStatus.PENDING:
                item.status = QueueStatus.PROCESSING
                claimed.append(item.model_copy(deep=True))
        if claimed:
            self._write(items)
        return claimed

    def release(self, item_ids: Iterable[str]) -> int:
        """Return claimed items to pending without counting an attempt."""
        ids = set(item_ids)
        items = self._read()
        released = 0
        for item in items:
            if item.id in ids and item.status == QueueStatus.PROCESSING:
                item.status = QueueStatus.PENDING
                released += 1
        if released:
            self._write(items)
        return released

    def reset_failed(self) -> int:
        """Requeue failed and permanently failed items with a fresh attempt count."""
        items = self._read()
        requeued = 0
        for item in items:
            if item.status in (QueueStatus.FAILED, QueueStatus.PERMANENTLY_FAILED):
                item.status = QueueStatus.PENDING
                item.attempts = 0
                item.last_error = None
                item.next_retry_at = None
                requeued += 1
        if requeued:
            self._write(items)
        return requeued

    def remove(self, item_id: str) -> bool:
        items = self._read()
        remaining = [item for item in items if item.id != item_id]
        if len(remaining) == len(items):
            return False
        self._write(remaining)
        logger.info(f"Removed item {item_id} from offline queue")
        return True

    def remove_many(self, item_ids: Iterable[str]) -> int:
        ids = set(item_ids)
        items = self._read()
        remaining = [item for item in items if item.id not in ids]
        removed = len(items) - len(remaining)
        if removed:
            self._write(remaining)
        return removed

    def prune_completed(self, older_than: datetime) -> int:
        """Drop completed items whose completion predates `older_than`."""
        items = self._read()
        remaining = [
            item for item in items
            if not (
                item.status == QueueStatus.COMPLETED
                and item.completed_at is not None
                and item.completed_at < older_than
            )
        ]
        pruned = len(items) - len(remaining)
        if pruned:
            self._write(remaining)
            logger.info(f"Pruned {pruned} completed items from offline queue")
        return pruned
