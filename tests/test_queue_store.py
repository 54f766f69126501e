"""Tests for the persisted queue store."""
import json
from datetime import timedelta
import pytest

from conftest import FailingKeyValueStore
from offline_booking.schemas.queue import QUEUE_SCHEMA_VERSION, QueueStatus
from offline_booking.services.queue_store import QueueStore, utc_now
from offline_booking.services.storage import MemoryKeyValueStore

STORAGE_KEY = "offline_booking_queue"


@pytest.fixture
def store(kv_store) -> QueueStore:
    return QueueStore(kv_store, storage_key=STORAGE_KEY)


def stored_envelope(kv_store) -> dict:
    return json.loads(kv_store.get(STORAGE_KEY))


class TestEnqueue:
    """Adding items."""

    def test_enqueue_persists_versioned_envelope(self, store, kv_store, sample_booking):
        item = store.enqueue(sample_booking)

        envelope = stored_envelope(kv_store)
        assert envelope["version"] == QUEUE_SCHEMA_VERSION
        assert len(envelope["items"]) == 1
        assert envelope["items"][0]["id"] == item.id
        assert envelope["items"][0]["payload"] == sample_booking
        assert envelope["items"][0]["status"] == "pending"
        assert envelope["items"][0]["attempts"] == 0

    def test_enqueue_with_explicit_id(self, store, sample_booking):
        item = store.enqueue(sample_booking, item_id="offline_fixed", last_error="HTTP 503: down")
        assert item.id == "offline_fixed"
        assert store.get("offline_fixed").last_error == "HTTP 503: down"

    def test_ids_are_unique(self, store):
        ids = {store.new_id() for _ in range(100)}
        assert len(ids) == 100
        assert all(item_id.startswith("offline_") for item_id in ids)

    def test_items_keep_queue_order(self, store):
        first = store.enqueue({"clientId": "a"})
        second = store.enqueue({"clientId": "b"})
        assert [item.id for item in store.pending_items()] == [first.id, second.id]


class TestLoad:
    """Startup loading, migration and recovery."""

    def test_empty_storage(self, store):
        assert store.load() == []
        assert store.stats().total == 0

    def test_interrupted_processing_items_are_recovered(self, store, sample_booking):
        item = store.enqueue(sample_booking)
        store.mark_processing(item.id)

        restarted = QueueStore(store.kv_store, storage_key=STORAGE_KEY)
        items = restarted.load()

        assert len(items) == 1
        assert items[0].status == QueueStatus.PENDING
        assert items[0].attempts == 1
        assert restarted.get(item.id).status == QueueStatus.PENDING

    def test_legacy_array_is_migrated(self, sample_booking):
        legacy = [
            {
                "id": "offline_1700000000000_abc123",
                "bookingData": sample_booking,
                "metadata": {
                    "status": "pending",
                    "attempts": 2,
                    "createdAt": "2024-01-01T10:00:00+00:00",
                    "lastAttempt": "2024-01-01T10:05:00+00:00",
                    "error": "Network Error",
                },
            },
            {
                "id": "offline_1700000000001_def456",
                "bookingData": {"clientId": "c2"},
                "metadata": {"status": "completed", "attempts": 1, "completedAt": "2024-01-01T11:00:00+00:00"},
            },
        ]
        kv_store = MemoryKeyValueStore({STORAGE_KEY: json.dumps(legacy)})
        store = QueueStore(kv_store, storage_key=STORAGE_KEY)

        items = store.load()

        assert [item.id for item in items] == ["offline_1700000000000_abc123", "offline_1700000000001_def456"]
        assert items[0].payload == sample_booking
        assert items[0].attempts == 2
        assert items[0].last_error == "Network Error"
        assert items[0].created_at.year == 2024
        assert items[1].status == QueueStatus.COMPLETED
        assert items[1].completed_at is not None

        # Rewritten in the current format
        envelope = stored_envelope(kv_store)
        assert envelope["version"] == QUEUE_SCHEMA_VERSION
        assert envelope["items"][0]["payload"] == sample_booking

    def test_unparsable_content_is_treated_as_empty(self, caplog):
        kv_store = MemoryKeyValueStore({STORAGE_KEY: "{not json"})
        store = QueueStore(kv_store, storage_key=STORAGE_KEY)

        assert store.load() == []
        assert "unparsable" in caplog.text

    def test_unknown_version_is_discarded(self, caplog):
        kv_store = MemoryKeyValueStore({STORAGE_KEY: json.dumps({"version": 99, "items": [{"id": "x"}]})})
        store = QueueStore(kv_store, storage_key=STORAGE_KEY)

        assert store.load() == []
        assert "unsupported schema version" in caplog.text

    def test_malformed_items_are_dropped_individually(self):
        content = {
            "version": QUEUE_SCHEMA_VERSION,
            "items": [
                {"id": "offline_good", "payload": {"clientId": "c1"}},
                {"id": "", "payload": {}},
                {"id": "offline_bad_status", "status": "exploded"},
                "not an item",
            ],
        }
        kv_store = MemoryKeyValueStore({STORAGE_KEY: json.dumps(content)})
        store = QueueStore(kv_store, storage_key=STORAGE_KEY)

        items = store.load()
        assert [item.id for item in items] == ["offline_good"]

    def test_timestamps_without_offset_are_read_as_utc(self):
        content = {
            "version": QUEUE_SCHEMA_VERSION,
            "items": [{
                "id": "offline_naive",
                "payload": {"clientId": "c1"},
                "created_at": "2020-01-01T00:00:00",
                "next_retry_at": "2020-01-01T00:00:10",
            }],
        }
        kv_store = MemoryKeyValueStore({STORAGE_KEY: json.dumps(content)})
        store = QueueStore(kv_store, storage_key=STORAGE_KEY)

        [item] = store.load()

        assert item.next_retry_at.utcoffset() == timedelta(0)
        assert item.created_at.utcoffset() == timedelta(0)
        assert [due.id for due in store.pending_items(due_by=utc_now())] == ["offline_naive"]


class TestTransitions:
    """Status transitions and attempt counting."""

    def test_mark_processing_counts_attempt(self, store, sample_booking):
        item = store.enqueue(sample_booking)

        claimed = store.mark_processing(item.id)
        assert claimed.status == QueueStatus.PROCESSING
        assert claimed.attempts == 1
        assert claimed.last_attempt_at is not None

    def test_mark_processing_only_claims_pending(self, store, sample_booking):
        item = store.enqueue(sample_booking)
        store.mark_processing(item.id)

        assert store.mark_processing(item.id) is None
        assert store.get(item.id).attempts == 1

    def test_mark_processing_unknown_item(self, store):
        assert store.mark_processing("offline_missing") is None

    def test_mark_completed(self, store, sample_booking):
        item = store.enqueue(sample_booking)
        store.mark_processing(item.id)

        completed = store.mark_completed(item.id, {"_id": "b1"})
        assert completed.status == QueueStatus.COMPLETED
        assert completed.server_response == {"_id": "b1"}
        assert completed.completed_at is not None

    def test_mark_retry_sets_next_retry(self, store, sample_booking):
        item = store.enqueue(sample_booking)
        store.mark_processing(item.id)
        next_retry = utc_now() + timedelta(seconds=2)

        retried = store.mark_retry(item.id, "HTTP 503: down", next_retry)
        assert retried.status == QueueStatus.PENDING
        assert retried.next_retry_at == next_retry
        assert retried.last_error == "HTTP 503: down"

    def test_pending_items_due_by_skips_future_retries(self, store):
        due = store.enqueue({"clientId": "a"})
        later = store.enqueue({"clientId": "b"})
        store.mark_retry(later.id, "down", utc_now() + timedelta(seconds=30))

        assert [item.id for item in store.pending_items(due_by=utc_now())] == [due.id]
        assert len(store.pending_items()) == 2

    def test_claim_and_release_do_not_count_attempts(self, store):
        first = store.enqueue({"clientId": "a"})
        second = store.enqueue({"clientId": "b"})

        claimed = store.claim_pending()
        assert {item.id for item in claimed} == {first.id, second.id}
        assert store.stats().processing == 2

        assert store.release([first.id, second.id]) == 2
        assert all(item.attempts == 0 for item in store.pending_items())

    def test_record_failed_attempt(self, store):
        item = store.enqueue({"clientId": "a"})
        store.claim_pending()

        store.record_failed_attempt(item.id, "rejected", next_retry_at=utc_now())
        assert store.get(item.id).status == QueueStatus.PENDING
        assert store.get(item.id).attempts == 1

        store.record_failed_attempt(item.id, "rejected", next_retry_at=None)
        assert store.get(item.id).status == QueueStatus.PERMANENTLY_FAILED
        assert store.get(item.id).attempts == 2

    def test_reset_failed(self, store):
        item = store.enqueue({"clientId": "a"})
        for _ in range(5):
            store.mark_processing(item.id)
            store.mark_retry(item.id, "down", utc_now())
        store.mark_permanently_failed(item.id, "down")

        assert store.reset_failed() == 1
        reset = store.get(item.id)
        assert reset.status == QueueStatus.PENDING
        assert reset.attempts == 0
        assert reset.last_error is None


class TestRemovalAndCleanup:
    """Removing and pruning items."""

    def test_remove(self, store):
        item = store.enqueue({"clientId": "a"})
        assert store.remove(item.id)
        assert not store.remove(item.id)
        assert store.stats().total == 0

    def test_remove_many(self, store):
        ids = [store.enqueue({"clientId": str(i)}).id for i in range(3)]
        assert store.remove_many(ids[:2]) == 2
        assert [item.id for item in store.list_items()] == [ids[2]]

    def test_prune_only_old_completed_items(self, store):
        old = store.enqueue({"clientId": "old"})
        store.mark_completed(old.id, {})
        failed = store.enqueue({"clientId": "failed"})
        store.mark_permanently_failed(failed.id, "rejected")
        pending = store.enqueue({"clientId": "pending"})

        assert store.prune_completed(utc_now() + timedelta(seconds=1)) == 1
        remaining = {item.id for item in store.list_items()}
        assert remaining == {failed.id, pending.id}

    def test_recent_completed_items_are_kept(self, store):
        item = store.enqueue({"clientId": "a"})
        store.mark_completed(item.id, {})
        assert store.prune_completed(utc_now() - timedelta(hours=1)) == 0

    def test_stats(self, store):
        a = store.enqueue({"clientId": "a"})
        b = store.enqueue({"clientId": "b"})
        store.enqueue({"clientId": "c"})
        store.mark_processing(a.id)
        store.mark_permanently_failed(b.id, "rejected")

        stats = store.stats()
        assert stats.total == 3
        assert stats.pending == 1
        assert stats.processing == 1
        assert stats.permanently_failed == 1


class TestPersistenceFailure:
    """Storage that cannot be written."""

    def test_write_failure_marks_store_unavailable(self, sample_booking, caplog):
        store = QueueStore(FailingKeyValueStore(), storage_key=STORAGE_KEY)

        store.enqueue(sample_booking)

        assert not store.is_available
        assert "Error saving offline queue" in caplog.text

    def test_recovers_when_storage_works_again(self, sample_booking):
        kv_store = FailingKeyValueStore()
        store = QueueStore(kv_store, storage_key=STORAGE_KEY)
        store.enqueue(sample_booking)
        assert not store.is_available

        store.kv_store = MemoryKeyValueStore()
        store.enqueue(sample_booking)
        assert store.is_available
        assert store.stats().total == 2
        assert len(stored_envelope(store.kv_store)["items"]) == 2

    def test_attempts_are_kept_while_writes_fail(self, store, kv_store, sample_booking):
        item = store.enqueue(sample_booking)
        # Reads still return the content written before the disk filled up
        store.kv_store = FailingKeyValueStore({STORAGE_KEY: kv_store.get(STORAGE_KEY)})

        store.mark_processing(item.id)
        store.mark_retry(item.id, "HTTP 503: down", utc_now())
        store.mark_processing(item.id)

        assert not store.is_available
        current = store.get(item.id)
        assert current.attempts == 2
        assert current.status == QueueStatus.PROCESSING
