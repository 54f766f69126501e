"""Bulk reconciliation of queued bookings against the server."""
import logging
from datetime import timedelta
from typing import Optional

from offline_booking.config import Settings, get_settings
from offline_booking.schemas.sync import SyncRequest, SyncRequestItem, SyncSummary
from offline_booking.services.booking_client import BookingApiClient
from offline_booking.services.error_classifier import describe_error
from offline_booking.services.notifications import NotificationDispatcher
from offline_booking.services.queue_store import QueueStore, utc_now
from offline_booking.services.retry_scheduler import RetryScheduler

logger = logging.getLogger(__name__)


class SyncReconciler:
    """
    Submits the whole pending set in one call and applies the server's verdict.

    - successful: created now, removed from the queue
    - duplicate: already created by an earlier unacknowledged attempt,
      removed from the queue
    - failed: attempt counted, retried with backoff or marked permanently
      failed once retries are exhausted

    Callers must hold the processor's draining flag.
    """

    def __init__(
        self,
        store: QueueStore,
        client: BookingApiClient,
        scheduler: RetryScheduler,
        notifier: NotificationDispatcher,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self.store = store
        self.client = client
        self.scheduler = scheduler
        self.notifier = notifier
        self.max_retries = settings.MAX_RETRIES

    async def reconcile(self) -> SyncSummary:
        claimed = self.store.claim_pending()
        if not claimed:
            return SyncSummary(success=True)

        claimed_by_id = {item.id: item for item in claimed}
        logger.info(f"Syncing {len(claimed)} offline bookings...")

        request = SyncRequest(
            items=[
                SyncRequestItem(
                    idempotency_key=item.id,
                    payload=item.payload,
                    submitted_at=item.created_at,
                )
                for item in claimed
            ]
        )

        try:
            response = await self.client.sync_offline(request)
        except Exception as e:
            self.store.release(claimed_by_id)
            error = describe_error(e)
            logger.error(f"Sync failed: {error}")
            return SyncSummary(success=False, error=error)

        successful_ids = [entry.idempotency_key for entry in response.successful if entry.idempotency_key in claimed_by_id]
        duplicate_ids = [entry.idempotency_key for entry in response.duplicate if entry.idempotency_key in claimed_by_id]

        delivered = set(successful_ids) | set(duplicate_ids)
        self.store.remove_many(delivered)
        for item_id in delivered:
            self.scheduler.cancel(item_id)

        for entry in response.successful:
            if entry.idempotency_key in claimed_by_id:
                await self.notifier.processed(entry.idempotency_key, entry.model_dump(by_alias=True))

        failed_count = 0
        for failure in response.failed:
            item = claimed_by_id.get(failure.idempotency_key)
            if item is None or item.id in delivered:
                continue
            failed_count += 1
            await self._record_failure(item.id, item.attempts + 1, failure.reason)

        mentioned = delivered | {failure.idempotency_key for failure in response.failed}
        self.store.release(item_id for item_id in claimed_by_id if item_id not in mentioned)

        summary = SyncSummary(
            success=True,
            synced=len(delivered),
            duplicates=len(duplicate_ids),
            failed=failed_count,
        )
        logger.info(
            f"Sync completed: {len(successful_ids)} created, {len(duplicate_ids)} duplicates, "
            f"{failed_count} failed"
        )
        return summary

    async def _record_failure(self, item_id: str, attempts: int, reason: str) -> None:
        if attempts >= self.max_retries:
            self.scheduler.cancel(item_id)
            self.store.record_failed_attempt(item_id, reason, next_retry_at=None)
            logger.error(f"Offline booking {item_id} rejected during sync after {attempts} attempts: {reason}")
            await self.notifier.permanently_failed(item_id, attempts)
            return

        delay = self.scheduler.compute_delay(attempts)
        self.store.record_failed_attempt(
            item_id,
            reason,
            next_retry_at=utc_now() + timedelta(seconds=delay),
        )
        self.scheduler.schedule(item_id, delay)
        logger.warning(f"Offline booking {item_id} rejected during sync, retrying: {reason}")
