"""Serialized processing of queued booking submissions."""
import logging
from datetime import timedelta
from typing import Callable, Optional

from offline_booking.config import Settings, get_settings
from offline_booking.schemas.queue import DrainResult, QueueItem
from offline_booking.schemas.sync import SyncSummary
from offline_booking.services.booking_client import BookingApiClient
from offline_booking.services.connectivity import TRIGGER_RECONNECT
from offline_booking.services.error_classifier import ErrorClassifier, describe_error
from offline_booking.services.notifications import NotificationDispatcher
from offline_booking.services.queue_store import QueueStore, utc_now
from offline_booking.services.retry_scheduler import RetryScheduler
from offline_booking.services.sync_reconciler import SyncReconciler

logger = logging.getLogger(__name__)


class QueueProcessor:
    """
    The only component that turns pending items into network calls.

    Every trigger (enqueue, retry timer, reconnect, periodic tick, operator)
    goes through `drive()`. The `is_draining` flag is set before the first
    request and cleared once the whole snapshot is handled; a drive that
    arrives in between is a no-op and returns None. Items enqueued during a
    drain are picked up by the next one.

    Per item:
        pending -> processing (attempts + 1) -> completed
                                             -> pending (retry with backoff)
                                             -> permanently_failed
    """

    def __init__(
        self,
        store: QueueStore,
        client: BookingApiClient,
        classifier: ErrorClassifier,
        scheduler: RetryScheduler,
        notifier: NotificationDispatcher,
        reconciler: Optional[SyncReconciler] = None,
        is_online: Callable[[], bool] = lambda: True,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self.store = store
        self.client = client
        self.classifier = classifier
        self.scheduler = scheduler
        self.notifier = notifier
        self.reconciler = reconciler
        self.is_online = is_online
        self.max_retries = settings.MAX_RETRIES
        self.success_visibility_seconds = settings.SUCCESS_VISIBILITY_SECONDS
        self.bulk_sync_threshold = settings.BULK_SYNC_THRESHOLD
        self.follow_up_enabled = settings.FOLLOW_UP_ENABLED
        self._draining = False

    @property
    def is_draining(self) -> bool:
        return self._draining

    async def drive(self, trigger: str = "manual") -> Optional[DrainResult]:
        """Run one drain cycle unless one is already in flight or the client is offline."""
        if self._draining:
            logger.debug(f"Drain already in progress, ignoring '{trigger}' trigger")
            return None
        if not self.is_online():
            logger.debug(f"Offline, ignoring '{trigger}' trigger")
            return None

        self._draining = True
        try:
            reconciled = False
            if trigger == TRIGGER_RECONNECT and self._should_reconcile():
                summary = await self.reconciler.reconcile()
                reconciled = True
                if not summary.success:
                    return DrainResult(trigger=trigger, reconciled=True)

            result = await self._drain(trigger)
            result.reconciled = reconciled
            return result
        finally:
            self._draining = False

    async def sync(self) -> Optional[SyncSummary]:
        """Run bulk reconciliation on demand, under the same draining flag."""
        if self.reconciler is None:
            return None
        if self._draining:
            logger.debug("Drain already in progress, ignoring sync request")
            return None
        if not self.is_online():
            logger.info("Cannot sync: offline")
            return SyncSummary(success=False, error="offline")

        self._draining = True
        try:
            return await self.reconciler.reconcile()
        finally:
            self._draining = False

    def _should_reconcile(self) -> bool:
        if self.reconciler is None:
            return False
        return len(self.store.pending_items()) >= self.bulk_sync_threshold

    async def _drain(self, trigger: str) -> DrainResult:
        snapshot = self.store.pending_items(due_by=utc_now())
        result = DrainResult(trigger=trigger)
        if not snapshot:
            return result

        logger.info(f"Processing {len(snapshot)} pending bookings from offline queue ({trigger})")
        for item in snapshot:
            try:
                outcome = await self._process_item(item.id)
            except Exception as e:
                logger.error(f"Error processing queue item {item.id}: {e}", exc_info=True)
                continue
            if outcome is None:
                continue
            result.processed += 1
            if outcome == "succeeded":
                result.succeeded += 1
            elif outcome == "retried":
                result.retried += 1
            else:
                result.failed += 1
        return result

    async def _process_item(self, item_id: str) -> Optional[str]:
        item = self.store.mark_processing(item_id)
        if item is None:
            # Removed or claimed since the snapshot was taken
            return None

        self.scheduler.cancel(item_id)
        try:
            response = await self.client.create_booking(item.payload, idempotency_key=item.id)
        except Exception as e:
            return await self._handle_failure(item, e)

        if self.store.mark_completed(item_id, response) is not None:
            self.scheduler.schedule_removal(item_id, self.success_visibility_seconds, self.store.remove)
        logger.info(f"Offline booking successfully processed: {item_id} (attempt {item.attempts})")

        await self.notifier.processed(item_id, response)
        if self.follow_up_enabled:
            booking_id = None
            if isinstance(response, dict):
                booking_id = response.get("_id") or response.get("id")
            if booking_id is not None:
                await self.client.send_follow_ups(booking_id)
        return "succeeded"

    async def _handle_failure(self, item: QueueItem, error: Exception) -> str:
        message = describe_error(error)

        if self.classifier.is_retryable(error) and item.attempts < self.max_retries:
            delay = self.scheduler.compute_delay(item.attempts)
            if self.store.mark_retry(item.id, message, utc_now() + timedelta(seconds=delay)) is None:
                logger.info(f"Offline booking {item.id} was removed while in flight, not rescheduling")
                return "retried"
            self.scheduler.schedule(item.id, delay)
            logger.warning(
                f"Offline booking {item.id} failed, scheduling next attempt "
                f"(attempt {item.attempts}/{self.max_retries}): {message}"
            )
            return "retried"

        self.store.mark_permanently_failed(item.id, message)
        self.scheduler.cancel(item.id)
        logger.error(
            f"Offline booking permanently failed after {item.attempts} attempts: {item.id} - {message}"
        )
        await self.notifier.permanently_failed(item.id, item.attempts)
        return "permanently_failed"
