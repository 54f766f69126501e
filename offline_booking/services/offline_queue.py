"""Offline booking queue service: wiring, lifecycle and operator controls."""
import asyncio
import logging
from datetime import timedelta
from typing import Any, Optional, Union

from offline_booking.config import Settings, get_settings
from offline_booking.schemas.booking import QueuedBookingResponse
from offline_booking.schemas.queue import DrainResult, QueueItem, QueueStats, QueueStatus
from offline_booking.schemas.sync import SyncSummary
from offline_booking.services.booking_client import BookingApiClient
from offline_booking.services.connectivity import ConnectivityMonitor
from offline_booking.services.error_classifier import ErrorClassifier
from offline_booking.services.interceptor import SubmissionInterceptor
from offline_booking.services.notifications import NotificationDispatcher, build_notification_dispatcher
from offline_booking.services.queue_processor import QueueProcessor
from offline_booking.services.queue_store import QueueStore, utc_now
from offline_booking.services.retry_scheduler import RetryScheduler
from offline_booking.services.storage import KeyValueStore
from offline_booking.services.sync_reconciler import SyncReconciler

logger = logging.getLogger(__name__)

TRIGGER_ENQUEUE = "enqueue"
TRIGGER_RETRY = "retry"
TRIGGER_STARTUP = "startup"
TRIGGER_MANUAL = "manual"


class OfflineBookingQueue:
    """
    Process-wide queue service with an explicit lifecycle.

    `initialize()` loads the persisted queue, rebuilds retry timers, starts
    the connectivity monitor and the cleanup loop. `shutdown()` tears all of
    it down. Independent instances can be built side by side (one per test).
    """

    def __init__(
        self,
        kv_store: KeyValueStore,
        client: Optional[BookingApiClient] = None,
        notifier: Optional[NotificationDispatcher] = None,
        settings: Optional[Settings] = None,
        online: bool = True,
    ):
        self.settings = settings or get_settings()
        self.client = client or BookingApiClient(self.settings)
        self.notifier = notifier or build_notification_dispatcher(self.settings)

        self.store = QueueStore(kv_store, storage_key=self.settings.QUEUE_STORAGE_KEY)
        self.classifier = ErrorClassifier(self.settings)
        self.scheduler = RetryScheduler(on_due=self._on_retry_due, settings=self.settings)
        self.monitor = ConnectivityMonitor(
            request_drain=self.request_drain,
            settings=self.settings,
            probe=self.client.check_health if self.settings.HEALTH_PROBE_ENABLED else None,
            online=online,
        )

        self.reconciler = SyncReconciler(
            self.store, self.client, self.scheduler, self.notifier, self.settings
        )
        self.processor = QueueProcessor(
            self.store,
            self.client,
            self.classifier,
            self.scheduler,
            self.notifier,
            reconciler=self.reconciler,
            is_online=lambda: self.monitor.is_online,
            settings=self.settings,
        )
        self.interceptor = SubmissionInterceptor(
            self.client,
            self.store,
            self.classifier,
            self.notifier,
            request_drain=lambda: self.request_drain(TRIGGER_ENQUEUE),
            is_online=lambda: self.monitor.is_online,
            settings=self.settings,
        )

        self.is_initialized = False
        self._monitor_task: Optional[asyncio.Task] = None
        self._cleanup_task: Optional[asyncio.Task] = None
        self._drain_tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        if self.is_initialized:
            logger.warning("Offline booking queue is already initialized")
            return

        items = self.store.load()
        self._restore_timers(items)

        self._monitor_task = asyncio.create_task(self.monitor.start())
        self._cleanup_task = asyncio.create_task(self._cleanup_loop())
        self.is_initialized = True
        logger.info("Offline booking queue initialized")

        if self.monitor.is_online:
            self.request_drain(TRIGGER_STARTUP)

    async def shutdown(self) -> None:
        if self.is_initialized:
            self.monitor.stop()
        self.scheduler.cancel_all()

        tasks = [task for task in (self._monitor_task, self._cleanup_task) if task is not None]
        tasks.extend(self._drain_tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

        self._drain_tasks.clear()
        self._monitor_task = None
        self._cleanup_task = None
        self.is_initialized = False
        logger.info("Offline booking queue stopped")

    def _restore_timers(self, items: list[QueueItem]) -> None:
        """Timers do not survive a restart; rebuild them from persisted state."""
        now = utc_now()
        for item in items:
            if item.status == QueueStatus.PENDING and item.next_retry_at and item.next_retry_at > now:
                self.scheduler.schedule(item.id, (item.next_retry_at - now).total_seconds())
            elif item.status == QueueStatus.COMPLETED:
                self.scheduler.schedule_removal(
                    item.id, self.settings.SUCCESS_VISIBILITY_SECONDS, self.store.remove
                )

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.CLEANUP_INTERVAL_SECONDS)
            try:
                self.cleanup_queue()
            except Exception as e:
                logger.error(f"Error cleaning up offline queue: {e}")

    def cleanup_queue(self) -> int:
        """Drop completed items past retention. Failed items are kept for the operator."""
        cutoff = utc_now() - timedelta(seconds=self.settings.COMPLETED_RETENTION_SECONDS)
        return self.store.prune_completed(cutoff)

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def request_drain(self, trigger: str) -> None:
        """Ask for a drain without waiting for it. Requests during a drain are dropped."""
        if self.processor.is_draining:
            return
        try:
            task = asyncio.get_running_loop().create_task(self.processor.drive(trigger))
        except RuntimeError:
            logger.warning(f"No running event loop, dropping '{trigger}' drain request")
            return
        self._drain_tasks.add(task)
        task.add_done_callback(self._drain_tasks.discard)

    def _on_retry_due(self, item_id: str) -> None:
        logger.debug(f"Retry timer fired for {item_id}")
        self.request_drain(TRIGGER_RETRY)

    def set_online(self, online: bool) -> None:
        """Connectivity edge from the hosting environment."""
        self.monitor.set_online(online)

    @property
    def is_online(self) -> bool:
        return self.monitor.is_online

    # ------------------------------------------------------------------
    # Submission and processing
    # ------------------------------------------------------------------

    async def submit_booking(self, payload: dict[str, Any]) -> Union[Any, QueuedBookingResponse]:
        return await self.interceptor.submit(payload)

    async def process_queue(self) -> Optional[DrainResult]:
        return await self.processor.drive(TRIGGER_MANUAL)

    async def sync_queue(self) -> Optional[SyncSummary]:
        return await self.processor.sync()

    # ------------------------------------------------------------------
    # Operator controls
    # ------------------------------------------------------------------

    def get_queue_stats(self) -> QueueStats:
        return self.store.stats()

    def get_all_queue_items(self) -> list[QueueItem]:
        return self.store.list_items()

    def retry_all_failed(self) -> int:
        """Requeue failed and permanently failed items with attempts reset to 0."""
        requeued = self.store.reset_failed()
        logger.info(f"Requeued {requeued} failed offline bookings")
        if requeued and self.monitor.is_online:
            self.request_drain(TRIGGER_MANUAL)
        return requeued

    def remove_from_queue(self, item_id: str) -> bool:
        self.scheduler.cancel(item_id)
        return self.store.remove(item_id)
