"""Submission interceptor: defers failed booking creations to the offline queue."""
import logging
import time
from collections import deque
from typing import Any, Callable, Optional, Union

from offline_booking.config import Settings, get_settings
from offline_booking.schemas.booking import EstimatedProcessingTime, QueuedBookingResponse
from offline_booking.services.booking_client import BookingApiClient
from offline_booking.services.error_classifier import ErrorClassifier, describe_error
from offline_booking.services.notifications import NotificationDispatcher
from offline_booking.services.queue_store import QueueStore
from offline_booking.utils.exceptions import QueueUnavailableError

logger = logging.getLogger(__name__)


def format_duration(seconds: int) -> str:
    """Render a duration as '45 seconds', '2 minutes' or '1 hour 5 minutes'."""
    if seconds < 60:
        return f"{seconds} seconds"
    if seconds < 3600:
        minutes = seconds // 60
        return f"{minutes} minute{'s' if minutes > 1 else ''}"

    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    text = f"{hours} hour{'s' if hours > 1 else ''}"
    if minutes:
        text += f" {minutes} minute{'s' if minutes > 1 else ''}"
    return text


class SubmissionInterceptor:
    """
    Sits in front of booking creation.

    On success the server response is returned unchanged. A retryable
    failure is queued and answered with a `QueuedBookingResponse` (deferred
    success); a terminal failure is re-raised as is.
    """

    def __init__(
        self,
        client: BookingApiClient,
        store: QueueStore,
        classifier: ErrorClassifier,
        notifier: NotificationDispatcher,
        request_drain: Callable[[], None],
        is_online: Callable[[], bool] = lambda: True,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self.client = client
        self.store = store
        self.classifier = classifier
        self.notifier = notifier
        self.request_drain = request_drain
        self.is_online = is_online
        self.offline_first_pending_threshold = settings.OFFLINE_FIRST_PENDING_THRESHOLD
        self.offline_first_failed_threshold = settings.OFFLINE_FIRST_FAILED_THRESHOLD
        self.recent_error_window_seconds = settings.RECENT_ERROR_WINDOW_SECONDS
        self.recent_error_threshold = settings.RECENT_ERROR_THRESHOLD
        self.seconds_per_item = settings.ESTIMATED_SECONDS_PER_ITEM
        self._recent_errors: deque[float] = deque(maxlen=10)

    async def submit(self, payload: dict[str, Any]) -> Union[Any, QueuedBookingResponse]:
        """Create a booking, deferring it to the offline queue on retryable failure."""
        item_id = self.store.new_id()

        if self.should_use_offline_first():
            logger.info("Using offline-first path for booking submission")
            return await self._defer(item_id, payload, None)

        try:
            return await self.client.create_booking(payload, idempotency_key=item_id)
        except Exception as e:
            if not self.classifier.is_retryable(e):
                raise
            logger.warning(f"Intercepting failed booking request: {describe_error(e)}")
            self.record_connection_error()
            return await self._defer(item_id, payload, e)

    async def _defer(
        self,
        item_id: str,
        payload: dict[str, Any],
        error: Optional[Exception],
    ) -> QueuedBookingResponse:
        last_error = describe_error(error) if error is not None else "Queued while offline"
        item = self.store.enqueue(payload, item_id=item_id, last_error=last_error)

        if not self.store.is_available:
            # Not durable: hand the failure back to the caller instead of holding it in memory
            self.store.remove(item.id)
            logger.error(f"Failed to add booking to offline queue, surfacing original error: {last_error}")
            if error is not None:
                raise error
            raise QueueUnavailableError("local storage is unavailable")

        await self.notifier.queued_offline(item.id)
        if self.is_online():
            self.request_drain()

        return QueuedBookingResponse(
            queue_id=item.id,
            booking_data=payload,
            estimated_processing_time=self.estimate_processing_time(),
        )

    def estimate_processing_time(self) -> EstimatedProcessingTime:
        stats = self.store.stats()
        backlog = stats.pending + stats.processing
        seconds = max(self.seconds_per_item, backlog * self.seconds_per_item)
        return EstimatedProcessingTime(seconds=seconds, human_readable=format_duration(seconds))

    def record_connection_error(self) -> None:
        self._recent_errors.append(time.monotonic())

    def recent_error_count(self) -> int:
        cutoff = time.monotonic() - self.recent_error_window_seconds
        return sum(1 for timestamp in self._recent_errors if timestamp >= cutoff)

    def should_use_offline_first(self) -> bool:
        """
        Skip the network attempt when it is very likely to fail or would jump
        ahead of queued bookings: offline, a backlog of pending items, several
        failed items, or repeated recent connection errors.
        """
        if not self.is_online():
            return True

        stats = self.store.stats()
        if stats.pending > self.offline_first_pending_threshold:
            return True
        if stats.failed + stats.permanently_failed > self.offline_first_failed_threshold:
            return True

        return self.recent_error_count() > self.recent_error_threshold
