"""Service layer for the offline booking queue."""
from offline_booking.services.storage import KeyValueStore, MemoryKeyValueStore, SqlKeyValueStore
from offline_booking.services.queue_store import QueueStore
from offline_booking.services.error_classifier import ErrorClassifier, FailureKind
from offline_booking.services.retry_scheduler import RetryScheduler, compute_backoff_delay
from offline_booking.services.booking_client import BookingApiClient
from offline_booking.services.notifications import NotificationDispatcher
from offline_booking.services.connectivity import ConnectivityMonitor
from offline_booking.services.sync_reconciler import SyncReconciler
from offline_booking.services.queue_processor import QueueProcessor
from offline_booking.services.interceptor import SubmissionInterceptor
from offline_booking.services.offline_queue import OfflineBookingQueue

__all__ = [
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SqlKeyValueStore",
    "QueueStore",
    "ErrorClassifier",
    "FailureKind",
    "RetryScheduler",
    "compute_backoff_delay",
    "BookingApiClient",
    "NotificationDispatcher",
    "ConnectivityMonitor",
    "SyncReconciler",
    "QueueProcessor",
    "SubmissionInterceptor",
    "OfflineBookingQueue",
]
