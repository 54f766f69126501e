"""Pydantic schemas for queue records, wire formats and API responses."""
from offline_booking.schemas.queue import (
    QUEUE_SCHEMA_VERSION,
    QueueStatus,
    QueueItem,
    StoredQueue,
    QueueStats,
    QueueItemListResponse,
    RetryFailedResponse,
    DrainResult,
)
from offline_booking.schemas.booking import (
    EstimatedProcessingTime,
    QueuedBookingResponse,
)
from offline_booking.schemas.sync import (
    SyncRequestItem,
    SyncRequest,
    SyncResultEntry,
    SyncFailure,
    SyncResponse,
    SyncSummary,
)
from offline_booking.schemas.notification import (
    NotificationKind,
    Notification,
)
from offline_booking.schemas.connectivity import (
    ConnectivityUpdate,
    ConnectivityStatus,
)

__all__ = [
    # Queue schemas
    "QUEUE_SCHEMA_VERSION",
    "QueueStatus",
    "QueueItem",
    "StoredQueue",
    "QueueStats",
    "QueueItemListResponse",
    "RetryFailedResponse",
    "DrainResult",
    # Booking schemas
    "EstimatedProcessingTime",
    "QueuedBookingResponse",
    # Sync schemas
    "SyncRequestItem",
    "SyncRequest",
    "SyncResultEntry",
    "SyncFailure",
    "SyncResponse",
    "SyncSummary",
    # Notification schemas
    "NotificationKind",
    "Notification",
    # Connectivity schemas
    "ConnectivityUpdate",
    "ConnectivityStatus",
]
