"""Pydantic schemas for queued booking submissions."""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field, field_validator

QUEUE_SCHEMA_VERSION = 2


class QueueStatus(str, Enum):
    """Queue item status enumeration."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    PERMANENTLY_FAILED = "permanently_failed"


class QueueItem(BaseModel):
    """One durable record of a deferred booking-creation attempt."""

    id: str = Field(..., min_length=1, description="Client-generated id, doubles as idempotency key")
    payload: dict[str, Any] = Field(default_factory=dict, description="Booking request body as submitted")
    status: QueueStatus = QueueStatus.PENDING
    attempts: int = Field(0, ge=0)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    last_attempt_at: Optional[datetime] = None
    next_retry_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    last_error: Optional[str] = None
    server_response: Optional[Any] = None

    @field_validator("created_at", "last_attempt_at", "next_retry_at", "completed_at")
    @classmethod
    def assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Timestamps without an offset are taken as UTC."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def is_due(self, now: datetime) -> bool:
        """Whether a pending item may be submitted at `now`."""
        return self.next_retry_at is None or self.next_retry_at <= now


class StoredQueue(BaseModel):
    """Versioned envelope persisted under the queue storage key."""

    version: int = QUEUE_SCHEMA_VERSION
    items: list[dict[str, Any]] = Field(default_factory=list)


class QueueStats(BaseModel):
    """Counts of queue items by status."""

    total: int = 0
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    permanently_failed: int = 0


class QueueItemListResponse(BaseModel):
    """Schema for listing queue items."""

    items: list[QueueItem]
    total: int


class RetryFailedResponse(BaseModel):
    """Schema for the retry-all-failed operator action."""

    requeued: int
    message: str


class DrainResult(BaseModel):
    """Outcome of one per-item drain cycle."""

    trigger: str
    processed: int = 0
    succeeded: int = 0
    retried: int = 0
    failed: int = 0
    reconciled: bool = False
