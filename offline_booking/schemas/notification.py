"""Pydantic schemas for queue notifications."""
from datetime import datetime, timezone
from enum import Enum
from pydantic import BaseModel, Field


class NotificationKind(str, Enum):
    """Kinds of notifications emitted by the queue."""

    QUEUED_OFFLINE = "queued_offline"
    PROCESSED = "processed"
    PERMANENTLY_FAILED = "permanently_failed"


class Notification(BaseModel):
    """A user-facing message about one queue item."""

    kind: NotificationKind
    item_id: str
    summary: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
