"""Pydantic schemas for booking submissions through the interceptor."""
from typing import Any
from pydantic import BaseModel, Field


class EstimatedProcessingTime(BaseModel):
    """Rough estimate of when a queued booking will be delivered."""

    seconds: int
    human_readable: str


class QueuedBookingResponse(BaseModel):
    """Synthetic "accepted" result returned when a booking was deferred."""

    success: bool = True
    offline: bool = True
    queue_id: str
    message: str = "Booking saved offline and will be processed when connection is restored"
    booking_data: dict[str, Any] = Field(default_factory=dict)
    estimated_processing_time: EstimatedProcessingTime
    status_code: int = 202
