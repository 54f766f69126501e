"""Custom exceptions for the offline booking queue with standardized error codes."""
from enum import Enum
from typing import Any, Optional

from fastapi import status


class ErrorCode(str, Enum):
    """Standardized error codes for the queue and its API."""

    # Submission errors
    BOOKING_REJECTED = "BOOKING_REJECTED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"

    # Queue errors
    QUEUE_UNAVAILABLE = "QUEUE_UNAVAILABLE"
    QUEUE_ITEM_NOT_FOUND = "QUEUE_ITEM_NOT_FOUND"

    # Server errors
    INTERNAL_ERROR = "INTERNAL_ERROR"


class OfflineQueueException(Exception):
    """Base exception for the offline queue with standardized error format."""

    def __init__(
        self,
        message: str,
        status_code: int = 400,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert exception to standardized error response dict."""
        response = {
            "error": {
                "code": self.error_code.value,
                "message": self.message,
            }
        }
        if self.details:
            response["error"]["details"] = self.details
        return response


class BookingSubmissionError(OfflineQueueException):
    """
    Raised when the remote booking API did not accept a submission.

    `response_status` is None when no response was received at all
    (connection refused, DNS failure, timeout). `error_kind` carries the
    structured error code from the server's body when it sent one.
    """

    def __init__(
        self,
        message: str,
        response_status: Optional[int] = None,
        error_kind: Optional[str] = None,
        response_body: Any = None,
        error_code: Optional[ErrorCode] = None,
    ):
        self.response_status = response_status
        self.error_kind = error_kind
        self.response_body = response_body

        if error_code is None:
            if response_status is None:
                error_code = ErrorCode.NETWORK_ERROR
            elif response_status >= 500:
                error_code = ErrorCode.SERVICE_UNAVAILABLE
            else:
                error_code = ErrorCode.BOOKING_REJECTED

        details = {}
        if response_status is not None:
            details["response_status"] = response_status
        if error_kind:
            details["error_kind"] = error_kind

        super().__init__(
            message=message,
            status_code=response_status or status.HTTP_502_BAD_GATEWAY,
            error_code=error_code,
            details=details or None,
        )

    @property
    def response_received(self) -> bool:
        """Whether the server answered at all."""
        return self.response_status is not None


class QueueUnavailableError(OfflineQueueException):
    """Raised when a booking could not be queued because local storage failed."""

    def __init__(self, reason: str):
        super().__init__(
            message=f"Booking could not be queued offline: {reason}",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code=ErrorCode.QUEUE_UNAVAILABLE,
        )


class QueueItemNotFoundError(OfflineQueueException):
    """Raised when a queue item is not found."""

    def __init__(self, item_id: str):
        super().__init__(
            message=f"Queue item '{item_id}' not found",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code=ErrorCode.QUEUE_ITEM_NOT_FOUND,
            details={"item_id": item_id},
        )
