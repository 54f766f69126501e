"""Classification of failed booking submissions into retryable and terminal."""
import logging
from enum import Enum
from typing import Optional

from offline_booking.config import Settings, get_settings
from offline_booking.utils.exceptions import BookingSubmissionError

logger = logging.getLogger(__name__)


class FailureKind(str, Enum):
    """How a failed submission should be handled."""

    RETRYABLE = "retryable"
    TERMINAL = "terminal"


class ErrorClassifier:
    """
    Decides whether a failed submission is worth retrying.

    Decision order:
    1. No response at all (network failure, DNS, timeout) -> retryable
    2. HTTP status >= 500 -> retryable
    3. A structured error kind from the server -> retryable only if it is
       one of the configured infrastructure kinds
    4. Otherwise the error message is matched against an infrastructure
       vocabulary (connection, timeout, unavailable, ...) -> retryable
    5. Anything else (validation, business rules) -> terminal
    """

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.keywords = [keyword.lower() for keyword in settings.INFRASTRUCTURE_ERROR_KEYWORDS]
        self.retryable_codes = {code.upper() for code in settings.RETRYABLE_ERROR_CODES}

    def classify(self, error: BaseException) -> FailureKind:
        if not isinstance(error, BookingSubmissionError):
            # Raised before any response could be read
            return FailureKind.RETRYABLE

        if not error.response_received:
            return FailureKind.RETRYABLE

        if error.response_status >= 500:
            return FailureKind.RETRYABLE

        if error.error_kind:
            if error.error_kind.upper() in self.retryable_codes:
                return FailureKind.RETRYABLE
            return FailureKind.TERMINAL

        message = (error.message or "").lower()
        if any(keyword in message for keyword in self.keywords):
            logger.debug(f"Treating HTTP {error.response_status} as retryable from message: {error.message}")
            return FailureKind.RETRYABLE

        return FailureKind.TERMINAL

    def is_retryable(self, error: BaseException) -> bool:
        return self.classify(error) == FailureKind.RETRYABLE


def describe_error(error: BaseException) -> str:
    """Short diagnostic text stored as an item's `last_error`."""
    if isinstance(error, BookingSubmissionError):
        if error.response_status is not None:
            return f"HTTP {error.response_status}: {error.message}"
        return error.message
    return str(error) or type(error).__name__
