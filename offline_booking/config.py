"""Application configuration settings."""
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Application
    APP_NAME: str = "Offline Booking Queue"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Remote booking API
    BOOKING_API_URL: str = "http://localhost:8001"
    BOOKINGS_PATH: str = "/bookings"
    SYNC_PATH: str = "/bookings/sync-offline"
    HEALTH_PATH: str = "/health"
    REQUEST_TIMEOUT: float = 10.0
    HEALTH_CHECK_TIMEOUT: float = 5.0

    # Local persistence
    # For a file: sqlite:///./offline_queue.db
    QUEUE_DATABASE_URL: str = "sqlite:///./offline_queue.db"
    QUEUE_STORAGE_KEY: str = "offline_booking_queue"

    # Retry policy
    RETRY_BASE_DELAY_SECONDS: float = 2.0
    RETRY_MAX_DELAY_SECONDS: float = 60.0
    MAX_RETRIES: int = 5

    # Drain triggers
    DRAIN_INTERVAL_SECONDS: float = 30.0
    RECONNECT_DRAIN_DELAY_SECONDS: float = 1.0
    HEALTH_PROBE_ENABLED: bool = False
    BULK_SYNC_THRESHOLD: int = 5

    # Item lifecycle
    SUCCESS_VISIBILITY_SECONDS: float = 30.0
    CLEANUP_INTERVAL_SECONDS: float = 3600.0
    COMPLETED_RETENTION_SECONDS: float = 3600.0

    # Submission interceptor
    OFFLINE_FIRST_PENDING_THRESHOLD: int = 5
    OFFLINE_FIRST_FAILED_THRESHOLD: int = 2
    RECENT_ERROR_WINDOW_SECONDS: float = 300.0
    RECENT_ERROR_THRESHOLD: int = 2
    ESTIMATED_SECONDS_PER_ITEM: int = 30

    # Error classification
    INFRASTRUCTURE_ERROR_KEYWORDS: list[str] = [
        "database",
        "connection",
        "timeout",
        "unavailable",
        "service temporarily unavailable",
        "internal server error",
        "mongodb",
        "mongoose",
    ]
    RETRYABLE_ERROR_CODES: list[str] = [
        "SERVICE_UNAVAILABLE",
        "DATABASE_ERROR",
        "NETWORK_ERROR",
        "TIMEOUT",
        "INTERNAL_ERROR",
    ]

    # Notifications
    NOTIFICATION_WEBHOOK_URL: Optional[str] = None
    NOTIFICATION_WEBHOOK_TIMEOUT: float = 10.0

    # Calendar sync / email follow-ups after a queued booking is delivered
    FOLLOW_UP_ENABLED: bool = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
