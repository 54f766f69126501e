"""Database models."""
from offline_booking.models.kv_entry import KeyValueEntry

__all__ = [
    "KeyValueEntry",
]
