"""Key-value entry model backing the persistent local store."""
from datetime import datetime, timezone
from sqlalchemy import Column, String, Text
from offline_booking.database import Base


class KeyValueEntry(Base):
    """A single namespaced value in the local store."""

    __tablename__ = "local_kv"

    key = Column(String(200), primary_key=True)
    value = Column(Text, nullable=False)  # JSON string
    updated_at = Column(
        String(50),
        nullable=False,
        default=lambda: datetime.now(timezone.utc).isoformat(),
        onupdate=lambda: datetime.now(timezone.utc).isoformat()
    )

    def __repr__(self):
        return f"<KeyValueEntry(key='{self.key}', size={len(self.value or '')})>"
