"""Persistent key-value stores backing the offline queue."""
import logging
from typing import Optional, Protocol

from offline_booking.database import create_db_engine, create_session_maker, init_db
from offline_booking.models import KeyValueEntry

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Minimal synchronous key-value interface the queue persists through."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class MemoryKeyValueStore:
    """Process-local store, used in tests and when no database is configured."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


class SqlKeyValueStore:
    """
    Key-value store persisted in a SQL table through SQLAlchemy.

    Calls are synchronous so a queue mutation (read, modify, write) never
    yields to the event loop halfway through. They block the loop for the
    duration of one SQLite round trip, which is sized for a small local
    queue of pending bookings.
    """

    def __init__(self, database_url: str):
        self.database_url = database_url
        self.engine = create_db_engine(database_url)
        init_db(self.engine)
        self.session_maker = create_session_maker(self.engine)
        logger.info(f"Local queue storage ready at {database_url}")

    def get(self, key: str) -> Optional[str]:
        with self.session_maker() as db:
            entry = db.get(KeyValueEntry, key)
            return entry.value if entry else None

    def set(self, key: str, value: str) -> None:
        with self.session_maker() as db:
            entry = db.get(KeyValueEntry, key)
            if entry:
                entry.value = value
            else:
                db.add(KeyValueEntry(key=key, value=value))
            db.commit()

    def close(self) -> None:
        """Release pooled connections."""
        self.engine.dispose()
