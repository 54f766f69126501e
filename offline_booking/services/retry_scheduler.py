"""Per-item retry timers with exponential backoff."""
import asyncio
import logging
from typing import Callable, Optional

from offline_booking.config import Settings, get_settings

logger = logging.getLogger(__name__)


def compute_backoff_delay(attempts: int, base_delay: float, max_delay: float) -> float:
    """
    Delay before the next attempt after `attempts` failed tries.

    delay = min(base_delay * 2^(attempts - 1), max_delay)
    With the defaults (2s base, 60s max): 2, 4, 8, 16, 32, 60, 60, ...
    """
    exponent = max(attempts, 1) - 1
    return min(base_delay * (2 ** exponent), max_delay)


class RetryScheduler:
    """
    Keeps at most one timer per queue item.

    Scheduling an item that already has a timer replaces it, so overlapping
    triggers can never lead to two concurrent submissions of the same item.
    When a retry timer fires, `on_due` is called with the item id. A
    separate set of timers removes completed items after their visibility
    window.
    """

    def __init__(
        self,
        on_due: Callable[[str], None],
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self.on_due = on_due
        self.base_delay = settings.RETRY_BASE_DELAY_SECONDS
        self.max_delay = settings.RETRY_MAX_DELAY_SECONDS
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._removals: dict[str, asyncio.TimerHandle] = {}

    def compute_delay(self, attempts: int) -> float:
        return compute_backoff_delay(attempts, self.base_delay, self.max_delay)

    def schedule(self, item_id: str, delay: float) -> None:
        """Fire `on_due(item_id)` after `delay` seconds, replacing any earlier timer."""
        self.cancel(item_id)
        loop = asyncio.get_running_loop()
        self._timers[item_id] = loop.call_later(max(delay, 0.0), self._fire, item_id)
        logger.info(f"Scheduling retry for booking {item_id} in {delay:.1f}s")

    def _fire(self, item_id: str) -> None:
        self._timers.pop(item_id, None)
        try:
            self.on_due(item_id)
        except Exception as e:
            logger.error(f"Retry callback failed for {item_id}: {e}")

    def cancel(self, item_id: str) -> bool:
        handle = self._timers.pop(item_id, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def has_timer(self, item_id: str) -> bool:
        return item_id in self._timers

    @property
    def pending_count(self) -> int:
        """Number of retry timers that have not fired yet."""
        return len(self._timers)

    def schedule_removal(self, item_id: str, delay: float, remove: Callable[[str], object]) -> None:
        """Call `remove(item_id)` after `delay` seconds, replacing any earlier removal."""
        previous = self._removals.pop(item_id, None)
        if previous is not None:
            previous.cancel()

        def fire() -> None:
            self._removals.pop(item_id, None)
            try:
                remove(item_id)
            except Exception as e:
                logger.error(f"Failed to remove completed item {item_id}: {e}")

        loop = asyncio.get_running_loop()
        self._removals[item_id] = loop.call_later(max(delay, 0.0), fire)

    def has_removal(self, item_id: str) -> bool:
        return item_id in self._removals

    def cancel_all(self) -> None:
        """Cancel every retry and removal timer."""
        for handle in list(self._timers.values()) + list(self._removals.values()):
            handle.cancel()
        cancelled = len(self._timers)
        self._timers.clear()
        self._removals.clear()
        if cancelled:
            logger.info(f"Cancelled {cancelled} scheduled retries")
