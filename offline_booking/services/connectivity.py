"""Connectivity monitor that turns online edges and periodic ticks into drain requests."""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

from offline_booking.config import Settings, get_settings

logger = logging.getLogger(__name__)

TRIGGER_RECONNECT = "reconnect"
TRIGGER_PERIODIC = "periodic"


class ConnectivityMonitor:
    """
    Tracks whether the client believes it is online.

    Two independent triggers request a drain: the offline -> online edge
    (after a short settling delay) and a periodic tick while online. The
    monitor never submits anything itself; `request_drain` decides what
    happens. With a `probe`, each tick also checks the server and feeds the
    result back as a connectivity edge.
    """

    def __init__(
        self,
        request_drain: Callable[[str], None],
        settings: Optional[Settings] = None,
        probe: Optional[Callable[[], Awaitable[bool]]] = None,
        online: bool = True,
    ):
        settings = settings or get_settings()
        self.request_drain = request_drain
        self.probe = probe
        self.interval_seconds = settings.DRAIN_INTERVAL_SECONDS
        self.reconnect_delay_seconds = settings.RECONNECT_DRAIN_DELAY_SECONDS
        self.is_running = False
        self._online = online
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None

    @property
    def is_online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> bool:
        """Record a connectivity edge. Returns True if the state changed."""
        if online == self._online:
            return False

        self._online = online
        if online:
            logger.info("Connection restored - processing offline booking queue")
            self._schedule_reconnect_drain()
        else:
            logger.warning("Connection lost - new bookings will be queued offline")
            self._cancel_reconnect_drain()
        return True

    def _schedule_reconnect_drain(self) -> None:
        self._cancel_reconnect_drain()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.request_drain(TRIGGER_RECONNECT)
            return

        self._reconnect_handle = loop.call_later(
            self.reconnect_delay_seconds,
            self._fire_reconnect,
        )

    def _fire_reconnect(self) -> None:
        self._reconnect_handle = None
        if self._online:
            self.request_drain(TRIGGER_RECONNECT)

    def _cancel_reconnect_drain(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    async def tick(self) -> None:
        """One periodic check."""
        if self.probe is not None:
            reachable = await self.probe()
            if self.set_online(reachable):
                # The edge already requested its own drain
                return

        if self._online:
            self.request_drain(TRIGGER_PERIODIC)

    async def start(self) -> None:
        """Run the periodic tick loop until `stop()`."""
        self.is_running = True
        logger.info(f"Connectivity monitor started (interval: {self.interval_seconds}s)")

        while self.is_running:
            await asyncio.sleep(self.interval_seconds)
            if not self.is_running:
                break
            try:
                await self.tick()
            except Exception as e:
                logger.error(f"Connectivity monitor error: {e}")

    def stop(self) -> None:
        self.is_running = False
        self._cancel_reconnect_drain()
        logger.info("Connectivity monitor stopped")
