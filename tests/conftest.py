"""Test fixtures and configuration."""
import asyncio
import time
import pytest
import pytest_asyncio
from typing import Any, AsyncGenerator, Callable, Optional
from uuid import uuid4
from httpx import AsyncClient, ASGITransport

from mock_server.server import app as mock_app, backend as mock_backend
from offline_booking.api.deps import get_queue
from offline_booking.config import Settings
from offline_booking.main import app
from offline_booking.schemas.notification import Notification, NotificationKind
from offline_booking.schemas.sync import SyncRequest, SyncResponse
from offline_booking.services.booking_client import BookingApiClient
from offline_booking.services.notifications import NotificationDispatcher
from offline_booking.services.offline_queue import OfflineBookingQueue
from offline_booking.services.storage import MemoryKeyValueStore
from offline_booking.utils.exceptions import BookingSubmissionError


class RecordingSink:
    """Notification sink that keeps everything it receives."""

    def __init__(self):
        self.notifications: list[Notification] = []

    async def notify(self, notification: Notification) -> None:
        self.notifications.append(notification)

    def of_kind(self, kind: NotificationKind) -> list[Notification]:
        return [n for n in self.notifications if n.kind == kind]


class FailingKeyValueStore(MemoryKeyValueStore):
    """Reads work, writes raise, like a full or read-only disk."""

    def set(self, key: str, value: str) -> None:
        raise OSError("disk full")


class FakeBookingClient:
    """
    Scripted stand-in for BookingApiClient.

    `script` holds outcomes for successive create_booking calls: an
    exception is raised, anything else is returned. Once the script is
    exhausted, `default_error` is raised if set, otherwise a created
    booking is returned.
    """

    def __init__(self):
        self.script: list[Any] = []
        self.default_error: Optional[Exception] = None
        self.calls: list[tuple[dict, Optional[str]]] = []
        self.sync_calls: list[SyncRequest] = []
        self.sync_result: Any = None
        self.follow_ups: list[Any] = []
        self.healthy = True
        self.gate: Optional[asyncio.Event] = None
        self.in_flight = 0
        self.max_in_flight = 0

    async def create_booking(self, payload: dict, idempotency_key: Optional[str] = None) -> Any:
        self.calls.append((payload, idempotency_key))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.script:
                outcome = self.script.pop(0)
            elif self.default_error is not None:
                outcome = self.default_error
            else:
                outcome = {"_id": uuid4().hex, **payload}
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        finally:
            self.in_flight -= 1

    async def sync_offline(self, request: SyncRequest) -> SyncResponse:
        self.sync_calls.append(request)
        if isinstance(self.sync_result, BaseException):
            raise self.sync_result
        if self.sync_result is not None:
            return self.sync_result
        return SyncResponse(
            successful=[
                {"idempotencyKey": item.idempotency_key, "bookingId": uuid4().hex}
                for item in request.items
            ]
        )

    async def check_health(self) -> bool:
        return self.healthy

    async def send_follow_ups(self, booking_id: Any) -> None:
        self.follow_ups.append(booking_id)


def server_unavailable() -> BookingSubmissionError:
    return BookingSubmissionError(
        "Database connection unavailable",
        response_status=503,
        error_kind="SERVICE_UNAVAILABLE",
    )


def validation_error() -> BookingSubmissionError:
    return BookingSubmissionError(
        "clientId is required",
        response_status=400,
        error_kind="VALIDATION_ERROR",
    )


@pytest.fixture
def settings() -> Settings:
    """Settings with millisecond delays so timer-driven paths run quickly."""
    return Settings(
        BOOKING_API_URL="http://mock",
        RETRY_BASE_DELAY_SECONDS=0.01,
        RETRY_MAX_DELAY_SECONDS=0.04,
        MAX_RETRIES=5,
        DRAIN_INTERVAL_SECONDS=3600.0,
        RECONNECT_DRAIN_DELAY_SECONDS=0.01,
        HEALTH_PROBE_ENABLED=False,
        SUCCESS_VISIBILITY_SECONDS=0.3,
        CLEANUP_INTERVAL_SECONDS=3600.0,
        COMPLETED_RETENTION_SECONDS=3600.0,
        NOTIFICATION_WEBHOOK_URL=None,
        FOLLOW_UP_ENABLED=False,
    )


@pytest.fixture
def kv_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def notifier(sink) -> NotificationDispatcher:
    return NotificationDispatcher([sink])


@pytest.fixture
def fake_client() -> FakeBookingClient:
    return FakeBookingClient()


@pytest_asyncio.fixture(scope="function")
async def offline_queue(kv_store, fake_client, notifier, settings) -> AsyncGenerator[OfflineBookingQueue, None]:
    """Queue service wired to the scripted client, not started."""
    service = OfflineBookingQueue(kv_store, client=fake_client, notifier=notifier, settings=settings)
    yield service
    await service.shutdown()


@pytest_asyncio.fixture(scope="function")
async def mock_api_client(settings) -> AsyncGenerator[BookingApiClient, None]:
    """Real BookingApiClient talking to the in-process mock booking API."""
    mock_backend.reset()
    async with AsyncClient(
        transport=ASGITransport(app=mock_app),
        base_url="http://mock"
    ) as http_client:
        yield BookingApiClient(settings, http_client=http_client)
    mock_backend.reset()


@pytest.fixture
def backend():
    """State of the in-process mock booking API."""
    return mock_backend


@pytest_asyncio.fixture(scope="function")
async def client(offline_queue) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with the queue service override."""
    app.dependency_overrides[get_queue] = lambda: offline_queue
    app.state.offline_queue = offline_queue

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
    del app.state.offline_queue


@pytest.fixture
def wait_until() -> Callable:
    """Poll a condition while letting the event loop run timers and tasks."""

    async def _wait_until(condition: Callable[[], bool], timeout: float = 2.0) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if condition():
                return True
            await asyncio.sleep(0.005)
        return condition()

    return _wait_until


@pytest.fixture
def sample_booking():
    """Sample booking payload for testing."""
    return {
        "clientId": "c1",
        "clientName": "Ada Lovelace",
        "slot": "2025-01-01T10:00",
    }


def status_of(offline_queue, item_id):
    """Status of a queue item, or None once it has been removed."""
    item = offline_queue.store.get(item_id)
    return item.status if item is not None else None
