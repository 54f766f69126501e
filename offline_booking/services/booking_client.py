"""HTTP client for the remote booking API."""
import logging
from typing import Any, Optional
import httpx

from offline_booking.config import Settings, get_settings
from offline_booking.schemas.sync import SyncRequest, SyncResponse
from offline_booking.utils.exceptions import BookingSubmissionError, ErrorCode

logger = logging.getLogger(__name__)

IDEMPOTENCY_HEADER = "Idempotency-Key"


def _error_details(response: httpx.Response) -> tuple[str, Optional[str], Any]:
    """Extract (message, structured error kind, body) from an error response."""
    try:
        body = response.json()
    except ValueError:
        body = response.text

    message = None
    error_kind = None
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            message = error.get("message")
            error_kind = error.get("code")
        elif isinstance(error, str):
            message = error
        message = message or body.get("message")
        detail = body.get("detail")
        if message is None and isinstance(detail, str):
            message = detail
        error_kind = error_kind or body.get("code") or body.get("errorKind")
    elif isinstance(body, str) and body:
        message = body[:500]

    return message or response.reason_phrase or f"HTTP {response.status_code}", error_kind, body


class BookingApiClient:
    """
    Thin async client for the booking endpoints the queue depends on.

    Every failure is raised as a `BookingSubmissionError`, with
    `response_status=None` when no response was received.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        settings = settings or get_settings()
        self.base_url = settings.BOOKING_API_URL.rstrip("/")
        self.bookings_path = settings.BOOKINGS_PATH
        self.sync_path = settings.SYNC_PATH
        self.health_path = settings.HEALTH_PATH
        self.timeout = settings.REQUEST_TIMEOUT
        self.health_timeout = settings.HEALTH_CHECK_TIMEOUT
        self._http_client = http_client

    async def _request(self, method: str, path: str, timeout: Optional[float] = None, **kwargs) -> httpx.Response:
        timeout = timeout or self.timeout
        try:
            if self._http_client is not None:
                return await self._http_client.request(method, path, timeout=timeout, **kwargs)

            async with httpx.AsyncClient(base_url=self.base_url, timeout=timeout) as client:
                return await client.request(method, path, **kwargs)

        except httpx.TimeoutException as e:
            raise BookingSubmissionError(
                f"Timeout calling {path}",
                error_code=ErrorCode.TIMEOUT,
            ) from e
        except httpx.RequestError as e:
            raise BookingSubmissionError(
                f"Connection error calling {path}: {e}" if str(e) else f"Connection error calling {path}",
                error_code=ErrorCode.NETWORK_ERROR,
            ) from e

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.status_code < 400:
            return
        message, error_kind, body = _error_details(response)
        raise BookingSubmissionError(
            message,
            response_status=response.status_code,
            error_kind=error_kind,
            response_body=body,
        )

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {"raw": response.text}

    async def create_booking(self, payload: dict, idempotency_key: Optional[str] = None) -> Any:
        """Submit one booking; returns the created resource as the server sent it."""
        headers = {"Content-Type": "application/json"}
        if idempotency_key:
            headers[IDEMPOTENCY_HEADER] = idempotency_key

        response = await self._request("POST", self.bookings_path, json=payload, headers=headers)
        self._raise_for_status(response)
        return self._json(response)

    async def sync_offline(self, request: SyncRequest) -> SyncResponse:
        """Submit a batch of queued bookings for reconciliation."""
        response = await self._request(
            "POST",
            self.sync_path,
            json=request.model_dump(mode="json", by_alias=True),
            headers={"Content-Type": "application/json"},
        )
        self._raise_for_status(response)

        body = self._json(response)
        # Older servers wrap the lists as {"success": true, "data": {...}}
        if isinstance(body, dict) and isinstance(body.get("data"), dict):
            body = body["data"]
        return SyncResponse.model_validate(body)

    async def check_health(self) -> bool:
        """Probe the server; any answer below 500 counts as reachable."""
        try:
            response = await self._request("GET", self.health_path, timeout=self.health_timeout)
        except BookingSubmissionError as e:
            logger.debug(f"Health check failed: {e.message}")
            return False
        return response.status_code < 500

    async def send_follow_ups(self, booking_id: Any) -> None:
        """Best-effort calendar sync and email notifications for a delivered booking."""
        follow_ups = [
            (f"{self.bookings_path}/sync-calendar", {"bookingId": booking_id, "source": "offline_queue"}),
            (
                f"{self.bookings_path}/send-notifications",
                {"bookingId": booking_id, "type": "booking_created", "source": "offline_queue"},
            ),
        ]
        for path, body in follow_ups:
            try:
                response = await self._request("POST", path, json=body)
                self._raise_for_status(response)
            except BookingSubmissionError as e:
                logger.warning(f"Follow-up {path} failed for booking {booking_id}: {e.message}")
