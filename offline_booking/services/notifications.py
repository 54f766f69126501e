"""Notification sinks for queued, delivered and permanently failed bookings."""
import logging
from typing import Any, Iterable, Optional, Protocol
import httpx

from offline_booking.config import Settings, get_settings
from offline_booking.schemas.notification import Notification, NotificationKind

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    """Anything that can deliver a notification to the user."""

    async def notify(self, notification: Notification) -> None:
        ...


class LoggingNotificationSink:
    """Writes notifications to the application log."""

    async def notify(self, notification: Notification) -> None:
        if notification.kind == NotificationKind.PERMANENTLY_FAILED:
            logger.error(f"[{notification.kind.value}] {notification.item_id}: {notification.summary}")
        else:
            logger.info(f"[{notification.kind.value}] {notification.item_id}: {notification.summary}")


class WebhookNotificationSink:
    """
    Posts notifications to an external webhook.

    Features:
    - Single delivery attempt per notification
    - Failures are logged, never raised
    """

    def __init__(self, url: str, timeout: float = 10.0):
        self.url = url
        self.timeout = timeout

    async def notify(self, notification: Notification) -> None:
        payload = {
            "event_type": notification.kind.value,
            **notification.model_dump(mode="json"),
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.url,
                    json=payload,
                    headers={"Content-Type": "application/json"},
                )
                response.raise_for_status()

            logger.info(f"Sent {notification.kind.value} webhook for '{notification.item_id}'")

        except httpx.TimeoutException:
            logger.warning(f"Timeout sending {notification.kind.value} webhook for '{notification.item_id}'")
        except httpx.HTTPStatusError as e:
            logger.warning(
                f"HTTP {e.response.status_code} sending {notification.kind.value} webhook "
                f"for '{notification.item_id}'"
            )
        except httpx.RequestError as e:
            logger.warning(f"Request error sending {notification.kind.value} webhook: {e}")


class NotificationDispatcher:
    """Fans a notification out to every sink; a failing sink never breaks the queue."""

    def __init__(self, sinks: Optional[Iterable[NotificationSink]] = None):
        self.sinks = list(sinks) if sinks is not None else [LoggingNotificationSink()]

    async def notify(self, kind: NotificationKind, item_id: str, summary: str) -> Notification:
        notification = Notification(kind=kind, item_id=item_id, summary=summary)
        for sink in self.sinks:
            try:
                await sink.notify(notification)
            except Exception as e:
                logger.error(f"Notification sink {type(sink).__name__} failed: {e}")
        return notification

    async def queued_offline(self, item_id: str) -> Notification:
        return await self.notify(
            NotificationKind.QUEUED_OFFLINE,
            item_id,
            "Booking saved offline and will be processed when connection is restored. "
            f"Queue ID: {item_id[-8:]}",
        )

    async def processed(self, item_id: str, response: Any = None) -> Notification:
        client_name = None
        if isinstance(response, dict):
            client_name = response.get("clientName")
        return await self.notify(
            NotificationKind.PROCESSED,
            item_id,
            f"Offline booking successfully processed! Booking created for {client_name or 'client'}.",
        )

    async def permanently_failed(self, item_id: str, attempts: int) -> Notification:
        return await self.notify(
            NotificationKind.PERMANENTLY_FAILED,
            item_id,
            f"Failed to process offline booking after {attempts} attempts. "
            "Please check the booking manually.",
        )


def build_notification_dispatcher(settings: Optional[Settings] = None) -> NotificationDispatcher:
    """Log every notification, and post it to the webhook when one is configured."""
    settings = settings or get_settings()
    sinks: list[NotificationSink] = [LoggingNotificationSink()]
    if settings.NOTIFICATION_WEBHOOK_URL:
        sinks.append(
            WebhookNotificationSink(
                settings.NOTIFICATION_WEBHOOK_URL,
                timeout=settings.NOTIFICATION_WEBHOOK_TIMEOUT,
            )
        )
    return NotificationDispatcher(sinks)
