"""Offline queue API routes."""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from offline_booking.api.deps import get_queue
from offline_booking.schemas.queue import (
    DrainResult,
    QueueItemListResponse,
    QueueStats,
    QueueStatus,
    RetryFailedResponse,
)
from offline_booking.schemas.sync import SyncSummary
from offline_booking.services.offline_queue import OfflineBookingQueue
from offline_booking.utils.exceptions import QueueItemNotFoundError

router = APIRouter()


@router.get(
    "/stats",
    response_model=QueueStats,
    summary="Queue statistics",
)
async def get_queue_stats(offline_queue: OfflineBookingQueue = Depends(get_queue)):
    """Counts of queued bookings by status."""
    return offline_queue.get_queue_stats()


@router.get(
    "/items",
    response_model=QueueItemListResponse,
    summary="List queued bookings",
)
async def list_queue_items(
    status_filter: Optional[QueueStatus] = Query(None, alias="status", description="Filter by item status"),
    offline_queue: OfflineBookingQueue = Depends(get_queue),
):
    items = offline_queue.get_all_queue_items()
    if status_filter is not None:
        items = [item for item in items if item.status == status_filter]
    return QueueItemListResponse(items=items, total=len(items))


@router.post(
    "/retry-failed",
    response_model=RetryFailedResponse,
    summary="Requeue failed bookings",
    description="Move every failed and permanently failed item back to pending with attempts reset to 0.",
)
async def retry_failed(offline_queue: OfflineBookingQueue = Depends(get_queue)):
    requeued = offline_queue.retry_all_failed()
    return RetryFailedResponse(
        requeued=requeued,
        message=f"Requeued {requeued} failed bookings",
    )


@router.delete(
    "/items/{item_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a queued booking",
)
async def remove_queue_item(
    item_id: str,
    offline_queue: OfflineBookingQueue = Depends(get_queue),
):
    if not offline_queue.remove_from_queue(item_id):
        raise QueueItemNotFoundError(item_id)


@router.post(
    "/process",
    response_model=Optional[DrainResult],
    summary="Process the queue now",
    description="Run one drain cycle. Returns null when a drain is already running or the client is offline.",
)
async def process_queue(offline_queue: OfflineBookingQueue = Depends(get_queue)):
    return await offline_queue.process_queue()


@router.post(
    "/sync",
    response_model=Optional[SyncSummary],
    summary="Bulk sync the queue",
    description="Submit every pending booking in one reconciliation call.",
)
async def sync_queue(offline_queue: OfflineBookingQueue = Depends(get_queue)):
    return await offline_queue.sync_queue()
