"""Connectivity API routes."""
from fastapi import APIRouter, Depends

from offline_booking.api.deps import get_queue
from offline_booking.schemas.connectivity import ConnectivityStatus, ConnectivityUpdate
from offline_booking.services.offline_queue import OfflineBookingQueue

router = APIRouter()


def _status(offline_queue: OfflineBookingQueue) -> ConnectivityStatus:
    return ConnectivityStatus(
        online=offline_queue.is_online,
        is_draining=offline_queue.processor.is_draining,
        scheduled_retries=offline_queue.scheduler.pending_count,
    )


@router.get(
    "",
    response_model=ConnectivityStatus,
    summary="Connectivity status",
)
async def get_connectivity(offline_queue: OfflineBookingQueue = Depends(get_queue)):
    return _status(offline_queue)


@router.post(
    "",
    response_model=ConnectivityStatus,
    summary="Report a connectivity change",
    description="Going online schedules a drain after a short settling delay.",
)
async def update_connectivity(
    update: ConnectivityUpdate,
    offline_queue: OfflineBookingQueue = Depends(get_queue),
):
    offline_queue.set_online(update.online)
    return _status(offline_queue)
