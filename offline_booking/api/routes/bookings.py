"""Booking submission API routes."""
from typing import Any

from fastapi import APIRouter, Body, Depends, status
from fastapi.responses import JSONResponse

from offline_booking.api.deps import get_queue
from offline_booking.schemas.booking import QueuedBookingResponse
from offline_booking.services.offline_queue import OfflineBookingQueue

router = APIRouter()


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Submit a booking",
    description="Create a booking on the remote API, deferring it to the offline queue if the API is unreachable.",
    responses={
        202: {"model": QueuedBookingResponse, "description": "Booking saved offline"},
    },
)
async def submit_booking(
    payload: dict[str, Any] = Body(...),
    offline_queue: OfflineBookingQueue = Depends(get_queue),
):
    """
    Submit a booking.

    - **201**: the remote API created the booking; its response is returned unchanged
    - **202**: the booking was saved offline and will be delivered later
    - **4xx**: the remote API rejected the booking; nothing was queued

    Example:
    ```json
    {
      "clientId": "client-42",
      "clientName": "Ada",
      "start": "2024-06-01T10:00:00Z"
    }
    ```
    """
    result = await offline_queue.submit_booking(payload)

    if isinstance(result, QueuedBookingResponse):
        return JSONResponse(
            status_code=status.HTTP_202_ACCEPTED,
            content=result.model_dump(mode="json"),
        )
    return result
