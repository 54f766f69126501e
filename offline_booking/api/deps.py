"""API dependencies."""
from fastapi import Request

from offline_booking.services.offline_queue import OfflineBookingQueue


def get_queue(request: Request) -> OfflineBookingQueue:
    """Queue service created by the application lifespan."""
    return request.app.state.offline_queue
