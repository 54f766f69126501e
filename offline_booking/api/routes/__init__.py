"""API routes."""
from fastapi import APIRouter
from offline_booking.api.routes import bookings, queue, connectivity

api_router = APIRouter()

api_router.include_router(
    bookings.router,
    prefix="/bookings",
    tags=["Bookings"]
)

api_router.include_router(
    queue.router,
    prefix="/queue",
    tags=["Queue"]
)

api_router.include_router(
    connectivity.router,
    prefix="/connectivity",
    tags=["Connectivity"]
)
