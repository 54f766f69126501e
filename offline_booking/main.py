"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager
from uuid import uuid4
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from offline_booking.config import get_settings
from offline_booking.api.routes import api_router
from offline_booking.utils.exceptions import OfflineQueueException
from offline_booking.services.booking_client import BookingApiClient
from offline_booking.services.notifications import build_notification_dispatcher
from offline_booking.services.offline_queue import OfflineBookingQueue
from offline_booking.services.storage import SqlKeyValueStore

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info(f"Starting {settings.APP_NAME}...")
    kv_store = SqlKeyValueStore(settings.QUEUE_DATABASE_URL)
    offline_queue = OfflineBookingQueue(
        kv_store,
        client=BookingApiClient(settings),
        notifier=build_notification_dispatcher(settings),
        settings=settings,
    )
    app.state.offline_queue = offline_queue
    await offline_queue.initialize()

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.APP_NAME}...")
    await offline_queue.shutdown()
    kv_store.close()
    logger.info("Local queue storage closed")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="""
## Offline Booking Queue

Submits bookings to the remote booking API and keeps them in a durable
local queue when the API cannot be reached.

### Features
- **Deferred submission**: retryable failures are queued and answered with 202
- **Retry with backoff**: exponential delays, capped, with a retry limit
- **Bulk sync**: on reconnect a large backlog is reconciled in one call
- **Idempotency**: every queued booking carries a stable `Idempotency-Key`
- **Operator controls**: stats, listing, requeue of failed items, removal
    """,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Global exception handler for queue and submission exceptions
@app.exception_handler(OfflineQueueException)
async def service_exception_handler(request: Request, exc: OfflineQueueException):
    """Handle service-level exceptions with standardized error format."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


# Include API routes
app.include_router(api_router, prefix="/api/v1")


# Request ID middleware for tracing
class RequestIDMiddleware(BaseHTTPMiddleware):
    """Add unique request ID to each request for tracing."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", str(uuid4()))
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


app.add_middleware(RequestIDMiddleware)


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """
    Health check endpoint with queue storage verification.

    Returns service status, connectivity belief and queue counts.
    """
    offline_queue = getattr(request.app.state, "offline_queue", None)
    if offline_queue is None:
        return JSONResponse(
            status_code=503,
            content={"status": "starting", "service": settings.APP_NAME},
        )

    stats = offline_queue.get_queue_stats()
    storage_healthy = offline_queue.store.is_available

    return {
        "status": "healthy" if storage_healthy else "degraded",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "checks": {
            "storage": {"healthy": storage_healthy},
            "connectivity": {"online": offline_queue.is_online},
            "queue": stats.model_dump(),
        }
    }


# Root endpoint
@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "health": "/health",
        "api": "/api/v1",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "offline_booking.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
    )
