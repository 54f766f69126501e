"""
Mock Booking API - Remote Booking Service Simulator

This server stands in for the remote booking API the offline queue submits
to. It honours the `Idempotency-Key` header, answers bulk reconciliation
calls, and can simulate a database outage so the queue's offline behaviour
can be exercised end to end.

It also receives notification webhooks and logs them for debugging.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

IDEMPOTENCY_HEADER = "Idempotency-Key"


class OutageControl(BaseModel):
    """Switch the simulated database outage on or off."""

    enabled: bool = False
    fail_next: int = Field(0, ge=0, description="Fail only the next N booking writes, then recover")


class MockBookingBackend:
    """In-memory state of the mock booking API."""

    def __init__(self):
        self.bookings: Dict[str, Dict[str, Any]] = {}
        self.idempotency_keys: Dict[str, str] = {}
        self.create_requests: List[Optional[str]] = []
        self.follow_ups: List[Dict[str, Any]] = []
        self.received_webhooks: List[Dict[str, Any]] = []
        self.outage = False
        self.fail_next = 0

    def reset(self) -> None:
        self.__init__()

    def is_down(self) -> bool:
        if self.outage:
            return True
        if self.fail_next > 0:
            self.fail_next -= 1
            return True
        return False

    def find_by_key(self, key: Optional[str]) -> Optional[Dict[str, Any]]:
        if not key or key not in self.idempotency_keys:
            return None
        return self.bookings.get(self.idempotency_keys[key])

    def create(self, data: Dict[str, Any], key: Optional[str] = None) -> Dict[str, Any]:
        booking_id = uuid4().hex
        booking = {
            **data,
            "_id": booking_id,
            "createdAt": datetime.now(timezone.utc).isoformat(),
        }
        self.bookings[booking_id] = booking
        if key:
            self.idempotency_keys[key] = booking_id
        return booking


backend = MockBookingBackend()

app = FastAPI(
    title="Mock Booking API",
    description="Simulates the remote booking service used by the offline booking queue",
    version="1.0.0"
)


def _error(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message}}
    )


def _outage_response() -> JSONResponse:
    return _error(503, "SERVICE_UNAVAILABLE", "Database connection unavailable")


@app.post("/bookings")
async def create_booking(request: Request):
    """
    Create a booking.

    A repeated `Idempotency-Key` returns the booking created by the first
    request instead of creating a second one.
    """
    key = request.headers.get(IDEMPOTENCY_HEADER)
    backend.create_requests.append(key)

    if backend.is_down():
        logger.warning(f"Simulated outage, rejecting booking (key: {key})")
        return _outage_response()

    existing = backend.find_by_key(key)
    if existing is not None:
        logger.info(f"Replayed booking {existing['_id']} for key {key}")
        return JSONResponse(status_code=200, content=existing)

    try:
        payload = await request.json()
    except json.JSONDecodeError:
        return _error(400, "VALIDATION_ERROR", "Request body must be JSON")

    if not isinstance(payload, dict) or not payload.get("clientId"):
        return _error(400, "VALIDATION_ERROR", "clientId is required")

    booking = backend.create(payload, key)
    logger.info(f"Created booking {booking['_id']} for client {payload['clientId']}")
    return JSONResponse(status_code=201, content=booking)


@app.post("/bookings/sync-offline")
async def sync_offline_bookings(request: Request):
    """
    Reconcile a batch of offline bookings.

    Every item lands in exactly one of successful, duplicates or failed.
    Accepts `{"items": [{"idempotencyKey", "payload", "submittedAt"}]}` and
    the older `{"bookings": [{..., "offlineId"}]}` shape.
    """
    if backend.is_down():
        return _outage_response()

    body = await request.json()
    entries = body.get("items")
    if entries is None and isinstance(body.get("bookings"), list):
        entries = [
            {"idempotencyKey": b.get("offlineId"), "payload": {k: v for k, v in b.items() if k != "offlineId"}}
            for b in body["bookings"]
        ]
    if not isinstance(entries, list):
        return _error(400, "VALIDATION_ERROR", "Invalid request: items array is required")

    results = {"successful": [], "duplicates": [], "failed": []}
    for entry in entries:
        key = entry.get("idempotencyKey")
        payload = entry.get("payload") or {}

        existing = backend.find_by_key(key)
        if existing is not None:
            results["duplicates"].append({
                "idempotencyKey": key,
                "existingId": existing["_id"],
                "reason": "Booking already exists",
            })
            continue

        if not payload.get("clientId"):
            results["failed"].append({"idempotencyKey": key, "error": "clientId is required"})
            continue

        booking = backend.create(payload, key)
        results["successful"].append({
            "idempotencyKey": key,
            "bookingId": booking["_id"],
            "booking": booking,
        })

    logger.info(
        f"Sync completed: {len(results['successful'])} created, "
        f"{len(results['duplicates'])} duplicates, {len(results['failed'])} failed"
    )
    return {
        "success": True,
        "data": results,
        "summary": {
            "total": len(entries),
            "successful": len(results["successful"]),
            "failed": len(results["failed"]),
            "duplicates": len(results["duplicates"]),
        }
    }


@app.post("/bookings/sync-calendar")
async def sync_calendar(request: Request):
    """Acknowledge a calendar sync follow-up."""
    payload = await request.json()
    backend.follow_ups.append({"type": "sync-calendar", **payload})
    return {"success": True}


@app.post("/bookings/send-notifications")
async def send_notifications(request: Request):
    """Acknowledge an email notification follow-up."""
    payload = await request.json()
    backend.follow_ups.append({"type": "send-notifications", **payload})
    return {"success": True}


@app.get("/bookings")
async def list_bookings(limit: int = 20):
    """List created bookings, most recent first."""
    bookings = list(backend.bookings.values())
    return {
        "total": len(bookings),
        "showing": min(limit, len(bookings)),
        "bookings": bookings[-limit:][::-1]
    }


@app.delete("/bookings")
async def clear_bookings():
    """Clear all bookings, idempotency keys and simulated outages."""
    backend.reset()
    return {"message": "All bookings cleared"}


@app.post("/control/outage")
async def control_outage(control: OutageControl):
    """Turn the simulated database outage on or off."""
    backend.outage = control.enabled
    backend.fail_next = control.fail_next
    logger.info(f"Outage simulation: enabled={control.enabled}, fail_next={control.fail_next}")
    return {"outage": backend.outage, "fail_next": backend.fail_next}


@app.post("/webhook")
async def receive_webhook(request: Request):
    """Receive queue notifications (queued offline, processed, permanently failed)."""
    try:
        payload = await request.json()
    except json.JSONDecodeError as e:
        logger.error(f"Error processing webhook: {e}")
        return JSONResponse(status_code=400, content={"error": str(e)})

    payload["received_at"] = datetime.now(timezone.utc).isoformat()
    backend.received_webhooks.append(payload)

    # Keep only last 100 webhooks in memory
    if len(backend.received_webhooks) > 100:
        backend.received_webhooks.pop(0)

    event_type = payload.get("event_type", "unknown")
    logger.info(f"Received {event_type} webhook for queue item {payload.get('item_id', 'unknown')}")
    return {"status": "received", "message": f"Event '{event_type}' acknowledged"}


@app.get("/webhooks")
async def list_webhooks(limit: int = 20):
    """List recently received webhooks."""
    return {
        "total": len(backend.received_webhooks),
        "showing": min(limit, len(backend.received_webhooks)),
        "webhooks": backend.received_webhooks[-limit:][::-1]
    }


@app.get("/health")
async def health_check():
    """Health check endpoint. Reports 503 while an outage is simulated."""
    if backend.outage:
        return _outage_response()
    return {
        "status": "healthy",
        "service": "Mock Booking API",
        "bookings": len(backend.bookings)
    }


@app.get("/")
async def root():
    """Root endpoint with service information."""
    return {
        "service": "Mock Booking API",
        "description": "Simulates the remote booking service behind the offline queue",
        "endpoints": {
            "POST /bookings": "Create a booking (Idempotency-Key aware)",
            "POST /bookings/sync-offline": "Reconcile a batch of offline bookings",
            "GET /bookings": "List created bookings",
            "DELETE /bookings": "Clear all state",
            "POST /control/outage": "Simulate a database outage",
            "POST /webhook": "Receive queue notifications",
            "GET /health": "Health check"
        }
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
