"""Pydantic schemas for connectivity signals."""
from pydantic import BaseModel, Field


class ConnectivityUpdate(BaseModel):
    """Connectivity edge reported by the hosting environment."""

    online: bool = Field(..., description="True when the client came online, False when it went offline")


class ConnectivityStatus(BaseModel):
    """Current connectivity belief and drain state."""

    online: bool
    is_draining: bool
    scheduled_retries: int
