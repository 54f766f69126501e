"""Pydantic schemas for the bulk reconciliation protocol."""
from datetime import datetime
from typing import Any, Optional
from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class SyncRequestItem(BaseModel):
    """One queued booking presented for reconciliation."""

    model_config = ConfigDict(populate_by_name=True)

    idempotency_key: str = Field(..., alias="idempotencyKey")
    payload: dict[str, Any]
    submitted_at: datetime = Field(..., alias="submittedAt")


class SyncRequest(BaseModel):
    """Body of the bulk reconciliation call."""

    items: list[SyncRequestItem]


class SyncResultEntry(BaseModel):
    """A successfully created or already existing booking."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    idempotency_key: str = Field(
        ...,
        validation_alias=AliasChoices("idempotencyKey", "idempotency_key", "offlineId"),
        serialization_alias="idempotencyKey",
    )
    booking_id: Optional[Any] = Field(
        None,
        validation_alias=AliasChoices("bookingId", "booking_id", "existingId"),
        serialization_alias="bookingId",
    )


class SyncFailure(BaseModel):
    """A booking the server rejected during reconciliation."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    idempotency_key: str = Field(
        ...,
        validation_alias=AliasChoices("idempotencyKey", "idempotency_key", "offlineId"),
        serialization_alias="idempotencyKey",
    )
    reason: str = Field(
        "Rejected by server",
        validation_alias=AliasChoices("reason", "error"),
    )


class SyncResponse(BaseModel):
    """Server classification of a reconciliation batch (three disjoint lists)."""

    model_config = ConfigDict(populate_by_name=True)

    successful: list[SyncResultEntry] = Field(default_factory=list)
    duplicate: list[SyncResultEntry] = Field(
        default_factory=list,
        validation_alias=AliasChoices("duplicate", "duplicates"),
    )
    failed: list[SyncFailure] = Field(default_factory=list)


class SyncSummary(BaseModel):
    """Client-side outcome of a reconciliation run."""

    success: bool
    synced: int = 0
    duplicates: int = 0
    failed: int = 0
    error: Optional[str] = None
