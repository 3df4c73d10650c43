"""Pydantic v2 request/response schemas for booking endpoints."""

import uuid
from datetime import date, datetime, time

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class ContactInfo(BaseModel):
    """Guest contact details, snapshotted onto the booking."""

    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(None, max_length=32)

    @model_validator(mode="after")
    def check_reachable(self) -> "ContactInfo":
        """Require at least one way to reach the guest."""
        if not self.email and not self.phone:
            raise ValueError("contact_info needs an email or a phone number")
        return self


class BookingCreate(BaseModel):
    """Schema for reserving a table. The owner comes from the access token."""

    restaurant_id: uuid.UUID
    date: date
    time: time
    party_size: int = Field(..., ge=1)
    table_type: str = Field(..., min_length=1, max_length=50)
    contact_info: ContactInfo
    special_requests: str | None = Field(None, max_length=2000)


class BookingUpdate(BaseModel):
    """Customer edit. Unknown or immutable fields are passed through so the
    store can reject them with a specific message."""

    model_config = ConfigDict(extra="allow")

    special_requests: str | None = Field(None, max_length=2000)


class CancelRequest(BaseModel):
    reason: str | None = Field(None, max_length=500)


class TransitionRequest(BaseModel):
    """Operator status change."""

    status: str = Field(..., pattern="^(confirmed|completed|no-show|cancelled)$")
    reason: str | None = Field(None, max_length=500)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class BookingResponse(BaseModel):
    """A booking as seen by its owner or restaurant staff."""

    id: uuid.UUID
    owner_id: str
    restaurant_id: uuid.UUID
    date: date
    time: time
    party_size: int
    table_type: str
    status: str
    contact_name: str
    contact_email: str | None = None
    contact_phone: str | None = None
    special_requests: str | None = None
    confirmation_code: str
    created_at: datetime
    updated_at: datetime
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None

    model_config = ConfigDict(from_attributes=True, frozen=True)


class BookingListResponse(BaseModel):
    items: list[BookingResponse]
    total: int
