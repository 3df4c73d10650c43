"""Bookings API router — reserve, list, live stream, cancel and operator transitions.

Ownership rule: customers only see and change **their own** bookings. The
owner is always taken from the access token, never from the request body.
"""

from __future__ import annotations

import json
import uuid
from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sse_starlette.sse import EventSourceResponse
from starlette.requests import Request

from tablebook.api.deps import Principal, get_current_principal, get_engine, get_operator
from tablebook.schemas.booking import (
    BookingCreate,
    BookingListResponse,
    BookingResponse,
    BookingUpdate,
    CancelRequest,
    TransitionRequest,
)
from tablebook.services.booking_store import BookingFilters
from tablebook.services.engine import ReservationEngine
from tablebook.services.lifecycle import OperatorContext
from tablebook.services.reservations import ReservationRequest

router = APIRouter(prefix="/api/v1/bookings", tags=["bookings"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def booking_filters(
    status_filter: list[str] | None = Query(None, alias="status", description="Filter by booking status"),
    restaurant_id: uuid.UUID | None = Query(None, description="Filter by restaurant"),
    date_from: date | None = Query(None, description="Bookings on or after this date"),
    date_to: date | None = Query(None, description="Bookings on or before this date"),
) -> BookingFilters:
    return BookingFilters(
        restaurant_id=restaurant_id,
        date_from=date_from,
        date_to=date_to,
        statuses=frozenset(status_filter) if status_filter else None,
    )


def snapshot_events(request: Request, engine: ReservationEngine, filters: BookingFilters):
    """SSE generator: one ``bookings`` event per committed change."""

    async def generate():
        stream = engine.stream(filters)
        try:
            async for snapshot in stream:
                if await request.is_disconnected():
                    break
                yield {
                    "event": "bookings",
                    "data": json.dumps(
                        {"items": [b.model_dump(mode="json") for b in snapshot], "total": len(snapshot)}
                    ),
                }
        finally:
            await stream.aclose()

    return generate()


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Reserve a table",
)
async def create_booking(
    body: BookingCreate,
    principal: Principal = Depends(get_current_principal),
    engine: ReservationEngine = Depends(get_engine),
) -> BookingResponse:
    """Reserve one table of ``table_type`` for the requested slot.

    Returns 409 when the slot has no remaining tables (including losing a
    race for the last one) and 422 for invalid requests.
    """
    booking = await engine.reserve(
        ReservationRequest(
            owner_id=principal.owner_id,
            restaurant_id=body.restaurant_id,
            date=body.date,
            time=body.time,
            party_size=body.party_size,
            table_type=body.table_type,
            contact_name=body.contact_info.name,
            contact_email=body.contact_info.email,
            contact_phone=body.contact_info.phone,
            special_requests=body.special_requests,
        )
    )
    return BookingResponse.model_validate(booking)


@router.get(
    "",
    response_model=BookingListResponse,
    summary="List the current customer's bookings",
)
async def list_bookings(
    filters: BookingFilters = Depends(booking_filters),
    principal: Principal = Depends(get_current_principal),
    engine: ReservationEngine = Depends(get_engine),
) -> BookingListResponse:
    """Return the caller's bookings, latest reservation first."""
    items = await engine.list_by_owner(principal.owner_id, filters)
    return BookingListResponse(items=[BookingResponse.model_validate(b) for b in items], total=len(items))


@router.get("/stream", summary="Live stream of the current customer's bookings")
async def stream_bookings(
    request: Request,
    filters: BookingFilters = Depends(booking_filters),
    principal: Principal = Depends(get_current_principal),
    engine: ReservationEngine = Depends(get_engine),
) -> EventSourceResponse:
    """Server-sent events carrying the full, sorted booking list after every change."""
    return EventSourceResponse(snapshot_events(request, engine, filters.with_owner(principal.owner_id)))


@router.get(
    "/by-code/{confirmation_code}",
    response_model=BookingResponse,
    summary="Look up a booking by confirmation code",
)
async def get_booking_by_code(
    confirmation_code: str,
    principal: Principal = Depends(get_current_principal),
    engine: ReservationEngine = Depends(get_engine),
) -> BookingResponse:
    booking = await engine.get_by_code(confirmation_code, principal.owner_id)
    return BookingResponse.model_validate(booking)


@router.get(
    "/{booking_id}",
    response_model=BookingResponse,
    summary="Get booking detail",
)
async def get_booking(
    booking_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    engine: ReservationEngine = Depends(get_engine),
) -> BookingResponse:
    booking = await engine.get_booking(booking_id, principal.owner_id)
    return BookingResponse.model_validate(booking)


@router.patch(
    "/{booking_id}",
    response_model=BookingResponse,
    summary="Edit special requests",
)
async def update_booking(
    booking_id: uuid.UUID,
    body: BookingUpdate,
    principal: Principal = Depends(get_current_principal),
    engine: ReservationEngine = Depends(get_engine),
) -> BookingResponse:
    """Partially update a booking. Only ``special_requests`` is editable."""
    booking = await engine.update_booking(booking_id, principal.owner_id, body.model_dump(exclude_unset=True))
    return BookingResponse.model_validate(booking)


@router.post(
    "/{booking_id}/cancel",
    response_model=BookingResponse,
    summary="Cancel one of your bookings",
)
async def cancel_booking(
    booking_id: uuid.UUID,
    body: CancelRequest,
    principal: Principal = Depends(get_current_principal),
    engine: ReservationEngine = Depends(get_engine),
) -> BookingResponse:
    booking = await engine.cancel(booking_id, principal.owner_id, body.reason)
    return BookingResponse.model_validate(booking)


@router.post(
    "/{booking_id}/transition",
    response_model=BookingResponse,
    summary="Operator status change",
)
async def transition_booking(
    booking_id: uuid.UUID,
    body: TransitionRequest,
    operator: OperatorContext = Depends(get_operator),
    engine: ReservationEngine = Depends(get_engine),
) -> BookingResponse:
    """Confirm, complete, mark no-show, or decline a booking."""
    booking = await engine.transition(booking_id, operator, body.status, body.reason)
    return BookingResponse.model_validate(booking)
