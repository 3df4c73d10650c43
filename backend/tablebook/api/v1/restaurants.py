"""Restaurant staff API router — restaurant-wide booking lists, live stream and stats."""

import uuid
from dataclasses import asdict
from datetime import date

from fastapi import APIRouter, Depends, Query
from sse_starlette.sse import EventSourceResponse
from starlette.requests import Request

from tablebook.api.deps import get_engine, get_operator
from tablebook.api.v1.bookings import snapshot_events
from tablebook.schemas.booking import BookingListResponse, BookingResponse
from tablebook.schemas.stats import BookingStatsResponse
from tablebook.services.booking_store import BookingFilters
from tablebook.services.engine import ReservationEngine
from tablebook.services.lifecycle import OperatorContext, authorize_restaurant

router = APIRouter(prefix="/api/v1/restaurants", tags=["restaurants"])


def restaurant_booking_filters(
    restaurant_id: uuid.UUID,
    status_filter: list[str] | None = Query(None, alias="status", description="Filter by booking status"),
    date_from: date | None = Query(None, description="Bookings on or after this date"),
    date_to: date | None = Query(None, description="Bookings on or before this date"),
) -> BookingFilters:
    """Booking filters scoped to the restaurant in the path."""
    return BookingFilters(
        restaurant_id=restaurant_id,
        date_from=date_from,
        date_to=date_to,
        statuses=frozenset(status_filter) if status_filter else None,
    )


@router.get(
    "/{restaurant_id}/bookings",
    response_model=BookingListResponse,
    summary="List a restaurant's bookings",
)
async def list_restaurant_bookings(
    restaurant_id: uuid.UUID,
    filters: BookingFilters = Depends(restaurant_booking_filters),
    operator: OperatorContext = Depends(get_operator),
    engine: ReservationEngine = Depends(get_engine),
) -> BookingListResponse:
    items = await engine.list_by_restaurant(restaurant_id, operator, filters)
    return BookingListResponse(items=[BookingResponse.model_validate(b) for b in items], total=len(items))


@router.get("/{restaurant_id}/bookings/stream", summary="Live stream of a restaurant's bookings")
async def stream_restaurant_bookings(
    restaurant_id: uuid.UUID,
    request: Request,
    filters: BookingFilters = Depends(restaurant_booking_filters),
    operator: OperatorContext = Depends(get_operator),
    engine: ReservationEngine = Depends(get_engine),
) -> EventSourceResponse:
    authorize_restaurant(operator, restaurant_id)
    return EventSourceResponse(snapshot_events(request, engine, filters))


@router.get(
    "/{restaurant_id}/stats",
    response_model=BookingStatsResponse,
    summary="Booking statistics",
)
async def get_restaurant_stats(
    restaurant_id: uuid.UUID,
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    operator: OperatorContext = Depends(get_operator),
    engine: ReservationEngine = Depends(get_engine),
) -> BookingStatsResponse:
    """Totals per status, covers, peak hours and table-type/weekday breakdowns."""
    stats = await engine.booking_stats(restaurant_id, operator, date_from, date_to)
    return BookingStatsResponse(date_from=date_from, date_to=date_to, **asdict(stats))
