"""Availability API router — open slots for a restaurant on a date."""

import uuid
from datetime import date

from fastapi import APIRouter, Depends, Query

from tablebook.api.deps import get_engine
from tablebook.schemas.availability import AvailabilityResponse, AvailabilitySlotResponse
from tablebook.services.engine import ReservationEngine

router = APIRouter(prefix="/api/v1/restaurants", tags=["availability"])


@router.get(
    "/{restaurant_id}/availability",
    response_model=AvailabilityResponse,
    summary="Open time slots and table types",
)
async def get_availability(
    restaurant_id: uuid.UUID,
    on: date = Query(..., alias="date", description="Reservation date"),
    party_size: int = Query(..., ge=1, description="Number of guests"),
    engine: ReservationEngine = Depends(get_engine),
) -> AvailabilityResponse:
    """Public snapshot of remaining capacity. Empty when nothing fits."""
    slots = await engine.compute_availability(restaurant_id, on, party_size)
    return AvailabilityResponse(
        restaurant_id=restaurant_id,
        date=on,
        party_size=party_size,
        slots=[AvailabilitySlotResponse.model_validate(s) for s in slots],
    )
