"""Pydantic v2 response schemas for availability endpoints."""

import uuid
from datetime import date, time

from pydantic import BaseModel, ConfigDict


class AvailabilitySlotResponse(BaseModel):
    time: time
    table_type: str
    capacity: int
    remaining_capacity: int

    model_config = ConfigDict(from_attributes=True)


class AvailabilityResponse(BaseModel):
    restaurant_id: uuid.UUID
    date: date
    party_size: int
    slots: list[AvailabilitySlotResponse]
