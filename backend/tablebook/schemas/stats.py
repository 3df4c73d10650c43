"""Pydantic v2 response schema for restaurant booking statistics."""

from datetime import date

from pydantic import BaseModel, ConfigDict


class BookingStatsResponse(BaseModel):
    date_from: date | None = None
    date_to: date | None = None
    total_bookings: int
    by_status: dict[str, int]
    total_covers: int
    average_party_size: float
    peak_hours: dict[str, int]
    by_table_type: dict[str, int]
    by_weekday: dict[str, int]

    model_config = ConfigDict(from_attributes=True)
