"""Availability resolver — open time-slot/table-type capacity for a day.

Remaining capacity is the table count for a type minus the pending and
confirmed bookings at that exact slot. The result is a snapshot; it does not
hold anything; the reservation coordinator re-checks at commit time.
"""

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, time

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tablebook.exceptions import ValidationError
from tablebook.models.booking import Booking
from tablebook.services.booking_store import BookingStore
from tablebook.services.directory import RestaurantInfo, load_restaurant
from tablebook.services.lifecycle import ACTIVE_STATUSES
from tablebook.services.slot_counters import active_bookings_for_slot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AvailabilitySlot:
    """One bookable (time, table type) at a restaurant on a date. Never persisted."""

    restaurant_id: uuid.UUID
    date: date
    time: time
    table_type: str
    capacity: int
    remaining_capacity: int


async def active_bookings_by_slot(
    session: AsyncSession, restaurant_id: uuid.UUID, on: date
) -> dict[tuple[time, str], int]:
    """Count pending/confirmed bookings per (time, table type) for one day."""
    result = await session.execute(
        select(Booking.time, Booking.table_type, func.count())
        .where(
            Booking.restaurant_id == restaurant_id,
            Booking.date == on,
            Booking.status.in_(sorted(ACTIVE_STATUSES)),
        )
        .group_by(Booking.time, Booking.table_type)
    )
    return {(row[0], row[1]): row[2] for row in result.all()}


class AvailabilityResolver:
    """Derives open capacity from table inventory minus active bookings."""

    def __init__(self, store: BookingStore, clock: Callable[[], datetime] = datetime.now) -> None:
        self._store = store
        self._clock = clock

    def _open_times(self, restaurant: RestaurantInfo, on: date) -> list[time]:
        now = self._clock()
        times = restaurant.service_times()
        if on == now.date():
            times = [t for t in times if t > now.time()]
        return times

    async def compute_availability(self, restaurant_id: uuid.UUID, on: date, party_size: int) -> list[AvailabilitySlot]:
        """Open slots for ``party_size`` guests on ``on``, ordered by time then table type.

        Past dates, blackout dates, dates beyond the booking horizon and
        parties larger than every table all yield an empty list.
        """
        if party_size < 1:
            raise ValidationError("party_size must be a positive integer", party_size=party_size)

        async def work(session: AsyncSession) -> list[AvailabilitySlot]:
            restaurant = await load_restaurant(session, restaurant_id)
            if party_size > restaurant.max_capacity or not restaurant.accepts_date(on, self._clock().date()):
                return []

            eligible = sorted(
                (t for t in restaurant.tables.values() if t.capacity >= party_size and t.count > 0),
                key=lambda t: t.table_type,
            )
            if not eligible:
                return []

            times = self._open_times(restaurant, on)
            if not times:
                return []

            booked = await active_bookings_by_slot(session, restaurant_id, on)
            slots = []
            for at in times:
                for table in eligible:
                    remaining = table.count - booked.get((at, table.table_type), 0)
                    if remaining > 0:
                        slots.append(
                            AvailabilitySlot(
                                restaurant_id=restaurant_id,
                                date=on,
                                time=at,
                                table_type=table.table_type,
                                capacity=table.capacity,
                                remaining_capacity=remaining,
                            )
                        )
            return slots

        slots = await self._store.run(work, description="compute availability")
        logger.debug("Availability for %s on %s (party %d): %d slots", restaurant_id, on, party_size, len(slots))
        return slots

    async def remaining_capacity_in(
        self, session: AsyncSession, restaurant: RestaurantInfo, on: date, at: time, table_type: str
    ) -> int:
        """Remaining tables for one exact slot, read inside the caller's transaction."""
        table = restaurant.tables.get(table_type)
        if table is None:
            return 0
        booked = await active_bookings_for_slot(session, restaurant.id, on, at, table_type)
        return max(table.count - booked, 0)
