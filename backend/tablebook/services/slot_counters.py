"""Slot counters — the per-slot tally of tables held by active bookings.

Every write that puts a booking into a pending or confirmed status claims a
table here, and every transition out of those statuses releases it, so that
``booked`` always equals the number of active bookings for the slot.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date, time

from sqlalchemy import exc as sa_exc
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tablebook.models.booking import Booking
from tablebook.models.slot_counter import SlotCounter
from tablebook.services.lifecycle import ACTIVE_STATUSES


@dataclass(frozen=True)
class SlotKey:
    """The unit of contention: one table type at one time on one day."""

    restaurant_id: uuid.UUID
    date: date
    time: time
    table_type: str

    @classmethod
    def of(cls, booking: Booking) -> SlotKey:
        return cls(booking.restaurant_id, booking.date, booking.time, booking.table_type)

    def where(self):
        return (
            SlotCounter.restaurant_id == self.restaurant_id,
            SlotCounter.date == self.date,
            SlotCounter.time == self.time,
            SlotCounter.table_type == self.table_type,
        )


class SlotCounterConflict(Exception):
    """Another writer created the counter row for this slot first."""


async def active_bookings_for_slot(
    session: AsyncSession, restaurant_id: uuid.UUID, on: date, at: time, table_type: str
) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(Booking)
        .where(
            Booking.restaurant_id == restaurant_id,
            Booking.date == on,
            Booking.time == at,
            Booking.table_type == table_type,
            Booking.status.in_(sorted(ACTIVE_STATUSES)),
        )
    )
    return result.scalar_one()


async def claim_slot(session: AsyncSession, key: SlotKey, table_count: int) -> bool:
    """Take one table in ``key`` if fewer than ``table_count`` are held.

    Returns False when the slot is full. Raises ``SlotCounterConflict`` when
    a concurrent writer created the counter row first; the transaction must
    then be rolled back and retried.
    """
    result = await session.execute(
        update(SlotCounter)
        .where(*key.where(), SlotCounter.booked < table_count)
        .values(booked=SlotCounter.booked + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        return True

    existing = await session.execute(select(SlotCounter.booked).where(*key.where()))
    if existing.first() is not None:
        return False

    # First claim for this slot. Seed from bookings that predate the counter.
    active = await active_bookings_for_slot(session, key.restaurant_id, key.date, key.time, key.table_type)
    if active >= table_count:
        return False
    session.add(
        SlotCounter(
            restaurant_id=key.restaurant_id,
            date=key.date,
            time=key.time,
            table_type=key.table_type,
            booked=active + 1,
        )
    )
    try:
        await session.flush()
    except sa_exc.IntegrityError as exc:
        raise SlotCounterConflict("slot counter created concurrently") from exc
    return True


async def release_slot(session: AsyncSession, key: SlotKey) -> None:
    """Give back the table held by a booking that left the active statuses."""
    await session.execute(
        update(SlotCounter)
        .where(*key.where(), SlotCounter.booked > 0)
        .values(booked=SlotCounter.booked - 1)
        .execution_options(synchronize_session=False)
    )
