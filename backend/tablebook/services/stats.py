"""Booking statistics for a restaurant over a date range."""

import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tablebook.models.booking import Booking
from tablebook.services import lifecycle
from tablebook.services.booking_store import BookingFilters, BookingStore

WEEKDAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


@dataclass
class BookingStats:
    total_bookings: int = 0
    by_status: dict[str, int] = field(default_factory=dict)
    total_covers: int = 0  # guests across bookings that were not cancelled
    average_party_size: float = 0.0
    peak_hours: dict[str, int] = field(default_factory=dict)
    by_table_type: dict[str, int] = field(default_factory=dict)
    by_weekday: dict[str, int] = field(default_factory=dict)


async def compute_booking_stats(
    store: BookingStore,
    restaurant_id: uuid.UUID,
    date_from: date | None = None,
    date_to: date | None = None,
) -> BookingStats:
    filters = BookingFilters(restaurant_id=restaurant_id, date_from=date_from, date_to=date_to)

    async def work(session: AsyncSession) -> list[tuple]:
        query = filters.apply(select(Booking.status, Booking.party_size, Booking.time, Booking.table_type, Booking.date))
        result = await session.execute(query)
        return list(result.all())

    rows = await store.run(work, description="booking stats")

    stats = BookingStats(total_bookings=len(rows))
    statuses: Counter[str] = Counter({status: 0 for status in sorted(lifecycle.ALL_STATUSES)})
    hours: Counter[str] = Counter()
    table_types: Counter[str] = Counter()
    weekdays: Counter[str] = Counter()
    seated = 0

    for status, party_size, at, table_type, on in rows:
        statuses[status] += 1
        if status == lifecycle.CANCELLED:
            continue
        seated += 1
        stats.total_covers += party_size
        hours[f"{at.hour:02d}"] += 1
        table_types[table_type] += 1
        weekdays[WEEKDAYS[on.weekday()]] += 1

    stats.by_status = dict(statuses)
    stats.average_party_size = round(stats.total_covers / seated, 2) if seated else 0.0
    stats.peak_hours = dict(sorted(hours.items()))
    stats.by_table_type = dict(sorted(table_types.items()))
    stats.by_weekday = {day: weekdays[day] for day in WEEKDAYS if weekdays[day]}
    return stats
