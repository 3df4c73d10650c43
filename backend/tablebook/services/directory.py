"""Restaurant directory — read-only view of service hours, policy and table inventory."""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tablebook.config import settings
from tablebook.exceptions import NotFound
from tablebook.models.restaurant import Restaurant


@dataclass(frozen=True)
class TableInventory:
    """``count`` tables of ``table_type``, each seating up to ``capacity``."""

    table_type: str
    capacity: int
    count: int


@dataclass(frozen=True)
class RestaurantInfo:
    """Detached snapshot of a restaurant's booking configuration."""

    id: uuid.UUID
    name: str
    opens_at: time
    closes_at: time
    slot_interval_minutes: int
    auto_confirm: bool
    max_days_in_advance: int
    blackout_dates: frozenset[date] = field(default_factory=frozenset)
    tables: dict[str, TableInventory] = field(default_factory=dict)

    @property
    def max_capacity(self) -> int:
        return max((t.capacity for t in self.tables.values()), default=0)

    def service_times(self) -> list[time]:
        """Bookable start times from opening until (not including) closing."""
        day = date(2000, 1, 1)
        cursor = datetime.combine(day, self.opens_at)
        end = datetime.combine(day, self.closes_at)
        step = timedelta(minutes=self.slot_interval_minutes)
        times = []
        while cursor < end:
            times.append(cursor.time())
            cursor += step
        return times

    def is_service_time(self, value: time) -> bool:
        return value in self.service_times()

    def accepts_date(self, value: date, today: date) -> bool:
        """Whether bookings are taken for ``value`` at all (not past, not blacked out, within horizon)."""
        if value < today or value in self.blackout_dates:
            return False
        return value <= today + timedelta(days=self.max_days_in_advance)


def _snapshot(restaurant: Restaurant) -> RestaurantInfo:
    return RestaurantInfo(
        id=restaurant.id,
        name=restaurant.name,
        opens_at=restaurant.opens_at,
        closes_at=restaurant.closes_at,
        slot_interval_minutes=restaurant.slot_interval_minutes or settings.slot_interval_minutes,
        auto_confirm=restaurant.auto_confirm,
        max_days_in_advance=restaurant.max_days_in_advance or settings.default_booking_horizon_days,
        blackout_dates=frozenset(date.fromisoformat(d) for d in (restaurant.blackout_dates or [])),
        tables={
            t.table_type: TableInventory(table_type=t.table_type, capacity=t.capacity, count=t.count)
            for t in restaurant.table_types
        },
    )


async def load_restaurant(session: AsyncSession, restaurant_id: uuid.UUID) -> RestaurantInfo:
    """Fetch a restaurant with its table inventory. Raises ``NotFound`` if absent."""
    result = await session.execute(select(Restaurant).where(Restaurant.id == restaurant_id))
    restaurant = result.scalar_one_or_none()
    if restaurant is None:
        raise NotFound("Restaurant not found", restaurant_id=str(restaurant_id))
    return _snapshot(restaurant)
