"""Seed the database with a demo restaurant, its table inventory and sample bookings.

Bookings are placed through the reservation engine so slot counters stay in
step with the bookings table.

Run inside Docker:
    docker compose exec backend python -m scripts.seed_data
"""

import asyncio
from datetime import date, time, timedelta

from sqlalchemy import delete, select

from tablebook.database import async_session_factory, engine
from tablebook.models.booking import Booking
from tablebook.models.restaurant import Restaurant, RestaurantTableType
from tablebook.models.slot_counter import SlotCounter
from tablebook.services.engine import ReservationEngine
from tablebook.services.lifecycle import OperatorContext
from tablebook.services.reservations import ReservationRequest

# ---------------------------------------------------------------------------
# Seed data definitions
# ---------------------------------------------------------------------------

DEMO_OWNER_ID = "demo-customer"
DEMO_OPERATOR_ID = "demo-operator"

RESTAURANT = {
    "name": "Warung Laut",
    "opens_at": time(17, 0),
    "closes_at": time(22, 0),
    "slot_interval_minutes": 30,
    "auto_confirm": False,
    "max_days_in_advance": 60,
    "blackout_dates": [],
}

TABLE_TYPES = [
    {"table_type": "standard", "capacity": 4, "count": 6},
    {"table_type": "booth", "capacity": 6, "count": 2},
    {"table_type": "outdoor", "capacity": 2, "count": 4},
    {"table_type": "private", "capacity": 12, "count": 1},
]

BOOKINGS = [
    # (days ahead, time, party size, table type, contact, special requests, confirm?)
    (1, time(19, 0), 2, "outdoor", "Sarah Chen", "Window seat if possible", True),
    (1, time(19, 0), 4, "standard", "James Wilson", None, True),
    (2, time(18, 30), 6, "booth", "Marie Dubois", "Birthday, small cake please", False),
    (3, time(20, 0), 10, "private", "Ahmed Hassan", "Halal menu for the whole party", True),
    (5, time(17, 30), 3, "standard", "Yuki Tanaka", "Shellfish allergy", False),
    (7, time(21, 0), 2, "outdoor", "Lucas van Dijk", None, False),
]


# ---------------------------------------------------------------------------
# Main seed function
# ---------------------------------------------------------------------------


async def seed() -> None:
    """Populate the database with demo data.

    Idempotent: an existing demo restaurant is deleted with its bookings and
    re-seeded to ensure a clean state.
    """
    async with async_session_factory() as session:
        result = await session.execute(select(Restaurant).where(Restaurant.name == RESTAURANT["name"]))
        existing = result.scalar_one_or_none()

        if existing is not None:
            print(f"⚠️  Restaurant '{existing.name}' already exists. Deleting and re-seeding...")
            await session.execute(delete(Booking).where(Booking.restaurant_id == existing.id))
            await session.execute(delete(SlotCounter).where(SlotCounter.restaurant_id == existing.id))
            await session.delete(existing)
            await session.flush()

        restaurant = Restaurant(
            **RESTAURANT,
            table_types=[RestaurantTableType(**t) for t in TABLE_TYPES],
        )
        session.add(restaurant)
        await session.commit()
        restaurant_id = restaurant.id

    print(f"✅ Created restaurant: {RESTAURANT['name']} (id={restaurant_id})")
    for t in TABLE_TYPES:
        print(f"   🍽  {t['count']} x {t['table_type']} (seats {t['capacity']})")

    reservations = ReservationEngine(async_session_factory)
    operator = OperatorContext(operator_id=DEMO_OPERATOR_ID, restaurant_ids=frozenset({restaurant_id}))
    today = date.today()
    booking_count = 0

    for days, at, party_size, table_type, contact, requests, confirm in BOOKINGS:
        booking = await reservations.reserve(
            ReservationRequest(
                owner_id=DEMO_OWNER_ID,
                restaurant_id=restaurant_id,
                date=today + timedelta(days=days),
                time=at,
                party_size=party_size,
                table_type=table_type,
                contact_name=contact,
                contact_email=f"{contact.split()[0].lower()}@example.com",
                special_requests=requests,
            )
        )
        if confirm:
            booking = await reservations.transition(booking.id, operator, "confirmed")
        booking_count += 1
        print(f"   📅 {booking.confirmation_code} {booking.date} {booking.time:%H:%M} x{party_size} ({booking.status})")

    await reservations.close()
    await engine.dispose()

    print()
    print("=" * 60)
    print("📊 Seed Summary")
    print("=" * 60)
    print(f"   Restaurant:  {RESTAURANT['name']}")
    print(f"   Table types: {len(TABLE_TYPES)}")
    print(f"   Bookings:    {booking_count} (owner: {DEMO_OWNER_ID})")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(seed())
