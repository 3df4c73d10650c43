"""Slot reservation coordinator — turns an availability check into a booking.

Two requests for the last table of a slot must not both succeed. The commit
is conditional: inside one transaction the slot counter is incremented only
while it is below the table count, and the booking is inserted only if that
increment happened. A rejected commit (the counter was full, or another
writer created the counter row first) restarts the whole check-then-commit
sequence, up to ``reserve_max_attempts`` times with a short backoff, before
``SlotUnavailable`` is raised.

Within one process, attempts on the same slot additionally queue on a
per-slot ``asyncio.Lock``; requests for different slots never wait on each
other.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, time

from sqlalchemy import exc as sa_exc
from sqlalchemy.ext.asyncio import AsyncSession

from tablebook.config import settings
from tablebook.exceptions import SlotUnavailable, ValidationError
from tablebook.models.booking import Booking
from tablebook.services import lifecycle
from tablebook.services.availability import AvailabilityResolver
from tablebook.services.booking_store import BookingStore
from tablebook.services.directory import RestaurantInfo, load_restaurant
from tablebook.services.slot_counters import SlotCounterConflict, SlotKey, claim_slot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReservationRequest:
    owner_id: str
    restaurant_id: uuid.UUID
    date: date
    time: time
    party_size: int
    table_type: str
    contact_name: str
    contact_email: str | None = None
    contact_phone: str | None = None
    special_requests: str | None = None


class _CommitRejected(Exception):
    """The conditional commit lost to another writer."""


class SlotReservationCoordinator:
    """Validates a reservation request and commits it without overbooking."""

    def __init__(
        self,
        store: BookingStore,
        resolver: AvailabilityResolver,
        clock: Callable[[], datetime] = datetime.now,
        *,
        max_attempts: int | None = None,
        backoff_ms: int | None = None,
    ) -> None:
        self._store = store
        self._resolver = resolver
        self._clock = clock
        self.max_attempts = max_attempts or settings.reserve_max_attempts
        self.backoff_ms = settings.reserve_backoff_ms if backoff_ms is None else backoff_ms
        self._locks: dict[SlotKey, asyncio.Lock] = {}
        self._waiters: dict[SlotKey, int] = {}

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate_shape(self, request: ReservationRequest) -> None:
        if request.party_size < 1:
            raise ValidationError("party_size must be a positive integer", party_size=request.party_size)
        now = self._clock()
        if request.date < now.date():
            raise ValidationError("Cannot book a date in the past", date=request.date.isoformat())
        if request.date == now.date() and request.time <= now.time():
            raise ValidationError("Cannot book a time that has already passed", time=request.time.isoformat())
        if not request.contact_name.strip():
            raise ValidationError("contact_name is required")

    def _validate_against(self, request: ReservationRequest, restaurant: RestaurantInfo) -> None:
        table = restaurant.tables.get(request.table_type)
        if table is None:
            raise ValidationError(
                f"Unknown table type {request.table_type!r}",
                table_type=request.table_type,
                available_types=sorted(restaurant.tables),
            )
        if request.party_size > restaurant.max_capacity:
            raise ValidationError(
                f"Parties larger than {restaurant.max_capacity} cannot be booked online",
                party_size=request.party_size,
                max_party_size=restaurant.max_capacity,
            )
        if request.party_size > table.capacity:
            raise ValidationError(
                f"A {request.table_type} table seats at most {table.capacity}",
                party_size=request.party_size,
                capacity=table.capacity,
            )
        if not restaurant.accepts_date(request.date, self._clock().date()):
            raise ValidationError("The restaurant is not taking bookings for that date", date=request.date.isoformat())
        if not restaurant.is_service_time(request.time):
            raise ValidationError(
                "Requested time is not a bookable service time",
                time=request.time.isoformat(),
            )

    # ------------------------------------------------------------------
    # Per-slot lock
    # ------------------------------------------------------------------

    def _acquire_lock(self, key: SlotKey) -> asyncio.Lock:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        return lock

    def _release_lock(self, key: SlotKey) -> None:
        self._waiters[key] -= 1
        if not self._waiters[key]:
            del self._waiters[key]
            del self._locks[key]

    # ------------------------------------------------------------------
    # Reserve
    # ------------------------------------------------------------------

    async def _attempt(self, session: AsyncSession, request: ReservationRequest, key: SlotKey) -> Booking:
        restaurant = await load_restaurant(session, request.restaurant_id)
        self._validate_against(request, restaurant)

        # Check: a full slot fails fast without a write.
        remaining = await self._resolver.remaining_capacity_in(
            session, restaurant, request.date, request.time, request.table_type
        )
        if remaining <= 0:
            raise SlotUnavailable(
                table_type=request.table_type,
                time=request.time.isoformat(),
                date=request.date.isoformat(),
            )

        # Commit: conditional on the counter still having room.
        table_count = restaurant.tables[request.table_type].count
        if not await claim_slot(session, key, table_count):
            raise _CommitRejected("slot filled between check and commit")

        try:
            return await self._store.create_in(
                session,
                owner_id=request.owner_id,
                restaurant_id=request.restaurant_id,
                date=request.date,
                time=request.time,
                party_size=request.party_size,
                table_type=request.table_type,
                status=lifecycle.initial_status(restaurant.auto_confirm),
                contact_name=request.contact_name.strip(),
                contact_email=request.contact_email,
                contact_phone=request.contact_phone,
                special_requests=request.special_requests,
            )
        except sa_exc.IntegrityError as exc:
            # Confirmation code taken by a concurrent insert.
            raise _CommitRejected("confirmation code collision") from exc

    async def reserve(self, request: ReservationRequest) -> Booking:
        """Commit a booking for ``request`` or raise ``SlotUnavailable``.

        Raises ``ValidationError`` before any capacity work when the request
        is malformed, and ``NotFound`` for an unknown restaurant.
        """
        self._validate_shape(request)
        key = SlotKey(request.restaurant_id, request.date, request.time, request.table_type)

        lock = self._acquire_lock(key)
        try:
            async with lock:
                for attempt in range(1, self.max_attempts + 1):
                    try:
                        booking = await self._store.run(
                            lambda session: self._attempt(session, request, key),
                            description="reserve",
                        )
                    except (_CommitRejected, SlotCounterConflict) as exc:
                        logger.warning(
                            "Reservation commit rejected for %s %s %s %s (attempt %d/%d): %s",
                            key.restaurant_id,
                            key.date,
                            key.time,
                            key.table_type,
                            attempt,
                            self.max_attempts,
                            exc,
                        )
                        if attempt < self.max_attempts:
                            await asyncio.sleep(self.backoff_ms * attempt / 1000)
                        continue
                    logger.info(
                        "Reserved %s for owner %s: %s %s %s x%d (%s)",
                        booking.confirmation_code,
                        booking.owner_id,
                        booking.date,
                        booking.time,
                        booking.table_type,
                        booking.party_size,
                        booking.status,
                    )
                    return booking
        finally:
            self._release_lock(key)

        raise SlotUnavailable(
            table_type=request.table_type,
            time=request.time.isoformat(),
            date=request.date.isoformat(),
        )
