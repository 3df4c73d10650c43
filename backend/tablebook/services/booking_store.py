"""Booking store — ownership-checked persistence for bookings.

Every public read or write opens its own transaction through
:meth:`BookingStore.run`, which retries transient database faults a bounded
number of times before surfacing ``ServiceUnavailable``. Components that
need several statements in one transaction (the reservation coordinator,
status changes) pass a function to ``run`` and use the ``*_in`` helpers
with the session it receives.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import date
from typing import Any, TypeVar

from sqlalchemy import exc as sa_exc
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tablebook.config import settings
from tablebook.database import utcnow
from tablebook.exceptions import (
    NotFound,
    ServiceUnavailable,
    SlotUnavailable,
    TransientStoreError,
    Unauthorized,
    ValidationError,
)
from tablebook.models.booking import IMMUTABLE_FIELDS, Booking
from tablebook.services.confirmation_codes import ConfirmationCodeGenerator
from tablebook.services.directory import load_restaurant
from tablebook.services.lifecycle import ACTIVE_STATUSES, ALL_STATUSES
from tablebook.services.slot_counters import SlotCounterConflict, SlotKey, claim_slot

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Fields a customer may edit through ``update``.
EDITABLE_FIELDS = frozenset({"special_requests"})

# Fields that only change through lifecycle transitions.
LIFECYCLE_FIELDS = frozenset({"status", "cancelled_at", "cancellation_reason", "updated_at"})

MAX_CODE_ATTEMPTS = 5


@dataclass(frozen=True)
class BookingFilters:
    """Query filters for booking lists and live subscriptions."""

    owner_id: str | None = None
    restaurant_id: uuid.UUID | None = None
    date_from: date | None = None
    date_to: date | None = None
    statuses: frozenset[str] | None = None

    def __post_init__(self) -> None:
        if self.statuses is not None:
            unknown = set(self.statuses) - ALL_STATUSES
            if unknown:
                raise ValidationError(f"Unknown booking status filter: {sorted(unknown)}")
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValidationError("date_from must be on or before date_to")

    def apply(self, query):
        if self.owner_id is not None:
            query = query.where(Booking.owner_id == self.owner_id)
        if self.restaurant_id is not None:
            query = query.where(Booking.restaurant_id == self.restaurant_id)
        if self.date_from is not None:
            query = query.where(Booking.date >= self.date_from)
        if self.date_to is not None:
            query = query.where(Booking.date <= self.date_to)
        if self.statuses:
            query = query.where(Booking.status.in_(sorted(self.statuses)))
        return query

    def in_scope(self, booking: Any) -> bool:
        """Whether a change to ``booking`` can affect the filtered list.

        Status is deliberately ignored: a booking leaving the status filter
        still changes the list.
        """
        if self.owner_id is not None and booking.owner_id != self.owner_id:
            return False
        if self.restaurant_id is not None and booking.restaurant_id != self.restaurant_id:
            return False
        if self.date_from is not None and booking.date < self.date_from:
            return False
        if self.date_to is not None and booking.date > self.date_to:
            return False
        return True

    def with_owner(self, owner_id: str | None) -> BookingFilters:
        return BookingFilters(
            owner_id=owner_id,
            restaurant_id=self.restaurant_id,
            date_from=self.date_from,
            date_to=self.date_to,
            statuses=self.statuses,
        )


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, TransientStoreError):
        return True
    if isinstance(exc, (sa_exc.OperationalError, sa_exc.InterfaceError, sa_exc.TimeoutError)):
        return True
    return isinstance(exc, sa_exc.DBAPIError) and exc.connection_invalidated


class BookingStore:
    """Durable keyed storage of bookings."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        code_generator: ConfirmationCodeGenerator | None = None,
        max_attempts: int | None = None,
        backoff_ms: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.code_generator = code_generator or ConfirmationCodeGenerator()
        self.max_attempts = max_attempts or settings.store_max_attempts
        self.backoff_ms = settings.store_backoff_ms if backoff_ms is None else backoff_ms

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def run(self, work: Callable[[AsyncSession], Awaitable[T]], *, description: str = "store operation") -> T:
        """Run ``work`` in one transaction, retrying transient faults.

        Business errors raised by ``work`` roll the transaction back and
        propagate unchanged.
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                async with self._session_factory() as session:
                    async with session.begin():
                        return await work(session)
            except Exception as exc:
                if not _is_transient(exc):
                    raise
                if attempt == self.max_attempts:
                    logger.error("%s failed after %d attempts: %s", description, attempt, exc)
                    raise ServiceUnavailable() from exc
                logger.warning("%s hit a transient fault (attempt %d/%d): %s", description, attempt, self.max_attempts, exc)
                await asyncio.sleep(self.backoff_ms * attempt / 1000)
        raise AssertionError("unreachable")

    # ------------------------------------------------------------------
    # In-transaction helpers
    # ------------------------------------------------------------------

    async def code_exists_in(self, session: AsyncSession, code: str) -> bool:
        result = await session.execute(select(Booking.id).where(Booking.confirmation_code == code).limit(1))
        return result.first() is not None

    async def create_in(self, session: AsyncSession, **fields: Any) -> Booking:
        """Insert a booking with a freshly generated, verified-unique confirmation code.

        Does not touch the slot counter; callers inserting an active booking
        must already have claimed its table.
        """
        if "confirmation_code" in fields or "id" in fields:
            raise ValidationError("id and confirmation_code are assigned by the store")

        for _ in range(MAX_CODE_ATTEMPTS):
            code = self.code_generator.generate()
            if not await self.code_exists_in(session, code):
                break
            logger.warning("Confirmation code collision on %s, regenerating", code)
        else:
            raise TransientStoreError("Could not allocate a unique confirmation code")

        now = utcnow()
        booking = Booking(confirmation_code=code, created_at=now, updated_at=now, **fields)
        session.add(booking)
        await session.flush()
        return booking

    async def get_in(self, session: AsyncSession, booking_id: uuid.UUID) -> Booking:
        booking = await session.get(Booking, booking_id)
        if booking is None:
            raise NotFound("Booking not found", booking_id=str(booking_id))
        return booking

    async def compare_and_set_status(
        self,
        session: AsyncSession,
        booking_id: uuid.UUID,
        *,
        expected_status: str,
        status: str,
        **extra: Any,
    ) -> bool:
        """Set ``status`` only if the row still has ``expected_status``.

        Returns False when another writer changed the status first.
        """
        stmt = (
            update(Booking)
            .where(Booking.id == booking_id, Booking.status == expected_status)
            .values(status=status, updated_at=utcnow(), **extra)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount == 1

    async def list_in(self, session: AsyncSession, filters: BookingFilters) -> list[Booking]:
        query = filters.apply(select(Booking)).order_by(
            Booking.date.desc(), Booking.time.desc(), Booking.created_at.desc()
        )
        result = await session.execute(query)
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def create(self, **fields: Any) -> Booking:
        """Insert a booking, holding a table for it when its status is active.

        Used for operator entries such as walk-ins; customer reservations go
        through the coordinator. Raises ``SlotUnavailable`` when a pending or
        confirmed booking would exceed the slot's table count.
        """
        status = fields.get("status")
        if status not in ALL_STATUSES:
            raise ValidationError(f"Unknown booking status {status!r}")

        async def work(session: AsyncSession) -> Booking:
            restaurant = await load_restaurant(session, fields["restaurant_id"])
            table = restaurant.tables.get(fields["table_type"])
            if table is None:
                raise ValidationError(
                    f"Unknown table type {fields['table_type']!r}",
                    table_type=fields["table_type"],
                    available_types=sorted(restaurant.tables),
                )
            if status in ACTIVE_STATUSES:
                key = SlotKey(restaurant.id, fields["date"], fields["time"], table.table_type)
                try:
                    claimed = await claim_slot(session, key, table.count)
                except SlotCounterConflict as exc:
                    raise TransientStoreError(str(exc)) from exc
                if not claimed:
                    raise SlotUnavailable(
                        table_type=key.table_type,
                        time=key.time.isoformat(),
                        date=key.date.isoformat(),
                    )
            return await self.create_in(session, **fields)

        return await self.run(work, description="create booking")

    async def get_by_id(self, booking_id: uuid.UUID, owner_id: str | None = None) -> Booking:
        """Fetch a booking. When ``owner_id`` is given it must match the booking's owner."""

        async def work(session: AsyncSession) -> Booking:
            booking = await self.get_in(session, booking_id)
            if owner_id is not None and booking.owner_id != owner_id:
                raise Unauthorized("You can only view your own bookings")
            return booking

        return await self.run(work, description="get booking")

    async def get_by_code(self, confirmation_code: str, owner_id: str | None = None) -> Booking:
        async def work(session: AsyncSession) -> Booking:
            result = await session.execute(
                select(Booking).where(Booking.confirmation_code == confirmation_code.upper())
            )
            booking = result.scalar_one_or_none()
            if booking is None:
                raise NotFound("Booking not found", confirmation_code=confirmation_code)
            if owner_id is not None and booking.owner_id != owner_id:
                raise Unauthorized("You can only view your own bookings")
            return booking

        return await self.run(work, description="get booking by code")

    async def list_matching(self, filters: BookingFilters) -> list[Booking]:
        """Bookings matching ``filters``, newest reservation first."""

        async def work(session: AsyncSession) -> list[Booking]:
            return await self.list_in(session, filters)

        return await self.run(work, description="list bookings")

    async def list_by_owner(self, owner_id: str, filters: BookingFilters | None = None) -> list[Booking]:
        return await self.list_matching((filters or BookingFilters()).with_owner(owner_id))

    async def list_by_restaurant(self, restaurant_id: uuid.UUID, filters: BookingFilters | None = None) -> list[Booking]:
        filters = filters or BookingFilters()
        return await self.list_matching(
            BookingFilters(
                owner_id=filters.owner_id,
                restaurant_id=restaurant_id,
                date_from=filters.date_from,
                date_to=filters.date_to,
                statuses=filters.statuses,
            )
        )

    async def update(self, booking_id: uuid.UUID, owner_id: str, patch: dict[str, Any]) -> Booking:
        """Apply a customer edit to the caller's own booking.

        Immutable fields are rejected with ``ValidationError``; status and
        cancellation details only change through lifecycle transitions.
        """
        immutable = sorted(set(patch) & IMMUTABLE_FIELDS)
        if immutable:
            raise ValidationError(f"Cannot modify immutable fields: {', '.join(immutable)}", fields=immutable)
        lifecycle = sorted(set(patch) & LIFECYCLE_FIELDS)
        if lifecycle:
            raise ValidationError(
                "Status changes go through cancel or transition, not update",
                fields=lifecycle,
            )
        unknown = sorted(set(patch) - EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown booking fields: {', '.join(unknown)}", fields=unknown)

        async def work(session: AsyncSession) -> Booking:
            booking = await self.get_in(session, booking_id)
            if booking.owner_id != owner_id:
                raise Unauthorized("You can only change your own bookings")
            for field, value in patch.items():
                setattr(booking, field, value)
            booking.updated_at = utcnow()
            await session.flush()
            return booking

        booking = await self.run(work, description="update booking")
        logger.info("Updated booking %s (%s)", booking.id, ", ".join(sorted(patch)))
        return booking
