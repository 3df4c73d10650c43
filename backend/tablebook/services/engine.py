"""Reservation engine — the public contract of the booking subsystem.

Wires the store, availability resolver, reservation coordinator,
subscription broker and notifier together and adds the status-changing
operations (customer cancellation and operator transitions), which use
compare-and-set on the booking's current status.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import date, datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tablebook.database import utcnow
from tablebook.exceptions import InvalidTransition, ValidationError
from tablebook.models.booking import Booking
from tablebook.schemas.booking import BookingResponse
from tablebook.services import lifecycle
from tablebook.services import notifications as notif
from tablebook.services.availability import AvailabilityResolver, AvailabilitySlot
from tablebook.services.booking_store import BookingFilters, BookingStore
from tablebook.services.lifecycle import OperatorContext
from tablebook.services.reservations import ReservationRequest, SlotReservationCoordinator
from tablebook.services.slot_counters import SlotKey, release_slot
from tablebook.services.stats import BookingStats, compute_booking_stats
from tablebook.services.subscriptions import OnChange, SubscriptionBroker

logger = logging.getLogger(__name__)

# Consulted before pending -> confirmed when a restaurant requires payment.
PaymentHook = Callable[[Booking], Awaitable[bool]]

_NOTIFICATION_FOR_EVENT = {
    "created": notif.BOOKING_CREATED,
    lifecycle.CONFIRMED: notif.BOOKING_CONFIRMED,
    lifecycle.CANCELLED: notif.BOOKING_CANCELLED,
}


class ReservationEngine:
    """Availability, reservation, lifecycle and live booking lists."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        clock: Callable[[], datetime] = datetime.now,
        notifier: notif.Notifier | None = None,
        payment_hook: PaymentHook | None = None,
        store: BookingStore | None = None,
        reserve_max_attempts: int | None = None,
        reserve_backoff_ms: int | None = None,
    ) -> None:
        self.clock = clock
        self.store = store or BookingStore(session_factory)
        self.resolver = AvailabilityResolver(self.store, clock)
        self.coordinator = SlotReservationCoordinator(
            self.store,
            self.resolver,
            clock,
            max_attempts=reserve_max_attempts,
            backoff_ms=reserve_backoff_ms,
        )
        self.broker = SubscriptionBroker(self._load_snapshot)
        self.notifier = notifier or notif.Notifier()
        self.payment_hook = payment_hook

    async def _load_snapshot(self, filters: BookingFilters) -> list[BookingResponse]:
        bookings = await self.store.list_matching(filters)
        return [BookingResponse.model_validate(b) for b in bookings]

    async def _announce(self, booking: Booking, event: str) -> None:
        await self.broker.publish(booking, event)
        notif_event = _NOTIFICATION_FOR_EVENT.get(event)
        if notif_event is not None:
            self.notifier.notify(notif_event, booking)

    # ------------------------------------------------------------------
    # Availability and reservation
    # ------------------------------------------------------------------

    async def compute_availability(self, restaurant_id: uuid.UUID, on: date, party_size: int) -> list[AvailabilitySlot]:
        return await self.resolver.compute_availability(restaurant_id, on, party_size)

    async def reserve(self, request: ReservationRequest) -> Booking:
        booking = await self.coordinator.reserve(request)
        await self._announce(booking, "created")
        if booking.status == lifecycle.CONFIRMED:
            self.notifier.notify(notif.BOOKING_CONFIRMED, booking)
        return booking

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _change_status(
        self,
        session: AsyncSession,
        booking: Booking,
        target: str,
        reason: str | None,
    ) -> Booking:
        previous = booking.status
        lifecycle.assert_transition(previous, target)

        values: dict[str, Any] = {}
        if target == lifecycle.CANCELLED:
            values = {"cancelled_at": utcnow(), "cancellation_reason": reason}

        changed = await self.store.compare_and_set_status(
            session, booking.id, expected_status=previous, status=target, **values
        )
        if not changed:
            await session.refresh(booking)
            raise InvalidTransition(
                f"Booking status changed to {booking.status} before this {target} request was applied",
                current=booking.status,
                target=target,
            )

        if previous in lifecycle.ACTIVE_STATUSES and target not in lifecycle.ACTIVE_STATUSES:
            await release_slot(session, SlotKey.of(booking))

        await session.refresh(booking)
        return booking

    async def cancel(self, booking_id: uuid.UUID, owner_id: str, reason: str | None = None) -> Booking:
        """Customer-initiated cancellation of the caller's own booking."""

        async def work(session: AsyncSession) -> Booking:
            booking = await self.store.get_in(session, booking_id)
            lifecycle.authorize_owner(booking.owner_id, owner_id)
            return await self._change_status(session, booking, lifecycle.CANCELLED, reason)

        booking = await self.store.run(work, description="cancel booking")
        logger.info("Booking %s cancelled by owner %s", booking.confirmation_code, owner_id)
        await self._announce(booking, "cancelled")
        return booking

    async def transition(
        self,
        booking_id: uuid.UUID,
        operator: OperatorContext,
        target: str,
        reason: str | None = None,
    ) -> Booking:
        """Operator-initiated status change (confirm, complete, no-show, decline)."""

        async def work(session: AsyncSession) -> Booking:
            booking = await self.store.get_in(session, booking_id)
            lifecycle.authorize_operator(operator, booking.restaurant_id, target)
            lifecycle.assert_transition(booking.status, target)

            if target in lifecycle.POST_SERVICE_TARGETS:
                if datetime.combine(booking.date, booking.time) > self.clock():
                    raise InvalidTransition(
                        f"Cannot mark a booking {target} before its reservation time",
                        current=booking.status,
                        target=target,
                    )
            if target == lifecycle.CONFIRMED and self.payment_hook is not None:
                if not await self.payment_hook(booking):
                    raise InvalidTransition("Payment is required before this booking can be confirmed", target=target)

            return await self._change_status(session, booking, target, reason)

        booking = await self.store.run(work, description=f"transition booking to {target}")
        logger.info("Booking %s set to %s by operator %s", booking.confirmation_code, target, operator.operator_id)
        await self._announce(booking, target)
        return booking

    # ------------------------------------------------------------------
    # Reads and edits
    # ------------------------------------------------------------------

    async def get_booking(self, booking_id: uuid.UUID, owner_id: str) -> Booking:
        return await self.store.get_by_id(booking_id, owner_id)

    async def get_by_code(self, confirmation_code: str, owner_id: str) -> Booking:
        return await self.store.get_by_code(confirmation_code, owner_id)

    async def list_by_owner(self, owner_id: str, filters: BookingFilters | None = None) -> list[Booking]:
        return await self.store.list_by_owner(owner_id, filters)

    async def list_by_restaurant(
        self, restaurant_id: uuid.UUID, operator: OperatorContext, filters: BookingFilters | None = None
    ) -> list[Booking]:
        lifecycle.authorize_restaurant(operator, restaurant_id)
        return await self.store.list_by_restaurant(restaurant_id, filters)

    async def update_booking(self, booking_id: uuid.UUID, owner_id: str, patch: dict[str, Any]) -> Booking:
        booking = await self.store.update(booking_id, owner_id, patch)
        await self._announce(booking, "updated")
        return booking

    async def booking_stats(
        self,
        restaurant_id: uuid.UUID,
        operator: OperatorContext,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> BookingStats:
        lifecycle.authorize_restaurant(operator, restaurant_id)
        if date_from and date_to and date_from > date_to:
            raise ValidationError("date_from must be on or before date_to")
        return await compute_booking_stats(self.store, restaurant_id, date_from, date_to)

    # ------------------------------------------------------------------
    # Live subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, owner_id: str, filters: BookingFilters | None, on_change: OnChange) -> Callable[[], None]:
        """Live list of the owner's bookings. Returns an idempotent ``unsubscribe``."""
        return self.broker.subscribe((filters or BookingFilters()).with_owner(owner_id), on_change)

    def subscribe_restaurant(
        self,
        restaurant_id: uuid.UUID,
        operator: OperatorContext,
        filters: BookingFilters | None,
        on_change: OnChange,
    ) -> Callable[[], None]:
        """Live list of a restaurant's bookings for its staff."""
        lifecycle.authorize_restaurant(operator, restaurant_id)
        filters = filters or BookingFilters()
        return self.broker.subscribe(
            BookingFilters(
                restaurant_id=restaurant_id,
                date_from=filters.date_from,
                date_to=filters.date_to,
                statuses=filters.statuses,
            ),
            on_change,
        )

    def stream(self, filters: BookingFilters) -> AsyncIterator[list[BookingResponse]]:
        return self.broker.stream(filters)

    async def close(self) -> None:
        await self.broker.close()
        await self.notifier.drain()
