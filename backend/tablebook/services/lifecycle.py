"""Booking lifecycle — legal status transitions and who may request them.

The transition table is pure and time-agnostic. Callers are responsible for
time-based rules such as only marking a booking completed or no-show once
its reservation time has passed.
"""

import uuid
from dataclasses import dataclass

from tablebook.exceptions import InvalidTransition, Unauthorized

PENDING = "pending"
CONFIRMED = "confirmed"
CANCELLED = "cancelled"
COMPLETED = "completed"
NO_SHOW = "no-show"

ALL_STATUSES: frozenset[str] = frozenset({PENDING, CONFIRMED, CANCELLED, COMPLETED, NO_SHOW})

# Bookings in these statuses hold a table.
ACTIVE_STATUSES: frozenset[str] = frozenset({PENDING, CONFIRMED})
TERMINAL_STATUSES: frozenset[str] = frozenset({CANCELLED, COMPLETED, NO_SHOW})

TRANSITIONS: dict[str, frozenset[str]] = {
    PENDING: frozenset({CONFIRMED, CANCELLED}),
    CONFIRMED: frozenset({CANCELLED, COMPLETED, NO_SHOW}),
    CANCELLED: frozenset(),
    COMPLETED: frozenset(),
    NO_SHOW: frozenset(),
}

# Targets reachable through the operator path. Operators cancelling a
# booking is how a restaurant declines a request.
OPERATOR_TARGETS: frozenset[str] = frozenset({CONFIRMED, COMPLETED, NO_SHOW, CANCELLED})

# Only reachable once the reservation time has elapsed.
POST_SERVICE_TARGETS: frozenset[str] = frozenset({COMPLETED, NO_SHOW})


@dataclass(frozen=True)
class OperatorContext:
    """Restaurant staff identity as vouched for by the identity provider.

    ``restaurant_ids`` of ``None`` means the operator may manage every
    restaurant.
    """

    operator_id: str
    restaurant_ids: frozenset[uuid.UUID] | None = None

    def can_manage(self, restaurant_id: uuid.UUID) -> bool:
        return self.restaurant_ids is None or restaurant_id in self.restaurant_ids


def initial_status(auto_confirm: bool) -> str:
    """Status a new booking starts in under the restaurant's policy."""
    return CONFIRMED if auto_confirm else PENDING


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def assert_transition(current: str, target: str) -> None:
    """Raise ``InvalidTransition`` unless ``current -> target`` is legal."""
    if target not in ALL_STATUSES:
        raise InvalidTransition(f"Unknown booking status: {target!r}", current=current, target=target)
    if not can_transition(current, target):
        raise InvalidTransition(
            f"Cannot move a booking from {current} to {target}",
            current=current,
            target=target,
        )


def authorize_owner(booking_owner_id: str, caller_owner_id: str) -> None:
    """Customer-initiated mutations are only allowed on the caller's own bookings."""
    if booking_owner_id != caller_owner_id:
        raise Unauthorized("You can only change your own bookings")


def authorize_restaurant(operator: OperatorContext, restaurant_id: uuid.UUID) -> None:
    if not operator.can_manage(restaurant_id):
        raise Unauthorized("Operator is not authorized for this restaurant")


def authorize_operator(operator: OperatorContext, restaurant_id: uuid.UUID, target: str) -> None:
    """Operators may only drive operator transitions at restaurants they manage."""
    if target not in OPERATOR_TARGETS:
        raise InvalidTransition(f"Operators cannot set status {target!r}", target=target)
    authorize_restaurant(operator, restaurant_id)
