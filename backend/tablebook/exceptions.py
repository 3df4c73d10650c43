"""Reservation engine error taxonomy.

Business outcomes (``ValidationError``, ``SlotUnavailable``, ``NotFound``,
``Unauthorized``, ``InvalidTransition``) are raised once and surfaced to the
caller verbatim. ``TransientStoreError`` is retried where it occurs; when the
retries run out it becomes ``ServiceUnavailable`` so callers never confuse
"no tables" with "the store is down".
"""


class BookingError(Exception):
    """Base class for every error the engine raises."""

    code = "booking_error"

    def __init__(self, message: str, **detail) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message, **self.detail}


class ValidationError(BookingError):
    """Malformed or out-of-range request (party size, past date, immutable field...)."""

    code = "validation_error"


class SlotUnavailable(BookingError):
    """No remaining capacity for the requested slot, including lost races."""

    code = "slot_unavailable"

    def __init__(self, message: str = "That time is no longer available", **detail) -> None:
        detail.setdefault("hint", "Try a different time or table type.")
        super().__init__(message, **detail)


class NotFound(BookingError):
    """Booking or restaurant absent."""

    code = "not_found"


class Unauthorized(BookingError):
    """Caller does not own the booking, or lacks the operator role."""

    code = "unauthorized"


class InvalidTransition(BookingError):
    """Status change is illegal from the current status, or lost a compare-and-set."""

    code = "invalid_transition"


class TransientStoreError(BookingError):
    """Infrastructure fault unrelated to business logic. Retried internally."""

    code = "transient_store_error"


class ServiceUnavailable(BookingError):
    """Transient store faults persisted after all retries."""

    code = "service_unavailable"

    def __init__(self, message: str = "Booking service is temporarily unavailable", **detail) -> None:
        super().__init__(message, **detail)
