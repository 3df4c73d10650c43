"""Notification channel — fire-and-forget guest messages for booking events.

Delivery itself (email/SMS) belongs to an external provider. This module
renders the message and hands it to a sender coroutine; the default sender
only logs. A failed send is logged and never affects the booking.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from tablebook.models.booking import Booking

logger = logging.getLogger(__name__)

BOOKING_CREATED = "booking_created"
BOOKING_CONFIRMED = "booking_confirmation"
BOOKING_CANCELLED = "booking_cancellation"

TEMPLATES = {
    BOOKING_CREATED: {
        "subject": "Booking request received: {confirmation_code}",
        "body": (
            "Dear {contact_name},\n\n"
            "We have received your table request.\n\n"
            "Booking Details:\n"
            "- Reference: {confirmation_code}\n"
            "- Date: {date}\n"
            "- Time: {time}\n"
            "- Guests: {party_size}\n"
            "- Table: {table_type}\n\n"
            "We will let you know as soon as it is confirmed.\n"
        ),
    },
    BOOKING_CONFIRMED: {
        "subject": "Booking confirmed: {confirmation_code}",
        "body": (
            "Dear {contact_name},\n\n"
            "Your table for {party_size} on {date} at {time} is confirmed.\n\n"
            "Reference: {confirmation_code}\n\n"
            "We look forward to welcoming you!\n"
        ),
    },
    BOOKING_CANCELLED: {
        "subject": "Booking cancelled: {confirmation_code}",
        "body": (
            "Dear {contact_name},\n\n"
            "Your booking {confirmation_code} for {date} at {time} has been cancelled.\n"
            "{reason_line}\n"
            "If you have any questions, please don't hesitate to contact us.\n"
        ),
    },
}

Sender = Callable[[Booking, str, str], Awaitable[None]]


def render(event: str, booking: Booking) -> tuple[str, str]:
    """Return ``(subject, body)`` for a booking event."""
    template = TEMPLATES[event]
    values = {
        "contact_name": booking.contact_name,
        "confirmation_code": booking.confirmation_code,
        "date": booking.date.isoformat(),
        "time": booking.time.strftime("%H:%M"),
        "party_size": booking.party_size,
        "table_type": booking.table_type,
        "reason_line": f"Reason: {booking.cancellation_reason}\n" if booking.cancellation_reason else "",
    }
    return template["subject"].format(**values), template["body"].format(**values)


async def log_sender(booking: Booking, subject: str, body: str) -> None:
    logger.info(
        "Notification for booking %s -> %s: %s",
        booking.confirmation_code,
        booking.contact_email or booking.contact_phone or "no contact",
        subject,
    )


class Notifier:
    """Schedules notification sends without awaiting them."""

    def __init__(self, sender: Sender = log_sender) -> None:
        self._sender = sender
        self._pending: set[asyncio.Task] = set()

    def notify(self, event: str, booking: Booking) -> None:
        if event not in TEMPLATES:
            logger.warning("No notification template for event %s", event)
            return
        task = asyncio.create_task(self._deliver(event, booking))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, event: str, booking: Booking) -> None:
        try:
            subject, body = render(event, booking)
            await self._sender(booking, subject, body)
        except Exception:
            logger.exception("Failed to send %s notification for booking %s", event, booking.confirmation_code)

    async def drain(self) -> None:
        """Wait for in-flight sends (used on shutdown and in tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
