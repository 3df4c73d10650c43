"""Booking model — table reservations at a restaurant."""

import uuid
import datetime

from sqlalchemy import Date, ForeignKey, Index, Integer, String, Text, Time
from sqlalchemy.orm import Mapped, mapped_column

from tablebook.database import Base, TimestampMixin, UUIDPrimaryKeyMixin

# Fields fixed at creation. Only status, cancellation details and
# special_requests change afterwards.
IMMUTABLE_FIELDS = frozenset(
    {
        "id",
        "owner_id",
        "restaurant_id",
        "date",
        "time",
        "party_size",
        "table_type",
        "confirmation_code",
        "created_at",
    }
)


class Booking(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A customer's reservation of one table of a given type for one slot."""

    __tablename__ = "bookings"

    owner_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    restaurant_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("restaurants.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    time: Mapped[datetime.time] = mapped_column(Time, nullable=False)
    party_size: Mapped[int] = mapped_column(Integer, nullable=False)
    table_type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        default="pending",
        index=True,
    )  # pending, confirmed, cancelled, completed, no-show

    contact_name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    contact_phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    special_requests: Mapped[str | None] = mapped_column(Text, nullable=True)

    confirmation_code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    cancelled_at: Mapped[datetime.datetime | None] = mapped_column(nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_bookings_slot", "restaurant_id", "date", "time", "table_type"),
        Index("ix_bookings_owner_date", "owner_id", "date"),
    )

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, code={self.confirmation_code!r}, "
            f"restaurant_id={self.restaurant_id}, status={self.status})>"
        )
