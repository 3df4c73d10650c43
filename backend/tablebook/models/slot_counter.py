"""Slot counter — active-booking tally per (restaurant, date, time, table type).

The conditional commit increments ``booked`` only while it is below the
table count, so the row acts as the compare-and-swap target for a slot.
"""

import uuid
import datetime

from sqlalchemy import Date, ForeignKey, Integer, String, Time, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from tablebook.database import Base, UUIDPrimaryKeyMixin


class SlotCounter(UUIDPrimaryKeyMixin, Base):
    """Number of pending/confirmed bookings holding a table in one slot."""

    __tablename__ = "slot_counters"

    restaurant_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("restaurants.id", ondelete="CASCADE"),
        nullable=False,
    )
    date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    time: Mapped[datetime.time] = mapped_column(Time, nullable=False)
    table_type: Mapped[str] = mapped_column(String(50), nullable=False)
    booked: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (
        UniqueConstraint("restaurant_id", "date", "time", "table_type", name="uq_slot_counter_key"),
    )

    def __repr__(self) -> str:
        return f"<SlotCounter({self.restaurant_id}, {self.date} {self.time}, {self.table_type!r}, booked={self.booked})>"
