"""Restaurant directory models — service hours, booking policy and table inventory.

The reservation engine only reads these tables.
"""

import uuid
from datetime import time

from sqlalchemy import JSON, Boolean, ForeignKey, Integer, String, Time, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tablebook.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Restaurant(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A restaurant that accepts table reservations."""

    __tablename__ = "restaurants"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    opens_at: Mapped[time] = mapped_column(Time, nullable=False)
    closes_at: Mapped[time] = mapped_column(Time, nullable=False)  # last seating is before this
    slot_interval_minutes: Mapped[int | None] = mapped_column(Integer, default=None)  # None = app default
    auto_confirm: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    max_days_in_advance: Mapped[int | None] = mapped_column(Integer, default=None)
    blackout_dates: Mapped[list | None] = mapped_column(JSON, default=list)  # ISO dates

    table_types: Mapped[list["RestaurantTableType"]] = relationship(
        back_populates="restaurant", lazy="selectin", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Restaurant(id={self.id}, name={self.name!r})>"


class RestaurantTableType(UUIDPrimaryKeyMixin, Base):
    """``count`` tables of one type, each seating up to ``capacity`` guests."""

    __tablename__ = "restaurant_table_types"

    restaurant_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("restaurants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    table_type: Mapped[str] = mapped_column(String(50), nullable=False)  # standard, booth, outdoor, private...
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    count: Mapped[int] = mapped_column(Integer, nullable=False)

    restaurant: Mapped["Restaurant"] = relationship(back_populates="table_types")

    __table_args__ = (UniqueConstraint("restaurant_id", "table_type", name="uq_table_type_per_restaurant"),)

    def __repr__(self) -> str:
        return f"<RestaurantTableType({self.table_type!r}, capacity={self.capacity}, count={self.count})>"
