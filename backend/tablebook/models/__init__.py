"""SQLAlchemy models for TableBook.

All models are imported here so that Alembic's autogenerate can discover
them via Base.metadata. If you add a new model, import it in this file.
"""

from tablebook.models.booking import Booking
from tablebook.models.restaurant import Restaurant, RestaurantTableType
from tablebook.models.slot_counter import SlotCounter

__all__ = [
    "Booking",
    "Restaurant",
    "RestaurantTableType",
    "SlotCounter",
]
