"""Tests for restaurant booking statistics."""

from datetime import time

import pytest

from conftest import OPERATOR_ID, OTHER_CUSTOMER_ID, on
from tablebook.exceptions import Unauthorized, ValidationError
from tablebook.services.lifecycle import OperatorContext


@pytest.fixture
def operator(restaurant) -> OperatorContext:
    return OperatorContext(operator_id=OPERATOR_ID, restaurant_ids=frozenset({restaurant.id}))


async def test_counts_and_breakdowns(booking_engine, make_request, restaurant, operator):
    await booking_engine.reserve(make_request(date=on(1), time=time(19, 0), party_size=2))
    await booking_engine.reserve(make_request(date=on(1), time=time(19, 30), party_size=4))
    booth = await booking_engine.reserve(make_request(date=on(2), time=time(20, 0), party_size=6, table_type="booth"))
    cancelled = await booking_engine.reserve(make_request(date=on(2), time=time(17, 0), owner_id=OTHER_CUSTOMER_ID))
    await booking_engine.transition(booth.id, operator, "confirmed")
    await booking_engine.cancel(cancelled.id, OTHER_CUSTOMER_ID)

    stats = await booking_engine.booking_stats(restaurant.id, operator)

    assert stats.total_bookings == 4
    assert stats.by_status["pending"] == 2
    assert stats.by_status["confirmed"] == 1
    assert stats.by_status["cancelled"] == 1
    assert stats.by_status["no-show"] == 0
    assert stats.total_covers == 12
    assert stats.average_party_size == 4.0
    assert stats.peak_hours == {"19": 2, "20": 1}
    assert stats.by_table_type == {"booth": 1, "standard": 2}
    assert sum(stats.by_weekday.values()) == 3


async def test_date_range(booking_engine, make_request, restaurant, operator):
    await booking_engine.reserve(make_request(date=on(1)))
    await booking_engine.reserve(make_request(date=on(5)))
    stats = await booking_engine.booking_stats(restaurant.id, operator, date_from=on(3), date_to=on(10))
    assert stats.total_bookings == 1


async def test_empty(booking_engine, restaurant, operator):
    stats = await booking_engine.booking_stats(restaurant.id, operator)
    assert stats.total_bookings == 0
    assert stats.average_party_size == 0.0


async def test_inverted_range(booking_engine, restaurant, operator):
    with pytest.raises(ValidationError):
        await booking_engine.booking_stats(restaurant.id, operator, date_from=on(5), date_to=on(1))


async def test_other_restaurant_operator(booking_engine, restaurant):
    stranger = OperatorContext(operator_id="op-2", restaurant_ids=frozenset())
    with pytest.raises(Unauthorized):
        await booking_engine.booking_stats(restaurant.id, stranger)
