"""Tests for live booking-list subscriptions."""

import asyncio
from datetime import time

import pytest

from conftest import CUSTOMER_ID, OPERATOR_ID, OTHER_CUSTOMER_ID
from tablebook.exceptions import Unauthorized
from tablebook.services.booking_store import BookingFilters
from tablebook.services.lifecycle import OperatorContext


def _codes(snapshot) -> list[str]:
    return [b.confirmation_code for b in snapshot]


async def test_initial_snapshot(booking_engine, make_request):
    existing = await booking_engine.reserve(make_request())
    snapshots = []
    booking_engine.subscribe(CUSTOMER_ID, None, snapshots.append)
    await booking_engine.broker.drain()
    assert [_codes(s) for s in snapshots] == [[existing.confirmation_code]]


async def test_changes_are_delivered_in_commit_order(booking_engine, make_request):
    snapshots = []
    booking_engine.subscribe(CUSTOMER_ID, None, snapshots.append)
    await booking_engine.broker.drain()

    first = await booking_engine.reserve(make_request(time=time(18, 0)))
    await booking_engine.broker.drain()
    second = await booking_engine.reserve(make_request(time=time(20, 0)))
    await booking_engine.broker.drain()
    await booking_engine.cancel(first.id, CUSTOMER_ID)
    await booking_engine.broker.drain()

    assert len(snapshots) == 4
    assert snapshots[0] == []
    assert _codes(snapshots[1]) == [first.confirmation_code]
    # Latest reservation first.
    assert _codes(snapshots[2]) == [second.confirmation_code, first.confirmation_code]
    assert [b.status for b in snapshots[3]] == ["pending", "cancelled"]


async def test_burst_of_changes_ends_consistent(booking_engine, make_request):
    snapshots = []
    booking_engine.subscribe(CUSTOMER_ID, None, snapshots.append)

    bookings = [await booking_engine.reserve(make_request(time=time(hour, 0))) for hour in (17, 18, 19)]
    await booking_engine.cancel(bookings[1].id, CUSTOMER_ID)
    await booking_engine.broker.drain()

    # One delivery for the initial list plus one per change.
    assert len(snapshots) == 5
    final = {b.confirmation_code: b.status for b in snapshots[-1]}
    assert final == {
        bookings[0].confirmation_code: "pending",
        bookings[1].confirmation_code: "cancelled",
        bookings[2].confirmation_code: "pending",
    }
    assert [len(s) for s in snapshots] == sorted(len(s) for s in snapshots)


async def test_other_owners_changes_are_not_delivered(booking_engine, make_request):
    snapshots = []
    booking_engine.subscribe(CUSTOMER_ID, None, snapshots.append)
    await booking_engine.broker.drain()

    await booking_engine.reserve(make_request(owner_id=OTHER_CUSTOMER_ID))
    await booking_engine.broker.drain()
    assert snapshots == [[]]


async def test_booking_leaving_status_filter_still_notifies(booking_engine, make_request):
    booking = await booking_engine.reserve(make_request())
    snapshots = []
    booking_engine.subscribe(CUSTOMER_ID, BookingFilters(statuses=frozenset({"pending"})), snapshots.append)
    await booking_engine.broker.drain()

    await booking_engine.cancel(booking.id, CUSTOMER_ID)
    await booking_engine.broker.drain()
    assert [_codes(s) for s in snapshots] == [[booking.confirmation_code], []]


async def test_restaurant_subscription(booking_engine, make_request, restaurant):
    operator = OperatorContext(operator_id=OPERATOR_ID, restaurant_ids=frozenset({restaurant.id}))
    snapshots = []
    booking_engine.subscribe_restaurant(restaurant.id, operator, None, snapshots.append)
    await booking_engine.broker.drain()

    await booking_engine.reserve(make_request(owner_id=CUSTOMER_ID))
    await booking_engine.reserve(make_request(owner_id=OTHER_CUSTOMER_ID, time=time(20, 0)))
    await booking_engine.broker.drain()
    assert {b.owner_id for b in snapshots[-1]} == {CUSTOMER_ID, OTHER_CUSTOMER_ID}


async def test_restaurant_subscription_requires_authorization(booking_engine, make_restaurant):
    elsewhere = await make_restaurant()
    operator = OperatorContext(operator_id=OPERATOR_ID, restaurant_ids=frozenset())
    with pytest.raises(Unauthorized):
        booking_engine.subscribe_restaurant(elsewhere.id, operator, None, lambda snapshot: None)


async def test_slow_subscriber_does_not_block_others(booking_engine, make_request):
    release = asyncio.Event()
    slow_calls, fast_snapshots = [], []

    async def slow(snapshot):
        slow_calls.append(snapshot)
        await release.wait()

    booking_engine.subscribe(CUSTOMER_ID, None, slow)
    booking_engine.subscribe(CUSTOMER_ID, None, fast_snapshots.append)

    booking = await booking_engine.reserve(make_request())
    for _ in range(50):
        if len(fast_snapshots) == 2:
            break
        await asyncio.sleep(0.01)

    assert _codes(fast_snapshots[-1]) == [booking.confirmation_code]
    assert len(slow_calls) == 1
    release.set()
    await booking_engine.broker.drain()
    assert len(slow_calls) == 2


async def test_failing_callback_keeps_receiving(booking_engine, make_request):
    calls = []

    def flaky(snapshot):
        calls.append(snapshot)
        if len(calls) == 1:
            raise RuntimeError("viewer crashed")

    booking_engine.subscribe(CUSTOMER_ID, None, flaky)
    await booking_engine.broker.drain()
    await booking_engine.reserve(make_request())
    await booking_engine.broker.drain()
    assert len(calls) == 2


async def test_unsubscribe_is_idempotent(booking_engine, make_request):
    snapshots = []
    unsubscribe = booking_engine.subscribe(CUSTOMER_ID, None, snapshots.append)
    await booking_engine.broker.drain()
    unsubscribe()
    unsubscribe()
    assert booking_engine.broker.subscriber_count == 0

    await booking_engine.reserve(make_request())
    await booking_engine.broker.drain()
    assert len(snapshots) == 1


async def test_close_then_unsubscribe(booking_engine):
    unsubscribe = booking_engine.subscribe(CUSTOMER_ID, None, lambda snapshot: None)
    await booking_engine.close()
    unsubscribe()
    with pytest.raises(RuntimeError):
        booking_engine.subscribe(CUSTOMER_ID, None, lambda snapshot: None)


async def test_stream(booking_engine, make_request):
    stream = booking_engine.stream(BookingFilters(owner_id=CUSTOMER_ID))
    first = await asyncio.wait_for(stream.__anext__(), timeout=5)
    assert first == []

    booking = await booking_engine.reserve(make_request())
    second = await asyncio.wait_for(stream.__anext__(), timeout=5)
    assert _codes(second) == [booking.confirmation_code]

    await stream.aclose()
    assert booking_engine.broker.subscriber_count == 0


def _live_workers() -> list[asyncio.Task]:
    return [t for t in asyncio.all_tasks() if t.get_name().startswith("booking-subscription-") and not t.done()]


async def test_closing_a_stream_stops_its_worker(booking_engine):
    stream = booking_engine.stream(BookingFilters(owner_id=CUSTOMER_ID))
    await asyncio.wait_for(stream.__anext__(), timeout=5)
    assert len(_live_workers()) == 1

    await stream.aclose()
    assert _live_workers() == []


async def test_close_collects_unsubscribed_workers(booking_engine):
    unsubscribe = booking_engine.subscribe(CUSTOMER_ID, None, lambda snapshot: None)
    await booking_engine.broker.drain()
    unsubscribe()
    await booking_engine.close()
    assert _live_workers() == []
