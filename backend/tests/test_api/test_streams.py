"""Tests for the live booking-list endpoints (server-sent events).

httpx's ASGI transport buffers whole responses, so these drive the app at
the ASGI level: read until the first ``bookings`` event, then disconnect.
"""

import asyncio
import json
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from sse_starlette.sse import AppStatus

from conftest import CUSTOMER_ID, OTHER_CUSTOMER_ID
from tablebook.api.deps import get_engine
from tablebook.main import app
from tablebook.services.engine import ReservationEngine


@pytest_asyncio.fixture
async def live_app(booking_engine: ReservationEngine, monkeypatch) -> AsyncGenerator[ReservationEngine, None]:
    # The exit event is created lazily and must not outlive a test's event loop.
    monkeypatch.setattr(AppStatus, "should_exit_event", None, raising=False)
    app.dependency_overrides[get_engine] = lambda: booking_engine
    yield booking_engine
    app.dependency_overrides.clear()


async def _first_event(path: str, headers: dict[str, str], query: str = "") -> tuple[int, dict | None]:
    """GET ``path`` and return the status code and the first ``bookings`` event payload."""
    disconnected = asyncio.Event()
    status_code = 0
    body = b""

    async def receive() -> dict:
        await disconnected.wait()
        return {"type": "http.disconnect"}

    async def send(message: dict) -> None:
        nonlocal status_code, body
        if message["type"] == "http.response.start":
            status_code = message["status"]
        elif message["type"] == "http.response.body":
            body += message.get("body", b"")
            if b"event: bookings" in body:
                disconnected.set()

    scope = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "GET",
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "root_path": "",
        "query_string": query.encode(),
        "headers": [(b"host", b"testserver")] + [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        "client": ("127.0.0.1", 50000),
        "server": ("testserver", 80),
    }
    await asyncio.wait_for(app(scope, receive, send), timeout=10)

    for line in body.decode().splitlines():
        if line.startswith("data: "):
            return status_code, json.loads(line[len("data: "):])
    return status_code, None


class TestCustomerStream:
    async def test_starts_with_own_bookings(
        self, live_app: ReservationEngine, auth_headers: dict, make_request
    ) -> None:
        mine = await live_app.reserve(make_request())
        await live_app.reserve(make_request(owner_id=OTHER_CUSTOMER_ID, table_type="booth"))

        status_code, event = await _first_event("/api/v1/bookings/stream", auth_headers)

        assert status_code == 200
        assert event["total"] == 1
        assert [b["confirmation_code"] for b in event["items"]] == [mine.confirmation_code]
        assert event["items"][0]["owner_id"] == CUSTOMER_ID

    async def test_disconnect_unsubscribes(self, live_app: ReservationEngine, auth_headers: dict) -> None:
        await _first_event("/api/v1/bookings/stream", auth_headers)
        assert live_app.broker.subscriber_count == 0

    async def test_requires_auth(self, live_app: ReservationEngine) -> None:
        status_code, event = await _first_event("/api/v1/bookings/stream", {})
        assert status_code in (401, 403)
        assert event is None


class TestRestaurantStream:
    async def test_operator_sees_every_customer(
        self, live_app: ReservationEngine, operator_headers: dict, make_request, restaurant
    ) -> None:
        await live_app.reserve(make_request())
        await live_app.reserve(make_request(owner_id=OTHER_CUSTOMER_ID, table_type="booth"))

        status_code, event = await _first_event(
            f"/api/v1/restaurants/{restaurant.id}/bookings/stream", operator_headers, "status=pending"
        )

        assert status_code == 200
        assert event["total"] == 2
        assert {b["owner_id"] for b in event["items"]} == {CUSTOMER_ID, OTHER_CUSTOMER_ID}

    async def test_status_filter_applies(
        self, live_app: ReservationEngine, operator_headers: dict, make_request, restaurant
    ) -> None:
        await live_app.reserve(make_request())

        status_code, event = await _first_event(
            f"/api/v1/restaurants/{restaurant.id}/bookings/stream", operator_headers, "status=confirmed"
        )

        assert status_code == 200
        assert event == {"items": [], "total": 0}

    async def test_customer_forbidden(self, live_app: ReservationEngine, auth_headers: dict, restaurant) -> None:
        status_code, event = await _first_event(f"/api/v1/restaurants/{restaurant.id}/bookings/stream", auth_headers)
        assert status_code == 403
        assert event is None

    async def test_other_restaurant_forbidden(
        self, live_app: ReservationEngine, operator_headers: dict, make_restaurant
    ) -> None:
        elsewhere = await make_restaurant()
        status_code, _ = await _first_event(f"/api/v1/restaurants/{elsewhere.id}/bookings/stream", operator_headers)
        assert status_code == 403


@pytest.mark.parametrize("path", ["/api/v1/bookings/stream", "/api/v1/restaurants/{restaurant_id}/bookings/stream"])
def test_stream_routes_are_registered(path: str) -> None:
    assert path in {route.path for route in app.routes}
