"""Shared test configuration and fixtures.

Every test gets a fresh database. By default that is a SQLite file under
the test's ``tmp_path`` (via aiosqlite); set ``TEST_DATABASE_URL`` to run
against PostgreSQL instead. Concurrency tests commit from several sessions
at once, so a per-test rollback wrapper cannot be used.
"""

import os
import uuid
from collections.abc import AsyncGenerator
from datetime import date, datetime, time, timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from tablebook.api.deps import get_engine
from tablebook.auth.jwt import create_access_token, create_operator_token
from tablebook.database import Base
from tablebook.main import app
from tablebook.models.restaurant import Restaurant, RestaurantTableType
from tablebook.services.engine import ReservationEngine
from tablebook.services.reservations import ReservationRequest

CUSTOMER_ID = "customer-1"
OTHER_CUSTOMER_ID = "customer-2"
OPERATOR_ID = "operator-1"

# "Now" for every test unless a test moves the clock.
NOW = datetime(2026, 10, 18, 12, 0)
TOMORROW = NOW.date() + timedelta(days=1)

DEFAULT_TABLES = [
    {"table_type": "standard", "capacity": 4, "count": 2},
    {"table_type": "booth", "capacity": 6, "count": 1},
    {"table_type": "outdoor", "capacity": 2, "count": 1},
]


class FixedClock:
    """Injectable clock that only moves when a test says so."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def _use_immediate_transactions(engine: AsyncEngine) -> None:
    """Make pysqlite take the write lock at BEGIN so concurrent writers queue."""

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    url = os.environ.get("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'tablebook_test.db'}"
    if url.startswith("sqlite"):
        engine = create_async_engine(url, connect_args={"timeout": 30})
        _use_immediate_transactions(engine)
    else:
        engine = create_async_engine(url, pool_pre_ping=True)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


# ---------------------------------------------------------------------------
# Restaurants
# ---------------------------------------------------------------------------


@pytest.fixture
def make_restaurant(session_factory):
    """Factory: insert a restaurant (17:00-22:00, 30-minute slots) with table inventory."""

    async def _make(tables: list[dict] | None = None, **overrides) -> Restaurant:
        fields = {
            "name": f"Test Bistro {uuid.uuid4().hex[:6]}",
            "opens_at": time(17, 0),
            "closes_at": time(22, 0),
            "slot_interval_minutes": 30,
            "auto_confirm": False,
            "max_days_in_advance": 60,
            "blackout_dates": [],
            **overrides,
        }
        async with session_factory() as session:
            restaurant = Restaurant(
                **fields,
                table_types=[RestaurantTableType(**t) for t in (tables or DEFAULT_TABLES)],
            )
            session.add(restaurant)
            await session.commit()
            return restaurant

    return _make


@pytest_asyncio.fixture
async def restaurant(make_restaurant) -> Restaurant:
    return await make_restaurant()


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def booking_engine(session_factory, clock) -> AsyncGenerator[ReservationEngine, None]:
    reservations = ReservationEngine(session_factory, clock=clock, reserve_backoff_ms=0)
    yield reservations
    await reservations.close()


@pytest.fixture
def make_request(restaurant):
    """Factory: a valid reservation request for tomorrow at 19:00, overridable per field."""

    def _make(**overrides) -> ReservationRequest:
        fields = {
            "owner_id": CUSTOMER_ID,
            "restaurant_id": restaurant.id,
            "date": TOMORROW,
            "time": time(19, 0),
            "party_size": 2,
            "table_type": "standard",
            "contact_name": "Sarah Chen",
            "contact_email": "sarah@example.com",
            **overrides,
        }
        return ReservationRequest(**fields)

    return _make


# ---------------------------------------------------------------------------
# HTTP client and tokens
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(booking_engine: ReservationEngine) -> AsyncGenerator[AsyncClient, None]:
    """Provide an httpx AsyncClient wired to the test reservation engine."""
    app.dependency_overrides[get_engine] = lambda: booking_engine

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token({'sub': CUSTOMER_ID})}"}


@pytest.fixture
def other_auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token({'sub': OTHER_CUSTOMER_ID})}"}


@pytest.fixture
def operator_headers(restaurant) -> dict[str, str]:
    token = create_operator_token(OPERATOR_ID, [str(restaurant.id)])
    return {"Authorization": f"Bearer {token}"}


def booking_payload(restaurant_id: uuid.UUID, **overrides) -> dict:
    """JSON body for POST /api/v1/bookings."""
    payload = {
        "restaurant_id": str(restaurant_id),
        "date": TOMORROW.isoformat(),
        "time": "19:00",
        "party_size": 2,
        "table_type": "standard",
        "contact_info": {"name": "Sarah Chen", "email": "sarah@example.com"},
    }
    payload.update(overrides)
    return payload


def on(days: int) -> date:
    """Date ``days`` after the fixed test clock."""
    return NOW.date() + timedelta(days=days)
