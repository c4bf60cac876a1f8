"""
Pytest fixtures for the test database, HTTP client, principals and factories.

Tests run against in-memory SQLite (aiosqlite) unless TEST_DATABASE_URL points
at another database. Every test gets fresh tables.
"""

import os

os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool, StaticPool

from planora.main import app
from planora.db.base import Base
from planora.db.session import get_db
from planora.core.security import Principal, Role, create_access_token
from planora.models.enums import EventStatus, ReservationStatus
from planora.models.event import Event
from planora.models.reservation import Reservation
from planora.services.reservation_service import generate_qr_code, generate_reservation_number

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")

ORGANIZER = Principal(user_id="org-1", email="organizer@example.com", role=Role.ADMIN, name="Olivia")
OTHER_ORGANIZER = Principal(user_id="org-2", email="other-org@example.com", role=Role.ADMIN)
ALICE = Principal(user_id="user-alice", email="alice@example.com", name="Alice")
BOB = Principal(user_id="user-bob", email="bob@example.com", name="Bob")


def now() -> datetime:
    return datetime.now(timezone.utc)


def headers_for(principal: Principal) -> dict:
    token = create_access_token(
        data={
            "sub": principal.user_id,
            "email": principal.email,
            "role": principal.role.value,
            "name": principal.name,
        }
    )
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create tables, yield session, then drop tables for isolation."""
    engine_kwargs = {"echo": False}
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine_kwargs.update(connect_args={"check_same_thread": False}, poolclass=StaticPool)
    engine = create_async_engine(TEST_DATABASE_URL, **engine_kwargs)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """
    Sessions on separate connections to one file-backed SQLite database, for
    interleaving requests that overlap in time.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'overlap.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client whose requests share the test session, committing like get_db does."""

    async def override_get_db():
        try:
            yield db_session
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def organizer_headers() -> dict:
    return headers_for(ORGANIZER)


@pytest.fixture
def alice_headers() -> dict:
    return headers_for(ALICE)


@pytest.fixture
def bob_headers() -> dict:
    return headers_for(BOB)


@pytest.fixture
def make_event(db_session: AsyncSession):
    """Factory for events. Defaults: published, 100 spots, starts in 30 days."""

    async def _make(**overrides) -> Event:
        start = overrides.pop("start_date", now() + timedelta(days=30))
        fields = {
            "title": "Test Concert",
            "description": "A test event",
            "location": "Test Venue",
            "start_date": start,
            "end_date": start + timedelta(hours=3),
            "capacity": 100,
            "registered_count": 0,
            "price": 25,
            "status": EventStatus.PUBLISHED,
            "organizer_id": ORGANIZER.user_id,
            "organizer_name": ORGANIZER.name,
        }
        fields.update(overrides)
        event = Event(**fields)
        db_session.add(event)
        await db_session.commit()
        await db_session.refresh(event)
        return event

    return _make


@pytest.fixture
def make_reservation(db_session: AsyncSession):
    """
    Factory for reservation rows in any status. Only inserts the row: callers
    set the event's registered_count themselves when the status holds spots.
    """

    async def _make(event: Event, principal: Principal = ALICE, **overrides) -> Reservation:
        tickets = overrides.pop("number_of_tickets", 1)
        number = generate_reservation_number()
        fields = {
            "reservation_number": number,
            "qr_code": generate_qr_code(number),
            "event_id": event.id,
            "event_title": event.title,
            "event_date": event.start_date,
            "event_location": event.location,
            "user_id": principal.user_id,
            "user_email": principal.email,
            "user_name": principal.display_name,
            "number_of_tickets": tickets,
            "total_price": event.price * tickets,
            "status": ReservationStatus.CONFIRMED,
            "confirmed_at": now(),
        }
        fields.update(overrides)
        reservation = Reservation(**fields)
        db_session.add(reservation)
        await db_session.commit()
        await db_session.refresh(reservation)
        return reservation

    return _make


@pytest_asyncio.fixture
async def test_event(make_event) -> Event:
    return await make_event()


@pytest_asyncio.fixture
async def sold_out_event(make_event) -> Event:
    return await make_event(title="Sold Out Show", capacity=50, registered_count=50)
