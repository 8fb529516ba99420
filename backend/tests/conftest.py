"""
Pytest fixtures for test database, client, and authentication.

The application engine is pointed at TEST_DATABASE_URL before anything
from courtside is imported (a temporary SQLite file through aiosqlite by
default; set TEST_DATABASE_URL to a postgresql+asyncpg URL to run the
same suite against PostgreSQL). Tables are created and dropped per test.
"""

import os
import tempfile

_test_db_dir = tempfile.mkdtemp(prefix="courtside-tests-")
os.environ["DATABASE_URL"] = os.getenv(
    "TEST_DATABASE_URL", f"sqlite+aiosqlite:///{_test_db_dir}/courtside_test.db"
)
os.environ["ENVIRONMENT"] = "test"
os.environ["REDIS_ENABLED"] = "false"
os.environ["SWEEPER_ENABLED"] = "false"
os.environ["NOTIFICATIONS_ENABLED"] = "false"
os.environ["PAYMENT_GATEWAY"] = "offline"

import itertools
from datetime import datetime, timezone, timedelta
from decimal import Decimal
from typing import AsyncGenerator, Awaitable, Callable

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from courtside.main import app
from courtside.db.base import Base
from courtside.db.session import engine, async_session_factory
from courtside.core.security import create_access_token
from courtside.models import Event, Participant, Payment, User, UserRole

_telegram_ids = itertools.count(100_000)


def auth_headers_for(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(data={'sub': str(user.id)})}"}


async def fetch_event(session_factory: async_sessionmaker, event_id: int) -> Event:
    async with session_factory() as session:
        return (await session.execute(select(Event).where(Event.id == event_id))).scalar_one()


async def fetch_participants(session_factory: async_sessionmaker, event_id: int) -> list[Participant]:
    async with session_factory() as session:
        result = await session.execute(
            select(Participant).where(Participant.event_id == event_id).order_by(Participant.id)
        )
        return list(result.scalars().all())


async def fetch_payment(session_factory: async_sessionmaker, payment_id: int) -> Payment:
    async with session_factory() as session:
        return (await session.execute(select(Payment).where(Payment.id == payment_id))).scalar_one()


@pytest_asyncio.fixture(scope="function")
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """Create tables, hand out the application's session factory, then drop tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_session_factory

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory: async_sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(session_factory: async_sessionmaker) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client over the ASGI app; every request gets its own session."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def make_user(session_factory: async_sessionmaker) -> Callable[..., Awaitable[User]]:
    async def _make_user(role: UserRole = UserRole.PLAYER, display_name: str = "Player") -> User:
        async with session_factory() as session:
            user = User(
                telegram_id=next(_telegram_ids),
                display_name=display_name,
                username=display_name.lower().replace(" ", "_"),
                role=role,
            )
            session.add(user)
            await session.commit()
            await session.refresh(user)
            return user

    return _make_user


@pytest_asyncio.fixture
async def make_event(session_factory: async_sessionmaker) -> Callable[..., Awaitable[Event]]:
    async def _make_event(
        max_seats: int = 8,
        price: Decimal = Decimal("0"),
        title: str = "Evening training",
        current_seats: int = 0,
    ) -> Event:
        async with session_factory() as session:
            event = Event(
                title=title,
                event_date=datetime.now(timezone.utc) + timedelta(days=3),
                location="Court 1",
                max_seats=max_seats,
                current_seats=current_seats,
                price=price,
            )
            session.add(event)
            await session.commit()
            await session.refresh(event)
            return event

    return _make_event


@pytest_asyncio.fixture
async def player(make_user) -> User:
    return await make_user(display_name="Anna Petrova")


@pytest_asyncio.fixture
async def staff(make_user) -> User:
    return await make_user(role=UserRole.OWNER, display_name="Club Owner")


@pytest_asyncio.fixture
async def player_headers(player: User) -> dict:
    return auth_headers_for(player)


@pytest_asyncio.fixture
async def staff_headers(staff: User) -> dict:
    return auth_headers_for(staff)
