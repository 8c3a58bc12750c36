"""
Shared pytest configuration.

Each test gets its own SQLite file database so separate sessions see each
other's commits, which the concurrency tests rely on.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")
# events and the distributed lock stay off in tests
os.environ["RABBIT_URL"] = ""
os.environ["REDIS_URL"] = ""

from datetime import date, time  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

from quickcourt import facilities as facility_service  # noqa: E402
from quickcourt import models  # noqa: E402,F401
from quickcourt.db import Base  # noqa: E402
from quickcourt.rabbitmq import publisher  # noqa: E402
from quickcourt.rbac import Actor, ROLE_ADMIN, ROLE_CUSTOMER, ROLE_OWNER  # noqa: E402

# 2025-06-02 is a Monday (day_of_week 1)
BOOKING_DATE = date(2025, 6, 2)


def t(hhmm: str) -> time:
    hh, mm = hhmm.split(":")
    return time(int(hh), int(mm))


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'quickcourt_test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def owner():
    return Actor(user_id="owner-1", role=ROLE_OWNER)


@pytest.fixture
def other_owner():
    return Actor(user_id="owner-2", role=ROLE_OWNER)


@pytest.fixture
def customer():
    return Actor(user_id="customer-1", role=ROLE_CUSTOMER)


@pytest.fixture
def other_customer():
    return Actor(user_id="customer-2", role=ROLE_CUSTOMER)


@pytest.fixture
def admin():
    return Actor(user_id="admin-1", role=ROLE_ADMIN)


@pytest_asyncio.fixture
async def facility(db_session, owner):
    return await facility_service.create_facility(
        db_session,
        owner,
        name="Downtown Basketball Court",
        facility_type="basketball_court",
        address="123 Main Street",
        city="New York",
        state="NY",
    )


@pytest_asyncio.fixture
async def second_facility(db_session, owner):
    return await facility_service.create_facility(
        db_session,
        owner,
        name="Central Tennis Court",
        facility_type="tennis_court",
        address="456 Park Avenue",
        city="New York",
        state="NY",
    )


@pytest.fixture
def published(monkeypatch):
    """Capture domain events instead of sending them."""
    sent = []

    async def fake_publish(routing_key, message_body):
        sent.append((routing_key, message_body))
        return True

    monkeypatch.setattr(publisher, "publish", fake_publish)
    return sent
