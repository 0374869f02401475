"""
Pytest fixtures for test database, client, and authentication.

Each test gets a fresh schema on its own engine. The database defaults to a
SQLite file so the suite runs without services; point TEST_DATABASE_URL at
PostgreSQL (postgresql+asyncpg://...) to run it against the production
backend.
"""

import os

# Must be set before foodshare.core.config is first imported
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("LOCK_STRATEGY", "local")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from datetime import datetime, timezone, timedelta
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from foodshare.main import app
from foodshare.db.base import Base
from foodshare.db.session import build_engine, build_session_factory, get_db
from foodshare.core.security import create_access_token
from foodshare.models.resource import Resource, Visibility
from foodshare.schemas.group import GroupCreate
from foodshare.services import cache_service, membership_service
from foodshare.services.interfaces.local_lock import LocalKeyLock
from foodshare.services.strategy_factory import set_key_lock

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite:///./foodshare_test.db")

OWNER_ID = "owner-1"
USER_ID = "user-1"
OTHER_USER_ID = "user-2"


@pytest.fixture(autouse=True)
def key_lock():
    """Fresh in-process lock table per test; asyncio locks are loop-bound."""
    strategy = LocalKeyLock(timeout=5.0)
    set_key_lock(strategy)
    yield strategy
    set_key_lock(None)


@pytest_asyncio.fixture(scope="function")
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Create tables, yield a session factory, then drop tables for isolation."""
    engine = build_engine(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield build_session_factory(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with a fresh session per request, as in production."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def headers_for(user_id: str) -> dict:
    """Authorization headers with a Bearer token for `user_id`."""
    return {"Authorization": f"Bearer {create_access_token(data={'sub': user_id})}"}


@pytest.fixture
def auth_headers() -> dict:
    return headers_for(USER_ID)


@pytest.fixture
def owner_headers() -> dict:
    return headers_for(OWNER_ID)


def future(hours: float = 24) -> datetime:
    return datetime.now(timezone.utc) + timedelta(hours=hours)


async def make_resource(
    session: AsyncSession,
    capacity: int = 5,
    owner_id: str = OWNER_ID,
    **overrides,
) -> Resource:
    """Insert a resource directly, bypassing create-time validation."""
    values = dict(
        owner_id=owner_id,
        title="Vegetable biryani",
        description="Leftovers from the community kitchen",
        capacity=capacity,
        remaining=capacity,
        visibility=Visibility.PUBLIC,
        expires_at=future(),
        is_active=True,
    )
    values.update(overrides)
    resource = Resource(**values)
    session.add(resource)
    await session.commit()
    await session.refresh(resource)
    return resource


@pytest_asyncio.fixture
async def test_resource(db_session: AsyncSession) -> Resource:
    """A public resource with 5 portions."""
    return await make_resource(db_session, capacity=5)


@pytest_asyncio.fixture
async def last_portion_resource(db_session: AsyncSession) -> Resource:
    """A public resource with a single portion."""
    return await make_resource(db_session, capacity=1, title="Last plate")


@pytest_asyncio.fixture
async def test_group(db_session: AsyncSession):
    """A public group administered by OWNER_ID."""
    return await membership_service.create_group(
        db_session, OWNER_ID, GroupCreate(name="Kochi neighbours", description="Shared meals")
    )


@pytest_asyncio.fixture
async def fake_redis(monkeypatch) -> AsyncGenerator[FakeRedis, None]:
    """In-memory Redis behind the listing cache."""
    client = FakeRedis(decode_responses=True)

    async def _get_redis():
        return client

    monkeypatch.setattr(cache_service, "get_redis", _get_redis)
    try:
        yield client
    finally:
        await client.flushall()
        await client.aclose()
