"""
Pytest configuration and fixtures for backend tests.
"""
import os

# rate limit counters stay in process during tests
os.environ.setdefault("RATE_LIMIT_STORAGE_URL", "memory://")

import pytest
import pytest_asyncio
from datetime import datetime, timedelta
from typing import AsyncGenerator
from unittest.mock import AsyncMock

from fakeredis import FakeAsyncRedis
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from httpx import ASGITransport, AsyncClient

from pollara.main import app
from pollara.core.cache import ExpiringCache, get_cache
from pollara.core.database import Base, get_db
from pollara.core.rate_limit import limiter
from pollara.core.security import create_access_token
from pollara.models.target import BallotTarget, TargetKind
from pollara.models.user import User
from pollara.notifications.mailer import get_mailer
from pollara.storage.object_storage import SignedReference, get_storage


# Test database URL (SQLite for testing)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def test_db() -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session_maker() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def cache() -> AsyncGenerator[ExpiringCache, None]:
    """An expiring cache backed by an in-process fake Redis."""
    cache = ExpiringCache(FakeAsyncRedis(decode_responses=True))
    yield cache
    await cache.client.flushall()
    await cache.close()


@pytest.fixture
def mock_mailer():
    """Mailer that records messages instead of sending them."""
    return AsyncMock()


@pytest.fixture
def mock_storage():
    """Object storage that accepts uploads and signs predictable URLs."""
    mock = AsyncMock()

    async def sign_url(path: str, ttl_seconds: int) -> SignedReference:
        return SignedReference(
            url=f"https://storage.test/object/sign/pollara/{path}?token=signed",
            expires_at=datetime.utcnow() + timedelta(seconds=ttl_seconds),
        )

    mock.sign_url.side_effect = sign_url
    return mock


@pytest_asyncio.fixture(scope="function")
async def client(
    test_db: AsyncSession,
    cache: ExpiringCache,
    mock_mailer,
    mock_storage,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client wired to the test database, cache and fakes."""
    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_mailer] = lambda: mock_mailer
    app.dependency_overrides[get_storage] = lambda: mock_storage
    limiter.reset()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def test_user(test_db: AsyncSession) -> User:
    """Create a test user without a registered face."""
    user = User(
        email="alice@example.com",
        full_name="Alice Example",
        is_active=True,
    )
    test_db.add(user)
    await test_db.commit()
    await test_db.refresh(user)
    return user


@pytest_asyncio.fixture
async def registered_user(test_db: AsyncSession) -> User:
    """Create a test user with a registered face."""
    user = User(
        email="bob@example.com",
        full_name="Bob Example",
        is_active=True,
        has_face=True,
        face_registered_at=datetime.utcnow() - timedelta(days=1),
    )
    test_db.add(user)
    await test_db.commit()
    await test_db.refresh(user)
    return user


def _auth_headers_for(user: User) -> dict:
    token = create_access_token({"sub": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers(test_user: User) -> dict:
    """Create authentication headers for the unregistered test user."""
    return _auth_headers_for(test_user)


@pytest.fixture
def registered_auth_headers(registered_user: User) -> dict:
    """Create authentication headers for the registered test user."""
    return _auth_headers_for(registered_user)


@pytest_asyncio.fixture
async def test_target(test_db: AsyncSession) -> BallotTarget:
    """Create an open election with one single-choice question."""
    target = BallotTarget(
        id="election-42",
        kind=TargetKind.ELECTION,
        title="Test Election 2026",
        questions=[
            {"id": "q1", "options": ["optA", "optB"], "max_selections": 1},
        ],
        start_time=datetime.utcnow() - timedelta(hours=1),
        end_time=datetime.utcnow() + timedelta(days=1),
    )
    test_db.add(target)
    await test_db.commit()
    await test_db.refresh(target)
    return target


@pytest_asyncio.fixture
async def test_form(test_db: AsyncSession) -> BallotTarget:
    """Create an open form with a multi-choice question."""
    target = BallotTarget(
        id="form-7",
        kind=TargetKind.FORM,
        title="Club Survey",
        questions=[
            {"id": "colour", "options": ["red", "green", "blue"], "max_selections": 2},
            {"id": "size", "options": ["s", "m", "l"], "max_selections": 1},
        ],
    )
    test_db.add(target)
    await test_db.commit()
    await test_db.refresh(target)
    return target
