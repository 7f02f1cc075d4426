import os
from collections.abc import AsyncGenerator, Iterator
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from guest_access.core.config import settings
from guest_access.models.base import Base

# Security: This is a test-only secret. Production uses a real secret from env.
TEST_AUTH_SECRET = "test-secret-key-that-is-at-least-32-characters-long"  # nosec B105  # gitleaks:allow

# Fixed "now" for tests that pin the clock
TEST_NOW = datetime(2026, 10, 18, 12, 0, tzinfo=UTC)


class FrozenClock:
    """Injectable clock that only moves when told to."""

    def __init__(self, now: datetime = TEST_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


def _test_database_url(tmp_path) -> str:
    """TEST_DATABASE_URL when set (e.g. a PostgreSQL test DB), else SQLite."""
    return os.environ.get(
        "TEST_DATABASE_URL",
        f"sqlite+aiosqlite:///{tmp_path / 'guest_access_test.db'}",
    )


@pytest.fixture(autouse=True)
def test_auth_secret() -> Iterator[None]:
    """Sign tokens and hash codes with the test secret."""
    original = settings.auth_secret
    settings.auth_secret = SecretStr(TEST_AUTH_SECRET)
    yield
    settings.auth_secret = original


@pytest.fixture(autouse=True)
def disable_rate_limiting() -> Iterator[None]:
    """Disable slowapi rate limiting during tests.

    Rate limiting is tested separately; disable for other tests to avoid
    flaky failures from rate limit triggers.
    """
    from guest_access.core.rate_limiting import limiter

    original_enabled = limiter.enabled
    limiter.enabled = False
    yield
    limiter.enabled = original_enabled


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Create test database engine with all tables."""
    engine = create_async_engine(_test_database_url(tmp_path), echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()
