"""pytest fixtures shared across all tests."""

from __future__ import annotations

import uuid

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from vulnfeed.core.config import Settings
from vulnfeed.models.base import Base
from vulnfeed.models.user import User

# SQLite in-memory for tests, no PostgreSQL required.
# StaticPool keeps one connection so every session sees the same database.
TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def engine():
    """Create a fresh in-memory SQLite engine per test function."""
    eng = create_async_engine(
        TEST_DB_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=True)


@pytest_asyncio.fixture
async def db_session(session_factory):
    """Yield an async session bound to the test engine."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def settings():
    """Settings pointing every feed at fake hosts served by httpx.MockTransport."""
    return Settings(
        app_debug=True,
        osv_bucket_url="https://osv.test",
        osv_ecosystems=["npm"],
        nvd_feeds_base_url="https://nvd.test",
        nvd_years=[2024],
        hash_batch_delay_ms=0,
    )


async def _add_user(session, *, role: str, is_active: bool = True) -> User:
    user = User(
        id=uuid.uuid4(),
        email=f"{role}-{uuid.uuid4().hex[:8]}@test.local",
        role=role,
        is_active=is_active,
    )
    session.add(user)
    await session.commit()
    return user


@pytest_asyncio.fixture
async def admin_user(db_session):
    return await _add_user(db_session, role="admin")


@pytest_asyncio.fixture
async def regular_user(db_session):
    return await _add_user(db_session, role="user")


@pytest_asyncio.fixture
async def disabled_admin(db_session):
    return await _add_user(db_session, role="admin", is_active=False)


@pytest_asyncio.fixture
async def client(session_factory):
    """HTTPX async test client wired to the FastAPI app with a test DB."""
    from vulnfeed.api.app import create_app
    from vulnfeed.api.dependencies import get_db

    app = create_app()

    async def override_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_db

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac
