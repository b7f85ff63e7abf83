"""
Shared test fixtures

Every test gets its own in-memory SQLite database. The app's get_db
dependency is overridden to hand out sessions bound to it.
"""
import os

# Settings are cached on first import, so set these before importing app
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.setdefault("ADMIN_USERNAME", "admin")
os.environ.setdefault("ADMIN_PASSWORD", "test-password")
os.environ.setdefault("ADMIN_ID", "admin-1")
os.environ.setdefault("ADMIN_ROLE", "admin")

from collections.abc import AsyncIterator

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from app.core.database import Base, get_db
from app.core.security import AdminIdentity, SlidingWindowRateLimiter
from app.models import Course
import app.models  # noqa: F401


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest.fixture
async def course_id(session_factory) -> int:
    """Id of a stored course"""
    async with session_factory() as session:
        course = Course(title="Loksewa Preparation")
        session.add(course)
        await session.commit()
        return course.id


@pytest.fixture
def admin() -> AdminIdentity:
    return AdminIdentity(admin_id="admin-1", role="admin")


@pytest.fixture
def admin_auth():
    return ("admin", os.environ["ADMIN_PASSWORD"])


@pytest.fixture
async def async_client(session_factory) -> AsyncIterator[AsyncClient]:
    """
    httpx client against the app over ASGITransport.

    Lifespan is not run, so no scheduler and no tables on the app's own engine.
    """
    from app.main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.state.rate_limiter = SlidingWindowRateLimiter(window=60, max_attempts=10)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client

    app.dependency_overrides.clear()

