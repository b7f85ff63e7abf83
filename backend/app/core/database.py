"""
Database connection
Async SQLAlchemy engine and session factory
"""
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase
from app.core.config import get_settings
import os

settings = get_settings()

SQLITE_PREFIX = "sqlite+aiosqlite:///"

# Largest value an INTEGER primary key can hold (64-bit signed)
MAX_INTEGER_ID = 2 ** 63 - 1

# Make sure the data directory exists for file-backed SQLite
if settings.database_url.startswith(SQLITE_PREFIX) and ":memory:" not in settings.database_url:
    os.makedirs(os.path.dirname(settings.database_url.replace(SQLITE_PREFIX, "")) or "./data", exist_ok=True)

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,  # print SQL in debug mode
    future=True
)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)


class Base(DeclarativeBase):
    """ORM base class"""
    pass


async def get_db() -> AsyncSession:
    """Dependency: yield a database session"""
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db():
    """Create tables"""
    # Models must be registered on the metadata before create_all
    import app.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
