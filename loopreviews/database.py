from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import URL, make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from .config import settings
from .models import Base


def async_database_url(raw_url: str) -> URL:
    """Map a configured database URL onto the async driver we ship with."""
    parsed = make_url(raw_url)
    if parsed.drivername and parsed.drivername.startswith("sqlite"):
        return URL.create(drivername="sqlite+aiosqlite", database=parsed.database)
    # Everything else is treated as Postgres; keep sslmode and friends
    return URL.create(
        drivername="postgresql+asyncpg",
        username=parsed.username,
        password=parsed.password,
        host=parsed.host,
        port=parsed.port,
        database=parsed.database,
        query=parsed.query,
    )


engine = create_async_engine(
    async_database_url(settings.database_url),
    echo=settings.debug,
    future=True,
    pool_pre_ping=not settings.database_url.startswith("sqlite"),
)

AsyncSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


async def get_db():
    """Dependency to get database session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """Standalone session for background tasks that outlive the request."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def create_tables():
    """Create all tables"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_tables():
    """Drop all tables"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
