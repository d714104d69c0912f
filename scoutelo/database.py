"""Async database access for the rating tables (SQLite via aiosqlite, PostgreSQL via asyncpg)."""

import logging
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from scoutelo.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

_ASYNC_DRIVERS = (
    ("sqlite://", "sqlite+aiosqlite://"),
    ("postgres://", "postgresql+asyncpg://"),
    ("postgresql://", "postgresql+asyncpg://"),
)


def get_database_url(url: str) -> str:
    """Rewrite a plain sqlite/postgres URL to its async driver. Other URLs pass through."""
    for prefix, async_prefix in _ASYNC_DRIVERS:
        if url.startswith(prefix):
            return url.replace(prefix, async_prefix, 1)
    return url


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Async engine with pool settings for the URL's backend."""
    url = get_database_url(url)
    engine_kwargs = {"echo": echo}

    if url.startswith("sqlite"):
        # One shared connection so in-memory databases survive across sessions
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        engine_kwargs["poolclass"] = StaticPool
    else:
        engine_kwargs["pool_pre_ping"] = True
        engine_kwargs["pool_size"] = 5
        engine_kwargs["max_overflow"] = 10
        engine_kwargs["pool_recycle"] = 300
        engine_kwargs["pool_reset_on_return"] = "rollback"

    return create_async_engine(url, **engine_kwargs)


def build_session_factory(engine: AsyncEngine) -> sessionmaker:
    # expire_on_commit=False: summaries read rows after the per-scouter commit
    return sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


async def create_tables(engine: AsyncEngine) -> None:
    # Registers every table on SQLModel.metadata
    import scoutelo.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async_engine = build_engine(settings.DATABASE_URL)
AsyncSessionLocal = build_session_factory(async_engine)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting async database sessions."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db() -> None:
    """Create the rating, evidence and run-ledger tables if missing."""
    logger.info("Initializing database tables...")
    await create_tables(async_engine)
    logger.info("Database tables created successfully.")


async def close_db() -> None:
    """Close database connections."""
    logger.info("Closing database connections...")
    await async_engine.dispose()
    logger.info("Database connections closed.")
