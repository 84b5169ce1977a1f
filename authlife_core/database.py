"""
Database Module
===============
Async engine, session factory and declarative base for the engine's tables.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator, Optional

from sqlalchemy import DateTime, event
from sqlalchemy.ext.asyncio import (
    create_async_engine as sa_create_async_engine,
    AsyncSession,
    async_sessionmaker,
    AsyncEngine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator
import structlog

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""
    pass


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware UTC timestamps on every backend.

    SQLite drops tzinfo on the way back; values are re-tagged as UTC on load.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: Optional[datetime], dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    """Current UTC time; the default clock for every component."""
    return datetime.now(timezone.utc)


def _serialize_sqlite_writers(engine: AsyncEngine) -> None:
    """
    Run every SQLite transaction as BEGIN IMMEDIATE.

    Deferred transactions deadlock when two readers upgrade to writers;
    immediate ones queue on the busy timeout instead.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_async_engine(
    database_url: str,
    pool_size: int = 10,
    max_overflow: int = 20,
    pool_pre_ping: bool = True,
    echo: bool = False,
) -> AsyncEngine:
    """
    Create and configure the async database engine.

    Args:
        database_url: Async connection string (postgresql+asyncpg://... or sqlite+aiosqlite://...)
        pool_size: Connection pool size (ignored for SQLite)
        max_overflow: Max overflow connections (ignored for SQLite)
        pool_pre_ping: Enable connection health checks (default: True)
        echo: Log SQL statements (default: False)

    Returns:
        Configured AsyncEngine instance
    """
    if database_url.startswith("sqlite"):
        engine = sa_create_async_engine(
            database_url,
            echo=echo,
            connect_args={"timeout": 30},
        )
        _serialize_sqlite_writers(engine)
    else:
        engine = sa_create_async_engine(
            database_url,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            echo=echo,
        )

    logger.info("Database engine initialized", dialect=engine.dialect.name)
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Build the session factory every store is constructed with.

    Usage:
        sessions = create_session_factory(engine)
        async with sessions() as session:
            ...
    """
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_models(engine: AsyncEngine) -> None:
    """Create all engine tables (idempotent)."""
    # Import registers the mapped classes on Base.metadata
    from authlife_core.storage import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured")


@asynccontextmanager
async def session_scope(
    sessions: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """
    Context manager for a unit of work.

    Commits on success and rolls back on exception.

    Usage:
        async with session_scope(sessions) as db:
            await db.execute(...)
    """
    async with sessions() as session:
        try:
            yield session
            await session.commit()
        except BaseException:
            await session.rollback()
            raise


async def close_engine(engine: AsyncEngine) -> None:
    """Dispose the engine. Call during application shutdown."""
    await engine.dispose()
    logger.info("Database engine closed")
