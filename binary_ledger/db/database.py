"""
Database connection and session management.
Uses SQLAlchemy 2.0 async patterns with asyncpg driver for PostgreSQL
or aiosqlite for local SQLite development.
"""

from typing import AsyncGenerator
import logging

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from binary_ledger.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """
    Creates an async engine for the given URL.
    SQLite does not support pool_size/max_overflow.
    """
    if url.startswith("sqlite"):
        return create_async_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
        )
    return create_async_engine(
        url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
    )


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory shared by the request path and the settlement tasks."""
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = build_engine(settings.async_database_url, echo=settings.debug)
async_session_factory = build_session_factory(engine)


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.
    All models should inherit from this class.
    """
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency that provides a database session.
    Commits on success, rolls back on error.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(bind: AsyncEngine | None = None) -> None:
    """
    Creates all tables that do not exist yet.
    Called during application startup; Alembic owns real migrations.
    """
    # Registers every model on Base.metadata
    import binary_ledger.models  # noqa: F401

    bind = bind or engine
    tables = list(Base.metadata.tables.keys())
    logger.info(f"Registered models for tables: {tables}")

    try:
        async with bind.begin() as conn:
            existing = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
            missing = [t for t in tables if t not in existing]
            if missing:
                logger.info(f"Creating missing tables: {missing}")
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {type(e).__name__}: {e}")
        raise
