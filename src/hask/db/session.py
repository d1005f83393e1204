"""
Database Session Management

Provides the async SQLAlchemy engine and session factory for the page store.
SQLite (via aiosqlite) is the default backend.
"""

from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
)

from ..config import settings
from .models import Base


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # SQLite ignores ON DELETE CASCADE unless foreign keys are switched on
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine, wiring SQLite pragmas when needed.
    """
    engine = create_async_engine(
        database_url,
        echo=echo,  # Set True for SQL debugging
        pool_pre_ping=True,
    )
    if engine.dialect.name == "sqlite":
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_models(engine: AsyncEngine) -> None:
    """
    Create all tables that do not exist yet.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# Create async engine
async_engine = build_engine(settings.database_url)

# Session factory
AsyncSessionLocal = build_session_factory(async_engine)
