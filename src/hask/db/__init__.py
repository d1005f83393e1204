"""
Database Package

Provides SQLAlchemy async session management, the page/chunk schema and the
dedup page store.
"""

from .session import (
    async_engine,
    AsyncSessionLocal,
    build_engine,
    build_session_factory,
    init_models,
)
from .models import Base, Page, Chunk
from .records import PageRecord, ChunkRecord, UpsertResult
from .page_store import PageStore
from .urls import normalize_url

__all__ = [
    "async_engine",
    "AsyncSessionLocal",
    "build_engine",
    "build_session_factory",
    "init_models",
    "Base",
    "Page",
    "Chunk",
    "PageRecord",
    "ChunkRecord",
    "UpsertResult",
    "PageStore",
    "normalize_url",
]
