"""
SQLAlchemy Models

Defines the database schema for:
- Pages (one row per normalized URL)
- Chunks (text span + embedding, cascading with their page)
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import List, Sequence

import numpy as np
from sqlalchemy import (
    String,
    Integer,
    Text,
    DateTime,
    LargeBinary,
    ForeignKey,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# Embeddings are stored as little-endian float32 bytes
VECTOR_DTYPE = np.dtype("<f4")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_chunk_id() -> str:
    return uuid.uuid4().hex


def pack_vector(vector: Sequence[float]) -> bytes:
    return np.asarray(vector, dtype=VECTOR_DTYPE).tobytes()


def unpack_vector(blob: bytes) -> np.ndarray:
    return np.frombuffer(blob, dtype=VECTOR_DTYPE)


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


# ---------------------------------------------------------------------
# Page Model
# ---------------------------------------------------------------------

class Page(Base):
    """
    A visited page, keyed by its normalized URL.
    """
    __tablename__ = "page"

    url: Mapped[str] = mapped_column(Text, primary_key=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    fetched_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    raw_content: Mapped[str] = mapped_column(Text, nullable=False, default="")

    chunks: Mapped[List["Chunk"]] = relationship(
        "Chunk",
        back_populates="page",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Chunk.sequence_index",
    )


# ---------------------------------------------------------------------
# Chunk Model
# ---------------------------------------------------------------------

class Chunk(Base):
    """
    One embedded span of a page's content.

    Immutable once written; removed together with its page.
    """
    __tablename__ = "chunk"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_chunk_id)
    page_url: Mapped[str] = mapped_column(
        Text,
        ForeignKey("page.url", ondelete="CASCADE"),
        nullable=False,
    )
    sequence_index: Mapped[int] = mapped_column(Integer, nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    embedding: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    dim: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    page: Mapped["Page"] = relationship("Page", back_populates="chunks")

    __table_args__ = (
        UniqueConstraint("page_url", "sequence_index", name="uq_chunk_page_seq"),
        Index("idx_chunk_page", "page_url"),
    )
