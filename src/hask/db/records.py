"""
Store Records

Detached, immutable views of stored rows. The page store never hands ORM
objects to its callers; it returns these instead.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field, ConfigDict


class PageRecord(BaseModel):
    """
    A visited page as persisted by the dedup store.
    """

    url: str = Field(..., min_length=1, description="Normalized URL (dedup key).")
    title: str = Field(..., description="Page title; defaults to the URL.")
    fetched_at: datetime = Field(..., description="UTC time of the last save.")
    raw_content: str = Field(default="", description="Extracted page text.")

    model_config = ConfigDict(frozen=True, extra="forbid")

    @classmethod
    def from_row(cls, row) -> "PageRecord":
        fetched_at = row.fetched_at
        # SQLite drops tzinfo on the way back
        if fetched_at.tzinfo is None:
            fetched_at = fetched_at.replace(tzinfo=timezone.utc)
        return cls(
            url=row.url,
            title=row.title,
            fetched_at=fetched_at,
            raw_content=row.raw_content,
        )


class ChunkRecord(BaseModel):
    """
    A stored chunk without its vector.
    """

    id: str = Field(..., min_length=1)
    page_url: str = Field(..., min_length=1)
    sequence_index: int = Field(..., ge=0)
    text: str

    model_config = ConfigDict(frozen=True, extra="forbid")

    @classmethod
    def from_row(cls, row) -> "ChunkRecord":
        return cls(
            id=row.id,
            page_url=row.page_url,
            sequence_index=row.sequence_index,
            text=row.text,
        )


class UpsertResult(BaseModel):
    """
    Outcome of :meth:`PageStore.upsert`.
    """

    page: PageRecord
    status: Literal["created", "updated"]
    content_changed: bool

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def created(self) -> bool:
        return self.status == "created"
