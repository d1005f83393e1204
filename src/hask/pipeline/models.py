"""
Pipeline Data Models

Values produced by the ingestion and query pipelines. None of these are
persisted.
"""

from __future__ import annotations

from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field, ConfigDict

from ..db.records import PageRecord


class IngestStage(str, Enum):
    DEDUPED = "deduped"
    CHUNKED = "chunked"
    EMBEDDED = "embedded"
    INDEXED = "indexed"


class IngestReport(BaseModel):
    """
    Terminal success of one ingestion run.
    """
    page: PageRecord
    status: Literal["created", "updated"]
    stage: IngestStage = IngestStage.INDEXED
    chunk_count: int = Field(default=0, ge=0)
    reused: bool = Field(
        default=False,
        description="True when unchanged content kept its existing chunks.",
    )

    model_config = ConfigDict(frozen=True)


class SearchResult(BaseModel):
    """
    A vector-index candidate after mapping back to the store.
    """
    chunk_id: str
    page_url: str
    similarity_score: float
    rerank_score: Optional[float] = None

    model_config = ConfigDict(extra="forbid")


class QueryResult(BaseModel):
    """
    One result card returned to the user.
    """
    page_url: str
    title: str
    score: float
    summary: str = Field(..., min_length=1)
    chunk_id: str
    similarity_score: float
    rerank_score: Optional[float] = None

    model_config = ConfigDict(extra="forbid")
