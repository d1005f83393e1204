"""
Embedding Data Models

Value types produced by the vector index.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, ConfigDict


class SearchHit(BaseModel):
    """
    One nearest-neighbor match: a chunk id and its cosine similarity.
    """

    chunk_id: str = Field(..., min_length=1)
    score: float = Field(..., ge=-1.0, le=1.0)

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
    )
