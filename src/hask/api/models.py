"""
API Models

This module defines all Pydantic models used for request/response validation
across the URL, search and index endpoints.

Design Goals
------------
- Strong typing
- Safe defaults (no shared mutable state)
- Clear schema documentation
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, ConfigDict


class OperationResult(BaseModel):
    """
    Standardized mutation operation result.
    """
    status: Literal["deleted", "ok"]
    count: int = Field(..., ge=0)

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# URL Models
# ---------------------------------------------------------------------

class SaveUrlRequest(BaseModel):
    """
    A visited page pushed by the browser extension.
    """
    url: str = Field(..., min_length=1)
    title: Optional[str] = None
    content: str = ""

    model_config = ConfigDict(extra="forbid")


class SavePageResponse(BaseModel):
    url: str
    title: str
    fetched_at: datetime
    status: Literal["created", "updated"]
    chunks: int = Field(..., ge=0)
    reused: bool = False

    model_config = ConfigDict(extra="forbid")


class UrlRequest(BaseModel):
    url: str = Field(..., min_length=1)

    model_config = ConfigDict(extra="forbid")


class CheckUrlResponse(BaseModel):
    """
    Existence check result. ``timestamp`` is the last save time, if any.
    """
    url: str
    timestamp: Optional[datetime] = None
    status: Literal["exists", "not exists"]

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# Search Models
# ---------------------------------------------------------------------

class SearchRequest(BaseModel):
    query: str = Field(..., min_length=1)
    k: Optional[int] = Field(default=None, ge=1, le=50)

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# Index Models
# ---------------------------------------------------------------------

class IndexStatsResponse(BaseModel):
    total_vectors: int = Field(..., ge=0)
    total_pages: int = Field(..., ge=0)
    total_chunks: int = Field(..., ge=0)
    dim: Optional[int] = None

    model_config = ConfigDict(extra="forbid")
