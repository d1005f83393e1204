"""
URL Routes

This module exposes the endpoints the browser extension calls while the user
browses:
- Saving a visited page (runs one ingestion pipeline)
- Checking whether a URL has been saved before
- Forgetting a saved page
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from .models import (
    SaveUrlRequest,
    SavePageResponse,
    UrlRequest,
    CheckUrlResponse,
    OperationResult,
)
from .dependencies import get_page_store, get_ingestion_pipeline
from ..db.page_store import PageStore
from ..pipeline.ingest import IngestionPipeline

logger = logging.getLogger("hask.api")

router = APIRouter(tags=["urls"])


@router.post(
    "/url",
    response_model=SavePageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Save a visited page",
)
async def save_url(
    req: SaveUrlRequest,
    pipeline: Annotated[IngestionPipeline, Depends(get_ingestion_pipeline)],
) -> SavePageResponse:
    """
    Ingest a visited page and return the created-or-updated record.

    Failures are reported by the ``IngestionFailed`` handler and affect only
    this request.
    """
    logger.info("Saving the url: %s", req.url)
    report = await pipeline.run(req.url, req.content, title=req.title)

    return SavePageResponse(
        url=report.page.url,
        title=report.page.title,
        fetched_at=report.page.fetched_at,
        status=report.status,
        chunks=report.chunk_count,
        reused=report.reused,
    )


@router.post(
    "/check/url",
    response_model=CheckUrlResponse,
    summary="Check whether a URL was saved before",
)
async def check_url(
    req: UrlRequest,
    store: Annotated[PageStore, Depends(get_page_store)],
) -> CheckUrlResponse:
    page = await store.get(req.url)

    return CheckUrlResponse(
        url=req.url,
        timestamp=page.fetched_at if page else None,
        status="exists" if page else "not exists",
    )


@router.delete(
    "/url",
    response_model=OperationResult,
    summary="Forget a saved page",
)
async def delete_url(
    req: UrlRequest,
    pipeline: Annotated[IngestionPipeline, Depends(get_ingestion_pipeline)],
) -> OperationResult:
    """
    Delete a page together with its chunks and index entries.
    """
    count = await pipeline.delete(req.url)
    if count is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="URL not found",
        )

    return OperationResult(status="deleted", count=count)
