"""
Index Routes

Diagnostics and maintenance for the in-memory vector index.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from .models import IndexStatsResponse, OperationResult
from .dependencies import get_page_store, get_vector_index, get_ingestion_pipeline
from ..db.page_store import PageStore
from ..embeddings.index import VectorIndex
from ..pipeline.ingest import IngestionPipeline

logger = logging.getLogger("hask.api")

router = APIRouter(prefix="/index", tags=["index"])


@router.get(
    "/stats",
    response_model=IndexStatsResponse,
    summary="Get vector index statistics",
)
async def get_index_stats(
    store: Annotated[PageStore, Depends(get_page_store)],
    index: Annotated[VectorIndex, Depends(get_vector_index)],
) -> IndexStatsResponse:
    stats = index.get_stats()
    return IndexStatsResponse(
        total_vectors=stats["total_vectors"],
        total_pages=await store.count_pages(),
        total_chunks=await store.count_chunks(),
        dim=stats["dim"],
    )


@router.post(
    "/rebuild",
    response_model=OperationResult,
    summary="Rebuild the vector index from stored chunks",
)
async def rebuild_index(
    pipeline: Annotated[IngestionPipeline, Depends(get_ingestion_pipeline)],
) -> OperationResult:
    """
    Replay every stored chunk into a fresh index.

    Useful after index corruption or when the in-memory state is suspect.
    """
    count = await pipeline.rebuild_index()
    logger.info("Index rebuilt on request: %d entries", count)
    return OperationResult(status="ok", count=count)
