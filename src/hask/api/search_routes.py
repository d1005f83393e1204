"""
Search Routes

Free-text search over previously visited pages. Returns result cards ordered
by relevance, each with a summary of the page.
"""

from fastapi import APIRouter, Depends, status
from typing import List, Annotated

from .models import SearchRequest
from .dependencies import get_query_pipeline
from ..pipeline.models import QueryResult
from ..pipeline.query import QueryPipeline

router = APIRouter(prefix="/search", tags=["search"])


@router.post(
    "",
    response_model=List[QueryResult],
    summary="Search visited pages",
    status_code=status.HTTP_200_OK,
)
async def search(
    req: SearchRequest,
    pipeline: Annotated[QueryPipeline, Depends(get_query_pipeline)],
) -> List[QueryResult]:
    """
    Run the query pipeline.

    Parameters
    ----------
    req : SearchRequest
        Contains:
        - query: Search query string
        - k: Number of result cards to return (defaults to the configured top-M)

    Returns
    -------
    List[QueryResult]
        Ranked result cards; empty when nothing has been indexed yet.
    """
    # Rerank and summarize failures degrade inside the pipeline; a failure
    # to embed the query reaches the ProviderFailure handler (502).
    return await pipeline.run(req.query, k=req.k)
