"""
Query Pipeline

Embeds a free-text query, shortlists chunks from the vector index, reranks
the shortlist and summarizes the best pages.

Reranking and summarization are refinement steps: when their provider fails
the pipeline falls back to the vector order and to a truncated prefix of the
page, respectively. Only a failure to embed the query itself is surfaced.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Tuple

from ..config import settings
from ..core.errors import MalformedResponse, ProviderFailure
from ..db.page_store import PageStore
from ..db.records import ChunkRecord, PageRecord
from ..embeddings.index import VectorIndex
from ..llm.base import EmbeddingProvider, RerankProvider, SummaryProvider
from ..llm.summarizer import truncate_summary
from .models import QueryResult, SearchResult

logger = logging.getLogger("hask.query")


class QueryPipeline:
    def __init__(
        self,
        store: PageStore,
        index: VectorIndex,
        embedder: EmbeddingProvider,
        reranker: RerankProvider,
        summarizer: SummaryProvider,
        candidates: Optional[int] = None,
        top_m: Optional[int] = None,
        fallback_chars: Optional[int] = None,
    ) -> None:
        self._store = store
        self._index = index
        self._embedder = embedder
        self._reranker = reranker
        self._summarizer = summarizer
        self.candidates = candidates or settings.search_candidates
        self.top_m = top_m or settings.summary_top_m
        self.fallback_chars = fallback_chars or settings.summary_fallback_chars

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(self, query: str, k: Optional[int] = None) -> List[QueryResult]:
        """
        Answer ``query`` with up to ``k`` result cards (default: top-M).

        An empty index yields ``[]``.
        """
        limit = k or self.top_m
        if len(self._index) == 0 or limit <= 0:
            return []

        # -------------------------------------------------------------
        # 1. Embed the query
        # -------------------------------------------------------------
        vectors = await self._embedder.embed([query], input_type="search_query")
        if len(vectors) != 1:
            raise MalformedResponse(
                f"Embedder returned {len(vectors)} vectors for one query."
            )

        # -------------------------------------------------------------
        # 2. Shortlist from the vector index
        # -------------------------------------------------------------
        hits = self._index.search(vectors[0], max(self.candidates, limit))
        if not hits:
            return []

        # -------------------------------------------------------------
        # 3. Map chunk ids back to text and page
        # -------------------------------------------------------------
        resolved = await self._store.get_chunks([hit.chunk_id for hit in hits])

        candidates: List[Tuple[SearchResult, ChunkRecord, PageRecord]] = []
        for hit in hits:
            entry = resolved.get(hit.chunk_id)
            if entry is None:
                logger.warning("Index entry %s has no stored chunk, skipped", hit.chunk_id)
                continue
            chunk, page = entry
            candidates.append(
                (
                    SearchResult(
                        chunk_id=chunk.id,
                        page_url=page.url,
                        similarity_score=hit.score,
                    ),
                    chunk,
                    page,
                )
            )

        if not candidates:
            return []

        # -------------------------------------------------------------
        # 4. Rerank (falls back to vector order)
        # -------------------------------------------------------------
        candidates = await self._rerank(query, candidates)

        # -------------------------------------------------------------
        # 5. One card per page, best chunk first
        # -------------------------------------------------------------
        best: Dict[str, Tuple[SearchResult, ChunkRecord, PageRecord]] = {}
        for candidate in candidates:
            best.setdefault(candidate[0].page_url, candidate)
        top = list(best.values())[:limit]

        # -------------------------------------------------------------
        # 6. Summarize (falls back to a truncated prefix)
        # -------------------------------------------------------------
        summaries = await asyncio.gather(
            *(self._summarize(page) for _, _, page in top)
        )

        return [
            QueryResult(
                page_url=page.url,
                title=page.title,
                score=(
                    result.rerank_score
                    if result.rerank_score is not None
                    else result.similarity_score
                ),
                summary=summary,
                chunk_id=result.chunk_id,
                similarity_score=result.similarity_score,
                rerank_score=result.rerank_score,
            )
            for (result, _, page), summary in zip(top, summaries)
        ]

    # ------------------------------------------------------------------
    # Refinement Steps
    # ------------------------------------------------------------------

    async def _rerank(
        self,
        query: str,
        candidates: List[Tuple[SearchResult, ChunkRecord, PageRecord]],
    ) -> List[Tuple[SearchResult, ChunkRecord, PageRecord]]:
        try:
            order = await self._reranker.rerank(query, [chunk.text for _, chunk, _ in candidates])
        except ProviderFailure as exc:
            logger.warning(
                "Rerank unavailable (%s: %s), keeping vector order",
                type(exc).__name__,
                exc,
            )
            return candidates

        if sorted(index for index, _ in order) != list(range(len(candidates))):
            logger.warning("Rerank did not cover every candidate, keeping vector order")
            return candidates

        reranked = []
        for index, score in order:
            result, chunk, page = candidates[index]
            reranked.append(
                (result.model_copy(update={"rerank_score": float(score)}), chunk, page)
            )
        return reranked

    async def _summarize(self, page: PageRecord) -> str:
        source = page.raw_content.strip()
        if not source:
            return page.title or page.url

        try:
            summary = await self._summarizer.summarize(source)
        except ProviderFailure as exc:
            logger.warning(
                "Summarize unavailable for %s (%s), using truncated content",
                page.url,
                type(exc).__name__,
            )
            summary = ""

        return summary.strip() or truncate_summary(source, self.fallback_chars)
