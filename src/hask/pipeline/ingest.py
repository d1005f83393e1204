"""
Ingestion Pipeline

Takes one saved URL with its extracted text through

    Received -> Deduped -> Chunked -> Embedded -> Indexed

or stops in ``Failed(stage, reason)``. Whole runs for the same normalized URL
are serialized; different URLs are ingested concurrently.

Guarantees
----------
- A failed run leaves no chunk rows and no index entries for the new revision,
  and the previous revision stays stored and searchable.
- The new chunk rows replace the old ones in one transaction. The index then
  drops the old entries and adds the new ones in one synchronous call, so
  cancellation cannot leave a page half-indexed.
- Re-saving identical content reuses the existing chunks (no re-embedding).
"""

from __future__ import annotations

import logging
from typing import List, Optional

from ..core.errors import (
    HaskError,
    IngestionFailed,
    MalformedResponse,
    VectorIndexError,
)
from ..core.locks import KeyedLock
from ..db.page_store import PageStore
from ..db.urls import normalize_url
from ..embeddings.chunker import Chunker
from ..embeddings.index import VectorIndex
from ..llm.base import EmbeddingProvider
from .models import IngestReport, IngestStage

logger = logging.getLogger("hask.ingest")


class IngestionPipeline:
    """
    Dedup store -> chunker -> embedder -> vector index, per URL.
    """

    def __init__(
        self,
        store: PageStore,
        index: VectorIndex,
        embedder: EmbeddingProvider,
        chunker: Optional[Chunker] = None,
    ) -> None:
        self._store = store
        self._index = index
        self._embedder = embedder
        self._chunker = chunker or Chunker()
        self._locks = KeyedLock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(
        self,
        url: str,
        content: str,
        title: Optional[str] = None,
    ) -> IngestReport:
        """
        Ingest one page.

        Parameters
        ----------
        url : str
            Page URL in any spelling.
        content : str
            Already-extracted page text. Empty text is a valid page with no
            chunks.
        title : Optional[str]
            Page title, if known.

        Returns
        -------
        IngestReport
            The created-or-updated page and how many chunks it has.

        Raises
        ------
        InvalidURLError
            If the URL cannot be normalized.
        IngestionFailed
            If any stage fails; the cause is chained.
        """
        key = normalize_url(url)

        async with self._locks.hold(key):
            return await self._run(key, content, title)

    async def delete(self, url: str) -> Optional[int]:
        """
        Remove a page, its chunks and its index entries.

        Returns the number of removed chunks, or ``None`` if the page is
        unknown.
        """
        key = normalize_url(url)

        async with self._locks.hold(key):
            removed = await self._store.delete(key)
            if removed is None:
                return None

            self._index.remove_many(removed)
            logger.info("Deleted page %s (%d chunks)", key, len(removed))
            return len(removed)

    async def rebuild_index(self) -> int:
        """
        Replay every stored chunk vector into the vector index.
        """
        entries = await self._store.iter_vectors()
        return self._index.rebuild(entries)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _run(
        self,
        key: str,
        content: str,
        title: Optional[str],
    ) -> IngestReport:
        attempting = IngestStage.DEDUPED
        logger.debug("Received %s (%d chars)", key, len(content))

        try:
            # -------------------------------------------------------------
            # 1. Dedup
            # -------------------------------------------------------------
            upserted = await self._store.upsert(key, title, content)
            page = upserted.page
            logger.debug("Deduped %s (%s)", key, upserted.status)

            # -------------------------------------------------------------
            # 2. Chunk
            # -------------------------------------------------------------
            attempting = IngestStage.CHUNKED
            texts = self._chunker.split(content)
            logger.debug("Chunked %s into %d spans", key, len(texts))

            if not upserted.created and not upserted.content_changed:
                reused = await self._reusable_chunks(key, texts)
                if reused:
                    logger.info("Page %s unchanged, keeping %d chunks", key, reused)
                    return IngestReport(
                        page=page,
                        status=upserted.status,
                        chunk_count=reused,
                        reused=True,
                    )

            if not texts:
                removed = await self._store.delete_chunks(key)
                self._index.remove_many(removed)
                logger.info("No content chunks for %s, nothing indexed", key)
                return IngestReport(page=page, status=upserted.status, chunk_count=0)

            # -------------------------------------------------------------
            # 3. Embed
            # -------------------------------------------------------------
            attempting = IngestStage.EMBEDDED
            vectors = await self._embedder.embed(texts, input_type="search_document")
            if len(vectors) != len(texts):
                raise MalformedResponse(
                    f"Embedder returned {len(vectors)} vectors for {len(texts)} chunks."
                )

            # -------------------------------------------------------------
            # 4. Persist and index
            # -------------------------------------------------------------
            attempting = IngestStage.INDEXED
            self._index.validate(vectors)
            removed, chunks = await self._store.replace_chunks(key, texts, vectors)

            try:
                self._index.swap(
                    removed,
                    ((chunk.id, vector) for chunk, vector in zip(chunks, vectors)),
                )
            except VectorIndexError:
                # Keep the store consistent with the index
                await self._store.delete_chunks(key)
                self._index.remove_many(removed)
                raise

        except HaskError as exc:
            logger.error(
                "Ingestion of %s failed at %s: %s: %s",
                key,
                attempting.value,
                type(exc).__name__,
                exc,
            )
            raise IngestionFailed(attempting.value, f"{type(exc).__name__}: {exc}") from exc

        if removed:
            logger.debug("Replaced %d stale chunks of %s", len(removed), key)
        logger.info("Indexed %s: %d chunks (%s)", key, len(chunks), upserted.status)
        return IngestReport(
            page=page,
            status=upserted.status,
            chunk_count=len(chunks),
        )

    async def _reusable_chunks(self, key: str, texts: List[str]) -> int:
        """
        Number of stored chunks that can stand for ``texts`` as they are, or 0.

        Stored chunks qualify only when they are all still indexed and match
        the fresh split text for text; a failed earlier run can leave the page
        content ahead of its chunks.
        """
        existing = await self._store.chunk_ids(key)
        if not existing or len(existing) != len(texts):
            return 0
        if not all(chunk_id in self._index for chunk_id in existing):
            return 0

        resolved = await self._store.get_chunks(existing)
        stored = sorted(
            (chunk for chunk, _ in resolved.values()),
            key=lambda chunk: chunk.sequence_index,
        )
        if [chunk.text for chunk in stored] != texts:
            return 0
        return len(stored)
