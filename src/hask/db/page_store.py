"""
Page Store

Durable dedup store: maps normalized URLs to pages and keeps the embedded
chunks of every page, so the in-memory vector index can always be rebuilt.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional, Sequence, Tuple

import numpy as np
from sqlalchemy import select, delete, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import Page, Chunk, pack_vector, unpack_vector, new_chunk_id, utcnow
from .records import PageRecord, ChunkRecord, UpsertResult
from .urls import normalize_url
from ..core.errors import StorageError
from ..core.locks import KeyedLock

logger = logging.getLogger("hask.store")


class PageStore:
    """
    SQLAlchemy-backed store for pages and their chunks.

    ``upsert`` calls for the same normalized URL are serialized; calls for
    different URLs run concurrently. Every SQLAlchemy failure surfaces as
    :class:`StorageError`.
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ) -> None:
        """
        Initialize with an async session factory.

        Parameters
        ----------
        session_factory : Optional[async_sessionmaker[AsyncSession]]
            Factory for database sessions. Defaults to the application-wide
            ``AsyncSessionLocal``.
        """
        if session_factory is None:
            from .session import AsyncSessionLocal
            session_factory = AsyncSessionLocal

        self._session_factory = session_factory
        self._locks = KeyedLock()

    # ------------------------------------------------------------------
    # Internal Helpers
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.error("Storage operation failed: %s", exc)
            raise StorageError(f"{type(exc).__name__}: {exc}") from exc

    @staticmethod
    async def _chunk_ids_for(session: AsyncSession, url: str) -> List[str]:
        result = await session.execute(
            select(Chunk.id)
            .where(Chunk.page_url == url)
            .order_by(Chunk.sequence_index)
        )
        return [row[0] for row in result.all()]

    # ------------------------------------------------------------------
    # Dedup
    # ------------------------------------------------------------------

    async def exists(self, url: str) -> bool:
        """
        Return whether a page is stored for the normalized form of ``url``.
        """
        key = normalize_url(url)
        async with self._session() as session:
            result = await session.execute(select(Page.url).where(Page.url == key))
            return result.scalar_one_or_none() is not None

    async def get(self, url: str) -> Optional[PageRecord]:
        key = normalize_url(url)
        async with self._session() as session:
            page = await session.get(Page, key)
            return PageRecord.from_row(page) if page is not None else None

    async def upsert(
        self,
        url: str,
        title: Optional[str],
        content: str,
    ) -> UpsertResult:
        """
        Create or update the page for ``url``.

        Parameters
        ----------
        url : str
            Page URL in any spelling; normalized before use.
        title : Optional[str]
            New title. When omitted, an existing title is kept and a new
            page falls back to its URL.
        content : str
            Extracted page text.

        Returns
        -------
        UpsertResult
            The stored page, ``created`` or ``updated``, and whether the
            stored content changed.
        """
        key = normalize_url(url)

        async with self._locks.hold(key):
            async with self._session() as session:
                page = await session.get(Page, key)
                now = utcnow()

                if page is None:
                    page = Page(
                        url=key,
                        title=title or key,
                        fetched_at=now,
                        raw_content=content,
                    )
                    session.add(page)
                    status = "created"
                    content_changed = True
                else:
                    content_changed = page.raw_content != content
                    page.raw_content = content
                    page.fetched_at = now
                    if title:
                        page.title = title
                    status = "updated"

                await session.commit()
                record = PageRecord.from_row(page)

        logger.debug("Upserted page %s (%s)", key, status)
        return UpsertResult(page=record, status=status, content_changed=content_changed)

    async def delete(self, url: str) -> Optional[List[str]]:
        """
        Delete a page and, by cascade, all of its chunks.

        Returns
        -------
        Optional[List[str]]
            Ids of the removed chunks, or ``None`` if no such page exists.
        """
        key = normalize_url(url)
        async with self._locks.hold(key):
            async with self._session() as session:
                page = await session.get(Page, key)
                if page is None:
                    return None

                removed = await self._chunk_ids_for(session, key)
                await session.execute(delete(Chunk).where(Chunk.page_url == key))
                await session.execute(delete(Page).where(Page.url == key))
                await session.commit()
                return removed

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    async def chunk_ids(self, url: str) -> List[str]:
        key = normalize_url(url)
        async with self._session() as session:
            return await self._chunk_ids_for(session, key)

    async def delete_chunks(self, url: str) -> List[str]:
        """
        Remove every chunk of a page, keeping the page itself.

        Returns the ids of the removed chunks.
        """
        key = normalize_url(url)
        async with self._session() as session:
            removed = await self._chunk_ids_for(session, key)
            if removed:
                await session.execute(delete(Chunk).where(Chunk.page_url == key))
                await session.commit()
            return removed

    async def replace_chunks(
        self,
        url: str,
        texts: Sequence[str],
        vectors: Sequence[Sequence[float]],
    ) -> Tuple[List[str], List[ChunkRecord]]:
        """
        Atomically swap the chunks of a page for a new set.

        Parameters
        ----------
        url : str
            Page URL; the page must already exist.
        texts : Sequence[str]
            Chunk texts in page order.
        vectors : Sequence[Sequence[float]]
            One embedding per text.

        Returns
        -------
        Tuple[List[str], List[ChunkRecord]]
            Ids of the chunks that were removed, and the new chunks.
        """
        if len(texts) != len(vectors):
            raise ValueError("Chunk text count does not match vector count.")

        key = normalize_url(url)
        async with self._session() as session:
            if await session.get(Page, key) is None:
                raise StorageError(f"Cannot attach chunks to unknown page {key!r}")

            removed = await self._chunk_ids_for(session, key)
            if removed:
                await session.execute(delete(Chunk).where(Chunk.page_url == key))

            now = utcnow()
            rows = [
                Chunk(
                    id=new_chunk_id(),
                    page_url=key,
                    sequence_index=i,
                    text=text,
                    embedding=pack_vector(vector),
                    dim=len(vector),
                    created_at=now,
                )
                for i, (text, vector) in enumerate(zip(texts, vectors))
            ]
            session.add_all(rows)
            await session.commit()

            return removed, [ChunkRecord.from_row(row) for row in rows]

    async def get_chunks(
        self,
        chunk_ids: Sequence[str],
    ) -> Dict[str, Tuple[ChunkRecord, PageRecord]]:
        """
        Resolve chunk ids to their chunk and owning page.

        Unknown ids are absent from the returned mapping.
        """
        if not chunk_ids:
            return {}

        async with self._session() as session:
            result = await session.execute(
                select(Chunk, Page)
                .join(Page, Chunk.page_url == Page.url)
                .where(Chunk.id.in_(list(chunk_ids)))
            )
            return {
                chunk.id: (ChunkRecord.from_row(chunk), PageRecord.from_row(page))
                for chunk, page in result.all()
            }

    async def iter_vectors(self) -> List[Tuple[str, np.ndarray]]:
        """
        Return ``(chunk_id, vector)`` for every stored chunk, oldest first.

        This is the replay source for rebuilding the vector index.
        """
        async with self._session() as session:
            result = await session.execute(
                select(Chunk.id, Chunk.embedding).order_by(
                    Chunk.created_at,
                    Chunk.page_url,
                    Chunk.sequence_index,
                )
            )
            return [(row.id, unpack_vector(row.embedding)) for row in result.all()]

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    async def count_pages(self) -> int:
        async with self._session() as session:
            result = await session.execute(select(func.count()).select_from(Page))
            return result.scalar() or 0

    async def count_chunks(self) -> int:
        async with self._session() as session:
            result = await session.execute(select(func.count()).select_from(Chunk))
            return result.scalar() or 0
