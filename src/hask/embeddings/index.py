"""
FAISS Vector Index

This module implements the in-memory vector index over chunk embeddings.
The index is a derived cache: the page store holds every chunk vector, and
:meth:`VectorIndex.rebuild` restores the index from it at any time.

Key Properties
--------------
- Exact cosine similarity (IndexFlatIP over L2-normalized vectors)
- Explicit ID management via IndexIDMap2
- Replace-on-insert for re-embedded chunks
- Deterministic ordering: ties resolved by insertion order
- Atomic batch inserts; readers never see a partial batch
- Concurrency-safe (thread locking)
"""

from __future__ import annotations

import logging
from threading import RLock
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import faiss
import numpy as np

from .models import SearchHit
from ..core.errors import VectorIndexError

logger = logging.getLogger("hask.index")

# Scores this close to the k-th score are treated as ties
_TIE_EPSILON = 1e-6


# ---------------------------------------------------------------------
# Internal State
# ---------------------------------------------------------------------

class _IndexState:
    """
    Everything the index mutates, bundled so a rebuild can swap it at once.
    """

    def __init__(self, dim: Optional[int] = None) -> None:
        self.index: Optional[faiss.IndexIDMap2] = None
        self.dim: Optional[int] = None
        self.faiss_ids: Dict[str, int] = {}    # chunk_id -> faiss id
        self.chunk_ids: Dict[int, str] = {}    # faiss id -> chunk_id
        self.order: Dict[str, int] = {}        # chunk_id -> insertion rank
        self.next_id = 0
        self.next_rank = 0

        if dim is not None:
            self.init_index(dim)

    def init_index(self, dim: int) -> None:
        self.index = faiss.IndexIDMap2(faiss.IndexFlatIP(dim))
        self.dim = dim

    def add(self, entries: List[Tuple[str, np.ndarray]]) -> None:
        """
        Add validated, normalized vectors. Existing ids are replaced but keep
        their original insertion rank.
        """
        if self.index is None:
            self.init_index(entries[0][1].shape[0])

        replaced = [
            self.faiss_ids[chunk_id]
            for chunk_id, _ in entries
            if chunk_id in self.faiss_ids
        ]
        if replaced:
            self.index.remove_ids(np.asarray(replaced, dtype="int64"))
            for faiss_id in replaced:
                self.chunk_ids.pop(faiss_id, None)

        ids = np.arange(self.next_id, self.next_id + len(entries), dtype="int64")
        self.next_id += len(entries)

        vectors = np.vstack([vec for _, vec in entries]).astype("float32")
        self.index.add_with_ids(vectors, ids)

        for faiss_id, (chunk_id, _) in zip(ids, entries):
            faiss_id = int(faiss_id)
            self.faiss_ids[chunk_id] = faiss_id
            self.chunk_ids[faiss_id] = chunk_id
            if chunk_id not in self.order:
                self.order[chunk_id] = self.next_rank
                self.next_rank += 1

    def remove(self, chunk_ids: Iterable[str]) -> int:
        faiss_ids = []
        for chunk_id in chunk_ids:
            faiss_id = self.faiss_ids.pop(chunk_id, None)
            if faiss_id is None:
                continue
            self.chunk_ids.pop(faiss_id, None)
            self.order.pop(chunk_id, None)
            faiss_ids.append(faiss_id)

        if faiss_ids and self.index is not None:
            self.index.remove_ids(np.asarray(faiss_ids, dtype="int64"))

        return len(faiss_ids)


# ---------------------------------------------------------------------
# Vector Index
# ---------------------------------------------------------------------

class VectorIndex:
    """
    In-memory FAISS index mapping chunk ids to embeddings.

    This class is thread-safe and safe to use concurrently across async
    request handlers; every mutation happens inside its lock in a single
    synchronous step.
    """

    def __init__(self, dim: Optional[int] = None) -> None:
        """
        Parameters
        ----------
        dim : Optional[int]
            Fixed dimensionality, kept across rebuild and clear. When
            omitted, the first insert after construction, rebuild or clear
            decides it.
        """
        self._fixed_dim = dim
        self._state = _IndexState(dim)
        self._lock = RLock()

    # ------------------------------------------------------------------
    # Internal Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _prepare(
        entries: Iterable[Tuple[str, Sequence[float]]],
        dim: Optional[int],
    ) -> List[Tuple[str, np.ndarray]]:
        """
        Validate and L2-normalize vectors before any state is touched.

        Duplicate chunk ids within one batch collapse to their last vector.
        """
        prepared: Dict[str, np.ndarray] = {}

        for chunk_id, embedding in entries:
            if not chunk_id:
                raise VectorIndexError("Chunk id must be non-empty.")

            try:
                vec = np.asarray(embedding, dtype="float32").reshape(-1)
            except (TypeError, ValueError) as exc:
                raise VectorIndexError(
                    f"Embedding for chunk {chunk_id!r} is not numeric."
                ) from exc

            if vec.size == 0:
                raise VectorIndexError("Embedding vectors must be non-empty.")

            if not np.all(np.isfinite(vec)):
                raise VectorIndexError(
                    f"Embedding for chunk {chunk_id!r} contains non-finite values."
                )

            if dim is None:
                dim = vec.size
            elif vec.size != dim:
                raise VectorIndexError(
                    f"Inconsistent embedding dimensionality for chunk {chunk_id!r}: "
                    f"expected {dim}, got {vec.size}."
                )

            prepared.pop(chunk_id, None)
            prepared[chunk_id] = vec

        if not prepared:
            return []

        matrix = np.vstack(list(prepared.values()))
        faiss.normalize_L2(matrix)

        return list(zip(prepared.keys(), matrix))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def dim(self) -> Optional[int]:
        with self._lock:
            return self._state.dim

    def __len__(self) -> int:
        with self._lock:
            return len(self._state.faiss_ids)

    def __contains__(self, chunk_id: object) -> bool:
        with self._lock:
            return chunk_id in self._state.faiss_ids

    def insert(self, chunk_id: str, embedding: Sequence[float]) -> None:
        """
        Add or replace the entry for ``chunk_id``.
        """
        self.insert_many([(chunk_id, embedding)])

    def insert_many(self, entries: Iterable[Tuple[str, Sequence[float]]]) -> int:
        """
        Add or replace a batch of entries atomically.

        The whole batch is validated first; on any error nothing is inserted.

        Returns
        -------
        int
            Number of distinct chunk ids written.
        """
        entries = list(entries)
        if not entries:
            return 0

        with self._lock:
            prepared = self._prepare(entries, self._state.dim)

            try:
                self._state.add(prepared)
            except Exception as exc:
                raise VectorIndexError(
                    f"Failed to add vectors to FAISS: {type(exc).__name__}"
                ) from exc

            return len(prepared)

    def remove(self, chunk_id: str) -> None:
        """
        Delete the entry for ``chunk_id`` if present.
        """
        self.remove_many([chunk_id])

    def remove_many(self, chunk_ids: Iterable[str]) -> int:
        """
        Delete several entries; unknown ids are ignored.

        Returns the number of entries actually removed.
        """
        with self._lock:
            try:
                return self._state.remove(chunk_ids)
            except Exception as exc:
                raise VectorIndexError(
                    f"Failed to remove IDs from FAISS: {type(exc).__name__}"
                ) from exc

    def validate(self, embeddings: Sequence[Sequence[float]]) -> None:
        """
        Raise VectorIndexError if ``embeddings`` could not be inserted now.
        """
        with self._lock:
            self._prepare(
                ((str(i), vec) for i, vec in enumerate(embeddings)),
                self._state.dim,
            )

    def swap(
        self,
        remove_ids: Iterable[str],
        entries: Iterable[Tuple[str, Sequence[float]]],
    ) -> int:
        """
        Remove ``remove_ids`` and insert ``entries`` in one locked step.

        The new entries are validated before anything is removed, so on a
        validation error the index is left as it was. Searches never observe
        the state between the removal and the insert.

        Returns
        -------
        int
            Number of distinct chunk ids written.
        """
        remove_ids = list(remove_ids)
        entries = list(entries)

        with self._lock:
            prepared = self._prepare(entries, self._state.dim)

            try:
                self._state.remove(remove_ids)
                if prepared:
                    self._state.add(prepared)
            except Exception as exc:
                raise VectorIndexError(
                    f"Failed to swap vectors in FAISS: {type(exc).__name__}"
                ) from exc

            return len(prepared)

    def search(
        self,
        query_embedding: Sequence[float],
        k: int = 10,
    ) -> List[SearchHit]:
        """
        Return the ``k`` entries most similar to the query.

        Results are ordered by descending cosine similarity; equal scores are
        ordered by insertion (earlier first). Entries tied with the k-th score
        are all considered before the cut, so the result is the exact top-k.
        """
        with self._lock:
            state = self._state
            total = len(state.faiss_ids)
            if state.index is None or total == 0 or k <= 0:
                return []

            q = np.ascontiguousarray(
                np.asarray(query_embedding, dtype="float32").reshape(1, -1)
            )
            if q.shape[1] != state.dim:
                raise VectorIndexError(
                    f"Query dimensionality {q.shape[1]} does not match index "
                    f"dimensionality {state.dim}."
                )
            if not np.all(np.isfinite(q)):
                raise VectorIndexError("Query embedding contains non-finite values.")
            faiss.normalize_L2(q)

            kk = min(k, total)
            scores, idxs = state.index.search(q, kk)

            valid = [
                (float(score), int(idx))
                for score, idx in zip(scores[0], idxs[0])
                if int(idx) != -1
            ]
            if not valid:
                return []

            if len(valid) < total:
                # Pull in everything tied with the k-th score
                kth = min(score for score, _ in valid)
                lims, dists, labels = state.index.range_search(q, kth - _TIE_EPSILON)
                valid = [
                    (float(score), int(idx))
                    for score, idx in zip(dists[lims[0]:lims[1]], labels[lims[0]:lims[1]])
                ]

            ranked = sorted(
                (
                    (score, state.order[state.chunk_ids[idx]], state.chunk_ids[idx])
                    for score, idx in valid
                    if idx in state.chunk_ids
                ),
                key=lambda item: (-item[0], item[1]),
            )

            return [
                SearchHit(chunk_id=chunk_id, score=max(-1.0, min(1.0, score)))
                for score, _, chunk_id in ranked[:k]
            ]

    def rebuild(self, entries: Iterable[Tuple[str, Sequence[float]]]) -> int:
        """
        Fully replace the index contents.

        The new structure is built outside the lock and swapped in at once,
        so concurrent searches see either the old or the new index.
        """
        prepared = self._prepare(entries, self._fixed_dim)

        fresh = _IndexState(self._fixed_dim)
        if prepared:
            try:
                fresh.add(prepared)
            except Exception as exc:
                raise VectorIndexError(
                    f"Failed to rebuild FAISS index: {type(exc).__name__}"
                ) from exc

        with self._lock:
            self._state = fresh

        logger.info("Vector index rebuilt with %d entries", len(prepared))
        return len(prepared)

    def clear(self) -> None:
        with self._lock:
            self._state = _IndexState(self._fixed_dim)

    def get_stats(self) -> dict:
        """
        Return index statistics for diagnostics.
        """
        with self._lock:
            return {
                "total_vectors": self._state.index.ntotal if self._state.index else 0,
                "dim": self._state.dim,
            }
