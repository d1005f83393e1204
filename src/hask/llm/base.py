"""
Provider capability interfaces.

The pipelines depend only on these protocols; any local model or remote API
with the same contracts can stand in for the Cohere-backed implementations.
"""

from __future__ import annotations

from typing import List, Protocol, Sequence, Tuple


class EmbeddingProvider(Protocol):
    async def embed(
        self,
        texts: Sequence[str],
        input_type: str = "search_document",
    ) -> List[List[float]]:
        """One vector per text, same order, same dimensionality."""
        ...


class RerankProvider(Protocol):
    async def rerank(
        self,
        query: str,
        candidates: Sequence[str],
    ) -> List[Tuple[int, float]]:
        """(original_index, score) for every candidate, best first."""
        ...


class SummaryProvider(Protocol):
    async def summarize(self, text: str) -> str:
        ...
