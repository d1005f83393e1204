"""
Rerank Client

Second-stage relevance scoring over the vector-index shortlist, backed by the
Cohere ``/rerank`` endpoint.

The provider's ordering is not trusted: entries are re-sorted locally, and
candidates the provider left out are appended after the scored ones in their
original order, so the output always covers every candidate exactly once.
"""

from __future__ import annotations

import logging
import math
from typing import Dict, List, Optional, Sequence, Tuple

from ..config import settings
from ..core.errors import MalformedResponse
from .client import CohereClient

logger = logging.getLogger("hask.reranker")

# Score given to candidates the provider did not return
UNSCORED = 0.0


class Reranker:
    def __init__(
        self,
        client: Optional[CohereClient] = None,
        model: Optional[str] = None,
    ) -> None:
        self.client = client or CohereClient()
        self.model = model or settings.rerank_model

    async def rerank(
        self,
        query: str,
        candidates: Sequence[str],
    ) -> List[Tuple[int, float]]:
        """
        Order ``candidates`` by relevance to ``query``.

        Returns
        -------
        List[Tuple[int, float]]
            ``(original_index, score)`` for every candidate, descending by
            score, ties broken by original index.
        """
        if not candidates:
            return []

        payload = {
            "model": self.model,
            "query": query,
            "documents": list(candidates),
            "top_n": len(candidates),
        }
        data = await self.client.post("/rerank", payload)

        try:
            scores = self._extract_scores(data, len(candidates))
        except MalformedResponse as exc:
            logger.error(
                "Malformed rerank response for %d candidates: %s",
                len(candidates),
                exc,
            )
            raise

        scored = sorted(scores.items(), key=lambda item: (-item[1], item[0]))
        unscored = [
            (i, UNSCORED) for i in range(len(candidates)) if i not in scores
        ]
        return scored + unscored

    @staticmethod
    def _extract_scores(data: dict, count: int) -> Dict[int, float]:
        """
        Parse ``{"results": [{"index": int, "relevance_score": float}, ...]}``.
        """
        results = data.get("results")
        if not isinstance(results, list):
            raise MalformedResponse("Rerank response missing 'results' list.")

        scores: Dict[int, float] = {}
        for position, entry in enumerate(results):
            if not isinstance(entry, dict):
                raise MalformedResponse(f"Rerank result {position} is not an object.")

            index = entry.get("index")
            score = entry.get("relevance_score")

            if not isinstance(index, int) or isinstance(index, bool):
                raise MalformedResponse(f"Rerank result {position} has no integer index.")
            if not 0 <= index < count:
                raise MalformedResponse(
                    f"Rerank result {position} index {index} out of range 0..{count - 1}."
                )
            if index in scores:
                raise MalformedResponse(f"Rerank index {index} returned twice.")
            if (
                not isinstance(score, (int, float))
                or isinstance(score, bool)
                or not math.isfinite(score)
            ):
                raise MalformedResponse(
                    f"Rerank result {position} has a non-numeric relevance score."
                )

            scores[index] = float(score)

        return scores
