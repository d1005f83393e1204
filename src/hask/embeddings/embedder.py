"""
Embedding Client

This module implements the embedding client used by both pipelines. It calls
the Cohere ``/embed`` endpoint (or any compatible provider) and is
responsible for:

- Efficient batching of text inputs
- Strict response validation (count, shape, numeric content)
- Deterministic, order-preserving output for the vector index

A malformed response is always fatal for the call: vectors are never padded
or fabricated. The class is stateless and safe to reuse across requests.
"""

from __future__ import annotations

import logging
import math
from typing import List, Optional, Sequence

from ..config import settings
from ..core.errors import MalformedResponse
from ..llm.client import CohereClient

logger = logging.getLogger("hask.embedder")


class Embedder:
    """
    Asynchronous embedding generator for batches of text.

    This class performs no caching; the page store keeps every chunk vector.
    """

    def __init__(
        self,
        client: Optional[CohereClient] = None,
        model: Optional[str] = None,
        batch_size: Optional[int] = None,
    ) -> None:
        """
        Initialize an Embedder.

        Parameters
        ----------
        client : Optional[CohereClient]
            Provider transport. Defaults to a client built from settings.

        model : Optional[str]
            Optional override for embedding model. Defaults to settings.embedding_model.

        batch_size : Optional[int]
            Maximum number of texts per provider call.
        """
        self.client = client or CohereClient()
        self.model = model or settings.embedding_model
        self.batch_size = batch_size or settings.embed_batch_size

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed(
        self,
        texts: Sequence[str],
        input_type: str = "search_document",
    ) -> List[List[float]]:
        """
        Generate embeddings for a sequence of input texts.

        Parameters
        ----------
        texts : Sequence[str]
            List or sequence of input text strings.

        input_type : str
            ``search_document`` for indexed chunks, ``search_query`` for
            query text.

        Returns
        -------
        List[List[float]]
            One embedding per input text, in input order.

        Raises
        ------
        MalformedResponse
            If the provider returns the wrong number of vectors, non-numeric
            data or vectors of differing dimensionality.
        ProviderTimeout, ProviderRateLimited, ProviderError
            Propagated from the transport once retries are exhausted.
        """
        if not texts:
            return []

        all_embeddings: List[List[float]] = []

        for start in range(0, len(texts), self.batch_size):
            batch = list(texts[start : start + self.batch_size])
            payload = {
                "model": self.model,
                "texts": batch,
                "input_type": input_type,
                "truncate": "END",
            }

            data = await self.client.post("/embed", payload)
            try:
                embeddings = self._extract_embeddings(data, expected=len(batch))
            except MalformedResponse as exc:
                logger.error(
                    "Malformed embedding response: batch offset=%d, size=%d, error=%s",
                    start,
                    len(batch),
                    exc,
                )
                raise

            all_embeddings.extend(embeddings)

        dims = {len(e) for e in all_embeddings}
        if len(dims) > 1:
            raise MalformedResponse(
                f"Embedding dimensionality differs across batches: {sorted(dims)}"
            )

        return all_embeddings

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _extract_embeddings(data: dict, expected: int) -> List[List[float]]:
        """
        Parse and validate embedding output format.

        Cohere returns:
            { "embeddings": [ [...], [...] ] }
        or, when typed embeddings are requested:
            { "embeddings": { "float": [ [...], ... ] } }

        Raises
        ------
        MalformedResponse
            If the API returns unexpected structure.
        """
        if "embeddings" not in data:
            raise MalformedResponse("Embedding response missing 'embeddings' field.")

        records = data["embeddings"]
        if isinstance(records, dict):
            records = records.get("float")

        if not isinstance(records, list):
            raise MalformedResponse("'embeddings' field must be a list.")

        if len(records) != expected:
            raise MalformedResponse(
                f"Expected {expected} embeddings, provider returned {len(records)}."
            )

        embeddings: List[List[float]] = []
        dim: Optional[int] = None

        for index, emb in enumerate(records):
            if (
                not isinstance(emb, list)
                or not emb
                or not all(
                    isinstance(x, (float, int)) and not isinstance(x, bool)
                    for x in emb
                )
            ):
                raise MalformedResponse(
                    f"Invalid embedding vector at index {index}: must be a non-empty float list."
                )

            vector = [float(x) for x in emb]
            if not all(math.isfinite(x) for x in vector):
                raise MalformedResponse(
                    f"Invalid embedding vector at index {index}: non-finite values."
                )

            if dim is None:
                dim = len(vector)
            elif len(vector) != dim:
                raise MalformedResponse(
                    f"Inconsistent embedding dimensionality at index {index}."
                )

            embeddings.append(vector)

        return embeddings
