"""
Summarize Client

Condenses a page's content for the result card via the Cohere ``/summarize``
endpoint. Best-effort: the summary is not guaranteed to preserve exact facts.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..config import settings
from ..core.errors import MalformedResponse
from .client import CohereClient

logger = logging.getLogger("hask.summarizer")


class Summarizer:
    def __init__(
        self,
        client: Optional[CohereClient] = None,
        model: Optional[str] = None,
        length: str = "short",
    ) -> None:
        self.client = client or CohereClient()
        self.model = model or settings.summarize_model
        self.length = length

    async def summarize(self, text: str) -> str:
        payload = {
            "model": self.model,
            "text": text,
            "length": self.length,
            "format": "paragraph",
            "extractiveness": "auto",
        }
        data = await self.client.post("/summarize", payload)

        summary = data.get("summary")
        if not isinstance(summary, str) or not summary.strip():
            logger.error("Summarize response without summary text: %.200r", data)
            raise MalformedResponse("Summarize response missing 'summary' text.")

        return summary.strip()


def truncate_summary(text: str, limit: int) -> str:
    """
    Prefix of ``text`` of at most ``limit`` characters, cut at a word boundary
    and followed by an ellipsis when anything was dropped.

    Used when the summarization provider is unavailable.
    """
    text = " ".join(text.split())
    if len(text) <= limit:
        return text

    cut = text[:limit]
    space = cut.rfind(" ")
    if space > limit // 2:
        cut = cut[:space]
    return cut.rstrip(" ,.;:") + "..."
