"""
Content chunker.

Splits page text into bounded spans, preferring paragraph, then line, then
sentence, then word boundaries. The same input always yields the same spans.
"""

from __future__ import annotations

from typing import List, Optional

from langchain_text_splitters import RecursiveCharacterTextSplitter

from ..config import settings


SEPARATORS = ["\n\n", "\n", ". ", " ", ""]


class Chunker:
    def __init__(
        self,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
    ) -> None:
        self.chunk_size = chunk_size or settings.chunk_size
        self.chunk_overlap = settings.chunk_overlap if chunk_overlap is None else chunk_overlap

        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")

        self._splitter = RecursiveCharacterTextSplitter(
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
            length_function=len,
            separators=SEPARATORS,
            keep_separator="end",
            strip_whitespace=True,
        )

    def split(self, content: str) -> List[str]:
        """Return the ordered spans of ``content``; ``[]`` for blank input."""
        if not content or not content.strip():
            return []
        return [span for span in self._splitter.split_text(content) if span.strip()]
