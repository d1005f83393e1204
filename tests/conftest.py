import hashlib
import re
from typing import List, Optional, Sequence, Tuple

import pytest

from hask.db import PageStore, build_engine, build_session_factory, init_models
from hask.embeddings.chunker import Chunker
from hask.embeddings.index import VectorIndex
from hask.pipeline.ingest import IngestionPipeline
from hask.pipeline.query import QueryPipeline

DIM = 256

_TOKEN = re.compile(r"[a-z0-9]+")


def tokens(text: str) -> List[str]:
    return _TOKEN.findall(text.lower())


def bag_of_words(text: str, dim: int = DIM) -> List[float]:
    """Deterministic hashed bag-of-words vector."""
    vec = [0.0] * dim
    for token in tokens(text):
        slot = int(hashlib.md5(token.encode()).hexdigest(), 16) % dim
        vec[slot] += 1.0
    return vec


# ---------------------------------------------------------------------
# Fake providers
# ---------------------------------------------------------------------

class FakeEmbedder:
    def __init__(self, fail_with: Optional[Exception] = None, drop_last: bool = False):
        self.fail_with = fail_with
        self.drop_last = drop_last
        self.calls: List[Tuple[List[str], str]] = []

    async def embed(self, texts: Sequence[str], input_type: str = "search_document") -> List[List[float]]:
        self.calls.append((list(texts), input_type))
        if self.fail_with is not None:
            raise self.fail_with
        vectors = [bag_of_words(t) for t in texts]
        if self.drop_last:
            vectors = vectors[:-1]
        return vectors


class FakeReranker:
    """Scores a candidate by the share of query tokens it contains."""

    def __init__(self, fail_with: Optional[Exception] = None):
        self.fail_with = fail_with
        self.calls: List[Tuple[str, List[str]]] = []

    async def rerank(self, query: str, candidates: Sequence[str]) -> List[Tuple[int, float]]:
        self.calls.append((query, list(candidates)))
        if self.fail_with is not None:
            raise self.fail_with
        wanted = set(tokens(query))
        scored = [
            (i, len(wanted & set(tokens(text))) / max(1, len(wanted)))
            for i, text in enumerate(candidates)
        ]
        return sorted(scored, key=lambda item: (-item[1], item[0]))


class FakeSummarizer:
    def __init__(self, fail_with: Optional[Exception] = None):
        self.fail_with = fail_with
        self.calls: List[str] = []

    async def summarize(self, text: str) -> str:
        self.calls.append(text)
        if self.fail_with is not None:
            raise self.fail_with
        return f"summary of {text[:30]}"


# ---------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------

@pytest.fixture
async def store(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'hask.db'}")
    await init_models(engine)
    yield PageStore(build_session_factory(engine))
    await engine.dispose()


@pytest.fixture
def index():
    return VectorIndex()


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def reranker():
    return FakeReranker()


@pytest.fixture
def summarizer():
    return FakeSummarizer()


@pytest.fixture
def chunker():
    return Chunker(chunk_size=200, chunk_overlap=20)


@pytest.fixture
def ingest(store, index, embedder, chunker):
    return IngestionPipeline(store=store, index=index, embedder=embedder, chunker=chunker)


@pytest.fixture
def query(store, index, embedder, reranker, summarizer):
    return QueryPipeline(
        store=store,
        index=index,
        embedder=embedder,
        reranker=reranker,
        summarizer=summarizer,
        candidates=10,
        top_m=3,
        fallback_chars=40,
    )

