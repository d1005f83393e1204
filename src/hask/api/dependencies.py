from functools import lru_cache

from ..db.page_store import PageStore
from ..embeddings.chunker import Chunker
from ..embeddings.embedder import Embedder
from ..embeddings.index import VectorIndex
from ..llm.client import CohereClient
from ..llm.reranker import Reranker
from ..llm.summarizer import Summarizer
from ..pipeline.ingest import IngestionPipeline
from ..pipeline.query import QueryPipeline


@lru_cache
def get_page_store() -> PageStore:
    return PageStore()


@lru_cache
def get_vector_index() -> VectorIndex:
    return VectorIndex()


@lru_cache
def get_cohere_client() -> CohereClient:
    return CohereClient()


@lru_cache
def get_embedder() -> Embedder:
    return Embedder(client=get_cohere_client())


@lru_cache
def get_reranker() -> Reranker:
    return Reranker(client=get_cohere_client())


@lru_cache
def get_summarizer() -> Summarizer:
    return Summarizer(client=get_cohere_client())


# The pipelines hold the per-URL locks, so they must be singletons too
@lru_cache
def get_ingestion_pipeline() -> IngestionPipeline:
    return IngestionPipeline(
        store=get_page_store(),
        index=get_vector_index(),
        embedder=get_embedder(),
        chunker=Chunker(),
    )


@lru_cache
def get_query_pipeline() -> QueryPipeline:
    return QueryPipeline(
        store=get_page_store(),
        index=get_vector_index(),
        embedder=get_embedder(),
        reranker=get_reranker(),
        summarizer=get_summarizer(),
    )
