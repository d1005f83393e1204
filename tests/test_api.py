"""
HTTP API Tests

Routes exercised in-process through httpx's ASGI transport with the real
pipelines on a temporary store and fake providers behind them.
"""

import httpx
import pytest

from hask.api.dependencies import (
    get_ingestion_pipeline,
    get_page_store,
    get_query_pipeline,
    get_vector_index,
)
from hask.core.errors import ProviderTimeout
from hask.main import create_app
from hask.pipeline.ingest import IngestionPipeline
from hask.pipeline.query import QueryPipeline

from conftest import FakeEmbedder


URL = "https://example.com/articles/fiat-money"
CONTENT = "Fiat money is a type of currency that is not backed by a precious metal."


def build_app(store, index, ingest, query):
    app = create_app()
    app.dependency_overrides[get_page_store] = lambda: store
    app.dependency_overrides[get_vector_index] = lambda: index
    app.dependency_overrides[get_ingestion_pipeline] = lambda: ingest
    app.dependency_overrides[get_query_pipeline] = lambda: query
    return app


@pytest.fixture
async def client(store, index, ingest, query):
    app = build_app(store, index, ingest, query)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://hask.test") as c:
        yield c


class TestHealth:
    @pytest.mark.asyncio
    async def test_welcome(self, client):
        resp = await client.get("/")
        assert resp.status_code == 200
        assert resp.text == "Welcome to Hask portal!"

    @pytest.mark.asyncio
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.json() == {"status": "ok"}


class TestUrls:
    @pytest.mark.asyncio
    async def test_save_then_check(self, client):
        resp = await client.post("/check/url", json={"url": URL})
        assert resp.status_code == 200
        assert resp.json() == {"url": URL, "timestamp": None, "status": "not exists"}

        resp = await client.post("/url", json={"url": URL, "title": "Fiat", "content": CONTENT})
        assert resp.status_code == 201
        body = resp.json()
        assert body["url"] == URL
        assert body["status"] == "created"
        assert body["chunks"] == 1

        resp = await client.post("/check/url", json={"url": URL + "/#history"})
        body = resp.json()
        assert body["status"] == "exists"
        assert body["timestamp"] is not None

    @pytest.mark.asyncio
    async def test_resave_reports_update(self, client):
        await client.post("/url", json={"url": URL, "content": CONTENT})
        resp = await client.post("/url", json={"url": URL, "content": CONTENT})

        assert resp.status_code == 201
        assert resp.json()["status"] == "updated"
        assert resp.json()["reused"] is True

    @pytest.mark.asyncio
    async def test_invalid_url_is_422(self, client):
        resp = await client.post("/url", json={"url": "not a url", "content": CONTENT})
        assert resp.status_code == 422
        assert resp.json()["error"] == "invalid_url"

        resp = await client.post("/check/url", json={"url": "relative/path"})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_missing_url_is_validation_error(self, client):
        resp = await client.post("/url", json={"content": CONTENT})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_delete(self, client, index):
        await client.post("/url", json={"url": URL, "content": CONTENT})

        resp = await client.request("DELETE", "/url", json={"url": URL})
        assert resp.status_code == 200
        assert resp.json()["status"] == "deleted"
        assert resp.json()["count"] == 1
        assert len(index) == 0

        resp = await client.request("DELETE", "/url", json={"url": URL})
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_ingestion_failure_reports_stage(self, store, index, chunker, query):
        failing = IngestionPipeline(
            store=store,
            index=index,
            embedder=FakeEmbedder(fail_with=ProviderTimeout("embed timed out")),
            chunker=chunker,
        )
        app = build_app(store, index, failing, query)

        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://hask.test") as c:
            resp = await c.post("/url", json={"url": URL, "content": CONTENT})

        assert resp.status_code == 502
        assert resp.json() == {
            "error": "ingestion_failed",
            "stage": "embedded",
            "detail": "ProviderTimeout",
        }


class TestSearch:
    @pytest.mark.asyncio
    async def test_empty_index_returns_empty_list(self, client):
        resp = await client.post("/search", json={"query": "anything"})
        assert resp.status_code == 200
        assert resp.json() == []

    @pytest.mark.asyncio
    async def test_search_returns_cards(self, client):
        await client.post("/url", json={"url": URL, "title": "Fiat", "content": CONTENT})
        await client.post(
            "/url",
            json={"url": "https://example.com/paris", "content": "I try another letter here, and i love paris"},
        )

        resp = await client.post("/search", json={"query": "fiat money currency", "k": 2})

        assert resp.status_code == 200
        cards = resp.json()
        assert len(cards) == 2
        assert cards[0]["page_url"] == URL
        assert cards[0]["title"] == "Fiat"
        assert cards[0]["summary"]

    @pytest.mark.asyncio
    async def test_blank_query_is_rejected(self, client):
        resp = await client.post("/search", json={"query": ""})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_query_embedding_failure_is_502(self, store, index, ingest, reranker, summarizer):
        await ingest.run(URL, CONTENT)
        failing = QueryPipeline(
            store=store,
            index=index,
            embedder=FakeEmbedder(fail_with=ProviderTimeout("slow")),
            reranker=reranker,
            summarizer=summarizer,
        )
        app = build_app(store, index, ingest, failing)

        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://hask.test") as c:
            resp = await c.post("/search", json={"query": "fiat"})

        assert resp.status_code == 502
        assert resp.json()["error"] == "provider_unavailable"


class TestIndex:
    @pytest.mark.asyncio
    async def test_stats_and_rebuild(self, client, index):
        await client.post("/url", json={"url": URL, "content": CONTENT})

        stats = (await client.get("/index/stats")).json()
        assert stats["total_vectors"] == 1
        assert stats["total_pages"] == 1
        assert stats["total_chunks"] == 1
        assert stats["dim"] == 256

        index.clear()
        resp = await client.post("/index/rebuild")
        assert resp.json() == {"status": "ok", "count": 1}
        assert len(index) == 1
