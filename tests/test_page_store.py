"""
Page Store Tests

Dedup semantics, per-URL serialization, chunk replacement and cascade delete
against a temporary SQLite database.
"""

import asyncio

import pytest
from sqlalchemy.exc import OperationalError

from hask.core.errors import StorageError
from hask.db import PageStore, Page, Chunk


URL = "https://Example.com/articles/fiat-money/"
KEY = "https://example.com/articles/fiat-money"


class TestDedup:
    @pytest.mark.asyncio
    async def test_exists_before_and_after_upsert(self, store):
        assert await store.exists(URL) is False

        await store.upsert(URL, "Fiat money", "Fiat money is a type of currency.")

        assert await store.exists(URL) is True
        assert await store.exists("https://example.com/articles/fiat-money#history") is True
        assert await store.exists("https://example.com/articles/other") is False

    @pytest.mark.asyncio
    async def test_upsert_creates_then_updates(self, store):
        first = await store.upsert(URL, "Fiat money", "A")
        second = await store.upsert(KEY, "Fiat money (updated)", "B")

        assert first.status == "created"
        assert first.created is True
        assert first.page.url == KEY
        assert second.status == "updated"
        assert second.content_changed is True
        assert second.page.raw_content == "B"
        assert second.page.title == "Fiat money (updated)"
        assert second.page.fetched_at >= first.page.fetched_at
        assert await store.count_pages() == 1

    @pytest.mark.asyncio
    async def test_upsert_is_idempotent(self, store):
        await store.upsert(URL, "Title", "same content")
        again = await store.upsert(URL, "Title", "same content")

        assert again.status == "updated"
        assert again.content_changed is False

        page = await store.get(URL)
        assert page.title == "Title"
        assert page.raw_content == "same content"
        assert await store.count_pages() == 1

    @pytest.mark.asyncio
    async def test_missing_title_defaults_to_url_and_is_kept(self, store):
        created = await store.upsert(URL, None, "A")
        assert created.page.title == KEY

        await store.upsert(URL, "Real title", "A")
        updated = await store.upsert(URL, None, "B")
        assert updated.page.title == "Real title"

    @pytest.mark.asyncio
    async def test_fetched_at_is_timezone_aware(self, store):
        result = await store.upsert(URL, None, "A")
        page = await store.get(URL)

        assert result.page.fetched_at.tzinfo is not None
        assert page.fetched_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_concurrent_upserts_same_url_yield_one_page(self, store):
        results = await asyncio.gather(
            *(store.upsert(URL, f"title {i}", f"content {i}") for i in range(8))
        )

        assert sum(r.status == "created" for r in results) == 1
        assert await store.count_pages() == 1

    @pytest.mark.asyncio
    async def test_concurrent_upserts_different_urls(self, store):
        urls = [f"https://example.com/page/{i}" for i in range(6)]
        results = await asyncio.gather(*(store.upsert(u, None, "x") for u in urls))

        assert all(r.status == "created" for r in results)
        assert await store.count_pages() == 6


class TestChunks:
    @pytest.mark.asyncio
    async def test_replace_chunks_swaps_the_set(self, store):
        await store.upsert(URL, None, "A")

        removed, first = await store.replace_chunks(URL, ["one", "two"], [[1.0, 0.0], [0.0, 1.0]])
        assert removed == []
        assert [c.sequence_index for c in first] == [0, 1]

        removed, second = await store.replace_chunks(URL, ["three"], [[0.5, 0.5]])
        assert removed == [c.id for c in first]
        assert await store.chunk_ids(URL) == [second[0].id]
        assert await store.count_chunks() == 1

    @pytest.mark.asyncio
    async def test_replace_chunks_requires_page(self, store):
        with pytest.raises(StorageError):
            await store.replace_chunks(URL, ["one"], [[1.0]])

    @pytest.mark.asyncio
    async def test_replace_chunks_rejects_length_mismatch(self, store):
        await store.upsert(URL, None, "A")
        with pytest.raises(ValueError):
            await store.replace_chunks(URL, ["one", "two"], [[1.0]])

    @pytest.mark.asyncio
    async def test_get_chunks_resolves_page(self, store):
        await store.upsert(URL, "Fiat", "A")
        _, chunks = await store.replace_chunks(URL, ["one"], [[1.0, 2.0]])

        resolved = await store.get_chunks([chunks[0].id, "unknown"])

        assert list(resolved) == [chunks[0].id]
        chunk, page = resolved[chunks[0].id]
        assert chunk.text == "one"
        assert page.title == "Fiat"

    @pytest.mark.asyncio
    async def test_iter_vectors_round_trips_float32(self, store):
        await store.upsert(URL, None, "A")
        _, chunks = await store.replace_chunks(URL, ["one", "two"], [[0.25, -1.5], [3.0, 0.0]])

        vectors = await store.iter_vectors()

        assert [cid for cid, _ in vectors] == [c.id for c in chunks]
        assert vectors[0][1].tolist() == [0.25, -1.5]
        assert vectors[1][1].tolist() == [3.0, 0.0]

    @pytest.mark.asyncio
    async def test_delete_cascades_to_chunks(self, store):
        await store.upsert(URL, None, "A")
        _, chunks = await store.replace_chunks(URL, ["one", "two"], [[1.0], [2.0]])

        removed = await store.delete(URL)

        assert sorted(removed) == sorted(c.id for c in chunks)
        assert await store.exists(URL) is False
        assert await store.count_chunks() == 0
        assert await store.delete(URL) is None

    @pytest.mark.asyncio
    async def test_delete_chunks_keeps_page(self, store):
        await store.upsert(URL, None, "A")
        await store.replace_chunks(URL, ["one"], [[1.0]])

        removed = await store.delete_chunks(URL)

        assert len(removed) == 1
        assert await store.exists(URL) is True
        assert await store.chunk_ids(URL) == []


class TestStorageErrors:
    @pytest.mark.asyncio
    async def test_sqlalchemy_errors_become_storage_errors(self):
        class BrokenSession:
            async def __aenter__(self):
                raise OperationalError("SELECT 1", {}, Exception("database is locked"))

            async def __aexit__(self, *exc):
                return False

        broken = PageStore(session_factory=lambda: BrokenSession())

        with pytest.raises(StorageError) as excinfo:
            await broken.exists(URL)
        assert isinstance(excinfo.value.__cause__, OperationalError)


def test_models_declare_cascade():
    assert Page.__table__.c.url.primary_key
    fk = next(iter(Chunk.__table__.c.page_url.foreign_keys))
    assert fk.ondelete == "CASCADE"
    assert "delete-orphan" in Page.chunks.property.cascade
