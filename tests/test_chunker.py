import pytest

from hask.embeddings.chunker import Chunker


PARAGRAPHS = "\n\n".join(
    f"Paragraph {i} talks about topic {i}. It has a second sentence. And a third one here."
    for i in range(20)
)


def test_empty_content_yields_no_chunks():
    chunker = Chunker(chunk_size=100, chunk_overlap=10)
    assert chunker.split("") == []
    assert chunker.split("   \n\n  \t") == []


def test_short_content_is_one_chunk():
    chunker = Chunker(chunk_size=100, chunk_overlap=10)
    assert chunker.split("Fiat money is a type of currency.") == ["Fiat money is a type of currency."]


def test_chunks_are_bounded():
    chunker = Chunker(chunk_size=120, chunk_overlap=20)
    chunks = chunker.split(PARAGRAPHS)

    assert len(chunks) > 1
    assert all(0 < len(c) <= 120 for c in chunks)


def test_split_is_deterministic():
    chunker = Chunker(chunk_size=120, chunk_overlap=20)
    assert chunker.split(PARAGRAPHS) == chunker.split(PARAGRAPHS)


def test_prefers_paragraph_boundaries():
    chunker = Chunker(chunk_size=100, chunk_overlap=0)
    text = "First paragraph is here.\n\nSecond paragraph is here."
    assert chunker.split(text) == ["First paragraph is here.\n\nSecond paragraph is here."]

    chunker = Chunker(chunk_size=30, chunk_overlap=0)
    assert chunker.split(text) == ["First paragraph is here.", "Second paragraph is here."]


def test_does_not_split_words_when_avoidable():
    chunker = Chunker(chunk_size=50, chunk_overlap=0)
    text = " ".join(["engineer"] * 40)
    for chunk in chunker.split(text):
        assert all(word == "engineer" for word in chunk.split())


def test_overlap_must_be_smaller_than_size():
    with pytest.raises(ValueError):
        Chunker(chunk_size=50, chunk_overlap=50)
