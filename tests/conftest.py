"""Shared pytest fixtures for the sectionrag test suite."""

from __future__ import annotations

from pathlib import Path

import pytest

from src.models.document import Chunk, Document
from src.providers.cache.memory_cache import MemoryCacheProvider
from src.providers.vector_store.memory_store import InMemoryVectorStore
from tests.fakes import FakeEmbeddingProvider, SleepRecorder, make_chunk

# ---------------------------------------------------------------------------
# Providers and test doubles
# ---------------------------------------------------------------------------


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def fake_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def memory_store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture
def memory_cache() -> MemoryCacheProvider:
    return MemoryCacheProvider(max_size=100, ttl=3600)


# ---------------------------------------------------------------------------
# Sample content
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_chunks() -> list[Chunk]:
    texts = [
        "Refunds are issued to the original payment method.",
        "Gift cards cannot be exchanged for cash.",
        "Store hours are nine to five on weekdays.",
        "Support tickets are answered within two days.",
        "Shipping is free for orders over fifty dollars.",
    ]
    return [make_chunk(text, i) for i, text in enumerate(texts)]


@pytest.fixture
def structured_text() -> str:
    """Short handbook with numbered chapters and sections."""
    return (
        "Chapter 1 Introduction\n\n"
        "This handbook describes the refund policy and the support process. "
        "It is written for new staff. Read it before your first shift.\n\n"
        "1.1 Scope\n\n"
        "The policy covers purchases made online and in stores. Gift cards "
        "are excluded from every rule in this chapter.\n\n"
        "Chapter 2 Refunds\n\n"
        "2.1 Eligibility\n\n"
        "Customers may request a refund within thirty days of purchase. A "
        "receipt is required for every refund request.\n\n"
        "2.2 Processing\n\n"
        "Refunds are issued to the original payment method. Processing takes "
        "five business days after the returned item arrives at the warehouse.\n"
    )


@pytest.fixture
def long_paragraph_text() -> str:
    """A single paragraph of many short sentences, with no blank lines."""
    return " ".join(
        f"Sentence number {i} talks about item {i} in some detail." for i in range(60)
    )


@pytest.fixture
def two_chapter_document() -> Document:
    """Roughly 3,000 characters split under two chapter headers."""
    chapter_one = " ".join(
        f"The first chapter explains rule {i} of the onboarding guide in plain words."
        for i in range(19)
    )
    chapter_two = " ".join(
        f"The second chapter lists exception {i} that applies to returned goods."
        for i in range(20)
    )
    text = f"Chapter 1 Onboarding\n\n{chapter_one}\n\nChapter 2 Returns\n\n{chapter_two}\n"
    return Document(document_id="Staff Guide", text=text, total_pages=6, title="Staff Guide")
