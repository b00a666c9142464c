"""
Shared pytest fixtures for Memorizer tests.
"""

import math
from typing import Optional

import pytest

from memorizer.models import Memory
from memorizer.storage.vector_db import SQLiteVectorStore

DIMENSION = 4


class StubEmbeddingService:
    """Embedding service returning fixed vectors per text."""

    def __init__(self, vectors: Optional[dict] = None, default: Optional[list] = None):
        self.vectors = dict(vectors or {})
        self.default = default or [0.0, 0.0, 0.0, 1.0]
        self.calls: list[str] = []

    def generate(self, text: str) -> list[float]:
        self.calls.append(text)
        return list(self.vectors.get(text, self.default))

    @property
    def dimension(self) -> int:
        return DIMENSION


def unit_vector_at(similarity: float) -> list[float]:
    """A unit vector whose cosine with [1, 0, 0, 0] is the given similarity."""
    return [similarity, math.sqrt(1.0 - similarity ** 2), 0.0, 0.0]


def make_memory(
    embedding: list[float],
    metadata_embedding: Optional[list[float]] = None,
    tags: Optional[list[str]] = None,
    memory_type: str = "note",
    text: str = "Some memory text",
    title: Optional[str] = None,
) -> Memory:
    """Build an unsaved Memory with the given vectors."""
    return Memory(
        type=memory_type,
        content={"text": text},
        source="test",
        text=text,
        embedding=embedding,
        metadata_embedding=metadata_embedding or [0.0, 0.0, 1.0, 0.0],
        tags=tags or [],
        title=title,
    )


@pytest.fixture
def temp_store(tmp_path):
    """Initialized SQLiteVectorStore at a temp path."""
    store = SQLiteVectorStore(tmp_path / "db" / "memorizer.db", embedding_dimension=DIMENSION)
    yield store
    store.close()


@pytest.fixture
def stub_embeddings():
    """Embedding service with no registered vectors."""
    return StubEmbeddingService()
