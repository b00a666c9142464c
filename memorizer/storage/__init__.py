"""Storage layer for Memorizer."""

from memorizer.storage.vector_db import (
    DimensionMismatchError,
    SQLiteVectorStore,
    StorageError,
    cosine_similarity,
)

__all__ = ["SQLiteVectorStore", "StorageError", "DimensionMismatchError", "cosine_similarity"]
