"""Core engine components for Memorizer."""

from memorizer.core.memory_manager import MemoryManager, NotFoundError, create_memory_manager
from memorizer.core.retrieval import RetrievalEngine
from memorizer.core.embedding_factory import (
    EmbeddingError,
    EmbeddingServiceProtocol,
    create_embedding_service,
)
from memorizer.core.hash_embedding_service import HashEmbeddingService
from memorizer.core.title_generator import (
    TitleGenerator,
    create_title_generator,
    fallback_title,
    resolve_title,
)
from memorizer.core.validation import ValidationLayer, ValidationError

__all__ = [
    "MemoryManager",
    "NotFoundError",
    "create_memory_manager",
    "RetrievalEngine",
    "EmbeddingError",
    "EmbeddingServiceProtocol",
    "create_embedding_service",
    "HashEmbeddingService",
    "TitleGenerator",
    "create_title_generator",
    "fallback_title",
    "resolve_title",
    "ValidationLayer",
    "ValidationError",
]
