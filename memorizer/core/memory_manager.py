"""
Memory Manager for Memorizer.

Central component exposing every memory operation to the outer layers
(CLI, MCP server):
- Store (embed, title, insert)
- Search (delegates to the retrieval engine)
- Get / Get many
- Delete
- Relationships and statistics
"""

import json
import logging
from datetime import datetime
from typing import Any, Optional, Sequence
from uuid import UUID

import numpy as np

from memorizer.config import Config
from memorizer.models import Memory, MemoryRelationship, MemoryStatistics, build_metadata_text
from memorizer.storage.vector_db import SQLiteVectorStore
from memorizer.core.embedding_factory import (
    EmbeddingServiceProtocol as EmbeddingService,
    create_embedding_service,
)
from memorizer.core.retrieval import DEFAULT_LIMIT, DEFAULT_MIN_SIMILARITY, RetrievalEngine
from memorizer.core.title_generator import TitleGenerator, create_title_generator, resolve_title
from memorizer.core.validation import ValidationError, ValidationLayer

logger = logging.getLogger(__name__)


class NotFoundError(Exception):
    """Raised when a memory required by an operation does not exist."""

    def __init__(self, memory_id: UUID):
        self.memory_id = memory_id
        super().__init__(f"Memory {memory_id} not found")


class MemoryManager:
    """
    Central memory lifecycle manager.

    Embeddings and the title are computed before anything is written, so a
    failed or cancelled embedding call leaves the store untouched.
    """

    def __init__(
        self,
        vector_store: SQLiteVectorStore,
        embedding_service: EmbeddingService,
        title_generator: Optional[TitleGenerator] = None,
        retrieval_engine: Optional[RetrievalEngine] = None,
    ):
        """Initialize the memory manager."""
        self.store = vector_store
        self.embedding_service = embedding_service
        self.title_generator = title_generator
        self.retrieval = retrieval_engine or RetrievalEngine(vector_store, embedding_service)
        self.validation = ValidationLayer()

    def store_memory(
        self,
        memory_type: str,
        content: dict[str, Any],
        source: str,
        text: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
        confidence: float = 1.0,
        title: Optional[str] = None,
    ) -> Memory:
        """
        Embed and store a new memory.

        Args:
            memory_type: Free-form category (e.g. "note", "reference")
            content: Structured payload, stored verbatim
            source: Provenance tag (e.g. "user", "LLM")
            text: Plain text to embed; taken from content (see extract_text) when None.
                Only null characters are removed, so the stored text is what
                was embedded and otherwise what the caller passed.
            tags: Optional tags
            confidence: Confidence in [0, 1]
            title: Title; generated from text when blank

        Returns:
            The stored Memory

        Raises:
            ValidationError: If the request is invalid
            EmbeddingError: If an embedding cannot be generated
            StorageError: If the insert fails
        """
        if text is None:
            text = self.extract_text(content)
        text = self.validation.sanitize_text(text)
        tags = self.validation.normalize_tags(list(tags) if tags else None)
        self.validation.validate_store_request(memory_type, source, text, tags, confidence)

        logger.info(f"Storing new memory of type {memory_type}")

        embedding = self._embed(text)
        metadata_embedding = self._embed(build_metadata_text(memory_type, tags))

        if not title or not title.strip():
            title = resolve_title(self.title_generator, text)

        now = datetime.utcnow()
        memory = Memory(
            type=memory_type,
            content=content,
            source=source,
            text=text,
            embedding=embedding,
            metadata_embedding=metadata_embedding,
            tags=tags,
            confidence=confidence,
            title=title,
            created_at=now,
            updated_at=now,
        )

        self.store.insert_memory(memory)
        logger.info(f"Stored memory {memory.id} with title: {title}")
        return memory

    def store_text(
        self,
        memory_type: str,
        text: Optional[str],
        source: str,
        tags: Optional[Sequence[str]] = None,
        confidence: float = 1.0,
        title: Optional[str] = None,
        related_to: Optional[UUID] = None,
        relationship_type: Optional[str] = None,
        content: Optional[dict[str, Any]] = None,
    ) -> Memory:
        """
        Store plain text as a memory, optionally linking it to an existing one.

        The content payload defaults to ``{"text": text}``. With an explicit
        content payload, text may be None and is extracted from the payload.
        When both related_to and relationship_type are given, a relationship
        from the new memory to related_to is created after the insert.
        """
        if text is None and content is None:
            raise ValidationError("Either text or content is required", field="text")

        memory = self.store_memory(
            memory_type=memory_type,
            content=content if content is not None else {"text": text},
            source=source,
            text=text,
            tags=tags,
            confidence=confidence,
            title=title,
        )

        if related_to is not None and relationship_type:
            relationship = self.create_relationship(memory.id, related_to, relationship_type)
            memory.relationships = [relationship]

        return memory

    @staticmethod
    def extract_text(content: Any) -> str:
        """The "text" field of a content payload, or the payload as JSON."""
        if isinstance(content, dict) and isinstance(content.get("text"), str):
            return content["text"]
        return json.dumps(content)

    def search_memories(
        self,
        query: str,
        limit: int = DEFAULT_LIMIT,
        filter_tags: Optional[Sequence[str]] = None,
        min_similarity: float = DEFAULT_MIN_SIMILARITY,
    ) -> list[Memory]:
        """Search memories by semantic similarity (see RetrievalEngine.search)."""
        logger.info(f"Searching memories with query: {query[:50]}, limit: {limit}")
        return self.retrieval.search(
            query=query,
            limit=limit,
            filter_tags=filter_tags,
            min_similarity=min_similarity,
        )

    def get_memory(self, memory_id: UUID) -> Optional[Memory]:
        """Get a memory by ID with its relationships, or None."""
        memory = self.store.get_memory(memory_id)
        if memory is not None:
            memory.relationships = self.store.get_relationships(memory_id)
        return memory

    def require_memory(self, memory_id: UUID) -> Memory:
        """
        Get a memory by ID.

        Raises:
            NotFoundError: If the memory does not exist
        """
        memory = self.get_memory(memory_id)
        if memory is None:
            raise NotFoundError(memory_id)
        return memory

    def get_memories(self, memory_ids: Sequence[UUID]) -> list[Memory]:
        """Get several memories with their relationships. Missing ids are skipped."""
        memories = self.store.get_memories_by_ids(memory_ids)
        for memory in memories:
            memory.relationships = self.store.get_relationships(memory.id)
        return memories

    def list_memories(
        self,
        memory_type: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Memory]:
        """List memories, newest first."""
        return self.store.list_memories(memory_type=memory_type, limit=limit, offset=offset)

    def delete_memory(self, memory_id: UUID) -> bool:
        """
        Delete a memory and every relationship touching it.

        Returns:
            True if the memory existed
        """
        logger.info(f"Deleting memory {memory_id}")
        return self.store.delete_memory(memory_id)

    def create_relationship(
        self,
        from_memory_id: UUID,
        to_memory_id: UUID,
        relationship_type: str,
    ) -> MemoryRelationship:
        """
        Create a directed relationship between two memories.

        Raises:
            ValidationError: If the relationship type is blank
            StorageError: If either memory does not exist
        """
        logger.info(
            f"Creating relationship from {from_memory_id} to {to_memory_id} "
            f"of type {relationship_type}"
        )
        relationship = MemoryRelationship(
            from_memory_id=from_memory_id,
            to_memory_id=to_memory_id,
            type=self.validation.validate_relationship_type(relationship_type),
        )
        self.store.create_relationship(relationship)
        return relationship

    def get_statistics(self) -> MemoryStatistics:
        """Get memory and relationship counts."""
        return self.store.get_statistics()

    def _embed(self, text: str) -> list[float]:
        """Embed text, rounded to the float32 precision the store persists."""
        return np.asarray(self.embedding_service.generate(text), dtype=np.float32).tolist()

    def close(self) -> None:
        """Release the store connection and any loaded embedding model."""
        self.store.close()
        close_service = getattr(self.embedding_service, "close", None)
        if callable(close_service):
            close_service()


def create_memory_manager(config: Config) -> MemoryManager:
    """
    Wire a MemoryManager from configuration.

    The store, embedding service and title generator are created once here
    and owned by the returned manager until close().
    """
    embedding_service = create_embedding_service(config)
    config.ensure_directories()
    try:
        # The provider decides the vector width; a mismatched store fails to open
        vector_store = SQLiteVectorStore(
            config.sqlite_path,
            embedding_dimension=embedding_service.dimension,
        )
    except Exception:
        close_service = getattr(embedding_service, "close", None)
        if callable(close_service):
            close_service()
        raise

    try:
        return MemoryManager(
            vector_store=vector_store,
            embedding_service=embedding_service,
            title_generator=create_title_generator(config),
        )
    except Exception:
        vector_store.close()
        raise
