"""
Retrieval Engine for Memorizer.

Turns a free-text query into a ranked memory list. The store only does a
brute-force scan at a fixed threshold, so the engine runs up to three
scans of decreasing strictness:

1. Content pass: content embeddings at the requested threshold.
2. Metadata pass: type+tags embeddings at 90% of the threshold, when the
   content pass returned fewer than half the requested results.
3. Relaxed pass: content embeddings at max(0.5, threshold - 0.2), when
   both earlier passes came back empty.

Each pass is an ordinary successful query, not a retry. Embedding and
storage failures propagate unchanged.
"""

import logging
from typing import Optional, Sequence

from memorizer.models import Memory
from memorizer.storage.vector_db import SQLiteVectorStore
from memorizer.core.embedding_factory import EmbeddingServiceProtocol as EmbeddingService
from memorizer.core.validation import ValidationLayer

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 10
DEFAULT_MIN_SIMILARITY = 0.7

CONTENT_PASS_MULTIPLIER = 2
METADATA_THRESHOLD_FACTOR = 0.9
RELAXED_THRESHOLD_STEP = 0.2
RELAXED_THRESHOLD_FLOOR = 0.5


class RetrievalEngine:
    """
    Search and retrieval engine for memories.

    Stateless between calls: any number of engines can share one store.
    """

    def __init__(
        self,
        vector_store: SQLiteVectorStore,
        embedding_service: EmbeddingService,
    ):
        """Initialize the retrieval engine."""
        self.vector_store = vector_store
        self.embedding_service = embedding_service
        self.validation = ValidationLayer()

    def search(
        self,
        query: str,
        limit: int = DEFAULT_LIMIT,
        filter_tags: Optional[Sequence[str]] = None,
        min_similarity: float = DEFAULT_MIN_SIMILARITY,
    ) -> list[Memory]:
        """
        Search for relevant memories using semantic similarity.

        Args:
            query: The search query
            limit: Max results
            filter_tags: Only consider memories carrying any of these tags
            min_similarity: Similarity threshold for the content pass

        Returns:
            Memories with similarity and relationships populated, best first

        Raises:
            ValidationError: If the request is invalid
            EmbeddingError: If the query cannot be embedded
            StorageError: If the store fails
        """
        self.validation.validate_search_request(query, limit, min_similarity)
        filter_tags = list(filter_tags) if filter_tags else None

        query_embedding = self.embedding_service.generate(query)

        # Pass 1: content embeddings, fetch extra for merging
        results = self.vector_store.search_by_similarity(
            query_embedding,
            limit=limit * CONTENT_PASS_MULTIPLIER,
            min_similarity=min_similarity,
            filter_tags=filter_tags,
            use_metadata_embedding=False,
        )

        # Pass 2: metadata embeddings (type + tags), content results win on duplicates
        if len(results) < limit // 2:
            logger.debug(
                f"Content pass returned {len(results)} results, trying metadata pass"
            )
            metadata_results = self.vector_store.search_by_similarity(
                query_embedding,
                limit=limit,
                min_similarity=min_similarity * METADATA_THRESHOLD_FACTOR,
                filter_tags=filter_tags,
                use_metadata_embedding=True,
            )
            seen_ids = {memory.id for memory in results}
            for memory in metadata_results:
                if memory.id not in seen_ids:
                    seen_ids.add(memory.id)
                    results.append(memory)

        # Pass 3: relaxed threshold, replaces the (empty) result set
        if not results and min_similarity > RELAXED_THRESHOLD_FLOOR:
            relaxed = self.relaxed_threshold(min_similarity)
            logger.debug(f"No results found, trying relaxed threshold {relaxed:.2f}")
            results = self.vector_store.search_by_similarity(
                query_embedding,
                limit=limit,
                min_similarity=relaxed,
                filter_tags=filter_tags,
                use_metadata_embedding=False,
            )

        for memory in results:
            memory.relationships = self.vector_store.get_relationships(memory.id)

        results.sort(key=lambda m: m.similarity or 0.0, reverse=True)
        results = results[:limit]

        logger.info(f"Found {len(results)} results for query: {query[:50]}...")
        return results

    @staticmethod
    def relaxed_threshold(min_similarity: float) -> float:
        """Threshold used by the relaxed pass."""
        return max(RELAXED_THRESHOLD_FLOOR, min_similarity - RELAXED_THRESHOLD_STEP)
