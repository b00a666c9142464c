"""
Validation layer for Memorizer.

Validates store and search requests before they reach the embedding
backend or the store.
"""

import logging
from typing import Optional

logger = logging.getLogger(__name__)

# Validation constraints
MAX_TEXT_LENGTH = 100_000
MAX_QUERY_LENGTH = 10240
MAX_TAG_LENGTH = 100
MAX_SEARCH_LIMIT = 1000


class ValidationError(Exception):
    """Raised when validation fails."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.message = message
        self.field = field
        super().__init__(message)


class ValidationLayer:
    """Validates requests before storage and search."""

    @staticmethod
    def validate_store_request(
        memory_type: str,
        source: str,
        text: str,
        tags: Optional[list[str]] = None,
        confidence: float = 1.0,
    ) -> None:
        """
        Validate a memory store request.

        Raises:
            ValidationError: If validation fails
        """
        if not memory_type or not memory_type.strip():
            raise ValidationError("Memory type cannot be empty", field="type")

        if not source or not source.strip():
            raise ValidationError("Source cannot be empty", field="source")

        if not text or not text.strip():
            raise ValidationError(
                "Text cannot be empty or only whitespace",
                field="text",
            )

        if len(text) > MAX_TEXT_LENGTH:
            raise ValidationError(
                f"Text exceeds maximum length of {MAX_TEXT_LENGTH} characters",
                field="text",
            )

        if not 0.0 <= confidence <= 1.0:
            raise ValidationError(
                f"Confidence must be between 0.0 and 1.0, got {confidence}",
                field="confidence",
            )

        for tag in tags or []:
            # Tags are stored comma-joined, so a comma would split one tag into two
            if not tag or "," in tag or len(tag) > MAX_TAG_LENGTH:
                raise ValidationError(
                    f"Invalid tag: {tag!r}. Tags must be 1-{MAX_TAG_LENGTH} characters without commas",
                    field="tags",
                )

        logger.debug(f"Validation passed for memory of type {memory_type}")

    @staticmethod
    def validate_search_request(query: str, limit: int, min_similarity: float) -> None:
        """
        Validate a search request.

        Raises:
            ValidationError: If validation fails
        """
        if not query or not query.strip():
            raise ValidationError(
                "Search query cannot be empty",
                field="query",
            )

        if len(query) > MAX_QUERY_LENGTH:
            raise ValidationError(
                f"Search query exceeds maximum length of {MAX_QUERY_LENGTH} characters",
                field="query",
            )

        if not 1 <= limit <= MAX_SEARCH_LIMIT:
            raise ValidationError(
                f"Limit must be between 1 and {MAX_SEARCH_LIMIT}",
                field="limit",
            )

        # Cosine similarity spans [-1, 1]
        if not -1.0 <= min_similarity <= 1.0:
            raise ValidationError(
                "Minimum similarity must be between -1.0 and 1.0",
                field="min_similarity",
            )

    @staticmethod
    def validate_relationship_type(relationship_type: str) -> str:
        """
        Validate a relationship type and return it stripped.

        Raises:
            ValidationError: If the type is blank
        """
        if not relationship_type or not relationship_type.strip():
            raise ValidationError("Relationship type cannot be empty", field="type")
        return relationship_type.strip()

    @staticmethod
    def normalize_tags(tags: Optional[list[str]]) -> list[str]:
        """Strip whitespace, drop blanks and duplicates, keep first-seen order."""
        normalized: list[str] = []
        for tag in tags or []:
            tag = tag.strip()
            if tag and tag not in normalized:
                normalized.append(tag)
        return normalized

    @staticmethod
    def sanitize_text(text: str) -> str:
        """Remove null characters. Everything else, line endings included, is kept."""
        return text.replace("\x00", "")
