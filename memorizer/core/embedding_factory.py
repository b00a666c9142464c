"""
Embedding factory for Memorizer.

Creates the appropriate embedding service based on configuration.
Supports OpenAI (paid), local sentence-transformers (free) and a
deterministic hash embedding for offline use.
"""

import logging
from typing import Protocol

from memorizer.config import Config, EmbeddingProvider

logger = logging.getLogger(__name__)


class EmbeddingError(Exception):
    """Raised when an embedding backend fails to produce a vector."""


class EmbeddingServiceProtocol(Protocol):
    """Protocol defining the embedding service interface.

    ``dimension`` must stay fixed for the lifetime of the service, and
    ``generate`` raises EmbeddingError on backend failure.
    """

    def generate(self, text: str) -> list[float]: ...
    @property
    def dimension(self) -> int: ...


def create_embedding_service(config: Config) -> EmbeddingServiceProtocol:
    """
    Create an embedding service based on configuration.

    Args:
        config: Memorizer configuration

    Returns:
        An embedding service instance (OpenAI, Local or Hash)
    """
    if config.embedding_provider == EmbeddingProvider.OPENAI:
        return _create_openai_service(config)
    elif config.embedding_provider == EmbeddingProvider.HASH:
        return _create_hash_service(config)
    else:
        return _create_local_service(config)


def _create_openai_service(config: Config) -> EmbeddingServiceProtocol:
    """Create OpenAI embedding service."""
    from memorizer.core.embedding_service import EmbeddingService

    if not config.openai_api_key:
        raise ValueError(
            "OpenAI API key is required for OpenAI embeddings. "
            "Set it in config or use 'local' embedding provider instead."
        )

    logger.info(f"Using OpenAI embeddings: {config.openai_embedding_model}")
    return EmbeddingService(
        api_key=config.openai_api_key,
        model=config.openai_embedding_model,
    )


def _create_local_service(config: Config) -> EmbeddingServiceProtocol:
    """Create local sentence-transformers embedding service."""
    from memorizer.core.local_embedding_service import LocalEmbeddingService

    logger.info(f"Using local embeddings: {config.local_embedding_model}")
    return LocalEmbeddingService(model_name=config.local_embedding_model)


def _create_hash_service(config: Config) -> EmbeddingServiceProtocol:
    """Create deterministic hash embedding service."""
    from memorizer.core.hash_embedding_service import HashEmbeddingService

    logger.warning(
        "Using hash embeddings: vectors are deterministic but carry no semantic meaning"
    )
    return HashEmbeddingService(dimension=config.hash_embedding_dimension)

