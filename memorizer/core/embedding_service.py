"""
OpenAI embedding service for Memorizer.

Generates text embeddings using the OpenAI embeddings API
(text-embedding-3-small by default).
"""

import logging

from openai import OpenAI, OpenAIError

from memorizer.core.embedding_factory import EmbeddingError

logger = logging.getLogger(__name__)

# Default model for embeddings
DEFAULT_MODEL = "text-embedding-3-small"
EMBEDDING_DIMENSION = 1536

MODEL_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class EmbeddingService:
    """
    OpenAI embedding service.

    Failures surface as EmbeddingError. The service does not retry: a
    caller that wants retries wraps the store/search call itself.
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
    ):
        """Initialize the embedding service."""
        if not api_key:
            raise ValueError("OpenAI API key is required")

        self.client = OpenAI(api_key=api_key, max_retries=0)
        self.model = model

    def generate(self, text: str) -> list[float]:
        """
        Generate an embedding for a single text.

        Args:
            text: The text to embed

        Returns:
            List of floats representing the embedding vector

        Raises:
            EmbeddingError: If the API call fails
        """
        try:
            response = self.client.embeddings.create(
                input=text,
                model=self.model,
            )
        except OpenAIError as e:
            logger.error(f"Embedding request failed: {e}")
            raise EmbeddingError(f"OpenAI embedding failed: {e}") from e

        return response.data[0].embedding

    @property
    def dimension(self) -> int:
        """Get the embedding dimension."""
        return MODEL_DIMENSIONS.get(self.model, EMBEDDING_DIMENSION)
