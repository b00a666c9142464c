"""
sentence-transformers embedding provider for Memorizer.

Runs entirely on the local machine; no API key or network access after
the first model download.
"""

import logging
from typing import Optional

from memorizer.core.embedding_factory import EmbeddingError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "all-MiniLM-L6-v2"  # 384 dimensions, ~90MB download


class LocalEmbeddingService:
    """
    Embedding provider backed by a sentence-transformers model.

    Each instance owns its model. Nothing is loaded until the first
    embedding is requested, and close() drops the model again; a later
    call simply reloads it. Build one instance and hand it to every
    component that needs embeddings.
    """

    def __init__(self, model_name: str = DEFAULT_MODEL, device: Optional[str] = None):
        """
        Args:
            model_name: sentence-transformers / HuggingFace model id
            device: Torch device ("cpu", "cuda"); None lets the library decide
        """
        self.model_name = model_name
        self.device = device
        self._model = None
        self._dimension: Optional[int] = None

    def _load(self):
        if self._model is not None:
            return self._model

        try:
            from sentence_transformers import SentenceTransformer
        except ImportError:
            raise ImportError(
                "Local embeddings need sentence-transformers: pip install memorizer[local]"
            )

        logger.info(f"Loading sentence-transformers model {self.model_name}")
        try:
            self._model = SentenceTransformer(self.model_name, device=self.device)
        except Exception as e:
            raise EmbeddingError(f"Failed to load model {self.model_name}: {e}") from e

        self._dimension = self._model.get_sentence_embedding_dimension()
        logger.info(f"{self.model_name} ready ({self._dimension} dimensions)")
        return self._model

    def generate(self, text: str) -> list[float]:
        """Embed one text. Raises EmbeddingError if the model fails."""
        model = self._load()
        try:
            embedding = model.encode(text, convert_to_numpy=True)
        except Exception as e:
            raise EmbeddingError(f"Local embedding failed: {e}") from e
        return embedding.tolist()

    @property
    def dimension(self) -> int:
        if self._dimension is None:
            self._load()
        return self._dimension

    def close(self) -> None:
        """Drop the loaded model so its memory can be reclaimed."""
        if self._model is not None:
            logger.info(f"Releasing sentence-transformers model {self.model_name}")
        self._model = None
