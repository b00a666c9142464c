"""
Deterministic hash embedding service for Memorizer.

Derives a unit vector from the SHA-256 digest of the text. The same text
always maps to the same vector, so storage and retrieval work offline and
in tests, but similarity carries no semantic meaning beyond exact matches.
"""

import hashlib

import numpy as np

DEFAULT_DIMENSION = 384


class HashEmbeddingService:
    """SHA-256 based embedding provider."""

    def __init__(self, dimension: int = DEFAULT_DIMENSION):
        if dimension < 1:
            raise ValueError("dimension must be positive")
        self._dimension = dimension

    def generate(self, text: str) -> list[float]:
        digest = np.frombuffer(hashlib.sha256(text.encode("utf-8")).digest(), dtype=np.uint8)

        # Map bytes to [-1, 1), repeating the digest to fill the vector
        values = digest[np.arange(self._dimension) % digest.size].astype(np.float32) / 128.0 - 1.0

        norm = np.linalg.norm(values)
        if norm > 0:
            values = values / norm
        return values.astype(np.float32).tolist()

    @property
    def dimension(self) -> int:
        return self._dimension
