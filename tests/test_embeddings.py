"""
Tests for the embedding services and factory.
"""

import sys
from unittest.mock import Mock, patch

import numpy as np
import pytest
from openai import OpenAIError

from memorizer.config import Config, EmbeddingProvider
from memorizer.core.embedding_factory import (
    EmbeddingError,
    create_embedding_service,
)
from memorizer.core.embedding_service import EmbeddingService
from memorizer.core.hash_embedding_service import HashEmbeddingService
from memorizer.core.local_embedding_service import LocalEmbeddingService


class TestHashEmbeddingService:
    """Tests for the deterministic hash provider."""

    def test_deterministic(self):
        service = HashEmbeddingService(dimension=64)
        assert service.generate("hello") == service.generate("hello")

    def test_different_texts_differ(self):
        service = HashEmbeddingService(dimension=64)
        assert service.generate("hello") != service.generate("world")

    def test_dimension_and_unit_norm(self):
        service = HashEmbeddingService(dimension=100)
        vector = service.generate("some text")

        assert len(vector) == 100
        assert service.dimension == 100
        assert np.linalg.norm(vector) == pytest.approx(1.0, abs=1e-5)

    def test_invalid_dimension(self):
        with pytest.raises(ValueError):
            HashEmbeddingService(dimension=0)


class TestOpenAIEmbeddingService:
    """Tests for the OpenAI provider with a mocked client."""

    @patch("memorizer.core.embedding_service.OpenAI")
    def test_generate(self, mock_openai):
        client = mock_openai.return_value
        client.embeddings.create.return_value = Mock(data=[Mock(embedding=[0.1, 0.2])])

        service = EmbeddingService(api_key="sk-test", model="text-embedding-3-small")

        assert service.generate("hello") == [0.1, 0.2]
        client.embeddings.create.assert_called_once_with(input="hello", model="text-embedding-3-small")
        mock_openai.assert_called_once_with(api_key="sk-test", max_retries=0)

    @patch("memorizer.core.embedding_service.OpenAI")
    def test_api_failure_raises_embedding_error(self, mock_openai):
        mock_openai.return_value.embeddings.create.side_effect = OpenAIError("rate limited")

        service = EmbeddingService(api_key="sk-test")

        with pytest.raises(EmbeddingError):
            service.generate("hello")

    @patch("memorizer.core.embedding_service.OpenAI")
    def test_dimension(self, mock_openai):
        assert EmbeddingService(api_key="k", model="text-embedding-3-large").dimension == 3072
        assert EmbeddingService(api_key="k").dimension == 1536

    def test_requires_api_key(self):
        with pytest.raises(ValueError):
            EmbeddingService(api_key="")


@pytest.fixture
def fake_sentence_transformers():
    """Stand-in sentence_transformers module with a mocked model."""
    model = Mock()
    model.get_sentence_embedding_dimension.return_value = 3
    model.encode.return_value = np.array([0.5, 0.25, 0.0], dtype=np.float32)
    module = Mock()
    module.SentenceTransformer.return_value = model
    with patch.dict(sys.modules, {"sentence_transformers": module}):
        yield module


class TestLocalEmbeddingService:
    """Tests for the sentence-transformers provider with a mocked module."""

    def test_model_loaded_lazily(self, fake_sentence_transformers):
        service = LocalEmbeddingService(model_name="all-MiniLM-L6-v2")

        fake_sentence_transformers.SentenceTransformer.assert_not_called()
        assert service.generate("hello") == [0.5, 0.25, 0.0]
        assert service.dimension == 3
        fake_sentence_transformers.SentenceTransformer.assert_called_once_with(
            "all-MiniLM-L6-v2", device=None
        )

    def test_model_loaded_once_per_instance(self, fake_sentence_transformers):
        service = LocalEmbeddingService()

        service.generate("a")
        service.generate("b")

        assert fake_sentence_transformers.SentenceTransformer.call_count == 1

    def test_instances_do_not_share_models(self, fake_sentence_transformers):
        LocalEmbeddingService().generate("a")
        LocalEmbeddingService().generate("b")

        assert fake_sentence_transformers.SentenceTransformer.call_count == 2

    def test_close_releases_model(self, fake_sentence_transformers):
        service = LocalEmbeddingService()
        service.generate("a")

        service.close()
        service.generate("b")

        assert fake_sentence_transformers.SentenceTransformer.call_count == 2

    def test_load_failure_raises_embedding_error(self, fake_sentence_transformers):
        fake_sentence_transformers.SentenceTransformer.side_effect = OSError("no such model")

        with pytest.raises(EmbeddingError):
            LocalEmbeddingService(model_name="missing-model").generate("a")

    def test_encode_failure_raises_embedding_error(self, fake_sentence_transformers):
        model = fake_sentence_transformers.SentenceTransformer.return_value
        model.encode.side_effect = RuntimeError("out of memory")

        with pytest.raises(EmbeddingError):
            LocalEmbeddingService().generate("a")


class TestEmbeddingFactory:
    """Tests for provider selection."""

    def test_hash_provider(self):
        config = Config(embedding_provider=EmbeddingProvider.HASH, hash_embedding_dimension=16)

        service = create_embedding_service(config)

        assert isinstance(service, HashEmbeddingService)
        assert service.dimension == 16

    def test_local_provider(self):
        config = Config(embedding_provider=EmbeddingProvider.LOCAL)
        assert isinstance(create_embedding_service(config), LocalEmbeddingService)

    def test_openai_requires_key(self):
        config = Config(embedding_provider=EmbeddingProvider.OPENAI, openai_api_key="")

        with pytest.raises(ValueError):
            create_embedding_service(config)

    @patch("memorizer.core.embedding_service.OpenAI")
    def test_openai_provider(self, mock_openai):
        config = Config(embedding_provider=EmbeddingProvider.OPENAI, openai_api_key="sk-test")
        assert isinstance(create_embedding_service(config), EmbeddingService)

