"""
Tests for the memory manager.
"""

import threading
from unittest.mock import Mock, patch
from uuid import uuid4

import pytest

from memorizer.config import Config, EmbeddingProvider
from memorizer.core.embedding_factory import EmbeddingError
from memorizer.core.hash_embedding_service import HashEmbeddingService
from memorizer.core.memory_manager import MemoryManager, NotFoundError, create_memory_manager
from memorizer.core.validation import ValidationError
from memorizer.storage.vector_db import StorageError

from conftest import StubEmbeddingService

TEXT = "Use context managers for sqlite connections"


@pytest.fixture
def manager(temp_store, stub_embeddings):
    """MemoryManager over a temp store with stub embeddings and no title generator."""
    return MemoryManager(temp_store, stub_embeddings)


class TestStoreMemory:
    """Tests for storing memories."""

    def test_round_trip(self, temp_store):
        """A stored memory reads back with identical embeddings."""
        embeddings = StubEmbeddingService({TEXT: [0.1, 0.2, 0.3, 0.4]})
        manager = MemoryManager(temp_store, embeddings)

        stored = manager.store_memory(
            memory_type="reference",
            content={"text": TEXT, "lang": "python"},
            source="user",
            text=TEXT,
            tags=["python", "sqlite"],
            confidence=0.9,
        )
        retrieved = manager.get_memory(stored.id)

        assert retrieved is not None
        assert retrieved.embedding == stored.embedding
        assert retrieved.metadata_embedding == stored.metadata_embedding
        assert retrieved.content == {"text": TEXT, "lang": "python"}
        assert retrieved.tags == ["python", "sqlite"]
        assert retrieved.confidence == 0.9
        assert retrieved.source == "user"

    def test_metadata_text_embedded(self, manager, stub_embeddings):
        """The content text is embedded first, then "{type} {tags}"."""
        manager.store_memory("note", {"text": TEXT}, "user", TEXT, tags=["a", "b"])
        manager.store_memory("note", {"text": TEXT}, "user", TEXT)

        assert stub_embeddings.calls == [TEXT, "note a b", TEXT, "note "]

    def test_tags_normalized(self, manager):
        """Tags are stripped and de-duplicated before storage."""
        memory = manager.store_memory("note", {}, "user", TEXT, tags=[" a ", "a", "", "b"])

        assert memory.tags == ["a", "b"]
        assert manager.get_memory(memory.id).tags == ["a", "b"]

    def test_text_sanitized(self, manager):
        """Null characters are removed; line endings are kept as given."""
        memory = manager.store_memory("note", {}, "user", "line one\r\nline\x00 two")

        assert memory.text == "line one\r\nline two"
        assert manager.get_memory(memory.id).text == "line one\r\nline two"

    def test_second_embedding_failure_stores_nothing(self, temp_store):
        """Failing metadata embedding leaves the store untouched."""
        embeddings = Mock()
        embeddings.generate.side_effect = [[1.0, 0.0, 0.0, 0.0], EmbeddingError("backend down")]
        manager = MemoryManager(temp_store, embeddings)

        with pytest.raises(EmbeddingError):
            manager.store_memory("note", {}, "user", TEXT)

        assert temp_store.count_memories() == 0

    def test_invalid_request_stores_nothing(self, manager, stub_embeddings, temp_store):
        """Validation runs before any embedding call."""
        with pytest.raises(ValidationError):
            manager.store_memory("note", {}, "user", "   ")

        with pytest.raises(ValidationError):
            manager.store_memory("note", {}, "user", TEXT, confidence=1.5)

        with pytest.raises(ValidationError):
            manager.store_memory("note", {}, "user", TEXT, tags=["a,b"])

        assert stub_embeddings.calls == []
        assert temp_store.count_memories() == 0


class TestTitles:
    """Tests for title handling on store."""

    def test_explicit_title_kept(self, manager):
        memory = manager.store_memory("note", {}, "user", TEXT, title="My title")
        assert memory.title == "My title"

    def test_fallback_title_without_generator(self, manager):
        """Long text is truncated to 47 characters plus an ellipsis."""
        text = "x" * 60
        memory = manager.store_memory("note", {}, "user", text)

        assert memory.title == "x" * 47 + "..."

    def test_short_text_is_its_own_title(self, manager):
        memory = manager.store_memory("note", {}, "user", "short text")
        assert memory.title == "short text"

    def test_generated_title_cleaned(self, temp_store, stub_embeddings):
        """Generated titles lose quotes and anything past the first line."""
        generator = Mock()
        generator.generate_title.return_value = '"SQLite Connection Tips"\nextra'
        manager = MemoryManager(temp_store, stub_embeddings, title_generator=generator)

        memory = manager.store_memory("note", {}, "user", TEXT)

        assert memory.title == "SQLite Connection Tips"
        generator.generate_title.assert_called_once_with(TEXT)

    def test_generator_failure_falls_back(self, temp_store, stub_embeddings):
        """A failing generator never fails the store."""
        generator = Mock()
        generator.generate_title.side_effect = RuntimeError("model unavailable")
        manager = MemoryManager(temp_store, stub_embeddings, title_generator=generator)

        long_text = TEXT + " and close them before the process exits"
        memory = manager.store_memory("note", {}, "user", long_text)

        assert len(long_text) > 50
        assert memory.title == long_text[:47] + "..."
        assert temp_store.count_memories() == 1

    def test_blank_title_is_generated(self, temp_store, stub_embeddings):
        generator = Mock()
        generator.generate_title.return_value = "Generated"
        manager = MemoryManager(temp_store, stub_embeddings, title_generator=generator)

        memory = manager.store_memory("note", {}, "user", TEXT, title="  ")

        assert memory.title == "Generated"


class TestStoreText:
    """Tests for the plain-text store path."""

    def test_content_wraps_text(self, manager):
        memory = manager.store_text("note", TEXT, "user")

        assert memory.content == {"text": TEXT}
        assert memory.relationships == []

    def test_links_to_related_memory(self, manager):
        """A relationship from the new memory is created when requested."""
        target = manager.store_text("reference", "Target memory", "user")

        memory = manager.store_text(
            "how-to", TEXT, "user", related_to=target.id, relationship_type="ExampleOf",
        )

        assert len(memory.relationships) == 1
        assert memory.relationships[0].from_memory_id == memory.id
        assert memory.relationships[0].to_memory_id == target.id
        assert memory.relationships[0].type == "ExampleOf"

        target_view = manager.get_memory(target.id)
        assert [r.from_memory_id for r in target_view.relationships] == [memory.id]

    def test_related_to_without_type_is_ignored(self, manager, temp_store):
        target = manager.store_text("reference", "Target memory", "user")

        manager.store_text("note", TEXT, "user", related_to=target.id)

        assert temp_store.get_statistics().total_relationships == 0


class TestExtractText:
    """Tests for content text extraction."""

    def test_text_field(self):
        assert MemoryManager.extract_text({"text": "hello", "other": 1}) == "hello"

    def test_json_fallback(self):
        assert MemoryManager.extract_text({"body": "hello"}) == '{"body": "hello"}'

    def test_non_string_text_field(self):
        assert MemoryManager.extract_text({"text": 5}) == '{"text": 5}'

    def test_store_without_text_uses_content(self, manager, stub_embeddings):
        """Omitted text is taken from the content payload before embedding."""
        from_field = manager.store_memory("note", {"text": TEXT, "lang": "python"}, "user")
        from_json = manager.store_memory("note", {"body": "hello"}, "user")

        assert from_field.text == TEXT
        assert from_json.text == '{"body": "hello"}'
        assert stub_embeddings.calls[0] == TEXT
        assert stub_embeddings.calls[2] == '{"body": "hello"}'

    def test_store_text_with_content_only(self, manager):
        memory = manager.store_text("reference", None, "user", content={"text": TEXT, "url": "https://example.com"})

        assert memory.text == TEXT
        assert manager.get_memory(memory.id).content == {"text": TEXT, "url": "https://example.com"}

    def test_store_text_requires_text_or_content(self, manager, temp_store):
        with pytest.raises(ValidationError):
            manager.store_text("note", None, "user")

        assert temp_store.count_memories() == 0


class TestLookupsAndDeletes:
    """Tests for get, require, get_many and delete."""

    def test_get_missing_returns_none(self, manager):
        assert manager.get_memory(uuid4()) is None

    def test_require_missing_raises(self, manager):
        missing = uuid4()

        with pytest.raises(NotFoundError) as exc_info:
            manager.require_memory(missing)

        assert exc_info.value.memory_id == missing

    def test_get_memories(self, manager):
        a = manager.store_text("note", "first memory", "user")
        b = manager.store_text("note", "second memory", "user")

        found = manager.get_memories([a.id, uuid4(), b.id])

        assert {m.id for m in found} == {a.id, b.id}

    def test_delete(self, manager):
        memory = manager.store_text("note", TEXT, "user")

        assert manager.delete_memory(memory.id) is True
        assert manager.get_memory(memory.id) is None
        assert manager.delete_memory(memory.id) is False

    def test_list_memories(self, manager):
        manager.store_text("note", "a note", "user")
        manager.store_text("reference", "a reference", "user")

        assert len(manager.list_memories()) == 2
        assert [m.type for m in manager.list_memories(memory_type="note")] == ["note"]


class TestRelationships:
    """Tests for relationship creation."""

    def test_missing_endpoint_fails(self, manager):
        memory = manager.store_text("note", TEXT, "user")

        with pytest.raises(StorageError):
            manager.create_relationship(memory.id, uuid4(), "Related")

    def test_blank_type_rejected(self, manager):
        a = manager.store_text("note", "first memory", "user")
        b = manager.store_text("note", "second memory", "user")

        with pytest.raises(ValidationError):
            manager.create_relationship(a.id, b.id, "  ")

    def test_type_stripped(self, manager):
        a = manager.store_text("note", "first memory", "user")
        b = manager.store_text("note", "second memory", "user")

        relationship = manager.create_relationship(a.id, b.id, " PartOf ")

        assert relationship.type == "PartOf"
        assert manager.get_statistics().total_relationships == 1


class TestSearch:
    """Tests for search through the manager."""

    def test_search_finds_exact_text(self, temp_store):
        vectors = {TEXT: [1.0, 0.0, 0.0, 0.0], "sqlite tips": [1.0, 0.0, 0.0, 0.0]}
        manager = MemoryManager(temp_store, StubEmbeddingService(vectors, default=[0.0, 1.0, 0.0, 0.0]))
        stored = manager.store_text("note", TEXT, "user")

        results = manager.search_memories("sqlite tips", limit=5)

        assert [m.id for m in results] == [stored.id]
        assert results[0].similarity == pytest.approx(1.0)


class TestCreateMemoryManager:
    """Tests for wiring a manager from configuration."""

    def test_hash_provider(self, tmp_path):
        config = Config(
            storage_path=tmp_path / "memorizer",
            embedding_provider=EmbeddingProvider.HASH,
            hash_embedding_dimension=8,
        )

        manager = create_memory_manager(config)
        try:
            memory = manager.store_text("note", TEXT, "user")
            assert len(memory.embedding) == 8
            assert config.sqlite_path.exists()
        finally:
            manager.close()

    def test_service_failure_opens_no_store(self, tmp_path):
        """Missing OpenAI key fails wiring before the database is created."""
        config = Config(
            storage_path=tmp_path / "memorizer",
            embedding_provider=EmbeddingProvider.OPENAI,
            openai_api_key="",
        )

        with pytest.raises(ValueError):
            create_memory_manager(config)

        assert not config.sqlite_path.exists()

    def test_store_dimension_comes_from_service(self, tmp_path):
        """A model missing from any lookup table still gets a matching store."""
        config = Config(
            storage_path=tmp_path / "memorizer",
            embedding_provider=EmbeddingProvider.LOCAL,
            local_embedding_model="BAAI/bge-base-en-v1.5",
        )
        service = HashEmbeddingService(dimension=6)

        with patch("memorizer.core.memory_manager.create_embedding_service", return_value=service):
            manager = create_memory_manager(config)
        try:
            assert manager.store.embedding_dimension == 6
            memory = manager.store_text("note", TEXT, "user")
            assert len(manager.get_memory(memory.id).embedding) == 6
        finally:
            manager.close()

    def test_store_closes_service_when_dimension_mismatches(self, tmp_path):
        config = Config(
            storage_path=tmp_path / "memorizer",
            embedding_provider=EmbeddingProvider.HASH,
            hash_embedding_dimension=8,
        )
        create_memory_manager(config).close()

        service = Mock(dimension=16)
        with patch("memorizer.core.memory_manager.create_embedding_service", return_value=service):
            with pytest.raises(ValueError):
                create_memory_manager(config)

        service.close.assert_called_once_with()


class TestConcurrency:
    """Tests for one manager shared across threads."""

    def test_parallel_writers_and_readers(self, temp_store):
        manager = MemoryManager(temp_store, HashEmbeddingService(dimension=4))
        errors: list[Exception] = []
        writers_done = threading.Event()

        def write(worker: int) -> None:
            try:
                stored = []
                for n in range(30):
                    previous = stored[-1].id if stored else None
                    stored.append(manager.store_text(
                        "note", f"writer {worker} memory {n}", "test",
                        tags=[f"w{worker}"], related_to=previous, relationship_type="Related",
                    ))
                for memory in stored[:4]:
                    assert manager.delete_memory(memory.id) is True
            except Exception as e:
                errors.append(e)

        def read(worker: int) -> None:
            try:
                while not writers_done.is_set():
                    for memory in manager.search_memories("q", limit=10, filter_tags=[f"w{worker}"], min_similarity=0.0):
                        assert f"w{worker}" in memory.tags
            except Exception as e:
                errors.append(e)

        writers = [threading.Thread(target=write, args=(i,)) for i in range(4)]
        readers = [threading.Thread(target=read, args=(i,)) for i in range(4)]
        for thread in readers + writers:
            thread.start()
        for thread in writers:
            thread.join()
        writers_done.set()
        for thread in readers:
            thread.join()

        assert errors == []
        stats = manager.get_statistics()
        # 30 stored and 4 deleted per writer; each delete drops one link of the chain
        assert stats.total_memories == 104
        assert stats.total_relationships == 100
