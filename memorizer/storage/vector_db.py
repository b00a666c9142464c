"""
SQLite vector store for Memorizer.

This is the source of truth for all memory data. Embeddings live next to
the rows they describe as float32 blobs, and similarity search is a
brute-force cosine scan over the candidate rows (O(N*D) per query). That
holds up to tens of thousands of memories, not beyond.
"""

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Generator, Optional, Sequence
from uuid import UUID

import numpy as np

from memorizer.models import Memory, MemoryRelationship, MemoryStatistics

logger = logging.getLogger(__name__)

# Current schema version
SCHEMA_VERSION = 1

TAG_SEPARATOR = ","


class StorageError(Exception):
    """Raised when the persistence layer fails (I/O or constraint violation)."""


class DimensionMismatchError(ValueError):
    """Raised when vectors of different lengths are compared or stored.

    This indicates a programming error: every vector in a store shares the
    embedding provider's dimension.
    """


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity between two vectors.

    Returns 0.0 when either vector has zero norm.

    Raises:
        DimensionMismatchError: If the vectors differ in length
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)

    if va.shape != vb.shape:
        raise DimensionMismatchError(
            f"Vectors must have the same dimension ({va.shape[0]} != {vb.shape[0]})"
        )

    denominator = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denominator == 0.0:
        return 0.0

    similarity = float(np.dot(va, vb)) / denominator
    # Rounding can push |similarity| a hair past 1
    return max(-1.0, min(1.0, similarity))


def embedding_to_bytes(embedding: Sequence[float]) -> bytes:
    """Pack a vector as native-order IEEE-754 float32 (4 bytes per value)."""
    return np.asarray(embedding, dtype=np.float32).tobytes()


def bytes_to_embedding(data: bytes) -> list[float]:
    """Unpack a float32 blob written by embedding_to_bytes."""
    return np.frombuffer(data, dtype=np.float32).tolist()


class SQLiteVectorStore:
    """SQLite-backed store for memories, their embeddings and relationships.

    The store owns a single connection. Callers on different threads share
    the store, never the connection: every operation goes through an
    internal lock, and the database runs in WAL mode so readers only ever
    see committed rows.
    """

    def __init__(self, db_path: Path, embedding_dimension: int):
        """
        Open (or create) the database.

        Args:
            db_path: Path to the SQLite file
            embedding_dimension: Length of every vector stored here

        Raises:
            DimensionMismatchError: If the database was created for a different dimension
            StorageError: If the database cannot be opened
        """
        if embedding_dimension < 1:
            raise ValueError("embedding_dimension must be positive")

        self.db_path = db_path
        self.embedding_dimension = embedding_dimension
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

        try:
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open database at {self.db_path}: {e}") from e

        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._conn.execute("PRAGMA journal_mode = WAL")

        try:
            self._init_schema()
        except Exception:
            self._conn.close()
            raise
        logger.info(f"SQLite vector store initialized at {self.db_path}")

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Serialize access to the owned connection; commit or roll back."""
        with self._lock:
            try:
                yield self._conn
                self._conn.commit()
            except sqlite3.Error as e:
                self._conn.rollback()
                raise StorageError(str(e)) from e
            except Exception:
                self._conn.rollback()
                raise

    def _init_schema(self) -> None:
        """Initialize the database schema."""
        with self._get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS memories (
                    id TEXT PRIMARY KEY,
                    type TEXT NOT NULL,
                    content TEXT NOT NULL,
                    source TEXT NOT NULL,
                    embedding BLOB NOT NULL,
                    embedding_metadata BLOB,
                    tags TEXT,
                    confidence REAL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    title TEXT,
                    text TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS relationships (
                    id TEXT PRIMARY KEY,
                    from_memory_id TEXT NOT NULL,
                    to_memory_id TEXT NOT NULL,
                    type TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (from_memory_id) REFERENCES memories(id) ON DELETE CASCADE,
                    FOREIGN KEY (to_memory_id) REFERENCES memories(id) ON DELETE CASCADE
                )
            """)

            # Schema version and vector dimension tracking
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT NOT NULL,
                    embedding_dimension INTEGER NOT NULL
                )
            """)

            cursor.execute("CREATE INDEX IF NOT EXISTS idx_memories_type ON memories(type)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_memories_created_at ON memories(created_at)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_memories_tags ON memories(tags)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_relationships_from ON relationships(from_memory_id)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_relationships_to ON relationships(to_memory_id)")

            cursor.execute("SELECT embedding_dimension FROM schema_version ORDER BY version DESC LIMIT 1")
            row = cursor.fetchone()

            if row is None:
                cursor.execute(
                    """
                    INSERT INTO schema_version (version, applied_at, embedding_dimension)
                    VALUES (?, ?, ?)
                    """,
                    (SCHEMA_VERSION, datetime.utcnow().isoformat(), self.embedding_dimension),
                )
            elif row["embedding_dimension"] != self.embedding_dimension:
                raise DimensionMismatchError(
                    f"Database {self.db_path} stores {row['embedding_dimension']}-dimensional "
                    f"embeddings, expected {self.embedding_dimension}"
                )

    # ========== Memory Operations ==========

    def insert_memory(self, memory: Memory) -> UUID:
        """
        Persist a new memory.

        Raises:
            DimensionMismatchError: If an embedding has the wrong length
            StorageError: On I/O failure or a duplicate id
        """
        self._check_dimension(memory.embedding, "embedding")
        self._check_dimension(memory.metadata_embedding, "metadata_embedding")

        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO memories
                (id, type, content, source, embedding, embedding_metadata, tags,
                 confidence, created_at, updated_at, title, text)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(memory.id),
                    memory.type,
                    json.dumps(memory.content),
                    memory.source,
                    embedding_to_bytes(memory.embedding),
                    embedding_to_bytes(memory.metadata_embedding),
                    TAG_SEPARATOR.join(memory.tags) if memory.tags else None,
                    memory.confidence,
                    memory.created_at.isoformat(),
                    memory.updated_at.isoformat(),
                    memory.title,
                    memory.text,
                ),
            )

        logger.debug(f"Inserted memory {memory.id}")
        return memory.id

    def get_memory(self, memory_id: UUID) -> Optional[Memory]:
        """Get a memory by ID, or None if it does not exist."""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM memories WHERE id = ?",
                (str(memory_id),),
            ).fetchone()

        if row is None:
            return None

        return self._row_to_memory(row)

    def get_memories_by_ids(self, memory_ids: Sequence[UUID]) -> list[Memory]:
        """Get several memories at once. Result order is not guaranteed."""
        if not memory_ids:
            return []

        placeholders = ",".join("?" for _ in memory_ids)
        with self._get_connection() as conn:
            rows = conn.execute(
                f"SELECT * FROM memories WHERE id IN ({placeholders})",
                [str(memory_id) for memory_id in memory_ids],
            ).fetchall()

        return [self._row_to_memory(row) for row in rows]

    def list_memories(
        self,
        memory_type: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Memory]:
        """List memories, newest first, with optional type filtering."""
        query = "SELECT * FROM memories"
        params: list = []

        if memory_type:
            query += " WHERE type = ?"
            params.append(memory_type)

        query += " ORDER BY created_at DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()

        return [self._row_to_memory(row) for row in rows]

    def delete_memory(self, memory_id: UUID) -> bool:
        """Delete a memory. Relationships touching it are removed by cascade."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM memories WHERE id = ?",
                (str(memory_id),),
            )
            deleted = cursor.rowcount > 0

        logger.debug(f"Deleted memory {memory_id}, rows affected: {int(deleted)}")
        return deleted

    def count_memories(self) -> int:
        """Get the total number of stored memories."""
        with self._get_connection() as conn:
            row = conn.execute("SELECT COUNT(*) AS count FROM memories").fetchone()
        return row["count"] if row else 0

    # ========== Similarity Search ==========

    def search_by_similarity(
        self,
        query_embedding: Sequence[float],
        limit: int,
        min_similarity: float = 0.7,
        filter_tags: Optional[Sequence[str]] = None,
        use_metadata_embedding: bool = False,
    ) -> list[Memory]:
        """
        Brute-force cosine search over stored memories.

        Args:
            query_embedding: Query vector
            limit: Maximum number of results
            min_similarity: Lowest similarity kept (inclusive)
            filter_tags: Keep only memories whose tags match ANY of these.
                Matching is a substring test on the stored tag string, so
                "test" also matches a memory tagged "testing".
            use_metadata_embedding: Score against the type+tags embedding
                instead of the content embedding

        Returns:
            Memories with ``similarity`` set, best first

        Raises:
            ValueError: If limit is below 1
            DimensionMismatchError: If the query has the wrong length
        """
        if limit < 1:
            raise ValueError(f"limit must be at least 1, got {limit}")
        self._check_dimension(query_embedding, "query_embedding")

        query = "SELECT * FROM memories"
        params: list = []
        if filter_tags:
            query += " WHERE (" + " OR ".join("tags LIKE ?" for _ in filter_tags) + ")"
            params.extend(f"%{tag}%" for tag in filter_tags)
        query += " ORDER BY rowid"

        # Rows are fetched under the lock; scoring runs outside it
        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()

        results = []
        for row in rows:
            if use_metadata_embedding and row["embedding_metadata"] is not None:
                blob = row["embedding_metadata"]
            else:
                blob = row["embedding"]

            similarity = cosine_similarity(query_embedding, np.frombuffer(blob, dtype=np.float32))
            if similarity >= min_similarity:
                memory = self._row_to_memory(row)
                memory.similarity = similarity
                results.append(memory)

        # Stable sort: ties keep insertion order
        results.sort(key=lambda m: m.similarity, reverse=True)

        logger.debug(
            f"Similarity scan over {len(rows)} candidates kept {len(results)} "
            f"(min_similarity={min_similarity:.2f}, metadata={use_metadata_embedding})"
        )
        return results[:limit]

    # ========== Relationship Operations ==========

    def create_relationship(self, relationship: MemoryRelationship) -> UUID:
        """
        Persist a relationship between two memories.

        Raises:
            StorageError: If either endpoint does not exist or the id is taken
        """
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO relationships (id, from_memory_id, to_memory_id, type, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    str(relationship.id),
                    str(relationship.from_memory_id),
                    str(relationship.to_memory_id),
                    relationship.type,
                    relationship.created_at.isoformat(),
                ),
            )

        logger.debug(f"Created relationship {relationship.id}")
        return relationship.id

    def get_relationships(self, memory_id: UUID) -> list[MemoryRelationship]:
        """Get every relationship where the memory is either endpoint.

        Each relationship is annotated with the title and type of the other
        endpoint.
        """
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT r.*, m.title AS related_memory_title, m.type AS related_memory_type
                FROM relationships r
                LEFT JOIN memories m ON m.id = r.to_memory_id
                WHERE r.from_memory_id = :memory_id
                UNION
                SELECT r.*, m.title AS related_memory_title, m.type AS related_memory_type
                FROM relationships r
                LEFT JOIN memories m ON m.id = r.from_memory_id
                WHERE r.to_memory_id = :memory_id
                ORDER BY created_at
                """,
                {"memory_id": str(memory_id)},
            ).fetchall()

        return [
            MemoryRelationship(
                id=UUID(row["id"]),
                from_memory_id=UUID(row["from_memory_id"]),
                to_memory_id=UUID(row["to_memory_id"]),
                type=row["type"],
                created_at=datetime.fromisoformat(row["created_at"]),
                related_memory_title=row["related_memory_title"],
                related_memory_type=row["related_memory_type"],
            )
            for row in rows
        ]

    # ========== Statistics ==========

    def get_statistics(self) -> MemoryStatistics:
        """Count memories (overall and per type) and relationships."""
        with self._get_connection() as conn:
            total = conn.execute("SELECT COUNT(*) AS count FROM memories").fetchone()["count"]
            type_rows = conn.execute(
                "SELECT type, COUNT(*) AS count FROM memories GROUP BY type"
            ).fetchall()
            relationships = conn.execute(
                "SELECT COUNT(*) AS count FROM relationships"
            ).fetchone()["count"]

        return MemoryStatistics(
            total_memories=total,
            by_type={row["type"]: row["count"] for row in type_rows},
            total_relationships=relationships,
        )

    # ========== Helpers ==========

    def _check_dimension(self, vector: Sequence[float], name: str) -> None:
        if len(vector) != self.embedding_dimension:
            raise DimensionMismatchError(
                f"{name} has {len(vector)} dimensions, store expects {self.embedding_dimension}"
            )

    def _row_to_memory(self, row: sqlite3.Row) -> Memory:
        """Convert a database row to a Memory object."""
        tags = [tag for tag in (row["tags"] or "").split(TAG_SEPARATOR) if tag]
        embedding = bytes_to_embedding(row["embedding"])
        metadata_blob = row["embedding_metadata"]

        return Memory(
            id=UUID(row["id"]),
            type=row["type"],
            content=json.loads(row["content"]),
            source=row["source"],
            text=row["text"],
            embedding=embedding,
            metadata_embedding=bytes_to_embedding(metadata_blob) if metadata_blob is not None else embedding,
            tags=tags,
            confidence=row["confidence"] if row["confidence"] is not None else 1.0,
            title=row["title"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()
        logger.debug("SQLite connection closed")
