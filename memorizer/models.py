"""
Data models for Memorizer.

These Pydantic models define the core data structures used throughout
the application, ensuring type safety and validation.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class RelationshipType(str, Enum):
    """Common relationship names. The stored type stays free-form."""

    PARENT = "Parent"
    CHILD = "Child"
    REFERENCE = "Reference"
    RELATED = "Related"
    CAUSE = "Cause"
    EFFECT = "Effect"
    DUPLICATE = "Duplicate"
    VERSION_OF = "VersionOf"
    PART_OF = "PartOf"
    CONTAINS = "Contains"
    PRECEDES = "Precedes"
    FOLLOWS = "Follows"
    EXAMPLE_OF = "ExampleOf"
    INSTANCE_OF = "InstanceOf"
    GENERALIZES = "Generalizes"
    SPECIALIZES = "Specializes"
    SYNONYM = "Synonym"
    ANTONYM = "Antonym"


class MemoryRelationship(BaseModel):
    """Typed, directed edge between two memories."""

    id: UUID = Field(default_factory=uuid4)
    from_memory_id: UUID
    to_memory_id: UUID
    type: str = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Filled in on lookup: title/type of the endpoint that is not the queried memory
    related_memory_title: Optional[str] = None
    related_memory_type: Optional[str] = None

    class Config:
        from_attributes = True


class Memory(BaseModel):
    """Core memory entry stored in the system."""

    id: UUID = Field(default_factory=uuid4)
    type: str = Field(..., min_length=1)
    content: dict[str, Any] = Field(default_factory=dict)
    source: str
    text: str
    embedding: list[float]
    metadata_embedding: list[float]
    tags: list[str] = Field(default_factory=list)
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    title: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    # Transient, populated by searches and lookups only
    similarity: Optional[float] = None
    relationships: list[MemoryRelationship] = Field(default_factory=list)

    class Config:
        from_attributes = True

    @property
    def metadata_text(self) -> str:
        """The string the metadata embedding is computed over."""
        return build_metadata_text(self.type, self.tags)


class MemoryStatistics(BaseModel):
    """Aggregate counts over the store."""

    total_memories: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)
    total_relationships: int = 0


def build_metadata_text(memory_type: str, tags: Optional[list[str]] = None) -> str:
    """Join type and tags the way the metadata embedding expects: "{type} {tags}"."""
    return f"{memory_type} {' '.join(tags or [])}"
