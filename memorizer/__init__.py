"""
Memorizer - Memory storage and semantic retrieval service.

Stores text memories with type, source, tags and confidence, and finds
them again by semantic similarity to a query.
"""

from memorizer.models import Memory, MemoryRelationship, MemoryStatistics, RelationshipType
from memorizer.core.memory_manager import MemoryManager
from memorizer.config import Config

__version__ = "2.0.0"
__all__ = [
    "Memory",
    "MemoryRelationship",
    "MemoryStatistics",
    "RelationshipType",
    "MemoryManager",
    "Config",
]
