"""Port implementations: in-memory and SQLite."""
from .memory import (
    MemoryCompositionRepository,
    MemoryEventPublisher,
    MemoryOrganismRepository,
    MemoryProposalRepository,
    MemoryRelationshipRepository,
    MemoryStateRepository,
    MemorySurfaceRepository,
    MemoryVisibilityRepository,
    build_memory_deps,
)
from .sqlite import SqliteStore

__all__ = [
    "MemoryCompositionRepository",
    "MemoryEventPublisher",
    "MemoryOrganismRepository",
    "MemoryProposalRepository",
    "MemoryRelationshipRepository",
    "MemoryStateRepository",
    "MemorySurfaceRepository",
    "MemoryVisibilityRepository",
    "SqliteStore",
    "build_memory_deps",
]
