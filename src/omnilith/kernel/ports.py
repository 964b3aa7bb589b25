"""
Ports: the only way kernel operations reach the outside world.

Each repository is a narrow Protocol. Adapters (memory, sqlite) implement
them; operations receive them bundled in a KernelDeps and never touch a
database or network directly.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Protocol

from .contracts import ContentTypeRegistry
from .identity import IdentityGenerator
from .schema import (
    CompositionRecord,
    DomainEvent,
    EventType,
    Organism,
    OrganismState,
    Proposal,
    Relationship,
    RelationshipType,
    VisibilityRecord,
)


class OrganismRepository(Protocol):
    def find_by_id(self, organism_id: str) -> Optional[Organism]: ...

    def exists(self, organism_id: str) -> bool: ...

    def save(self, organism: Organism) -> None: ...

    def find_all(self) -> List[Organism]: ...


class StateRepository(Protocol):
    def append(self, state: OrganismState) -> None: ...

    def find_by_id(self, state_id: str) -> Optional[OrganismState]: ...

    def find_current_by_organism_id(self, organism_id: str) -> Optional[OrganismState]: ...

    def find_history_by_organism_id(self, organism_id: str) -> List[OrganismState]: ...


class CompositionRepository(Protocol):
    def find_parent(self, child_id: str) -> Optional[CompositionRecord]: ...

    def find_children(self, parent_id: str) -> List[CompositionRecord]: ...

    def save(self, record: CompositionRecord) -> None: ...

    def delete(self, parent_id: str, child_id: str) -> None: ...


class RelationshipRepository(Protocol):
    def find_by_user_and_organism(self, user_id: str, organism_id: str) -> List[Relationship]: ...

    def find_by_user(self, user_id: str) -> List[Relationship]: ...

    def find_by_organism(
        self, organism_id: str, type: Optional[RelationshipType] = None
    ) -> List[Relationship]: ...

    def save(self, relationship: Relationship) -> None: ...


class VisibilityRepository(Protocol):
    def find_by_organism_id(self, organism_id: str) -> Optional[VisibilityRecord]: ...

    def save(self, record: VisibilityRecord) -> None: ...


class SurfaceRepository(Protocol):
    def is_surfaced(self, organism_id: str) -> bool: ...

    def list_surfaced_organism_ids(self) -> List[str]: ...


class ProposalRepository(Protocol):
    def find_by_id(self, proposal_id: str) -> Optional[Proposal]: ...

    def save(self, proposal: Proposal) -> None: ...

    def update(self, proposal: Proposal) -> bool:
        """Persist a resolution. Returns False if the stored proposal was no longer open."""
        ...

    def find_by_organism_id(self, organism_id: str) -> List[Proposal]: ...

    def find_open_by_organism_id(self, organism_id: str) -> List[Proposal]: ...

    def find_by_proposer(self, user_id: str) -> List[Proposal]: ...


class EventPublisher(Protocol):
    def publish(self, event: DomainEvent) -> None: ...


class EventRepository(Protocol):
    def find_by_organism_id(
        self, organism_id: str, type: Optional[EventType] = None
    ) -> List[DomainEvent]: ...


@dataclass
class KernelDeps:
    """Everything an operation may touch, injected as one bundle."""

    organisms: OrganismRepository
    states: StateRepository
    compositions: CompositionRepository
    relationships: RelationshipRepository
    visibility: VisibilityRepository
    proposals: ProposalRepository
    content_types: ContentTypeRegistry
    events: EventPublisher
    identity: IdentityGenerator
    surfaces: Optional[SurfaceRepository] = None
    event_log: Optional[EventRepository] = None
