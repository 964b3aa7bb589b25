"""
In-memory adapters: every kernel port backed by plain dicts and lists.

Used by the test suite and by callers embedding the kernel without
persistence. Organisms are copied on the way in and out since they are the
one record the kernel updates in place; everything else is replaced whole.
"""
from __future__ import annotations

from collections import defaultdict
from typing import Dict, List, Optional, Set

from ..content_types import default_registry, surfaced_organism_ids
from ..content_types.spatial_map import spatial_map
from ..kernel.contracts import ContentTypeRegistry
from ..kernel.identity import IdentityGenerator, SequentialIdentityGenerator
from ..kernel.ports import KernelDeps
from ..kernel.schema import (
    CompositionRecord,
    DomainEvent,
    EventType,
    Organism,
    OrganismState,
    Proposal,
    ProposalStatus,
    Relationship,
    RelationshipType,
    VisibilityRecord,
)


class MemoryOrganismRepository:
    def __init__(self) -> None:
        self._organisms: Dict[str, Organism] = {}

    def find_by_id(self, organism_id: str) -> Optional[Organism]:
        organism = self._organisms.get(organism_id)
        return organism.model_copy() if organism is not None else None

    def exists(self, organism_id: str) -> bool:
        return organism_id in self._organisms

    def save(self, organism: Organism) -> None:
        self._organisms[organism.id] = organism.model_copy()

    def find_all(self) -> List[Organism]:
        return [o.model_copy() for o in self._organisms.values()]


class MemoryStateRepository:
    def __init__(self) -> None:
        self._by_organism: Dict[str, List[OrganismState]] = defaultdict(list)
        self._by_id: Dict[str, OrganismState] = {}

    def append(self, state: OrganismState) -> None:
        history = self._by_organism[state.organism_id]
        if any(s.sequence_number == state.sequence_number for s in history):
            # Same guarantee the sqlite UNIQUE constraint gives
            raise ValueError(
                f"Duplicate sequence number {state.sequence_number} for organism {state.organism_id}"
            )
        history.append(state)
        self._by_id[state.id] = state

    def find_by_id(self, state_id: str) -> Optional[OrganismState]:
        return self._by_id.get(state_id)

    def find_current_by_organism_id(self, organism_id: str) -> Optional[OrganismState]:
        history = self._by_organism.get(organism_id)
        if not history:
            return None
        return max(history, key=lambda s: s.sequence_number)

    def find_history_by_organism_id(self, organism_id: str) -> List[OrganismState]:
        return sorted(self._by_organism.get(organism_id, []), key=lambda s: s.sequence_number)

    def current_states(self) -> List[OrganismState]:
        return [self.find_current_by_organism_id(oid) for oid in self._by_organism if self._by_organism[oid]]


class MemoryCompositionRepository:
    def __init__(self) -> None:
        # Keyed by child: a child has at most one parent
        self._by_child: Dict[str, CompositionRecord] = {}

    def find_parent(self, child_id: str) -> Optional[CompositionRecord]:
        return self._by_child.get(child_id)

    def find_children(self, parent_id: str) -> List[CompositionRecord]:
        return [r for r in self._by_child.values() if r.parent_id == parent_id]

    def save(self, record: CompositionRecord) -> None:
        existing = self._by_child.get(record.child_id)
        if existing is not None and existing.parent_id != record.parent_id:
            raise ValueError(f"Organism {record.child_id} already has a parent: {existing.parent_id}")
        self._by_child[record.child_id] = record

    def delete(self, parent_id: str, child_id: str) -> None:
        record = self._by_child.get(child_id)
        if record is not None and record.parent_id == parent_id:
            del self._by_child[child_id]


class MemoryRelationshipRepository:
    def __init__(self) -> None:
        self._relationships: Dict[str, Relationship] = {}

    def find_by_user_and_organism(self, user_id: str, organism_id: str) -> List[Relationship]:
        return [
            r for r in self._relationships.values() if r.user_id == user_id and r.organism_id == organism_id
        ]

    def find_by_user(self, user_id: str) -> List[Relationship]:
        return [r for r in self._relationships.values() if r.user_id == user_id]

    def find_by_organism(
        self, organism_id: str, type: Optional[RelationshipType] = None
    ) -> List[Relationship]:
        return [
            r
            for r in self._relationships.values()
            if r.organism_id == organism_id and (type is None or r.type == type)
        ]

    def save(self, relationship: Relationship) -> None:
        self._relationships[relationship.id] = relationship


class MemoryVisibilityRepository:
    def __init__(self) -> None:
        self._records: Dict[str, VisibilityRecord] = {}

    def find_by_organism_id(self, organism_id: str) -> Optional[VisibilityRecord]:
        return self._records.get(organism_id)

    def save(self, record: VisibilityRecord) -> None:
        self._records[record.organism_id] = record


class MemorySurfaceRepository:
    """
    Surfacing derived from spatial-map states.

    An organism is surfaced when it is a map or is placed on the current
    state of any map. Extra ids can be surfaced by hand for tests.
    """

    def __init__(self, states: MemoryStateRepository) -> None:
        self._states = states
        self._manual: Set[str] = set()

    def surface(self, organism_id: str) -> None:
        self._manual.add(organism_id)

    def list_surfaced_organism_ids(self) -> List[str]:
        surfaced = set(self._manual)
        for state in self._states.current_states():
            if state.content_type_id == spatial_map.type_id:
                surfaced.update(surfaced_organism_ids(state.organism_id, state.payload))
        return sorted(surfaced)

    def is_surfaced(self, organism_id: str) -> bool:
        return organism_id in self.list_surfaced_organism_ids()


class MemoryProposalRepository:
    def __init__(self) -> None:
        self._proposals: Dict[str, Proposal] = {}

    def find_by_id(self, proposal_id: str) -> Optional[Proposal]:
        return self._proposals.get(proposal_id)

    def save(self, proposal: Proposal) -> None:
        self._proposals[proposal.id] = proposal

    def update(self, proposal: Proposal) -> bool:
        stored = self._proposals.get(proposal.id)
        if stored is None or stored.status != ProposalStatus.OPEN:
            return False
        self._proposals[proposal.id] = proposal
        return True

    def find_by_organism_id(self, organism_id: str) -> List[Proposal]:
        return sorted(
            (p for p in self._proposals.values() if p.organism_id == organism_id),
            key=lambda p: p.created_at,
        )

    def find_open_by_organism_id(self, organism_id: str) -> List[Proposal]:
        return [p for p in self.find_by_organism_id(organism_id) if p.is_open]

    def find_by_proposer(self, user_id: str) -> List[Proposal]:
        return [p for p in self._proposals.values() if p.proposed_by == user_id]


class MemoryEventPublisher:
    """Publisher and event log in one: publish() appends, finders read back."""

    def __init__(self) -> None:
        self.events: List[DomainEvent] = []

    def publish(self, event: DomainEvent) -> None:
        self.events.append(event)

    def find_by_organism_id(
        self, organism_id: str, type: Optional[EventType] = None
    ) -> List[DomainEvent]:
        return [
            e for e in self.events if e.organism_id == organism_id and (type is None or e.type == type)
        ]

    def of_type(self, type: EventType) -> List[DomainEvent]:
        return [e for e in self.events if e.type == type]

    def clear(self) -> None:
        self.events.clear()


def build_memory_deps(
    content_types: Optional[ContentTypeRegistry] = None,
    identity: Optional[IdentityGenerator] = None,
    surfaces: bool = False,
) -> KernelDeps:
    """
    Wire a complete in-memory KernelDeps.

    With surfaces=False every organism counts as surfaced, so configured
    visibility applies as-is. deps.events is a MemoryEventPublisher
    whose `events` list holds everything emitted.
    """
    states = MemoryStateRepository()
    publisher = MemoryEventPublisher()
    deps = KernelDeps(
        organisms=MemoryOrganismRepository(),
        states=states,
        compositions=MemoryCompositionRepository(),
        relationships=MemoryRelationshipRepository(),
        visibility=MemoryVisibilityRepository(),
        proposals=MemoryProposalRepository(),
        content_types=content_types or default_registry(),
        events=publisher,
        identity=identity or SequentialIdentityGenerator(),
        surfaces=MemorySurfaceRepository(states) if surfaces else None,
        event_log=publisher,
    )
    return deps
