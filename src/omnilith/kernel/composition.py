"""
Composition graph: parent/child containment between organisms.

Edges form a forest. A child has at most one parent and no organism may
become its own ancestor. Cycle detection walks up from the prospective
parent, one find_parent call per level.
"""
from __future__ import annotations

import logging
from typing import Iterator, List, Optional

from .access import Action, check_access_or_raise
from .errors import CompositionError, OrganismNotFoundError
from .events import emit
from .ports import KernelDeps
from .schema import CompositionRecord, EventType

logger = logging.getLogger(__name__)


def iter_ancestors(deps: KernelDeps, organism_id: str) -> Iterator[str]:
    """Yield parent, grandparent, ... up to the root."""
    seen = {organism_id}
    record = deps.compositions.find_parent(organism_id)
    while record is not None:
        ancestor = record.parent_id
        if ancestor in seen:
            # Corrupt storage; stop rather than loop forever
            raise CompositionError(f"Composition cycle detected at {ancestor}")
        seen.add(ancestor)
        yield ancestor
        record = deps.compositions.find_parent(ancestor)


def check_composable(deps: KernelDeps, parent_id: str, child_id: str) -> None:
    """Raise if child_id cannot be composed inside parent_id right now."""
    if parent_id == child_id:
        raise CompositionError("An organism cannot be composed inside itself")

    if not deps.organisms.exists(parent_id):
        raise OrganismNotFoundError(parent_id)
    if not deps.organisms.exists(child_id):
        raise OrganismNotFoundError(child_id)

    existing = deps.compositions.find_parent(child_id)
    if existing is not None:
        raise CompositionError(f"Organism {child_id} already has a parent: {existing.parent_id}")

    for ancestor in iter_ancestors(deps, parent_id):
        if ancestor == child_id:
            raise CompositionError(f"Composing {child_id} inside {parent_id} would create a cycle")


def check_decomposable(deps: KernelDeps, parent_id: str, child_id: str) -> None:
    record = deps.compositions.find_parent(child_id)
    if record is None or record.parent_id != parent_id:
        raise CompositionError(f"Organism {child_id} is not composed inside {parent_id}")


def compose_organism(
    deps: KernelDeps,
    *,
    parent_id: str,
    child_id: str,
    composed_by: str,
    position: Optional[int] = None,
    enforce_access: bool = True,
) -> CompositionRecord:
    check_composable(deps, parent_id, child_id)

    if enforce_access:
        check_access_or_raise(deps, composed_by, parent_id, Action.COMPOSE)

    now = deps.identity.timestamp()
    record = CompositionRecord(
        parent_id=parent_id,
        child_id=child_id,
        composed_at=now,
        composed_by=composed_by,
        position=position,
    )
    deps.compositions.save(record)

    emit(
        deps,
        EventType.ORGANISM_COMPOSED,
        parent_id,
        composed_by,
        {"childId": child_id, "position": position},
        occurred_at=now,
    )
    logger.info("Composed %s inside %s", child_id, parent_id)
    return record


def decompose_organism(
    deps: KernelDeps,
    *,
    parent_id: str,
    child_id: str,
    decomposed_by: str,
    enforce_access: bool = True,
) -> None:
    check_decomposable(deps, parent_id, child_id)

    if enforce_access:
        check_access_or_raise(deps, decomposed_by, parent_id, Action.DECOMPOSE)

    deps.compositions.delete(parent_id, child_id)

    emit(deps, EventType.ORGANISM_DECOMPOSED, parent_id, decomposed_by, {"childId": child_id})
    logger.info("Decomposed %s from %s", child_id, parent_id)


def query_parent(deps: KernelDeps, organism_id: str) -> Optional[CompositionRecord]:
    if not deps.organisms.exists(organism_id):
        raise OrganismNotFoundError(organism_id)
    return deps.compositions.find_parent(organism_id)


def query_children(deps: KernelDeps, organism_id: str) -> List[CompositionRecord]:
    """Children in composition order: by position, then by time composed."""
    if not deps.organisms.exists(organism_id):
        raise OrganismNotFoundError(organism_id)
    return sort_children(deps.compositions.find_children(organism_id))


def sort_children(records: List[CompositionRecord]) -> List[CompositionRecord]:
    # Unpositioned children follow positioned ones; ties keep insertion order
    return sorted(
        records,
        key=lambda r: (r.position is None, r.position if r.position is not None else 0, r.composed_at),
    )
