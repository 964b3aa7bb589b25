"""
Identity and state ledger.

An organism is created exactly once, together with its first state, and
from then on its history only grows. Every state after the first points at
the state it replaced; sequence numbers start at 1 and step by 1.

Only open-trunk organisms accept append_state directly. Regulated
organisms change state through an integrated proposal, which reuses
next_state() so both paths build history the same way.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

from .access import Action, check_access_or_raise
from .contracts import ValidationContext
from .errors import (
    AccessDeniedError,
    ContentTypeNotRegisteredError,
    OrganismNotFoundError,
    ValidationFailedError,
)
from .events import emit
from .ports import KernelDeps
from .schema import EventType, Organism, OrganismState, Relationship, RelationshipType

logger = logging.getLogger(__name__)

# Default reader for the state reads: the kernel itself, which skips the view
# check. An explicit user_id=None reads as a guest.
INTERNAL_READ: Any = object()


@dataclass(frozen=True)
class CreateOrganismResult:
    organism: Organism
    initial_state: OrganismState


def validate_payload(
    deps: KernelDeps,
    content_type_id: str,
    payload: Any,
    previous_payload: Any = None,
) -> None:
    """Raise unless the content type is registered and accepts the payload."""
    contract = deps.content_types.get(content_type_id)
    if contract is None:
        raise ContentTypeNotRegisteredError(content_type_id)
    result = contract.validate(payload, ValidationContext(previous_payload=previous_payload))
    if not result.valid:
        raise ValidationFailedError(content_type_id, result.issues)


def next_state(
    deps: KernelDeps,
    organism_id: str,
    content_type_id: str,
    payload: Any,
    created_by: str,
) -> OrganismState:
    """
    Validate against the current state and build its successor.

    Nothing is written; the caller appends the returned state.
    """
    current = deps.states.find_current_by_organism_id(organism_id)
    previous_payload = current.payload if current is not None else None
    validate_payload(deps, content_type_id, payload, previous_payload)

    return OrganismState(
        id=deps.identity.state_id(),
        organism_id=organism_id,
        content_type_id=content_type_id,
        payload=payload,
        created_at=deps.identity.timestamp(),
        created_by=created_by,
        sequence_number=current.sequence_number + 1 if current is not None else 1,
        parent_state_id=current.id if current is not None else None,
    )


def create_organism(
    deps: KernelDeps,
    *,
    content_type_id: str,
    payload: Any,
    created_by: str,
    name: Optional[str] = None,
    open_trunk: bool = False,
) -> CreateOrganismResult:
    """
    Create an organism with its first state.

    The creator becomes the organism's steward.
    """
    validate_payload(deps, content_type_id, payload)

    now = deps.identity.timestamp()
    organism_id = deps.identity.organism_id()

    organism = Organism(
        id=organism_id,
        name=name,
        created_by=created_by,
        created_at=now,
        open_trunk=open_trunk,
    )
    initial_state = OrganismState(
        id=deps.identity.state_id(),
        organism_id=organism_id,
        content_type_id=content_type_id,
        payload=payload,
        created_at=now,
        created_by=created_by,
        sequence_number=1,
    )
    stewardship = Relationship(
        id=deps.identity.relationship_id(),
        type=RelationshipType.STEWARDSHIP,
        user_id=created_by,
        organism_id=organism_id,
        created_at=now,
    )

    deps.organisms.save(organism)
    deps.states.append(initial_state)
    deps.relationships.save(stewardship)

    emit(
        deps,
        EventType.ORGANISM_CREATED,
        organism_id,
        created_by,
        {"contentTypeId": content_type_id, "openTrunk": open_trunk},
        occurred_at=now,
    )
    logger.info("Created organism %s (%s) for %s", organism_id, content_type_id, created_by)
    return CreateOrganismResult(organism=organism, initial_state=initial_state)


def append_state(
    deps: KernelDeps,
    *,
    organism_id: str,
    content_type_id: str,
    payload: Any,
    appended_by: str,
) -> OrganismState:
    organism = deps.organisms.find_by_id(organism_id)
    if organism is None:
        raise OrganismNotFoundError(organism_id)

    # A caller who cannot see the organism cannot write to it
    check_access_or_raise(deps, appended_by, organism_id, Action.APPEND_STATE)

    if not organism.open_trunk:
        logger.debug("Denied append-state on %s: organism is not open-trunk", organism_id)
        raise AccessDeniedError(
            appended_by,
            Action.APPEND_STATE.value,
            organism_id,
            "Organism is not open-trunk; changes require a proposal",
        )

    state = next_state(deps, organism_id, content_type_id, payload, appended_by)
    deps.states.append(state)

    emit(
        deps,
        EventType.STATE_APPENDED,
        organism_id,
        appended_by,
        {
            "stateId": state.id,
            "contentTypeId": content_type_id,
            "sequenceNumber": state.sequence_number,
        },
        occurred_at=state.created_at,
    )
    logger.info("Appended state %s #%d to %s", state.id, state.sequence_number, organism_id)
    return state


def change_open_trunk(
    deps: KernelDeps,
    *,
    organism_id: str,
    open_trunk: bool,
    changed_by: str,
    enforce_access: bool = True,
) -> Organism:
    """Switch an organism between open-trunk and proposal-required tending."""
    organism = deps.organisms.find_by_id(organism_id)
    if organism is None:
        raise OrganismNotFoundError(organism_id)

    if enforce_access:
        check_access_or_raise(deps, changed_by, organism_id, Action.CHANGE_OPEN_TRUNK)

    if organism.open_trunk == open_trunk:
        return organism

    updated = organism.model_copy(update={"open_trunk": open_trunk})
    deps.organisms.save(updated)

    emit(deps, EventType.OPEN_TRUNK_CHANGED, organism_id, changed_by, {"openTrunk": open_trunk})
    logger.info("Open-trunk of %s set to %s by %s", organism_id, open_trunk, changed_by)
    return updated


def _require_readable(deps: KernelDeps, organism_id: str, user_id: Any) -> None:
    if not deps.organisms.exists(organism_id):
        raise OrganismNotFoundError(organism_id)
    if user_id is not INTERNAL_READ:
        check_access_or_raise(deps, user_id, organism_id, Action.VIEW)


def get_current_state(
    deps: KernelDeps, *, organism_id: str, user_id: Any = INTERNAL_READ
) -> Optional[OrganismState]:
    _require_readable(deps, organism_id, user_id)
    return deps.states.find_current_by_organism_id(organism_id)


def get_state_history(
    deps: KernelDeps, *, organism_id: str, user_id: Any = INTERNAL_READ
) -> List[OrganismState]:
    _require_readable(deps, organism_id, user_id)
    return sorted(
        deps.states.find_history_by_organism_id(organism_id),
        key=lambda s: s.sequence_number,
    )
