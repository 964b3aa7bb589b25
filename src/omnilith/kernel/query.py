"""
Read models across organisms, states, proposals and events.

These are reads only. They never check access themselves; callers filter
through check_access when serving untrusted users.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from .errors import OrganismNotFoundError
from .ports import KernelDeps
from .schema import Organism, OrganismState, Proposal, ProposalStatus


@dataclass(frozen=True)
class OrganismWithState:
    organism: Organism
    current_state: Optional[OrganismState]


@dataclass
class QueryFilters:
    content_type_id: Optional[str] = None
    created_by: Optional[str] = None
    parent_id: Optional[str] = None
    name_query: Optional[str] = None
    limit: Optional[int] = None
    offset: int = 0


@dataclass(frozen=True)
class Vitality:
    organism_id: str
    recent_state_changes: int
    open_proposal_count: int
    last_activity_at: Optional[int] = None


@dataclass
class Contributor:
    user_id: str
    state_count: int = 0
    proposal_count: int = 0
    integration_count: int = 0
    decline_count: int = 0
    event_count: int = 0
    event_type_counts: Dict[str, int] = field(default_factory=dict)
    last_contributed_at: Optional[int] = None

    @property
    def total(self) -> int:
        return (
            self.state_count
            + self.proposal_count
            + self.integration_count
            + self.decline_count
            + self.event_count
        )

    def touch(self, timestamp: Optional[int]) -> None:
        if timestamp is None:
            return
        if self.last_contributed_at is None or timestamp > self.last_contributed_at:
            self.last_contributed_at = timestamp


def find_organisms_with_state(
    deps: KernelDeps, filters: Union[QueryFilters, Dict[str, Any], None] = None
) -> List[OrganismWithState]:
    if isinstance(filters, dict):
        filters = QueryFilters(**filters)
    filters = filters or QueryFilters()
    organisms = sorted(deps.organisms.find_all(), key=lambda o: (o.created_at, o.id))

    if filters.created_by:
        organisms = [o for o in organisms if o.created_by == filters.created_by]

    if filters.parent_id:
        child_ids = {c.child_id for c in deps.compositions.find_children(filters.parent_id)}
        organisms = [o for o in organisms if o.id in child_ids]

    if filters.name_query and filters.name_query.strip():
        needle = filters.name_query.strip().lower()
        organisms = [o for o in organisms if o.name and needle in o.name.lower()]

    results: List[OrganismWithState] = []
    for organism in organisms:
        current = deps.states.find_current_by_organism_id(organism.id)
        if filters.content_type_id and (current is None or current.content_type_id != filters.content_type_id):
            continue
        results.append(OrganismWithState(organism=organism, current_state=current))

    end = filters.offset + filters.limit if filters.limit is not None else None
    return results[filters.offset:end]


def get_vitality(deps: KernelDeps, organism_id: str) -> Vitality:
    if not deps.organisms.exists(organism_id):
        raise OrganismNotFoundError(organism_id)
    history = deps.states.find_history_by_organism_id(organism_id)
    open_proposals = deps.proposals.find_open_by_organism_id(organism_id)
    last = max(history, key=lambda s: s.sequence_number) if history else None
    return Vitality(
        organism_id=organism_id,
        recent_state_changes=len(history),
        open_proposal_count=len(open_proposals),
        last_activity_at=last.created_at if last is not None else None,
    )


def get_contributions(deps: KernelDeps, organism_id: str) -> List[Contributor]:
    """
    Per-user activity on one organism.

    Sorted by total contributions (desc), then most recent activity (desc),
    then user id.
    """
    if not deps.organisms.exists(organism_id):
        raise OrganismNotFoundError(organism_id)

    by_user: Dict[str, Contributor] = {}

    def contributor(user_id: str) -> Contributor:
        if user_id not in by_user:
            by_user[user_id] = Contributor(user_id=user_id)
        return by_user[user_id]

    for state in deps.states.find_history_by_organism_id(organism_id):
        c = contributor(state.created_by)
        c.state_count += 1
        c.touch(state.created_at)

    for proposal in deps.proposals.find_by_organism_id(organism_id):
        c = contributor(proposal.proposed_by)
        c.proposal_count += 1
        c.touch(proposal.created_at)
        if proposal.resolved_by:
            r = contributor(proposal.resolved_by)
            if proposal.status == ProposalStatus.INTEGRATED:
                r.integration_count += 1
            elif proposal.status == ProposalStatus.DECLINED:
                r.decline_count += 1
            r.touch(proposal.resolved_at if proposal.resolved_at is not None else proposal.created_at)

    if deps.event_log is not None:
        for event in deps.event_log.find_by_organism_id(organism_id):
            c = contributor(event.actor_id)
            c.event_count += 1
            key = event.type.value
            c.event_type_counts[key] = c.event_type_counts.get(key, 0) + 1
            c.touch(event.occurred_at)

    return sorted(
        by_user.values(),
        key=lambda c: (-c.total, -(c.last_contributed_at or 0), c.user_id),
    )


def find_organisms_by_user(deps: KernelDeps, user_id: str) -> List[OrganismWithState]:
    return find_organisms_with_state(deps, QueryFilters(created_by=user_id))


def find_proposals_by_user(deps: KernelDeps, user_id: str) -> List[Proposal]:
    return sorted(deps.proposals.find_by_proposer(user_id), key=lambda p: (p.created_at, p.id))
