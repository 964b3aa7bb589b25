"""
Access control: the one place authorization is decided.

Every permission question in the kernel is answered by check_access, an
ordered decision tree:

    1. The organism must exist.
    2. Effective visibility is resolved (see resolve_effective_visibility).
    3. Guests may only view, and only public organisms.
    4. Authenticated callers must pass the visibility gate:
       private needs a direct relationship; members needs a direct
       relationship or membership on the immediate parent.
    5. The action matrix decides what the caller may do.

Membership never implies integration authority. That authority is granted
per organism, or substituted by stewardship or by a founder role on the
immediate parent.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Union

from .errors import AccessDeniedError
from .ports import KernelDeps
from .schema import MembershipRole, Relationship, RelationshipType, VisibilityLevel

logger = logging.getLogger(__name__)


class Action(str, Enum):
    VIEW = "view"
    APPEND_STATE = "append-state"
    RECORD_OBSERVATION = "record-observation"
    OPEN_PROPOSAL = "open-proposal"
    INTEGRATE_PROPOSAL = "integrate-proposal"
    DECLINE_PROPOSAL = "decline-proposal"
    COMPOSE = "compose"
    DECOMPOSE = "decompose"
    CHANGE_VISIBILITY = "change-visibility"
    CHANGE_OPEN_TRUNK = "change-open-trunk"


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = AccessDecision(allowed=True)


def _deny(reason: str) -> AccessDecision:
    return AccessDecision(allowed=False, reason=reason)


def is_surfaced(deps: KernelDeps, organism_id: str) -> bool:
    # Without a surface repository every organism counts as surfaced
    if deps.surfaces is None:
        return True
    return deps.surfaces.is_surfaced(organism_id)


def resolve_effective_visibility(deps: KernelDeps, organism_id: str) -> VisibilityLevel:
    """
    Visibility as access control sees it.

    The configured level defaults to public. Surfacing is a precondition
    for any level above private: an organism absent from every curated map
    is treated as private whatever its configured level.
    """
    record = deps.visibility.find_by_organism_id(organism_id)
    configured = record.level if record is not None else VisibilityLevel.PUBLIC
    if not is_surfaced(deps, organism_id):
        return VisibilityLevel.PRIVATE
    return configured


def _has(relationships: List[Relationship], *types: RelationshipType) -> bool:
    return any(r.type in types for r in relationships)


def _parent_relationships(deps: KernelDeps, user_id: str, organism_id: str) -> List[Relationship]:
    parent = deps.compositions.find_parent(organism_id)
    if parent is None:
        return []
    return deps.relationships.find_by_user_and_organism(user_id, parent.parent_id)


def _is_parent_founder(deps: KernelDeps, user_id: str, organism_id: str) -> bool:
    return any(
        r.type == RelationshipType.MEMBERSHIP and r.role == MembershipRole.FOUNDER
        for r in _parent_relationships(deps, user_id, organism_id)
    )


def _is_parent_member(deps: KernelDeps, user_id: str, organism_id: str) -> bool:
    return _has(_parent_relationships(deps, user_id, organism_id), RelationshipType.MEMBERSHIP)


def _check_action(
    deps: KernelDeps,
    user_id: str,
    organism_id: str,
    action: Action,
    relationships: List[Relationship],
) -> AccessDecision:
    if action in (Action.VIEW, Action.OPEN_PROPOSAL):
        return ALLOW

    if action == Action.APPEND_STATE:
        # Open-trunk gating happens in append_state itself
        return ALLOW

    if action == Action.RECORD_OBSERVATION:
        if _has(relationships, RelationshipType.STEWARDSHIP, RelationshipType.INTEGRATION_AUTHORITY):
            return ALLOW
        return _deny("User does not have authority to record observations on this organism")

    if action in (Action.INTEGRATE_PROPOSAL, Action.DECLINE_PROPOSAL):
        if _has(relationships, RelationshipType.INTEGRATION_AUTHORITY, RelationshipType.STEWARDSHIP):
            return ALLOW
        if _is_parent_founder(deps, user_id, organism_id):
            return ALLOW
        return _deny("User does not have integration authority on this organism")

    if action in (Action.COMPOSE, Action.DECOMPOSE):
        if _has(relationships, RelationshipType.STEWARDSHIP):
            return ALLOW
        if _is_parent_founder(deps, user_id, organism_id):
            return ALLOW
        return _deny("User does not have stewardship of this organism")

    if action in (Action.CHANGE_VISIBILITY, Action.CHANGE_OPEN_TRUNK):
        if _has(relationships, RelationshipType.STEWARDSHIP):
            return ALLOW
        return _deny("User does not have stewardship of this organism")

    return _deny(f"Unknown action: {action}")


def check_access(
    deps: KernelDeps,
    user_id: Optional[str],
    organism_id: str,
    action: Union[Action, str],
) -> AccessDecision:
    """
    Decide whether user_id (None for a guest) may perform action on an organism.

    Never raises for a denial; see check_access_or_raise for that.
    """
    try:
        action = Action(action)
    except ValueError:
        return _deny(f"Unknown action: {action}")

    if not deps.organisms.exists(organism_id):
        return _deny("Organism not found")

    level = resolve_effective_visibility(deps, organism_id)

    if user_id is None:
        if action != Action.VIEW:
            return _deny("Authentication required")
        if level != VisibilityLevel.PUBLIC:
            return _deny("Organism is not public")
        return ALLOW

    relationships = deps.relationships.find_by_user_and_organism(user_id, organism_id)

    if level == VisibilityLevel.PRIVATE and not relationships:
        return _deny("Organism is private and user has no relationship to it")

    if level == VisibilityLevel.MEMBERS and not relationships:
        if not _is_parent_member(deps, user_id, organism_id):
            return _deny("Organism is members-only and user is not a member")

    return _check_action(deps, user_id, organism_id, action, relationships)


def check_access_or_raise(
    deps: KernelDeps,
    user_id: Optional[str],
    organism_id: str,
    action: Union[Action, str],
) -> None:
    decision = check_access(deps, user_id, organism_id, action)
    if not decision.allowed:
        action_value = action.value if isinstance(action, Action) else str(action)
        logger.debug(
            "Denied %s on %s for %s: %s", action_value, organism_id, user_id or "guest", decision.reason
        )
        raise AccessDeniedError(user_id, action_value, organism_id, decision.reason)
