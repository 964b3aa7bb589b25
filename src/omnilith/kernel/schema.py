from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Dict, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError


class VisibilityLevel(str, Enum):
    PUBLIC = "public"
    MEMBERS = "members"
    PRIVATE = "private"


class RelationshipType(str, Enum):
    STEWARDSHIP = "stewardship"
    MEMBERSHIP = "membership"
    INTEGRATION_AUTHORITY = "integration-authority"


class MembershipRole(str, Enum):
    FOUNDER = "founder"
    MEMBER = "member"


class ProposalStatus(str, Enum):
    OPEN = "open"
    INTEGRATED = "integrated"
    DECLINED = "declined"


class MutationKind(str, Enum):
    APPEND_STATE = "append-state"
    COMPOSE = "compose"
    DECOMPOSE = "decompose"
    CHANGE_VISIBILITY = "change-visibility"


class EventType(str, Enum):
    ORGANISM_CREATED = "organism.created"
    STATE_APPENDED = "state.appended"
    ORGANISM_COMPOSED = "organism.composed"
    ORGANISM_DECOMPOSED = "organism.decomposed"
    OPEN_TRUNK_CHANGED = "organism.open-trunk-changed"
    VISIBILITY_CHANGED = "visibility.changed"
    PROPOSAL_OPENED = "proposal.opened"
    PROPOSAL_INTEGRATED = "proposal.integrated"
    PROPOSAL_DECLINED = "proposal.declined"
    ORGANISM_OBSERVED = "organism.observed"


# Timestamps are integer epoch milliseconds throughout the kernel.


class Organism(BaseModel):
    """Identity of a versioned entity. Survives every state change."""

    id: str
    name: Optional[str] = None
    created_by: str
    created_at: int
    open_trunk: bool = False
    forked_from_id: Optional[str] = None


class OrganismState(BaseModel):
    """One immutable snapshot in an organism's linear history."""

    model_config = ConfigDict(frozen=True)

    id: str
    organism_id: str
    content_type_id: str
    payload: Any = None
    created_at: int
    created_by: str
    sequence_number: int
    parent_state_id: Optional[str] = None


class CompositionRecord(BaseModel):
    parent_id: str
    child_id: str
    composed_at: int
    composed_by: str
    position: Optional[int] = None


class Relationship(BaseModel):
    """
    Connective tissue between a user and an organism.

    Relationships are not organisms; they carry no state history.
    """

    id: str
    type: RelationshipType
    user_id: str
    organism_id: str
    role: Optional[MembershipRole] = None
    created_at: int


class VisibilityRecord(BaseModel):
    organism_id: str
    level: VisibilityLevel
    updated_at: int


class DomainEvent(BaseModel):
    id: str
    type: EventType
    organism_id: str
    actor_id: str
    occurred_at: int
    payload: Dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# Proposal mutations
# =============================================================================


class AppendStateMutation(BaseModel):
    kind: Literal["append-state"] = "append-state"
    content_type_id: str
    payload: Any = None


class ComposeMutation(BaseModel):
    kind: Literal["compose"] = "compose"
    child_id: str = Field(min_length=1)
    position: Optional[int] = None


class DecomposeMutation(BaseModel):
    kind: Literal["decompose"] = "decompose"
    child_id: str = Field(min_length=1)


class ChangeVisibilityMutation(BaseModel):
    kind: Literal["change-visibility"] = "change-visibility"
    level: VisibilityLevel


ProposalMutation = Annotated[
    Union[AppendStateMutation, ComposeMutation, DecomposeMutation, ChangeVisibilityMutation],
    Field(discriminator="kind"),
]

mutation_adapter: TypeAdapter[Any] = TypeAdapter(ProposalMutation)


COMPOSE_MUTATION_TYPE_ID = "__mutation.compose"
DECOMPOSE_MUTATION_TYPE_ID = "__mutation.decompose"
CHANGE_VISIBILITY_MUTATION_TYPE_ID = "__mutation.change-visibility"


def encode_mutation(mutation: Any) -> Tuple[str, Any]:
    """
    Project a mutation onto the legacy (content type id, payload) pair.

    Structural mutations use reserved content type ids so that storage
    written before mutations existed can still hold them.
    """
    if isinstance(mutation, AppendStateMutation):
        return mutation.content_type_id, mutation.payload
    if isinstance(mutation, ComposeMutation):
        return COMPOSE_MUTATION_TYPE_ID, {"childId": mutation.child_id, "position": mutation.position}
    if isinstance(mutation, DecomposeMutation):
        return DECOMPOSE_MUTATION_TYPE_ID, {"childId": mutation.child_id}
    if isinstance(mutation, ChangeVisibilityMutation):
        return CHANGE_VISIBILITY_MUTATION_TYPE_ID, {"level": mutation.level.value}
    raise TypeError(f"Unknown mutation: {mutation!r}")


def decode_mutation(content_type_id: str, payload: Any) -> Any:
    """
    Inverse of encode_mutation.

    A reserved id with a malformed payload decodes to an append-state
    mutation so old rows never fail to load.
    """
    fields = payload if isinstance(payload, dict) else {}
    try:
        if content_type_id == COMPOSE_MUTATION_TYPE_ID:
            position = fields.get("position")
            return ComposeMutation(
                child_id=fields.get("childId"),
                position=position if isinstance(position, int) else None,
            )
        if content_type_id == DECOMPOSE_MUTATION_TYPE_ID:
            return DecomposeMutation(child_id=fields.get("childId"))
        if content_type_id == CHANGE_VISIBILITY_MUTATION_TYPE_ID:
            return ChangeVisibilityMutation(level=fields.get("level"))
    except ValidationError:
        pass
    return AppendStateMutation(content_type_id=content_type_id, payload=payload)


class Proposal(BaseModel):
    """
    An offered mutation awaiting governance.

    open -> integrated | declined. Both resolutions are terminal.
    """

    id: str
    organism_id: str
    mutation: ProposalMutation
    description: Optional[str] = None
    proposed_by: str
    status: ProposalStatus = ProposalStatus.OPEN
    created_at: int
    resolved_at: Optional[int] = None
    resolved_by: Optional[str] = None
    decline_reason: Optional[str] = None

    @property
    def proposed_content_type_id(self) -> str:
        return encode_mutation(self.mutation)[0]

    @property
    def proposed_payload(self) -> Any:
        return encode_mutation(self.mutation)[1]

    @property
    def is_open(self) -> bool:
        return self.status == ProposalStatus.OPEN
