"""
Kernel: the machinery of omnilith.

- schema: organisms, states, composition, relationships, proposals, events
- ports: repository contracts and the KernelDeps bundle
- access: the single authorization decision
- ledger / composition / visibility / proposals / observation: operations
- query: read models

The kernel depends on ports only. Concrete storage lives in adapters/,
vocabulary in content_types/.
"""
from .access import AccessDecision, Action, check_access, check_access_or_raise, resolve_effective_visibility
from .composition import compose_organism, decompose_organism, iter_ancestors, query_children, query_parent
from .contracts import (
    EvaluationResult,
    ProposalForEvaluation,
    ValidationContext,
    ValidationResult,
)
from .errors import (
    AccessDeniedError,
    CompositionError,
    ConfigError,
    ContentTypeNotRegisteredError,
    KernelError,
    OrganismNotFoundError,
    ProposalAlreadyResolvedError,
    ProposalNotFoundError,
    StateNotFoundError,
    ValidationFailedError,
)
from .identity import IdentityGenerator, SequentialIdentityGenerator, UuidIdentityGenerator
from .ledger import (
    CreateOrganismResult,
    append_state,
    change_open_trunk,
    create_organism,
    get_current_state,
    get_state_history,
)
from .observation import find_observations, record_observation
from .ports import KernelDeps
from .proposals import (
    EvaluationOutcome,
    IntegrationResult,
    decline_proposal,
    evaluate_proposal,
    integrate_proposal,
    open_proposal,
)
from .schema import (
    AppendStateMutation,
    ChangeVisibilityMutation,
    ComposeMutation,
    CompositionRecord,
    DecomposeMutation,
    DomainEvent,
    EventType,
    MembershipRole,
    MutationKind,
    Organism,
    OrganismState,
    Proposal,
    ProposalStatus,
    Relationship,
    RelationshipType,
    VisibilityLevel,
    VisibilityRecord,
    decode_mutation,
    encode_mutation,
)
from .visibility import change_visibility

__all__ = [
    # Schema
    "AppendStateMutation",
    "ChangeVisibilityMutation",
    "ComposeMutation",
    "CompositionRecord",
    "DecomposeMutation",
    "DomainEvent",
    "EventType",
    "MembershipRole",
    "MutationKind",
    "Organism",
    "OrganismState",
    "Proposal",
    "ProposalStatus",
    "Relationship",
    "RelationshipType",
    "VisibilityLevel",
    "VisibilityRecord",
    "decode_mutation",
    "encode_mutation",
    # Contracts
    "EvaluationResult",
    "ProposalForEvaluation",
    "ValidationContext",
    "ValidationResult",
    # Errors
    "AccessDeniedError",
    "CompositionError",
    "ConfigError",
    "ContentTypeNotRegisteredError",
    "KernelError",
    "OrganismNotFoundError",
    "ProposalAlreadyResolvedError",
    "ProposalNotFoundError",
    "StateNotFoundError",
    "ValidationFailedError",
    # Identity and ports
    "IdentityGenerator",
    "KernelDeps",
    "SequentialIdentityGenerator",
    "UuidIdentityGenerator",
    # Operations
    "AccessDecision",
    "Action",
    "CreateOrganismResult",
    "EvaluationOutcome",
    "IntegrationResult",
    "append_state",
    "change_open_trunk",
    "change_visibility",
    "check_access",
    "check_access_or_raise",
    "compose_organism",
    "create_organism",
    "decline_proposal",
    "decompose_organism",
    "evaluate_proposal",
    "find_observations",
    "get_current_state",
    "get_state_history",
    "integrate_proposal",
    "iter_ancestors",
    "open_proposal",
    "query_children",
    "query_parent",
    "record_observation",
    "resolve_effective_visibility",
]
