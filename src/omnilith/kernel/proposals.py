"""
Proposal workflow: governance for regulated organisms.

A proposal is opened, then resolved exactly once:

    open --integrate--> integrated
    open --integrate--> declined   (a composed policy said no)
    open --decline----> declined

Malformed proposals fail at open time with a typed error and nothing is
recorded. A policy saying no is not an error: integrate_proposal records
the decline and returns outcome "policy-declined".

Policies are the direct children of the target organism whose current
content type can evaluate. A policy inside an album governs proposals to
the album, not to the songs inside it.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import ValidationError

from .access import Action, check_access_or_raise
from .composition import (
    check_composable,
    check_decomposable,
    compose_organism,
    decompose_organism,
    sort_children,
)
from .contracts import EvaluationResult, ProposalForEvaluation
from .errors import (
    OrganismNotFoundError,
    ProposalAlreadyResolvedError,
    ProposalNotFoundError,
    ValidationFailedError,
)
from .events import emit
from .ledger import next_state, validate_payload
from .ports import KernelDeps
from .schema import (
    AppendStateMutation,
    ChangeVisibilityMutation,
    ComposeMutation,
    DecomposeMutation,
    EventType,
    OrganismState,
    Proposal,
    ProposalStatus,
    decode_mutation,
    encode_mutation,
    mutation_adapter,
)
from .visibility import change_visibility

logger = logging.getLogger(__name__)

MutationInput = Union[AppendStateMutation, ComposeMutation, DecomposeMutation, ChangeVisibilityMutation, Dict[str, Any]]

__all__ = [
    "EvaluationOutcome",
    "IntegrationResult",
    "PolicyResult",
    "decline_proposal",
    "decode_mutation",
    "encode_mutation",
    "evaluate_proposal",
    "get_proposal",
    "integrate_proposal",
    "list_proposals",
    "normalize_mutation",
    "open_proposal",
]


@dataclass(frozen=True)
class PolicyResult:
    policy_organism_id: str
    result: EvaluationResult


@dataclass(frozen=True)
class EvaluationOutcome:
    passed: bool
    results: List[PolicyResult] = field(default_factory=list)

    @property
    def decline_reasons(self) -> List[str]:
        return [r.result.reason or "Policy declined" for r in self.results if not r.result.approved]


@dataclass(frozen=True)
class IntegrationResult:
    outcome: Literal["integrated", "policy-declined"]
    proposal: Proposal
    new_state: Optional[OrganismState] = None
    evaluation: Optional[EvaluationOutcome] = None


def normalize_mutation(
    mutation: Optional[MutationInput] = None,
    *,
    content_type_id: Optional[str] = None,
    payload: Any = None,
) -> Any:
    """
    Turn any accepted request shape into one mutation model.

    Accepts a mutation model, a dict with a "kind" key, or the legacy
    (content_type_id, payload) pair, which may itself encode a structural
    mutation under a reserved id.
    """
    if isinstance(mutation, (AppendStateMutation, ComposeMutation, DecomposeMutation, ChangeVisibilityMutation)):
        return mutation
    if isinstance(mutation, dict):
        try:
            return mutation_adapter.validate_python(mutation)
        except ValidationError as exc:
            issues = [f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in exc.errors()]
            raise ValidationFailedError("proposal-mutation", issues) from exc
    if mutation is not None:
        raise ValidationFailedError("proposal-mutation", [f"Unsupported mutation: {mutation!r}"])
    if content_type_id is None:
        raise ValidationFailedError("proposal-mutation", ["A mutation or a content type id is required"])
    return decode_mutation(content_type_id, payload)


def _check_resolvable(deps: KernelDeps, organism_id: str, mutation: Any) -> None:
    if isinstance(mutation, AppendStateMutation):
        current = deps.states.find_current_by_organism_id(organism_id)
        validate_payload(
            deps,
            mutation.content_type_id,
            mutation.payload,
            current.payload if current is not None else None,
        )
    elif isinstance(mutation, (ComposeMutation, DecomposeMutation)):
        if not deps.organisms.exists(mutation.child_id):
            raise OrganismNotFoundError(mutation.child_id)
    # change-visibility levels were checked when the mutation model was built


def open_proposal(
    deps: KernelDeps,
    *,
    organism_id: str,
    proposed_by: str,
    mutation: Optional[MutationInput] = None,
    proposed_content_type_id: Optional[str] = None,
    proposed_payload: Any = None,
    description: Optional[str] = None,
) -> Proposal:
    if not deps.organisms.exists(organism_id):
        raise OrganismNotFoundError(organism_id)

    check_access_or_raise(deps, proposed_by, organism_id, Action.OPEN_PROPOSAL)

    normalized = normalize_mutation(
        mutation, content_type_id=proposed_content_type_id, payload=proposed_payload
    )
    _check_resolvable(deps, organism_id, normalized)

    now = deps.identity.timestamp()
    proposal = Proposal(
        id=deps.identity.proposal_id(),
        organism_id=organism_id,
        mutation=normalized,
        description=description,
        proposed_by=proposed_by,
        status=ProposalStatus.OPEN,
        created_at=now,
    )
    deps.proposals.save(proposal)

    emit(
        deps,
        EventType.PROPOSAL_OPENED,
        organism_id,
        proposed_by,
        {
            "proposalId": proposal.id,
            "mutationKind": normalized.kind,
            "proposedContentTypeId": proposal.proposed_content_type_id,
        },
        occurred_at=now,
    )
    logger.info("Opened proposal %s (%s) on %s", proposal.id, normalized.kind, organism_id)
    return proposal


def get_proposal(deps: KernelDeps, proposal_id: str) -> Proposal:
    proposal = deps.proposals.find_by_id(proposal_id)
    if proposal is None:
        raise ProposalNotFoundError(proposal_id)
    return proposal


def list_proposals(deps: KernelDeps, organism_id: str, *, open_only: bool = False) -> List[Proposal]:
    if not deps.organisms.exists(organism_id):
        raise OrganismNotFoundError(organism_id)
    if open_only:
        return deps.proposals.find_open_by_organism_id(organism_id)
    return deps.proposals.find_by_organism_id(organism_id)


def evaluate_proposal(deps: KernelDeps, proposal: Proposal) -> EvaluationOutcome:
    """
    Ask every policy composed directly inside the target organism.

    Every policy is consulted, so a decline carries all of the reasons.
    """
    candidate = ProposalForEvaluation(
        mutation_kind=proposal.mutation.kind,
        proposed_content_type_id=proposal.proposed_content_type_id,
        proposed_payload=proposal.proposed_payload,
        proposed_by=proposal.proposed_by,
        description=proposal.description,
    )

    results: List[PolicyResult] = []
    for child in sort_children(deps.compositions.find_children(proposal.organism_id)):
        state = deps.states.find_current_by_organism_id(child.child_id)
        if state is None:
            continue
        contract = deps.content_types.get(state.content_type_id)
        if contract is None or not contract.is_policy:
            continue
        results.append(PolicyResult(child.child_id, contract.evaluate(candidate, state.payload)))

    return EvaluationOutcome(passed=all(r.result.approved for r in results), results=results)


def _load_open(deps: KernelDeps, proposal_id: str) -> Proposal:
    proposal = get_proposal(deps, proposal_id)
    if not proposal.is_open:
        raise ProposalAlreadyResolvedError(proposal_id, proposal.status.value)
    return proposal


def _resolve(deps: KernelDeps, resolved: Proposal) -> None:
    # The stored proposal may have been resolved since it was read
    if not deps.proposals.update(resolved):
        stored = deps.proposals.find_by_id(resolved.id)
        status = stored.status.value if stored is not None else resolved.status.value
        raise ProposalAlreadyResolvedError(resolved.id, status)


def _prepare(deps: KernelDeps, proposal: Proposal) -> Optional[OrganismState]:
    """
    Check that the mutation can still be applied, without writing anything.

    For append-state this builds the successor state that _apply appends.
    """
    mutation = proposal.mutation
    organism_id = proposal.organism_id

    if isinstance(mutation, AppendStateMutation):
        return next_state(deps, organism_id, mutation.content_type_id, mutation.payload, proposal.proposed_by)
    if isinstance(mutation, ComposeMutation):
        check_composable(deps, organism_id, mutation.child_id)
    elif isinstance(mutation, DecomposeMutation):
        check_decomposable(deps, organism_id, mutation.child_id)
    elif not deps.organisms.exists(organism_id):
        raise OrganismNotFoundError(organism_id)
    return None


def _apply(deps: KernelDeps, proposal: Proposal, prepared: Optional[OrganismState]) -> Optional[OrganismState]:
    mutation = proposal.mutation
    organism_id = proposal.organism_id

    if isinstance(mutation, AppendStateMutation):
        deps.states.append(prepared)
        return prepared

    # Integration authority stands in for the primitives' own access checks
    if isinstance(mutation, ComposeMutation):
        compose_organism(
            deps,
            parent_id=organism_id,
            child_id=mutation.child_id,
            composed_by=proposal.proposed_by,
            position=mutation.position,
            enforce_access=False,
        )
    elif isinstance(mutation, DecomposeMutation):
        decompose_organism(
            deps,
            parent_id=organism_id,
            child_id=mutation.child_id,
            decomposed_by=proposal.proposed_by,
            enforce_access=False,
        )
    elif isinstance(mutation, ChangeVisibilityMutation):
        change_visibility(
            deps,
            organism_id=organism_id,
            level=mutation.level,
            changed_by=proposal.proposed_by,
            enforce_access=False,
        )
    return None


def integrate_proposal(deps: KernelDeps, *, proposal_id: str, integrated_by: str) -> IntegrationResult:
    proposal = _load_open(deps, proposal_id)
    check_access_or_raise(deps, integrated_by, proposal.organism_id, Action.INTEGRATE_PROPOSAL)

    evaluation = evaluate_proposal(deps, proposal)

    if not evaluation.passed:
        reason = f"Policy evaluation failed: {'; '.join(evaluation.decline_reasons)}"
        now = deps.identity.timestamp()
        declined = proposal.model_copy(
            update={
                "status": ProposalStatus.DECLINED,
                "resolved_at": now,
                "resolved_by": integrated_by,
                "decline_reason": reason,
            }
        )
        _resolve(deps, declined)
        emit(
            deps,
            EventType.PROPOSAL_DECLINED,
            proposal.organism_id,
            integrated_by,
            {"proposalId": proposal.id, "reason": reason, "policyDriven": True},
            occurred_at=now,
        )
        logger.info("Proposal %s declined by policy: %s", proposal.id, reason)
        return IntegrationResult(outcome="policy-declined", proposal=declined, evaluation=evaluation)

    prepared = _prepare(deps, proposal)

    # Claim the proposal before touching the organism so a stale resolver writes nothing
    now = deps.identity.timestamp()
    integrated = proposal.model_copy(
        update={
            "status": ProposalStatus.INTEGRATED,
            "resolved_at": now,
            "resolved_by": integrated_by,
        }
    )
    _resolve(deps, integrated)

    new_state = _apply(deps, proposal, prepared)

    payload: Dict[str, Any] = {"proposalId": proposal.id, "mutationKind": proposal.mutation.kind}
    if new_state is not None:
        payload["stateId"] = new_state.id
        payload["sequenceNumber"] = new_state.sequence_number
    emit(deps, EventType.PROPOSAL_INTEGRATED, proposal.organism_id, integrated_by, payload, occurred_at=now)

    logger.info("Integrated proposal %s (%s) on %s", proposal.id, proposal.mutation.kind, proposal.organism_id)
    return IntegrationResult(outcome="integrated", proposal=integrated, new_state=new_state, evaluation=evaluation)


def decline_proposal(
    deps: KernelDeps,
    *,
    proposal_id: str,
    declined_by: str,
    reason: Optional[str] = None,
) -> Proposal:
    proposal = _load_open(deps, proposal_id)
    check_access_or_raise(deps, declined_by, proposal.organism_id, Action.DECLINE_PROPOSAL)

    now = deps.identity.timestamp()
    declined = proposal.model_copy(
        update={
            "status": ProposalStatus.DECLINED,
            "resolved_at": now,
            "resolved_by": declined_by,
            "decline_reason": reason,
        }
    )
    _resolve(deps, declined)

    emit(
        deps,
        EventType.PROPOSAL_DECLINED,
        proposal.organism_id,
        declined_by,
        {"proposalId": proposal.id, "reason": reason, "policyDriven": False},
        occurred_at=now,
    )
    logger.info("Declined proposal %s by %s", proposal.id, declined_by)
    return declined
