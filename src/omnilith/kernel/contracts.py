"""
Content type contract: how the kernel talks to payload-specific logic.

The kernel dispatches by content type id and never branches on
type-specific rules itself. A content type validates payloads and, if it
is a policy type, evaluates proposals made to the organism it sits inside.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Literal, Optional, Protocol


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    issues: List[str] = field(default_factory=list)

    @classmethod
    def from_issues(cls, issues: List[str]) -> "ValidationResult":
        return cls(valid=not issues, issues=list(issues))


@dataclass(frozen=True)
class ValidationContext:
    # Payload of the current state, for validators that enforce transition rules
    previous_payload: Any = None


@dataclass(frozen=True)
class EvaluationResult:
    decision: Literal["approve", "decline"]
    reason: Optional[str] = None

    @property
    def approved(self) -> bool:
        return self.decision == "approve"


@dataclass(frozen=True)
class ProposalForEvaluation:
    """What a policy sees of a proposal. Never the full record."""

    mutation_kind: str
    proposed_content_type_id: str
    proposed_payload: Any
    proposed_by: str
    description: Optional[str] = None


class ContentTypeContract(Protocol):
    type_id: str

    def validate(self, payload: Any, context: Optional[ValidationContext] = None) -> ValidationResult: ...

    @property
    def is_policy(self) -> bool: ...

    def evaluate(self, proposal: ProposalForEvaluation, policy_payload: Any) -> EvaluationResult: ...


class ContentTypeRegistry(Protocol):
    def get(self, content_type_id: str) -> Optional[ContentTypeContract]: ...
