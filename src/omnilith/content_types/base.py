"""
ContentType: one vocabulary entry the kernel can dispatch to.

A content type is data plus two plain functions. The validator is
required. The evaluator is present only for policy types; an organism
whose current state has an evaluator acts as a policy for its parent.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from numbers import Real
from typing import Any, Callable, Dict, List, Optional

from ..kernel.contracts import (
    EvaluationResult,
    ProposalForEvaluation,
    ValidationContext,
    ValidationResult,
)

Validator = Callable[[Any, ValidationContext], List[str]]
Evaluator = Callable[[ProposalForEvaluation, Any], EvaluationResult]


@dataclass(frozen=True)
class ContentType:
    type_id: str
    validator: Validator
    evaluator: Optional[Evaluator] = None
    description: str = ""

    @property
    def is_policy(self) -> bool:
        return self.evaluator is not None

    def validate(self, payload: Any, context: Optional[ValidationContext] = None) -> ValidationResult:
        return ValidationResult.from_issues(self.validator(payload, context or ValidationContext()))

    def evaluate(self, proposal: ProposalForEvaluation, policy_payload: Any) -> EvaluationResult:
        if self.evaluator is None:
            raise TypeError(f"Content type {self.type_id} is not a policy")
        return self.evaluator(proposal, policy_payload)


def approve() -> EvaluationResult:
    return EvaluationResult(decision="approve")


def decline(reason: str) -> EvaluationResult:
    return EvaluationResult(decision="decline", reason=reason)


# Shared payload checks. Each returns True when the value is acceptable.


def is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value)


def is_non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def as_object(payload: Any) -> Optional[Dict[str, Any]]:
    return payload if isinstance(payload, dict) else None
