"""
Policy content types.

A policy organism composed inside a parent is consulted on every proposal
to that parent. Governance bugs are dangerous, so the schemas are strict:
a malformed policy could silently decline or pass everything.
"""
from __future__ import annotations

from typing import Any, List

from ..kernel.contracts import EvaluationResult, ProposalForEvaluation, ValidationContext
from .base import ContentType, approve, as_object, decline, is_non_empty_string, is_number

INTEGRATION_MODES = ("single-integrator",)
RESPONSE_CONDITIONS = ("below", "above")
RESPONSE_ACTIONS = ("decline-all", "pass")


# =============================================================================
# integration-policy
# =============================================================================


def validate_integration_policy(payload: Any, _context: ValidationContext) -> List[str]:
    p = as_object(payload)
    if p is None:
        return ["Payload must be an object"]
    if p.get("mode") not in INTEGRATION_MODES:
        return [f"mode must be one of: {', '.join(INTEGRATION_MODES)}"]
    return []


def evaluate_integration_policy(_proposal: ProposalForEvaluation, policy_payload: Any) -> EvaluationResult:
    """
    Single-integrator mode always approves.

    Who may integrate is decided by access control, not here.
    """
    mode = (as_object(policy_payload) or {}).get("mode")
    if mode != "single-integrator":
        return decline(f"Unknown policy mode: {mode}")
    return approve()


integration_policy = ContentType(
    type_id="integration-policy",
    validator=validate_integration_policy,
    evaluator=evaluate_integration_policy,
    description="Who integrates proposals into the parent",
)


# =============================================================================
# response-policy
# =============================================================================


def validate_response_policy(payload: Any, _context: ValidationContext) -> List[str]:
    p = as_object(payload)
    if p is None:
        return ["Payload must be an object"]

    issues: List[str] = []
    if p.get("mode") != "variable-threshold":
        issues.append("mode must be 'variable-threshold'")
    if not is_non_empty_string(p.get("variableLabel")):
        issues.append("variableLabel must be a non-empty string")
    if p.get("condition") not in RESPONSE_CONDITIONS:
        issues.append("condition must be 'below' or 'above'")
    if not is_number(p.get("threshold")):
        issues.append("threshold must be a number")
    if p.get("currentVariableValue") is not None and not is_number(p["currentVariableValue"]):
        issues.append("currentVariableValue must be a number")
    if p.get("action") not in RESPONSE_ACTIONS:
        issues.append("action must be 'decline-all' or 'pass'")
    if not is_non_empty_string(p.get("reason")):
        issues.append("reason must be a non-empty string")
    return issues


def is_triggered(policy: dict) -> bool:
    value = policy["currentVariableValue"]
    if policy.get("condition") == "below":
        return value < policy["threshold"]
    return value > policy["threshold"]


def evaluate_response_policy(_proposal: ProposalForEvaluation, policy_payload: Any) -> EvaluationResult:
    """
    Decide from the variable snapshot held in the policy's own payload.

    The regulator writes currentVariableValue; until it has, proposals pass.
    When the condition is not triggered the action is inverted.
    """
    policy = as_object(policy_payload) or {}
    if policy.get("mode") != "variable-threshold":
        return decline(f"Unknown response policy mode: {policy.get('mode')}")

    if policy.get("currentVariableValue") is None:
        return approve()

    declines_when_triggered = policy.get("action") == "decline-all"
    if is_triggered(policy) == declines_when_triggered:
        return decline(policy.get("reason") or "Response policy declined")
    return approve()


response_policy = ContentType(
    type_id="response-policy",
    validator=validate_response_policy,
    evaluator=evaluate_response_policy,
    description="Declines or passes proposals from a variable threshold",
)
