"""
Steps shared by every kernel feature.
"""
from typing import Any, Dict

import pytest
from pytest_bdd import given, parsers, then

from omnilith.adapters import build_memory_deps
from omnilith.kernel import MembershipRole, RelationshipType, compose_organism

from support import grant, make_text, organism_id


@pytest.fixture
def test_context() -> Dict[str, Any]:
    """Shared context for passing data between steps."""
    return {"deps": None, "ids": {}, "error": None, "result": None}


# =============================================================================
# Background Steps
# =============================================================================


@given("a fresh kernel")
def fresh_kernel(test_context, deps):
    test_context["deps"] = deps


@given("a fresh kernel with surfacing enforced")
def fresh_kernel_with_surfacing(test_context, identity, registry):
    test_context["deps"] = build_memory_deps(content_types=registry, identity=identity, surfaces=True)


# =============================================================================
# Given Steps - Organisms and Relationships
# =============================================================================


@given(parsers.parse('"{user:w}" created a text organism "{alias:w}"'))
def given_text_organism(test_context, user: str, alias: str):
    make_text(test_context, user, alias)


@given(parsers.parse('"{user:w}" created an open-trunk text organism "{alias:w}"'))
def given_open_trunk_text_organism(test_context, user: str, alias: str):
    make_text(test_context, user, alias, open_trunk=True)


@given(parsers.parse('"{user:w}" composed "{child:w}" inside "{parent:w}"'))
def given_composed(test_context, user: str, child: str, parent: str):
    compose_organism(
        test_context["deps"],
        parent_id=organism_id(test_context, parent),
        child_id=organism_id(test_context, child),
        composed_by=user,
    )


@given(parsers.parse('"{user:w}" is a member of "{alias:w}"'))
def given_member(test_context, user: str, alias: str):
    grant(test_context, user, alias, RelationshipType.MEMBERSHIP, MembershipRole.MEMBER)


@given(parsers.parse('"{user:w}" is a founder of "{alias:w}"'))
def given_founder(test_context, user: str, alias: str):
    grant(test_context, user, alias, RelationshipType.MEMBERSHIP, MembershipRole.FOUNDER)


@given(parsers.parse('"{user:w}" holds integration authority on "{alias:w}"'))
def given_integration_authority(test_context, user: str, alias: str):
    grant(test_context, user, alias, RelationshipType.INTEGRATION_AUTHORITY)


# =============================================================================
# Then Steps - Outcomes
# =============================================================================


@then("the operation succeeds")
def operation_succeeds(test_context):
    assert test_context["error"] is None, f"Unexpected error: {test_context['error']!r}"


@then(parsers.parse('the operation fails with "{error:w}"'))
def operation_fails_with(test_context, error: str):
    raised = test_context["error"]
    assert raised is not None, "Expected the operation to fail"
    assert type(raised).__name__ == error, f"Got {type(raised).__name__}: {raised}"


@then(parsers.parse('the failure mentions "{text}"'))
def failure_mentions(test_context, text: str):
    assert text in str(test_context["error"])
