"""
Step definitions for the access control and surfacing features.

Decisions are read straight from check_access; the last one is kept in
test_context["decision"] so a following step can assert on its reason.
"""
from pytest_bdd import given, parsers, scenarios, then, when

from omnilith.kernel import change_visibility, check_access, resolve_effective_visibility

from support import attempt, make_organism, organism_id

# Load scenarios from feature files
scenarios("../features/access_control.feature", "../features/surfacing.feature")


def _decide(test_context, user, action, alias):
    decision = check_access(test_context["deps"], user, organism_id(test_context, alias), action)
    test_context["decision"] = decision
    return decision


# =============================================================================
# Given / When Steps
# =============================================================================


@given(parsers.parse('"{user:w}" set the visibility of "{alias:w}" to "{level:w}"'))
def set_visibility(test_context, user: str, alias: str, level: str):
    change_visibility(
        test_context["deps"],
        organism_id=organism_id(test_context, alias),
        level=level,
        changed_by=user,
    )


@when(parsers.parse('"{user:w}" sets the visibility of "{alias:w}" to "{level:w}"'))
def sets_visibility(test_context, user: str, alias: str, level: str):
    attempt(
        test_context,
        lambda: change_visibility(
            test_context["deps"],
            organism_id=organism_id(test_context, alias),
            level=level,
            changed_by=user,
        ),
    )


@given(parsers.parse('"{user:w}" created a spatial map "{alias:w}" placing "{placed:w}"'))
def created_map(test_context, user: str, alias: str, placed: str):
    payload = {
        "width": 1000,
        "height": 1000,
        "entries": [{"organismId": organism_id(test_context, placed), "x": 100, "y": 100}],
    }
    make_organism(test_context, user, alias, "spatial-map", payload)


# =============================================================================
# Then Steps
# =============================================================================


@then(parsers.parse('"{user:w}" may "{action}" on "{alias:w}"'))
def user_may(test_context, user: str, action: str, alias: str):
    decision = _decide(test_context, user, action, alias)
    assert decision.allowed, decision.reason


@then(parsers.parse('"{user:w}" may not "{action}" on "{alias:w}"'))
def user_may_not(test_context, user: str, action: str, alias: str):
    assert not _decide(test_context, user, action, alias)


@then(parsers.parse('a guest may "{action}" on "{alias:w}"'))
def guest_may(test_context, action: str, alias: str):
    decision = _decide(test_context, None, action, alias)
    assert decision.allowed, decision.reason


@then(parsers.parse('a guest may not "{action}" on "{alias:w}"'))
def guest_may_not(test_context, action: str, alias: str):
    assert not _decide(test_context, None, action, alias)


@then(parsers.parse('the denial reason is "{reason}"'))
def denial_reason(test_context, reason: str):
    assert test_context["decision"].reason == reason


@then(parsers.parse('the effective visibility of "{alias:w}" is "{level:w}"'))
def effective_visibility(test_context, alias: str, level: str):
    assert resolve_effective_visibility(test_context["deps"], organism_id(test_context, alias)).value == level
