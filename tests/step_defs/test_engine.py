"""
Step definitions for the KernelEngine feature.

These tests drive the kernel only through KernelEngine.dispatch, the way an
embedding transport would.
"""
from pytest_bdd import given, parsers, scenarios, then, when

from omnilith.engine import KernelEngine

# Load scenarios from feature file
scenarios("../features/engine.feature")


CONFIG_TEMPLATE = """
[storage]
backend = "{backend}"
path = "{path}"

[identity]
generator = "sequential"

[access]
enforce_surfacing = false

[logging]
level = "DEBUG"
"""


def _dispatch(test_context, name, **inputs):
    result = test_context["engine"].dispatch(name, **inputs)
    test_context["dispatch"] = result
    return result


# =============================================================================
# Given Steps
# =============================================================================


@given(parsers.parse('an engine configured from a file with the "{backend:w}" backend'))
def engine_from_file(test_context, request, tmp_path, temp_db, backend: str):
    config_path = tmp_path / "omnilith.toml"
    config_path.write_text(CONFIG_TEMPLATE.format(backend=backend, path=temp_db))
    test_context["config_path"] = config_path
    test_context["engine"] = KernelEngine.from_config(config_path)
    request.addfinalizer(lambda: test_context["engine"].close())


@given(parsers.parse('"{user:w}" created a note through the engine'))
def created_note(test_context, user: str):
    result = _dispatch(
        test_context, "create_organism", content_type_id="text", payload={"content": "seed"}, created_by=user
    )
    assert result.ok, result.error_message
    test_context["note_id"] = result.data["result"]["organism"]["id"]


# =============================================================================
# When Steps
# =============================================================================


@when("I list the engine operations")
def list_operations(test_context):
    test_context["operations"] = test_context["engine"].list_operations()


@when(parsers.parse('I dispatch "{name:w}" for "{user:w}" with content "{content}"'))
def dispatch_create(test_context, name: str, user: str, content: str):
    _dispatch(test_context, name, content_type_id="text", payload={"content": content}, created_by=user)


@when(parsers.parse('I dispatch "{name:w}"'))
def dispatch_bare(test_context, name: str):
    _dispatch(test_context, name)


@when(parsers.parse('"{user:w}" appends to the note through the engine'))
def append_note(test_context, user: str):
    _dispatch(
        test_context,
        "append_state",
        organism_id=test_context["note_id"],
        content_type_id="text",
        payload={"content": "direct"},
        appended_by=user,
    )


@when(parsers.parse('"{user:w}" proposes new content for the note through the engine'))
def propose_note(test_context, user: str):
    result = _dispatch(
        test_context,
        "open_proposal",
        organism_id=test_context["note_id"],
        proposed_by=user,
        proposed_content_type_id="text",
        proposed_payload={"content": "proposed"},
    )
    assert result.ok, result.error_message
    test_context["proposal_id"] = result.data["result"]["id"]


@when(parsers.parse('"{user:w}" integrates that proposal through the engine'))
def integrate_note(test_context, user: str):
    result = _dispatch(
        test_context, "integrate_proposal", proposal_id=test_context["proposal_id"], integrated_by=user
    )
    assert result.ok, result.error_message
    assert result.data["result"]["outcome"] == "integrated"


@when(parsers.parse('the engine is asked whether "{user:w}" may "{action}" the note'))
def ask_access(test_context, user: str, action: str):
    _dispatch(
        test_context, "check_access", user_id=user, organism_id=test_context["note_id"], action=action
    )


@when("the engine is closed and reopened")
def reopen_engine(test_context):
    test_context["engine"].close()
    test_context["engine"] = KernelEngine.from_config(test_context["config_path"])


# =============================================================================
# Then Steps
# =============================================================================


@then(parsers.parse('the operations include "{names}"'))
def operations_include(test_context, names: str):
    for name in names.split(","):
        assert name.strip() in test_context["operations"]
    assert len(test_context["operations"]) == 23


@then("the dispatch succeeds")
def dispatch_succeeds(test_context):
    result = test_context["dispatch"]
    assert result.ok, result.error_message
    assert result.error_kind is None


@then(parsers.parse('the dispatched organism id is "{expected}"'))
def dispatched_id(test_context, expected: str):
    data = test_context["dispatch"].data["result"]
    assert data["organism"]["id"] == expected
    assert data["initial_state"]["sequence_number"] == 1


@then(parsers.parse('the dispatch fails with "{kind:w}"'))
def dispatch_fails(test_context, kind: str):
    result = test_context["dispatch"]
    assert not result.ok
    assert result.error_kind == kind


@then("the dispatch result serializes with its error")
def dispatch_serializes(test_context):
    payload = test_context["dispatch"].to_dict()
    assert payload["ok"] is False
    assert payload["error_kind"] == "AccessDeniedError"
    assert "changes require a proposal" in payload["error_message"]


@then(parsers.re(r"the note has (?P<count>\d+) states? through the engine"))
def note_history(test_context, count: str):
    result = _dispatch(test_context, "get_state_history", organism_id=test_context["note_id"])
    assert result.ok, result.error_message
    assert len(result.data["result"]) == int(count)


@then(parsers.parse('the dispatched decision is a denial because "{reason}"'))
def dispatched_denial(test_context, reason: str):
    decision = test_context["dispatch"].data["result"]
    assert decision["allowed"] is False
    assert decision["reason"] == reason
