"""
Helpers for step definitions.

Organisms are referred to by alias in feature files; the alias -> id map
lives in test_context["ids"]. Operations run through attempt(), which keeps
the KernelError (if any) in test_context["error"] for the Then steps.
"""
from typing import Any, Callable, Dict

from omnilith.kernel import KernelError, Relationship, RelationshipType, create_organism


def attempt(test_context: Dict[str, Any], operation: Callable[[], Any]) -> Any:
    """Run an operation, recording either its result or its domain error."""
    test_context["error"] = None
    test_context["result"] = None
    try:
        test_context["result"] = operation()
    except KernelError as exc:
        test_context["error"] = exc
    return test_context["result"]


def organism_id(test_context: Dict[str, Any], alias: str) -> str:
    # Unknown aliases pass through so steps can name missing organisms
    return test_context["ids"].get(alias, alias)


def make_text(test_context, user: str, alias: str, open_trunk: bool = False, content: str = "seed"):
    result = create_organism(
        test_context["deps"],
        content_type_id="text",
        payload={"content": content},
        created_by=user,
        name=alias,
        open_trunk=open_trunk,
    )
    test_context["ids"][alias] = result.organism.id
    return result


def make_organism(test_context, user: str, alias: str, content_type_id: str, payload: Any, open_trunk=False):
    result = create_organism(
        test_context["deps"],
        content_type_id=content_type_id,
        payload=payload,
        created_by=user,
        name=alias,
        open_trunk=open_trunk,
    )
    test_context["ids"][alias] = result.organism.id
    return result


def grant(test_context, user: str, alias: str, type: RelationshipType, role=None) -> Relationship:
    deps = test_context["deps"]
    relationship = Relationship(
        id=deps.identity.relationship_id(),
        type=type,
        user_id=user,
        organism_id=organism_id(test_context, alias),
        role=role,
        created_at=deps.identity.timestamp(),
    )
    deps.relationships.save(relationship)
    return relationship
