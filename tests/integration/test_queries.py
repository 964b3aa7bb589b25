"""
Read models over a small, busy kernel: listing, vitality and contributions.
"""
from __future__ import annotations

import pytest

from omnilith.kernel import (
    OrganismNotFoundError,
    append_state,
    compose_organism,
    create_organism,
    decline_proposal,
    integrate_proposal,
    open_proposal,
)
from omnilith.kernel.query import (
    QueryFilters,
    find_organisms_by_user,
    find_organisms_with_state,
    find_proposals_by_user,
    get_contributions,
    get_vitality,
)


@pytest.fixture
def world(deps, identity):
    """alice's album holding two songs, bob's open-trunk notebook, and some governance."""

    def create(user, name, content_type_id="text", payload=None, open_trunk=False):
        identity.advance(10)
        return create_organism(
            deps,
            content_type_id=content_type_id,
            payload=payload or {"content": name},
            created_by=user,
            name=name,
            open_trunk=open_trunk,
        ).organism.id

    ids = {
        "album": create("alice", "Blue Album"),
        "intro": create("alice", "Intro Song"),
        "outro": create("alice", "Outro Song"),
        "notebook": create("bob", "Notebook", open_trunk=True),
    }
    compose_organism(deps, parent_id=ids["album"], child_id=ids["intro"], composed_by="alice")
    compose_organism(deps, parent_id=ids["album"], child_id=ids["outro"], composed_by="alice")

    identity.advance(10)
    first = open_proposal(
        deps,
        organism_id=ids["album"],
        proposed_by="bob",
        proposed_content_type_id="text",
        proposed_payload={"content": "Blue Album (remaster)"},
    )
    identity.advance(10)
    integrate_proposal(deps, proposal_id=first.id, integrated_by="alice")
    identity.advance(10)
    second = open_proposal(
        deps,
        organism_id=ids["album"],
        proposed_by="carol",
        proposed_content_type_id="text",
        proposed_payload={"content": "Red Album"},
    )
    identity.advance(10)
    decline_proposal(deps, proposal_id=second.id, declined_by="alice", reason="Wrong colour")
    identity.advance(10)
    open_proposal(
        deps,
        organism_id=ids["album"],
        proposed_by="bob",
        proposed_content_type_id="text",
        proposed_payload={"content": "Green Album"},
    )
    identity.advance(10)
    append_state(
        deps,
        organism_id=ids["notebook"],
        content_type_id="text",
        payload={"content": "second page"},
        appended_by="bob",
    )
    return ids


def test_find_organisms_filters(deps, world):
    everything = find_organisms_with_state(deps)
    assert [o.organism.id for o in everything] == [
        world["album"],
        world["intro"],
        world["outro"],
        world["notebook"],
    ]

    songs = find_organisms_with_state(deps, QueryFilters(parent_id=world["album"]))
    assert {o.organism.id for o in songs} == {world["intro"], world["outro"]}

    by_name = find_organisms_with_state(deps, {"name_query": "  song "})
    assert [o.organism.name for o in by_name] == ["Intro Song", "Outro Song"]

    page = find_organisms_with_state(deps, QueryFilters(limit=2, offset=1))
    assert [o.organism.id for o in page] == [world["intro"], world["outro"]]

    assert find_organisms_with_state(deps, QueryFilters(content_type_id="spatial-map")) == []


def test_results_carry_the_current_state(deps, world):
    (notebook,) = find_organisms_by_user(deps, "bob")
    assert notebook.organism.id == world["notebook"]
    assert notebook.current_state.sequence_number == 2
    assert notebook.current_state.payload == {"content": "second page"}


def test_vitality(deps, world):
    vitality = get_vitality(deps, world["album"])
    assert vitality.recent_state_changes == 2
    assert vitality.open_proposal_count == 1
    assert vitality.last_activity_at is not None

    with pytest.raises(OrganismNotFoundError):
        get_vitality(deps, "org-missing")


def test_contributions_rank_by_activity(deps, world):
    contributors = {c.user_id: c for c in get_contributions(deps, world["album"])}

    alice = contributors["alice"]
    assert alice.state_count == 1
    assert alice.integration_count == 1
    assert alice.decline_count == 1

    bob = contributors["bob"]
    assert bob.state_count == 1  # the integrated proposal is recorded as bob's state
    assert bob.proposal_count == 2

    carol = contributors["carol"]
    assert carol.proposal_count == 1
    assert carol.event_type_counts == {"proposal.opened": 1}

    ranked = [c.user_id for c in get_contributions(deps, world["album"])]
    assert ranked[0] == "alice"
    assert ranked[-1] == "carol"


def test_proposals_by_user(deps, world):
    proposals = find_proposals_by_user(deps, "bob")
    assert [p.status.value for p in proposals] == ["integrated", "open"]
    assert find_proposals_by_user(deps, "nobody") == []
