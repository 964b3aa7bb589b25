"""
Integration test for the kernel over the SQLite store.

This test runs the full cybernetic loop against one database file:
1. A boundary holds a sensor, a variable and a response policy
2. Observations are recorded on the sensor
3. A regulator cycle recomputes the variable and updates the policy
4. A proposal to the boundary is declined by the policy
5. Reopening the store shows the same history

It also checks the guarantees storage gives on its own: unique sequence
numbers per organism, single-parent composition and proposals that resolve
only once.
"""
from __future__ import annotations

import sqlite3

import pytest

from omnilith.adapters import SqliteStore
from omnilith.kernel import (
    EventType,
    OrganismState,
    ProposalAlreadyResolvedError,
    ProposalStatus,
    SequentialIdentityGenerator,
    UuidIdentityGenerator,
    check_access,
    compose_organism,
    create_organism,
    decline_proposal,
    find_observations,
    get_current_state,
    get_state_history,
    integrate_proposal,
    open_proposal,
    record_observation,
)
from omnilith.kernel.schema import ComposeMutation
from omnilith.regulator import run_regulator_cycle

START_MS = 1_700_000_000_000


@pytest.fixture
def store(temp_db):
    store = SqliteStore(temp_db)
    yield store
    store.close()


@pytest.fixture
def deps(store):
    return store.deps(identity=SequentialIdentityGenerator(now=START_MS), enforce_surfacing=False)


def _create(deps, content_type_id, payload, open_trunk=False, created_by="alice"):
    return create_organism(
        deps,
        content_type_id=content_type_id,
        payload=payload,
        created_by=created_by,
        open_trunk=open_trunk,
    ).organism.id


def _place(deps, parent_id, content_type_id, payload, open_trunk=False):
    child_id = _create(deps, content_type_id, payload, open_trunk=open_trunk)
    compose_organism(deps, parent_id=parent_id, child_id=child_id, composed_by="alice")
    return child_id


def test_cybernetic_loop_end_to_end(temp_db, store, deps):
    studio = _create(deps, "text", {"content": "studio"})
    meter = _place(
        deps,
        studio,
        "sensor",
        {"label": "meter", "targetOrganismId": studio, "metric": "proposals", "readings": []},
    )
    activity = _place(
        deps,
        studio,
        "variable",
        {
            "label": "activity",
            "value": 0,
            "computedAt": START_MS,
            "computation": {"mode": "observation-sum", "sensorOrganismId": meter, "metric": "proposals"},
        },
        open_trunk=True,
    )
    brake = _place(
        deps,
        studio,
        "response-policy",
        {
            "mode": "variable-threshold",
            "variableLabel": "activity",
            "condition": "above",
            "threshold": 5,
            "action": "decline-all",
            "reason": "Studio is overloaded",
        },
        open_trunk=True,
    )

    for value in (2, 3, 4):
        record_observation(
            deps,
            organism_id=meter,
            target_organism_id=studio,
            metric="proposals",
            value=value,
            sampled_at=START_MS,
            observed_by="alice",
        )
    assert len(find_observations(deps, meter, metric="proposals")) == 3

    cycle = run_regulator_cycle(deps, studio, "regulator")
    assert cycle.variable_updates == 1
    assert cycle.response_policy_updates == 1
    assert cycle.variable_values == {"activity": 9.0}

    variable_state = get_current_state(deps, organism_id=activity)
    assert variable_state.sequence_number == 2
    assert variable_state.created_by == "regulator"
    assert variable_state.payload["computedFrom"] == f"observation-sum:{meter}:proposals"
    assert get_current_state(deps, organism_id=brake).payload["currentVariableValue"] == 9.0

    proposal = open_proposal(
        deps,
        organism_id=studio,
        proposed_by="bob",
        proposed_content_type_id="text",
        proposed_payload={"content": "more work"},
    )
    result = integrate_proposal(deps, proposal_id=proposal.id, integrated_by="alice")
    assert result.outcome == "policy-declined"
    assert result.proposal.decline_reason == "Policy evaluation failed: Studio is overloaded"

    declined = deps.event_log.find_by_organism_id(studio, EventType.PROPOSAL_DECLINED)
    assert len(declined) == 1
    assert declined[0].payload["policyDriven"] is True

    # Everything above is on disk
    store.close()
    reopened = SqliteStore(temp_db)
    try:
        again = reopened.deps(enforce_surfacing=False)
        assert [s.sequence_number for s in get_state_history(again, organism_id=activity)] == [1, 2]
        assert again.proposals.find_by_id(proposal.id).status == ProposalStatus.DECLINED
        assert len(find_observations(again, meter)) == 3
    finally:
        reopened.close()


def test_duplicate_sequence_number_is_rejected(deps):
    organism_id = _create(deps, "text", {"content": "v1"}, open_trunk=True)
    current = get_current_state(deps, organism_id=organism_id)
    competing = OrganismState(
        id="st-competing",
        organism_id=organism_id,
        content_type_id="text",
        payload={"content": "racing"},
        created_at=START_MS,
        created_by="bob",
        sequence_number=current.sequence_number,
    )
    with pytest.raises(sqlite3.IntegrityError):
        deps.states.append(competing)


def test_child_has_a_single_parent_row(deps):
    first = _create(deps, "text", {"content": "first"})
    second = _create(deps, "text", {"content": "second"})
    child = _create(deps, "text", {"content": "child"})
    compose_organism(deps, parent_id=first, child_id=child, composed_by="alice")

    record = deps.compositions.find_parent(child)
    with pytest.raises(sqlite3.IntegrityError):
        deps.compositions.save(record.model_copy(update={"parent_id": second}))


def test_proposal_resolves_only_once(deps):
    essay = _create(deps, "text", {"content": "essay"})
    proposal = open_proposal(
        deps,
        organism_id=essay,
        proposed_by="bob",
        proposed_content_type_id="text",
        proposed_payload={"content": "edit"},
    )
    stale = deps.proposals.find_by_id(proposal.id)

    decline_proposal(deps, proposal_id=proposal.id, declined_by="alice", reason="No")

    # A writer holding the stale open copy loses the race
    assert deps.proposals.update(stale.model_copy(update={"status": ProposalStatus.INTEGRATED})) is False
    with pytest.raises(ProposalAlreadyResolvedError) as excinfo:
        integrate_proposal(deps, proposal_id=proposal.id, integrated_by="alice")
    assert excinfo.value.current_status == "declined"


def test_stale_integration_writes_nothing(temp_db, deps, monkeypatch):
    essay = _create(deps, "text", {"content": "v1"})
    proposal = open_proposal(
        deps,
        organism_id=essay,
        proposed_by="bob",
        proposed_content_type_id="text",
        proposed_payload={"content": "v2"},
    )

    # A second connection on the same file that read the proposal while it was open
    other = SqliteStore(temp_db)
    try:
        other_deps = other.deps(identity=UuidIdentityGenerator(), enforce_surfacing=False)
        stale = other_deps.proposals.find_by_id(proposal.id)
        # Only the first read is stale; the resolver re-reads the stored status on failure
        reads = [stale]
        fresh = other_deps.proposals.find_by_id

        def read(proposal_id):
            return reads.pop() if reads else fresh(proposal_id)

        monkeypatch.setattr(other_deps.proposals, "find_by_id", read)

        integrate_proposal(deps, proposal_id=proposal.id, integrated_by="alice")

        with pytest.raises(ProposalAlreadyResolvedError) as excinfo:
            integrate_proposal(other_deps, proposal_id=proposal.id, integrated_by="alice")
        assert excinfo.value.current_status == "integrated"
    finally:
        other.close()

    history = get_state_history(deps, organism_id=essay)
    assert [s.sequence_number for s in history] == [1, 2]
    assert len(deps.event_log.find_by_organism_id(essay, EventType.PROPOSAL_INTEGRATED)) == 1


def test_structural_mutations_survive_storage(deps):
    parent = _create(deps, "text", {"content": "parent"})
    child = _create(deps, "text", {"content": "child"})
    proposal = open_proposal(deps, organism_id=parent, proposed_by="bob", mutation=ComposeMutation(child_id=child))

    stored = deps.proposals.find_by_id(proposal.id)
    assert isinstance(stored.mutation, ComposeMutation)
    assert stored.mutation.child_id == child
    assert stored.proposed_content_type_id == "__mutation.compose"


def test_spatial_maps_surface_organisms(store):
    deps = store.deps(identity=SequentialIdentityGenerator(now=START_MS))
    garden = _create(deps, "text", {"content": "garden"})

    assert not check_access(deps, None, garden, "view")

    _create(
        deps,
        "spatial-map",
        {"width": 500, "height": 500, "entries": [{"organismId": garden, "x": 250, "y": 250}]},
    )
    assert check_access(deps, None, garden, "view")
    assert garden in store.surfaces.list_surfaced_organism_ids()
    assert deps.visibility.find_by_organism_id(garden) is None
