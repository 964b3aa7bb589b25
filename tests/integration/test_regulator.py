"""
Regulator cycle details: windows, clamps and variables it cannot resolve.
"""
from __future__ import annotations

import pytest

from omnilith.kernel import compose_organism, create_organism, get_current_state, record_observation
from omnilith.regulator import observation_sum, run_regulator_cycle


@pytest.fixture
def boundary(deps):
    return create_organism(
        deps, content_type_id="text", payload={"content": "boundary"}, created_by="alice"
    ).organism.id


def _place(deps, parent_id, content_type_id, payload, open_trunk=True):
    child_id = create_organism(
        deps,
        content_type_id=content_type_id,
        payload=payload,
        created_by="alice",
        open_trunk=open_trunk,
    ).organism.id
    compose_organism(deps, parent_id=parent_id, child_id=child_id, composed_by="alice")
    return child_id


def _sensor(deps, boundary, label="meter"):
    return _place(
        deps,
        boundary,
        "sensor",
        {"label": label, "targetOrganismId": boundary, "metric": "proposals", "readings": []},
        open_trunk=False,
    )


def _variable(deps, boundary, **computation):
    return _place(
        deps,
        boundary,
        "variable",
        {
            "label": "activity",
            "value": 0,
            "computedAt": 0,
            "computation": dict({"mode": "observation-sum", "metric": "proposals"}, **computation),
        },
    )


def _observe(deps, sensor, target, value):
    record_observation(
        deps,
        organism_id=sensor,
        target_organism_id=target,
        metric="proposals",
        value=value,
        sampled_at=deps.identity.timestamp(),
        observed_by="alice",
    )


def test_window_only_counts_recent_observations(deps, identity, boundary):
    sensor = _sensor(deps, boundary)
    _observe(deps, sensor, boundary, 5)
    identity.advance(120_000)
    _observe(deps, sensor, boundary, 2)

    assert observation_sum(deps, sensor, "proposals") == 7.0
    assert observation_sum(deps, sensor, "proposals", window_seconds=60) == 2.0


def test_clamp_bounds_the_variable(deps, boundary):
    sensor = _sensor(deps, boundary)
    variable = _variable(deps, boundary, sensorLabel="meter", clampMax=5)
    _observe(deps, sensor, boundary, 40)

    result = run_regulator_cycle(deps, boundary, "regulator")

    assert result.variable_values == {"activity": 5}
    state = get_current_state(deps, organism_id=variable)
    assert state.payload["value"] == 5
    assert state.payload["computedFrom"] == "observation-sum:meter:proposals"
    assert state.payload["computedAt"] == deps.identity.timestamp()


def test_unresolvable_sensor_is_skipped(deps, boundary):
    _sensor(deps, boundary, label="meter")
    variable = _variable(deps, boundary, sensorLabel="thermometer")

    result = run_regulator_cycle(deps, boundary, "regulator")

    assert result.skipped_variables == 1
    assert result.variable_updates == 0
    assert get_current_state(deps, organism_id=variable).sequence_number == 1


def test_sensors_outside_the_boundary_are_ignored(deps, boundary):
    elsewhere = create_organism(
        deps, content_type_id="text", payload={"content": "elsewhere"}, created_by="alice"
    ).organism.id
    outside = _sensor(deps, elsewhere)
    _variable(deps, boundary, sensorOrganismId=outside)

    result = run_regulator_cycle(deps, boundary, "regulator")

    assert result.skipped_variables == 1
