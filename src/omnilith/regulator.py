"""
Regulator: one pass of a cybernetic loop inside a boundary organism.

A boundary becomes self-regulating purely by composition. Put a sensor, a
variable and a response policy inside it, and each cycle:

    1. recomputes every managed variable from its sibling sensor's
       observations (observation-sum, optional window and clamp)
    2. copies each variable's value into the response policies that
       watch it, so their evaluators can decide without reading anything

Both steps are ordinary append_state calls made by the runner, so the
children must be open-trunk and the runner must be able to see them.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .content_types import response_policy, sensor, variable
from .content_types.base import as_object, is_non_empty_string, is_number
from .kernel.composition import sort_children
from .kernel.ledger import append_state
from .kernel.observation import find_observations
from .kernel.ports import KernelDeps
from .kernel.schema import OrganismState

logger = logging.getLogger(__name__)


@dataclass
class RegulatorCycleResult:
    boundary_id: str
    variable_updates: int = 0
    response_policy_updates: int = 0
    skipped_variables: int = 0
    skipped_closed_children: int = 0
    variable_values: Dict[str, float] = field(default_factory=dict)


def _clamp(value: float, low: Optional[float], high: Optional[float]) -> float:
    if low is not None:
        value = max(low, value)
    if high is not None:
        value = min(high, value)
    return value


def observation_sum(
    deps: KernelDeps,
    sensor_id: str,
    metric: str,
    window_seconds: Optional[float] = None,
) -> float:
    """Sum of observed values for one metric on a sensor."""
    since = None
    if window_seconds is not None:
        since = deps.identity.timestamp() - int(window_seconds * 1000)
    return float(
        sum(
            e.payload["value"]
            for e in find_observations(deps, sensor_id, metric=metric, since=since)
            if is_number(e.payload.get("value"))
        )
    )


def _is_open(deps: KernelDeps, organism_id: str) -> bool:
    organism = deps.organisms.find_by_id(organism_id)
    return organism is not None and organism.open_trunk


def run_regulator_cycle(deps: KernelDeps, boundary_id: str, runner_id: str) -> RegulatorCycleResult:
    result = RegulatorCycleResult(boundary_id=boundary_id)

    children: List[OrganismState] = []
    for record in sort_children(deps.compositions.find_children(boundary_id)):
        state = deps.states.find_current_by_organism_id(record.child_id)
        if state is not None:
            children.append(state)

    sensors_by_label: Dict[str, str] = {}
    sensor_ids = set()
    for state in children:
        if state.content_type_id == sensor.type_id:
            sensor_ids.add(state.organism_id)
            label = (as_object(state.payload) or {}).get("label")
            if is_non_empty_string(label):
                sensors_by_label[label] = state.organism_id

    for state in children:
        if state.content_type_id != variable.type_id:
            continue
        payload: Dict[str, Any] = dict(state.payload)
        computation = as_object(payload.get("computation"))
        if computation is None or computation.get("mode") != "observation-sum":
            result.variable_values[payload["label"]] = payload["value"]
            continue

        sensor_id = computation.get("sensorOrganismId")
        if sensor_id not in sensor_ids:
            sensor_id = sensors_by_label.get(computation.get("sensorLabel"))
        if sensor_id is None:
            result.skipped_variables += 1
            result.variable_values[payload["label"]] = payload["value"]
            continue

        value = _clamp(
            observation_sum(deps, sensor_id, computation["metric"], computation.get("windowSeconds")),
            computation.get("clampMin"),
            computation.get("clampMax"),
        )
        result.variable_values[payload["label"]] = value
        if value == payload["value"]:
            continue
        if not _is_open(deps, state.organism_id):
            result.skipped_closed_children += 1
            continue

        source = computation.get("sensorLabel") or sensor_id
        payload.update(
            value=value,
            computedAt=deps.identity.timestamp(),
            computedFrom=f"observation-sum:{source}:{computation['metric']}",
        )
        append_state(
            deps,
            organism_id=state.organism_id,
            content_type_id=variable.type_id,
            payload=payload,
            appended_by=runner_id,
        )
        result.variable_updates += 1

    for state in children:
        if state.content_type_id != response_policy.type_id:
            continue
        policy: Dict[str, Any] = dict(state.payload)
        value = result.variable_values.get(policy.get("variableLabel"))
        if value is None or policy.get("currentVariableValue") == value:
            continue
        if not _is_open(deps, state.organism_id):
            result.skipped_closed_children += 1
            continue
        policy["currentVariableValue"] = value
        append_state(
            deps,
            organism_id=state.organism_id,
            content_type_id=response_policy.type_id,
            payload=policy,
            appended_by=runner_id,
        )
        result.response_policy_updates += 1

    logger.info(
        "Regulator cycle on %s: %d variable update(s), %d policy update(s)",
        boundary_id,
        result.variable_updates,
        result.response_policy_updates,
    )
    return result
