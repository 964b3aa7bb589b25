"""
Observation: the primitive that feedback loops are built from.

An observation is an event recorded on a sensor organism about a target
organism. It is part of the event stream, not the sensor's state history.
Loops (sensor -> variable -> response policy) need nothing more from the
kernel than this and composition.
"""
from __future__ import annotations

import logging
import math
from numbers import Real
from typing import Any, List, Optional

from .access import Action, check_access_or_raise
from .errors import ValidationFailedError
from .events import emit
from .ports import KernelDeps
from .schema import DomainEvent, EventType

logger = logging.getLogger(__name__)

OBSERVATION_TYPE_ID = "observation"


def _is_finite_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value)


def record_observation(
    deps: KernelDeps,
    *,
    organism_id: str,
    target_organism_id: str,
    metric: str,
    value: float,
    sampled_at: int,
    observed_by: str,
) -> DomainEvent:
    issues: List[str] = []
    if not isinstance(metric, str) or not metric.strip():
        issues.append("metric must be a non-empty string")
    if not _is_finite_number(value):
        issues.append("value must be a finite number")
    if not _is_finite_number(sampled_at):
        issues.append("sampledAt must be a finite number")
    if issues:
        raise ValidationFailedError(OBSERVATION_TYPE_ID, issues)

    if not deps.organisms.exists(organism_id):
        raise ValidationFailedError(OBSERVATION_TYPE_ID, ["organismId must reference an existing organism"])

    check_access_or_raise(deps, observed_by, organism_id, Action.RECORD_OBSERVATION)
    # An observer cannot measure what it cannot see
    check_access_or_raise(deps, observed_by, target_organism_id, Action.VIEW)

    event = emit(
        deps,
        EventType.ORGANISM_OBSERVED,
        organism_id,
        observed_by,
        {
            "targetOrganismId": target_organism_id,
            "metric": metric,
            "value": value,
            "sampledAt": sampled_at,
        },
    )
    logger.info("Observed %s=%s on %s via sensor %s", metric, value, target_organism_id, organism_id)
    return event


def find_observations(
    deps: KernelDeps,
    sensor_id: str,
    *,
    metric: Optional[str] = None,
    since: Optional[int] = None,
) -> List[DomainEvent]:
    """Observations recorded on a sensor, oldest first."""
    if deps.event_log is None:
        raise RuntimeError("No event log configured")
    events = deps.event_log.find_by_organism_id(sensor_id, EventType.ORGANISM_OBSERVED)
    selected = [
        e
        for e in events
        if (metric is None or e.payload.get("metric") == metric)
        and (since is None or e.payload.get("sampledAt", e.occurred_at) >= since)
    ]
    return sorted(selected, key=lambda e: e.occurred_at)
