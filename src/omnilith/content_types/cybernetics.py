"""
Sensor and variable content types: the observing half of a feedback loop.

A sensor names what it watches. A variable holds a value computed from a
sensor's observations, plus the thresholds a response policy reacts to.
"""
from __future__ import annotations

from typing import Any, List

from ..kernel.contracts import ValidationContext
from .base import ContentType, as_object, is_non_empty_string, is_number

SENSOR_METRICS = ("state-changes", "proposals", "github-issues")


def validate_sensor(payload: Any, _context: ValidationContext) -> List[str]:
    p = as_object(payload)
    if p is None:
        return ["Payload must be an object"]

    issues: List[str] = []
    if not is_non_empty_string(p.get("label")):
        issues.append("label must be a non-empty string")
    if not is_non_empty_string(p.get("targetOrganismId")):
        issues.append("targetOrganismId must be a non-empty string")
    if p.get("metric") not in SENSOR_METRICS:
        issues.append(f"metric must be one of: {', '.join(SENSOR_METRICS)}")

    readings = p.get("readings")
    if not isinstance(readings, list):
        issues.append("readings must be an array")
    else:
        for i, reading in enumerate(readings):
            if as_object(reading) is None:
                issues.append(f"readings[{i}] must be an object")
                continue
            if not is_number(reading.get("value")):
                issues.append(f"readings[{i}].value must be a number")
            if not is_number(reading.get("sampledAt")):
                issues.append(f"readings[{i}].sampledAt must be a number")
    return issues


def _validate_computation(computation: Any) -> List[str]:
    c = as_object(computation)
    if c is None:
        return ["computation must be an object"]

    issues: List[str] = []
    if c.get("mode") != "observation-sum":
        issues.append("computation.mode must be 'observation-sum'")
    for key in ("sensorLabel", "sensorOrganismId"):
        if key in c and not is_non_empty_string(c[key]):
            issues.append(f"computation.{key} must be a non-empty string when provided")
    if not is_non_empty_string(c.get("sensorLabel")) and not is_non_empty_string(c.get("sensorOrganismId")):
        issues.append("computation must include sensorLabel or sensorOrganismId")
    if not is_non_empty_string(c.get("metric")):
        issues.append("computation.metric must be a non-empty string")
    for key in ("windowSeconds", "clampMin", "clampMax"):
        if key in c and not is_number(c[key]):
            issues.append(f"computation.{key} must be a number when provided")
    return issues


def validate_variable(payload: Any, _context: ValidationContext) -> List[str]:
    p = as_object(payload)
    if p is None:
        return ["Payload must be an object"]

    issues: List[str] = []
    if not is_non_empty_string(p.get("label")):
        issues.append("label must be a non-empty string")
    if not is_number(p.get("value")):
        issues.append("value must be a number")
    if "unit" in p and not isinstance(p["unit"], str):
        issues.append("unit must be a string")

    if "thresholds" in p:
        thresholds = as_object(p["thresholds"])
        if thresholds is None:
            issues.append("thresholds must be an object")
        else:
            for key in ("low", "critical"):
                if key in thresholds and not is_number(thresholds[key]):
                    issues.append(f"thresholds.{key} must be a number")

    if "computation" in p:
        issues.extend(_validate_computation(p["computation"]))
    if "computedFrom" in p and not isinstance(p["computedFrom"], str):
        issues.append("computedFrom must be a string")
    if not is_number(p.get("computedAt")):
        issues.append("computedAt must be a number")
    return issues


sensor = ContentType(
    type_id="sensor",
    validator=validate_sensor,
    description="Watches a target organism for one metric",
)

variable = ContentType(
    type_id="variable",
    validator=validate_variable,
    description="A value computed from observations",
)
