"""
Spatial map: a curated 2D index of organisms.

Being placed on a map is what makes an organism surfaced. The map itself
counts as surfaced too, so a world map is visible without sitting on
another map.

Appends and proposals may add entries but never move or drop existing
ones; the validator enforces that against the previous payload.
"""
from __future__ import annotations

import math
from typing import Any, Dict, Iterable, List, Set

from ..kernel.contracts import ValidationContext
from .base import ContentType, as_object, is_number

DEFAULT_MIN_SEPARATION = 48


def _is_entry(value: Any) -> bool:
    entry = as_object(value)
    return (
        entry is not None
        and isinstance(entry.get("organismId"), str)
        and is_number(entry.get("x"))
        and is_number(entry.get("y"))
        and (entry.get("size") is None or is_number(entry.get("size")))
        and (entry.get("emphasis") is None or is_number(entry.get("emphasis")))
    )


def read_entries(payload: Any) -> List[Dict[str, Any]]:
    """Well-formed entries of a payload; anything else is ignored."""
    p = as_object(payload)
    if p is None or not isinstance(p.get("entries"), list):
        return []
    return [e for e in p["entries"] if _is_entry(e)]


def _same_placement(a: Dict[str, Any], b: Dict[str, Any]) -> bool:
    return all(a.get(k) == b.get(k) for k in ("x", "y", "size", "emphasis"))


def _check_entry(i: int, entry: Any, p: Dict[str, Any], seen: Set[str]) -> List[str]:
    if as_object(entry) is None:
        return [f"entries[{i}] must be an object"]

    issues: List[str] = []
    organism_id = entry.get("organismId")
    if not isinstance(organism_id, str) or not organism_id:
        issues.append(f"entries[{i}].organismId must be a non-empty string")
    elif organism_id in seen:
        issues.append(f"entries[{i}].organismId is a duplicate: {organism_id}")
    else:
        seen.add(organism_id)

    x, y = entry.get("x"), entry.get("y")
    if not is_number(x):
        issues.append(f"entries[{i}].x must be a number")
    elif is_number(p.get("width")) and not 0 <= x <= p["width"]:
        issues.append(f"entries[{i}].x must be between 0 and width")
    if not is_number(y):
        issues.append(f"entries[{i}].y must be a number")
    elif is_number(p.get("height")) and not 0 <= y <= p["height"]:
        issues.append(f"entries[{i}].y must be between 0 and height")

    size = entry.get("size")
    if size is not None and (not is_number(size) or size <= 0):
        issues.append(f"entries[{i}].size must be a positive number when provided")
    emphasis = entry.get("emphasis")
    if emphasis is not None and (not is_number(emphasis) or not 0 <= emphasis <= 1):
        issues.append(f"entries[{i}].emphasis must be a number between 0 and 1 when provided")
    return issues


def _check_separation(entries: List[Any], min_separation: float) -> List[str]:
    issues: List[str] = []
    for i, a in enumerate(entries):
        if not _is_entry(a):
            continue
        for j in range(i + 1, len(entries)):
            b = entries[j]
            if not _is_entry(b):
                continue
            distance = math.hypot(a["x"] - b["x"], a["y"] - b["y"])
            required = min_separation * max(a.get("size") or 1, b.get("size") or 1)
            if distance < required:
                issues.append(f"entries[{i}] overlaps entries[{j}]")
    return issues


def _check_transition(entries: List[Any], previous_payload: Any) -> List[str]:
    previous = read_entries(previous_payload)
    if not previous:
        return []
    next_by_id = {e["organismId"]: e for e in entries if _is_entry(e)}
    issues: List[str] = []
    for prev in previous:
        current = next_by_id.get(prev["organismId"])
        if current is None:
            issues.append(f"existing entry removed: {prev['organismId']}")
        elif not _same_placement(prev, current):
            issues.append(f"existing entry modified: {prev['organismId']}")
    return issues


def validate_spatial_map(payload: Any, context: ValidationContext) -> List[str]:
    p = as_object(payload)
    if p is None:
        return ["Payload must be an object"]

    issues: List[str] = []
    entries = p.get("entries")
    if not isinstance(entries, list):
        issues.append("entries must be an array")
    else:
        seen: Set[str] = set()
        for i, entry in enumerate(entries):
            issues.extend(_check_entry(i, entry, p, seen))

        min_separation = p.get("minSeparation")
        separation = max(0, min_separation) if is_number(min_separation) else DEFAULT_MIN_SEPARATION
        issues.extend(_check_separation(entries, separation))
        issues.extend(_check_transition(entries, context.previous_payload))

    if not is_number(p.get("width")) or p["width"] <= 0:
        issues.append("width must be a positive number")
    if not is_number(p.get("height")) or p["height"] <= 0:
        issues.append("height must be a positive number")
    if "minSeparation" in p and (not is_number(p["minSeparation"]) or p["minSeparation"] < 0):
        issues.append("minSeparation must be a non-negative number when provided")
    return issues


def surfaced_organism_ids(map_organism_id: str, payload: Any) -> Iterable[str]:
    """The map itself plus every organism placed on it."""
    yield map_organism_id
    for entry in read_entries(payload):
        yield entry["organismId"]


spatial_map = ContentType(
    type_id="spatial-map",
    validator=validate_spatial_map,
    description="Curated 2D placement of organisms",
)
