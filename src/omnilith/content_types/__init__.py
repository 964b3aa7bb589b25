"""
Content types: the vocabulary the kernel validates and evaluates.

Each type is a ContentType holding a validator and, for policies, an
evaluator. The kernel looks them up by id through a ContentTypeRegistry
and never branches on type-specific rules.
"""
from .base import ContentType
from .cybernetics import SENSOR_METRICS, sensor, variable
from .policies import integration_policy, response_policy
from .registry import ContentTypeRegistry
from .spatial_map import spatial_map, surfaced_organism_ids
from .text import text

ALL_CONTENT_TYPES = (
    text,
    spatial_map,
    integration_policy,
    response_policy,
    sensor,
    variable,
)


def default_registry() -> ContentTypeRegistry:
    """A fresh registry holding every built-in content type."""
    return ContentTypeRegistry(ALL_CONTENT_TYPES)


__all__ = [
    "ALL_CONTENT_TYPES",
    "ContentType",
    "ContentTypeRegistry",
    "SENSOR_METRICS",
    "default_registry",
    "integration_policy",
    "response_policy",
    "sensor",
    "spatial_map",
    "surfaced_organism_ids",
    "text",
    "variable",
]
