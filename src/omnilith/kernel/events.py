from __future__ import annotations

from typing import Any, Dict, Optional

from .ports import KernelDeps
from .schema import DomainEvent, EventType


def emit(
    deps: KernelDeps,
    type: EventType,
    organism_id: str,
    actor_id: str,
    payload: Optional[Dict[str, Any]] = None,
    occurred_at: Optional[int] = None,
) -> DomainEvent:
    """Mint, publish and return one domain event."""
    event = DomainEvent(
        id=deps.identity.event_id(),
        type=type,
        organism_id=organism_id,
        actor_id=actor_id,
        occurred_at=occurred_at if occurred_at is not None else deps.identity.timestamp(),
        payload=payload or {},
    )
    deps.events.publish(event)
    return event
