from __future__ import annotations

import logging
from typing import Union

from .access import Action, check_access_or_raise
from .errors import OrganismNotFoundError
from .events import emit
from .ports import KernelDeps
from .schema import EventType, VisibilityLevel, VisibilityRecord

logger = logging.getLogger(__name__)


def change_visibility(
    deps: KernelDeps,
    *,
    organism_id: str,
    level: Union[VisibilityLevel, str],
    changed_by: str,
    enforce_access: bool = True,
) -> VisibilityRecord:
    """
    Set an organism's configured visibility level.

    The configured level only takes effect while the organism is surfaced.
    """
    level = VisibilityLevel(level)
    if not deps.organisms.exists(organism_id):
        raise OrganismNotFoundError(organism_id)

    if enforce_access:
        check_access_or_raise(deps, changed_by, organism_id, Action.CHANGE_VISIBILITY)

    now = deps.identity.timestamp()
    record = VisibilityRecord(organism_id=organism_id, level=level, updated_at=now)
    deps.visibility.save(record)

    emit(deps, EventType.VISIBILITY_CHANGED, organism_id, changed_by, {"level": level.value}, occurred_at=now)
    logger.info("Visibility of %s set to %s by %s", organism_id, level.value, changed_by)
    return record
