"""
KernelEngine: the single entry point for embedding callers.

The engine wires configuration, storage adapters, content types and
logging into one KernelDeps, then exposes every kernel operation by name.
Transports (HTTP handlers, CLIs, workers) sit outside and call dispatch();
they never assemble deps themselves.

    CLI ────┐
    API ────┼──> KernelEngine.dispatch() ──> kernel operation(deps, ...)
    Worker ─┘

Example:
    with KernelEngine.from_config("omnilith.toml") as engine:
        result = engine.dispatch(
            "create_organism", content_type_id="text", payload={"content": "hi"}, created_by="usr-1"
        )
        organism_id = result.data["result"]["organism"]["id"]
"""
from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import BaseModel

from .adapters.memory import build_memory_deps
from .adapters.sqlite import SqliteStore
from .config import KernelConfig, configure_logging, load_config
from .content_types import ContentTypeRegistry, default_registry
from .kernel import access, composition, ledger, observation, proposals, query, visibility
from .kernel.errors import KernelError
from .kernel.identity import IdentityGenerator, SequentialIdentityGenerator, UuidIdentityGenerator
from .kernel.ports import KernelDeps
from .regulator import run_regulator_cycle

logger = logging.getLogger(__name__)

Operation = Callable[..., Any]

OPERATIONS: Dict[str, Operation] = {
    "create_organism": ledger.create_organism,
    "append_state": ledger.append_state,
    "change_open_trunk": ledger.change_open_trunk,
    "get_current_state": ledger.get_current_state,
    "get_state_history": ledger.get_state_history,
    "compose_organism": composition.compose_organism,
    "decompose_organism": composition.decompose_organism,
    "query_parent": composition.query_parent,
    "query_children": composition.query_children,
    "check_access": access.check_access,
    "change_visibility": visibility.change_visibility,
    "open_proposal": proposals.open_proposal,
    "integrate_proposal": proposals.integrate_proposal,
    "decline_proposal": proposals.decline_proposal,
    "get_proposal": proposals.get_proposal,
    "list_proposals": proposals.list_proposals,
    "record_observation": observation.record_observation,
    "find_observations": observation.find_observations,
    "find_organisms_with_state": query.find_organisms_with_state,
    "get_vitality": query.get_vitality,
    "get_contributions": query.get_contributions,
    "find_proposals_by_user": query.find_proposals_by_user,
    "run_regulator_cycle": run_regulator_cycle,
}


@dataclass
class DispatchResult:
    """Result of a dispatch operation."""

    ok: bool
    data: Dict[str, Any] = field(default_factory=dict)
    error_kind: Optional[str] = None
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        result = {"ok": self.ok, "data": self.data}
        if not self.ok:
            result["error_kind"] = self.error_kind
            result["error_message"] = self.error_message
        return result


def to_data(value: Any) -> Any:
    """Plain JSON-ready data from kernel records and result dataclasses."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_data(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, (list, tuple)):
        return [to_data(v) for v in value]
    if isinstance(value, dict):
        return {k: to_data(v) for k, v in value.items()}
    return value


class KernelEngine:
    def __init__(
        self,
        config: Optional[KernelConfig] = None,
        content_types: Optional[ContentTypeRegistry] = None,
    ) -> None:
        self.config = config or KernelConfig(storage_backend="memory")
        self._content_types = content_types
        self._store: Optional[SqliteStore] = None
        self._deps: Optional[KernelDeps] = None
        configure_logging(self.config.log_level)

    @classmethod
    def from_config(cls, path: Union[str, Path, None] = None) -> "KernelEngine":
        return cls(load_config(path))

    def _identity(self) -> IdentityGenerator:
        if self.config.identity_generator == "sequential":
            return SequentialIdentityGenerator()
        return UuidIdentityGenerator()

    @property
    def deps(self) -> KernelDeps:
        """Lazily built dependency bundle."""
        if self._deps is None:
            content_types = self._content_types or default_registry()
            if self.config.storage_backend == "memory":
                self._deps = build_memory_deps(
                    content_types=content_types,
                    identity=self._identity(),
                    surfaces=self.config.enforce_surfacing,
                )
            else:
                self._store = SqliteStore(self.config.storage_path)
                self._deps = self._store.deps(
                    content_types=content_types,
                    identity=self._identity(),
                    enforce_surfacing=self.config.enforce_surfacing,
                )
            logger.info(
                "Kernel ready (%s backend, surfacing %s)",
                self.config.storage_backend,
                "enforced" if self.config.enforce_surfacing else "off",
            )
        return self._deps

    def list_operations(self) -> List[str]:
        return sorted(OPERATIONS)

    def dispatch(self, name: str, **inputs: Any) -> DispatchResult:
        """
        Run one kernel operation by name.

        Domain errors come back as a failed result naming the error class;
        anything else is a bug and propagates.
        """
        operation = OPERATIONS.get(name)
        if operation is None:
            return DispatchResult(
                ok=False,
                error_kind="UnknownOperation",
                error_message=f"Unknown operation: {name}",
            )
        try:
            value = operation(self.deps, **inputs)
        except KernelError as exc:
            return DispatchResult(ok=False, error_kind=type(exc).__name__, error_message=str(exc))
        return DispatchResult(ok=True, data={"result": to_data(value)})

    def close(self) -> None:
        if self._store is not None:
            self._store.close()
            self._store = None
        self._deps = None

    def __enter__(self) -> "KernelEngine":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
