"""
omnilith: versioned, composable organisms under proposal-based governance.

Public API re-exports from kernel/ (machinery) and content_types/ (vocabulary).
"""
from .kernel.errors import (
    AccessDeniedError,
    CompositionError,
    ContentTypeNotRegisteredError,
    KernelError,
    OrganismNotFoundError,
    ProposalAlreadyResolvedError,
    ProposalNotFoundError,
    ValidationFailedError,
)
from .kernel.identity import SequentialIdentityGenerator, UuidIdentityGenerator
from .kernel.ports import KernelDeps
from .content_types import ContentTypeRegistry, default_registry
from .config import KernelConfig, configure_logging, load_config
from .engine import DispatchResult, KernelEngine

__all__ = [
    # Errors
    "AccessDeniedError",
    "CompositionError",
    "ContentTypeNotRegisteredError",
    "KernelError",
    "OrganismNotFoundError",
    "ProposalAlreadyResolvedError",
    "ProposalNotFoundError",
    "ValidationFailedError",
    # Identity and deps
    "KernelDeps",
    "SequentialIdentityGenerator",
    "UuidIdentityGenerator",
    # Vocabulary
    "ContentTypeRegistry",
    "default_registry",
    # Engine
    "DispatchResult",
    "KernelConfig",
    "KernelEngine",
    "configure_logging",
    "load_config",
]
