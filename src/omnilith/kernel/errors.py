"""
Domain errors: typed failure conditions for kernel operations.

Each error names one specific domain violation that callers can match on.
These are not transport errors; adapters translate them for their own
callers (HTTP status codes, CLI exit codes) outside the kernel.
"""
from __future__ import annotations

from typing import Iterable, Optional


class KernelError(Exception):
    """Base class for every kernel domain error."""

    pass


class OrganismNotFoundError(KernelError):
    def __init__(self, organism_id: str) -> None:
        super().__init__(f"Organism not found: {organism_id}")
        self.organism_id = organism_id


class StateNotFoundError(KernelError):
    def __init__(self, state_id: str) -> None:
        super().__init__(f"State not found: {state_id}")
        self.state_id = state_id


class ContentTypeNotRegisteredError(KernelError):
    def __init__(self, content_type_id: str) -> None:
        super().__init__(f"Content type not registered: {content_type_id}")
        self.content_type_id = content_type_id


class ValidationFailedError(KernelError):
    """Payload rejected by its content type contract (or by input checks)."""

    def __init__(self, content_type_id: str, issues: Iterable[str]) -> None:
        self.content_type_id = content_type_id
        self.issues = list(issues)
        super().__init__(
            f"Validation failed for content type {content_type_id}: {', '.join(self.issues)}"
        )


class AccessDeniedError(KernelError):
    def __init__(
        self,
        user_id: Optional[str],
        action: str,
        organism_id: str,
        reason: Optional[str] = None,
    ) -> None:
        self.user_id = user_id
        self.action = action
        self.organism_id = organism_id
        self.reason = reason
        actor = user_id if user_id is not None else "guest"
        message = f"Access denied: user {actor} cannot {action} on organism {organism_id}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class CompositionError(KernelError):
    """Self-composition, second parent, cycle, or missing edge."""

    pass


class ProposalNotFoundError(KernelError):
    def __init__(self, proposal_id: str) -> None:
        super().__init__(f"Proposal not found: {proposal_id}")
        self.proposal_id = proposal_id


class ProposalAlreadyResolvedError(KernelError):
    def __init__(self, proposal_id: str, current_status: str) -> None:
        super().__init__(f"Proposal {proposal_id} already resolved with status: {current_status}")
        self.proposal_id = proposal_id
        self.current_status = current_status


class ConfigError(KernelError):
    """Malformed or unsupported configuration."""

    pass
