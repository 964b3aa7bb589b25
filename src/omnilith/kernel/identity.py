"""
Identity generation: every id and timestamp the kernel mints comes from here.

Operations never call uuid or the clock directly. Production wiring uses
UuidIdentityGenerator; tests use SequentialIdentityGenerator so ids and
timestamps are reproducible run to run.
"""
from __future__ import annotations

import itertools
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol


class IdentityGenerator(Protocol):
    def organism_id(self) -> str: ...

    def user_id(self) -> str: ...

    def state_id(self) -> str: ...

    def proposal_id(self) -> str: ...

    def event_id(self) -> str: ...

    def relationship_id(self) -> str: ...

    def timestamp(self) -> int: ...


def now_ms() -> int:
    """Wall clock in epoch milliseconds (UTC)."""
    return int(datetime.now(timezone.utc).timestamp() * 1000)


class UuidIdentityGenerator:
    """Collision-resistant ids: a short kind prefix plus a uuid4 hex."""

    def __init__(self, clock: Optional[Callable[[], int]] = None) -> None:
        self._clock = clock or now_ms

    @staticmethod
    def _mint(prefix: str) -> str:
        return f"{prefix}-{uuid.uuid4().hex}"

    def organism_id(self) -> str:
        return self._mint("org")

    def user_id(self) -> str:
        return self._mint("usr")

    def state_id(self) -> str:
        return self._mint("st")

    def proposal_id(self) -> str:
        return self._mint("prop")

    def event_id(self) -> str:
        return self._mint("evt")

    def relationship_id(self) -> str:
        return self._mint("rel")

    def timestamp(self) -> int:
        return self._clock()


class SequentialIdentityGenerator:
    """
    Deterministic ids: org-1, st-2, evt-3, ...

    One counter per instance, shared by every id kind, so ids never collide
    across kinds. Time stands still at `now` unless a clock is injected or
    advance() is called.

    Example:
        ids = SequentialIdentityGenerator(now=1_000)
        ids.organism_id()   # "org-1"
        ids.advance(500)
        ids.timestamp()     # 1500
    """

    def __init__(self, now: int = 0, clock: Optional[Callable[[], int]] = None) -> None:
        self.now = now
        self._clock = clock
        self._counter = itertools.count(1)

    def _next(self, prefix: str) -> str:
        return f"{prefix}-{next(self._counter)}"

    def organism_id(self) -> str:
        return self._next("org")

    def user_id(self) -> str:
        return self._next("usr")

    def state_id(self) -> str:
        return self._next("st")

    def proposal_id(self) -> str:
        return self._next("prop")

    def event_id(self) -> str:
        return self._next("evt")

    def relationship_id(self) -> str:
        return self._next("rel")

    def timestamp(self) -> int:
        if self._clock is not None:
            return self._clock()
        return self.now

    def advance(self, ms: int) -> int:
        """Move the frozen clock forward and return the new time."""
        self.now += ms
        return self.now
