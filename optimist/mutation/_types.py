"""
Mutation types — phases, projector, outcomes.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum, auto

from kungfu import Option, Result

from optimist.broadcast import SettleReport
from optimist.cache import CacheKey
from optimist.errors import ErrorContext, ErrorKind
from optimist.recovery import RecoveryAction, RecoveryResult

# ═══════════════════════════════════════════════════════════════════════════════
# Phase — Per-key Lifecycle
# ═══════════════════════════════════════════════════════════════════════════════


class MutationPhase(Enum):
    """
    Per-key mutation phase.

        IDLE → SNAPSHOTTING → OPTIMISTICALLY_APPLIED ─┬─► COMMITTING ──► IDLE
                                                      └─► ROLLING_BACK ─► IDLE
    """

    IDLE = auto()
    SNAPSHOTTING = auto()
    OPTIMISTICALLY_APPLIED = auto()
    COMMITTING = auto()
    ROLLING_BACK = auto()


type Projector[T] = Callable[[Option[T]], T]
"""Pure function: current cached value (Nothing if absent) → optimistic value."""


# ═══════════════════════════════════════════════════════════════════════════════
# Outcomes
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class MutationCommitted[T]:
    """Server confirmed; `value` is the authoritative result now in the cache."""

    key: CacheKey
    value: T
    version: int
    settle: SettleReport | None = None

    @property
    def success(self) -> bool:
        return True

    @property
    def recovered(self) -> bool:
        return False


@dataclass(frozen=True, slots=True)
class MutationRolledBack:
    """
    Remote call failed; the optimistic value was undone.

    rolled_back: False when a newer commit landed and the snapshot was stale.
    recovery:    background task resolving to the RecoveryResult
                 (None when no recovery was scheduled).
    """

    key: CacheKey
    error_kind: ErrorKind
    action: RecoveryAction
    message: str
    user_message: str
    context: ErrorContext
    rolled_back: bool = True
    recovery: asyncio.Task[RecoveryResult] | None = field(default=None, compare=False)

    @property
    def success(self) -> bool:
        return False

    @property
    def recovered(self) -> bool:
        return False

    async def recovery_result(self) -> RecoveryResult | None:
        """Wait for the background recovery (None if none was scheduled)."""
        if self.recovery is None:
            return None
        return await self.recovery


type MutationOutcome[T] = Result[MutationCommitted[T], MutationRolledBack]


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "MutationPhase",
    "Projector",
    "MutationCommitted",
    "MutationRolledBack",
    "MutationOutcome",
)
