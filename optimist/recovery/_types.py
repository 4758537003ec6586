"""
Recovery types — actions, executor states, results, policy.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import timedelta
from enum import Enum, auto
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from optimist.errors import ErrorKind

if TYPE_CHECKING:
    from optimist.config import OptimistSettings

# ═══════════════════════════════════════════════════════════════════════════════
# RecoveryAction
# ═══════════════════════════════════════════════════════════════════════════════


class RecoveryAction(Enum):
    """What to do about a failure. Values are the wire values."""

    RETRY = "retry"
    ROLLBACK = "rollback"
    COMPENSATE = "compensate"
    MANUAL_INTERVENTION = "manual_intervention"
    IGNORE = "ignore"


# ═══════════════════════════════════════════════════════════════════════════════
# RecoveryState — Executor State Machine
# ═══════════════════════════════════════════════════════════════════════════════


class RecoveryState(Enum):
    """
    Executor states.

        ATTEMPTING ─┬─► RETRYING ─┬─► RECOVERED
                    │             └─► ESCALATING ─┬─► RECOVERED
                    ├─► ESCALATING ───────────────┤
                    ├─► FAILED                    └─► FAILED
                    └─► RECOVERED
    """

    ATTEMPTING = auto()
    RETRYING = auto()
    ESCALATING = auto()
    RECOVERED = auto()
    FAILED = auto()


TRANSITIONS: Mapping[RecoveryState, frozenset[RecoveryState]] = MappingProxyType(
    {
        RecoveryState.ATTEMPTING: frozenset(
            {
                RecoveryState.RETRYING,
                RecoveryState.ESCALATING,
                RecoveryState.FAILED,
                RecoveryState.RECOVERED,
            }
        ),
        RecoveryState.RETRYING: frozenset(
            {RecoveryState.RECOVERED, RecoveryState.ESCALATING}
        ),
        RecoveryState.ESCALATING: frozenset(
            {RecoveryState.RECOVERED, RecoveryState.FAILED}
        ),
        RecoveryState.RECOVERED: frozenset(),
        RecoveryState.FAILED: frozenset(),
    }
)


class IllegalTransition(RuntimeError):
    """Executor attempted a transition the state machine forbids."""

    def __init__(self, source: RecoveryState, target: RecoveryState) -> None:
        super().__init__(f"Illegal recovery transition {source.name} → {target.name}")
        self.source = source
        self.target = target


def check_transition(source: RecoveryState, target: RecoveryState) -> RecoveryState:
    if target not in TRANSITIONS[source]:
        raise IllegalTransition(source, target)
    return target


# ═══════════════════════════════════════════════════════════════════════════════
# RecoveryResult
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class RecoveryResult:
    """
    Terminal outcome of one recovery decision.

    compensation_applied: a compensating/rollback action ran successfully
                          exactly once for this context.
    states:               executor state trace, ATTEMPTING first.
    duplicate:            served from the compensation ledger, no new call.
    """

    success: bool
    action: RecoveryAction
    attempts: int
    recovered: bool
    compensation_applied: bool
    message: str
    error: str | None = None
    states: tuple[RecoveryState, ...] = ()
    duplicate: bool = False

    def __post_init__(self) -> None:
        if self.compensation_applied and not self.success:
            raise ValueError("compensation_applied requires success")

    @property
    def final_state(self) -> RecoveryState | None:
        return self.states[-1] if self.states else None

    def to_mapping(self) -> dict[str, Any]:
        """Wire form (snake_case, enum values as strings)."""
        return {
            "success": self.success,
            "action": self.action.value,
            "attempts": self.attempts,
            "recovered": self.recovered,
            "compensation_applied": self.compensation_applied,
            "message": self.message,
            "error": self.error,
        }

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> RecoveryResult:
        success = bool(row.get("success", False))
        return cls(
            success=success,
            action=RecoveryAction(row.get("action", RecoveryAction.MANUAL_INTERVENTION.value)),
            attempts=int(row.get("attempts", 0)),
            recovered=bool(row.get("recovered", False)),
            compensation_applied=success and bool(row.get("compensation_applied", False)),
            message=str(row.get("message", "")),
            error=row.get("error") or None,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# RecoveryConfig — Immutable Policy
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class RecoveryConfig:
    """
    Recovery policy.

    Fluent builder — each method returns a new config.

    Example:
        config = (
            RecoveryConfig()
            .with_retries(5)
            .with_backoff(base_ms=200, cap_ms=5_000)
            .with_override(ErrorKind.NOTIFICATION_FAILED, RecoveryAction.IGNORE)
        )
    """

    max_retry_attempts: int = 3
    base_delay_ms: int = 1000
    cap_ms: int = 30_000
    enable_auto_recovery: bool = True
    notify_on_failure: bool = True
    log_all_attempts: bool = True
    ledger_ttl: timedelta | None = timedelta(days=1)
    overrides: Mapping[ErrorKind, RecoveryAction] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def __post_init__(self) -> None:
        if self.max_retry_attempts < 0:
            raise ValueError("max_retry_attempts must be >= 0")
        if self.base_delay_ms < 0 or self.cap_ms < 0:
            raise ValueError("delays must be >= 0")

    def with_retries(self, max_attempts: int) -> RecoveryConfig:
        return replace(self, max_retry_attempts=max_attempts)

    def with_backoff(self, *, base_ms: int, cap_ms: int | None = None) -> RecoveryConfig:
        return replace(
            self,
            base_delay_ms=base_ms,
            cap_ms=self.cap_ms if cap_ms is None else cap_ms,
        )

    def with_override(self, kind: ErrorKind, action: RecoveryAction) -> RecoveryConfig:
        """Replace the table action for one kind."""
        return replace(self, overrides=MappingProxyType({**self.overrides, kind: action}))

    def with_notifications(self, enabled: bool = True) -> RecoveryConfig:
        return replace(self, notify_on_failure=enabled)

    def with_auto_recovery(self, enabled: bool = True) -> RecoveryConfig:
        return replace(self, enable_auto_recovery=enabled)

    def with_ledger_ttl(self, *, seconds: float | None) -> RecoveryConfig:
        return replace(
            self,
            ledger_ttl=timedelta(seconds=seconds) if seconds else None,
        )

    @classmethod
    def from_settings(cls, settings: OptimistSettings) -> RecoveryConfig:
        return cls(
            max_retry_attempts=settings.max_retry_attempts,
            base_delay_ms=settings.base_delay_ms,
            cap_ms=settings.cap_ms,
            enable_auto_recovery=settings.enable_auto_recovery,
            notify_on_failure=settings.notify_on_failure,
            log_all_attempts=settings.log_all_attempts,
            ledger_ttl=(
                timedelta(seconds=settings.ledger_ttl_seconds)
                if settings.ledger_ttl_seconds
                else None
            ),
        )


DEFAULT_CONFIG = RecoveryConfig()


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "RecoveryAction",
    "RecoveryState",
    "TRANSITIONS",
    "IllegalTransition",
    "check_transition",
    "RecoveryResult",
    "RecoveryConfig",
    "DEFAULT_CONFIG",
)
