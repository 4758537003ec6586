"""
Recovery strategy resolver — ErrorKind → RecoveryAction.
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

from optimist.errors import ErrorKind
from optimist.recovery._types import RecoveryAction, RecoveryConfig

STRATEGIES: Mapping[ErrorKind, RecoveryAction] = MappingProxyType(
    {
        ErrorKind.PAYMENT_FAILED: RecoveryAction.COMPENSATE,
        ErrorKind.STOCK_UPDATE_FAILED: RecoveryAction.COMPENSATE,
        ErrorKind.ORDER_CREATION_FAILED: RecoveryAction.ROLLBACK,
        ErrorKind.NOTIFICATION_FAILED: RecoveryAction.RETRY,
        ErrorKind.DATABASE_ERROR: RecoveryAction.RETRY,
        ErrorKind.NETWORK_ERROR: RecoveryAction.RETRY,
        ErrorKind.SYSTEM_ERROR: RecoveryAction.MANUAL_INTERVENTION,
        # Fail fast: a human (or the user) has to act.
        ErrorKind.AUTHENTICATION_REQUIRED: RecoveryAction.MANUAL_INTERVENTION,
        ErrorKind.VALIDATION_FAILED: RecoveryAction.MANUAL_INTERVENTION,
    }
)


def resolve(kind: ErrorKind, config: RecoveryConfig | None = None) -> RecoveryAction:
    """
    Pick the recovery action for a kind.

    Config overrides win over the table. With auto-recovery disabled
    everything except IGNORE becomes MANUAL_INTERVENTION.

    Example:
        resolve(ErrorKind.NETWORK_ERROR)                       # RETRY
        resolve(ErrorKind.NETWORK_ERROR, config.with_auto_recovery(False))
        # MANUAL_INTERVENTION
    """
    action = STRATEGIES.get(kind, RecoveryAction.MANUAL_INTERVENTION)
    if config is None:
        return action

    action = config.overrides.get(kind, action)
    if not config.enable_auto_recovery and action is not RecoveryAction.IGNORE:
        return RecoveryAction.MANUAL_INTERVENTION
    return action


__all__ = ("STRATEGIES", "resolve")
