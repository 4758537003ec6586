"""
Recovery — resolve and execute recovery for classified failures.

    from optimist import recovery as R

    executor = R.RecoveryExecutor(
        R.boundary_from(call_rpc),
        config=R.RecoveryConfig().with_retries(3).with_backoff(base_ms=1000, cap_ms=30_000),
        ledger=R.MemoryLedger(),
    )
    result = await executor.execute(context)

Actions per kind:

    PAYMENT_FAILED, STOCK_UPDATE_FAILED           → COMPENSATE
    ORDER_CREATION_FAILED                         → ROLLBACK
    NOTIFICATION_FAILED, DATABASE_ERROR, NETWORK  → RETRY (then COMPENSATE)
    SYSTEM_ERROR, AUTHENTICATION, VALIDATION      → MANUAL_INTERVENTION
"""

from __future__ import annotations

from optimist.recovery._types import (
    RecoveryAction,
    RecoveryState,
    TRANSITIONS,
    IllegalTransition,
    check_transition,
    RecoveryResult,
    RecoveryConfig,
    DEFAULT_CONFIG,
)
from optimist.recovery._resolve import STRATEGIES, resolve
from optimist.recovery._backoff import (
    DEFAULT_BASE_MS,
    DEFAULT_CAP_MS,
    backoff_delay,
    delays,
    combinators_backoff,
)
from optimist.recovery._boundary import (
    BoundaryRequest,
    BoundaryResponse,
    RecoveryBoundary,
    BoundaryFn,
    FunctionalBoundary,
    boundary_from,
)
from optimist.recovery._ledger import (
    LedgerState,
    LedgerRecord,
    LedgerError,
    CompensationLedger,
    MemoryLedger,
    FunctionalLedger,
    ledger_from,
)
from optimist.recovery._sqlalchemy import (
    LedgerBase,
    LedgerStatus,
    CompensationRow,
    create_ledger_schema,
    SQLAlchemyLedger,
)
from optimist.recovery._journal import (
    TOP_ERRORS_LIMIT,
    JournalEntry,
    ErrorMetrics,
    ErrorJournal,
)
from optimist.recovery._notify import (
    Notifier,
    LogNotifier,
    NotifyFn,
    FunctionalNotifier,
    notifier_from,
)
from optimist.recovery._execute import (
    RetryFailure,
    RecoveryExecutor,
    recover_from_error,
)

__all__ = (
    # Types
    "RecoveryAction",
    "RecoveryState",
    "TRANSITIONS",
    "IllegalTransition",
    "check_transition",
    "RecoveryResult",
    "RecoveryConfig",
    "DEFAULT_CONFIG",
    # Resolver
    "STRATEGIES",
    "resolve",
    # Backoff
    "DEFAULT_BASE_MS",
    "DEFAULT_CAP_MS",
    "backoff_delay",
    "delays",
    "combinators_backoff",
    # Boundary
    "BoundaryRequest",
    "BoundaryResponse",
    "RecoveryBoundary",
    "BoundaryFn",
    "FunctionalBoundary",
    "boundary_from",
    # Ledger
    "LedgerState",
    "LedgerRecord",
    "LedgerError",
    "CompensationLedger",
    "MemoryLedger",
    "FunctionalLedger",
    "ledger_from",
    "LedgerBase",
    "LedgerStatus",
    "CompensationRow",
    "create_ledger_schema",
    "SQLAlchemyLedger",
    # Journal
    "TOP_ERRORS_LIMIT",
    "JournalEntry",
    "ErrorMetrics",
    "ErrorJournal",
    # Notifications
    "Notifier",
    "LogNotifier",
    "NotifyFn",
    "FunctionalNotifier",
    "notifier_from",
    # Executor
    "RetryFailure",
    "RecoveryExecutor",
    "recover_from_error",
)
