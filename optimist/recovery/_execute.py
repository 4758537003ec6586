"""
Recovery executor — runs the resolved action for one ErrorContext.

    ErrorContext
         │
         ▼
    resolve(kind) ──► RETRY ──────► combinators.retry(op) ──► RECOVERED
         │                                   │ exhausted / non-retryable
         │                                   ▼
         ├──────────► COMPENSATE ─► ledger.claim ─► boundary.recover ─► RECOVERED | FAILED
         ├──────────► ROLLBACK ───┘
         ├──────────► MANUAL_INTERVENTION ─► notify ─► FAILED
         └──────────► IGNORE ─► RECOVERED
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any

from combinators import RetryPolicy, lift as L, retry as retry_lcr
from kungfu import Ok, Error, LazyCoroResult, Result
from loguru import logger

from optimist._types import RemoteOp
from optimist.errors import ErrorContext, ErrorKind, classify, is_retryable, message_of
from optimist.recovery._backoff import backoff_delay, combinators_backoff
from optimist.recovery._boundary import BoundaryRequest, RecoveryBoundary
from optimist.recovery._journal import ErrorJournal
from optimist.recovery._ledger import CompensationLedger, MemoryLedger
from optimist.recovery._notify import LogNotifier, Notifier
from optimist.recovery._resolve import resolve
from optimist.recovery._types import (
    DEFAULT_CONFIG,
    RecoveryAction,
    RecoveryConfig,
    RecoveryResult,
    RecoveryState,
    check_transition,
)

# ═══════════════════════════════════════════════════════════════════════════════
# Internals
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class RetryFailure:
    """A failed retry attempt, classified."""

    kind: ErrorKind
    message: str


class _Trace:
    """State trace; every step is checked against the transition table."""

    __slots__ = ("_states",)

    def __init__(self) -> None:
        self._states = [RecoveryState.ATTEMPTING]

    def go(self, target: RecoveryState) -> None:
        self._states.append(check_transition(self._states[-1], target))

    @property
    def states(self) -> tuple[RecoveryState, ...]:
        return tuple(self._states)


# ═══════════════════════════════════════════════════════════════════════════════
# RecoveryExecutor
# ═══════════════════════════════════════════════════════════════════════════════


class RecoveryExecutor:
    """
    Executes recovery decisions.

    Example:
        executor = RecoveryExecutor(
            boundary_from(call_rpc),
            ledger=SQLAlchemyLedger(session_factory),
            journal=ErrorJournal(),
        )
        executor.register("send_notification", resend)

        result = await executor.execute(context)
    """

    def __init__(
        self,
        boundary: RecoveryBoundary,
        *,
        config: RecoveryConfig = DEFAULT_CONFIG,
        ledger: CompensationLedger | None = None,
        journal: ErrorJournal | None = None,
        notifier: Notifier | None = None,
        operations: Mapping[str, RemoteOp[Any]] | None = None,
    ) -> None:
        self._boundary = boundary
        self._config = config
        self._ledger: CompensationLedger = ledger if ledger is not None else MemoryLedger()
        self._notifier: Notifier = notifier if notifier is not None else LogNotifier()
        self._operations: dict[str, RemoteOp[Any]] = dict(operations or {})
        self.journal = journal if journal is not None else ErrorJournal()

    @property
    def config(self) -> RecoveryConfig:
        return self._config

    def register(self, operation: str, op: RemoteOp[Any]) -> None:
        """Operation re-run by RETRY when no explicit `retry=` is given."""
        self._operations[operation] = op

    async def execute(
        self,
        context: ErrorContext,
        config: RecoveryConfig | None = None,
        *,
        retry: RemoteOp[Any] | None = None,
    ) -> RecoveryResult:
        config = config or self._config
        action = resolve(context.error_kind, config)
        trace = _Trace()

        logger.info(
            f"Starting recovery for {context.error_kind.value} in {context.operation}: {action.value}"
        )

        match action:
            case RecoveryAction.RETRY:
                result = await self._retry(context, config, trace, retry)
            case RecoveryAction.COMPENSATE | RecoveryAction.ROLLBACK:
                trace.go(RecoveryState.ESCALATING)
                result = await self._compensate(context, config, trace, action)
            case RecoveryAction.IGNORE:
                trace.go(RecoveryState.RECOVERED)
                result = RecoveryResult(
                    success=True,
                    action=RecoveryAction.IGNORE,
                    attempts=0,
                    recovered=True,
                    compensation_applied=False,
                    message=f"Ignored {context.error_kind.value} in {context.operation}",
                    states=trace.states,
                )
            case _:
                result = await self._manual(context, config, trace)

        self.journal.record(context, result)
        logger.info(
            f"Recovery for {context.operation} finished: action={result.action.value} "
            f"success={result.success} recovered={result.recovered} "
            f"compensation_applied={result.compensation_applied}"
        )
        return result

    # ───────────────────────────────────────────────────────────────────────────
    # RETRY
    # ───────────────────────────────────────────────────────────────────────────

    async def _retry(
        self,
        context: ErrorContext,
        config: RecoveryConfig,
        trace: _Trace,
        explicit: RemoteOp[Any] | None,
    ) -> RecoveryResult:
        op = explicit or self._operations.get(context.operation)
        budget = config.max_retry_attempts - context.retry_count

        if op is None or budget <= 0:
            reason = "no retry operation" if op is None else "retry budget exhausted"
            logger.warning(f"Cannot retry {context.operation} ({reason}), escalating")
            trace.go(RecoveryState.ESCALATING)
            return await self._compensate(context, config, trace, RecoveryAction.COMPENSATE)

        trace.go(RecoveryState.RETRYING)
        level = "INFO" if config.log_all_attempts else "DEBUG"
        attempts = 0

        async def attempt() -> Result[Any, RetryFailure]:
            nonlocal attempts
            attempts += 1
            logger.log(
                level,
                f"Retry attempt {attempts}/{budget} for {context.operation} "
                f"(global attempt {context.retry_count + attempts})",
            )
            outcome = await L.catching_async(
                op,
                on_error=lambda e: RetryFailure(classify(e, context.operation), message_of(e)),
            )
            if isinstance(outcome, Error):
                logger.log(level, f"Retry attempt {attempts} failed: {outcome.error.message}")
            return outcome

        first_delay = backoff_delay(context.retry_count + 1, config.base_delay_ms, config.cap_ms)
        if first_delay > 0:
            await asyncio.sleep(first_delay / 1000)

        policy: RetryPolicy[RetryFailure] = RetryPolicy(
            times=budget,
            backoff=combinators_backoff(config, offset=context.retry_count),
            retry_on=lambda failure: is_retryable(failure.kind),
        )

        match await retry_lcr(LazyCoroResult(attempt), policy=policy):
            case Ok(_):
                trace.go(RecoveryState.RECOVERED)
                return RecoveryResult(
                    success=True,
                    action=RecoveryAction.RETRY,
                    attempts=attempts,
                    recovered=True,
                    compensation_applied=False,
                    message=f"Operation succeeded on retry attempt {attempts}",
                    states=trace.states,
                )
            case Error(failure):
                trace.go(RecoveryState.ESCALATING)
                escalated = replace(
                    context.bump(attempts),
                    error_kind=failure.kind,
                    original_message=failure.message,
                )
                if is_retryable(failure.kind):
                    logger.error(
                        f"All {attempts} retry attempts failed for {context.operation}, compensating"
                    )
                    return await self._compensate(
                        escalated, config, trace, RecoveryAction.COMPENSATE
                    )

                logger.warning(
                    f"Retry of {context.operation} hit non-retryable {failure.kind.value}, escalating"
                )
                next_action = resolve(failure.kind, config)
                if next_action in (RecoveryAction.COMPENSATE, RecoveryAction.ROLLBACK):
                    return await self._compensate(escalated, config, trace, next_action)
                return await self._manual(escalated, config, trace)

        raise AssertionError("unreachable")

    # ───────────────────────────────────────────────────────────────────────────
    # COMPENSATE / ROLLBACK
    # ───────────────────────────────────────────────────────────────────────────

    async def _compensate(
        self,
        context: ErrorContext,
        config: RecoveryConfig,
        trace: _Trace,
        action: RecoveryAction,
    ) -> RecoveryResult:
        key = context.idempotency_key

        match await self._ledger.claim(key, config.ledger_ttl):
            case Error(err):
                logger.error(f"Compensation ledger unavailable for {key}: {err.message}")
                return await self._manual(
                    context, config, trace, error=f"Compensation ledger unavailable: {err.message}"
                )
            case Ok(False):
                return await self._duplicate(key, action, trace)
            case Ok(_):
                pass

        request = BoundaryRequest.from_context(context, action)
        logger.info(f"Applying {action.value} for {context.operation} via recovery boundary")

        try:
            outcome = await L.catching_async(
                lambda: self._boundary.recover(request),
                on_error=message_of,
            )
        except asyncio.CancelledError:
            await self._ledger.release(key)
            raise

        match outcome:
            case Ok(response):
                pass
            case Error(message):
                await self._ledger.release(key)
                logger.error(f"Recovery boundary failed for {context.operation}: {message}")
                trace.go(RecoveryState.FAILED)
                result = RecoveryResult(
                    success=False,
                    action=RecoveryAction.MANUAL_INTERVENTION,
                    attempts=context.retry_count + 1,
                    recovered=False,
                    compensation_applied=False,
                    message=f"Recovery RPC failed: {message}",
                    error=message,
                    states=trace.states,
                )
                await self._notify(context, result, config)
                return result

        trace.go(RecoveryState.RECOVERED if response.success else RecoveryState.FAILED)
        result = RecoveryResult(
            success=response.success,
            action=response.action,
            attempts=response.attempts,
            recovered=response.recovered,
            compensation_applied=response.success and response.compensation_applied,
            message=response.message,
            error=response.error,
            states=trace.states,
        )

        if response.success:
            match await self._ledger.complete(key, result, config.ledger_ttl):
                case Error(err):
                    logger.error(f"Failed to record compensation {key}: {err.message}")
                case _:
                    pass
        else:
            await self._ledger.release(key)
            logger.warning(f"Recovery boundary reported failure for {context.operation}: {response.message}")
            await self._notify(context, result, config)

        return result

    async def _duplicate(
        self,
        key: str,
        action: RecoveryAction,
        trace: _Trace,
    ) -> RecoveryResult:
        match await self._ledger.get(key):
            case Ok(record) if record is not None and record.result is not None:
                logger.info(f"Compensation {key} already applied, returning recorded result")
                trace.go(
                    RecoveryState.RECOVERED if record.result.success else RecoveryState.FAILED
                )
                return replace(record.result, states=trace.states, duplicate=True)
            case _:
                logger.warning(f"Compensation {key} already in progress")
                trace.go(RecoveryState.FAILED)
                return RecoveryResult(
                    success=False,
                    action=action,
                    attempts=0,
                    recovered=False,
                    compensation_applied=False,
                    message=f"Compensation already in progress for {key}",
                    states=trace.states,
                    duplicate=True,
                )

    # ───────────────────────────────────────────────────────────────────────────
    # MANUAL_INTERVENTION
    # ───────────────────────────────────────────────────────────────────────────

    async def _manual(
        self,
        context: ErrorContext,
        config: RecoveryConfig,
        trace: _Trace,
        *,
        error: str | None = None,
    ) -> RecoveryResult:
        trace.go(RecoveryState.FAILED)
        result = RecoveryResult(
            success=False,
            action=RecoveryAction.MANUAL_INTERVENTION,
            attempts=0,
            recovered=False,
            compensation_applied=False,
            message=f"Manual intervention required for {context.operation}",
            error=error or context.original_message,
            states=trace.states,
        )
        logger.critical(
            f"Flagging for manual intervention: {context.operation} "
            f"({context.error_kind.value}): {result.error}"
        )
        await self._notify(context, result, config)
        return result

    async def _notify(
        self,
        context: ErrorContext,
        result: RecoveryResult,
        config: RecoveryConfig,
    ) -> None:
        if not config.notify_on_failure:
            return
        outcome = await L.catching_async(
            lambda: self._notifier.notify(context, result),
            on_error=message_of,
        )
        if isinstance(outcome, Error):
            logger.warning(f"Failed to notify administrators: {outcome.error}")


# ═══════════════════════════════════════════════════════════════════════════════
# Convenience
# ═══════════════════════════════════════════════════════════════════════════════


async def recover_from_error(
    context: ErrorContext,
    config: RecoveryConfig | None = None,
    *,
    boundary: RecoveryBoundary,
    ledger: CompensationLedger | None = None,
    retry: RemoteOp[Any] | None = None,
) -> RecoveryResult:
    """
    One-shot recovery with a throwaway executor.

    Example:
        result = await recover_from_error(context, boundary=boundary_from(call_rpc))
    """
    executor = RecoveryExecutor(boundary, config=config or DEFAULT_CONFIG, ledger=ledger)
    return await executor.execute(context, retry=retry)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "RetryFailure",
    "RecoveryExecutor",
    "recover_from_error",
)
