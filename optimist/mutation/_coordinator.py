"""
Optimistic mutation coordinator.

    mutate(key)
        │
        ▼  (per-key FIFO lock)
    SNAPSHOTTING ── cancel refetch, hold key, snapshot
        │
        ▼
    OPTIMISTICALLY_APPLIED ── set(key, projector(snapshot.value), optimistic=True)
        │
        ├── remote ok ──► COMMITTING ── set(key, server value) ── release ──► on_settled
        │
        └── remote raised ──► ROLLING_BACK ── restore(snapshot) ── classify ── resolve
                                                │
                                                └──► background: executor.execute(context)
                                                          └── recovered? ──► on_settled("mutation-recovered")
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping
from typing import Any
from uuid import uuid4

from kungfu import Ok, Error
from loguru import logger

from optimist._types import RemoteOp
from optimist.broadcast import InvalidationBroadcaster, SettleReport
from optimist.cache import CacheKey, CacheStore, KeyLike, Snapshot, as_key
from optimist.errors import (
    ErrorContext,
    MutationFailure,
    classify,
    message_of,
    user_message,
)
from optimist.mutation._builder import Mutation, mutation
from optimist.mutation._lock import KeyLocks
from optimist.mutation._types import (
    MutationCommitted,
    MutationOutcome,
    MutationPhase,
    MutationRolledBack,
    Projector,
)
from optimist.recovery import RecoveryExecutor, RecoveryResult, resolve

RECOVERED_EVENT = "mutation-recovered"


class MutationCoordinator:
    """
    The only writer of optimistic state into the cache.

    Example:
        coordinator = MutationCoordinator(store, executor, broadcaster)

        outcome = await coordinator.mutate(
            ("cart", "u-1"),
            lambda cart: add(cart.unwrap_or(EMPTY), item),
            lambda: service.add_item(product, 1),
            related=[("stock",)],
            event="cart-item-added",
        )
        match outcome:
            case Ok(committed):
                ...
            case Error(rolled_back):
                show(rolled_back.user_message)
    """

    def __init__(
        self,
        store: CacheStore,
        executor: RecoveryExecutor,
        broadcaster: InvalidationBroadcaster | None = None,
    ) -> None:
        self._store = store
        self._executor = executor
        self._broadcaster = broadcaster or InvalidationBroadcaster(store)
        self._locks = KeyLocks()
        self._phases: dict[CacheKey, MutationPhase] = {}
        self._recoveries: set[asyncio.Task[RecoveryResult]] = set()

    @property
    def store(self) -> CacheStore:
        return self._store

    def phase(self, key: KeyLike) -> MutationPhase:
        return self._phases.get(as_key(key), MutationPhase.IDLE)

    def queued(self, key: KeyLike) -> int:
        """Mutations waiting for `key` behind the active one."""
        return self._locks.queued(as_key(key))

    def pending_recoveries(self) -> int:
        return sum(1 for t in self._recoveries if not t.done())

    # ───────────────────────────────────────────────────────────────────────────
    # Entry points
    # ───────────────────────────────────────────────────────────────────────────

    async def mutate[T](
        self,
        key: KeyLike,
        projector: Projector[T],
        remote: RemoteOp[T],
        *,
        related: Iterable[KeyLike] = (),
        event: str | None = None,
        payload: Mapping[str, Any] | None = None,
        operation: str = "mutation",
        entity_id: str | None = None,
        user_id: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> MutationOutcome[T]:
        m = mutation(key, projector, remote).invalidates(*related).describe(
            operation, entity_id=entity_id, user_id=user_id, metadata=metadata
        )
        if event is not None:
            m = m.broadcasts(event, payload)
        return await self.run(m)

    async def run[T](self, m: Mutation[T]) -> MutationOutcome[T]:
        key = m.key

        async with self._locks.hold(key):
            outcome = await self._apply(m)

        match outcome:
            case Ok(committed):
                return Ok(await self._settle(m, committed))
            case Error(rolled_back):
                return Error(self._schedule_recovery(m, rolled_back))

        raise AssertionError("unreachable")

    async def drain(self) -> None:
        """Wait until no background recovery is pending."""
        while pending := [t for t in self._recoveries if not t.done()]:
            await asyncio.gather(*pending, return_exceptions=True)

    # ───────────────────────────────────────────────────────────────────────────
    # Critical section (key lock held)
    # ───────────────────────────────────────────────────────────────────────────

    async def _apply[T](self, m: Mutation[T]) -> MutationOutcome[T]:
        key = m.key
        self._enter(key, MutationPhase.SNAPSHOTTING)
        self._store.cancel_refetch(key)
        self._store.hold(key)
        try:
            snapshot = self._store.snapshot(key)
            self._store.set(key, m.projector(snapshot.value), optimistic=True)
            self._enter(key, MutationPhase.OPTIMISTICALLY_APPLIED)

            try:
                value = await m.remote()
            except asyncio.CancelledError:
                self._enter(key, MutationPhase.ROLLING_BACK)
                self._store.restore(snapshot)
                logger.warning(f"Mutation {m.operation} on {key} cancelled, rolled back")
                raise
            except Exception as exc:
                self._enter(key, MutationPhase.ROLLING_BACK)
                return Error(self._roll_back(m, snapshot, exc))

            self._enter(key, MutationPhase.COMMITTING)
            version = self._store.set(key, value)
            logger.info(f"Committed {m.operation} on {key} (version {version})")
            return Ok(MutationCommitted(key=key, value=value, version=version))
        finally:
            self._store.release(key)
            self._phases.pop(key, None)
            logger.debug(f"{key} → {MutationPhase.IDLE.name}")

    def _roll_back[T](
        self,
        m: Mutation[T],
        snapshot: Snapshot[T],
        exc: Exception,
    ) -> MutationRolledBack:
        rolled_back = self._store.restore(snapshot)

        kind = classify(exc, m.operation)
        message = message_of(exc)
        context = ErrorContext(
            error_kind=kind,
            operation=m.operation,
            original_message=message,
            related_entity_id=m.entity_id,
            related_user_id=m.user_id,
            metadata=m.metadata,
        )
        if "idempotency_key" not in context.metadata:
            # One compensation per failed mutation, not per (operation, entity).
            context = context.with_metadata(
                idempotency_key=f"{context.idempotency_key}:{uuid4().hex[:12]}"
            )
        action = resolve(kind, self._executor.config)
        override = exc.user_message if isinstance(exc, MutationFailure) else None

        logger.warning(
            f"Rolled back {m.operation} on {m.key} after {kind.value}: {message} "
            f"(recovery: {action.value})"
        )
        return MutationRolledBack(
            key=m.key,
            error_kind=kind,
            action=action,
            message=message,
            user_message=user_message(kind, override),
            context=context,
            rolled_back=rolled_back,
        )

    def _enter(self, key: CacheKey, phase: MutationPhase) -> None:
        self._phases[key] = phase
        logger.debug(f"{key} → {phase.name}")

    # ───────────────────────────────────────────────────────────────────────────
    # After release
    # ───────────────────────────────────────────────────────────────────────────

    async def _settle[T](
        self, m: Mutation[T], committed: MutationCommitted[T]
    ) -> MutationCommitted[T]:
        if not m.related and m.event is None:
            return committed

        report = await self._broadcaster.on_settled(
            m.related,
            m.event or "mutation-committed",
            m.payload,
        )
        return MutationCommitted(
            key=committed.key,
            value=committed.value,
            version=committed.version,
            settle=report,
        )

    def _schedule_recovery[T](
        self, m: Mutation[T], rolled_back: MutationRolledBack
    ) -> MutationRolledBack:
        task = asyncio.create_task(
            self._recover(m, rolled_back.context),
            name=f"recover:{m.operation}:{'/'.join(m.key)}",
        )
        self._recoveries.add(task)
        task.add_done_callback(self._on_recovery_done)
        return MutationRolledBack(
            key=rolled_back.key,
            error_kind=rolled_back.error_kind,
            action=rolled_back.action,
            message=rolled_back.message,
            user_message=rolled_back.user_message,
            context=rolled_back.context,
            rolled_back=rolled_back.rolled_back,
            recovery=task,
        )

    async def _recover[T](self, m: Mutation[T], context: ErrorContext) -> RecoveryResult:
        result = await self._executor.execute(context, retry=m.retry_op)

        if result.recovered or result.compensation_applied:
            report: SettleReport = await self._broadcaster.on_settled(
                (m.key, *m.related),
                RECOVERED_EVENT,
                {
                    **m.payload,
                    "operation": m.operation,
                    "action": result.action.value,
                    "compensation_applied": result.compensation_applied,
                },
            )
            logger.info(
                f"Recovery of {m.operation} changed remote state, invalidated {report.invalidated} entries"
            )
        return result

    def _on_recovery_done(self, task: asyncio.Task[RecoveryResult]) -> None:
        self._recoveries.discard(task)
        if task.cancelled():
            return
        if (exc := task.exception()) is not None:
            logger.opt(exception=exc).error(f"Recovery task {task.get_name()} crashed")


__all__ = ("RECOVERED_EVENT", "MutationCoordinator")
