"""
Compensation ledger — at most one compensation per idempotency key.

CompensationLedger — typed storage protocol.
All methods return Result for explicit error handling.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum, auto
from typing import Protocol

from kungfu import Result, Ok, Error

from optimist._types import Clock, utcnow
from optimist.recovery._types import RecoveryResult

# ═══════════════════════════════════════════════════════════════════════════════
# Records
# ═══════════════════════════════════════════════════════════════════════════════


class LedgerState(Enum):
    """
    Lifecycle:
        PENDING → COMPLETED (boundary reported a result)
                → (released on failure / expired)
    """

    PENDING = auto()
    COMPLETED = auto()


@dataclass(frozen=True, slots=True)
class LedgerRecord:
    key: str
    state: LedgerState
    result: RecoveryResult | None
    created_at: datetime
    expires_at: datetime | None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now > self.expires_at

    @property
    def is_pending(self) -> bool:
        return self.state is LedgerState.PENDING

    @property
    def is_completed(self) -> bool:
        return self.state is LedgerState.COMPLETED


@dataclass(frozen=True, slots=True)
class LedgerError:
    """Storage operation error."""

    message: str
    cause: Exception | None = None


# ═══════════════════════════════════════════════════════════════════════════════
# Ledger Protocol
# ═══════════════════════════════════════════════════════════════════════════════


class CompensationLedger(Protocol):
    """
    Idempotence store for compensations.

    `claim` must be atomic (compare-and-swap): of two concurrent claims on
    the same key exactly one gets Ok(True).
    """

    async def get(self, key: str) -> Result[LedgerRecord | None, LedgerError]:
        """Get live record. Ok(None) if absent or expired."""
        ...

    async def claim(self, key: str, ttl: timedelta | None) -> Result[bool, LedgerError]:
        """Ok(True) if claimed, Ok(False) if a live record exists."""
        ...

    async def complete(
        self, key: str, result: RecoveryResult, ttl: timedelta | None
    ) -> Result[None, LedgerError]:
        ...

    async def release(self, key: str) -> Result[bool, LedgerError]:
        """Drop a claim. Ok(True) if it existed."""
        ...


# ═══════════════════════════════════════════════════════════════════════════════
# Memory Ledger
# ═══════════════════════════════════════════════════════════════════════════════


class MemoryLedger:
    """
    In-memory ledger.

    Single process only; records do not survive a restart.
    """

    def __init__(self, *, clock: Clock = utcnow) -> None:
        self._records: dict[str, LedgerRecord] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    def _live(self, key: str) -> LedgerRecord | None:
        record = self._records.get(key)
        if record is not None and record.is_expired(self._clock()):
            del self._records[key]
            return None
        return record

    def _sweep(self, now: datetime) -> int:
        expired = [k for k, r in self._records.items() if r.is_expired(now)]
        for key in expired:
            del self._records[key]
        return len(expired)

    async def purge_expired(self) -> Result[int, LedgerError]:
        """Drop every expired record. Returns the number dropped."""
        async with self._lock:
            return Ok(self._sweep(self._clock()))

    async def get(self, key: str) -> Result[LedgerRecord | None, LedgerError]:
        async with self._lock:
            return Ok(self._live(key))

    async def claim(self, key: str, ttl: timedelta | None) -> Result[bool, LedgerError]:
        async with self._lock:
            # Every claim sweeps expired records, not only the claimed key.
            self._sweep(self._clock())
            if self._live(key) is not None:
                return Ok(False)

            now = self._clock()
            self._records[key] = LedgerRecord(
                key=key,
                state=LedgerState.PENDING,
                result=None,
                created_at=now,
                expires_at=now + ttl if ttl else None,
            )
            return Ok(True)

    async def complete(
        self, key: str, result: RecoveryResult, ttl: timedelta | None
    ) -> Result[None, LedgerError]:
        async with self._lock:
            existing = self._records.get(key)
            if existing is None:
                return Error(LedgerError(f"No claim for key: {key}"))

            now = self._clock()
            self._records[key] = LedgerRecord(
                key=key,
                state=LedgerState.COMPLETED,
                result=result,
                created_at=existing.created_at,
                expires_at=now + ttl if ttl else None,
            )
            return Ok(None)

    async def release(self, key: str) -> Result[bool, LedgerError]:
        async with self._lock:
            return Ok(self._records.pop(key, None) is not None)

    def __len__(self) -> int:
        return len(self._records)


# ═══════════════════════════════════════════════════════════════════════════════
# Function-based Ledger
# ═══════════════════════════════════════════════════════════════════════════════

type GetFn = Callable[[str], Awaitable[Result[LedgerRecord | None, LedgerError]]]
type ClaimFn = Callable[[str, timedelta | None], Awaitable[Result[bool, LedgerError]]]
type CompleteFn = Callable[
    [str, RecoveryResult, timedelta | None], Awaitable[Result[None, LedgerError]]
]
type ReleaseFn = Callable[[str], Awaitable[Result[bool, LedgerError]]]


@dataclass(frozen=True, slots=True)
class FunctionalLedger:
    """
    Ledger built from functions.

    Example:
        ledger = ledger_from(
            get=repo.get_compensation,
            claim=repo.claim_compensation,
            complete=repo.complete_compensation,
            release=repo.release_compensation,
        )
    """

    _get: GetFn
    _claim: ClaimFn
    _complete: CompleteFn
    _release: ReleaseFn

    async def get(self, key: str) -> Result[LedgerRecord | None, LedgerError]:
        return await self._get(key)

    async def claim(self, key: str, ttl: timedelta | None) -> Result[bool, LedgerError]:
        return await self._claim(key, ttl)

    async def complete(
        self, key: str, result: RecoveryResult, ttl: timedelta | None
    ) -> Result[None, LedgerError]:
        return await self._complete(key, result, ttl)

    async def release(self, key: str) -> Result[bool, LedgerError]:
        return await self._release(key)


def ledger_from(
    get: GetFn,
    claim: ClaimFn,
    complete: CompleteFn,
    release: ReleaseFn,
) -> FunctionalLedger:
    return FunctionalLedger(_get=get, _claim=claim, _complete=complete, _release=release)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "LedgerState",
    "LedgerRecord",
    "LedgerError",
    "CompensationLedger",
    "MemoryLedger",
    "FunctionalLedger",
    "ledger_from",
)
