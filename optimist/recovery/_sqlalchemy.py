"""
SQLAlchemy integration — durable compensation ledger.

Usage:
    engine = create_async_engine("postgresql+asyncpg://...")
    await create_ledger_schema(engine)

    ledger = SQLAlchemyLedger(async_sessionmaker(engine, expire_on_commit=False))
    executor = RecoveryExecutor(boundary, ledger=ledger)
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, UTC

from sqlalchemy import select, delete, String, DateTime, Text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from kungfu import Result, Ok, Error

from optimist._types import Clock, utcnow
from optimist.recovery._ledger import LedgerError, LedgerRecord, LedgerState
from optimist.recovery._types import RecoveryResult

# ═══════════════════════════════════════════════════════════════════════════════
# Table
# ═══════════════════════════════════════════════════════════════════════════════


class LedgerBase(DeclarativeBase):
    pass


class LedgerStatus:
    """Values of the `status` column."""

    PENDING = "pending"
    COMPLETED = "completed"


class CompensationRow(LedgerBase):
    __tablename__ = "compensation_ledger"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=LedgerStatus.PENDING)
    result: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


async def create_ledger_schema(engine: AsyncEngine) -> None:
    """Create the `compensation_ledger` table if missing."""
    async with engine.begin() as conn:
        await conn.run_sync(LedgerBase.metadata.create_all)


def _aware(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo on the way back.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


# ═══════════════════════════════════════════════════════════════════════════════
# SQLAlchemy Ledger
# ═══════════════════════════════════════════════════════════════════════════════


class SQLAlchemyLedger:
    """
    Compensation ledger on any async SQLAlchemy engine.

    Claims rely on the primary key: of two concurrent inserts one fails
    with IntegrityError and reports Ok(False).
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        clock: Clock = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    async def get(self, key: str) -> Result[LedgerRecord | None, LedgerError]:
        try:
            async with self._session_factory() as session:
                row = await session.get(CompensationRow, key)
                if row is None:
                    return Ok(None)

                record = self._to_record(row)
                if record.is_expired(self._clock()):
                    return Ok(None)
                return Ok(record)

        except Exception as e:
            return Error(LedgerError(f"Failed to get: {e}", e))

    async def claim(self, key: str, ttl: timedelta | None) -> Result[bool, LedgerError]:
        now = self._clock()
        try:
            async with self._session_factory() as session:
                existing = await session.get(CompensationRow, key)
                if existing is not None:
                    expires_at = _aware(existing.expires_at)
                    if expires_at is None or now <= expires_at:
                        return Ok(False)
                    await session.delete(existing)
                    await session.flush()

                session.add(
                    CompensationRow(
                        key=key,
                        status=LedgerStatus.PENDING,
                        result=None,
                        created_at=now,
                        expires_at=now + ttl if ttl else None,
                    )
                )
                try:
                    await session.commit()
                except IntegrityError:
                    await session.rollback()
                    return Ok(False)
                return Ok(True)

        except Exception as e:
            return Error(LedgerError(f"Failed to claim: {e}", e))

    async def complete(
        self, key: str, result: RecoveryResult, ttl: timedelta | None
    ) -> Result[None, LedgerError]:
        try:
            async with self._session_factory() as session:
                row = await session.get(CompensationRow, key)
                if row is None:
                    return Error(LedgerError(f"No claim for key: {key}"))

                row.status = LedgerStatus.COMPLETED
                row.result = json.dumps(result.to_mapping())
                row.expires_at = self._clock() + ttl if ttl else None
                await session.commit()
                return Ok(None)

        except Exception as e:
            return Error(LedgerError(f"Failed to complete: {e}", e))

    async def release(self, key: str) -> Result[bool, LedgerError]:
        try:
            async with self._session_factory() as session:
                cursor = await session.execute(
                    delete(CompensationRow).where(CompensationRow.key == key)
                )
                await session.commit()
                return Ok(bool(cursor.rowcount))

        except Exception as e:
            return Error(LedgerError(f"Failed to release: {e}", e))

    async def purge_expired(self) -> Result[int, LedgerError]:
        """Delete every expired row. Run it periodically; claims only clean their own key."""
        try:
            async with self._session_factory() as session:
                cursor = await session.execute(
                    delete(CompensationRow).where(
                        CompensationRow.expires_at.is_not(None),
                        CompensationRow.expires_at < self._clock(),
                    )
                )
                await session.commit()
                return Ok(cursor.rowcount or 0)

        except Exception as e:
            return Error(LedgerError(f"Failed to purge: {e}", e))

    async def keys(self) -> Result[list[str], LedgerError]:
        """All stored keys, live or not. For inspection and tests."""
        try:
            async with self._session_factory() as session:
                rows = await session.execute(select(CompensationRow.key))
                return Ok(list(rows.scalars()))

        except Exception as e:
            return Error(LedgerError(f"Failed to list: {e}", e))

    def _to_record(self, row: CompensationRow) -> LedgerRecord:
        completed = row.status == LedgerStatus.COMPLETED
        return LedgerRecord(
            key=row.key,
            state=LedgerState.COMPLETED if completed else LedgerState.PENDING,
            result=(
                RecoveryResult.from_mapping(json.loads(row.result))
                if completed and row.result
                else None
            ),
            created_at=_aware(row.created_at) or self._clock(),
            expires_at=_aware(row.expires_at),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "LedgerBase",
    "LedgerStatus",
    "CompensationRow",
    "create_ledger_schema",
    "SQLAlchemyLedger",
)
