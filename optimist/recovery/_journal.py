"""
Error journal — in-memory record of recovery decisions + metrics.

Bounded in time and size: entries older than `retention` are dropped on
every record, and at most `max_entries` are kept.
"""

from __future__ import annotations

from collections import Counter, deque
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from optimist._types import Clock, utcnow
from optimist.errors import ErrorContext, ErrorKind
from optimist.recovery._types import RecoveryAction, RecoveryResult

if TYPE_CHECKING:
    from optimist.config import OptimistSettings

TOP_ERRORS_LIMIT = 5
DEFAULT_RETENTION = timedelta(hours=24)
DEFAULT_MAX_ENTRIES = 10_000


@dataclass(frozen=True, slots=True)
class JournalEntry:
    context: ErrorContext
    result: RecoveryResult
    recorded_at: datetime


@dataclass(frozen=True, slots=True)
class ErrorMetrics:
    """
    Aggregates over a journal window.

    recovery_success_rate: share of entries that recovered (1.0 when empty).
    top_errors:            (kind, count), most frequent first, at most 5.
    """

    total: int
    by_kind: dict[ErrorKind, int]
    by_action: dict[RecoveryAction, int]
    recovered: int
    compensations_applied: int
    manual_interventions: int
    recovery_success_rate: float
    top_errors: tuple[tuple[ErrorKind, int], ...]


class ErrorJournal:
    """
    Log of (context, result) pairs, oldest first.

    retention:   entries older than this are dropped on record (None = keep).
    max_entries: oldest entries are evicted past this size (None = unbounded).

    Example:
        journal = ErrorJournal.from_settings(OptimistSettings())
        executor = RecoveryExecutor(boundary, journal=journal)
        ...
        metrics = journal.metrics(start=utcnow() - timedelta(hours=1))
        metrics.recovery_success_rate
    """

    def __init__(
        self,
        *,
        clock: Clock = utcnow,
        retention: timedelta | None = DEFAULT_RETENTION,
        max_entries: int | None = DEFAULT_MAX_ENTRIES,
    ) -> None:
        self._entries: deque[JournalEntry] = deque(maxlen=max_entries or None)
        self._clock = clock
        self._retention = retention

    @classmethod
    def from_settings(cls, settings: OptimistSettings, *, clock: Clock = utcnow) -> ErrorJournal:
        return cls(
            clock=clock,
            retention=(
                timedelta(seconds=settings.journal_retention_seconds)
                if settings.journal_retention_seconds
                else None
            ),
            max_entries=settings.journal_max_entries or None,
        )

    def record(self, context: ErrorContext, result: RecoveryResult) -> JournalEntry:
        entry = JournalEntry(context=context, result=result, recorded_at=self._clock())
        self._entries.append(entry)
        if self._retention is not None:
            self._drop_before(entry.recorded_at - self._retention)
        return entry

    def entries(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[JournalEntry]:
        return [
            e
            for e in self._entries
            if (start is None or e.recorded_at >= start)
            and (end is None or e.recorded_at <= end)
        ]

    def metrics(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> ErrorMetrics:
        window = self.entries(start, end)
        by_kind = Counter(e.context.error_kind for e in window)
        by_action = Counter(e.result.action for e in window)
        recovered = sum(1 for e in window if e.result.recovered)

        return ErrorMetrics(
            total=len(window),
            by_kind=dict(by_kind),
            by_action=dict(by_action),
            recovered=recovered,
            compensations_applied=sum(1 for e in window if e.result.compensation_applied),
            manual_interventions=by_action.get(RecoveryAction.MANUAL_INTERVENTION, 0),
            recovery_success_rate=recovered / len(window) if window else 1.0,
            top_errors=tuple(by_kind.most_common(TOP_ERRORS_LIMIT)),
        )

    def prune(self, older_than: timedelta) -> int:
        """Drop entries recorded before now - older_than. Returns count dropped."""
        return self._drop_before(self._clock() - older_than)

    def _drop_before(self, cutoff: datetime) -> int:
        dropped = 0
        while self._entries and self._entries[0].recorded_at < cutoff:
            self._entries.popleft()
            dropped += 1
        return dropped

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[JournalEntry]:
        return iter(tuple(self._entries))


__all__ = (
    "TOP_ERRORS_LIMIT",
    "DEFAULT_RETENTION",
    "DEFAULT_MAX_ENTRIES",
    "JournalEntry",
    "ErrorMetrics",
    "ErrorJournal",
)
