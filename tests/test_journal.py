"""
Tests for the error journal and its metrics.
"""

from datetime import timedelta

import pytest

from optimist.config import OptimistSettings
from optimist.errors import ErrorContext, ErrorKind
from optimist.recovery import (
    TOP_ERRORS_LIMIT,
    ErrorJournal,
    RecoveryAction,
    RecoveryResult,
)


def result(action: RecoveryAction, *, recovered: bool, applied: bool = False) -> RecoveryResult:
    return RecoveryResult(
        success=recovered,
        action=action,
        attempts=1,
        recovered=recovered,
        compensation_applied=applied,
        message="",
    )


def ctx(kind: ErrorKind) -> ErrorContext:
    return ErrorContext(kind, "op", "failed")


@pytest.fixture
def journal(clock) -> ErrorJournal:
    return ErrorJournal(clock=clock, retention=None)


class TestErrorJournal:
    """Test recording, windows and pruning."""

    def test_empty_metrics(self, journal: ErrorJournal):
        """An empty window has a perfect success rate."""
        metrics = journal.metrics()
        assert metrics.total == 0
        assert metrics.recovery_success_rate == 1.0
        assert metrics.top_errors == ()

    def test_metrics(self, journal: ErrorJournal):
        """Counts per kind and action, success rate and top errors."""
        journal.record(ctx(ErrorKind.NETWORK_ERROR), result(RecoveryAction.RETRY, recovered=True))
        journal.record(ctx(ErrorKind.NETWORK_ERROR), result(RecoveryAction.RETRY, recovered=True))
        journal.record(
            ctx(ErrorKind.PAYMENT_FAILED),
            result(RecoveryAction.COMPENSATE, recovered=True, applied=True),
        )
        journal.record(
            ctx(ErrorKind.SYSTEM_ERROR),
            result(RecoveryAction.MANUAL_INTERVENTION, recovered=False),
        )

        metrics = journal.metrics()
        assert metrics.total == 4
        assert metrics.by_kind[ErrorKind.NETWORK_ERROR] == 2
        assert metrics.by_action[RecoveryAction.RETRY] == 2
        assert metrics.recovered == 3
        assert metrics.compensations_applied == 1
        assert metrics.manual_interventions == 1
        assert metrics.recovery_success_rate == pytest.approx(0.75)
        assert metrics.top_errors[0] == (ErrorKind.NETWORK_ERROR, 2)

    def test_top_errors_limited(self, journal: ErrorJournal):
        """At most TOP_ERRORS_LIMIT kinds are reported."""
        for kind in ErrorKind:
            journal.record(ctx(kind), result(RecoveryAction.IGNORE, recovered=True))

        assert len(journal.metrics().top_errors) == TOP_ERRORS_LIMIT

    def test_window(self, journal: ErrorJournal, clock):
        """Metrics can be restricted to a time window."""
        journal.record(ctx(ErrorKind.NETWORK_ERROR), result(RecoveryAction.RETRY, recovered=True))
        clock.advance(hours=2)
        start = clock.now
        journal.record(ctx(ErrorKind.SYSTEM_ERROR), result(RecoveryAction.MANUAL_INTERVENTION, recovered=False))

        metrics = journal.metrics(start=start)
        assert metrics.total == 1
        assert metrics.by_kind == {ErrorKind.SYSTEM_ERROR: 1}
        assert len(journal.entries(end=start - timedelta(minutes=1))) == 1

    def test_prune(self, journal: ErrorJournal, clock):
        """Old entries are dropped, recent ones kept."""
        journal.record(ctx(ErrorKind.NETWORK_ERROR), result(RecoveryAction.RETRY, recovered=True))
        clock.advance(days=2)
        journal.record(ctx(ErrorKind.NETWORK_ERROR), result(RecoveryAction.RETRY, recovered=True))

        assert journal.prune(timedelta(days=1)) == 1
        assert len(journal) == 1
        assert [e.recorded_at for e in journal] == [clock.now]


class TestJournalBounds:
    """Test retention and size limits."""

    def test_old_entries_expire_on_record(self, clock):
        """Recording drops entries that fell out of the retention window."""
        journal = ErrorJournal(clock=clock, retention=timedelta(hours=24))
        journal.record(ctx(ErrorKind.NETWORK_ERROR), result(RecoveryAction.RETRY, recovered=True))
        clock.advance(hours=23)
        journal.record(ctx(ErrorKind.DATABASE_ERROR), result(RecoveryAction.RETRY, recovered=True))
        assert len(journal) == 2

        clock.advance(hours=2)
        journal.record(ctx(ErrorKind.SYSTEM_ERROR), result(RecoveryAction.MANUAL_INTERVENTION, recovered=False))

        assert [e.context.error_kind for e in journal] == [
            ErrorKind.DATABASE_ERROR,
            ErrorKind.SYSTEM_ERROR,
        ]

    def test_size_is_capped(self, clock):
        """The oldest entries are evicted past max_entries."""
        journal = ErrorJournal(clock=clock, max_entries=3)
        for kind in list(ErrorKind)[:5]:
            journal.record(ctx(kind), result(RecoveryAction.IGNORE, recovered=True))

        assert len(journal) == 3
        assert [e.context.error_kind for e in journal] == list(ErrorKind)[2:5]

    def test_unbounded_when_disabled(self, clock):
        """No retention and no cap keeps everything."""
        journal = ErrorJournal(clock=clock, retention=None, max_entries=None)
        for _ in range(20):
            journal.record(ctx(ErrorKind.NETWORK_ERROR), result(RecoveryAction.RETRY, recovered=True))
            clock.advance(days=30)

        assert len(journal) == 20

    def test_from_settings(self, clock):
        """Settings drive retention and size; zero disables each."""
        journal = ErrorJournal.from_settings(
            OptimistSettings(journal_retention_seconds=60, journal_max_entries=2), clock=clock
        )
        for _ in range(3):
            journal.record(ctx(ErrorKind.NETWORK_ERROR), result(RecoveryAction.RETRY, recovered=True))
        assert len(journal) == 2

        clock.advance(minutes=2)
        journal.record(ctx(ErrorKind.SYSTEM_ERROR), result(RecoveryAction.MANUAL_INTERVENTION, recovered=False))
        assert len(journal) == 1

        unbounded = ErrorJournal.from_settings(
            OptimistSettings(journal_retention_seconds=0, journal_max_entries=0), clock=clock
        )
        for _ in range(3):
            unbounded.record(ctx(ErrorKind.NETWORK_ERROR), result(RecoveryAction.RETRY, recovered=True))
            clock.advance(days=7)
        assert len(unbounded) == 3
