"""
Core types for optimist.

Re-exports from kungfu + custom type aliases.
"""

from __future__ import annotations

from collections.abc import Callable, Awaitable
from datetime import datetime, UTC

# Re-export from kungfu
from kungfu import Result, Ok, Error, Option, Some, Nothing

# ═══════════════════════════════════════════════════════════════════════════════
# Remote Calls
# ═══════════════════════════════════════════════════════════════════════════════

type RemoteOp[T] = Callable[[], Awaitable[T]]
"""A call into the authoritative store. Raises on failure."""

type Clock = Callable[[], datetime]
"""Timestamp source (injectable for tests)."""


def utcnow() -> datetime:
    """Default clock: timezone-aware UTC now."""
    return datetime.now(UTC)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    # Re-exports from kungfu
    "Result",
    "Ok",
    "Error",
    "Option",
    "Some",
    "Nothing",
    # Type aliases
    "RemoteOp",
    "Clock",
    "utcnow",
)
