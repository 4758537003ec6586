"""
Cache types.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum, auto
from typing import Any

from kungfu import Option, Some, Nothing

# ═══════════════════════════════════════════════════════════════════════════════
# Keys
# ═══════════════════════════════════════════════════════════════════════════════

type CacheKey = tuple[str, ...]
"""Hierarchical key, e.g. ("cart", "user-1")."""

type KeyLike = CacheKey | str


def as_key(key: KeyLike) -> CacheKey:
    """
    Normalize a key.

    Example:
        as_key("cart")            # ("cart",)
        as_key(("cart", "u-1"))   # ("cart", "u-1")
    """
    if isinstance(key, str):
        return (key,)
    return tuple(str(part) for part in key)


def is_prefix(prefix: CacheKey, key: CacheKey) -> bool:
    """True if `key` lives under `prefix` (a key is its own prefix)."""
    return len(prefix) <= len(key) and key[: len(prefix)] == prefix


# ═══════════════════════════════════════════════════════════════════════════════
# Entry & Snapshot
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CacheEntry[T]:
    """
    A cached value.

    version: bumped on every authoritative write (commit or refetch),
             untouched by optimistic writes and rollbacks.
    dirty:   holds an optimistic value the server has not confirmed.
    stale:   invalidated, waiting for a refetch.
    """

    key: CacheKey
    value: T
    version: int
    last_updated: datetime
    dirty: bool = False
    stale: bool = False


@dataclass(frozen=True, slots=True)
class Snapshot[T]:
    """
    Entry captured right before an optimistic write.

    `entry` is Nothing when the key was absent.
    """

    key: CacheKey
    entry: Option[CacheEntry[T]]
    taken_at: datetime

    @property
    def value(self) -> Option[T]:
        match self.entry:
            case Some(entry):
                return Some(entry.value)
            case _:
                return Nothing()

    @property
    def version(self) -> int:
        match self.entry:
            case Some(entry):
                return entry.version
            case _:
                return 0


# ═══════════════════════════════════════════════════════════════════════════════
# Events
# ═══════════════════════════════════════════════════════════════════════════════


class CacheEventKind(Enum):
    """What happened to a key."""

    SET = auto()
    INVALIDATED = auto()
    REMOVED = auto()


@dataclass(frozen=True, slots=True)
class CacheEvent:
    """Delivered synchronously to subscribers."""

    kind: CacheEventKind
    key: CacheKey
    entry: Option[CacheEntry[Any]]


type Subscriber = Callable[[CacheEvent], None]
type Unsubscribe = Callable[[], None]
type Fetcher[T] = Callable[[], Awaitable[T]]


# ═══════════════════════════════════════════════════════════════════════════════
# Errors
# ═══════════════════════════════════════════════════════════════════════════════


class CacheErrorKind(Enum):
    """Cache error kinds."""

    FETCH = auto()  # Registered fetcher raised


@dataclass(frozen=True, slots=True)
class CacheError:
    """Cache operation error."""

    kind: CacheErrorKind
    message: str


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "CacheKey",
    "KeyLike",
    "as_key",
    "is_prefix",
    "CacheEntry",
    "Snapshot",
    "CacheEventKind",
    "CacheEvent",
    "Subscriber",
    "Unsubscribe",
    "Fetcher",
    "CacheErrorKind",
    "CacheError",
)
