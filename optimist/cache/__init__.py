"""
Cache — local mirror of authoritative entities.

    from optimist import cache as C

    store = C.CacheStore()
    store.register(("cart", "u-1"), service.get_cart)
    unsubscribe = store.subscribe(("cart", "u-1"), on_change)

    snapshot = store.snapshot(("cart", "u-1"))
    store.set(("cart", "u-1"), projected, optimistic=True)
    store.restore(snapshot)  # no-op if a newer commit landed
"""

from __future__ import annotations

from optimist.cache._types import (
    CacheKey,
    KeyLike,
    as_key,
    is_prefix,
    CacheEntry,
    Snapshot,
    CacheEventKind,
    CacheEvent,
    Subscriber,
    Unsubscribe,
    Fetcher,
    CacheErrorKind,
    CacheError,
)
from optimist.cache._store import CacheStore

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
    "CacheStore",
)
