"""
Cache store — keyed snapshots with subscribe / invalidate / refetch.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Iterator
from dataclasses import replace
from typing import Any

from combinators import lift as L
from kungfu import Ok, Error, Option, Some, Nothing
from loguru import logger

from optimist._types import Clock, utcnow
from optimist.cache._types import (
    CacheKey,
    KeyLike,
    as_key,
    is_prefix,
    CacheEntry,
    Snapshot,
    CacheEvent,
    CacheEventKind,
    Subscriber,
    Unsubscribe,
    Fetcher,
    CacheError,
    CacheErrorKind,
)

# ═══════════════════════════════════════════════════════════════════════════════
# CacheStore
# ═══════════════════════════════════════════════════════════════════════════════


class CacheStore:
    """
    In-memory cache of entity snapshots.

    Construct one per process and pass it to the coordinator and every
    consumer. Subscribers are notified synchronously on every write.

    Example:
        store = CacheStore()
        store.register(("cart", "u-1"), service.get_cart)
        unsubscribe = store.subscribe(("cart", "u-1"), on_change)

        store.set(("cart", "u-1"), cart)          # commit, version 1
        store.invalidate([("cart",)])             # stale + background refetch
    """

    def __init__(self, *, clock: Clock = utcnow) -> None:
        self._clock = clock
        self._entries: dict[CacheKey, CacheEntry[Any]] = {}
        self._subscribers: dict[CacheKey, list[Subscriber]] = {}
        self._fetchers: dict[CacheKey, Fetcher[Any]] = {}
        self._refetches: dict[CacheKey, asyncio.Task[None]] = {}
        self._held: set[CacheKey] = set()
        # Invalidated while held: re-marked stale and refetched on release.
        self._missed: set[CacheKey] = set()

    # ───────────────────────────────────────────────────────────────────────────
    # Reads
    # ───────────────────────────────────────────────────────────────────────────

    def get(self, key: KeyLike) -> Option[CacheEntry[Any]]:
        entry = self._entries.get(as_key(key))
        return Some(entry) if entry is not None else Nothing()

    def get_current(self, key: KeyLike) -> Option[Any]:
        """Current value for UI consumers."""
        return self.get(key).map(lambda entry: entry.value)

    def snapshot(self, key: KeyLike) -> Snapshot[Any]:
        k = as_key(key)
        return Snapshot(key=k, entry=self.get(k), taken_at=self._clock())

    def keys(self) -> Iterator[CacheKey]:
        return iter(tuple(self._entries))

    def __contains__(self, key: object) -> bool:
        return isinstance(key, (str, tuple)) and as_key(key) in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    # ───────────────────────────────────────────────────────────────────────────
    # Writes
    # ───────────────────────────────────────────────────────────────────────────

    def set(self, key: KeyLike, value: Any, *, optimistic: bool = False) -> int:
        """
        Write a value and return the entry version.

        Authoritative writes bump the version; optimistic writes keep it and
        mark the entry dirty.
        """
        k = as_key(key)
        previous = self._entries.get(k)
        version = previous.version if previous is not None else 0
        if not optimistic:
            version += 1

        entry = CacheEntry(
            key=k,
            value=value,
            version=version,
            last_updated=self._clock(),
            dirty=optimistic,
            stale=False,
        )
        self._entries[k] = entry
        self._emit(CacheEvent(CacheEventKind.SET, k, Some(entry)))
        return version

    def restore(self, snapshot: Snapshot[Any]) -> bool:
        """
        Roll a key back to its snapshot.

        No-op (returns False) when a newer value was committed after the
        snapshot was taken.
        """
        k = snapshot.key
        current = self._entries.get(k)
        current_version = current.version if current is not None else 0

        if current_version > snapshot.version:
            logger.warning(
                f"Skipping stale rollback of {k}: version {current_version} > snapshot {snapshot.version}"
            )
            return False

        match snapshot.entry:
            case Some(entry):
                self._entries[k] = entry
                self._emit(CacheEvent(CacheEventKind.SET, k, Some(entry)))
            case _:
                if current is not None:
                    del self._entries[k]
                    self._emit(CacheEvent(CacheEventKind.REMOVED, k, Nothing()))
        return True

    def invalidate(self, keys: Iterable[KeyLike]) -> int:
        """
        Mark every entry under the given prefixes stale.

        Notifies matching subscribers and schedules a background refetch for
        registered keys that no mutation currently holds. Returns the number
        of entries marked.
        """
        prefixes = [as_key(k) for k in keys]
        if not prefixes:
            return 0

        def matches(k: CacheKey) -> bool:
            return any(is_prefix(p, k) for p in prefixes)

        marked = [k for k in self._entries if matches(k)]
        for k in marked:
            self._entries[k] = replace(self._entries[k], stale=True)

        self._missed.update(k for k in self._held if matches(k))

        for k in [k for k in self._subscribers if matches(k)]:
            self._emit(CacheEvent(CacheEventKind.INVALIDATED, k, self.get(k)))

        for k in [k for k in self._fetchers if matches(k)]:
            self.refetch(k)

        logger.debug(f"Invalidated {len(marked)} entries under {prefixes}")
        return len(marked)

    def remove(self, key: KeyLike) -> bool:
        k = as_key(key)
        if self._entries.pop(k, None) is None:
            return False
        self._emit(CacheEvent(CacheEventKind.REMOVED, k, Nothing()))
        return True

    # ───────────────────────────────────────────────────────────────────────────
    # Subscriptions
    # ───────────────────────────────────────────────────────────────────────────

    def subscribe(self, key: KeyLike, callback: Subscriber) -> Unsubscribe:
        k = as_key(key)
        self._subscribers.setdefault(k, []).append(callback)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(k, [])
            if callback in callbacks:
                callbacks.remove(callback)
            if not callbacks:
                self._subscribers.pop(k, None)

        return unsubscribe

    def _emit(self, event: CacheEvent) -> None:
        for callback in tuple(self._subscribers.get(event.key, ())):
            try:
                callback(event)
            except Exception:
                logger.exception(f"Cache subscriber for {event.key} raised")

    # ───────────────────────────────────────────────────────────────────────────
    # Background refetch
    # ───────────────────────────────────────────────────────────────────────────

    def register(self, key: KeyLike, fetch: Fetcher[Any]) -> None:
        """Register the fetch used to refresh `key` after invalidation."""
        self._fetchers[as_key(key)] = fetch

    def hold(self, key: KeyLike) -> None:
        """Key is owned by an in-flight mutation: no refetch may land."""
        self._held.add(as_key(key))

    def release(self, key: KeyLike) -> None:
        """
        Give the key back to the cache.

        An invalidation that arrived while the key was held (or a refetch
        dropped because of the hold) survives a rollback: the entry is
        marked stale again and refetched.
        """
        k = as_key(key)
        self._held.discard(k)
        if k not in self._missed:
            return

        self._missed.discard(k)
        entry = self._entries.get(k)
        if entry is not None and not entry.stale:
            self._entries[k] = replace(entry, stale=True)
        logger.debug(f"Replaying invalidation of {k} missed while held")
        self._emit(CacheEvent(CacheEventKind.INVALIDATED, k, self.get(k)))
        self.refetch(k)

    def is_held(self, key: KeyLike) -> bool:
        return as_key(key) in self._held

    def refetch(self, key: KeyLike) -> asyncio.Task[None] | None:
        """
        Start a background refetch for `key`.

        Returns None when nothing was scheduled (no fetcher, key held, or no
        running event loop).
        """
        k = as_key(key)
        fetch = self._fetchers.get(k)
        if fetch is None or k in self._held:
            return None

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running event loop, refetch of {k} not scheduled")
            return None

        self.cancel_refetch(k)
        task = loop.create_task(self._run_refetch(k, fetch))
        self._refetches[k] = task
        task.add_done_callback(lambda t: self._forget_refetch(k, t))
        return task

    def cancel_refetch(self, key: KeyLike) -> bool:
        """Cancel an outstanding refetch. True if one was pending."""
        task = self._refetches.pop(as_key(key), None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def pending_refetches(self) -> tuple[CacheKey, ...]:
        return tuple(k for k, t in self._refetches.items() if not t.done())

    async def _run_refetch(self, key: CacheKey, fetch: Fetcher[Any]) -> None:
        result = await L.catching_async(
            fetch,
            on_error=lambda e: CacheError(CacheErrorKind.FETCH, str(e)),
        )
        match result:
            case Ok(value):
                if key in self._held:
                    logger.debug(f"Dropping refetch of {key}: held by a mutation")
                    self._missed.add(key)
                    return
                self.set(key, value)
            case Error(err):
                logger.warning(f"Refetch of {key} failed: {err.message}")

    def _forget_refetch(self, key: CacheKey, task: asyncio.Task[None]) -> None:
        if self._refetches.get(key) is task:
            del self._refetches[key]

    async def aclose(self) -> None:
        """Cancel every outstanding refetch and wait for them to finish."""
        tasks = [t for t in self._refetches.values() if not t.done()]
        self._refetches.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = ("CacheStore",)
