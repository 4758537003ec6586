"""
Tests for the cache store.

Covers:
- Versioning of authoritative vs optimistic writes
- Snapshot/restore, including stale and absent-key rollbacks
- Prefix invalidation and subscriber delivery
- Background refetch, hold/release and fetch failures
"""

import asyncio

import pytest
from kungfu import Nothing, Some

from optimist.cache import (
    CacheEventKind,
    CacheStore,
    Snapshot,
    as_key,
    is_prefix,
)


class TestKeys:
    """Test key normalization and prefix matching."""

    def test_string_key_becomes_tuple(self):
        """A bare string is a one-part key."""
        assert as_key("cart") == ("cart",)
        assert as_key(("cart", "u-1")) == ("cart", "u-1")

    def test_prefix_matching(self):
        """A key is its own prefix; longer prefixes never match shorter keys."""
        assert is_prefix(("cart",), ("cart", "u-1"))
        assert is_prefix(("cart", "u-1"), ("cart", "u-1"))
        assert not is_prefix(("cart", "u-1"), ("cart",))
        assert not is_prefix(("cart", "u-2"), ("cart", "u-1", "detail"))


class TestWrites:
    """Test set/get and version semantics."""

    def test_absent_key(self, store: CacheStore):
        """Reads of an unknown key return Nothing."""
        assert store.get_current(("cart", "u-1")) == Nothing()
        assert ("cart", "u-1") not in store
        assert len(store) == 0

    def test_commit_bumps_version(self, store: CacheStore):
        """Every authoritative write increments the version."""
        assert store.set("k", "a") == 1
        assert store.set("k", "b") == 2
        entry = store.get("k").unwrap()
        assert entry.value == "b"
        assert entry.version == 2
        assert not entry.dirty

    def test_optimistic_write_keeps_version(self, store: CacheStore):
        """Optimistic writes mark the entry dirty without a version bump."""
        store.set("k", "committed")
        version = store.set("k", "guess", optimistic=True)

        entry = store.get("k").unwrap()
        assert version == 1
        assert entry.value == "guess"
        assert entry.dirty

    def test_remove(self, store: CacheStore):
        """Removing a key drops it and reports whether it existed."""
        store.set("k", 1)
        assert store.remove("k")
        assert not store.remove("k")
        assert "k" not in store


class TestSnapshotRestore:
    """Test rollback to snapshots."""

    def test_restore_reverts_optimistic_value(self, store: CacheStore):
        """Restore puts back the exact entry captured in the snapshot."""
        store.set("k", "original")
        snapshot = store.snapshot("k")
        store.set("k", "optimistic", optimistic=True)

        assert store.restore(snapshot)
        entry = store.get("k").unwrap()
        assert entry.value == "original"
        assert entry.version == 1
        assert not entry.dirty

    def test_restore_of_absent_key_removes_it(self, store: CacheStore):
        """A snapshot of a missing key rolls back to missing, not to None."""
        snapshot = store.snapshot("k")
        assert snapshot.value == Nothing()
        assert snapshot.version == 0

        store.set("k", "optimistic", optimistic=True)
        assert store.restore(snapshot)
        assert "k" not in store

    def test_stale_snapshot_is_not_restored(self, store: CacheStore, log_messages):
        """A commit newer than the snapshot wins over the rollback."""
        store.set("k", "v1")
        snapshot = store.snapshot("k")
        store.set("k", "optimistic", optimistic=True)
        store.set("k", "v2-from-server")

        assert not store.restore(snapshot)
        assert store.get_current("k") == Some("v2-from-server")
        assert any("Skipping stale rollback" in m for m in log_messages)

    def test_snapshot_value(self, store: CacheStore):
        """Snapshot exposes the captured value as an Option."""
        store.set("k", 42)
        snapshot: Snapshot[int] = store.snapshot("k")
        assert snapshot.value == Some(42)
        assert snapshot.version == 1


class TestInvalidation:
    """Test prefix invalidation and subscriptions."""

    def test_invalidate_marks_prefix_stale(self, store: CacheStore):
        """Only keys under the given prefixes are marked."""
        store.set(("cart", "u-1"), "a")
        store.set(("cart", "u-2"), "b")
        store.set(("stock",), "c")

        assert store.invalidate([("cart",)]) == 2
        assert store.get(("cart", "u-1")).unwrap().stale
        assert store.get(("cart", "u-2")).unwrap().stale
        assert not store.get(("stock",)).unwrap().stale

    def test_invalidate_nothing(self, store: CacheStore):
        """An empty prefix list marks nothing."""
        store.set("k", 1)
        assert store.invalidate([]) == 0

    def test_subscribers_receive_events(self, store: CacheStore):
        """Subscribers see sets, invalidations and removals for their key."""
        events = []
        unsubscribe = store.subscribe(("cart", "u-1"), events.append)

        store.set(("cart", "u-1"), "a")
        store.invalidate([("cart",)])
        store.remove(("cart", "u-1"))
        store.set(("cart", "u-2"), "other")

        assert [e.kind for e in events] == [
            CacheEventKind.SET,
            CacheEventKind.INVALIDATED,
            CacheEventKind.REMOVED,
        ]

        unsubscribe()
        store.set(("cart", "u-1"), "b")
        assert len(events) == 3

    def test_failing_subscriber_does_not_block_others(self, store: CacheStore, log_messages):
        """A raising subscriber is logged; later subscribers still run."""
        seen = []

        def broken(event):
            raise RuntimeError("subscriber bug")

        store.subscribe("k", broken)
        store.subscribe("k", seen.append)
        store.set("k", 1)

        assert len(seen) == 1
        assert any("Cache subscriber" in m for m in log_messages)


class TestRefetch:
    """Test background refetch of registered keys."""

    async def test_invalidate_refetches_registered_key(self, store: CacheStore, flush):
        """Invalidation schedules a refetch whose result is committed."""

        async def fetch():
            return "fresh"

        store.set("k", "old")
        store.register("k", fetch)
        store.invalidate(["k"])
        await flush()

        entry = store.get("k").unwrap()
        assert entry.value == "fresh"
        assert entry.version == 2
        assert not entry.stale

    async def test_refetch_without_fetcher(self, store: CacheStore):
        """Keys without a fetcher are never refetched."""
        assert store.refetch("k") is None

    async def test_held_key_is_not_refetched(self, store: CacheStore):
        """A key owned by a mutation does not start a refetch."""

        async def fetch():
            return "fresh"

        store.register("k", fetch)
        store.hold("k")
        assert store.is_held("k")
        assert store.refetch("k") is None

        store.release("k")
        task = store.refetch("k")
        assert task is not None
        await task
        assert store.get_current("k") == Some("fresh")

    async def test_invalidation_while_held_is_replayed_on_release(self, store: CacheStore, flush):
        """A rollback cannot erase an invalidation that arrived during the hold."""
        fetched = []

        async def fetch():
            fetched.append("k")
            return "fresh"

        store.set("k", "v1")
        store.register("k", fetch)
        snapshot = store.snapshot("k")
        store.hold("k")
        store.set("k", "optimistic", optimistic=True)

        store.invalidate(["k"])
        store.restore(snapshot)
        assert not store.get("k").unwrap().stale

        events = []
        store.subscribe("k", events.append)
        store.release("k")

        assert store.get("k").unwrap().stale
        assert [e.kind for e in events] == [CacheEventKind.INVALIDATED]
        await flush()
        assert fetched == ["k"]
        assert store.get_current("k") == Some("fresh")

    async def test_release_without_invalidation_is_quiet(self, store: CacheStore, flush):
        """Releasing an untouched key neither marks it stale nor refetches."""
        fetched = []

        async def fetch():
            fetched.append("k")
            return "fresh"

        store.set("k", "v1")
        store.register("k", fetch)
        store.hold("k")
        store.release("k")
        await flush()

        assert not store.get("k").unwrap().stale
        assert fetched == []

    async def test_result_landing_on_held_key_is_dropped(self, store: CacheStore):
        """An in-flight refetch never overwrites a key held by a mutation."""
        gate = asyncio.Event()

        async def fetch():
            await gate.wait()
            return "from-server"

        store.set("k", "optimistic", optimistic=True)
        store.register("k", fetch)
        task = store.refetch("k")
        await asyncio.sleep(0)

        store.hold("k")
        gate.set()
        await task

        assert store.get_current("k") == Some("optimistic")

    async def test_cancel_refetch(self, store: CacheStore):
        """A pending refetch can be cancelled."""
        gate = asyncio.Event()

        async def fetch():
            await gate.wait()
            return "never"

        store.register("k", fetch)
        store.refetch("k")
        assert store.pending_refetches() == (("k",),)

        assert store.cancel_refetch("k")
        await asyncio.sleep(0)
        assert store.pending_refetches() == ()
        assert "k" not in store

    async def test_failed_refetch_keeps_entry(self, store: CacheStore, log_messages):
        """A fetch error is logged and the stale entry stays."""

        async def fetch():
            raise ConnectionError("backend down")

        store.set("k", "old")
        store.register("k", fetch)
        task = store.refetch("k")
        await task

        entry = store.get("k").unwrap()
        assert entry.value == "old"
        assert any("Refetch of ('k',) failed: backend down" in m for m in log_messages)

    def test_refetch_outside_event_loop(self, store: CacheStore):
        """Without a running loop nothing is scheduled."""

        async def fetch():
            return "fresh"

        store.register("k", fetch)
        assert store.refetch("k") is None

    async def test_aclose_cancels_pending(self, store: CacheStore):
        """aclose leaves no refetch running."""
        gate = asyncio.Event()

        async def fetch():
            await gate.wait()

        store.register("a", fetch)
        store.register("b", fetch)
        store.invalidate(["a", "b"])
        assert len(store.pending_refetches()) == 2

        await store.aclose()
        assert store.pending_refetches() == ()


@pytest.mark.parametrize("key", ["cart", ("cart",), ("cart", "u-1", "detail")])
def test_as_key_is_idempotent(key):
    """Normalizing twice gives the same key."""
    assert as_key(as_key(key)) == as_key(key)
