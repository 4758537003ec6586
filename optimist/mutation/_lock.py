"""
Per-key FIFO locks.

asyncio.Lock wakes waiters in arrival order and never lets a newcomer
jump a queued waiter, so one lock per key gives strict FIFO.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from optimist.cache import CacheKey


@dataclass(slots=True)
class _Slot:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class KeyLocks:
    """
    Lock per cache key, dropped once nobody holds or waits for it.

    Example:
        locks = KeyLocks()
        async with locks.hold(("cart", "u-1")):
            ...
    """

    def __init__(self) -> None:
        self._slots: dict[CacheKey, _Slot] = {}

    @asynccontextmanager
    async def hold(self, key: CacheKey) -> AsyncIterator[None]:
        slot = self._slots.get(key)
        if slot is None:
            slot = self._slots[key] = _Slot()
        slot.users += 1
        try:
            async with slot.lock:
                yield
        finally:
            slot.users -= 1
            if slot.users == 0:
                del self._slots[key]

    def busy(self, key: CacheKey) -> bool:
        slot = self._slots.get(key)
        return slot is not None and slot.lock.locked()

    def queued(self, key: CacheKey) -> int:
        """Mutations waiting behind the active one."""
        slot = self._slots.get(key)
        if slot is None:
            return 0
        return slot.users - 1 if slot.lock.locked() else slot.users

    def __len__(self) -> int:
        return len(self._slots)


__all__ = ("KeyLocks",)
