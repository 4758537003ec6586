"""
Invalidation broadcaster — local invalidation + best-effort fan-out.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from combinators import lift as L
from kungfu import Ok, Error
from loguru import logger

from optimist._types import Clock, utcnow
from optimist.broadcast._types import BroadcastChannel, SettleReport, encode_keys
from optimist.cache import CacheStore, KeyLike, as_key
from optimist.errors import message_of


class InvalidationBroadcaster:
    """
    Runs after a mutation settles.

    Example:
        broadcaster = InvalidationBroadcaster(store, channel, origin="device-1")
        await broadcaster.on_settled(
            [("cart", "u-1"), ("stock", "u-1")],
            "cart-item-added",
            {"user_id": "u-1", "product_id": "p-1", "quantity": 2},
        )
    """

    def __init__(
        self,
        store: CacheStore,
        channel: BroadcastChannel | None = None,
        *,
        origin: str = "local",
        clock: Clock = utcnow,
    ) -> None:
        self._store = store
        self._channel = channel
        self._origin = origin
        self._clock = clock

    @property
    def origin(self) -> str:
        return self._origin

    async def on_settled(
        self,
        related_keys: Iterable[KeyLike],
        event: str,
        payload: Mapping[str, Any] | None = None,
    ) -> SettleReport:
        keys = tuple(as_key(k) for k in related_keys)
        invalidated = self._store.invalidate(keys)

        if self._channel is None:
            return SettleReport(event=event, keys=keys, invalidated=invalidated, delivered=False)

        channel = self._channel
        message = {
            **(payload or {}),
            "keys": encode_keys(keys),
            "origin": self._origin,
            "timestamp": self._clock().isoformat(),
        }
        outcome = await L.catching_async(
            lambda: channel.send(event, message),
            on_error=message_of,
        )

        match outcome:
            case Ok(_):
                logger.debug(f"Broadcast {event} for {len(keys)} keys")
                return SettleReport(
                    event=event, keys=keys, invalidated=invalidated, delivered=True
                )
            case Error(err):
                logger.warning(f"Broadcast of {event} failed: {err}")
                return SettleReport(
                    event=event,
                    keys=keys,
                    invalidated=invalidated,
                    delivered=False,
                    error=err,
                )

        raise AssertionError("unreachable")


__all__ = ("InvalidationBroadcaster",)
