"""
In-process broadcast hub — connects several cache holders in one process.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from loguru import logger

from optimist.broadcast._types import Listener, ListenableChannel, decode_keys
from optimist.cache import CacheStore, Unsubscribe


class HubChannel:
    """One holder's end of a BroadcastHub."""

    def __init__(self, hub: BroadcastHub, origin: str) -> None:
        self._hub = hub
        self._origin = origin
        self._listeners: list[Listener] = []

    @property
    def origin(self) -> str:
        return self._origin

    async def send(self, event_name: str, payload: Mapping[str, Any]) -> None:
        self._hub.deliver(self._origin, event_name, payload)

    def listen(self, listener: Listener) -> Unsubscribe:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _receive(self, event_name: str, payload: Mapping[str, Any]) -> None:
        for listener in tuple(self._listeners):
            try:
                listener(event_name, payload)
            except Exception:
                logger.exception(f"Broadcast listener on {self._origin} raised for {event_name}")


class BroadcastHub:
    """
    Fan-out between channels. A channel never receives its own events.

    Example:
        hub = BroadcastHub()
        tab_a, tab_b = hub.channel("tab-a"), hub.channel("tab-b")
        attach(store_b, tab_b)
        broadcaster_a = InvalidationBroadcaster(store_a, tab_a, origin="tab-a")
    """

    def __init__(self) -> None:
        self._channels: dict[str, HubChannel] = {}
        self.sent: list[tuple[str, str, Mapping[str, Any]]] = []

    def channel(self, origin: str) -> HubChannel:
        if origin not in self._channels:
            self._channels[origin] = HubChannel(self, origin)
        return self._channels[origin]

    def deliver(self, origin: str, event_name: str, payload: Mapping[str, Any]) -> int:
        """Hand an event to every other channel. Returns the number of receivers."""
        self.sent.append((origin, event_name, payload))
        receivers = [c for name, c in self._channels.items() if name != origin]
        for channel in receivers:
            channel._receive(event_name, payload)
        logger.debug(f"Broadcast {event_name} from {origin} to {len(receivers)} holders")
        return len(receivers)


def attach(store: CacheStore, channel: ListenableChannel) -> Unsubscribe:
    """
    Invalidate `store` for events other holders send on `channel`.

    Events carrying this channel's own origin are ignored.
    """

    def on_event(event_name: str, payload: Mapping[str, Any]) -> None:
        if payload.get("origin") == channel.origin:
            return
        keys = decode_keys(payload.get("keys"))
        if keys:
            logger.debug(f"{channel.origin} invalidating {len(keys)} keys for {event_name}")
            store.invalidate(keys)

    return channel.listen(on_event)


__all__ = ("HubChannel", "BroadcastHub", "attach")
