"""
Broadcast types.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from optimist.cache import CacheKey, Unsubscribe

# ═══════════════════════════════════════════════════════════════════════════════
# Channel
# ═══════════════════════════════════════════════════════════════════════════════


class BroadcastChannel(Protocol):
    """
    Best-effort fire-and-forget delivery to other cache holders.

    Implementations may raise; the broadcaster logs and drops the error.
    """

    async def send(self, event_name: str, payload: Mapping[str, Any]) -> None: ...


type Listener = Callable[[str, Mapping[str, Any]], None]
"""Receives (event_name, payload) from other holders."""


class ListenableChannel(BroadcastChannel, Protocol):
    """A channel that can also deliver events sent by other origins."""

    @property
    def origin(self) -> str: ...

    def listen(self, listener: Listener) -> Unsubscribe: ...


# ═══════════════════════════════════════════════════════════════════════════════
# Report
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class SettleReport:
    """What on_settled did. Delivery failure is informational only."""

    event: str
    keys: tuple[CacheKey, ...]
    invalidated: int
    delivered: bool
    error: str | None = None


# ═══════════════════════════════════════════════════════════════════════════════
# Payload keys
# ═══════════════════════════════════════════════════════════════════════════════


def encode_keys(keys: tuple[CacheKey, ...]) -> list[list[str]]:
    """JSON-friendly form of cache keys."""
    return [list(k) for k in keys]


def decode_keys(raw: Any) -> tuple[CacheKey, ...]:
    if not raw:
        return ()
    return tuple(tuple(str(part) for part in key) for key in raw)


__all__ = (
    "BroadcastChannel",
    "Listener",
    "ListenableChannel",
    "SettleReport",
    "encode_keys",
    "decode_keys",
)
