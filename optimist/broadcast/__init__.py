"""
Broadcast — invalidate locally, tell other cache holders.

    from optimist import broadcast as B

    hub = B.BroadcastHub()
    B.attach(other_store, hub.channel("tab-b"))

    broadcaster = B.InvalidationBroadcaster(store, hub.channel("tab-a"), origin="tab-a")
    await broadcaster.on_settled([("cart", "u-1")], "cart-cleared", {"user_id": "u-1"})
"""

from __future__ import annotations

from optimist.broadcast._types import (
    BroadcastChannel,
    Listener,
    ListenableChannel,
    SettleReport,
    encode_keys,
    decode_keys,
)
from optimist.broadcast._hub import HubChannel, BroadcastHub, attach
from optimist.broadcast._broadcaster import InvalidationBroadcaster

__all__ = (
    "BroadcastChannel",
    "Listener",
    "ListenableChannel",
    "SettleReport",
    "encode_keys",
    "decode_keys",
    "HubChannel",
    "BroadcastHub",
    "attach",
    "InvalidationBroadcaster",
)
