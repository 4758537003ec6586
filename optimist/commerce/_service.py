"""
Cart service — the authoritative remote store, as seen from the client.
"""

from __future__ import annotations

from typing import Protocol

from optimist.commerce._cart import CartState, Product


class CartService(Protocol):
    """
    Remote cart operations. Each mutation returns the authoritative cart.

    Implementations raise on failure, preferably MutationFailure with a
    structured kind (e.g. STOCK_UPDATE_FAILED for insufficient stock).
    """

    async def get_cart(self) -> CartState: ...

    async def add_item(self, product: Product, quantity: int) -> CartState: ...

    async def remove_item(self, product_id: str) -> CartState: ...

    async def update_quantity(self, product_id: str, quantity: int) -> CartState: ...

    async def clear_cart(self) -> CartState: ...


__all__ = ("CartService",)
