"""
Cart domain — types + pure projectors.

Projectors take the cached cart (Nothing when absent) and return the
optimistic cart. They never touch the cache or the network.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from kungfu import Option, Some

from optimist.mutation import Projector

# ═══════════════════════════════════════════════════════════════════════════════
# Types
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Product:
    id: str
    name: str
    price: Decimal
    stock_quantity: int = 0
    is_pre_order: bool = False
    min_pre_order_quantity: int | None = None
    max_pre_order_quantity: int | None = None


@dataclass(frozen=True, slots=True)
class CartItem:
    product: Product
    quantity: int

    @property
    def subtotal(self) -> Decimal:
        return self.product.price * self.quantity


@dataclass(frozen=True, slots=True)
class CartState:
    items: tuple[CartItem, ...] = ()
    total: Decimal = Decimal("0")

    @classmethod
    def of(cls, items: tuple[CartItem, ...] | list[CartItem]) -> CartState:
        """Build a cart with the total recomputed from prices."""
        items = tuple(items)
        return cls(items=items, total=sum((i.subtotal for i in items), Decimal("0")))

    def quantity_of(self, product_id: str) -> int:
        return sum(i.quantity for i in self.items if i.product.id == product_id)

    @property
    def count(self) -> int:
        return sum(i.quantity for i in self.items)


EMPTY_CART = CartState()


def _current(cart: Option[CartState]) -> CartState:
    match cart:
        case Some(state):
            return state
        case _:
            return EMPTY_CART


# ═══════════════════════════════════════════════════════════════════════════════
# Projectors
# ═══════════════════════════════════════════════════════════════════════════════


def add_item(product: Product, quantity: int = 1) -> Projector[CartState]:
    """Add `quantity` of `product`, merging with an existing line."""

    def project(cart: Option[CartState]) -> CartState:
        state = _current(cart)
        if any(i.product.id == product.id for i in state.items):
            items = [
                CartItem(i.product, i.quantity + quantity) if i.product.id == product.id else i
                for i in state.items
            ]
        else:
            items = [*state.items, CartItem(product, quantity)]
        return CartState.of(items)

    return project


def remove_item(product_id: str) -> Projector[CartState]:
    def project(cart: Option[CartState]) -> CartState:
        state = _current(cart)
        return CartState.of([i for i in state.items if i.product.id != product_id])

    return project


def update_quantity(product_id: str, quantity: int) -> Projector[CartState]:
    """Set a line's quantity; zero or less drops the line."""

    def project(cart: Option[CartState]) -> CartState:
        state = _current(cart)
        items = [
            CartItem(i.product, quantity) if i.product.id == product_id else i
            for i in state.items
        ]
        return CartState.of([i for i in items if i.quantity > 0])

    return project


def clear() -> Projector[CartState]:
    def project(cart: Option[CartState]) -> CartState:
        return EMPTY_CART

    return project


__all__ = (
    "Product",
    "CartItem",
    "CartState",
    "EMPTY_CART",
    "add_item",
    "remove_item",
    "update_quantity",
    "clear",
)
