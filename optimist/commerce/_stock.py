"""
Stock validation — may the user put N more of a product into the cart?
"""

from __future__ import annotations

from dataclasses import dataclass

from optimist.commerce._cart import Product

DEFAULT_MIN_PRE_ORDER = 1
DEFAULT_MAX_PRE_ORDER = 999


@dataclass(frozen=True, slots=True)
class StockLevel:
    """Fresh stock figures; override the product's own fields when known."""

    product_id: str
    available: int
    is_pre_order: bool = False
    min_pre_order_quantity: int | None = None
    max_pre_order_quantity: int | None = None


@dataclass(frozen=True, slots=True)
class StockValidation:
    is_valid: bool
    available_stock: int
    current_cart_quantity: int
    max_allowed_quantity: int
    can_add_more: bool
    remaining_stock: int
    message: str | None = None


def validate_stock(
    product: Product,
    requested: int,
    cart_quantity: int,
    stock: StockLevel | None = None,
) -> StockValidation:
    """
    Check `cart_quantity + requested` against stock or pre-order limits.

    Example:
        validate_stock(product, 3, cart_quantity=1)   # 5 in stock
        # StockValidation(is_valid=True, remaining_stock=4, ...)
    """
    available = stock.available if stock is not None else product.stock_quantity
    is_pre_order = stock.is_pre_order if stock is not None else product.is_pre_order
    total = cart_quantity + requested

    if is_pre_order:
        minimum = _first(
            stock.min_pre_order_quantity if stock else None,
            product.min_pre_order_quantity,
            DEFAULT_MIN_PRE_ORDER,
        )
        maximum = _first(
            stock.max_pre_order_quantity if stock else None,
            product.max_pre_order_quantity,
            DEFAULT_MAX_PRE_ORDER,
        )
        if total < minimum:
            return StockValidation(
                is_valid=False,
                available_stock=available,
                current_cart_quantity=cart_quantity,
                max_allowed_quantity=maximum,
                can_add_more=True,
                remaining_stock=maximum - cart_quantity,
                message=f"Minimum pre-order quantity is {minimum}",
            )
        if total > maximum:
            return StockValidation(
                is_valid=False,
                available_stock=available,
                current_cart_quantity=cart_quantity,
                max_allowed_quantity=maximum,
                can_add_more=cart_quantity < maximum,
                remaining_stock=max(0, maximum - cart_quantity),
                message=f"Maximum pre-order quantity is {maximum}",
            )
        return StockValidation(
            is_valid=True,
            available_stock=available,
            current_cart_quantity=cart_quantity,
            max_allowed_quantity=maximum,
            can_add_more=cart_quantity < maximum,
            remaining_stock=maximum - cart_quantity,
        )

    if total > available:
        return StockValidation(
            is_valid=False,
            available_stock=available,
            current_cart_quantity=cart_quantity,
            max_allowed_quantity=available,
            can_add_more=cart_quantity < available,
            remaining_stock=max(0, available - cart_quantity),
            message=f"Only {available} items available in stock",
        )
    return StockValidation(
        is_valid=True,
        available_stock=available,
        current_cart_quantity=cart_quantity,
        max_allowed_quantity=available,
        can_add_more=cart_quantity < available,
        remaining_stock=available - cart_quantity,
    )


def stock_status_message(
    product: Product,
    cart_quantity: int,
    stock: StockLevel | None = None,
) -> str:
    available = stock.available if stock is not None else product.stock_quantity
    is_pre_order = stock.is_pre_order if stock is not None else product.is_pre_order
    remaining = max(0, available - cart_quantity)

    if is_pre_order:
        if cart_quantity > 0:
            return f"Pre-order ({cart_quantity} in cart)"
        return "Available for pre-order"

    if remaining <= 0:
        if cart_quantity > 0:
            return f"Out of stock ({cart_quantity} in cart)"
        return "Out of stock"

    if cart_quantity > 0:
        return f"{remaining} available ({cart_quantity} in cart)"
    return f"{available} available"


def _first(*values: int | None) -> int:
    for value in values:
        if value is not None:
            return value
    raise ValueError("no value")


__all__ = (
    "DEFAULT_MIN_PRE_ORDER",
    "DEFAULT_MAX_PRE_ORDER",
    "StockLevel",
    "StockValidation",
    "validate_stock",
    "stock_status_message",
)
