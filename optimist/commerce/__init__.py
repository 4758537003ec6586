"""
Commerce — the cart built on the mutation coordinator.

    from optimist import commerce as K

    cart = K.CartMutations(coordinator, service, user_id="u-1")
    outcome = await cart.add_item(product, 2)

    check = K.validate_stock(product, 2, cart.quantity_of(product.id))
    if not check.is_valid:
        show(check.message)
"""

from __future__ import annotations

from optimist.commerce._cart import (
    Product,
    CartItem,
    CartState,
    EMPTY_CART,
    add_item,
    remove_item,
    update_quantity,
    clear,
)
from optimist.commerce._keys import (
    GLOBAL_FALLBACK,
    Isolation,
    KeyFactory,
    cart_keys,
    order_keys,
    stock_keys,
    product_keys,
)
from optimist.commerce._service import CartService
from optimist.commerce._stock import (
    DEFAULT_MIN_PRE_ORDER,
    DEFAULT_MAX_PRE_ORDER,
    StockLevel,
    StockValidation,
    validate_stock,
    stock_status_message,
)
from optimist.commerce._mutations import (
    ITEM_ADDED,
    ITEM_REMOVED,
    QUANTITY_UPDATED,
    CLEARED,
    CartMutations,
)

__all__ = (
    # Cart
    "Product",
    "CartItem",
    "CartState",
    "EMPTY_CART",
    "add_item",
    "remove_item",
    "update_quantity",
    "clear",
    # Keys
    "GLOBAL_FALLBACK",
    "Isolation",
    "KeyFactory",
    "cart_keys",
    "order_keys",
    "stock_keys",
    "product_keys",
    # Service
    "CartService",
    # Stock
    "DEFAULT_MIN_PRE_ORDER",
    "DEFAULT_MAX_PRE_ORDER",
    "StockLevel",
    "StockValidation",
    "validate_stock",
    "stock_status_message",
    # Mutations
    "ITEM_ADDED",
    "ITEM_REMOVED",
    "QUANTITY_UPDATED",
    "CLEARED",
    "CartMutations",
)
