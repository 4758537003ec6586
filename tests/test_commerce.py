"""
Tests for the cart domain.

Covers:
- Pure cart projectors and totals
- Cache key factories with user isolation
- Stock and pre-order validation
- CartMutations end to end through the coordinator
"""

from decimal import Decimal

import pytest
from kungfu import Nothing, Some

from optimist.cache import CacheStore
from optimist.commerce import (
    CLEARED,
    EMPTY_CART,
    GLOBAL_FALLBACK,
    ITEM_ADDED,
    ITEM_REMOVED,
    QUANTITY_UPDATED,
    CartItem,
    CartMutations,
    CartState,
    Isolation,
    KeyFactory,
    Product,
    StockLevel,
    add_item,
    cart_keys,
    clear,
    order_keys,
    remove_item,
    stock_keys,
    stock_status_message,
    update_quantity,
    validate_stock,
)
from optimist.errors import ErrorKind
from optimist.mutation import RECOVERED_EVENT
from optimist.recovery import RecoveryAction


class TestProjectors:
    """Test the pure cart projections."""

    def test_add_to_absent_cart(self, widget):
        """Adding to a missing cart starts from empty."""
        cart = add_item(widget, 2)(Nothing())
        assert cart.items == (CartItem(widget, 2),)
        assert cart.total == Decimal("19.98")
        assert cart.count == 2

    def test_add_merges_lines(self, widget, gadget):
        """Adding an existing product increases its quantity."""
        cart = CartState.of([CartItem(widget, 1), CartItem(gadget, 1)])
        updated = add_item(widget, 2)(Some(cart))

        assert updated.quantity_of("p-1") == 3
        assert updated.quantity_of("p-2") == 1
        assert len(updated.items) == 2
        assert updated.total == Decimal("54.97")

    def test_remove(self, widget, gadget):
        """Removing drops the line and recomputes the total."""
        cart = CartState.of([CartItem(widget, 1), CartItem(gadget, 1)])
        updated = remove_item("p-2")(Some(cart))

        assert updated.items == (CartItem(widget, 1),)
        assert updated.total == Decimal("9.99")

    def test_update_quantity(self, widget):
        """Quantities are set, and zero removes the line."""
        cart = CartState.of([CartItem(widget, 1)])

        assert update_quantity("p-1", 4)(Some(cart)).quantity_of("p-1") == 4
        assert update_quantity("p-1", 0)(Some(cart)) == EMPTY_CART

    def test_clear(self, widget):
        """Clearing yields the empty cart."""
        cart = CartState.of([CartItem(widget, 3)])
        assert clear()(Some(cart)) == EMPTY_CART

    def test_projectors_are_pure(self, widget):
        """The input cart is never modified."""
        cart = CartState.of([CartItem(widget, 1)])
        add_item(widget, 5)(Some(cart))
        assert cart.quantity_of("p-1") == 1


class TestKeys:
    """Test cache key factories."""

    def test_user_specific(self):
        """User entities are scoped by user id."""
        assert cart_keys.all("u-1") == ("cart", "u-1")
        assert cart_keys.detail("p-1", "u-1") == ("cart", "u-1", "detail", "p-1")
        assert order_keys.stats("u-1") == ("orders", "u-1", "stats")

    def test_missing_user(self):
        """Without a user the entity root or the global fallback is used."""
        assert cart_keys.all(None) == ("cart",)
        assert cart_keys.all(None, fallback_to_global=True) == ("cart", GLOBAL_FALLBACK)

    def test_global_entities_ignore_user(self):
        """Global entities share one key space."""
        assert stock_keys.all("u-1") == ("stock",)
        assert stock_keys.all(None) == ("stock",)

    def test_list_filters_are_stable(self):
        """Filter order does not change the key."""
        keys = KeyFactory("products", Isolation.GLOBAL)
        assert keys.list({"b": 2, "a": 1}) == keys.list({"a": 1, "b": 2})
        assert keys.list({"a": 1}) == ("products", "list", "a=1")

    def test_invalidation_keys(self):
        """Fallback keys are included on request."""
        assert cart_keys.invalidation_keys("u-1") == (("cart", "u-1"),)
        assert cart_keys.invalidation_keys("u-1", include_fallbacks=True) == (
            ("cart", "u-1"),
            ("cart", GLOBAL_FALLBACK),
            ("cart",),
        )
        assert stock_keys.all_possible_keys("u-1") == (("stock",),)


class TestStockValidation:
    """Test stock and pre-order rules."""

    def test_within_stock(self, widget):
        """Requests within available stock are valid."""
        check = validate_stock(widget, 3, cart_quantity=1)
        assert check.is_valid
        assert check.remaining_stock == 4
        assert check.can_add_more
        assert check.message is None

    def test_exceeds_stock(self, widget):
        """Exceeding stock reports what is left."""
        check = validate_stock(widget, 3, cart_quantity=4)
        assert not check.is_valid
        assert check.message == "Only 5 items available in stock"
        assert check.remaining_stock == 1
        assert check.max_allowed_quantity == 5

    def test_fresh_stock_level_wins(self, widget):
        """Known stock figures override the product snapshot."""
        check = validate_stock(widget, 2, cart_quantity=0, stock=StockLevel("p-1", available=1))
        assert not check.is_valid
        assert check.message == "Only 1 items available in stock"

    def test_pre_order_limits(self):
        """Pre-orders are bounded by min/max, not stock."""
        product = Product(
            id="p-9",
            name="Preorder",
            price=Decimal("1"),
            is_pre_order=True,
            min_pre_order_quantity=2,
            max_pre_order_quantity=10,
        )
        assert validate_stock(product, 1, 0).message == "Minimum pre-order quantity is 2"
        assert validate_stock(product, 5, 6).message == "Maximum pre-order quantity is 10"
        assert validate_stock(product, 5, 0).is_valid

    def test_pre_order_defaults(self):
        """Missing pre-order limits default to 1..999."""
        product = Product(id="p-9", name="Preorder", price=Decimal("1"), is_pre_order=True)
        check = validate_stock(product, 999, 0)
        assert check.is_valid
        assert check.max_allowed_quantity == 999

    @pytest.mark.parametrize(
        ("stock", "in_cart", "message"),
        [
            (5, 0, "5 available"),
            (5, 2, "3 available (2 in cart)"),
            (0, 0, "Out of stock"),
            (2, 2, "Out of stock (2 in cart)"),
        ],
    )
    def test_status_messages(self, stock, in_cart, message):
        """Status text reflects stock and cart contents."""
        product = Product(id="p-1", name="Widget", price=Decimal("1"), stock_quantity=stock)
        assert stock_status_message(product, in_cart) == message

    def test_pre_order_status(self):
        """Pre-order products say so."""
        product = Product(id="p-9", name="Preorder", price=Decimal("1"), is_pre_order=True)
        assert stock_status_message(product, 0) == "Available for pre-order"
        assert stock_status_message(product, 3) == "Pre-order (3 in cart)"


class TestCartMutations:
    """Test cart operations through the coordinator."""

    async def test_add_item_commits_server_cart(
        self, coordinator, store: CacheStore, cart_service, channel, widget
    ):
        """The committed cart is the server's, and a cart event is broadcast."""
        cart = CartMutations(coordinator, cart_service, user_id="u-1")

        outcome = await cart.add_item(widget, 2)

        committed = outcome.unwrap()
        assert committed.value == cart_service.cart
        assert cart.quantity_of("p-1") == 2
        assert cart_service.calls == ["add_item"]

        name, payload = channel.sent[0]
        assert name == ITEM_ADDED
        assert payload["user_id"] == "u-1"
        assert payload["product_id"] == "p-1"
        assert payload["quantity"] == 2
        assert ["cart", "u-1"] in payload["keys"]
        assert ["stock"] in payload["keys"]
        assert ["orders", "u-1"] in payload["keys"]

    async def test_every_operation_broadcasts_its_event(
        self, coordinator, cart_service, channel, widget
    ):
        """Each cart operation has its own event name."""
        cart = CartMutations(coordinator, cart_service, user_id="u-1")

        await cart.add_item(widget, 1)
        await cart.update_quantity("p-1", 3)
        await cart.remove_item("p-1")
        await cart.clear()

        assert channel.events() == [ITEM_ADDED, QUANTITY_UPDATED, ITEM_REMOVED, CLEARED]
        assert cart_service.calls == ["add_item", "update_quantity", "remove_item", "clear_cart"]

    async def test_unauthenticated(self, coordinator, store: CacheStore, cart_service, channel, widget):
        """Without a user nothing is touched and the failure is typed."""
        cart = CartMutations(coordinator, cart_service, user_id=None)

        outcome = await cart.add_item(widget, 1)

        failed = outcome.error
        assert failed.error_kind is ErrorKind.AUTHENTICATION_REQUIRED
        assert failed.action is RecoveryAction.MANUAL_INTERVENTION
        assert failed.message == "User not authenticated"
        assert not failed.rolled_back
        assert failed.recovery is None
        assert await failed.recovery_result() is None
        assert cart_service.calls == []
        assert len(store) == 0
        assert channel.sent == []

    async def test_committed_cart_is_refetched_after_invalidation(
        self, coordinator, store: CacheStore, cart_service, widget, flush
    ):
        """The cart key is registered for refetch and converges on the server state."""
        cart = CartMutations(coordinator, cart_service, user_id="u-1")
        await cart.add_item(widget, 1)
        await flush()

        entry = store.get(cart.key).unwrap()
        assert entry.value == cart_service.cart
        assert not entry.stale

    async def test_stock_insufficient_rolls_back_and_compensates(
        self, coordinator, store: CacheStore, cart_service, channel, boundary, widget, stock_failure
    ):
        """Stock rejection: rollback, COMPENSATE, no retry, success=False."""
        cart = CartMutations(coordinator, cart_service, user_id="u-1")
        await cart.add_item(widget, 1)
        before = cart.current()
        cart_service.fail_with = stock_failure

        outcome = await cart.add_item(widget, 10)

        failed = outcome.error
        assert not failed.success
        assert not failed.recovered
        assert failed.rolled_back
        assert failed.error_kind is ErrorKind.STOCK_UPDATE_FAILED
        assert failed.action is RecoveryAction.COMPENSATE
        assert failed.user_message == "Not enough items in stock."
        assert cart.current() == before

        result = await failed.recovery_result()
        assert result.action is RecoveryAction.COMPENSATE
        assert boundary.calls == 1
        assert boundary.requests[0].requested_action is RecoveryAction.COMPENSATE
        assert boundary.requests[0].related_entity_id == "p-1"
        assert boundary.requests[0].related_user_id == "u-1"
        assert boundary.requests[0].metadata["requested_quantity"] == 10
        assert cart_service.calls == ["add_item", "add_item"]
        assert channel.events() == [ITEM_ADDED, RECOVERED_EVENT]
