"""
Cart mutations — coordinated cart writes for one user.
"""

from __future__ import annotations

from typing import Any

from kungfu import Error
from loguru import logger

from optimist.cache import CacheKey
from optimist.commerce._cart import (
    CartState,
    EMPTY_CART,
    Product,
    add_item,
    clear,
    remove_item,
    update_quantity,
)
from optimist.commerce._keys import cart_keys, order_keys, stock_keys
from optimist.commerce._service import CartService
from optimist.errors import ErrorContext, ErrorKind, user_message
from optimist.mutation import (
    Mutation,
    MutationCoordinator,
    MutationOutcome,
    MutationRolledBack,
    mutation,
)
from optimist.recovery import RecoveryAction

ITEM_ADDED = "cart-item-added"
ITEM_REMOVED = "cart-item-removed"
QUANTITY_UPDATED = "cart-quantity-updated"
CLEARED = "cart-cleared"


class CartMutations:
    """
    Cart operations for one (possibly anonymous) user.

    Every operation is an optimistic mutation on the user's cart key that
    invalidates cart, stock and order keys and broadcasts a cart event.
    Without a user every operation fails with AUTHENTICATION_REQUIRED and
    leaves the cache untouched.

    Example:
        cart = CartMutations(coordinator, service, user_id="u-1")
        match await cart.add_item(product, 2):
            case Ok(committed):
                render(committed.value)
            case Error(failed):
                toast(failed.user_message)
    """

    def __init__(
        self,
        coordinator: MutationCoordinator,
        service: CartService,
        user_id: str | None,
    ) -> None:
        self._coordinator = coordinator
        self._service = service
        self._user_id = user_id
        if user_id:
            coordinator.store.register(self.key, service.get_cart)

    @property
    def user_id(self) -> str | None:
        return self._user_id

    @property
    def key(self) -> CacheKey:
        return cart_keys.all(self._user_id)

    @property
    def related(self) -> tuple[CacheKey, ...]:
        return (
            cart_keys.all(self._user_id),
            stock_keys.all(self._user_id),
            order_keys.all(self._user_id),
        )

    # ───────────────────────────────────────────────────────────────────────────
    # Reads
    # ───────────────────────────────────────────────────────────────────────────

    def current(self) -> CartState:
        return self._coordinator.store.get_current(self.key).unwrap_or(EMPTY_CART)

    def quantity_of(self, product_id: str) -> int:
        return self.current().quantity_of(product_id)

    # ───────────────────────────────────────────────────────────────────────────
    # Mutations
    # ───────────────────────────────────────────────────────────────────────────

    async def add_item(self, product: Product, quantity: int = 1) -> MutationOutcome[CartState]:
        return await self._run(
            mutation(self.key, add_item(product, quantity), lambda: self._service.add_item(product, quantity))
            .describe(
                "add_to_cart",
                entity_id=product.id,
                metadata={"product_id": product.id, "requested_quantity": quantity},
            ),
            ITEM_ADDED,
            {"product_id": product.id, "quantity": quantity},
        )

    async def remove_item(self, product_id: str) -> MutationOutcome[CartState]:
        return await self._run(
            mutation(self.key, remove_item(product_id), lambda: self._service.remove_item(product_id))
            .describe("remove_from_cart", entity_id=product_id, metadata={"product_id": product_id}),
            ITEM_REMOVED,
            {"product_id": product_id},
        )

    async def update_quantity(self, product_id: str, quantity: int) -> MutationOutcome[CartState]:
        return await self._run(
            mutation(
                self.key,
                update_quantity(product_id, quantity),
                lambda: self._service.update_quantity(product_id, quantity),
            ).describe(
                "update_cart_quantity",
                entity_id=product_id,
                metadata={"product_id": product_id, "quantity": quantity},
            ),
            QUANTITY_UPDATED,
            {"product_id": product_id, "quantity": quantity},
        )

    async def clear(self) -> MutationOutcome[CartState]:
        return await self._run(
            mutation(self.key, clear(), self._service.clear_cart).describe("clear_cart"),
            CLEARED,
            {},
        )

    async def _run(
        self,
        m: Mutation[CartState],
        event: str,
        payload: dict[str, Any],
    ) -> MutationOutcome[CartState]:
        if not self._user_id:
            return Error(self._unauthenticated(m))

        return await self._coordinator.run(
            m.describe(m.operation, user_id=self._user_id)
            .invalidates(*self.related)
            .broadcasts(event, {"user_id": self._user_id, **payload})
        )

    def _unauthenticated(self, m: Mutation[CartState]) -> MutationRolledBack:
        logger.info(f"{m.operation} rejected: no authenticated user")
        kind = ErrorKind.AUTHENTICATION_REQUIRED
        return MutationRolledBack(
            key=m.key,
            error_kind=kind,
            action=RecoveryAction.MANUAL_INTERVENTION,
            message="User not authenticated",
            user_message=user_message(kind),
            context=ErrorContext(
                error_kind=kind,
                operation=m.operation,
                original_message="User not authenticated",
                related_entity_id=m.entity_id,
                metadata=m.metadata,
            ),
            rolled_back=False,
        )


__all__ = (
    "ITEM_ADDED",
    "ITEM_REMOVED",
    "QUANTITY_UPDATED",
    "CLEARED",
    "CartMutations",
)
