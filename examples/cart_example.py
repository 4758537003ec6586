"""
Cart — optimistic cart writes with rollback and compensation.

Key concepts:
- CacheStore = one per process, passed to everything that reads or writes
- MutationCoordinator = the only writer of optimistic state
- RecoveryExecutor = decides what happens after a rollback
- BroadcastHub = keeps a second cache holder (another tab) in sync

Level 5: optimist.commerce
Level 4: optimist.mutation, optimist.recovery
Level 3: combinators.retry
Level 2: kungfu.Result
"""

import asyncio
from decimal import Decimal

from kungfu import Ok, Error, Some

from optimist import broadcast as B
from optimist import cache as C
from optimist import commerce as K
from optimist import errors as X
from optimist import mutation as M
from optimist import recovery as R
from optimist.config import OptimistSettings
from optimist.log import configure_from_settings


# ═══════════════════════════════════════════════════════════════════════════════
# Fake backend (in a real app: HTTP/RPC client)
# ═══════════════════════════════════════════════════════════════════════════════


class FakeCartBackend:
    """Authoritative cart that enforces stock."""

    def __init__(self, stock: dict[str, int]) -> None:
        self.stock = stock
        self.cart = K.EMPTY_CART

    async def get_cart(self) -> K.CartState:
        await asyncio.sleep(0.01)
        return self.cart

    async def add_item(self, product: K.Product, quantity: int) -> K.CartState:
        await asyncio.sleep(0.05)
        wanted = self.cart.quantity_of(product.id) + quantity
        if wanted > self.stock.get(product.id, 0):
            raise X.MutationFailure(
                X.ErrorKind.STOCK_UPDATE_FAILED,
                f"Insufficient stock for {product.id}",
                code="STOCK_INSUFFICIENT",
                metadata={"available": self.stock.get(product.id, 0)},
            )
        self.cart = K.add_item(product, quantity)(Some(self.cart))
        return self.cart

    async def remove_item(self, product_id: str) -> K.CartState:
        await asyncio.sleep(0.05)
        self.cart = K.remove_item(product_id)(Some(self.cart))
        return self.cart

    async def update_quantity(self, product_id: str, quantity: int) -> K.CartState:
        await asyncio.sleep(0.05)
        self.cart = K.update_quantity(product_id, quantity)(Some(self.cart))
        return self.cart

    async def clear_cart(self) -> K.CartState:
        await asyncio.sleep(0.05)
        self.cart = K.EMPTY_CART
        return self.cart


async def recover_rpc(request: R.BoundaryRequest) -> dict[str, object]:
    """Stands in for the atomic recovery procedure on the server."""
    print(f"   [rpc] {request.requested_action.value} for {request.error_kind.value}")
    return {
        "success": True,
        "action": request.requested_action.value,
        "attempts": 1,
        "recovered": True,
        "compensation_applied": True,
        "message": f"Successfully compensated for {request.error_kind.value}",
    }


def show(label: str, cart: K.CartState) -> None:
    lines = ", ".join(f"{i.product.name}×{i.quantity}" for i in cart.items) or "empty"
    print(f"   {label}: {lines} (total {cart.total})")


# ═══════════════════════════════════════════════════════════════════════════════
# Main
# ═══════════════════════════════════════════════════════════════════════════════


async def main() -> None:
    settings = OptimistSettings(base_delay_ms=50)
    configure_from_settings(settings)

    widget = K.Product(id="p-1", name="Widget", price=Decimal("9.99"), stock_quantity=3)

    # Two holders of the same data: this tab and another one.
    hub = B.BroadcastHub()
    store = C.CacheStore()
    other_tab = C.CacheStore()
    B.attach(other_tab, hub.channel("tab-b"))

    executor = R.RecoveryExecutor(
        R.boundary_from(recover_rpc),
        config=R.RecoveryConfig.from_settings(settings),
        journal=R.ErrorJournal.from_settings(settings),
    )
    coordinator = M.MutationCoordinator(
        store,
        executor,
        B.InvalidationBroadcaster(store, hub.channel("tab-a"), origin="tab-a"),
    )

    backend = FakeCartBackend(stock={"p-1": 3})
    cart = K.CartMutations(coordinator, backend, user_id="u-1")
    other_tab.set(cart.key, K.EMPTY_CART)

    print("1. Add 2 widgets (optimistic, then confirmed):")
    pending = asyncio.create_task(cart.add_item(widget, 2))
    await asyncio.sleep(0.01)
    show("in flight", cart.current())
    match await pending:
        case Ok(committed):
            show(f"committed v{committed.version}", committed.value)
        case Error(failed):
            print(f"   failed: {failed.user_message}")
    print(f"   other tab stale: {other_tab.get(cart.key).unwrap().stale}")

    print("\n2. Check stock before adding 5 more:")
    check = K.validate_stock(widget, 5, cart.quantity_of(widget.id))
    print(f"   valid={check.is_valid} message={check.message!r}")

    print("\n3. Add 5 anyway (server rejects, cart rolls back):")
    match await cart.add_item(widget, 5):
        case Ok(committed):
            show("committed", committed.value)
        case Error(failed):
            print(f"   {failed.error_kind.value} → {failed.action.value}: {failed.user_message}")
            show("after rollback", cart.current())
            result = await failed.recovery_result()
            if result is not None:
                print(f"   recovery: success={result.success} compensated={result.compensation_applied}")

    print("\n4. Anonymous user:")
    anonymous = K.CartMutations(coordinator, backend, user_id=None)
    match await anonymous.add_item(widget, 1):
        case Error(failed):
            print(f"   {failed.error_kind.value}: {failed.user_message}")
        case Ok(_):
            print("   unexpected commit")

    await coordinator.drain()
    await store.aclose()

    metrics = executor.journal.metrics()
    print(f"\nRecovery metrics: total={metrics.total} success_rate={metrics.recovery_success_rate:.0%}")
    print("\nDone!")


if __name__ == "__main__":
    asyncio.run(main())
