"""
Mutation — optimistic writes with precise rollback.

    from optimist import mutation as M

    coordinator = M.MutationCoordinator(store, executor, broadcaster)

    outcome = await coordinator.run(
        M.mutation(("cart", "u-1"), add_item(product, 1), lambda: service.add_item(product, 1))
        .invalidates(("stock",))
        .broadcasts("cart-item-added", {"product_id": product.id})
        .describe("add_to_cart", entity_id=product.id, user_id="u-1")
    )

Same-key mutations run strictly one after another (FIFO); different keys
interleave freely. A failed remote call rolls the key back before `run`
returns; recovery continues in the background (`outcome.recovery`).
"""

from __future__ import annotations

from optimist.mutation._types import (
    MutationPhase,
    Projector,
    MutationCommitted,
    MutationRolledBack,
    MutationOutcome,
)
from optimist.mutation._lock import KeyLocks
from optimist.mutation._builder import Mutation, mutation
from optimist.mutation._coordinator import RECOVERED_EVENT, MutationCoordinator

__all__ = (
    "MutationPhase",
    "Projector",
    "MutationCommitted",
    "MutationRolledBack",
    "MutationOutcome",
    "KeyLocks",
    "Mutation",
    "mutation",
    "RECOVERED_EVENT",
    "MutationCoordinator",
)
