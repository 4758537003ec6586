"""
Mutation builder — fluent description of one optimistic mutation.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any

from optimist._types import RemoteOp
from optimist.cache import CacheKey, KeyLike, as_key
from optimist.mutation._types import Projector


@dataclass(frozen=True, slots=True)
class Mutation[T]:
    """
    Immutable mutation description. Each method returns a new Mutation.

    Example:
        m = (
            M.mutation(("cart", "u-1"), add_item(product, 2), lambda: service.add_item(product, 2))
            .invalidates(("cart", "u-1"), ("stock", "u-1"))
            .broadcasts("cart-item-added", {"product_id": product.id, "quantity": 2})
            .describe("add_to_cart", entity_id=product.id, user_id="u-1")
        )
        outcome = await coordinator.run(m)
    """

    key: CacheKey
    projector: Projector[T]
    remote: RemoteOp[T]
    related: tuple[CacheKey, ...] = ()
    event: str | None = None
    payload: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    operation: str = "mutation"
    entity_id: str | None = None
    user_id: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    retry: RemoteOp[Any] | None = None

    def invalidates(self, *keys: KeyLike) -> Mutation[T]:
        """Keys invalidated after settle (prefix match)."""
        return replace(self, related=self.related + tuple(as_key(k) for k in keys))

    def broadcasts(self, event: str, payload: Mapping[str, Any] | None = None) -> Mutation[T]:
        return replace(
            self,
            event=event,
            payload=MappingProxyType({**self.payload, **(payload or {})}),
        )

    def describe(
        self,
        operation: str,
        *,
        entity_id: str | None = None,
        user_id: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> Mutation[T]:
        """Name the operation and the entities recovery should know about."""
        return replace(
            self,
            operation=operation,
            entity_id=entity_id if entity_id is not None else self.entity_id,
            user_id=user_id if user_id is not None else self.user_id,
            metadata=MappingProxyType({**self.metadata, **(metadata or {})}),
        )

    def retries_with(self, op: RemoteOp[Any]) -> Mutation[T]:
        """Operation re-run by RETRY recovery (defaults to `remote`)."""
        return replace(self, retry=op)

    @property
    def retry_op(self) -> RemoteOp[Any]:
        return self.retry if self.retry is not None else self.remote


def mutation[T](key: KeyLike, projector: Projector[T], remote: RemoteOp[T]) -> Mutation[T]:
    """Start building a mutation."""
    return Mutation(key=as_key(key), projector=projector, remote=remote)


__all__ = ("Mutation", "mutation")
