"""
Cache key factories with user isolation.

    cart_keys.all("u-1")                      # ("cart", "u-1")
    cart_keys.all(None)                       # ("cart",)
    cart_keys.all(None, fallback_to_global=True)  # ("cart", "global-fallback")
    stock_keys.all("u-1")                     # ("stock",)   global entity
    cart_keys.detail("p-1", "u-1")            # ("cart", "u-1", "detail", "p-1")
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from loguru import logger

from optimist.cache import CacheKey

GLOBAL_FALLBACK = "global-fallback"


class Isolation(Enum):
    USER_SPECIFIC = "user-specific"
    ADMIN_GLOBAL = "admin-global"
    GLOBAL = "global"


def _filters_part(filters: Mapping[str, Any] | str) -> str:
    if isinstance(filters, str):
        return filters
    return ",".join(f"{k}={filters[k]}" for k in sorted(filters))


@dataclass(frozen=True, slots=True)
class KeyFactory:
    """Builds every cache key of one entity."""

    entity: str
    isolation: Isolation

    def all(self, user_id: str | None = None, *, fallback_to_global: bool = False) -> CacheKey:
        if self.isolation is Isolation.USER_SPECIFIC:
            if user_id:
                return (self.entity, user_id)
            if fallback_to_global:
                logger.warning(f"{self.entity} falling back to global key (user id unavailable)")
                return (self.entity, GLOBAL_FALLBACK)
        return (self.entity,)

    def lists(self, user_id: str | None = None, *, fallback_to_global: bool = False) -> CacheKey:
        return (*self.all(user_id, fallback_to_global=fallback_to_global), "list")

    def list(
        self,
        filters: Mapping[str, Any] | str,
        user_id: str | None = None,
        *,
        fallback_to_global: bool = False,
    ) -> CacheKey:
        return (
            *self.lists(user_id, fallback_to_global=fallback_to_global),
            _filters_part(filters),
        )

    def details(self, user_id: str | None = None, *, fallback_to_global: bool = False) -> CacheKey:
        return (*self.all(user_id, fallback_to_global=fallback_to_global), "detail")

    def detail(
        self,
        id: str,
        user_id: str | None = None,
        *,
        fallback_to_global: bool = False,
    ) -> CacheKey:
        return (*self.details(user_id, fallback_to_global=fallback_to_global), id)

    def stats(self, user_id: str | None = None, *, fallback_to_global: bool = False) -> CacheKey:
        return (*self.all(user_id, fallback_to_global=fallback_to_global), "stats")

    def all_possible_keys(self, user_id: str | None = None) -> tuple[CacheKey, ...]:
        """Primary key plus, for user-specific entities, every fallback."""
        keys = [self.all(user_id)]
        if self.isolation is Isolation.USER_SPECIFIC:
            keys.extend([(self.entity, GLOBAL_FALLBACK), (self.entity,)])
        return tuple(dict.fromkeys(keys))

    def invalidation_keys(
        self,
        user_id: str | None = None,
        *,
        include_fallbacks: bool = False,
    ) -> tuple[CacheKey, ...]:
        if include_fallbacks:
            return self.all_possible_keys(user_id)
        return (self.all(user_id),)


cart_keys = KeyFactory("cart", Isolation.USER_SPECIFIC)
order_keys = KeyFactory("orders", Isolation.USER_SPECIFIC)
stock_keys = KeyFactory("stock", Isolation.GLOBAL)
product_keys = KeyFactory("products", Isolation.GLOBAL)


__all__ = (
    "GLOBAL_FALLBACK",
    "Isolation",
    "KeyFactory",
    "cart_keys",
    "order_keys",
    "stock_keys",
    "product_keys",
)
