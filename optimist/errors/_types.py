"""
Error types — taxonomy, structured failure, error context.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

from optimist._types import utcnow

# ═══════════════════════════════════════════════════════════════════════════════
# ErrorKind — Closed Taxonomy
# ═══════════════════════════════════════════════════════════════════════════════


class ErrorKind(Enum):
    """
    Every failure the system knows how to recover from.

    Values are the wire values used by the recovery boundary.
    """

    AUTHENTICATION_REQUIRED = "authentication_required"
    VALIDATION_FAILED = "validation_failed"
    PAYMENT_FAILED = "payment_failed"
    STOCK_UPDATE_FAILED = "stock_update_failed"
    ORDER_CREATION_FAILED = "order_creation_failed"
    NOTIFICATION_FAILED = "notification_failed"
    DATABASE_ERROR = "database_error"
    NETWORK_ERROR = "network_error"
    SYSTEM_ERROR = "system_error"


TRANSIENT_KINDS: frozenset[ErrorKind] = frozenset(
    {
        ErrorKind.NOTIFICATION_FAILED,
        ErrorKind.DATABASE_ERROR,
        ErrorKind.NETWORK_ERROR,
    }
)


def is_retryable(kind: ErrorKind) -> bool:
    """
    True for transient infrastructure failures.

    Auth, validation and business-rule failures are never retried.
    """
    return kind in TRANSIENT_KINDS


# ═══════════════════════════════════════════════════════════════════════════════
# MutationFailure — Structured Exception
# ═══════════════════════════════════════════════════════════════════════════════


class MutationFailure(Exception):
    """
    Structured failure raised by remote operations and services.

    Carries the kind directly so the classifier never has to read the message.

    Example:
        raise MutationFailure(
            ErrorKind.STOCK_UPDATE_FAILED,
            "only 2 left",
            code="STOCK_INSUFFICIENT",
            user_message="Not enough items in stock",
            metadata={"product_id": "p-1", "requested_quantity": 5},
        )
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        code: str | None = None,
        user_message: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.code = code or kind.value.upper()
        self.message = message
        self.user_message = user_message
        self.metadata: Mapping[str, Any] = dict(metadata or {})

    def __repr__(self) -> str:
        return f"MutationFailure({self.kind.name}, {self.message!r}, code={self.code!r})"


# ═══════════════════════════════════════════════════════════════════════════════
# ErrorContext — Input to Recovery
# ═══════════════════════════════════════════════════════════════════════════════


def _frozen(metadata: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(metadata or {}))


@dataclass(frozen=True, slots=True)
class ErrorContext:
    """
    Everything recovery needs to know about one failure.

    Immutable once built; `bump()` derives the context for the next attempt.
    """

    error_kind: ErrorKind
    operation: str
    original_message: str
    related_entity_id: str | None = None
    related_user_id: str | None = None
    retry_count: int = 0
    timestamp: datetime = field(default_factory=utcnow)
    metadata: Mapping[str, Any] = field(default_factory=lambda: _frozen(None))

    def __post_init__(self) -> None:
        if self.retry_count < 0:
            raise ValueError(f"retry_count must be >= 0, got {self.retry_count}")
        if not isinstance(self.metadata, MappingProxyType):
            object.__setattr__(self, "metadata", _frozen(self.metadata))

    @property
    def idempotency_key(self) -> str:
        """
        Key under which at most one compensation is applied.

        Derived from (operation, kind, entity, user); an explicit
        `metadata["idempotency_key"]` wins.
        """
        explicit = self.metadata.get("idempotency_key")
        if explicit:
            return str(explicit)
        return ":".join(
            (
                "recovery",
                self.operation,
                self.error_kind.value,
                self.related_entity_id or "-",
                self.related_user_id or "-",
            )
        )

    def bump(self, attempts: int = 1) -> ErrorContext:
        return replace(self, retry_count=self.retry_count + attempts)

    def with_metadata(self, **values: Any) -> ErrorContext:
        return replace(self, metadata={**self.metadata, **values})


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "ErrorKind",
    "TRANSIENT_KINDS",
    "is_retryable",
    "MutationFailure",
    "ErrorContext",
)
