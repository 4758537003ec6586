"""
Recovery boundary — the remote atomic compensation entry point.

The boundary owns its own isolation: one call per recovery decision, and it
either applies the whole compensation or none of it.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Protocol

from optimist.errors import ErrorContext, ErrorKind
from optimist.recovery._types import RecoveryAction

# ═══════════════════════════════════════════════════════════════════════════════
# Request / Response
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class BoundaryRequest:
    """Full error context as sent to the boundary."""

    error_kind: ErrorKind
    operation: str
    original_message: str
    retry_count: int
    requested_action: RecoveryAction
    related_entity_id: str | None = None
    related_user_id: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_context(cls, context: ErrorContext, action: RecoveryAction) -> BoundaryRequest:
        return cls(
            error_kind=context.error_kind,
            operation=context.operation,
            original_message=context.original_message,
            retry_count=context.retry_count,
            requested_action=action,
            related_entity_id=context.related_entity_id,
            related_user_id=context.related_user_id,
            metadata=context.metadata,
        )

    def to_params(self) -> dict[str, Any]:
        """RPC parameter row (`input_*` names of the stored procedure)."""
        return {
            "input_error_type": self.error_kind.value,
            "input_order_id": self.related_entity_id,
            "input_user_id": self.related_user_id,
            "input_operation": self.operation,
            "input_original_error": self.original_message,
            "input_retry_count": self.retry_count,
            "input_metadata": dict(self.metadata),
            "input_requested_action": self.requested_action.value,
        }


@dataclass(frozen=True, slots=True)
class BoundaryResponse:
    """What the boundary reports back."""

    success: bool
    action: RecoveryAction
    attempts: int
    recovered: bool
    compensation_applied: bool
    message: str
    error: str | None = None

    @classmethod
    def from_mapping(
        cls,
        row: Mapping[str, Any],
        *,
        default_action: RecoveryAction = RecoveryAction.COMPENSATE,
    ) -> BoundaryResponse:
        """
        Parse the RPC's snake_case row.

        Example:
            BoundaryResponse.from_mapping({
                "success": True, "action": "compensate", "attempts": 1,
                "recovered": True, "compensation_applied": True,
                "message": "Successfully compensated for stock_update_failed",
            })
        """
        raw_action = row.get("action")
        success = bool(row.get("success", False))
        action = RecoveryAction(raw_action) if raw_action else default_action
        applied = row.get("compensation_applied")
        if applied is None:
            # Rows without the flag: a successful compensating action applied.
            applied = success and action in (RecoveryAction.COMPENSATE, RecoveryAction.ROLLBACK)
        return cls(
            success=success,
            action=action,
            attempts=int(row.get("attempts", 1)),
            recovered=bool(row.get("recovered", False)),
            compensation_applied=bool(applied),
            message=str(row.get("message", "")),
            error=row.get("error") or None,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Boundary Protocol
# ═══════════════════════════════════════════════════════════════════════════════


class RecoveryBoundary(Protocol):
    """
    Atomic remote recovery.

    Raises when the boundary itself is unreachable (e.g. "function not
    found"); reports domain-level failure through the response.
    """

    async def recover(self, request: BoundaryRequest) -> BoundaryResponse: ...


type BoundaryFn = Callable[[BoundaryRequest], Awaitable[BoundaryResponse | Mapping[str, Any]]]


@dataclass(frozen=True, slots=True)
class FunctionalBoundary:
    """
    Boundary built from a function.

    The function may return a BoundaryResponse or the raw RPC row.
    """

    _recover: BoundaryFn

    async def recover(self, request: BoundaryRequest) -> BoundaryResponse:
        response = await self._recover(request)
        if isinstance(response, BoundaryResponse):
            return response
        return BoundaryResponse.from_mapping(
            response, default_action=request.requested_action
        )


def boundary_from(recover: BoundaryFn) -> FunctionalBoundary:
    """
    Create a RecoveryBoundary from an async function.

    Example:
        async def call_rpc(request: BoundaryRequest) -> Mapping[str, Any]:
            return await db.rpc("recover_from_error_atomic", request.to_params())

        boundary = boundary_from(call_rpc)
    """
    return FunctionalBoundary(_recover=recover)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "BoundaryRequest",
    "BoundaryResponse",
    "RecoveryBoundary",
    "BoundaryFn",
    "FunctionalBoundary",
    "boundary_from",
)
