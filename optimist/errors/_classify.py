"""
Error classifier — raw failure → ErrorKind.

Precedence:
    1. structured kind   (MutationFailure.kind, or any `kind: ErrorKind`)
    2. structured code   (`code` attribute or mapping key)
    3. message patterns  (fallback adapter, operation hint disambiguates)
       + builtin exception types
    4. SYSTEM_ERROR
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from loguru import logger

from optimist.errors._types import ErrorKind

# ═══════════════════════════════════════════════════════════════════════════════
# Tables
# ═══════════════════════════════════════════════════════════════════════════════

CODE_TABLE: Mapping[str, ErrorKind] = {
    "AUTHENTICATION_REQUIRED": ErrorKind.AUTHENTICATION_REQUIRED,
    "UNAUTHORIZED": ErrorKind.AUTHENTICATION_REQUIRED,
    "TOKEN_EXPIRED": ErrorKind.AUTHENTICATION_REQUIRED,
    "PERMISSION_DENIED": ErrorKind.AUTHENTICATION_REQUIRED,
    "VALIDATION_ERROR": ErrorKind.VALIDATION_FAILED,
    "INVALID_INPUT": ErrorKind.VALIDATION_FAILED,
    "PRODUCT_NOT_FOUND": ErrorKind.VALIDATION_FAILED,
    "STOCK_INSUFFICIENT": ErrorKind.STOCK_UPDATE_FAILED,
    "OUT_OF_STOCK": ErrorKind.STOCK_UPDATE_FAILED,
    "PAYMENT_DECLINED": ErrorKind.PAYMENT_FAILED,
    "CARD_DECLINED": ErrorKind.PAYMENT_FAILED,
    "INSUFFICIENT_FUNDS": ErrorKind.PAYMENT_FAILED,
    "ORDER_FAILED": ErrorKind.ORDER_CREATION_FAILED,
    "NETWORK_ERROR": ErrorKind.NETWORK_ERROR,
    "TIMEOUT": ErrorKind.NETWORK_ERROR,
    "DATABASE_ERROR": ErrorKind.DATABASE_ERROR,
    "NOTIFICATION_ERROR": ErrorKind.NOTIFICATION_FAILED,
    "UNKNOWN_ERROR": ErrorKind.SYSTEM_ERROR,
    **{kind.value.upper(): kind for kind in ErrorKind},
}
"""Structured error codes. Every ErrorKind value (upper-cased) maps to itself."""

# Ordered: first match wins. Auth before everything so "unauthorized
# stock update" never routes to compensation; domain kinds before the
# generic "invalid" / "not found" so "invalid card" still compensates.
MESSAGE_PATTERNS: tuple[tuple[tuple[str, ...], ErrorKind], ...] = (
    (("authentication", "unauthorized", "not authenticated", "jwt", "token expired"), ErrorKind.AUTHENTICATION_REQUIRED),
    (("stock", "inventory"), ErrorKind.STOCK_UPDATE_FAILED),
    (("payment", "card", "insufficient funds"), ErrorKind.PAYMENT_FAILED),
    (("order creation", "create order"), ErrorKind.ORDER_CREATION_FAILED),
    (("not found", "invalid", "validation"), ErrorKind.VALIDATION_FAILED),
    (("notification", "push token"), ErrorKind.NOTIFICATION_FAILED),
    (("network", "fetch failed", "timeout", "timed out", "connection"), ErrorKind.NETWORK_ERROR),
    (("database", "deadlock", "constraint", "postgres", "sql"), ErrorKind.DATABASE_ERROR),
)

# Generic failures ("failed", "error") in these operations take the
# operation's domain kind.
OPERATION_HINTS: tuple[tuple[str, ErrorKind], ...] = (
    ("payment", ErrorKind.PAYMENT_FAILED),
    ("stock", ErrorKind.STOCK_UPDATE_FAILED),
    ("inventory", ErrorKind.STOCK_UPDATE_FAILED),
    ("order", ErrorKind.ORDER_CREATION_FAILED),
    ("notif", ErrorKind.NOTIFICATION_FAILED),
)

EXCEPTION_TYPES: tuple[tuple[type[BaseException], ErrorKind], ...] = (
    (PermissionError, ErrorKind.AUTHENTICATION_REQUIRED),
    (TimeoutError, ErrorKind.NETWORK_ERROR),
    (ConnectionError, ErrorKind.NETWORK_ERROR),
)


# ═══════════════════════════════════════════════════════════════════════════════
# Classify
# ═══════════════════════════════════════════════════════════════════════════════


def classify(raw: Any, operation_hint: str | None = None) -> ErrorKind:
    """
    Map any raised value to an ErrorKind. Never raises.

    Example:
        classify(MutationFailure(ErrorKind.PAYMENT_FAILED, "declined"))
        # ErrorKind.PAYMENT_FAILED

        classify({"code": "STOCK_INSUFFICIENT"})
        # ErrorKind.STOCK_UPDATE_FAILED

        classify(RuntimeError("request failed"), operation_hint="process_payment")
        # ErrorKind.PAYMENT_FAILED
    """
    try:
        return _classify(raw, operation_hint)
    except Exception:
        logger.exception(f"Classifier failed on {type(raw).__name__}, using SYSTEM_ERROR")
        return ErrorKind.SYSTEM_ERROR


def _classify(raw: Any, operation_hint: str | None) -> ErrorKind:
    if isinstance(raw, ErrorKind):
        return raw

    kind = _attr(raw, "kind")
    if isinstance(kind, ErrorKind):
        return kind

    code = _attr(raw, "code")
    if isinstance(code, str) and (by_code := CODE_TABLE.get(code.upper())):
        return by_code

    message = message_of(raw).lower()
    for needles, pattern_kind in MESSAGE_PATTERNS:
        if any(needle in message for needle in needles):
            return pattern_kind

    for exc_type, exc_kind in EXCEPTION_TYPES:
        if isinstance(raw, exc_type):
            return exc_kind

    if operation_hint and message:
        hint = operation_hint.lower()
        for needle, hint_kind in OPERATION_HINTS:
            if needle in hint:
                return hint_kind

    return ErrorKind.SYSTEM_ERROR


def _attr(raw: Any, name: str) -> Any:
    if isinstance(raw, Mapping):
        return raw.get(name)
    return getattr(raw, name, None)


def message_of(raw: Any) -> str:
    """Best-effort human message of a raised value."""
    if raw is None:
        return ""
    if isinstance(raw, str):
        return raw
    message = _attr(raw, "message")
    if isinstance(message, str) and message:
        return message
    if isinstance(raw, BaseException):
        return str(raw) or type(raw).__name__
    return str(raw)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "CODE_TABLE",
    "MESSAGE_PATTERNS",
    "OPERATION_HINTS",
    "EXCEPTION_TYPES",
    "classify",
    "message_of",
)
