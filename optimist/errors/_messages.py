"""
User-facing messages per ErrorKind.
"""

from __future__ import annotations

from collections.abc import Mapping

from optimist.errors._types import ErrorKind

USER_MESSAGES: Mapping[ErrorKind, str] = {
    ErrorKind.AUTHENTICATION_REQUIRED: "Please sign in to continue.",
    ErrorKind.VALIDATION_FAILED: "Some of the information provided is not valid.",
    ErrorKind.PAYMENT_FAILED: "Your payment could not be processed. You have not been charged.",
    ErrorKind.STOCK_UPDATE_FAILED: "Not enough items in stock.",
    ErrorKind.ORDER_CREATION_FAILED: "We could not place your order. Please try again.",
    ErrorKind.NOTIFICATION_FAILED: "Your request went through, but we could not notify you.",
    ErrorKind.DATABASE_ERROR: "We are having trouble saving your changes. Retrying.",
    ErrorKind.NETWORK_ERROR: "Connection problem. Please check your network.",
    ErrorKind.SYSTEM_ERROR: "Something went wrong. Our team has been notified.",
}


def user_message(kind: ErrorKind, override: str | None = None) -> str:
    """Message safe to show to an end user. `override` wins when given."""
    return override or USER_MESSAGES[kind]


__all__ = ("USER_MESSAGES", "user_message")
