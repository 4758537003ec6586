"""
Errors — closed taxonomy + classifier.

    from optimist import errors as X

    raise X.MutationFailure(X.ErrorKind.STOCK_UPDATE_FAILED, "only 2 left")

    kind = X.classify(exc, operation_hint="add_to_cart")
    if not X.is_retryable(kind):
        show(X.user_message(kind))
"""

from __future__ import annotations

from optimist.errors._types import (
    ErrorKind,
    TRANSIENT_KINDS,
    is_retryable,
    MutationFailure,
    ErrorContext,
)
from optimist.errors._classify import (
    CODE_TABLE,
    MESSAGE_PATTERNS,
    OPERATION_HINTS,
    EXCEPTION_TYPES,
    classify,
    message_of,
)
from optimist.errors._messages import USER_MESSAGES, user_message

__all__ = (
    "ErrorKind",
    "TRANSIENT_KINDS",
    "is_retryable",
    "MutationFailure",
    "ErrorContext",
    "CODE_TABLE",
    "MESSAGE_PATTERNS",
    "OPERATION_HINTS",
    "EXCEPTION_TYPES",
    "classify",
    "message_of",
    "USER_MESSAGES",
    "user_message",
)
