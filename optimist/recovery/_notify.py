"""
Manual-intervention side channel.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol

from loguru import logger

from optimist.errors import ErrorContext
from optimist.recovery._types import RecoveryResult


class Notifier(Protocol):
    """Best-effort admin notification. Failures are logged, never raised."""

    async def notify(self, context: ErrorContext, result: RecoveryResult) -> None: ...


class LogNotifier:
    """Default notifier: records the intent to notify administrators in the log."""

    async def notify(self, context: ErrorContext, result: RecoveryResult) -> None:
        logger.warning(
            f"Notifying administrators: {context.operation} "
            f"({context.error_kind.value}, entity={context.related_entity_id}, "
            f"user={context.related_user_id}): {result.error or result.message}"
        )


type NotifyFn = Callable[[ErrorContext, RecoveryResult], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class FunctionalNotifier:
    _notify: NotifyFn

    async def notify(self, context: ErrorContext, result: RecoveryResult) -> None:
        await self._notify(context, result)


def notifier_from(notify: NotifyFn) -> FunctionalNotifier:
    """
    Example:
        notifier = notifier_from(lambda ctx, res: slack.post(f"{ctx.operation}: {res.message}"))
    """
    return FunctionalNotifier(_notify=notify)


__all__ = (
    "Notifier",
    "LogNotifier",
    "NotifyFn",
    "FunctionalNotifier",
    "notifier_from",
)
