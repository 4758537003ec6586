"""
Backoff — capped exponential delays for retry attempts.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator

from optimist.recovery._types import RecoveryConfig

DEFAULT_BASE_MS = 1000
DEFAULT_CAP_MS = 30_000


def backoff_delay(
    attempt: int,
    base_ms: int = DEFAULT_BASE_MS,
    cap_ms: int = DEFAULT_CAP_MS,
) -> int:
    """
    Delay in milliseconds before retry attempt `attempt` (1-based).

    Example:
        [backoff_delay(n) for n in range(1, 8)]
        # [1000, 2000, 4000, 8000, 16000, 30000, 30000]
    """
    if attempt < 1:
        raise ValueError(f"attempt must be >= 1, got {attempt}")
    # Exponent bounded so huge attempt numbers don't build huge ints.
    exponent = min(attempt - 1, 62)
    return min(base_ms * 2**exponent, cap_ms)


def delays(config: RecoveryConfig, start: int = 1) -> Iterator[int]:
    """Infinite delay sequence starting at global attempt `start`."""
    attempt = start
    while True:
        yield backoff_delay(attempt, config.base_delay_ms, config.cap_ms)
        attempt += 1


def combinators_backoff[E](
    config: RecoveryConfig,
    offset: int = 0,
) -> Callable[[int, E], float]:
    """
    Backoff strategy for `combinators.retry` (seconds).

    combinators passes the 0-based index of the attempt that just failed;
    the next global attempt number is `offset + index + 2`.
    """

    def strategy(index: int, _error: E) -> float:
        return backoff_delay(offset + index + 2, config.base_delay_ms, config.cap_ms) / 1000

    return strategy


__all__ = (
    "DEFAULT_BASE_MS",
    "DEFAULT_CAP_MS",
    "backoff_delay",
    "delays",
    "combinators_backoff",
)
