"""
Bounded retry for remote calls.

Every remote call made during a migration (count, search, bulk write,
delete, index administration, migration document reads and updates) goes
through :func:`retry`. There is no backoff and no jitter: a call gets a
fixed number of attempts, and the last error is re-raised unchanged.

Example:
    >>> from intelstore.migration.retry import retry
    >>>
    >>> total = await retry(3, store.count, "ctia_indicator")
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from intelstore.config import DEFAULT_MAX_RETRY

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry(
    attempts: int,
    func: Callable[..., Awaitable[T]],
    *args: Any,
    **kwargs: Any,
) -> T:
    """
    Call ``func(*args, **kwargs)``, retrying on any exception.

    Args:
        attempts: Total number of attempts (must be >= 1).
        func: Coroutine function performing the remote call.
        *args: Positional arguments for ``func``.
        **kwargs: Keyword arguments for ``func``.

    Returns:
        The value returned by the first successful attempt.

    Raises:
        ValueError: If attempts is lower than 1.
        Exception: The error of the last attempt, once all attempts failed.
    """
    if attempts < 1:
        raise ValueError(f"attempts must be >= 1, got {attempts}")

    remaining = attempts
    while True:
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            remaining -= 1
            if remaining <= 0:
                raise
            logger.warning(
                "%s failed (%s), %d attempt(s) left",
                getattr(func, "__qualname__", repr(func)),
                e,
                remaining,
            )


class Retrier:
    """
    Retry wrapper bound to a fixed number of attempts.

    Components receive one Retrier and use it for all their remote calls.

    Example:
        >>> retrier = Retrier(max_retry=3)
        >>> await retrier(store.refresh, "v2_ctia_indicator")
    """

    def __init__(self, max_retry: int = DEFAULT_MAX_RETRY) -> None:
        if max_retry < 1:
            raise ValueError(f"max_retry must be >= 1, got {max_retry}")
        self._max_retry = max_retry

    @property
    def max_retry(self) -> int:
        return self._max_retry

    async def __call__(
        self,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        return await retry(self._max_retry, func, *args, **kwargs)

    def __repr__(self) -> str:
        return f"Retrier(max_retry={self._max_retry})"


__all__ = ["Retrier", "retry"]
