"""In-process retry with exponential backoff.

Queue redelivery covers retries across invocations. This module covers the
short retries around a store write inside one invocation, so a finished
upstream call is not thrown away over a momentary ``database is locked``.

Example:
    >>> backoff = ExponentialBackoff(max_attempts=3, base_delay=0.1, jitter=False)
    >>> [backoff.next_delay(n) for n in range(3)]
    [0.1, 0.2, 0.4]
    >>> await RetryContext(backoff, "cleanup.store").run_async(store.record_cleanup, beer_id, text, source)
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from taproom.core.errors import is_retryable
from taproom.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ExponentialBackoff:
    """``base_delay * multiplier ** n`` capped at ``max_delay``, with optional jitter.

    ``max_attempts`` counts the first call. Without ``retryable_errors`` the
    decision falls back to :func:`taproom.core.errors.is_retryable`.
    """

    max_attempts: int = 3
    base_delay: float = 0.1
    max_delay: float = 5.0
    multiplier: float = 2.0
    jitter: bool = True
    jitter_range: float = 0.25
    retryable_errors: tuple[type[Exception], ...] | None = None

    def next_delay(self, retry: int) -> float:
        """Delay before retry number ``retry`` (0 for the first retry)."""
        delay = min(self.base_delay * self.multiplier**retry, self.max_delay)
        if self.jitter:
            delay += random.uniform(-1.0, 1.0) * delay * self.jitter_range
        return max(0.0, delay)

    def should_retry(self, attempts: int, error: Exception) -> bool:
        if attempts >= self.max_attempts:
            return False
        if self.retryable_errors is not None:
            return isinstance(error, self.retryable_errors)
        return is_retryable(error)


@dataclass
class RetryContext:
    """Runs one operation under a backoff policy and keeps the errors it saw."""

    backoff: ExponentialBackoff
    operation: str = "operation"
    attempts: int = field(default=0, init=False)
    errors: list[Exception] = field(default_factory=list, init=False)

    async def run_async(self, func: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> Any:
        """Await ``func(*args, **kwargs)``, retrying per the backoff.

        Raises:
            The last error once the backoff stops retrying.
        """
        while True:
            self.attempts += 1
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                self.errors.append(e)
                if not self.backoff.should_retry(self.attempts, e):
                    raise
                delay = self.backoff.next_delay(self.attempts - 1)
                logger.warning(
                    "retry.scheduled",
                    operation=self.operation,
                    attempt=self.attempts,
                    delay_seconds=round(delay, 3),
                    error=str(e),
                )
                await asyncio.sleep(delay)
