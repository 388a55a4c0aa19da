"""Slow-call circuit breaker.

The cleanup service rarely errors outright; when it degrades it gets slow.
This breaker counts calls slower than ``slow_call_seconds`` and opens after
``slow_call_limit`` of them. While open, callers take their fallback path
instead of calling the service. After ``reset_seconds`` the breaker closes
again with a clean count.

States:
    CLOSED: Normal operation, calls pass through
    OPEN: Calls skipped, callers use their fallback

Example:
    >>> breaker = SlowCallBreaker(slow_call_seconds=5.0, slow_call_limit=3)
    >>> if breaker.is_open():
    ...     return fallback(item)
    >>> started = time.monotonic()
    >>> result = await clean(item)
    >>> breaker.record_latency(time.monotonic() - started, item_id=item.beer_id)
"""

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from taproom.core.logging import get_logger

logger = get_logger(__name__)


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"


@dataclass
class CircuitStats:
    """Statistics for circuit breaker monitoring."""

    total_calls: int = 0
    slow_calls: int = 0
    skipped_calls: int = 0
    times_opened: int = 0


@dataclass
class SlowCallBreaker:
    """Circuit breaker driven by call latency.

    Attributes:
        name: Identifier used in logs
        slow_call_seconds: Latency above which a call counts as slow
        slow_call_limit: Slow calls before opening
        reset_seconds: Seconds an open breaker waits before closing
        max_tracked_ids: Most recent slow item ids kept for the open log
        clock: Monotonic seconds source; injectable for tests
    """

    name: str = "cleanup"
    slow_call_seconds: float = 5.0
    slow_call_limit: int = 3
    reset_seconds: float = 60.0
    max_tracked_ids: int = 10
    clock: Callable[[], float] = time.monotonic

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _slow_count: int = field(default=0, init=False)
    _slow_ids: list[str] = field(default_factory=list, init=False)
    _opened_at: float = field(default=0.0, init=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False)
    _stats: CircuitStats = field(default_factory=CircuitStats, init=False)

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._check_reset()
            return self._state

    @property
    def stats(self) -> CircuitStats:
        return self._stats

    @property
    def slow_ids(self) -> list[str]:
        with self._lock:
            return list(self._slow_ids)

    def _check_reset(self) -> None:
        if self._state == CircuitState.OPEN and self.clock() - self._opened_at >= self.reset_seconds:
            logger.info("circuit_breaker.reset", name=self.name)
            self._state = CircuitState.CLOSED
            self._slow_count = 0
            self._slow_ids = []

    def is_open(self) -> bool:
        """True if callers should skip the service and use their fallback."""
        with self._lock:
            self._check_reset()
            if self._state == CircuitState.OPEN:
                self._stats.skipped_calls += 1
                return True
            return False

    def record_latency(self, seconds: float, item_id: str | None = None) -> None:
        """Record one completed (or failed) call's latency."""
        with self._lock:
            self._stats.total_calls += 1
            if seconds <= self.slow_call_seconds:
                return

            self._stats.slow_calls += 1
            self._slow_count += 1
            if item_id is not None:
                self._slow_ids.append(item_id)
                self._slow_ids = self._slow_ids[-self.max_tracked_ids :]

            if self._slow_count >= self.slow_call_limit and self._state == CircuitState.CLOSED:
                self._state = CircuitState.OPEN
                self._opened_at = self.clock()
                self._stats.times_opened += 1
                logger.warning(
                    "circuit_breaker.opened",
                    name=self.name,
                    slow_call_count=self._slow_count,
                    threshold_seconds=self.slow_call_seconds,
                    triggered_by=list(self._slow_ids),
                    reset_after_seconds=self.reset_seconds,
                )

    def reset(self) -> None:
        """Close the breaker and clear counts."""
        with self._lock:
            self._state = CircuitState.CLOSED
            self._slow_count = 0
            self._slow_ids = []

    def force_open(self) -> None:
        """Force the breaker open (for testing/maintenance)."""
        with self._lock:
            self._state = CircuitState.OPEN
            self._opened_at = self.clock()
            self._stats.times_opened += 1
