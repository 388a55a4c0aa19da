"""Bounded-concurrency fan-out for I/O-bound batch work.

The cleanup consumer calls a slow inference service for every message in a
delivery batch. One at a time wastes the batch window and all at once floods
the service, so a semaphore keeps at most K calls in flight: as soon as one
settles the next one starts. A failing call never cancels its siblings, and
every call settles.

::

    run_bounded(tasks, limit)          ─ zero-arg coroutines → list[Settled]
    AsyncBatchExecutor(max_concurrency)
      ├── .add(key, handler, params)   ─ keyed work item
      └── .run_all()                   ─ AsyncBatchResult, items in add order

Example::

    settled = await run_bounded([lambda: clean(e) for e in envelopes], limit=10)
    failed = [s.error for s in settled if not s.ok]
"""

from __future__ import annotations

import asyncio
import functools
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from taproom.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_CONCURRENCY = 10


@dataclass(frozen=True)
class Settled:
    """How one task ended. ``elapsed`` excludes time spent waiting for a slot."""

    ok: bool
    value: Any = None
    error: BaseException | None = None
    elapsed: float = 0.0


async def run_bounded(
    tasks: Sequence[Callable[[], Awaitable[Any]]],
    limit: int = DEFAULT_MAX_CONCURRENCY,
) -> list[Settled]:
    """Run ``tasks`` with at most ``limit`` in flight; results in input order."""
    if limit < 1:
        raise ValueError("limit must be >= 1")
    slots = asyncio.Semaphore(limit)

    async def _settle(task: Callable[[], Awaitable[Any]]) -> Settled:
        async with slots:
            started = time.monotonic()
            try:
                value = await task()
            except Exception as e:
                return Settled(ok=False, error=e, elapsed=time.monotonic() - started)
            return Settled(ok=True, value=value, elapsed=time.monotonic() - started)

    return list(await asyncio.gather(*(_settle(task) for task in tasks)))


@dataclass
class BatchItem:
    key: str
    handler: Callable[[dict[str, Any]], Awaitable[Any]]
    params: dict[str, Any] = field(default_factory=dict)
    settled: Settled | None = None

    @property
    def status(self) -> str:
        if self.settled is None:
            return "pending"
        return "completed" if self.settled.ok else "failed"

    @property
    def result(self) -> Any:
        return self.settled.value if self.settled else None

    @property
    def error(self) -> str | None:
        if self.settled is None or self.settled.ok:
            return None
        return str(self.settled.error)


@dataclass
class AsyncBatchResult:
    items: list[BatchItem]
    elapsed: float

    @property
    def total(self) -> int:
        return len(self.items)

    @property
    def succeeded(self) -> int:
        return sum(1 for item in self.items if item.status == "completed")

    @property
    def failed(self) -> int:
        return sum(1 for item in self.items if item.status == "failed")

    def failures(self) -> dict[str, BaseException]:
        """Exceptions of the failed items by key."""
        return {
            item.key: item.settled.error
            for item in self.items
            if item.settled is not None and not item.settled.ok
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "elapsed_seconds": round(self.elapsed, 3),
            "failed_keys": list(self.failures()),
        }


class AsyncBatchExecutor:
    """Collects keyed async work items and runs them through :func:`run_bounded`.

    Parameters
    ----------
    max_concurrency : int
        Items in flight at once (default 10). Must be >= 1.
    """

    def __init__(self, max_concurrency: int = DEFAULT_MAX_CONCURRENCY) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self.max_concurrency = max_concurrency
        self._items: list[BatchItem] = []

    @property
    def item_count(self) -> int:
        return len(self._items)

    def add(
        self,
        key: str,
        handler: Callable[[dict[str, Any]], Awaitable[Any]],
        params: dict[str, Any] | None = None,
    ) -> AsyncBatchExecutor:
        """Queue ``handler(params)`` under ``key``. Returns ``self`` for chaining."""
        self._items.append(BatchItem(key=key, handler=handler, params=params or {}))
        return self

    async def run_all(self) -> AsyncBatchResult:
        started = time.monotonic()
        tasks = [functools.partial(item.handler, item.params) for item in self._items]
        for item, settled in zip(self._items, await run_bounded(tasks, self.max_concurrency)):
            item.settled = settled
            if not settled.ok:
                logger.warning("async_batch.item_failed", key=item.key, error=str(settled.error))

        result = AsyncBatchResult(items=list(self._items), elapsed=time.monotonic() - started)
        logger.debug("async_batch.complete", max_concurrency=self.max_concurrency, **result.to_dict())
        return result
