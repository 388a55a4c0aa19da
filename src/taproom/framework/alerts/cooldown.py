"""
Alert cooldown: suppress repeats of the same failure within a window.

State lives behind :class:`CooldownStore` so the in-process default can be
swapped for a shared store without touching callers. With the in-memory
store, suppression is per process and resets on restart.

Example:
    >>> cooldown = AlertCooldown(InMemoryCooldownStore(), window_seconds=300)
    >>> cooldown.should_send("exception:TypeError", now=0)
    True
    >>> cooldown.should_send("exception:TypeError", now=1)
    False
    >>> cooldown.should_send("exception:TypeError", now=301)
    True
    >>> cooldown.drain_suppressed_count("exception:TypeError")
    1
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from taproom.framework.alerts.traces import Trace

DEFAULT_WINDOW_SECONDS = 300.0


@dataclass
class CooldownEntry:
    key: str
    last_sent: float
    suppressed_count: int = 0


class CooldownStore(Protocol):
    """Key/value storage for cooldown entries."""

    def get(self, key: str) -> CooldownEntry | None: ...

    def put(self, entry: CooldownEntry) -> None: ...

    def clear(self) -> None: ...


class InMemoryCooldownStore:
    """Process-local cooldown storage."""

    def __init__(self) -> None:
        self._entries: dict[str, CooldownEntry] = {}

    def get(self, key: str) -> CooldownEntry | None:
        return self._entries.get(key)

    def put(self, entry: CooldownEntry) -> None:
        self._entries[entry.key] = entry

    def clear(self) -> None:
        self._entries.clear()


def cooldown_key(trace: Trace) -> str:
    """Fingerprint a failure as ``<outcome>:<first exception name>``.

    Traces that failed only through error logs use ``error-logs`` as the suffix.
    """
    suffix = trace.exceptions[0].name if trace.exceptions else "error-logs"
    return f"{trace.outcome}:{suffix}"


class AlertCooldown:
    """Decides whether an alert for a key may be sent now."""

    def __init__(
        self,
        store: CooldownStore | None = None,
        *,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store if store is not None else InMemoryCooldownStore()
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()

    def should_send(self, key: str, now: float | None = None) -> bool:
        """Return True and restart the window if none is open for ``key``.

        Otherwise count one suppression and return False. The suppressed
        count survives a send; only :meth:`drain_suppressed_count` resets it.
        """
        now = self._clock() if now is None else now
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                self._store.put(CooldownEntry(key=key, last_sent=now))
                return True
            if now - entry.last_sent >= self.window_seconds:
                entry.last_sent = now
                self._store.put(entry)
                return True
            entry.suppressed_count += 1
            self._store.put(entry)
            return False

    def drain_suppressed_count(self, key: str) -> int:
        """Return and reset the number of suppressed alerts for ``key``."""
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return 0
            count = entry.suppressed_count
            entry.suppressed_count = 0
            self._store.put(entry)
            return count

    def reset(self) -> None:
        with self._lock:
            self._store.clear()
