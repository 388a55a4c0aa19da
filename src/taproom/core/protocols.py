"""
Structural protocols shared across taproom.

Architecture:
    ::

        protocols.py
        ├── AsyncConnection  : serialised async DB handle used by the stores
        └── QueueTransport   : message queue contract consumed by the runtime

    Implementations:
        AsyncConnection → Database (taproom.core.database)
        QueueTransport  → InMemoryQueue (taproom.core.transports.memory)

Guardrails:
    ❌ DON'T: Redefine these protocols in consumer modules
    ✅ DO: Import from taproom.core.protocols
"""

from __future__ import annotations

from collections.abc import Sequence
from contextlib import AbstractAsyncContextManager
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from taproom.execution.envelope import Envelope, Outcome


@runtime_checkable
class AsyncConnection(Protocol):
    """
    Async database handle used by the stores.

    Reads return fully fetched rows that support access by column name.
    ``execute`` / ``executemany`` commit and return the affected row count.
    ``transaction()`` is an async context manager yielding the raw
    connection for multi-statement or ``RETURNING`` writes.
    """

    async def fetchone(self, sql: str, params: Sequence[Any] = ()) -> Any: ...

    async def fetchall(self, sql: str, params: Sequence[Any] = ()) -> list[Any]: ...

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> int: ...

    async def executemany(self, sql: str, params: Sequence[Sequence[Any]]) -> int: ...

    def transaction(self) -> AbstractAsyncContextManager[Any]: ...


@runtime_checkable
class QueueTransport(Protocol):
    """
    Message queue as seen by producers and the consumer runtime.

    ``settle`` applies a handler :class:`~taproom.execution.envelope.Outcome`
    to a received envelope: ack removes it, retry and defer make it visible
    again after the delay, dead-letter routes it to the linked dead-letter
    queue.
    """

    name: str

    async def send(self, payload: dict[str, Any], delay_seconds: float = 0) -> str: ...

    async def send_batch(self, payloads: Sequence[dict[str, Any]]) -> list[str]: ...

    async def receive(self, max_messages: int) -> list[Envelope]: ...

    async def settle(self, envelope: Envelope, outcome: Outcome) -> None: ...
