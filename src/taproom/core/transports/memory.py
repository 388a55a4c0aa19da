"""In-process queue transport.

Models the delivery semantics the consumers rely on: at-least-once
delivery, delayed visibility, attempt counting that deferrals do not touch,
and max-attempt routing to a linked dead-letter queue.

Example:
    >>> dlq = InMemoryQueue("beer-enrichment-dlq")
    >>> queue = InMemoryQueue("beer-enrichment", max_attempts=3, dead_letter_queue=dlq)
    >>> await queue.send({"beerId": "7781234", "beerName": "Hazy Daze"})
    >>> [envelope] = await queue.receive(10)
    >>> await queue.settle(envelope, Outcome.retry_after(60, "upstream 503"))
"""

from __future__ import annotations

import copy
import time
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from taproom.core.errors import ExhaustedRetriesError
from taproom.core.logging import get_logger
from taproom.execution.envelope import Envelope, Outcome, OutcomeKind

logger = get_logger(__name__)


@dataclass
class _StoredMessage:
    id: str
    payload: dict[str, Any]
    attempt: int = 1
    visible_at: float = 0.0
    in_flight: bool = False


@dataclass(frozen=True)
class DeadLettered:
    """A message removed from its queue as a terminal failure."""

    envelope: Envelope
    reason: str | None


class InMemoryQueue:
    """Single-process queue with delayed redelivery.

    Parameters
    ----------
    name : str
        Queue name, stamped on every delivered envelope.
    max_attempts : int
        Delivery attempts before a retried message is dead-lettered.
    dead_letter_queue : InMemoryQueue | None
        Receives a dead-letter notice for every terminal failure. Without
        one, terminal failures are logged and dropped.
    clock : callable
        Monotonic seconds source; injectable for tests.
    """

    def __init__(
        self,
        name: str,
        *,
        max_attempts: int = 3,
        dead_letter_queue: InMemoryQueue | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.max_attempts = max_attempts
        self.dead_letter_queue = dead_letter_queue
        self._clock = clock
        self._messages: dict[str, _StoredMessage] = {}
        self.acked: list[str] = []
        self.dead_lettered: list[DeadLettered] = []

    # ── Producer side ────────────────────────────────────────────────

    async def send(self, payload: dict[str, Any], delay_seconds: float = 0) -> str:
        message_id = uuid.uuid4().hex
        self._messages[message_id] = _StoredMessage(
            id=message_id,
            payload=copy.deepcopy(payload),
            visible_at=self._clock() + delay_seconds,
        )
        return message_id

    async def send_batch(self, payloads: Sequence[dict[str, Any]]) -> list[str]:
        return [await self.send(p) for p in payloads]

    # ── Consumer side ────────────────────────────────────────────────

    async def receive(self, max_messages: int) -> list[Envelope]:
        """Claim up to ``max_messages`` visible messages in send order."""
        now = self._clock()
        batch: list[Envelope] = []
        for stored in self._messages.values():
            if len(batch) >= max_messages:
                break
            if stored.in_flight or stored.visible_at > now:
                continue
            stored.in_flight = True
            batch.append(
                Envelope(
                    id=stored.id,
                    payload=copy.deepcopy(stored.payload),
                    queue=self.name,
                    delivery_attempt=stored.attempt,
                )
            )
        return batch

    async def settle(self, envelope: Envelope, outcome: Outcome) -> None:
        stored = self._messages.get(envelope.id)
        if stored is None:
            logger.warning("queue.settle_unknown", queue=self.name, message_id=envelope.id)
            return

        if outcome.kind == OutcomeKind.ACK:
            del self._messages[envelope.id]
            self.acked.append(envelope.id)
        elif outcome.kind == OutcomeKind.DEFER:
            stored.in_flight = False
            stored.visible_at = self._clock() + outcome.delay_seconds
        elif outcome.kind == OutcomeKind.RETRY:
            if stored.attempt >= self.max_attempts:
                exhausted = ExhaustedRetriesError(stored.id, stored.attempt, outcome.reason)
                logger.warning("queue.retries_exhausted", queue=self.name, **exhausted.to_dict())
                await self._dead_letter(stored, envelope, outcome.reason)
            else:
                stored.attempt += 1
                stored.in_flight = False
                stored.visible_at = self._clock() + outcome.delay_seconds
        else:
            await self._dead_letter(stored, envelope, outcome.reason)

    async def _dead_letter(
        self, stored: _StoredMessage, envelope: Envelope, reason: str | None
    ) -> None:
        del self._messages[stored.id]
        self.dead_lettered.append(DeadLettered(envelope=envelope, reason=reason))

        if self.dead_letter_queue is None:
            logger.warning(
                "queue.dead_letter_dropped",
                queue=self.name,
                message_id=stored.id,
                attempts=stored.attempt,
                reason=reason,
            )
            return

        await self.dead_letter_queue.send(
            {
                "message_id": stored.id,
                "source_queue": self.name,
                "failure_count": stored.attempt,
                "failure_reason": reason,
                "body": stored.payload,
            }
        )
        logger.info(
            "queue.dead_lettered",
            queue=self.name,
            dead_letter_queue=self.dead_letter_queue.name,
            message_id=stored.id,
            attempts=stored.attempt,
        )

    # ── Inspection ───────────────────────────────────────────────────

    @property
    def pending(self) -> list[dict[str, Any]]:
        """Payloads still owned by the queue (visible, delayed or in flight)."""
        return [copy.deepcopy(m.payload) for m in self._messages.values()]

    def attempts_of(self, message_id: str) -> int | None:
        stored = self._messages.get(message_id)
        return stored.attempt if stored else None

    def visible_count(self) -> int:
        now = self._clock()
        return sum(1 for m in self._messages.values() if not m.in_flight and m.visible_at <= now)

    def __len__(self) -> int:
        return len(self._messages)
