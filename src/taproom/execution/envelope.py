"""Queue message envelope and per-message handler outcomes.

Every consumer returns one :class:`Outcome` per :class:`Envelope`; the
runtime maps it onto the transport. Handlers never ack or retry messages
themselves.

Example::

    async def handle(envelope: Envelope) -> Outcome:
        if not admitted:
            return Outcome.defer(300, "daily_limit")
        try:
            await lookup(...)
        except RateLimitError as e:
            return Outcome.retry_after(e.retry_after, str(e))
        return Outcome.ack()
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class Envelope:
    """A delivered message.

    ``id`` is stable across redeliveries. ``delivery_attempt`` starts at 1 and
    is incremented only by retry redeliveries, never by deferrals.
    """

    id: str
    payload: dict[str, Any]
    queue: str
    delivery_attempt: int = 1
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)


class OutcomeKind(str, Enum):
    ACK = "ack"
    RETRY = "retry"
    DEFER = "defer"
    DEAD_LETTER = "dead_letter"


@dataclass(frozen=True)
class Outcome:
    """Disposition of one envelope.

    Build with the classmethod factories rather than the constructor.
    """

    kind: OutcomeKind
    delay_seconds: float = 0
    reason: str | None = None

    @classmethod
    def ack(cls) -> Outcome:
        """Done. Remove the message from the queue."""
        return cls(kind=OutcomeKind.ACK)

    @classmethod
    def retry_after(cls, delay_seconds: float, reason: str | None = None) -> Outcome:
        """Transient failure. Counts toward the attempt budget."""
        return cls(kind=OutcomeKind.RETRY, delay_seconds=delay_seconds, reason=reason)

    @classmethod
    def defer(cls, delay_seconds: float, reason: str | None = None) -> Outcome:
        """Not a failure. Redeliver later without consuming an attempt."""
        return cls(kind=OutcomeKind.DEFER, delay_seconds=delay_seconds, reason=reason)

    @classmethod
    def dead_letter(cls, reason: str) -> Outcome:
        """Terminal failure. Route to the dead-letter queue now."""
        return cls(kind=OutcomeKind.DEAD_LETTER, reason=reason)

    @property
    def is_ack(self) -> bool:
        return self.kind == OutcomeKind.ACK

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"kind": self.kind.value}
        if self.delay_seconds:
            result["delay_seconds"] = self.delay_seconds
        if self.reason:
            result["reason"] = self.reason
        return result
