"""Consumer runtime: receive a batch, run the consumer, settle outcomes.

ARCHITECTURE
────────────
::

    ConsumerRuntime.run_once()
      ├── queue.receive(batch_size)        ─ claim visible envelopes
      ├── consumer.handle_batch(envelopes) ─ {envelope.id: Outcome}
      └── queue.settle(envelope, outcome)  ─ ack / retry / defer / dead-letter
            └── missing outcome → retry
            └── consumer raised  → retry every envelope in the batch

The runtime never raises; it is the floor under every consumer.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from taproom.core.errors import categorize_error
from taproom.core.logging import LogContext, get_logger
from taproom.core.protocols import QueueTransport
from taproom.execution.envelope import Envelope, Outcome

logger = get_logger(__name__)


class MessageConsumer(ABC):
    """Base class for queue consumers.

    Subclasses implement :meth:`handle` for one envelope. Consumers that
    process items concurrently override :meth:`handle_batch`.
    """

    @abstractmethod
    async def handle(self, envelope: Envelope) -> Outcome: ...

    async def handle_batch(self, envelopes: list[Envelope]) -> dict[str, Outcome]:
        outcomes: dict[str, Outcome] = {}
        for envelope in envelopes:
            async with LogContext(queue=envelope.queue, message_id=envelope.id):
                outcomes[envelope.id] = await self.handle(envelope)
        return outcomes


@dataclass
class RunReport:
    """Counts of settled outcomes for one ``run_once`` call."""

    received: int = 0
    outcomes: Counter = field(default_factory=Counter)
    consumer_failed: bool = False
    failure_category: str | None = None

    @property
    def acked(self) -> int:
        return self.outcomes["ack"]

    def to_dict(self) -> dict[str, Any]:
        return {
            "received": self.received,
            "consumer_failed": self.consumer_failed,
            **({"failure_category": self.failure_category} if self.failure_category else {}),
            **dict(self.outcomes),
        }


class ConsumerRuntime:
    """Drives one consumer against one queue.

    Parameters
    ----------
    queue : QueueTransport
        Source queue.
    consumer : MessageConsumer
        Returns an Outcome per envelope id.
    batch_size : int
        Max envelopes received per ``run_once``.
    fallback_retry_seconds : float
        Delay used when the consumer gives no outcome for an envelope.
    """

    def __init__(
        self,
        queue: QueueTransport,
        consumer: MessageConsumer,
        *,
        batch_size: int = 1,
        fallback_retry_seconds: float = 60,
    ) -> None:
        self.queue = queue
        self.consumer = consumer
        self.batch_size = batch_size
        self.fallback_retry_seconds = fallback_retry_seconds

    async def run_once(self) -> RunReport:
        report = RunReport()
        try:
            envelopes = await self.queue.receive(self.batch_size)
        except Exception as e:
            report.failure_category = categorize_error(e).value
            logger.error(
                "runtime.receive_failed",
                queue=self.queue.name,
                error_category=report.failure_category,
                error=str(e),
            )
            return report

        report.received = len(envelopes)
        if not envelopes:
            return report

        try:
            outcomes = await self.consumer.handle_batch(envelopes)
        except Exception as e:
            report.consumer_failed = True
            report.failure_category = categorize_error(e).value
            logger.error(
                "runtime.consumer_failed",
                queue=self.queue.name,
                batch_size=len(envelopes),
                error_category=report.failure_category,
                error=str(e),
                exc_info=True,
            )
            outcomes = {}

        for envelope in envelopes:
            outcome = outcomes.get(envelope.id)
            if outcome is None:
                outcome = Outcome.retry_after(self.fallback_retry_seconds, "no outcome from consumer")
            try:
                await self.queue.settle(envelope, outcome)
            except Exception as e:
                logger.error(
                    "runtime.settle_failed",
                    queue=self.queue.name,
                    message_id=envelope.id,
                    outcome=outcome.kind.value,
                    error=str(e),
                )
                continue
            report.outcomes[outcome.kind.value] += 1

        logger.info("runtime.batch_settled", queue=self.queue.name, **report.to_dict())
        return report

    async def drain(self, max_rounds: int = 100) -> list[RunReport]:
        """Run until nothing is visible (or ``max_rounds`` is hit)."""
        reports = []
        for _ in range(max_rounds):
            report = await self.run_once()
            if report.received == 0:
                break
            reports.append(report)
        return reports
