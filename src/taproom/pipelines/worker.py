"""In-process worker: queue topology plus one runtime per consumer.

::

    Worker
      ├── cleanup runtime          (batch 25, concurrent items)
      ├── enrichment runtime       (batch 1)
      ├── cleanup-dlq runtime      → dlq_messages
      └── enrichment-dlq runtime   → dlq_messages

:meth:`Worker.drain` keeps running rounds until no queue has a visible
message. Deferred and retried messages stay in their queues with their
delay; they are only processed by a later drain.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from taproom.core.logging import get_logger
from taproom.core.protocols import AsyncConnection, QueueTransport
from taproom.core.settings import TaproomSettings
from taproom.core.transports import InMemoryQueue
from taproom.execution.dlq import DeadLetterStore
from taproom.execution.quota import QuotaController
from taproom.execution.runtime import ConsumerRuntime
from taproom.pipelines.beers import BeerStore
from taproom.pipelines.cleanup import CleanupConsumer
from taproom.pipelines.dead_letters import DeadLetterConsumer
from taproom.pipelines.enrichment import EnrichmentConsumer
from taproom.pipelines.producers import CLEANUP_DLQ, CLEANUP_QUEUE, ENRICHMENT_DLQ, ENRICHMENT_QUEUE
from taproom.services.cleanup_llm import CleanupService
from taproom.services.perplexity import AbvLookupClient

logger = get_logger(__name__)


@dataclass
class Topology:
    """The two pipeline queues and their dead-letter queues."""

    enrichment: InMemoryQueue
    enrichment_dlq: InMemoryQueue
    cleanup: InMemoryQueue
    cleanup_dlq: InMemoryQueue

    @classmethod
    def in_memory(cls, settings: TaproomSettings) -> Topology:
        enrichment_dlq = InMemoryQueue(ENRICHMENT_DLQ, max_attempts=settings.dlq_max_attempts)
        cleanup_dlq = InMemoryQueue(CLEANUP_DLQ, max_attempts=settings.dlq_max_attempts)
        return cls(
            enrichment=InMemoryQueue(
                ENRICHMENT_QUEUE,
                max_attempts=settings.enrichment_max_attempts,
                dead_letter_queue=enrichment_dlq,
            ),
            enrichment_dlq=enrichment_dlq,
            cleanup=InMemoryQueue(
                CLEANUP_QUEUE,
                max_attempts=settings.cleanup_max_attempts,
                dead_letter_queue=cleanup_dlq,
            ),
            cleanup_dlq=cleanup_dlq,
        )

    @property
    def sources(self) -> dict[str, QueueTransport]:
        """Pipeline queues by name, as dead-letter replay targets."""
        return {ENRICHMENT_QUEUE: self.enrichment, CLEANUP_QUEUE: self.cleanup}


class Worker:
    """Runs every consumer of a :class:`Topology` in one process."""

    def __init__(self, topology: Topology, runtimes: list[ConsumerRuntime]):
        self.topology = topology
        self.runtimes = runtimes

    @classmethod
    def from_settings(
        cls,
        settings: TaproomSettings,
        db: AsyncConnection,
        topology: Topology,
        *,
        lookup: AbvLookupClient,
        cleaner: CleanupService,
    ) -> Worker:
        beers = BeerStore(db)
        quota = QuotaController.from_settings(db, settings)
        dead_letters = DeadLetterConsumer(
            DeadLetterStore(db), retry_delay_seconds=settings.default_retry_delay_seconds
        )
        retry = settings.default_retry_delay_seconds
        runtimes = [
            ConsumerRuntime(
                topology.cleanup,
                CleanupConsumer.from_settings(settings, beers, quota, cleaner, topology.enrichment),
                batch_size=settings.cleanup_batch_size,
                fallback_retry_seconds=retry,
            ),
            ConsumerRuntime(
                topology.enrichment,
                EnrichmentConsumer.from_settings(settings, beers, quota, lookup),
                batch_size=1,
                fallback_retry_seconds=retry,
            ),
            ConsumerRuntime(topology.cleanup_dlq, dead_letters, batch_size=10, fallback_retry_seconds=retry),
            ConsumerRuntime(topology.enrichment_dlq, dead_letters, batch_size=10, fallback_retry_seconds=retry),
        ]
        return cls(topology, runtimes)

    async def drain(self, max_rounds: int = 1000) -> dict[str, Any]:
        """Run rounds until every queue is idle. Returns settled counts per queue."""
        totals: dict[str, dict[str, int]] = {r.queue.name: {} for r in self.runtimes}
        for _ in range(max_rounds):
            received = 0
            for runtime in self.runtimes:
                report = await runtime.run_once()
                received += report.received
                counts = totals[runtime.queue.name]
                for kind, count in report.outcomes.items():
                    counts[kind] = counts.get(kind, 0) + count
            if received == 0:
                break
        else:
            logger.warning("worker.max_rounds_reached", max_rounds=max_rounds)

        logger.info("worker.drained", queues=totals)
        return totals
