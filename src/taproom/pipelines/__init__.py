"""Beer pipelines: ABV enrichment, description cleanup and dead-letter capture."""

from taproom.pipelines.beers import BeerStore
from taproom.pipelines.cleanup import CleanupConsumer
from taproom.pipelines.dead_letters import DeadLetterConsumer
from taproom.pipelines.enrichment import EnrichmentConsumer
from taproom.pipelines.jobs import CleanupJob, EnrichmentJob
from taproom.pipelines.producers import (
    CLEANUP_DLQ,
    CLEANUP_QUEUE,
    ENRICHMENT_DLQ,
    ENRICHMENT_QUEUE,
    enqueue_for_cleanup,
    enqueue_for_enrichment,
    run_scheduled_enrichment,
)

__all__ = [
    "BeerStore",
    "CleanupConsumer",
    "CleanupJob",
    "DeadLetterConsumer",
    "EnrichmentConsumer",
    "EnrichmentJob",
    "CLEANUP_DLQ",
    "CLEANUP_QUEUE",
    "ENRICHMENT_DLQ",
    "ENRICHMENT_QUEUE",
    "enqueue_for_cleanup",
    "enqueue_for_enrichment",
    "run_scheduled_enrichment",
]
