"""Producers for the pipeline queues and the scheduled enrichment run.

Queue topology::

    beer-enrichment      ──(3 attempts)──►  beer-enrichment-dlq
    description-cleanup  ──(2 attempts)──►  description-cleanup-dlq
                                                  │
                                     DeadLetterConsumer → dlq_messages

Producers drop blocklisted menu items and send in chunks of
:data:`SEND_BATCH_SIZE`. A failed chunk is logged and skipped; the rest
still go out.
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

import aiosqlite

from taproom.core.errors import TaproomError
from taproom.core.logging import get_logger
from taproom.core.protocols import QueueTransport
from taproom.execution.dlq import DeadLetterStore
from taproom.execution.quota import ENRICHMENT, QuotaController
from taproom.pipelines.beers import BeerStore
from taproom.pipelines.blocklist import split_blocklisted
from taproom.pipelines.jobs import CleanupJob, EnrichmentJob

logger = get_logger(__name__)

ENRICHMENT_QUEUE = "beer-enrichment"
CLEANUP_QUEUE = "description-cleanup"
ENRICHMENT_DLQ = f"{ENRICHMENT_QUEUE}-dlq"
CLEANUP_DLQ = f"{CLEANUP_QUEUE}-dlq"

SEND_BATCH_SIZE = 100
MAX_SCHEDULED_BATCH = 100


@dataclass
class EnqueueReport:
    queued: int = 0
    skipped: int = 0
    failed: int = 0
    queued_ids: list[str] = field(default_factory=list)
    skipped_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"queued": self.queued, "skipped": self.skipped, "failed": self.failed}


async def _send_in_chunks(
    queue: QueueTransport,
    beers: Iterable[Mapping[str, Any]],
    build_payload,
) -> EnqueueReport:
    eligible, skipped = split_blocklisted(beers)
    report = EnqueueReport(skipped=len(skipped), skipped_ids=[str(b["id"]) for b in skipped])
    if skipped:
        logger.info(
            "producer.blocklisted",
            queue=queue.name,
            skipped=len(skipped),
            names=[b.get("brew_name") for b in skipped[:10]],
        )

    for start in range(0, len(eligible), SEND_BATCH_SIZE):
        chunk = eligible[start : start + SEND_BATCH_SIZE]
        try:
            await queue.send_batch([build_payload(beer) for beer in chunk])
        except Exception as e:
            report.failed += len(chunk)
            logger.error(
                "producer.send_batch_failed",
                queue=queue.name,
                batch_index=start // SEND_BATCH_SIZE + 1,
                batch_size=len(chunk),
                error=str(e),
            )
            continue
        report.queued += len(chunk)
        report.queued_ids.extend(str(beer["id"]) for beer in chunk)

    logger.info("producer.enqueued", queue=queue.name, **report.to_dict())
    return report


def _enrichment_payload(beer: Mapping[str, Any]) -> dict[str, Any]:
    return EnrichmentJob(
        beer_id=str(beer["id"]),
        beer_name=beer["brew_name"],
        brewer=beer.get("brewer"),
    ).to_payload()


def _cleanup_payload(beer: Mapping[str, Any]) -> dict[str, Any]:
    return CleanupJob(
        beer_id=str(beer["id"]),
        beer_name=beer["brew_name"],
        brewer=beer.get("brewer"),
        description=beer.get("brew_description") or "",
    ).to_payload()


async def enqueue_for_enrichment(
    queue: QueueTransport, beers: Iterable[Mapping[str, Any]]
) -> EnqueueReport:
    """Queue ABV lookups for beer rows (``id``, ``brew_name``, ``brewer``)."""
    return await _send_in_chunks(queue, beers, _enrichment_payload)


async def enqueue_for_cleanup(
    queue: QueueTransport, beers: Iterable[Mapping[str, Any]]
) -> EnqueueReport:
    """Queue description cleanups for beer rows that carry ``brew_description``."""
    return await _send_in_chunks(queue, beers, _cleanup_payload)


# =============================================================================
# SCHEDULED ENRICHMENT
# =============================================================================


@dataclass
class ScheduledRunReport:
    """What one scheduled enrichment run did.

    ``skip_reason`` is ``kill_switch``, ``monthly_limit``, ``daily_limit`` or
    ``no_beers`` when nothing was queued for that reason.
    """

    queued: int = 0
    skipped: int = 0
    daily_remaining: int = 0
    monthly_remaining: int = 0
    skip_reason: str | None = None
    quota_rows_purged: int = 0
    dead_letters_purged: int = 0
    duration_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "queued": self.queued,
            "skipped": self.skipped,
            "daily_remaining": self.daily_remaining,
            "monthly_remaining": self.monthly_remaining,
            "skip_reason": self.skip_reason,
            "quota_rows_purged": self.quota_rows_purged,
            "dead_letters_purged": self.dead_letters_purged,
            "duration_ms": self.duration_ms,
        }


async def run_scheduled_enrichment(
    queue: QueueTransport,
    beers: BeerStore,
    quota: QuotaController,
    dead_letters: DeadLetterStore,
    *,
    enabled: bool = True,
    batch_limit: int = MAX_SCHEDULED_BATCH,
    quota_retention_days: int = 90,
    dlq_retention_days: int = 30,
) -> ScheduledRunReport:
    """Queue beers with no ABV, up to what today's quota can still pay for.

    Checks run in order: kill switch, monthly ceiling, daily ceiling. The
    run itself charges no quota; consumers are charged per lookup. Old quota
    rows and resolved dead letters are purged on every run that gets past
    the kill switch.
    """
    started = time.monotonic()
    report = ScheduledRunReport()

    if not enabled:
        report.skip_reason = "kill_switch"
        logger.info("scheduled.skipped", reason="kill_switch")
        return report

    status = await quota.status(ENRICHMENT)
    report.daily_remaining = status.daily_remaining
    report.monthly_remaining = status.monthly_remaining

    if status.monthly_remaining <= 0:
        report.skip_reason = "monthly_limit"
    elif status.daily_remaining <= 0:
        report.skip_reason = "daily_limit"
    else:
        batch_size = min(batch_limit, MAX_SCHEDULED_BATCH, status.daily_remaining)
        candidates = await beers.select_needing_enrichment(batch_size)
        enqueue = await enqueue_for_enrichment(queue, candidates)
        report.queued = enqueue.queued
        report.skipped = enqueue.skipped
        report.daily_remaining = status.daily_remaining - enqueue.queued
        if not enqueue.queued:
            report.skip_reason = "no_beers"
        # Blocklisted rows are stamped too so they stop crowding out the batch.
        await beers.mark_enrichment_queued(enqueue.queued_ids + enqueue.skipped_ids)

    if report.skip_reason:
        logger.info("scheduled.skipped", reason=report.skip_reason)

    try:
        report.quota_rows_purged = await quota.purge_older_than(quota_retention_days)
        report.dead_letters_purged = await dead_letters.purge_resolved(dlq_retention_days)
    except (TaproomError, aiosqlite.Error) as e:
        logger.error("scheduled.purge_failed", error=str(e))

    report.duration_ms = int((time.monotonic() - started) * 1000)
    logger.info("scheduled.complete", **report.to_dict())
    return report
