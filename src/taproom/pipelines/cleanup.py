"""Cleanup consumer: clean menu descriptions, pull ABVs out of them.

PIPELINE (per item, up to ``max_concurrency`` items in flight)
──────────────────────────────────────────────────────────────
::

    invalid payload            → DeadLetter
    quota denied               → Defer(300)
    breaker open               → fallback: keep original text
    cleanup call (timeout)     → validate_cleanup()
        ├── ABV in text        → store text + ABV (0.9, "description")  → Ack
        └── no ABV             → store text, enqueue EnrichmentJob      → Ack
    upstream / store failure   → RetryAfter(60)

Each item gets its own outcome; one failing item never affects the others
and the batch call itself never raises. Store writes are retried in-process
with a short backoff so a finished cleanup call is not thrown away over a
momentary database error.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from taproom.core.errors import StoreWriteError, TaproomError, UpstreamTimeoutError, ValidationError
from taproom.core.logging import LogContext, get_logger
from taproom.core.protocols import QueueTransport
from taproom.core.settings import TaproomSettings
from taproom.execution.async_batch import run_bounded
from taproom.execution.circuit_breaker import SlowCallBreaker
from taproom.execution.envelope import Envelope, Outcome, OutcomeKind
from taproom.execution.quota import CLEANUP, QuotaController
from taproom.execution.retry import ExponentialBackoff, RetryContext
from taproom.execution.runtime import MessageConsumer
from taproom.pipelines.beers import BeerStore
from taproom.pipelines.jobs import CleanupJob, EnrichmentJob, parse_job
from taproom.services.abv import extract_abv
from taproom.services.cleanup_llm import CleanupResult, CleanupService, validate_cleanup

logger = get_logger(__name__)

CLEANUP_SOURCE = "workers-ai"
FALLBACK_SOURCE = "fallback-circuit-breaker"
DESCRIPTION_CONFIDENCE = 0.9
FALLBACK_CONFIDENCE = 0.8


def _store_retry() -> RetryContext:
    return RetryContext(
        ExponentialBackoff(
            max_attempts=3,
            base_delay=0.1,
            jitter=False,
            retryable_errors=(StoreWriteError,),
        ),
        operation="cleanup.store",
    )


@dataclass
class CleanupBatchMetrics:
    """Per-batch counters, logged once the batch settles."""

    total: int = 0
    cleaned: int = 0
    abv_extracted: int = 0
    queued_for_lookup: int = 0
    fallback_used: int = 0
    failed: int = 0
    latencies_ms: list[float] = field(default_factory=list)

    @property
    def avg_latency_ms(self) -> float:
        if not self.latencies_ms:
            return 0.0
        return round(sum(self.latencies_ms) / len(self.latencies_ms), 1)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "cleaned": self.cleaned,
            "abv_extracted": self.abv_extracted,
            "queued_for_lookup": self.queued_for_lookup,
            "fallback_used": self.fallback_used,
            "failed": self.failed,
            "avg_latency_ms": self.avg_latency_ms,
        }


class CleanupConsumer(MessageConsumer):
    """Consumes the ``description-cleanup`` queue in concurrent batches."""

    def __init__(
        self,
        beers: BeerStore,
        quota: QuotaController,
        cleaner: CleanupService,
        enrichment_queue: QueueTransport,
        *,
        breaker: SlowCallBreaker | None = None,
        max_concurrency: int = 10,
        cleanup_timeout_seconds: float = 10.0,
        retry_delay_seconds: float = 60,
        quota_delay_seconds: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.beers = beers
        self.quota = quota
        self.cleaner = cleaner
        self.enrichment_queue = enrichment_queue
        self.breaker = breaker or SlowCallBreaker()
        self.max_concurrency = max_concurrency
        self.cleanup_timeout_seconds = cleanup_timeout_seconds
        self.retry_delay_seconds = retry_delay_seconds
        self.quota_delay_seconds = quota_delay_seconds
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: TaproomSettings,
        beers: BeerStore,
        quota: QuotaController,
        cleaner: CleanupService,
        enrichment_queue: QueueTransport,
    ) -> CleanupConsumer:
        breaker = SlowCallBreaker(
            name="cleanup",
            slow_call_seconds=settings.breaker_slow_call_seconds,
            slow_call_limit=settings.breaker_slow_call_limit,
            reset_seconds=settings.breaker_reset_seconds,
        )
        return cls(
            beers,
            quota,
            cleaner,
            enrichment_queue,
            breaker=breaker,
            max_concurrency=settings.max_cleanup_concurrency,
            cleanup_timeout_seconds=settings.cleanup_timeout_seconds,
            retry_delay_seconds=settings.default_retry_delay_seconds,
            quota_delay_seconds=settings.quota_retry_delay_seconds,
        )

    # ── Batch ────────────────────────────────────────────────────────

    async def handle_batch(self, envelopes: list[Envelope]) -> dict[str, Outcome]:
        metrics = CleanupBatchMetrics(total=len(envelopes))
        tasks = [self._bind(envelope, metrics) for envelope in envelopes]
        settled = await run_bounded(tasks, limit=self.max_concurrency)

        outcomes: dict[str, Outcome] = {}
        for envelope, result in zip(envelopes, settled):
            if result.ok:
                outcome = result.value
            else:
                logger.error(
                    "cleanup.item_crashed",
                    message_id=envelope.id,
                    error=str(result.error),
                )
                outcome = Outcome.retry_after(self.retry_delay_seconds, str(result.error))
            if outcome.kind == OutcomeKind.RETRY:
                metrics.failed += 1
            outcomes[envelope.id] = outcome

        logger.info(
            "cleanup.batch_complete",
            breaker_state=self.breaker.state.value,
            **metrics.to_dict(),
        )
        return outcomes

    def _bind(self, envelope: Envelope, metrics: CleanupBatchMetrics):
        async def _run() -> Outcome:
            async with LogContext(queue=envelope.queue, message_id=envelope.id):
                return await self.handle(envelope, metrics)

        return _run

    # ── Item ─────────────────────────────────────────────────────────

    async def handle(self, envelope: Envelope, metrics: CleanupBatchMetrics | None = None) -> Outcome:
        """Process one item. ``metrics`` collects counters for the enclosing batch."""
        if metrics is None:
            metrics = CleanupBatchMetrics(total=1)
        try:
            job = parse_job(CleanupJob, envelope.payload)
        except ValidationError as e:
            logger.error("cleanup.invalid_payload", error=str(e))
            return Outcome.dead_letter(str(e))

        if not job.description.strip():
            result = CleanupResult(cleaned=job.description, used_original=True, abv=None)
            return await self._store(job, result, metrics, source=None, confidence=DESCRIPTION_CONFIDENCE)

        try:
            admission = await self.quota.try_admit(CLEANUP)
        except TaproomError as e:
            logger.error("cleanup.quota_check_failed", beer_id=job.beer_id, error=str(e))
            return Outcome.retry_after(self.retry_delay_seconds, str(e))
        if not admission.admitted:
            return Outcome.defer(self.quota_delay_seconds, admission.reason)

        if self.breaker.is_open():
            return await self._fallback(job, metrics)

        try:
            cleaned = await self._clean(job, metrics)
        except TaproomError as e:
            logger.warning(
                "cleanup.call_failed",
                beer_id=job.beer_id,
                attempt=envelope.delivery_attempt,
                **e.to_dict(),
            )
            return Outcome.retry_after(self.retry_delay_seconds, str(e))

        result = validate_cleanup(job.description, cleaned)
        metrics.cleaned += 1
        return await self._store(
            job,
            result,
            metrics,
            source=None if result.used_original else CLEANUP_SOURCE,
            confidence=DESCRIPTION_CONFIDENCE,
        )

    async def _clean(self, job: CleanupJob, metrics: CleanupBatchMetrics) -> str:
        started = self._clock()
        try:
            return await asyncio.wait_for(
                self.cleaner.clean(job.description), timeout=self.cleanup_timeout_seconds
            )
        except TimeoutError as e:
            raise UpstreamTimeoutError(
                f"Cleanup exceeded {self.cleanup_timeout_seconds}s"
            ).with_context(beer_id=job.beer_id, service="cleanup-llm") from e
        finally:
            elapsed = self._clock() - started
            metrics.latencies_ms.append(elapsed * 1000)
            self.breaker.record_latency(elapsed, job.beer_id)

    async def _fallback(self, job: CleanupJob, metrics: CleanupBatchMetrics) -> Outcome:
        metrics.fallback_used += 1
        result = CleanupResult(
            cleaned=job.description,
            used_original=True,
            abv=extract_abv(job.description),
        )
        logger.info("cleanup.fallback", beer_id=job.beer_id, abv=result.abv)
        return await self._store(
            job,
            result,
            metrics,
            source=FALLBACK_SOURCE,
            confidence=FALLBACK_CONFIDENCE,
            enrichment_source="description-fallback",
        )

    async def _store(
        self,
        job: CleanupJob,
        result: CleanupResult,
        metrics: CleanupBatchMetrics,
        *,
        source: str | None,
        confidence: float,
        enrichment_source: str = "description",
    ) -> Outcome:
        try:
            if result.abv is not None:
                await _store_retry().run_async(
                    self.beers.record_cleanup,
                    job.beer_id,
                    result.cleaned,
                    source,
                    abv=result.abv,
                    confidence=confidence,
                    enrichment_source=enrichment_source,
                )
                metrics.abv_extracted += 1
            else:
                await _store_retry().run_async(
                    self.beers.record_cleanup, job.beer_id, result.cleaned, source
                )
                await self.enrichment_queue.send(
                    EnrichmentJob(
                        beer_id=job.beer_id, beer_name=job.beer_name, brewer=job.brewer
                    ).to_payload()
                )
                metrics.queued_for_lookup += 1
        except TaproomError as e:
            logger.error("cleanup.store_failed", beer_id=job.beer_id, **e.to_dict())
            return Outcome.retry_after(self.retry_delay_seconds, str(e))
        except Exception as e:
            logger.error("cleanup.enqueue_failed", beer_id=job.beer_id, error=str(e))
            return Outcome.retry_after(self.retry_delay_seconds, f"{type(e).__name__}: {e}")

        logger.info(
            "cleanup.stored",
            beer_id=job.beer_id,
            used_original=result.used_original,
            abv=result.abv,
            cleanup_source=source,
        )
        return Outcome.ack()
