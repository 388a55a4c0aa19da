"""Enrichment consumer: one ABV lookup per message, gated by quota.

STATE FLOW
──────────
::

    received
      ├── kill switch off       → Ack (skipped)
      ├── invalid payload       → DeadLetter
      └── quota check
            ├── denied          → Defer(300)
            └── admitted → lookup (bounded by timeout)
                  ├── found     → record_abv → Ack
                  ├── unknown   → Ack
                  ├── 429       → RetryAfter(120)
                  └── failure   → RetryAfter(60)

The ABV write is a plain overwrite keyed by beer id, so a message that is
delivered twice leaves the row in the state of whichever write landed last.
Admission charges the quota before the call; a failed call still counts.
"""

from __future__ import annotations

import asyncio

from taproom.core.errors import (
    RateLimitError,
    TaproomError,
    UpstreamTimeoutError,
    ValidationError,
    get_retry_after,
)
from taproom.core.logging import get_logger
from taproom.core.settings import TaproomSettings
from taproom.execution.envelope import Envelope, Outcome
from taproom.execution.quota import ENRICHMENT, QuotaController
from taproom.execution.runtime import MessageConsumer
from taproom.pipelines.beers import BeerStore
from taproom.pipelines.jobs import EnrichmentJob, parse_job
from taproom.services.perplexity import AbvLookupClient

logger = get_logger(__name__)

LOOKUP_SOURCE = "perplexity"


class EnrichmentConsumer(MessageConsumer):
    """Looks up missing ABVs for the ``beer-enrichment`` queue."""

    def __init__(
        self,
        beers: BeerStore,
        quota: QuotaController,
        lookup: AbvLookupClient,
        *,
        enabled: bool = True,
        lookup_timeout_seconds: float = 15.0,
        retry_delay_seconds: float = 60,
        rate_limit_delay_seconds: float = 120,
        quota_delay_seconds: float = 300,
    ) -> None:
        self.beers = beers
        self.quota = quota
        self.lookup = lookup
        self.enabled = enabled
        self.lookup_timeout_seconds = lookup_timeout_seconds
        self.retry_delay_seconds = retry_delay_seconds
        self.rate_limit_delay_seconds = rate_limit_delay_seconds
        self.quota_delay_seconds = quota_delay_seconds

    @classmethod
    def from_settings(
        cls,
        settings: TaproomSettings,
        beers: BeerStore,
        quota: QuotaController,
        lookup: AbvLookupClient,
    ) -> EnrichmentConsumer:
        return cls(
            beers,
            quota,
            lookup,
            enabled=settings.enrichment_enabled,
            lookup_timeout_seconds=settings.lookup_timeout_seconds,
            retry_delay_seconds=settings.default_retry_delay_seconds,
            rate_limit_delay_seconds=settings.rate_limit_retry_delay_seconds,
            quota_delay_seconds=settings.quota_retry_delay_seconds,
        )

    async def handle(self, envelope: Envelope) -> Outcome:
        if not self.enabled:
            logger.info("enrichment.disabled", message_id=envelope.id)
            return Outcome.ack()

        try:
            job = parse_job(EnrichmentJob, envelope.payload)
        except ValidationError as e:
            logger.error("enrichment.invalid_payload", message_id=envelope.id, error=str(e))
            return Outcome.dead_letter(str(e))

        try:
            admission = await self.quota.try_admit(ENRICHMENT)
        except TaproomError as e:
            logger.error("enrichment.quota_check_failed", beer_id=job.beer_id, error=str(e))
            return Outcome.retry_after(self.retry_delay_seconds, str(e))

        if not admission.admitted:
            return Outcome.defer(self.quota_delay_seconds, admission.reason)

        try:
            found = await self._lookup(job)
            if found is None:
                logger.info("enrichment.not_found", beer_id=job.beer_id, beer_name=job.beer_name)
                return Outcome.ack()
            await self.beers.record_abv(job.beer_id, found.abv, found.confidence, LOOKUP_SOURCE)
        except RateLimitError as e:
            delay = get_retry_after(e) or self.rate_limit_delay_seconds
            logger.warning("enrichment.rate_limited", beer_id=job.beer_id, retry_after=delay)
            return Outcome.retry_after(delay, str(e))
        except TaproomError as e:
            logger.warning(
                "enrichment.failed",
                beer_id=job.beer_id,
                attempt=envelope.delivery_attempt,
                **e.to_dict(),
            )
            return Outcome.retry_after(self.retry_delay_seconds, str(e))
        except Exception as e:
            logger.error("enrichment.unexpected_error", beer_id=job.beer_id, error=str(e), exc_info=True)
            return Outcome.retry_after(self.retry_delay_seconds, f"{type(e).__name__}: {e}")

        logger.info(
            "enrichment.updated",
            beer_id=job.beer_id,
            beer_name=job.beer_name,
            abv=found.abv,
            priority=job.priority,
        )
        return Outcome.ack()

    async def _lookup(self, job: EnrichmentJob):
        try:
            return await asyncio.wait_for(
                self.lookup.lookup(job.beer_name, job.brewer, job.description),
                timeout=self.lookup_timeout_seconds,
            )
        except TimeoutError as e:
            raise UpstreamTimeoutError(
                f"ABV lookup exceeded {self.lookup_timeout_seconds}s"
            ).with_context(beer_id=job.beer_id, service=LOOKUP_SOURCE) from e
