"""Dead-letter consumer: persist dead-letter notices to ``dlq_messages``.

A pipeline queue routes a terminally failed message to its ``-dlq`` queue
as a notice::

    {"message_id": ..., "source_queue": "beer-enrichment",
     "failure_count": 3, "failure_reason": "...", "body": {...original payload...}}

This consumer stores each notice with :meth:`DeadLetterStore.insert`. Store
failures are retried by the dead-letter queue's own attempt budget; after
that the notice is logged and dropped.
"""

from __future__ import annotations

from typing import Any

from taproom.core.database import now_ms
from taproom.core.errors import TaproomError
from taproom.core.logging import get_logger
from taproom.execution.dlq import DeadLetterStore
from taproom.execution.envelope import Envelope, Outcome
from taproom.execution.models import DeadLetterRecord
from taproom.execution.runtime import MessageConsumer

logger = get_logger(__name__)

UNKNOWN_BEER_ID = "unknown"


def record_from_notice(notice: Any, *, failed_at: int | None = None) -> DeadLetterRecord | None:
    """Build a record from a dead-letter notice. None if it is not one."""
    if not isinstance(notice, dict):
        return None
    message_id = notice.get("message_id")
    source_queue = notice.get("source_queue")
    if not message_id or not source_queue:
        return None

    body = notice.get("body")
    if not isinstance(body, dict):
        body = {}
    return DeadLetterRecord(
        message_id=str(message_id),
        beer_id=str(body.get("beerId") or body.get("beer_id") or UNKNOWN_BEER_ID),
        beer_name=body.get("beerName") or body.get("beer_name"),
        brewer=body.get("brewer"),
        failed_at=failed_at if failed_at is not None else now_ms(),
        failure_count=int(notice.get("failure_count") or 1),
        failure_reason=notice.get("failure_reason"),
        source_queue=str(source_queue),
        raw_message=body,
    )


class DeadLetterConsumer(MessageConsumer):
    """Drains a ``-dlq`` queue into the dead-letter store."""

    def __init__(self, store: DeadLetterStore, *, retry_delay_seconds: float = 60):
        self.store = store
        self.retry_delay_seconds = retry_delay_seconds

    async def handle(self, envelope: Envelope) -> Outcome:
        record = record_from_notice(envelope.payload)
        if record is None:
            logger.error("dead_letters.malformed_notice", message_id=envelope.id)
            return Outcome.dead_letter("malformed dead-letter notice")

        try:
            await self.store.insert(record)
        except TaproomError as e:
            logger.error(
                "dead_letters.store_failed",
                dead_letter_id=record.message_id,
                attempt=envelope.delivery_attempt,
                error=str(e),
            )
            return Outcome.retry_after(self.retry_delay_seconds, str(e))

        logger.info(
            "dead_letters.stored",
            dead_letter_id=record.message_id,
            beer_id=record.beer_id,
            source_queue=record.source_queue,
            failure_count=record.failure_count,
        )
        return Outcome.ack()
