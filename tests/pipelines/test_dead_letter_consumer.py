"""Tests for the dead-letter consumer that persists DLQ notices."""

from __future__ import annotations

import pytest

from taproom.core.errors import StoreWriteError
from taproom.core.transports import InMemoryQueue
from taproom.execution.envelope import Envelope, OutcomeKind
from taproom.execution.runtime import ConsumerRuntime
from taproom.pipelines.dead_letters import DeadLetterConsumer, record_from_notice

NOTICE = {
    "message_id": "5f0c",
    "source_queue": "beer-enrichment",
    "failure_count": 3,
    "failure_reason": "upstream 503",
    "body": {"beerId": "7781234", "beerName": "Hazy Daze", "brewer": "Cedar Creek"},
}


def _envelope(payload) -> Envelope:
    return Envelope(id="dlq-msg-1", payload=payload, queue="beer-enrichment-dlq")


class TestRecordFromNotice:
    def test_full_notice(self):
        record = record_from_notice(NOTICE, failed_at=1760781600000)
        assert record.message_id == "5f0c"
        assert record.beer_id == "7781234"
        assert record.beer_name == "Hazy Daze"
        assert record.brewer == "Cedar Creek"
        assert record.failure_count == 3
        assert record.failed_at == 1760781600000
        assert record.raw_message == NOTICE["body"]

    def test_body_without_beer_id(self):
        record = record_from_notice({**NOTICE, "body": {"beerName": "x"}})
        assert record.beer_id == "unknown"

    def test_snake_case_body(self):
        record = record_from_notice({**NOTICE, "body": {"beer_id": "9", "beer_name": "Pils"}})
        assert (record.beer_id, record.beer_name) == ("9", "Pils")

    @pytest.mark.parametrize(
        "notice",
        [None, "text", {"source_queue": "beer-enrichment"}, {"message_id": "5f0c"}],
    )
    def test_not_a_notice(self, notice):
        assert record_from_notice(notice) is None


class TestDeadLetterConsumer:
    @pytest.mark.asyncio
    async def test_stores_notice(self, dead_letters):
        outcome = await DeadLetterConsumer(dead_letters).handle(_envelope(NOTICE))
        assert outcome.kind == OutcomeKind.ACK
        page = await dead_letters.list()
        assert page.total_count == 1
        assert page.records[0].failure_reason == "upstream 503"

    @pytest.mark.asyncio
    async def test_redelivered_notice_is_one_row(self, dead_letters):
        consumer = DeadLetterConsumer(dead_letters)
        await consumer.handle(_envelope(NOTICE))
        await consumer.handle(_envelope({**NOTICE, "failure_count": 4}))
        page = await dead_letters.list()
        assert page.total_count == 1
        assert page.records[0].failure_count == 4

    @pytest.mark.asyncio
    async def test_malformed_notice(self, dead_letters):
        outcome = await DeadLetterConsumer(dead_letters).handle(_envelope({"nope": 1}))
        assert outcome.kind == OutcomeKind.DEAD_LETTER

    @pytest.mark.asyncio
    async def test_store_failure_retries(self, dead_letters, monkeypatch):
        async def broken(record):
            raise StoreWriteError("disk full")

        monkeypatch.setattr(dead_letters, "insert", broken)
        outcome = await DeadLetterConsumer(dead_letters, retry_delay_seconds=30).handle(_envelope(NOTICE))
        assert outcome.kind == OutcomeKind.RETRY
        assert outcome.delay_seconds == 30

    @pytest.mark.asyncio
    async def test_end_to_end_from_pipeline_queue(self, dead_letters, clock):
        dlq = InMemoryQueue("beer-enrichment-dlq", clock=clock)
        queue = InMemoryQueue("beer-enrichment", max_attempts=1, dead_letter_queue=dlq, clock=clock)
        await queue.send({"beerId": "7781234", "beerName": "Hazy Daze"})
        [envelope] = await queue.receive(1)
        from taproom.execution.envelope import Outcome

        await queue.settle(envelope, Outcome.retry_after(60, "upstream 503"))
        await ConsumerRuntime(dlq, DeadLetterConsumer(dead_letters)).drain()

        [record] = (await dead_letters.list()).records
        assert record.message_id == envelope.id
        assert record.source_queue == "beer-enrichment"
        assert record.raw_message == {"beerId": "7781234", "beerName": "Hazy Daze"}
