"""End-to-end tests for the in-process worker."""

from __future__ import annotations

import pytest

from taproom.core.errors import UpstreamError
from taproom.pipelines.producers import enqueue_for_cleanup, enqueue_for_enrichment
from taproom.pipelines.worker import Topology, Worker
from taproom.services.perplexity import AbvLookup
from tests._support.fakes import FakeCleaner, FakeLookup, beer_row


class TestTopology:
    def test_in_memory_wiring(self, settings):
        topology = Topology.in_memory(settings)
        assert topology.enrichment.name == "beer-enrichment"
        assert topology.enrichment.max_attempts == 3
        assert topology.enrichment.dead_letter_queue is topology.enrichment_dlq
        assert topology.cleanup.max_attempts == 2
        assert topology.cleanup.dead_letter_queue is topology.cleanup_dlq
        assert set(topology.sources) == {"beer-enrichment", "description-cleanup"}


class TestWorker:
    @pytest.mark.asyncio
    async def test_cleanup_feeds_enrichment(self, settings, db, beers):
        rows = [
            beer_row("1", "Hazy Daze", description="<p>Pale ale brewed with oats, 5.4% ABV</p>"),
            beer_row("2", "Valley Lager", description="<p>Crisp lager from the valley</p>"),
        ]
        for row in rows:
            await beers.upsert(row)

        topology = Topology.in_memory(settings)
        lookup = FakeLookup(AbvLookup(abv=4.7))
        worker = Worker.from_settings(settings, db, topology, lookup=lookup, cleaner=FakeCleaner())
        await enqueue_for_cleanup(topology.cleanup, rows)

        totals = await worker.drain()

        assert totals["description-cleanup"] == {"ack": 2}
        assert totals["beer-enrichment"] == {"ack": 1}
        assert lookup.calls == [("Valley Lager", "Cedar Creek", None)]

        first = await beers.get("1")
        assert (first["abv"], first["enrichment_source"]) == (5.4, "description")
        second = await beers.get("2")
        assert second["brew_description_cleaned"] == "Crisp lager from the valley"
        assert (second["abv"], second["enrichment_source"]) == (4.7, "perplexity")

    @pytest.mark.asyncio
    async def test_terminal_failures_land_in_dead_letter_table(self, settings, db, beers, dead_letters):
        settings = settings.model_copy(update={"enrichment_max_attempts": 1})
        await beers.upsert(beer_row("1", "Hazy Daze"))

        topology = Topology.in_memory(settings)
        lookup = FakeLookup(UpstreamError("upstream 503"))
        worker = Worker.from_settings(settings, db, topology, lookup=lookup, cleaner=FakeCleaner())
        await enqueue_for_enrichment(topology.enrichment, [beer_row("1", "Hazy Daze")])

        totals = await worker.drain()

        assert totals["beer-enrichment"] == {"retry": 1}
        assert totals["beer-enrichment-dlq"] == {"ack": 1}
        [record] = (await dead_letters.list()).records
        assert record.beer_id == "1"
        assert record.source_queue == "beer-enrichment"
        assert record.failure_count == 1
        assert "503" in record.failure_reason
        assert len(topology.enrichment) == 0

    @pytest.mark.asyncio
    async def test_idle_drain(self, settings, db):
        topology = Topology.in_memory(settings)
        worker = Worker.from_settings(settings, db, topology, lookup=FakeLookup(), cleaner=FakeCleaner())
        totals = await worker.drain()
        assert totals == {
            "description-cleanup": {},
            "beer-enrichment": {},
            "description-cleanup-dlq": {},
            "beer-enrichment-dlq": {},
        }
