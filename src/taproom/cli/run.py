"""
CLI: ``taproom run``: run the pipelines in this process.
"""

from __future__ import annotations

import json
from pathlib import Path

import typer

from taproom.cli.utils import console, load_settings, open_database, open_worker, output, run

app = typer.Typer(no_args_is_help=True)


@app.command("scheduled")
def scheduled(
    process: bool = typer.Option(True, "--process/--no-process", help="Drain the queues after enqueueing"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Queue beers with no ABV (within quota) and look them up.

    Example::

        taproom run scheduled
        taproom run scheduled --no-process --json
    """
    from taproom.execution.dlq import DeadLetterStore
    from taproom.execution.quota import QuotaController
    from taproom.pipelines.beers import BeerStore
    from taproom.pipelines.producers import run_scheduled_enrichment

    async def _scheduled():
        settings = load_settings(database)
        async with open_database(settings) as db, open_worker(settings, db) as worker:
            report = await run_scheduled_enrichment(
                worker.topology.enrichment,
                BeerStore(db),
                QuotaController.from_settings(db, settings),
                DeadLetterStore(db),
                enabled=settings.enrichment_enabled,
                batch_limit=settings.scheduled_batch_limit,
                quota_retention_days=settings.quota_retention_days,
                dlq_retention_days=settings.dlq_retention_days,
            )
            if process and report.queued:
                await worker.drain()
            return report

    output(run(_scheduled()), as_json=json_out, title="Scheduled Enrichment")


@app.command("cleanup")
def cleanup(
    source: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON file with a list of beers"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Upsert beers from a JSON file, clean their descriptions and drain.

    Each beer needs ``id`` and ``brew_name``; ``brewer`` and
    ``brew_description`` are optional.
    """
    from taproom.pipelines.beers import BeerStore
    from taproom.pipelines.producers import enqueue_for_cleanup

    beers = json.loads(source.read_text(encoding="utf-8"))
    if not isinstance(beers, list):
        console.print("[bold red]Error[/bold red]: expected a JSON list of beers")
        raise typer.Exit(code=1)

    async def _cleanup():
        settings = load_settings(database)
        async with open_database(settings) as db, open_worker(settings, db) as worker:
            store = BeerStore(db)
            for beer in beers:
                await store.upsert(beer)
            report = await enqueue_for_cleanup(worker.topology.cleanup, beers)
            await worker.drain()
            return report

    output(run(_cleanup()), as_json=json_out, title="Cleanup")
