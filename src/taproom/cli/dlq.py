"""
CLI: ``taproom dlq``: dead-letter inspection, replay and cleanup.
"""

from __future__ import annotations

import typer

from taproom.cli.utils import console, load_settings, open_database, open_worker, output, run

app = typer.Typer(no_args_is_help=True)


@app.command("list")
def list_dead_letters(
    status: str = typer.Option("pending", "--status", "-s", help="pending, replaying, replayed, acknowledged or all"),
    beer_id: str | None = typer.Option(None, "--beer-id", "-b"),
    limit: int = typer.Option(50, "--limit", "-n"),
    cursor: str | None = typer.Option(None, "--cursor", help="Cursor from a previous page"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List dead letters, most recent first."""
    from taproom.execution.dlq import DeadLetterStore

    async def _list():
        async with open_database(load_settings(database)) as db:
            return await DeadLetterStore(db).list(
                status=status, beer_id=beer_id, limit=limit, cursor=cursor
            )

    page = run(_list())
    if json_out:
        output(page, as_json=True)
        return
    output(page.records, title="Dead Letters")
    console.print(f"\n[dim]Showing {len(page.records)} of {page.total_count}[/dim]")
    if page.next_cursor:
        console.print(f"[dim]Next page: --cursor {page.next_cursor}[/dim]")


@app.command("stats")
def stats(
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Counts by status, oldest pending age and top failing brewers."""
    from taproom.execution.dlq import DeadLetterStore

    async def _stats():
        async with open_database(load_settings(database)) as db:
            return await DeadLetterStore(db).stats()

    output(run(_stats()), as_json=json_out, title="Dead-Letter Stats")


@app.command("replay")
def replay(
    ids: list[int] = typer.Argument(..., help="Dead-letter record ids (max 50)"),
    delay: float = typer.Option(0, "--delay", help="Visibility delay in seconds"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Send pending dead letters back to their pipeline and process them."""
    from taproom.execution.dlq import DeadLetterStore

    async def _replay():
        settings = load_settings(database)
        async with open_database(settings) as db, open_worker(settings, db) as worker:
            report = await DeadLetterStore(db).replay(ids, worker.topology.sources, delay)
            if report.replayed and not delay:
                await worker.drain()
            return report

    output(run(_replay()), as_json=json_out, title="Replay")


@app.command("ack")
def acknowledge(
    ids: list[int] = typer.Argument(..., help="Dead-letter record ids (max 100)"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Acknowledge dead letters without replaying them."""
    from taproom.execution.dlq import DeadLetterStore

    async def _ack():
        async with open_database(load_settings(database)) as db:
            return await DeadLetterStore(db).acknowledge(ids)

    count = run(_ack())
    console.print(f"Acknowledged [bold]{count}[/bold] of {len(set(ids))} record(s)")


@app.command("purge")
def purge(
    days: int = typer.Option(30, "--days", help="Delete resolved records older than N days"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Delete replayed and acknowledged dead letters past retention."""
    from taproom.execution.dlq import DeadLetterStore

    async def _purge():
        async with open_database(load_settings(database)) as db:
            return await DeadLetterStore(db).purge_resolved(days)

    console.print(f"Purged [bold]{run(_purge())}[/bold] resolved record(s)")
