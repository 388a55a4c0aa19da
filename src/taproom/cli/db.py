"""
CLI: ``taproom db``: database management commands.
"""

from __future__ import annotations

import typer

from taproom.cli.utils import console, load_settings, open_database, output, run
from taproom.core.schema import TABLES

app = typer.Typer(no_args_is_help=True)


@app.command()
def init(
    database: str | None = typer.Option(None, "--database", "-d", help="Database path"),
) -> None:
    """Create the beer, quota and dead-letter tables if missing."""
    settings = load_settings(database)

    async def _init() -> None:
        async with open_database(settings):
            pass

    run(_init())
    console.print(f"[green]Schema ready[/green] at {settings.database_path}")


@app.command()
def tables(
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show row counts for all managed tables."""

    async def _counts() -> dict[str, int]:
        counts = {}
        async with open_database(load_settings(database)) as db:
            for table in TABLES:
                row = await db.fetchone(f"SELECT COUNT(*) AS n FROM {table}")
                counts[table] = row["n"]
        return counts

    output(run(_counts()), as_json=json_out, title="Table Counts")
