"""The ``taproom`` command and its sub-command groups."""

from __future__ import annotations

import typer

from taproom import __version__
from taproom.cli import alerts, db, dlq, health, run

app = typer.Typer(
    name="taproom",
    help="Quota-gated beer enrichment and description cleanup.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.add_typer(db.app, name="db", help="Create and inspect the SQLite store.")
app.add_typer(dlq.app, name="dlq", help="Dead-letter inspection and replay.")
app.add_typer(run.app, name="run", help="Run a pipeline in this process.")
app.add_typer(alerts.app, name="alerts", help="Failure alerts from execution traces.")
app.command("health")(health.health)
app.command("quota")(health.quota)


def _print_version(value: bool) -> None:
    if value:
        typer.echo(f"taproom {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-V", help="Show version and exit.", callback=_print_version, is_eager=True
    ),
) -> None:
    """Database, dead letters, quota, health and pipeline runs."""
