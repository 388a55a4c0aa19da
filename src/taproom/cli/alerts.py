"""
CLI: ``taproom alerts``: turn a batch of execution traces into an alert.
"""

from __future__ import annotations

import json
from pathlib import Path

import typer

from taproom.cli.utils import console, err_console, load_settings

app = typer.Typer(no_args_is_help=True)


@app.command("process")
def process(
    traces_file: Path = typer.Argument(..., help="JSON file holding a list of traces"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Filter error traces and send at most one alert for the batch."""
    from taproom.framework.alerts import TraceAlerter

    try:
        traces = json.loads(traces_file.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        err_console.print(f"[red]Cannot read {traces_file}: {e}[/red]")
        raise typer.Exit(code=1) from e
    if not isinstance(traces, list):
        err_console.print("[red]Expected a JSON list of traces[/red]")
        raise typer.Exit(code=1)

    alerter = TraceAlerter.from_settings(load_settings(database))
    result = alerter.handle(traces)
    console.print(f"alerts: [bold]{result.value}[/bold]")
