"""
CLI: ``taproom health`` and ``taproom quota``.
"""

from __future__ import annotations

import typer

from taproom.cli.utils import console, load_settings, open_database, output, run


def health(
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Database, quota, dead-letter and kill-switch status."""
    from taproom.execution.health import HealthStatus, get_health

    async def _health():
        settings = load_settings(database)
        async with open_database(settings) as db:
            return await get_health(db, settings)

    report = run(_health())
    if json_out:
        output(report, as_json=True)
    else:
        colour = {"healthy": "green", "degraded": "yellow", "unhealthy": "red"}[report.status.value]
        console.print(f"[bold {colour}]{report.status.value.upper()}[/bold {colour}]")
        output(
            [{"check": c.name, "status": c.status.value, "message": c.message} for c in report.checks],
            title="Checks",
        )
    if report.status == HealthStatus.UNHEALTHY:
        raise typer.Exit(code=1)


def quota(
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Today's and this month's quota usage per pipeline."""
    from taproom.execution.quota import CLEANUP, ENRICHMENT, QuotaController

    async def _quota():
        settings = load_settings(database)
        async with open_database(settings) as db:
            controller = QuotaController.from_settings(db, settings)
            return [await controller.status(p) for p in (ENRICHMENT, CLEANUP)]

    statuses = run(_quota())
    if json_out:
        output(statuses, as_json=True)
        return
    output(
        [
            {
                "pipeline": s.pipeline,
                "day": s.day,
                "daily": f"{s.daily_used}/{s.daily_limit}",
                "monthly": f"{s.monthly_used}/{s.monthly_limit}",
                "exhausted": s.exhausted,
            }
            for s in statuses
        ],
        title="Quota",
    )
