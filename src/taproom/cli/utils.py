"""Shared plumbing for the CLI commands: settings, connections, rendering."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Coroutine
from contextlib import asynccontextmanager
from dataclasses import asdict, is_dataclass
from typing import Any, TypeVar

import typer
from pydantic import BaseModel
from rich.console import Console
from rich.table import Table

from taproom.core.database import Database, connect, ensure_schema
from taproom.core.errors import TaproomError
from taproom.core.logging import configure_logging
from taproom.core.settings import TaproomSettings, get_settings

console = Console()
err_console = Console(stderr=True)

T = TypeVar("T")


def load_settings(database: str | None = None) -> TaproomSettings:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_format=settings.json_logs, service="taproom-cli")
    if database:
        return settings.model_copy(update={"database_path": database})
    return settings


@asynccontextmanager
async def open_database(settings: TaproomSettings) -> AsyncIterator[Database]:
    db = await connect(settings.database_path)
    try:
        await ensure_schema(db)
        yield db
    finally:
        await db.close()


@asynccontextmanager
async def open_worker(settings: TaproomSettings, db: Database) -> AsyncIterator[Any]:
    """A :class:`~taproom.pipelines.worker.Worker` on in-memory queues with live clients."""
    from taproom.pipelines.worker import Topology, Worker
    from taproom.services.cleanup_llm import LlmCleanupClient
    from taproom.services.perplexity import PerplexityAbvClient

    lookup = PerplexityAbvClient.from_settings(settings)
    cleaner = LlmCleanupClient.from_settings(settings)
    try:
        yield Worker.from_settings(settings, db, Topology.in_memory(settings), lookup=lookup, cleaner=cleaner)
    finally:
        await lookup.aclose()
        await cleaner.aclose()


def run(coro: Coroutine[Any, Any, T]) -> T:
    """``asyncio.run`` with taproom errors reported on stderr as exit code 1."""
    try:
        return asyncio.run(coro)
    except TaproomError as e:
        err_console.print(f"[bold red]Error[/bold red] ({e.category.value}): {e.message}")
        raise typer.Exit(code=1) from e


def as_plain(obj: Any) -> Any:
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    if is_dataclass(obj) and not isinstance(obj, type):
        return asdict(obj)
    if isinstance(obj, list | tuple):
        return [as_plain(item) for item in obj]
    return obj


def output(data: Any, *, as_json: bool = False, title: str = "") -> None:
    """Print ``data`` as JSON, as a table (lists) or as key/value lines."""
    plain = as_plain(data)
    if as_json:
        console.print_json(json.dumps(plain, default=str))
    elif isinstance(plain, list):
        _table(plain, title)
    elif isinstance(plain, dict):
        _pairs(plain, title)
    else:
        console.print(str(plain))


def _table(rows: list[dict[str, Any]], title: str) -> None:
    if not rows:
        console.print("[dim]No items.[/dim]")
        return
    table = Table(title=title or None, pad_edge=False)
    for column in rows[0]:
        table.add_column(column, overflow="fold")
    for row in rows:
        table.add_row(*(str(value) for value in row.values()))
    console.print(table)


def _pairs(data: dict[str, Any], title: str) -> None:
    if title:
        console.print(f"[bold]{title}[/bold]")
    for key, value in data.items():
        console.print(f"  [cyan]{key}[/cyan]: {value}")
