"""Plain-text rendering of error traces into alert subject and body."""

from __future__ import annotations

import json
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlsplit

from taproom.framework.alerts.traces import FetchEvent, QueueEvent, ScheduledEvent, Trace

MAX_TRACES_PER_ALERT = 10
SUBJECT_PREFIX = "[Taproom]"
TRACE_SEPARATOR = "\n========================================\n\n"


def _clock_time(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=UTC).strftime("%H:%M:%S")


def _iso_time(ms: int) -> str:
    return (
        datetime.fromtimestamp(ms / 1000, tz=UTC)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, separators=(",", ":"))
    except (TypeError, ValueError):
        return "[unserializable]"


def format_trace(trace: Trace) -> str:
    lines = [
        f"Worker: {trace.script_name or 'unknown'}",
        f"Outcome: {trace.outcome}",
    ]
    if trace.event_timestamp is not None:
        lines.append(f"Time: {_iso_time(trace.event_timestamp)}")
    if isinstance(trace.event, FetchEvent):
        lines.append(f"Request: {trace.event.method} {trace.event.url}")
    lines.append("")

    if trace.exceptions:
        lines.append("--- Exceptions ---")
        lines.extend(f"{exc.name}: {exc.message}" for exc in trace.exceptions)
        lines.append("")

    error_logs = trace.error_logs
    if error_logs:
        lines.append("--- Error Logs ---")
        lines.extend(f"[{_clock_time(log.timestamp)}] {_stringify(log.message)}" for log in error_logs)
        lines.append("")

    if trace.truncated:
        lines.append("[logs truncated]")
        lines.append("")

    lines.append(f"CPU: {trace.cpu_time}ms | Wall: {trace.wall_time}ms")
    return "\n".join(lines)


def build_subject(trace: Trace) -> str:
    """Subject line naming the outcome and what triggered the invocation."""
    prefix = f"{SUBJECT_PREFIX} {trace.outcome}"
    event = trace.event

    if isinstance(event, FetchEvent):
        parts = urlsplit(event.url)
        path = (parts.path or "/") + (f"?{parts.query}" if parts.query else "")
        return f"{prefix} — {event.method} {path}"
    if isinstance(event, QueueEvent):
        return f"{prefix} — queue: {event.queue}"
    if isinstance(event, ScheduledEvent):
        return f"{prefix} — scheduled"
    return prefix


def build_body(traces: Sequence[Trace], suppressed_count: int | None = None) -> str:
    """Render up to ``MAX_TRACES_PER_ALERT`` traces, noting suppressed and omitted ones."""
    capped = list(traces[:MAX_TRACES_PER_ALERT])
    omitted = len(traces) - len(capped)

    parts = []
    if suppressed_count:
        parts.append(f"{suppressed_count} alerts were suppressed since last notification\n")
    parts.append(TRACE_SEPARATOR.join(format_trace(t) for t in capped))
    if omitted > 0:
        parts.append(f"\n... and {omitted} more errors in this batch (omitted).")
    return "\n".join(parts)
