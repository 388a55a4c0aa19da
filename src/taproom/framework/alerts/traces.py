"""
Execution traces and error classification.

A trace is one finished worker invocation as reported by the host: its
outcome, what triggered it, the exceptions it raised and the logs it wrote.
The triggering event is a tagged variant; raw host payloads without a tag
are recognised by shape (``request`` → fetch, ``queue`` → queue, ``cron`` →
scheduled).

Example:
    >>> trace = Trace.model_validate({
    ...     "outcome": "exception",
    ...     "scriptName": "taproom-worker",
    ...     "event": {"request": {"method": "GET", "url": "https://api.example/beers?sid=13"}},
    ...     "exceptions": [{"name": "TypeError", "message": "boom", "timestamp": 0}],
    ... })
    >>> is_error_trace(trace)
    True
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

NON_ERROR_OUTCOMES = frozenset({"ok", "canceled", "responseStreamDisconnected"})


class _TraceModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class FetchEvent(_TraceModel):
    kind: Literal["fetch"] = "fetch"
    method: str
    url: str


class QueueEvent(_TraceModel):
    kind: Literal["queue"] = "queue"
    queue: str
    batch_size: int | None = Field(default=None, alias="batchSize")


class ScheduledEvent(_TraceModel):
    kind: Literal["scheduled"] = "scheduled"
    cron: str
    scheduled_time: int | None = Field(default=None, alias="scheduledTime")


TraceEvent = Annotated[
    Union[FetchEvent, QueueEvent, ScheduledEvent],
    Field(discriminator="kind"),
]


class TraceException(_TraceModel):
    name: str
    message: str = ""
    timestamp: int | None = None


class TraceLog(_TraceModel):
    level: str
    message: Any = None
    timestamp: int = 0


class Trace(_TraceModel):
    """One worker invocation. Timestamps are epoch milliseconds."""

    outcome: str
    script_name: str | None = Field(default=None, alias="scriptName")
    event_timestamp: int | None = Field(default=None, alias="eventTimestamp")
    event: TraceEvent | None = None
    exceptions: list[TraceException] = Field(default_factory=list)
    logs: list[TraceLog] = Field(default_factory=list)
    truncated: bool = False
    cpu_time: int = Field(default=0, alias="cpuTime")
    wall_time: int = Field(default=0, alias="wallTime")

    @field_validator("event", mode="before")
    @classmethod
    def _tag_event(cls, value: Any) -> Any:
        if not isinstance(value, dict) or "kind" in value:
            return value
        if "request" in value:
            request = value.get("request") or {}
            return {"kind": "fetch", "method": request.get("method", "GET"), "url": request.get("url", "")}
        if "queue" in value:
            return {"kind": "queue", **value}
        if "cron" in value:
            return {"kind": "scheduled", **value}
        return None

    @property
    def error_logs(self) -> list[TraceLog]:
        return [log for log in self.logs if log.level == "error"]


def is_error_trace(trace: Trace) -> bool:
    """A trace is an error if its outcome is not benign, or it raised, or it logged at error level."""
    if trace.outcome not in NON_ERROR_OUTCOMES:
        return True
    if trace.exceptions:
        return True
    return any(log.level == "error" for log in trace.logs)


def filter_error_traces(traces: Iterable[Trace]) -> list[Trace]:
    return [t for t in traces if is_error_trace(t)]
