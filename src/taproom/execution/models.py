"""Row-level data models for the dead-letter store.

Timestamps are integer epoch milliseconds, matching the ``dlq_messages``
columns; :func:`ms_to_datetime` converts for display.
"""

from __future__ import annotations

import base64
import json
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from taproom.core.errors import ValidationError


def ms_to_datetime(ms: int | None) -> datetime | None:
    if ms is None:
        return None
    return datetime.fromtimestamp(ms / 1000, tz=UTC)


class DeadLetterStatus(str, Enum):
    """Lifecycle of a dead-letter record.

    ``replaying`` is a short-lived claim held while a replay sends the
    message; it rolls back to ``pending`` if the send fails.
    """

    PENDING = "pending"
    REPLAYING = "replaying"
    REPLAYED = "replayed"
    ACKNOWLEDGED = "acknowledged"


@dataclass
class DeadLetterRecord:
    """A message that exhausted its delivery attempts.

    Example:
        >>> record = DeadLetterRecord(
        ...     message_id="5f0c...",
        ...     beer_id="7781234",
        ...     beer_name="Hazy Daze",
        ...     brewer="Cedar Creek",
        ...     failed_at=1760781600000,
        ...     failure_count=3,
        ...     failure_reason="upstream 503",
        ...     source_queue="beer-enrichment",
        ...     raw_message={"beerId": "7781234", "beerName": "Hazy Daze"},
        ... )
    """

    message_id: str
    beer_id: str
    source_queue: str
    failed_at: int
    beer_name: str | None = None
    brewer: str | None = None
    failure_count: int = 1
    failure_reason: str | None = None
    raw_message: dict[str, Any] = field(default_factory=dict)
    status: DeadLetterStatus = DeadLetterStatus.PENDING
    replay_count: int = 0
    replayed_at: int | None = None
    acknowledged_at: int | None = None
    id: int | None = None

    @classmethod
    def from_row(cls, row: Any) -> DeadLetterRecord:
        raw = row["raw_message"]
        return cls(
            id=row["id"],
            message_id=row["message_id"],
            beer_id=row["beer_id"],
            beer_name=row["beer_name"],
            brewer=row["brewer"],
            failed_at=row["failed_at"],
            failure_count=row["failure_count"] or 0,
            failure_reason=row["failure_reason"],
            source_queue=row["source_queue"],
            status=DeadLetterStatus(row["status"]),
            replay_count=row["replay_count"] or 0,
            replayed_at=row["replayed_at"],
            acknowledged_at=row["acknowledged_at"],
            raw_message=json.loads(raw) if raw else {},
        )

    def to_dict(self, include_raw: bool = False) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = asdict(self)
        result["status"] = self.status.value
        if not include_raw:
            result.pop("raw_message")
        return result


@dataclass(frozen=True)
class PageCursor:
    """Position after the last row of a page (``failed_at DESC, id DESC``)."""

    failed_at: int
    id: int

    def encode(self) -> str:
        data = json.dumps({"failed_at": self.failed_at, "id": self.id})
        return base64.urlsafe_b64encode(data.encode()).decode()

    @classmethod
    def decode(cls, token: str) -> PageCursor:
        try:
            data = json.loads(base64.urlsafe_b64decode(token.encode()))
            return cls(failed_at=int(data["failed_at"]), id=int(data["id"]))
        except (ValueError, KeyError, TypeError) as e:
            raise ValidationError("Invalid cursor format", cause=e) from e


@dataclass
class DeadLetterPage:
    records: list[DeadLetterRecord]
    total_count: int
    limit: int
    next_cursor: str | None = None

    @property
    def has_more(self) -> bool:
        return self.next_cursor is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "records": [r.to_dict() for r in self.records],
            "total_count": self.total_count,
            "limit": self.limit,
            "has_more": self.has_more,
            "next_cursor": self.next_cursor,
        }


@dataclass
class ReplayReport:
    """Result of one replay request.

    ``skipped`` holds requested ids that were not ``pending`` (or do not
    exist); replaying them is a no-op rather than an error.
    """

    requested: list[int]
    replayed: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)

    @property
    def claimed_count(self) -> int:
        return len(self.replayed) + len(self.failed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "requested_count": len(self.requested),
            "claimed_count": self.claimed_count,
            "replayed_count": len(self.replayed),
            "failed_count": len(self.failed),
            "skipped": self.skipped,
        }


@dataclass
class DeadLetterStats:
    by_status: dict[str, int]
    oldest_pending_age_hours: float
    top_failing_brewers: list[dict[str, Any]]
    repeat_failures: list[dict[str, Any]]
    last_24h: dict[str, int]

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
