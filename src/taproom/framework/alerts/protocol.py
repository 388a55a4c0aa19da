"""
Alert data and the channel contract.

An :class:`Alert` is one rendered failure notification: a subject line, a
plain-text body and the cooldown key it was admitted under. Channels deliver
it and report a :class:`DeliveryResult`; delivery problems are returned,
not raised.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol, runtime_checkable

_SEVERITY_RANK = {"INFO": 10, "WARNING": 20, "ERROR": 30, "CRITICAL": 40}


class AlertSeverity(str, Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self.value]

    def __ge__(self, other: object) -> bool:
        return self.rank >= AlertSeverity(other).rank

    def __lt__(self, other: object) -> bool:
        return self.rank < AlertSeverity(other).rank


class ChannelType(str, Enum):
    EMAIL = "email"
    CONSOLE = "console"


@dataclass
class Alert:
    """
    A rendered alert ready for delivery.

    ``title`` becomes the email subject and ``message`` the body.
    ``error_count`` is the number of error traces in the batch and
    ``suppressed_count`` how many alerts the cooldown held back since the
    last one for the same key.
    """

    severity: AlertSeverity
    title: str
    message: str
    source: str = "taproom"
    fingerprint: str | None = None
    error_count: int = 0
    suppressed_count: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        if self.fingerprint is None:
            self.fingerprint = f"{self.source}:{self.title}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "severity": self.severity.value,
            "title": self.title,
            "source": self.source,
            "fingerprint": self.fingerprint,
            "error_count": self.error_count,
            "suppressed_count": self.suppressed_count,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of one send. ``error`` is set exactly when delivery failed."""

    channel_name: str
    error: Exception | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def message(self) -> str | None:
        return None if self.error is None else str(self.error)

    @classmethod
    def ok(cls, channel_name: str) -> DeliveryResult:
        return cls(channel_name)

    @classmethod
    def fail(cls, channel_name: str, error: Exception) -> DeliveryResult:
        return cls(channel_name, error)


@runtime_checkable
class AlertChannel(Protocol):
    """Anything with a name, a severity filter and a non-raising ``send``."""

    name: str

    def should_send(self, alert: Alert) -> bool: ...

    def send(self, alert: Alert) -> DeliveryResult: ...
