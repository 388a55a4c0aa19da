"""Health report for the workers and ``taproom health``.

Four checks, each reduced to healthy / degraded / unhealthy:

``database``      the connection answers ``SELECT 1``
``quota.<name>``  degraded once a pipeline's day or month is used up
``dead_letters``  pending depth against :class:`HealthThresholds`
``enrichment``    the kill switch, reported but never degrading

The overall status is the worst check. When the database does not answer
the other checks are skipped.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import aiosqlite

from taproom.core.database import ping
from taproom.core.errors import TaproomError
from taproom.core.protocols import AsyncConnection
from taproom.core.settings import TaproomSettings
from taproom.execution.dlq import DeadLetterStore
from taproom.execution.quota import CLEANUP, ENRICHMENT, QuotaController, QuotaStatus


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


_WORST_FIRST = (HealthStatus.UNHEALTHY, HealthStatus.DEGRADED, HealthStatus.HEALTHY)


@dataclass
class HealthCheckResult:
    name: str
    status: HealthStatus
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "status": self.status.value, "message": self.message, "details": self.details}


@dataclass
class HealthThresholds:
    """Pending dead letters at which the report turns degraded, then unhealthy."""

    dlq_warning_count: int = 10
    dlq_critical_count: int = 50

    def classify(self, pending: int) -> HealthStatus:
        if pending >= self.dlq_critical_count:
            return HealthStatus.UNHEALTHY
        if pending >= self.dlq_warning_count:
            return HealthStatus.DEGRADED
        return HealthStatus.HEALTHY


@dataclass
class HealthReport:
    checks: list[HealthCheckResult]
    enrichment_enabled: bool
    quotas: dict[str, QuotaStatus] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def status(self) -> HealthStatus:
        seen = {check.status for check in self.checks}
        return next((s for s in _WORST_FIRST if s in seen), HealthStatus.HEALTHY)

    @property
    def healthy(self) -> bool:
        return self.status == HealthStatus.HEALTHY

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
            "enrichment_enabled": self.enrichment_enabled,
            "quotas": {name: q.to_dict() for name, q in self.quotas.items()},
            "checks": [check.to_dict() for check in self.checks],
        }


async def get_health(
    db: AsyncConnection,
    settings: TaproomSettings,
    thresholds: HealthThresholds | None = None,
) -> HealthReport:
    """Run the checks. A failing check is reported, never raised."""
    report = HealthReport(checks=[], enrichment_enabled=settings.enrichment_enabled)

    if not await ping(db):
        report.checks.append(HealthCheckResult("database", HealthStatus.UNHEALTHY, "Database did not answer"))
        return report
    report.checks.append(HealthCheckResult("database", HealthStatus.HEALTHY, "Database connection OK"))

    controller = QuotaController.from_settings(db, settings)
    for pipeline in (ENRICHMENT, CLEANUP):
        report.checks.append(await _check_quota(controller, pipeline, report.quotas))

    report.checks.append(await _check_dead_letters(db, thresholds or HealthThresholds()))
    enabled = settings.enrichment_enabled
    report.checks.append(
        HealthCheckResult(
            "enrichment",
            HealthStatus.HEALTHY,
            "Enabled" if enabled else "Disabled by kill switch",
            {"enabled": enabled},
        )
    )
    return report


async def _check_quota(
    controller: QuotaController, pipeline: str, quotas: dict[str, QuotaStatus]
) -> HealthCheckResult:
    name = f"quota.{pipeline}"
    try:
        status = await controller.status(pipeline)
    except TaproomError as e:
        return HealthCheckResult(name, HealthStatus.UNHEALTHY, f"Quota read failed: {e}")
    quotas[pipeline] = status
    if status.exhausted:
        return HealthCheckResult(name, HealthStatus.DEGRADED, "Quota exhausted", status.to_dict())
    return HealthCheckResult(name, HealthStatus.HEALTHY, "Within quota", status.to_dict())


async def _check_dead_letters(db: AsyncConnection, thresholds: HealthThresholds) -> HealthCheckResult:
    try:
        stats = await DeadLetterStore(db).stats()
    except aiosqlite.Error as e:
        return HealthCheckResult("dead_letters", HealthStatus.UNHEALTHY, f"Dead-letter read failed: {e}")
    pending = stats.by_status.get("pending", 0)
    return HealthCheckResult(
        "dead_letters",
        thresholds.classify(pending),
        f"{pending} pending dead letter(s)",
        {"pending": pending, "oldest_pending_age_hours": stats.oldest_pending_age_hours},
    )
