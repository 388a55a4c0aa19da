"""Quota admission: daily and monthly ceilings on paid upstream calls.

Each pipeline owns one counter row per UTC day. The monthly figure is the
sum of that pipeline's day rows within the calendar month, so a new day row
is the daily rollover and a new month simply has no rows yet.

Admission checks and charges in ONE statement::

    INSERT ... SELECT ... WHERE <month sum> < monthly_limit
    ON CONFLICT(pipeline, day) DO UPDATE
        SET request_count = request_count + 1
        WHERE request_count < daily_limit
    RETURNING request_count

A returned row means the unit was charged; no row means denied. Concurrent
admissions therefore cannot push a day counter past ``daily_limit``.

Example:
    >>> quota = QuotaController(db, {"enrichment": QuotaLimits(500, 2000)})
    >>> admission = await quota.try_admit("enrichment")
    >>> admission.admitted, admission.reason
    (True, None)
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import aiosqlite

from taproom.core.database import now_ms
from taproom.core.errors import ConfigError, StoreWriteError
from taproom.core.logging import get_logger
from taproom.core.protocols import AsyncConnection
from taproom.core.settings import TaproomSettings

logger = get_logger(__name__)

ENRICHMENT = "enrichment"
CLEANUP = "cleanup"

_ADMIT_SQL = """
INSERT INTO quota_counters (pipeline, day, request_count, last_updated)
SELECT ?, ?, 1, ?
WHERE (
    SELECT COALESCE(SUM(request_count), 0) FROM quota_counters
    WHERE pipeline = ? AND day >= ? AND day <= ?
) < ?
ON CONFLICT(pipeline, day) DO UPDATE SET
    request_count = quota_counters.request_count + 1,
    last_updated = excluded.last_updated
WHERE quota_counters.request_count < ?
RETURNING request_count
"""

_USAGE_SQL = """
SELECT
    COALESCE(SUM(CASE WHEN day = ? THEN request_count ELSE 0 END), 0) AS daily_used,
    COALESCE(SUM(request_count), 0) AS monthly_used
FROM quota_counters
WHERE pipeline = ? AND day >= ? AND day <= ?
"""


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class QuotaLimits:
    """Ceilings for one pipeline."""

    daily_limit: int
    monthly_limit: int

    @classmethod
    def from_settings(cls, settings: TaproomSettings, pipeline: str) -> QuotaLimits:
        if pipeline == ENRICHMENT:
            return cls(settings.enrichment_daily_limit, settings.enrichment_monthly_limit)
        if pipeline == CLEANUP:
            return cls(settings.cleanup_daily_limit, settings.cleanup_monthly_limit)
        raise ConfigError(f"No quota limits configured for pipeline {pipeline!r}")


@dataclass(frozen=True)
class Admission:
    """Result of one admission attempt.

    ``reason`` is ``daily_limit``, ``monthly_limit`` or ``disabled`` when
    denied, None when admitted.
    """

    admitted: bool
    reason: str | None = None
    daily_used: int = 0
    monthly_used: int = 0


@dataclass(frozen=True)
class QuotaStatus:
    """Read-only usage snapshot for one pipeline."""

    pipeline: str
    day: str
    daily_used: int
    daily_limit: int
    monthly_used: int
    monthly_limit: int

    @property
    def daily_remaining(self) -> int:
        return max(0, self.daily_limit - self.daily_used)

    @property
    def monthly_remaining(self) -> int:
        return max(0, self.monthly_limit - self.monthly_used)

    @property
    def exhausted(self) -> bool:
        return self.daily_remaining == 0 or self.monthly_remaining == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "pipeline": self.pipeline,
            "day": self.day,
            "daily": {
                "used": self.daily_used,
                "limit": self.daily_limit,
                "remaining": self.daily_remaining,
            },
            "monthly": {
                "used": self.monthly_used,
                "limit": self.monthly_limit,
                "remaining": self.monthly_remaining,
            },
        }


class QuotaController:
    """Quota gate backed by the ``quota_counters`` table."""

    def __init__(
        self,
        db: AsyncConnection,
        limits: dict[str, QuotaLimits],
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._db = db
        self._limits = dict(limits)
        self._clock = clock

    @classmethod
    def from_settings(cls, db: AsyncConnection, settings: TaproomSettings) -> QuotaController:
        return cls(
            db,
            {
                ENRICHMENT: QuotaLimits.from_settings(settings, ENRICHMENT),
                CLEANUP: QuotaLimits.from_settings(settings, CLEANUP),
            },
        )

    def limits_for(self, pipeline: str) -> QuotaLimits:
        try:
            return self._limits[pipeline]
        except KeyError:
            raise ConfigError(f"No quota limits configured for pipeline {pipeline!r}") from None

    def _window(self) -> tuple[str, str, str]:
        # Day keys are ISO strings, so "YYYY-MM-31" bounds every month.
        day = self._clock().date().isoformat()
        return day, day[:8] + "01", day[:8] + "31"

    async def try_admit(self, pipeline: str) -> Admission:
        """Check both ceilings and charge one unit if within them.

        Raises:
            StoreWriteError: the store could not be read or written.
        """
        limits = self.limits_for(pipeline)
        if limits.daily_limit <= 0 or limits.monthly_limit <= 0:
            return Admission(admitted=False, reason="disabled")

        day, month_start, month_end = self._window()
        usage_params = (day, pipeline, month_start, month_end)
        try:
            # A failed read rolls the charge back.
            async with self._db.transaction() as conn:
                charged = await conn.execute_fetchall(
                    _ADMIT_SQL,
                    (
                        pipeline, day, now_ms(),
                        pipeline, month_start, month_end, limits.monthly_limit,
                        limits.daily_limit,
                    ),
                )
                [usage] = await conn.execute_fetchall(_USAGE_SQL, usage_params)
            daily_used, monthly_used = int(usage["daily_used"]), int(usage["monthly_used"])
        except aiosqlite.Error as e:
            raise StoreWriteError(
                f"Quota admission failed for {pipeline}", cause=e
            ).with_context(pipeline=pipeline) from e

        if charged:
            return Admission(admitted=True, daily_used=daily_used, monthly_used=monthly_used)

        reason = "monthly_limit" if monthly_used >= limits.monthly_limit else "daily_limit"
        logger.info(
            "quota.denied",
            pipeline=pipeline,
            reason=reason,
            daily_used=daily_used,
            monthly_used=monthly_used,
        )
        return Admission(
            admitted=False, reason=reason, daily_used=daily_used, monthly_used=monthly_used
        )

    async def status(self, pipeline: str) -> QuotaStatus:
        limits = self.limits_for(pipeline)
        day, month_start, month_end = self._window()
        try:
            daily_used, monthly_used = await self._usage(pipeline, day, month_start, month_end)
        except aiosqlite.Error as e:
            raise StoreWriteError(f"Quota status read failed for {pipeline}", cause=e) from e
        return QuotaStatus(
            pipeline=pipeline,
            day=day,
            daily_used=daily_used,
            daily_limit=limits.daily_limit,
            monthly_used=monthly_used,
            monthly_limit=limits.monthly_limit,
        )

    async def purge_older_than(self, days: int = 90) -> int:
        """Delete day rows older than ``days`` days. Returns rows deleted."""
        cutoff = (self._clock().date() - timedelta(days=days)).isoformat()
        deleted = await self._db.execute("DELETE FROM quota_counters WHERE day < ?", (cutoff,))
        if deleted:
            logger.info("quota.purged", cutoff=cutoff, deleted=deleted)
        return deleted

    async def _usage(
        self, pipeline: str, day: str, month_start: str, month_end: str
    ) -> tuple[int, int]:
        row = await self._db.fetchone(_USAGE_SQL, (day, pipeline, month_start, month_end))
        return int(row["daily_used"]), int(row["monthly_used"])
