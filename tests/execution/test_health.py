"""Tests for the worker health report."""

from __future__ import annotations

import pytest

from taproom.core.database import connect, ensure_schema
from taproom.execution.health import HealthStatus, HealthThresholds, get_health
from taproom.execution.models import DeadLetterRecord


def _dead_letter(n: int) -> DeadLetterRecord:
    return DeadLetterRecord(
        message_id=f"msg-{n}", beer_id=str(n), source_queue="beer-enrichment", failed_at=1_000 + n
    )


class TestGetHealth:
    @pytest.mark.asyncio
    async def test_healthy(self, db, settings):
        report = await get_health(db, settings)
        assert report.status == HealthStatus.HEALTHY
        assert report.healthy
        names = [c.name for c in report.checks]
        assert names == ["database", "quota.enrichment", "quota.cleanup", "dead_letters", "enrichment"]
        assert set(report.quotas) == {"enrichment", "cleanup"}

    @pytest.mark.asyncio
    async def test_kill_switch_reported(self, db, settings):
        settings = settings.model_copy(update={"enrichment_enabled": False})
        report = await get_health(db, settings)
        assert report.enrichment_enabled is False
        assert report.to_dict()["enrichment_enabled"] is False
        enrichment = next(c for c in report.checks if c.name == "enrichment")
        assert enrichment.details == {"enabled": False}

    @pytest.mark.asyncio
    async def test_exhausted_quota_degrades(self, db, settings):
        settings = settings.model_copy(update={"enrichment_daily_limit": 0})
        report = await get_health(db, settings)
        assert report.status == HealthStatus.DEGRADED

    @pytest.mark.asyncio
    async def test_dead_letter_thresholds(self, db, settings, dead_letters):
        for n in range(3):
            await dead_letters.insert(_dead_letter(n))

        degraded = await get_health(db, settings, HealthThresholds(dlq_warning_count=2, dlq_critical_count=5))
        assert degraded.status == HealthStatus.DEGRADED

        unhealthy = await get_health(db, settings, HealthThresholds(dlq_warning_count=1, dlq_critical_count=3))
        assert unhealthy.status == HealthStatus.UNHEALTHY
        check = next(c for c in unhealthy.checks if c.name == "dead_letters")
        assert check.details["pending"] == 3

    @pytest.mark.asyncio
    async def test_closed_database_is_unhealthy(self, settings):
        conn = await connect(":memory:")
        await ensure_schema(conn)
        await conn.close()

        report = await get_health(conn, settings)
        assert report.status == HealthStatus.UNHEALTHY
        assert [c.name for c in report.checks] == ["database"]


class TestHealthThresholds:
    @pytest.mark.parametrize(
        "pending, expected",
        [(0, HealthStatus.HEALTHY), (9, HealthStatus.HEALTHY), (10, HealthStatus.DEGRADED), (50, HealthStatus.UNHEALTHY)],
    )
    def test_classify(self, pending, expected):
        assert HealthThresholds().classify(pending) == expected
