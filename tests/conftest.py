"""
Shared pytest fixtures for taproom tests.

This module provides:
- An in-memory aiosqlite Database with the schema applied
- Controllable clocks for quota days, breaker windows and queue delays
- Stores and a quota controller wired to the in-memory database

Usage:
    Fixtures are auto-discovered by pytest::

        async def test_something(db, beers):
            await beers.upsert({"id": "1", "brew_name": "Hazy Daze"})
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest

from taproom.core.database import Database, connect, ensure_schema
from taproom.core.settings import TaproomSettings, clear_settings_cache
from taproom.execution.dlq import DeadLetterStore
from taproom.execution.quota import CLEANUP, ENRICHMENT, QuotaController, QuotaLimits
from taproom.pipelines.beers import BeerStore
from tests._support.fakes import FakeClock, FakeDateClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def date_clock() -> FakeDateClock:
    return FakeDateClock()


@pytest.fixture
async def db() -> AsyncIterator[Database]:
    database = await connect(":memory:")
    await ensure_schema(database)
    yield database
    await database.close()


@pytest.fixture
def beers(db) -> BeerStore:
    return BeerStore(db)


@pytest.fixture
def dead_letters(db) -> DeadLetterStore:
    return DeadLetterStore(db)


@pytest.fixture
def quota(db, date_clock) -> QuotaController:
    return QuotaController(
        db,
        {
            ENRICHMENT: QuotaLimits(daily_limit=500, monthly_limit=2000),
            CLEANUP: QuotaLimits(daily_limit=1000, monthly_limit=30000),
        },
        clock=date_clock,
    )


@pytest.fixture
def settings() -> TaproomSettings:
    clear_settings_cache()
    return TaproomSettings(_env_file=None)
