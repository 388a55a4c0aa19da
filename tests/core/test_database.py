"""Tests for the serialised SQLite handle."""

from __future__ import annotations

import asyncio

import aiosqlite
import pytest

from taproom.core.database import connect, ensure_schema, ping
from taproom.core.protocols import AsyncConnection


async def _quota_rows(db) -> int:
    return (await db.fetchone("SELECT COUNT(*) AS n FROM quota_counters"))["n"]


class TestDatabase:
    @pytest.mark.asyncio
    async def test_satisfies_store_protocol(self, db):
        assert isinstance(db, AsyncConnection)
        assert await ping(db)

    @pytest.mark.asyncio
    async def test_execute_returns_rowcount(self, db):
        inserted = await db.executemany(
            "INSERT INTO quota_counters (pipeline, day, request_count, last_updated) VALUES (?, ?, 1, 0)",
            [("enrichment", "2026-10-17"), ("enrichment", "2026-10-18")],
        )
        assert inserted == 2
        assert await db.execute("DELETE FROM quota_counters WHERE day < ?", ("2026-10-18",)) == 1
        assert await _quota_rows(db) == 1

    @pytest.mark.asyncio
    async def test_failed_transaction_is_rolled_back(self, db):
        with pytest.raises(aiosqlite.Error):
            async with db.transaction() as conn:
                await conn.execute_fetchall(
                    "INSERT INTO quota_counters (pipeline, day, request_count, last_updated) "
                    "VALUES ('cleanup', '2026-10-18', 1, 0) RETURNING request_count"
                )
                await conn.execute_fetchall("SELECT * FROM no_such_table")

        await db.execute("UPDATE quota_counters SET last_updated = 1")
        assert await _quota_rows(db) == 0

    @pytest.mark.asyncio
    async def test_interleaved_reads_and_writes(self, db):
        async def write(n: int) -> int:
            await asyncio.sleep(0)
            return await db.execute(
                "INSERT INTO quota_counters (pipeline, day, request_count, last_updated) VALUES (?, ?, 1, 0)",
                ("cleanup", f"2026-10-{n:02d}"),
            )

        async def read() -> int:
            await asyncio.sleep(0)
            return len(await db.fetchall("SELECT * FROM quota_counters"))

        results = await asyncio.gather(*(write(n) if n % 2 else read() for n in range(1, 29)))

        assert sum(results[0::2]) == 14
        assert await _quota_rows(db) == 14

    @pytest.mark.asyncio
    async def test_closed_database_fails_ping(self):
        db = await connect(":memory:")
        await ensure_schema(db)
        await db.close()
        assert await ping(db) is False
