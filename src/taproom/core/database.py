"""SQLite access for the stores.

One aiosqlite connection is shared by every store in a process, and the
cleanup consumer writes from several items at once. :class:`Database`
owns that connection and runs each statement, its fetch and its commit as
one unit under an ``asyncio.Lock``. No cursor outlives the call that
opened it, so a commit never runs while another item's statement is still
in progress, and a failed write is rolled back before anyone else commits.

Example:
    >>> db = await connect("data/taproom.db")
    >>> await ensure_schema(db)
    >>> await db.fetchone("SELECT COUNT(*) AS n FROM enriched_beers")
    >>> async with db.transaction() as conn:
    ...     rows = await conn.execute_fetchall("UPDATE ... RETURNING *", params)
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import aiosqlite

from taproom.core.logging import get_logger
from taproom.core.schema import ALL_DDL

logger = get_logger(__name__)


def now_ms() -> int:
    """Current UTC time as integer epoch milliseconds."""
    return int(datetime.now(UTC).timestamp() * 1000)


class Database:
    """Serialised access to one ``aiosqlite.Connection``.

    Reads return fully fetched rows. Writes commit before the lock is
    released and roll back on any error. :meth:`transaction` is for the
    few callers that need several statements, or ``RETURNING`` rows, in
    one commit. Do not call other ``Database`` methods inside it.
    """

    def __init__(self, conn: aiosqlite.Connection, path: str = ":memory:"):
        self._conn = conn
        self._lock = asyncio.Lock()
        self.path = path

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        async with self._lock:
            try:
                yield self._conn
            except BaseException:
                await self._conn.rollback()
                raise
            await self._conn.commit()

    async def fetchall(self, sql: str, params: Sequence[Any] = ()) -> list[aiosqlite.Row]:
        async with self._lock:
            return list(await self._conn.execute_fetchall(sql, params))

    async def fetchone(self, sql: str, params: Sequence[Any] = ()) -> aiosqlite.Row | None:
        rows = await self.fetchall(sql, params)
        return rows[0] if rows else None

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run one write and commit it. Returns the affected row count."""
        async with self.transaction() as conn:
            cursor = await conn.execute(sql, params)
            rowcount = cursor.rowcount
            await cursor.close()
        return rowcount

    async def executemany(self, sql: str, params: Sequence[Sequence[Any]]) -> int:
        async with self.transaction() as conn:
            cursor = await conn.executemany(sql, params)
            rowcount = cursor.rowcount
            await cursor.close()
        return rowcount

    async def executescript(self, script: str) -> None:
        async with self.transaction() as conn:
            await conn.executescript(script)

    async def close(self) -> None:
        async with self._lock:
            await self._conn.close()

    def __repr__(self) -> str:
        return f"Database({self.path!r})"


async def connect(path: str | Path = ":memory:") -> Database:
    """Open a :class:`Database` with name-addressable rows.

    Parent directories are created for file-backed databases.
    """
    if str(path) != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)
    conn = await aiosqlite.connect(str(path))
    conn.row_factory = aiosqlite.Row
    logger.debug("database.connected", path=str(path))
    return Database(conn, str(path))


async def ensure_schema(db: Database) -> None:
    """Create all tables and indexes if they do not exist."""
    for ddl in ALL_DDL:
        await db.executescript(ddl)


async def ping(db: Database) -> bool:
    """Return True if the database answers a trivial query."""
    try:
        row = await db.fetchone("SELECT 1 AS ok")
    except Exception as e:
        logger.warning("database.ping_failed", error=str(e))
        return False
    return row is not None
