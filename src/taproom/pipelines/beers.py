"""Reads and writes against ``enriched_beers``.

Consumers only ever overwrite fields of a row keyed by its id, so a
duplicate delivery writes the same values twice and the row stays
coherent. Rows returned to callers are plain dicts.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import aiosqlite

from taproom.core.database import now_ms
from taproom.core.errors import StoreWriteError
from taproom.core.logging import get_logger
from taproom.core.protocols import AsyncConnection

logger = get_logger(__name__)

REQUEUE_AFTER_MS = 24 * 60 * 60 * 1000


class BeerStore:
    """Beer rows for the enrichment and cleanup pipelines."""

    def __init__(self, db: AsyncConnection):
        self._db = db

    async def upsert(self, beer: dict[str, Any]) -> None:
        """Insert a menu beer, or refresh its name, brewer and description."""
        await self._write(
            """
            INSERT INTO enriched_beers (id, brew_name, brewer, brew_description, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                brew_name = excluded.brew_name,
                brewer = excluded.brewer,
                brew_description = excluded.brew_description,
                updated_at = excluded.updated_at
            """,
            (
                str(beer["id"]),
                beer["brew_name"],
                beer.get("brewer"),
                beer.get("brew_description"),
                now_ms(),
            ),
            beer_id=str(beer["id"]),
        )

    async def get(self, beer_id: str) -> dict[str, Any] | None:
        row = await self._db.fetchone("SELECT * FROM enriched_beers WHERE id = ?", (beer_id,))
        return dict(row) if row else None

    async def record_abv(self, beer_id: str, abv: float, confidence: float, source: str) -> bool:
        """Overwrite the ABV fields of one beer. Returns False if no such beer."""
        rowcount = await self._write(
            """
            UPDATE enriched_beers
            SET abv = ?, confidence = ?, enrichment_source = ?, updated_at = ?
            WHERE id = ?
            """,
            (abv, confidence, source, now_ms(), beer_id),
            beer_id=beer_id,
        )
        if not rowcount:
            logger.warning("beers.record_abv_missing", beer_id=beer_id)
        return rowcount > 0

    async def record_cleanup(
        self,
        beer_id: str,
        cleaned: str,
        cleanup_source: str | None,
        *,
        abv: float | None = None,
        confidence: float | None = None,
        enrichment_source: str | None = None,
    ) -> bool:
        """Store a cleaned description, plus the ABV found in it when given.

        Text and ABV go in one statement so a failed write leaves neither.
        """
        now = now_ms()
        if abv is None:
            sql = """
                UPDATE enriched_beers
                SET brew_description_cleaned = ?, description_cleaned_at = ?,
                    cleanup_source = ?, updated_at = ?
                WHERE id = ?
            """
            params: tuple[Any, ...] = (cleaned, now, cleanup_source, now, beer_id)
        else:
            sql = """
                UPDATE enriched_beers
                SET brew_description_cleaned = ?, description_cleaned_at = ?,
                    cleanup_source = ?, abv = ?, confidence = ?,
                    enrichment_source = ?, updated_at = ?
                WHERE id = ?
            """
            params = (cleaned, now, cleanup_source, abv, confidence, enrichment_source, now, beer_id)
        rowcount = await self._write(sql, params, beer_id=beer_id)
        return rowcount > 0

    async def select_needing_enrichment(
        self, limit: int, *, requeue_after_ms: int = REQUEUE_AFTER_MS
    ) -> list[dict[str, Any]]:
        """Beers with no ABV that were not queued within ``requeue_after_ms``."""
        cutoff = now_ms() - requeue_after_ms
        rows = await self._db.fetchall(
            """
            SELECT id, brew_name, brewer, brew_description
            FROM enriched_beers
            WHERE abv IS NULL
              AND (enrichment_queued_at IS NULL OR enrichment_queued_at < ?)
            ORDER BY updated_at ASC, id ASC
            LIMIT ?
            """,
            (cutoff, limit),
        )
        return [dict(row) for row in rows]

    async def mark_enrichment_queued(self, beer_ids: Sequence[str]) -> int:
        if not beer_ids:
            return 0
        now = now_ms()
        try:
            await self._db.executemany(
                "UPDATE enriched_beers SET enrichment_queued_at = ? WHERE id = ?",
                [(now, beer_id) for beer_id in beer_ids],
            )
        except aiosqlite.Error as e:
            raise StoreWriteError("Failed to stamp enrichment_queued_at", cause=e) from e
        return len(beer_ids)

    async def _write(self, sql: str, params: Sequence[Any], *, beer_id: str) -> int:
        try:
            return await self._db.execute(sql, params)
        except aiosqlite.Error as e:
            raise StoreWriteError(f"Beer write failed for {beer_id}", cause=e).with_context(
                beer_id=beer_id
            ) from e
