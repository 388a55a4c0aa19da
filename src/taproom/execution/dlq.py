"""Dead-letter store: capture, inspect, replay and acknowledge failed messages.

WHY
───
A message that exhausts its delivery attempts must not disappear. The
pipeline's dead-letter queue is drained into ``dlq_messages`` so operators
can see what failed and why, replay it onto its source pipeline once the
cause is fixed, or dismiss it.

ARCHITECTURE
────────────
::

    DeadLetterStore(db)
      ├── .insert(record)               ─ upsert by message_id
      ├── .list(status, beer_id, ...)   ─ failed_at DESC, id DESC, cursor paging
      ├── .replay(ids, queues)          ─ pending → replaying → replayed
      ├── .acknowledge(ids)             ─ any → acknowledged (terminal)
      ├── .stats()                      ─ counts, oldest pending, top brewers
      └── .purge_resolved(days)         ─ delete old replayed/acknowledged rows

    DeadLetterRecord (models.py)        ─ row-level data model

Replay claims rows with one ``UPDATE ... SET status = 'replaying' WHERE
status = 'pending' RETURNING *`` and sends only the rows that statement
returned. Two concurrent replays of the same id send at most one message,
and replaying a record that is not pending is a no-op.

Example::

    store = DeadLetterStore(db)
    page = await store.list(status="pending", limit=20)
    report = await store.replay([r.id for r in page.records], queues)
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime

import aiosqlite

from taproom.core.database import now_ms
from taproom.core.errors import StoreWriteError, ValidationError
from taproom.core.logging import get_logger
from taproom.core.protocols import AsyncConnection, QueueTransport
from taproom.execution.models import (
    DeadLetterPage,
    DeadLetterRecord,
    DeadLetterStats,
    DeadLetterStatus,
    PageCursor,
    ReplayReport,
)

logger = get_logger(__name__)

MAX_LIST_LIMIT = 100
MAX_REPLAY_IDS = 50
MAX_ACKNOWLEDGE_IDS = 100
PURGE_BATCH_SIZE = 1000
_DAY_MS = 24 * 60 * 60 * 1000
_HOUR_MS = 60 * 60 * 1000


def _placeholders(values: Sequence[object]) -> str:
    return ",".join("?" for _ in values)


class DeadLetterStore:
    """Persistent dead-letter records in ``dlq_messages``."""

    def __init__(self, db: AsyncConnection):
        self._db = db

    async def insert(self, record: DeadLetterRecord) -> None:
        """Insert or refresh a record keyed by ``message_id``.

        A redelivered dead-letter notice updates the failure metadata of the
        existing row and leaves its status alone.

        Raises:
            StoreWriteError: the row could not be written.
        """
        try:
            await self._db.execute(
                """
                INSERT INTO dlq_messages (
                    message_id, beer_id, beer_name, brewer, failed_at,
                    failure_count, failure_reason, source_queue, raw_message, status
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 'pending')
                ON CONFLICT(message_id) DO UPDATE SET
                    failed_at = excluded.failed_at,
                    failure_count = excluded.failure_count,
                    failure_reason = COALESCE(excluded.failure_reason, dlq_messages.failure_reason),
                    raw_message = excluded.raw_message
                """,
                (
                    record.message_id,
                    record.beer_id,
                    record.beer_name,
                    record.brewer,
                    record.failed_at,
                    record.failure_count,
                    record.failure_reason,
                    record.source_queue,
                    json.dumps(record.raw_message),
                ),
            )
        except aiosqlite.Error as e:
            raise StoreWriteError(
                f"Failed to store dead letter {record.message_id}", cause=e
            ).with_context(message_id=record.message_id, beer_id=record.beer_id) from e

    async def get(self, record_id: int) -> DeadLetterRecord | None:
        row = await self._db.fetchone("SELECT * FROM dlq_messages WHERE id = ?", (record_id,))
        return DeadLetterRecord.from_row(row) if row else None

    async def list(
        self,
        status: str | None = DeadLetterStatus.PENDING.value,
        beer_id: str | None = None,
        limit: int = 50,
        cursor: str | None = None,
    ) -> DeadLetterPage:
        """List records most recent first.

        Args:
            status: Filter by status; ``None`` or ``"all"`` lists every status.
            beer_id: Filter by beer id.
            limit: Page size, capped at 100.
            cursor: ``next_cursor`` from the previous page.

        Raises:
            ValidationError: unknown status or malformed cursor.
        """
        if status not in (None, "all") and status not in {s.value for s in DeadLetterStatus}:
            raise ValidationError(f"Unknown dead-letter status {status!r}")
        limit = max(1, min(limit, MAX_LIST_LIMIT))

        where = ["1=1"]
        params: list[object] = []
        if status not in (None, "all"):
            where.append("status = ?")
            params.append(status)
        if beer_id:
            where.append("beer_id = ?")
            params.append(beer_id)
        filters = " AND ".join(where)
        count_params = list(params)

        if cursor:
            position = PageCursor.decode(cursor)
            filters_page = filters + " AND (failed_at < ? OR (failed_at = ? AND id < ?))"
            params.extend([position.failed_at, position.failed_at, position.id])
        else:
            filters_page = filters

        rows = await self._db.fetchall(
            f"SELECT * FROM dlq_messages WHERE {filters_page} "
            "ORDER BY failed_at DESC, id DESC LIMIT ?",
            (*params, limit + 1),
        )
        count_row = await self._db.fetchone(
            f"SELECT COUNT(*) AS count FROM dlq_messages WHERE {filters}", count_params
        )

        records = [DeadLetterRecord.from_row(r) for r in rows[:limit]]
        next_cursor = None
        if len(rows) > limit and records:
            last = records[-1]
            next_cursor = PageCursor(failed_at=last.failed_at, id=last.id).encode()

        return DeadLetterPage(
            records=records,
            total_count=count_row["count"] if count_row else 0,
            limit=limit,
            next_cursor=next_cursor,
        )

    async def replay(
        self,
        ids: Sequence[int],
        queues: Mapping[str, QueueTransport],
        delay_seconds: float = 0,
    ) -> ReplayReport:
        """Re-enqueue pending records onto their source pipeline queue.

        Args:
            ids: Record ids; at most 50 per call.
            queues: Source queue name → transport.
            delay_seconds: Visibility delay for the re-enqueued messages.

        Raises:
            ValidationError: empty or oversized id list.
        """
        ids = self._check_ids(ids, MAX_REPLAY_IDS)
        report = ReplayReport(requested=list(ids))

        # Only rows this statement returns are ours to send.
        async with self._db.transaction() as conn:
            rows = await conn.execute_fetchall(
                f"UPDATE dlq_messages SET status = 'replaying' "
                f"WHERE id IN ({_placeholders(ids)}) AND status = 'pending' RETURNING *",
                ids,
            )
        claimed = sorted((DeadLetterRecord.from_row(r) for r in rows), key=lambda r: ids.index(r.id))
        claimed_ids = {r.id for r in claimed}
        report.skipped = [i for i in ids if i not in claimed_ids]

        for record in claimed:
            queue = queues.get(record.source_queue)
            try:
                if queue is None:
                    raise LookupError(f"No queue registered for {record.source_queue!r}")
                await queue.send(record.raw_message, delay_seconds=delay_seconds)
            except Exception as e:
                logger.error(
                    "dlq.replay_send_failed",
                    dlq_id=record.id,
                    beer_id=record.beer_id,
                    source_queue=record.source_queue,
                    error=str(e),
                )
                report.failed.append(record.id)
                continue
            report.replayed.append(record.id)
            logger.info(
                "dlq.replayed",
                dlq_id=record.id,
                beer_id=record.beer_id,
                replay_count=record.replay_count + 1,
            )

        async with self._db.transaction() as conn:
            if report.replayed:
                await conn.execute_fetchall(
                    f"UPDATE dlq_messages SET status = 'replayed', replayed_at = ?, "
                    f"replay_count = replay_count + 1 "
                    f"WHERE id IN ({_placeholders(report.replayed)}) AND status = 'replaying'",
                    (now_ms(), *report.replayed),
                )
            if report.failed:
                await conn.execute_fetchall(
                    f"UPDATE dlq_messages SET status = 'pending' "
                    f"WHERE id IN ({_placeholders(report.failed)}) AND status = 'replaying'",
                    report.failed,
                )
        if report.failed:
            logger.warning("dlq.replay_rolled_back", failed_ids=report.failed)
        return report

    async def acknowledge(self, ids: Sequence[int]) -> int:
        """Mark records acknowledged whatever their current status.

        Already-acknowledged records keep their original ``acknowledged_at``.
        Returns the number of records that changed.
        """
        ids = self._check_ids(ids, MAX_ACKNOWLEDGE_IDS)
        changed = await self._db.execute(
            f"UPDATE dlq_messages SET status = 'acknowledged', acknowledged_at = ? "
            f"WHERE id IN ({_placeholders(ids)}) AND status != 'acknowledged'",
            (now_ms(), *ids),
        )
        logger.info("dlq.acknowledged", requested=len(ids), acknowledged=changed)
        return changed

    async def stats(self) -> DeadLetterStats:
        now = now_ms()
        day_ago = now - _DAY_MS

        by_status = {s.value: 0 for s in DeadLetterStatus}
        for row in await self._db.fetchall(
            "SELECT status, COUNT(*) AS count FROM dlq_messages GROUP BY status"
        ):
            by_status[row["status"]] = row["count"]

        oldest = (
            await self._db.fetchone(
                "SELECT MIN(failed_at) AS oldest FROM dlq_messages WHERE status = 'pending'"
            )
        )["oldest"]
        oldest_hours = round((now - oldest) / _HOUR_MS, 1) if oldest is not None else 0.0

        top_brewers = await self._db.fetchall(
            """
            SELECT brewer, COUNT(*) AS count FROM dlq_messages
            WHERE status = 'pending' AND brewer IS NOT NULL
            GROUP BY brewer ORDER BY count DESC LIMIT 10
            """
        )
        repeat_failures = await self._db.fetchall(
            """
            SELECT beer_id, beer_name, replay_count FROM dlq_messages
            WHERE status = 'pending' AND replay_count > 0
            ORDER BY replay_count DESC LIMIT 10
            """
        )
        last_24h = await self._db.fetchone(
            """
            SELECT
                COUNT(CASE WHEN status = 'replayed' AND replayed_at > ? THEN 1 END) AS replayed_24h,
                COUNT(CASE WHEN status = 'acknowledged' AND acknowledged_at > ? THEN 1 END) AS acknowledged_24h,
                COUNT(CASE WHEN failed_at > ? THEN 1 END) AS new_failures_24h
            FROM dlq_messages
            """,
            (day_ago, day_ago, day_ago),
        )

        return DeadLetterStats(
            by_status=by_status,
            oldest_pending_age_hours=oldest_hours,
            top_failing_brewers=[dict(r) for r in top_brewers],
            repeat_failures=[dict(r) for r in repeat_failures],
            last_24h=dict(last_24h),
        )

    async def purge_resolved(self, days: int = 30) -> int:
        """Delete replayed/acknowledged records resolved more than ``days`` ago.

        Deletes in batches of 1000 so a large backlog never holds one long
        write transaction.
        """
        cutoff = now_ms() - days * _DAY_MS
        total = 0
        while True:
            deleted = await self._db.execute(
                """
                DELETE FROM dlq_messages WHERE id IN (
                    SELECT id FROM dlq_messages
                    WHERE (status = 'acknowledged' AND acknowledged_at < ?)
                       OR (status = 'replayed' AND replayed_at < ?)
                    LIMIT ?
                )
                """,
                (cutoff, cutoff, PURGE_BATCH_SIZE),
            )
            total += deleted
            if deleted < PURGE_BATCH_SIZE:
                break
        if total:
            logger.info(
                "dlq.purged",
                deleted=total,
                cutoff=datetime.fromtimestamp(cutoff / 1000, tz=UTC).isoformat(),
            )
        return total

    @staticmethod
    def _check_ids(ids: Sequence[int], maximum: int) -> list[int]:
        unique = list(dict.fromkeys(int(i) for i in ids))
        if not unique:
            raise ValidationError("ids must not be empty")
        if len(unique) > maximum:
            raise ValidationError(f"At most {maximum} ids per request, got {len(unique)}")
        return unique
