from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable
from pathlib import Path

from payload_guard.domain.models import (
    InvalidEventRecord,
    RecordKey,
    RemovalEvent,
    RemovalReason,
)
from payload_guard.errors import StoreWriteError
from payload_guard.logging_utils import log_event
from payload_guard.observability import events
from payload_guard.repositories.sqlite_support import (
    SECONDS_PER_DAY,
    connect,
    enable_wal,
    epoch_now,
)


class SqliteEventStore:
    """Invalid-event records with TTL expiry and an append-only removal feed.

    Every record leaving ``invalid_events`` appends one ``removal_feed`` row in
    the same transaction, tagged with the reason it left. Feed rows stay
    pending until acknowledged by the consumer, so an unacknowledged row is
    redelivered on the next read.
    """

    def __init__(self, file_path: Path, logger: logging.Logger | None = None) -> None:
        self.file_path = Path(file_path)
        self.logger = logger or logging.getLogger("payload_guard.event_store")
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        return connect(self.file_path)

    def _init_schema(self) -> None:
        with self._connect() as conn:
            enable_wal(conn)
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS invalid_events (
                  partition_key TEXT NOT NULL,
                  created_at INTEGER NOT NULL,
                  payload TEXT NOT NULL,
                  expires_at INTEGER NOT NULL,
                  PRIMARY KEY (partition_key, created_at)
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_invalid_events_expires_at
                  ON invalid_events(expires_at)
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS removal_feed (
                  seq INTEGER PRIMARY KEY AUTOINCREMENT,
                  partition_key TEXT NOT NULL,
                  created_at INTEGER NOT NULL,
                  reason TEXT NOT NULL,
                  removed_at INTEGER NOT NULL,
                  delivered_at INTEGER
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_removal_feed_pending
                  ON removal_feed(delivered_at, seq)
                """
            )

    def put(self, record: InvalidEventRecord) -> bool:
        """Store a record, replacing any record with the same key.

        Returns True when an existing record was overwritten.
        """
        try:
            with self._connect() as conn:
                existing = conn.execute(
                    """
                    SELECT 1 FROM invalid_events
                    WHERE partition_key = ? AND created_at = ?
                    """,
                    (record.partition_key, record.created_at),
                ).fetchone()
                conn.execute(
                    """
                    INSERT INTO invalid_events (partition_key, created_at, payload, expires_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(partition_key, created_at) DO UPDATE SET
                      payload = excluded.payload,
                      expires_at = excluded.expires_at
                    """,
                    (
                        record.partition_key,
                        record.created_at,
                        record.payload,
                        record.expires_at,
                    ),
                )
        except sqlite3.Error as exc:
            raise StoreWriteError(
                f"failed to store invalid event: {exc}",
                key=record.key,
                last_error=exc,
            ) from exc

        replaced = existing is not None
        if replaced:
            self.logger.warning(
                log_event(
                    events.EVENT_STORE_OVERWRITE,
                    partition_key=record.partition_key,
                    created_at=record.created_at,
                )
            )
        return replaced

    def get(self, key: RecordKey) -> InvalidEventRecord | None:
        # Records past expires_at are still readable until the expiry sweep removes them.
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT partition_key, created_at, payload, expires_at
                FROM invalid_events
                WHERE partition_key = ? AND created_at = ?
                """,
                (key.partition_key, key.created_at),
            ).fetchone()
        if row is None:
            return None
        return InvalidEventRecord(
            partition_key=str(row["partition_key"]),
            created_at=int(row["created_at"]),
            payload=str(row["payload"]),
            expires_at=int(row["expires_at"]),
        )

    @staticmethod
    def _remove(
        conn: sqlite3.Connection,
        *,
        key: RecordKey,
        reason: RemovalReason,
        removed_at: int,
        expired_before: int | None = None,
    ) -> bool:
        query = "DELETE FROM invalid_events WHERE partition_key = ? AND created_at = ?"
        params: tuple[object, ...] = (key.partition_key, key.created_at)
        if expired_before is not None:
            query += " AND expires_at <= ?"
            params += (expired_before,)

        cursor = conn.execute(query, params)
        if cursor.rowcount < 1:
            return False
        conn.execute(
            """
            INSERT INTO removal_feed (partition_key, created_at, reason, removed_at)
            VALUES (?, ?, ?, ?)
            """,
            (key.partition_key, key.created_at, reason.value, removed_at),
        )
        return True

    def delete(self, key: RecordKey, *, now: int | None = None) -> bool:
        """Delete a record if it still exists; False means another deleter won."""
        current = epoch_now() if now is None else now
        with self._connect() as conn:
            return self._remove(
                conn,
                key=key,
                reason=RemovalReason.EXPLICIT,
                removed_at=current,
            )

    def expire_due(self, *, now: int | None = None, lag_sec: int = 0) -> int:
        """Remove records whose expiry is at least ``lag_sec`` in the past."""
        current = epoch_now() if now is None else now
        cutoff = current - max(0, lag_sec)
        removed = 0
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT partition_key, created_at
                FROM invalid_events
                WHERE expires_at <= ?
                ORDER BY expires_at ASC
                """,
                (cutoff,),
            ).fetchall()
            for row in rows:
                key = RecordKey(
                    partition_key=str(row["partition_key"]),
                    created_at=int(row["created_at"]),
                )
                if self._remove(
                    conn,
                    key=key,
                    reason=RemovalReason.EXPIRED,
                    removed_at=current,
                    expired_before=cutoff,
                ):
                    removed += 1

        if removed:
            self.logger.info(log_event(events.EVENT_STORE_EXPIRED, removed=removed, now=current))
        return removed

    def pending_removal_events(self, limit: int = 100) -> list[RemovalEvent]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT seq, partition_key, created_at, reason, removed_at
                FROM removal_feed
                WHERE delivered_at IS NULL
                ORDER BY seq ASC
                LIMIT ?
                """,
                (max(1, limit),),
            ).fetchall()

        return [
            RemovalEvent(
                seq=int(row["seq"]),
                key=RecordKey(
                    partition_key=str(row["partition_key"]),
                    created_at=int(row["created_at"]),
                ),
                reason=RemovalReason(str(row["reason"])),
                removed_at=int(row["removed_at"]),
            )
            for row in rows
        ]

    def ack_removal_events(self, seqs: Iterable[int], *, now: int | None = None) -> int:
        ids = list(dict.fromkeys(seqs))
        if not ids:
            return 0

        current = epoch_now() if now is None else now
        with self._connect() as conn:
            before_changes = conn.total_changes
            conn.executemany(
                """
                UPDATE removal_feed
                SET delivered_at = ?
                WHERE delivered_at IS NULL
                  AND seq = ?
                """,
                ((current, seq) for seq in ids),
            )
            return conn.total_changes - before_changes

    def prune_removal_feed(
        self,
        *,
        days: int = 7,
        dry_run: bool = False,
        now: int | None = None,
    ) -> int:
        if days < 0:
            raise ValueError("days must be >= 0")

        current = epoch_now() if now is None else now
        threshold = current - days * SECONDS_PER_DAY
        with self._connect() as conn:
            if dry_run:
                row = conn.execute(
                    """
                    SELECT COUNT(*) AS count FROM removal_feed
                    WHERE delivered_at IS NOT NULL AND delivered_at <= ?
                    """,
                    (threshold,),
                ).fetchone()
                return int(row["count"]) if row is not None else 0

            cursor = conn.execute(
                """
                DELETE FROM removal_feed
                WHERE delivered_at IS NOT NULL AND delivered_at <= ?
                """,
                (threshold,),
            )
            return cursor.rowcount

    @property
    def total_count(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) AS count FROM invalid_events").fetchone()
        return int(row["count"]) if row is not None else 0

    @property
    def pending_feed_count(self) -> int:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS count FROM removal_feed WHERE delivered_at IS NULL"
            ).fetchone()
        return int(row["count"]) if row is not None else 0
