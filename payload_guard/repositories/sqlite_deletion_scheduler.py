from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from payload_guard.domain.models import DeletionTrigger, RecordKey
from payload_guard.errors import SchedulerArmError
from payload_guard.repositories.sqlite_support import (
    SECONDS_PER_DAY,
    connect,
    enable_wal,
    epoch_now,
)


class SqliteDeletionScheduler:
    """Durable one-shot deletion triggers keyed by name."""

    def __init__(self, file_path: Path, logger: logging.Logger | None = None) -> None:
        self.file_path = Path(file_path)
        self.logger = logger or logging.getLogger("payload_guard.scheduler")
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        return connect(self.file_path)

    def _init_schema(self) -> None:
        with self._connect() as conn:
            enable_wal(conn)
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS deletion_triggers (
                  name TEXT PRIMARY KEY,
                  fire_at INTEGER NOT NULL,
                  partition_key TEXT NOT NULL,
                  created_at INTEGER NOT NULL,
                  armed_at INTEGER NOT NULL,
                  fired_at INTEGER
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_deletion_triggers_due
                  ON deletion_triggers(fired_at, fire_at)
                """
            )

    def arm(self, trigger: DeletionTrigger, *, now: int | None = None) -> None:
        current = epoch_now() if now is None else now
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO deletion_triggers (
                      name, fire_at, partition_key, created_at, armed_at, fired_at
                    ) VALUES (?, ?, ?, ?, ?, NULL)
                    """,
                    (
                        trigger.name,
                        trigger.fire_at,
                        trigger.target.partition_key,
                        trigger.target.created_at,
                        current,
                    ),
                )
        except sqlite3.IntegrityError as exc:
            raise SchedulerArmError(
                f"deletion trigger already exists: {trigger.name}",
                trigger=trigger,
                conflict=True,
                last_error=exc,
            ) from exc
        except sqlite3.Error as exc:
            raise SchedulerArmError(
                f"failed to arm deletion trigger {trigger.name}: {exc}",
                trigger=trigger,
                last_error=exc,
            ) from exc

    def claim_due(self, *, now: int | None = None, limit: int = 100) -> list[DeletionTrigger]:
        """Mark due triggers as fired and return them.

        The conditional update hands each trigger to one caller even when several
        dispatchers poll the same database. A caller that fails to handle a
        trigger gives it back with ``release``.
        """
        current = epoch_now() if now is None else now
        claimed: list[DeletionTrigger] = []
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT name, fire_at, partition_key, created_at
                FROM deletion_triggers
                WHERE fired_at IS NULL AND fire_at <= ?
                ORDER BY fire_at ASC
                LIMIT ?
                """,
                (current, max(1, limit)),
            ).fetchall()
            for row in rows:
                cursor = conn.execute(
                    """
                    UPDATE deletion_triggers
                    SET fired_at = ?
                    WHERE name = ? AND fired_at IS NULL
                    """,
                    (current, row["name"]),
                )
                if cursor.rowcount < 1:
                    continue
                claimed.append(
                    DeletionTrigger(
                        name=str(row["name"]),
                        fire_at=int(row["fire_at"]),
                        target=RecordKey(
                            partition_key=str(row["partition_key"]),
                            created_at=int(row["created_at"]),
                        ),
                    )
                )
        return claimed

    def release(self, name: str) -> bool:
        """Return a claimed trigger to the due set so the next claim redelivers it."""
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE deletion_triggers
                SET fired_at = NULL
                WHERE name = ? AND fired_at IS NOT NULL
                """,
                (name,),
            )
        return cursor.rowcount > 0

    def prune_fired(
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
                    SELECT COUNT(*) AS count FROM deletion_triggers
                    WHERE fired_at IS NOT NULL AND fired_at <= ?
                    """,
                    (threshold,),
                ).fetchone()
                return int(row["count"]) if row is not None else 0

            cursor = conn.execute(
                """
                DELETE FROM deletion_triggers
                WHERE fired_at IS NOT NULL AND fired_at <= ?
                """,
                (threshold,),
            )
            return cursor.rowcount

    @property
    def pending_count(self) -> int:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS count FROM deletion_triggers WHERE fired_at IS NULL"
            ).fetchone()
        return int(row["count"]) if row is not None else 0
