from __future__ import annotations

import sqlite3
import time
from pathlib import Path

SQLITE_BUSY_TIMEOUT_MS = 30_000
SQLITE_JOURNAL_MODE = "WAL"
SECONDS_PER_DAY = 86400


def connect(file_path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(file_path)
    conn.row_factory = sqlite3.Row
    conn.execute(f"PRAGMA busy_timeout = {SQLITE_BUSY_TIMEOUT_MS}")
    return conn


def enable_wal(conn: sqlite3.Connection) -> None:
    conn.execute(f"PRAGMA journal_mode = {SQLITE_JOURNAL_MODE}")


def epoch_now() -> int:
    return int(time.time())
