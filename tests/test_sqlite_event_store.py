from __future__ import annotations

import sqlite3

import pytest

from payload_guard.domain.models import InvalidEventRecord, RecordKey, RemovalReason
from payload_guard.errors import StoreWriteError
from payload_guard.repositories.sqlite_event_store import SqliteEventStore
from payload_guard.repositories.sqlite_support import SQLITE_BUSY_TIMEOUT_MS


def _record(created_at: int, payload: str = '{"valid": false}') -> InvalidEventRecord:
    return InvalidEventRecord.create(
        partition_key="InvalidEvents",
        created_at=created_at,
        payload=payload,
    )


def test_put_and_get_round_trip(tmp_path) -> None:
    store = SqliteEventStore(tmp_path / "store.db")

    assert store.put(_record(1_000)) is False

    stored = store.get(RecordKey("InvalidEvents", 1_000))
    assert stored == _record(1_000)
    assert store.total_count == 1
    assert store.get(RecordKey("InvalidEvents", 2_000)) is None


def test_put_same_key_is_last_write_wins(tmp_path) -> None:
    store = SqliteEventStore(tmp_path / "store.db")

    store.put(_record(1_000, '{"n": 1}'))
    assert store.put(_record(1_000, '{"n": 2}')) is True

    stored = store.get(RecordKey("InvalidEvents", 1_000))
    assert stored is not None
    assert stored.payload == '{"n": 2}'
    assert store.total_count == 1
    assert store.pending_feed_count == 0


def test_put_wraps_sqlite_errors(tmp_path) -> None:
    store = SqliteEventStore(tmp_path / "store.db")
    with store._connect() as conn:
        conn.execute("DROP TABLE invalid_events")

    with pytest.raises(StoreWriteError) as exc_info:
        store.put(_record(1_000))
    assert exc_info.value.key == RecordKey("InvalidEvents", 1_000)
    assert isinstance(exc_info.value.last_error, sqlite3.Error)


def test_delete_is_conditional_and_tags_feed_explicit(tmp_path) -> None:
    store = SqliteEventStore(tmp_path / "store.db")
    store.put(_record(1_000))
    key = RecordKey("InvalidEvents", 1_000)

    assert store.delete(key, now=5_000) is True
    assert store.delete(key, now=5_001) is False

    feed = store.pending_removal_events()
    assert len(feed) == 1
    assert feed[0].key == key
    assert feed[0].reason is RemovalReason.EXPLICIT
    assert feed[0].removed_at == 5_000


def test_expire_due_removes_only_stale_records(tmp_path) -> None:
    store = SqliteEventStore(tmp_path / "store.db")
    store.put(_record(1_000))
    store.put(_record(2_000))

    assert store.expire_due(now=1_000 + 86400) == 1
    assert store.expire_due(now=1_000 + 86400) == 0

    assert store.get(RecordKey("InvalidEvents", 1_000)) is None
    assert store.get(RecordKey("InvalidEvents", 2_000)) is not None
    feed = store.pending_removal_events()
    assert [(event.key.created_at, event.reason) for event in feed] == [
        (1_000, RemovalReason.EXPIRED)
    ]


def test_expire_due_lag_delays_but_does_not_skip_removal(tmp_path) -> None:
    store = SqliteEventStore(tmp_path / "store.db")
    store.put(_record(1_000))

    assert store.expire_due(now=1_000 + 86400, lag_sec=3600) == 0
    assert store.expire_due(now=1_000 + 86400 + 3599, lag_sec=3600) == 0
    assert store.expire_due(now=1_000 + 86400 + 3600, lag_sec=3600) == 1

    feed = store.pending_removal_events()
    assert [(event.reason, event.removed_at) for event in feed] == [
        (RemovalReason.EXPIRED, 1_000 + 86400 + 3600)
    ]


def test_expired_record_remains_readable_until_sweep(tmp_path) -> None:
    store = SqliteEventStore(tmp_path / "store.db")
    store.put(_record(1_000))

    assert store.get(RecordKey("InvalidEvents", 1_000)) is not None


def test_ack_removal_events_hides_them_from_pending(tmp_path) -> None:
    store = SqliteEventStore(tmp_path / "store.db")
    for created_at in (1_000, 2_000, 3_000):
        store.put(_record(created_at))
        store.delete(RecordKey("InvalidEvents", created_at), now=10_000)

    feed = store.pending_removal_events(limit=2)
    assert [event.key.created_at for event in feed] == [1_000, 2_000]

    assert store.ack_removal_events([feed[0].seq, feed[0].seq], now=10_001) == 1
    assert store.ack_removal_events([feed[0].seq]) == 0
    assert store.ack_removal_events([]) == 0
    assert [event.key.created_at for event in store.pending_removal_events()] == [2_000, 3_000]
    assert store.pending_feed_count == 2


def test_prune_removal_feed_only_touches_acknowledged_rows(tmp_path) -> None:
    store = SqliteEventStore(tmp_path / "store.db")
    store.put(_record(1_000))
    store.put(_record(2_000))
    store.delete(RecordKey("InvalidEvents", 1_000), now=10_000)
    store.delete(RecordKey("InvalidEvents", 2_000), now=10_000)
    first = store.pending_removal_events()[0]
    store.ack_removal_events([first.seq], now=10_000)

    assert store.prune_removal_feed(days=1, dry_run=True, now=10_000 + 86400) == 1
    assert store.prune_removal_feed(days=1, now=10_000 + 86399) == 0
    assert store.prune_removal_feed(days=1, now=10_000 + 86400) == 1
    assert store.pending_feed_count == 1


def test_prune_removal_feed_rejects_negative_days(tmp_path) -> None:
    store = SqliteEventStore(tmp_path / "store.db")

    with pytest.raises(ValueError):
        store.prune_removal_feed(days=-1)


def test_schema_applies_busy_timeout(tmp_path) -> None:
    store = SqliteEventStore(tmp_path / "nested" / "store.db")

    with store._connect() as conn:
        row = conn.execute("PRAGMA busy_timeout").fetchone()
    assert int(row[0]) == SQLITE_BUSY_TIMEOUT_MS
    assert (tmp_path / "nested").is_dir()
