from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from payload_guard.domain.models import InvalidEventRecord, RecordKey, RemovalEvent


class EventStore(Protocol):
    def put(self, record: InvalidEventRecord) -> bool:
        ...

    def get(self, key: RecordKey) -> InvalidEventRecord | None:
        ...

    def delete(self, key: RecordKey, *, now: int | None = None) -> bool:
        ...

    def expire_due(self, *, now: int | None = None, lag_sec: int = 0) -> int:
        ...

    def pending_removal_events(self, limit: int = 100) -> list[RemovalEvent]:
        ...

    def ack_removal_events(self, seqs: Iterable[int], *, now: int | None = None) -> int:
        ...

    def prune_removal_feed(
        self,
        *,
        days: int = 7,
        dry_run: bool = False,
        now: int | None = None,
    ) -> int:
        ...

    @property
    def total_count(self) -> int:
        ...

    @property
    def pending_feed_count(self) -> int:
        ...
