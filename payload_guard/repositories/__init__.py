"""Data access layer."""
from payload_guard.repositories.deletion_scheduler import DeletionScheduler
from payload_guard.repositories.event_store import EventStore
from payload_guard.repositories.sqlite_deletion_scheduler import SqliteDeletionScheduler
from payload_guard.repositories.sqlite_event_store import SqliteEventStore

__all__ = [
    "DeletionScheduler",
    "EventStore",
    "SqliteDeletionScheduler",
    "SqliteEventStore",
]
