from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass, field

from payload_guard.domain.message_builder import (
    build_removed_message,
    build_scheduler_deleted_message,
    retention_seconds,
)
from payload_guard.domain.models import (
    RecordKey,
    RemovalEvent,
    RemovalReason,
    ScheduledDeletionOutcome,
)
from payload_guard.logging_utils import log_event, redact_sensitive_text
from payload_guard.observability import events
from payload_guard.repositories.event_store import EventStore
from payload_guard.services.notifier import NotificationError, Notifier
from payload_guard.settings import Settings


@dataclass
class RemovalBatchResult:
    notified: int = 0
    skipped: int = 0
    acked: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)


class CleanupWorker:
    """Turns record removals into exactly one notification per record.

    Two entry points share the store:

    * ``handle_removal_events`` consumes the removal feed. Only ``EXPIRED``
      removals notify; ``EXPLICIT`` removals were made by
      ``handle_scheduled_deletion``, which already notified.
    * ``handle_scheduled_deletion`` is fired by the deletion scheduler. It
      reads before deleting, and the conditional delete reports whether this
      call actually removed the record, so a record already expired (or deleted
      by a concurrent trigger) is a silent no-op.

    Both entry points are safe to re-invoke with the same input.
    """

    def __init__(
        self,
        settings: Settings,
        event_store: EventStore,
        notifier: Notifier,
        logger: logging.Logger | None = None,
    ) -> None:
        self.settings = settings
        self.event_store = event_store
        self.notifier = notifier
        self.logger = logger or logging.getLogger("payload_guard.cleanup")

    def _publish(self, message: str, *, key: RecordKey, source: str) -> bool:
        try:
            self.notifier.publish(self.settings.notification_topic, message)
        except NotificationError as exc:
            self.logger.error(
                log_event(
                    events.NOTIFICATION_FAILED,
                    source=source,
                    partition_key=key.partition_key,
                    created_at=key.created_at,
                    error=redact_sensitive_text(exc.last_error or exc),
                )
            )
            return False
        return True

    def handle_removal_events(
        self,
        removal_events: Iterable[RemovalEvent],
        now: int | None = None,
    ) -> RemovalBatchResult:
        current = int(time.time()) if now is None else now
        result = RemovalBatchResult()
        for event in removal_events:
            if event.reason is not RemovalReason.EXPIRED:
                result.skipped += 1
                result.acked.append(event.seq)
                self.logger.debug(
                    log_event(
                        events.CLEANUP_REMOVAL_SKIPPED,
                        seq=event.seq,
                        reason=event.reason.value,
                        created_at=event.key.created_at,
                    )
                )
                continue

            message = build_removed_message(event.key, current)
            if not self._publish(message, key=event.key, source="removal_feed"):
                result.failed.append(event.seq)
                continue

            result.notified += 1
            result.acked.append(event.seq)
            self.logger.info(
                log_event(
                    events.CLEANUP_REMOVAL_NOTIFIED,
                    seq=event.seq,
                    partition_key=event.key.partition_key,
                    created_at=event.key.created_at,
                    retention_sec=retention_seconds(event.key, current),
                )
            )
        return result

    def handle_scheduled_deletion(
        self,
        key: RecordKey,
        now: int | None = None,
    ) -> ScheduledDeletionOutcome:
        current = int(time.time()) if now is None else now
        if self.event_store.get(key) is None:
            self.logger.info(
                log_event(
                    events.CLEANUP_ALREADY_REMOVED,
                    partition_key=key.partition_key,
                    created_at=key.created_at,
                )
            )
            return ScheduledDeletionOutcome.ALREADY_GONE

        if not self.event_store.delete(key, now=current):
            # Expired or deleted by another trigger between the read and the delete.
            self.logger.info(
                log_event(
                    events.CLEANUP_ALREADY_REMOVED,
                    partition_key=key.partition_key,
                    created_at=key.created_at,
                    lost_race=True,
                )
            )
            return ScheduledDeletionOutcome.ALREADY_GONE

        self.logger.info(
            log_event(
                events.CLEANUP_SCHEDULED_DELETED,
                partition_key=key.partition_key,
                created_at=key.created_at,
                retention_sec=retention_seconds(key, current),
            )
        )
        self._publish(
            build_scheduler_deleted_message(key, current),
            key=key,
            source="scheduler",
        )
        return ScheduledDeletionOutcome.DELETED
