from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from payload_guard.domain.models import DeletionTrigger, ScheduledDeletionOutcome
from payload_guard.logging_utils import log_event, redact_sensitive_text
from payload_guard.observability import events
from payload_guard.repositories.deletion_scheduler import DeletionScheduler
from payload_guard.repositories.event_store import EventStore
from payload_guard.settings import Settings
from payload_guard.usecases.cleanup_worker import CleanupWorker


@dataclass
class DispatchStats:
    now: int
    expired: int = 0
    triggers_fired: int = 0
    scheduler_deleted: int = 0
    already_removed: int = 0
    trigger_failures: int = 0
    triggers_released: int = 0
    removal_events: int = 0
    removal_notified: int = 0
    removal_skipped: int = 0
    removal_failures: int = 0
    stored_total: int = 0
    pending_triggers: int = 0
    pending_feed: int = 0


class LifecycleDispatcher:
    """Drives one pass of the hosting layer around the cleanup worker.

    A pass runs the store's expiry sweep, fires due deletion triggers, then
    drains the removal feed. Feed events are acknowledged only once handled,
    so a failed notification is redelivered on the next pass. A trigger whose
    handling raised is released and claimed again on the next pass.
    """

    def __init__(
        self,
        settings: Settings,
        event_store: EventStore,
        scheduler: DeletionScheduler,
        worker: CleanupWorker,
        logger: logging.Logger | None = None,
    ) -> None:
        self.settings = settings
        self.event_store = event_store
        self.scheduler = scheduler
        self.worker = worker
        self.logger = logger or logging.getLogger("payload_guard.dispatcher")

    def _release(self, trigger: DeletionTrigger) -> bool:
        # Passive expiry still removes the record if the claim stays held.
        try:
            return self.scheduler.release(trigger.name)
        except Exception as exc:
            self.logger.warning(
                log_event(
                    events.CLEANUP_TRIGGER_RELEASE_FAILED,
                    name=trigger.name,
                    error=redact_sensitive_text(exc),
                )
            )
            return False

    def _fire_due_triggers(self, stats: DispatchStats) -> None:
        triggers = self.scheduler.claim_due(now=stats.now, limit=self.settings.trigger_batch_size)
        stats.triggers_fired = len(triggers)
        for trigger in triggers:
            try:
                outcome = self.worker.handle_scheduled_deletion(trigger.target, now=stats.now)
            except Exception as exc:
                stats.trigger_failures += 1
                released = self._release(trigger)
                if released:
                    stats.triggers_released += 1
                self.logger.error(
                    log_event(
                        events.CLEANUP_TRIGGER_FAILED,
                        name=trigger.name,
                        partition_key=trigger.target.partition_key,
                        created_at=trigger.target.created_at,
                        released=released,
                        error=redact_sensitive_text(exc),
                    )
                )
                continue
            if outcome is ScheduledDeletionOutcome.DELETED:
                stats.scheduler_deleted += 1
            else:
                stats.already_removed += 1

    def _drain_removal_feed(self, stats: DispatchStats) -> None:
        removal_events = self.event_store.pending_removal_events(
            limit=self.settings.feed_batch_size
        )
        stats.removal_events = len(removal_events)
        if not removal_events:
            return

        result = self.worker.handle_removal_events(removal_events, now=stats.now)
        stats.removal_notified = result.notified
        stats.removal_skipped = result.skipped
        stats.removal_failures = len(result.failed)
        if result.acked:
            self.event_store.ack_removal_events(result.acked, now=stats.now)

    def run_once(self, now: int | None = None) -> DispatchStats:
        stats = DispatchStats(now=int(time.time()) if now is None else now)

        stats.expired = self.event_store.expire_due(
            now=stats.now,
            lag_sec=self.settings.expiry_sweep_lag_sec,
        )
        self._fire_due_triggers(stats)
        self._drain_removal_feed(stats)

        stats.stored_total = self.event_store.total_count
        stats.pending_triggers = self.scheduler.pending_count
        stats.pending_feed = self.event_store.pending_feed_count
        return stats

    def prune(self, *, days: int, dry_run: bool = False, now: int | None = None) -> tuple[int, int]:
        feed_removed = self.event_store.prune_removal_feed(days=days, dry_run=dry_run, now=now)
        triggers_removed = self.scheduler.prune_fired(days=days, dry_run=dry_run, now=now)
        return feed_removed, triggers_removed
