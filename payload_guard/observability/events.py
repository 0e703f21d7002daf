from __future__ import annotations

# Runtime lifecycle
STARTUP_INVALID_CONFIG = "startup.invalid_config"
STARTUP_READY = "startup.ready"
SHUTDOWN_INTERRUPT = "shutdown.interrupt"
SHUTDOWN_RUN_ONCE_COMPLETE = "shutdown.run_once_complete"
SHUTDOWN_UNEXPECTED_ERROR = "shutdown.unexpected_error"

# Dispatch cycle
CYCLE_COMPLETE = "cycle.complete"
CYCLE_ITERATION_FAILED = "cycle.iteration_failed"
CYCLE_FATAL_ERROR = "cycle.fatal_error"

# Intake
INTAKE_MALFORMED = "intake.malformed"
INTAKE_VALID = "intake.valid"
INTAKE_INVALID_STORED = "intake.invalid_stored"
INTAKE_STORE_WRITE_FAILED = "intake.store_write_failed"
INTAKE_SCHEDULER_ARMED = "intake.scheduler_armed"
INTAKE_SCHEDULER_ARM_FAILED = "intake.scheduler_arm_failed"

# Event store
EVENT_STORE_OVERWRITE = "event_store.overwrite"
EVENT_STORE_EXPIRED = "event_store.expired"
EVENT_STORE_FEED_PRUNED = "event_store.feed_pruned"
EVENT_STORE_FEED_PRUNE_FAILED = "event_store.feed_prune_failed"

# Cleanup worker
CLEANUP_REMOVAL_NOTIFIED = "cleanup.removal_notified"
CLEANUP_REMOVAL_SKIPPED = "cleanup.removal_skipped"
CLEANUP_SCHEDULED_DELETED = "cleanup.scheduled_deleted"
CLEANUP_ALREADY_REMOVED = "cleanup.already_removed"
CLEANUP_TRIGGER_FAILED = "cleanup.trigger_failed"
CLEANUP_TRIGGER_RELEASE_FAILED = "cleanup.trigger_release_failed"

# Notifications
NOTIFICATION_SENT = "notification.sent"
NOTIFICATION_DRY_RUN = "notification.dry_run"
NOTIFICATION_FAILED = "notification.failed"
