from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from payload_guard.logging_utils import log_event, setup_logging
from payload_guard.observability import events
from payload_guard.repositories.deletion_scheduler import DeletionScheduler
from payload_guard.repositories.event_store import EventStore
from payload_guard.repositories.sqlite_deletion_scheduler import SqliteDeletionScheduler
from payload_guard.repositories.sqlite_event_store import SqliteEventStore
from payload_guard.services.notifier import LoggingNotifier, Notifier, WebhookNotifier
from payload_guard.settings import Settings
from payload_guard.usecases.cleanup_worker import CleanupWorker
from payload_guard.usecases.dispatcher import LifecycleDispatcher
from payload_guard.usecases.intake import IntakeValidator


@dataclass(frozen=True)
class ServiceRuntime:
    settings: Settings
    logger: logging.Logger
    event_store: EventStore
    scheduler: DeletionScheduler
    notifier: Notifier
    intake: IntakeValidator
    worker: CleanupWorker
    dispatcher: LifecycleDispatcher


def build_notifier(
    *,
    settings: Settings,
    logger: logging.Logger,
    webhook_notifier_factory: Callable[..., Notifier] = WebhookNotifier,
    logging_notifier_factory: Callable[..., Notifier] = LoggingNotifier,
) -> Notifier:
    if not settings.notifications_enabled:
        return logging_notifier_factory(logger=logger.getChild("notifier"))
    return webhook_notifier_factory(
        hook_url=settings.notifier_hook_url,
        bot_name=settings.bot_name,
        timeout_sec=settings.notifier_timeout_sec,
        connect_timeout_sec=settings.notifier_connect_timeout_sec,
        read_timeout_sec=settings.notifier_read_timeout_sec,
        logger=logger.getChild("notifier"),
    )


def build_runtime(
    settings: Settings,
    *,
    setup_logging_fn: Callable[..., logging.Logger] = setup_logging,
    event_store_factory: Callable[..., EventStore] = SqliteEventStore,
    scheduler_factory: Callable[..., DeletionScheduler] = SqliteDeletionScheduler,
    build_notifier_fn: Callable[..., Notifier] = build_notifier,
) -> ServiceRuntime:
    logger = setup_logging_fn(settings.log_level, settings.timezone)
    event_store = event_store_factory(
        file_path=settings.database_file,
        logger=logger.getChild("event_store"),
    )
    scheduler = scheduler_factory(
        file_path=settings.database_file,
        logger=logger.getChild("scheduler"),
    )
    notifier = build_notifier_fn(settings=settings, logger=logger)
    intake = IntakeValidator(
        settings=settings,
        event_store=event_store,
        scheduler=scheduler,
        notifier=notifier,
        logger=logger.getChild("intake"),
    )
    worker = CleanupWorker(
        settings=settings,
        event_store=event_store,
        notifier=notifier,
        logger=logger.getChild("cleanup"),
    )
    dispatcher = LifecycleDispatcher(
        settings=settings,
        event_store=event_store,
        scheduler=scheduler,
        worker=worker,
        logger=logger.getChild("dispatcher"),
    )
    return ServiceRuntime(
        settings=settings,
        logger=logger,
        event_store=event_store,
        scheduler=scheduler,
        notifier=notifier,
        intake=intake,
        worker=worker,
        dispatcher=dispatcher,
    )


def log_startup(runtime: ServiceRuntime) -> None:
    settings = runtime.settings
    runtime.logger.info(
        log_event(
            events.STARTUP_READY,
            database_file=str(settings.database_file),
            partition_key=settings.partition_key,
            retention_sec=settings.retention_sec,
            grace_sec=settings.grace_sec,
            notification_topic=settings.notification_topic,
            notifications_enabled=settings.notifications_enabled,
            expiry_sweep_lag_sec=settings.expiry_sweep_lag_sec,
            cycle_interval_sec=settings.cycle_interval_sec,
            feed_retention_days=settings.feed_retention_days,
            dry_run=settings.dry_run,
            run_once=settings.run_once,
        )
    )
