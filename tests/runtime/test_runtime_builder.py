from __future__ import annotations

import json
import logging
from pathlib import Path

from payload_guard.entrypoints.runtime_builder import build_notifier, build_runtime, log_startup
from payload_guard.observability import events
from payload_guard.repositories.sqlite_deletion_scheduler import SqliteDeletionScheduler
from payload_guard.repositories.sqlite_event_store import SqliteEventStore
from payload_guard.services.notifier import LoggingNotifier, WebhookNotifier
from tests.main_test_harness import capturing_logger, make_settings, quiet_logger


def _logger_fn(name: str):
    def _setup(log_level: str = "INFO", timezone: str = "UTC") -> logging.Logger:
        return quiet_logger(name)

    return _setup


def test_build_runtime_wires_shared_sqlite_database(tmp_path: Path) -> None:
    settings = make_settings(tmp_path)

    runtime = build_runtime(settings, setup_logging_fn=_logger_fn("test.runtime_builder"))
    try:
        assert isinstance(runtime.event_store, SqliteEventStore)
        assert isinstance(runtime.scheduler, SqliteDeletionScheduler)
        assert isinstance(runtime.notifier, WebhookNotifier)
        assert runtime.intake.event_store is runtime.event_store
        assert runtime.intake.scheduler is runtime.scheduler
        assert runtime.worker.notifier is runtime.notifier
        assert runtime.dispatcher.worker is runtime.worker
        assert settings.database_file.exists()
    finally:
        runtime.notifier.close()


def test_build_notifier_falls_back_to_logging_without_hook_or_in_dry_run(
    tmp_path: Path,
) -> None:
    logger = quiet_logger("test.runtime_builder.notifier")

    no_hook = build_notifier(settings=make_settings(tmp_path, notifier_hook_url=""), logger=logger)
    dry_run = build_notifier(settings=make_settings(tmp_path, dry_run=True), logger=logger)

    assert isinstance(no_hook, LoggingNotifier)
    assert isinstance(dry_run, LoggingNotifier)


def test_build_notifier_passes_timeouts_to_webhook_factory(tmp_path: Path) -> None:
    captured: dict[str, object] = {}

    def _factory(**kwargs: object) -> object:
        captured.update(kwargs)
        return object()

    build_notifier(
        settings=make_settings(
            tmp_path,
            notifier_timeout_sec=5,
            notifier_connect_timeout_sec=2,
            notifier_read_timeout_sec=8,
        ),
        logger=quiet_logger("test.runtime_builder.notifier"),
        webhook_notifier_factory=_factory,
    )

    assert captured["hook_url"] == "https://hook.example/services/abc"
    assert captured["bot_name"] == "test-bot"
    assert captured["connect_timeout_sec"] == 2
    assert captured["read_timeout_sec"] == 8


def test_log_startup_logs_ready_event(tmp_path: Path) -> None:
    logger, handler = capturing_logger("test.runtime_builder.startup")
    runtime = build_runtime(
        make_settings(tmp_path, grace_sec=60),
        setup_logging_fn=lambda *_: logger,
    )

    log_startup(runtime)
    runtime.notifier.close()

    payloads = [json.loads(message) for message in handler.messages]
    ready = [payload for payload in payloads if payload.get("event") == events.STARTUP_READY]
    assert len(ready) == 1
    assert ready[0]["partition_key"] == "InvalidEvents"
    assert ready[0]["grace_sec"] == 60
    assert ready[0]["notifications_enabled"] is True
