from __future__ import annotations

import json
import logging
from collections.abc import Callable

from payload_guard.domain.models import RecordKey
from payload_guard.entrypoints.runtime_builder import ServiceRuntime
from payload_guard.logging_utils import log_event, redact_sensitive_text, setup_logging
from payload_guard.observability import events
from payload_guard.settings import Settings, SettingsError


def _load_runtime(
    *,
    settings_from_env: Callable[..., Settings],
    setup_logging_fn: Callable[..., logging.Logger],
    build_runtime_fn: Callable[[Settings], ServiceRuntime],
) -> ServiceRuntime | None:
    bootstrap_logger = setup_logging_fn()
    try:
        settings = settings_from_env()
    except SettingsError as exc:
        bootstrap_logger.critical(
            log_event(events.STARTUP_INVALID_CONFIG, error=redact_sensitive_text(exc))
        )
        return None
    return build_runtime_fn(settings)


def run_service(
    *,
    settings_from_env: Callable[..., Settings] = Settings.from_env,
    setup_logging_fn: Callable[..., logging.Logger] = setup_logging,
    build_runtime_fn: Callable[[Settings], ServiceRuntime],
    log_startup_fn: Callable[[ServiceRuntime], None],
    run_loop_fn: Callable[[ServiceRuntime], int],
) -> int:
    runtime = _load_runtime(
        settings_from_env=settings_from_env,
        setup_logging_fn=setup_logging_fn,
        build_runtime_fn=build_runtime_fn,
    )
    if runtime is None:
        return 1
    log_startup_fn(runtime)
    return run_loop_fn(runtime)


def validate_payload(
    body: str | None,
    *,
    settings_from_env: Callable[..., Settings] = Settings.from_env,
    setup_logging_fn: Callable[..., logging.Logger] = setup_logging,
    build_runtime_fn: Callable[[Settings], ServiceRuntime],
    output_fn: Callable[[str], None] = print,
) -> int:
    runtime = _load_runtime(
        settings_from_env=settings_from_env,
        setup_logging_fn=setup_logging_fn,
        build_runtime_fn=build_runtime_fn,
    )
    if runtime is None:
        return 1

    response = runtime.intake.handle(body)
    output_fn(json.dumps(response.to_http(), ensure_ascii=False))
    return 0 if response.ok else 1


def delete_record(
    created_at: int,
    *,
    partition_key: str | None = None,
    settings_from_env: Callable[..., Settings] = Settings.from_env,
    setup_logging_fn: Callable[..., logging.Logger] = setup_logging,
    build_runtime_fn: Callable[[Settings], ServiceRuntime],
) -> int:
    runtime = _load_runtime(
        settings_from_env=settings_from_env,
        setup_logging_fn=setup_logging_fn,
        build_runtime_fn=build_runtime_fn,
    )
    if runtime is None:
        return 1

    key = RecordKey(
        partition_key=partition_key or runtime.settings.partition_key,
        created_at=created_at,
    )
    try:
        runtime.worker.handle_scheduled_deletion(key)
    except Exception as exc:
        runtime.logger.error(
            log_event(
                events.CLEANUP_TRIGGER_FAILED,
                partition_key=key.partition_key,
                created_at=key.created_at,
                error=redact_sensitive_text(exc),
            )
        )
        return 1
    return 0


def prune_feed(
    days: int,
    dry_run: bool,
    *,
    settings_from_env: Callable[..., Settings] = Settings.from_env,
    setup_logging_fn: Callable[..., logging.Logger] = setup_logging,
    build_runtime_fn: Callable[[Settings], ServiceRuntime],
) -> int:
    runtime = _load_runtime(
        settings_from_env=settings_from_env,
        setup_logging_fn=setup_logging_fn,
        build_runtime_fn=build_runtime_fn,
    )
    if runtime is None:
        return 1

    try:
        feed_removed, triggers_removed = runtime.dispatcher.prune(days=days, dry_run=dry_run)
    except Exception as exc:
        runtime.logger.error(
            log_event(
                events.EVENT_STORE_FEED_PRUNE_FAILED,
                days=days,
                dry_run=dry_run,
                error=redact_sensitive_text(exc),
            )
        )
        return 1

    runtime.logger.info(
        log_event(
            events.EVENT_STORE_FEED_PRUNED,
            days=days,
            dry_run=dry_run,
            feed_removed=feed_removed,
            triggers_removed=triggers_removed,
            pending_feed=runtime.event_store.pending_feed_count,
        )
    )
    return 0
