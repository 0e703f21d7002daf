from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import asdict
from datetime import datetime
from zoneinfo import ZoneInfo

from payload_guard.entrypoints.runtime_builder import ServiceRuntime
from payload_guard.logging_utils import log_event, redact_sensitive_text
from payload_guard.observability import events

MIN_EXCEPTION_BACKOFF_SEC = 1


def _is_fatal_cycle_exception(exc: Exception) -> bool:
    return isinstance(exc, MemoryError)


def close_runtime_resources(runtime: ServiceRuntime) -> None:
    close_fn = getattr(runtime.notifier, "close", None)
    if not callable(close_fn):
        return
    try:
        close_fn()
    except Exception:
        # Shutdown must not fail on a resource that refuses to close.
        return


def maybe_prune_feed(
    *,
    runtime: ServiceRuntime,
    last_prune_date: str | None,
    current_date: str,
) -> str | None:
    settings = runtime.settings
    if settings.dry_run or current_date == last_prune_date:
        return last_prune_date

    try:
        feed_removed, triggers_removed = runtime.dispatcher.prune(
            days=settings.feed_retention_days
        )
    except Exception as exc:
        runtime.logger.error(
            log_event(
                events.EVENT_STORE_FEED_PRUNE_FAILED,
                date=current_date,
                error=redact_sensitive_text(exc),
            )
        )
        return last_prune_date

    runtime.logger.info(
        log_event(
            events.EVENT_STORE_FEED_PRUNED,
            date=current_date,
            days=settings.feed_retention_days,
            feed_removed=feed_removed,
            triggers_removed=triggers_removed,
        )
    )
    return current_date


def run_loop(
    runtime: ServiceRuntime,
    *,
    now_local_date_fn: Callable[[str], str] | None = None,
    sleep_fn: Callable[[float], None] = time.sleep,
) -> int:
    local_date = now_local_date_fn or (
        lambda timezone: datetime.now(ZoneInfo(timezone)).strftime("%Y-%m-%d")
    )
    last_prune_date: str | None = None
    try:
        while True:
            try:
                last_prune_date = maybe_prune_feed(
                    runtime=runtime,
                    last_prune_date=last_prune_date,
                    current_date=local_date(runtime.settings.timezone),
                )
                stats = runtime.dispatcher.run_once()
                runtime.logger.info(log_event(events.CYCLE_COMPLETE, **asdict(stats)))
                if runtime.settings.run_once:
                    runtime.logger.info(log_event(events.SHUTDOWN_RUN_ONCE_COMPLETE))
                    return 0
                if runtime.settings.cycle_interval_sec > 0:
                    sleep_fn(float(runtime.settings.cycle_interval_sec))
            except Exception as exc:
                if runtime.settings.run_once or _is_fatal_cycle_exception(exc):
                    runtime.logger.critical(
                        log_event(events.CYCLE_FATAL_ERROR, error=redact_sensitive_text(exc)),
                        exc_info=True,
                    )
                    return 1

                runtime.logger.error(
                    log_event(events.CYCLE_ITERATION_FAILED, error=redact_sensitive_text(exc)),
                    exc_info=True,
                )
                backoff_sec = max(runtime.settings.cycle_interval_sec, MIN_EXCEPTION_BACKOFF_SEC)
                sleep_fn(float(backoff_sec))
    except KeyboardInterrupt:
        runtime.logger.info(log_event(events.SHUTDOWN_INTERRUPT))
        return 0
    except Exception as exc:  # pragma: no cover
        runtime.logger.critical(
            log_event(events.SHUTDOWN_UNEXPECTED_ERROR, error=redact_sensitive_text(exc)),
            exc_info=True,
        )
        return 1
    finally:
        close_runtime_resources(runtime)
