from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from payload_guard.domain.models import DEFAULT_PARTITION_KEY, GRACE_SECONDS, RETENTION_SECONDS

DEFAULT_DATABASE_FILE = "./data/payload_guard.db"
DEFAULT_NOTIFICATION_TOPIC = "invalid-events"
DEFAULT_BOT_NAME = "payload-guard"


class SettingsError(ValueError):
    """Raised when required environment settings are missing or malformed."""


def _strip_optional_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


def _load_dotenv_if_exists(env_file: Path) -> None:
    if not env_file.exists() or not env_file.is_file():
        return

    for raw_line in env_file.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):].strip()
        if "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            continue
        value = _strip_optional_quotes(value.strip())
        os.environ.setdefault(key, value)


def _parse_int_env(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise SettingsError(f"{name} must be an integer. Received: {raw}") from exc
    if value < minimum:
        raise SettingsError(f"{name} must be >= {minimum}. Received: {value}")
    return value


def _parse_bool_env(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    normalized = raw.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    raise SettingsError(
        f"{name} must be a boolean value "
        f"(true/false, 1/0, yes/no). Received: {raw}"
    )


def _parse_str_env(name: str, default: str) -> str:
    """Read a string env var, treating blank values as unset."""
    raw = os.getenv(name, "").strip()
    return raw if raw else default


def _parse_timezone_env(name: str, default: str) -> str:
    value = _parse_str_env(name, default)
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, KeyError, ValueError):
        raise SettingsError(f"{name} is not a valid IANA timezone name. Received: {value}")
    return value


def _validate_hook_url(url: str) -> None:
    parsed = urlparse(url)
    if parsed.scheme != "https" or not parsed.netloc:
        raise SettingsError("NOTIFIER_HOOK_URL must be a valid https URL with host.")


@dataclass(frozen=True)
class _LifecycleConfig:
    partition_key: str
    retention_sec: int
    grace_sec: int
    notification_topic: str


@dataclass(frozen=True)
class _NotifierConfig:
    notifier_hook_url: str
    bot_name: str
    notifier_timeout_sec: int
    notifier_connect_timeout_sec: int
    notifier_read_timeout_sec: int


@dataclass(frozen=True)
class _RuntimeConfig:
    database_file: Path
    cycle_interval_sec: int
    feed_batch_size: int
    trigger_batch_size: int
    expiry_sweep_lag_sec: int
    feed_retention_days: int
    timezone: str
    log_level: str
    dry_run: bool
    run_once: bool


def _parse_lifecycle_config() -> _LifecycleConfig:
    return _LifecycleConfig(
        partition_key=_parse_str_env("PARTITION_KEY", DEFAULT_PARTITION_KEY),
        retention_sec=_parse_int_env("RETENTION_SEC", RETENTION_SECONDS, minimum=1),
        grace_sec=_parse_int_env("GRACE_SEC", GRACE_SECONDS, minimum=0),
        notification_topic=_parse_str_env("NOTIFICATION_TOPIC", DEFAULT_NOTIFICATION_TOPIC),
    )


def _parse_notifier_config() -> _NotifierConfig:
    hook_url = os.getenv("NOTIFIER_HOOK_URL", "").strip()
    if hook_url:
        _validate_hook_url(hook_url)

    timeout_sec = _parse_int_env("NOTIFIER_TIMEOUT_SEC", 5, minimum=1)
    return _NotifierConfig(
        notifier_hook_url=hook_url,
        bot_name=_parse_str_env("BOT_NAME", DEFAULT_BOT_NAME),
        notifier_timeout_sec=timeout_sec,
        notifier_connect_timeout_sec=_parse_int_env(
            "NOTIFIER_CONNECT_TIMEOUT_SEC",
            timeout_sec,
            minimum=1,
        ),
        notifier_read_timeout_sec=_parse_int_env(
            "NOTIFIER_READ_TIMEOUT_SEC",
            timeout_sec,
            minimum=1,
        ),
    )


def _parse_runtime_config() -> _RuntimeConfig:
    return _RuntimeConfig(
        database_file=Path(_parse_str_env("DATABASE_FILE", DEFAULT_DATABASE_FILE)),
        cycle_interval_sec=_parse_int_env("CYCLE_INTERVAL_SEC", 10, minimum=0),
        feed_batch_size=_parse_int_env("FEED_BATCH_SIZE", 100, minimum=1),
        trigger_batch_size=_parse_int_env("TRIGGER_BATCH_SIZE", 100, minimum=1),
        expiry_sweep_lag_sec=_parse_int_env("EXPIRY_SWEEP_LAG_SEC", 0, minimum=0),
        feed_retention_days=_parse_int_env("FEED_RETENTION_DAYS", 7, minimum=0),
        timezone=_parse_timezone_env("TIMEZONE", "UTC"),
        log_level=_parse_str_env("LOG_LEVEL", "INFO").upper(),
        dry_run=_parse_bool_env("DRY_RUN", default=False),
        run_once=_parse_bool_env("RUN_ONCE", default=False),
    )


@dataclass(frozen=True)
class Settings:
    notifier_hook_url: str = ""
    notification_topic: str = DEFAULT_NOTIFICATION_TOPIC
    bot_name: str = DEFAULT_BOT_NAME
    partition_key: str = DEFAULT_PARTITION_KEY
    retention_sec: int = RETENTION_SECONDS
    grace_sec: int = GRACE_SECONDS
    database_file: Path = Path(DEFAULT_DATABASE_FILE)
    notifier_timeout_sec: int = 5
    notifier_connect_timeout_sec: int = 5
    notifier_read_timeout_sec: int = 5
    cycle_interval_sec: int = 10
    feed_batch_size: int = 100
    trigger_batch_size: int = 100
    expiry_sweep_lag_sec: int = 0
    feed_retention_days: int = 7
    timezone: str = "UTC"
    log_level: str = "INFO"
    dry_run: bool = False
    run_once: bool = False

    @property
    def notifications_enabled(self) -> bool:
        return bool(self.notifier_hook_url) and not self.dry_run

    @property
    def trigger_delay_sec(self) -> int:
        return self.retention_sec + self.grace_sec

    @classmethod
    def from_env(cls, env_file: str | Path | None = ".env") -> Settings:
        if env_file:
            _load_dotenv_if_exists(Path(env_file))

        lifecycle = _parse_lifecycle_config()
        notifier = _parse_notifier_config()
        runtime = _parse_runtime_config()

        return cls(
            notifier_hook_url=notifier.notifier_hook_url,
            notification_topic=lifecycle.notification_topic,
            bot_name=notifier.bot_name,
            partition_key=lifecycle.partition_key,
            retention_sec=lifecycle.retention_sec,
            grace_sec=lifecycle.grace_sec,
            database_file=runtime.database_file,
            notifier_timeout_sec=notifier.notifier_timeout_sec,
            notifier_connect_timeout_sec=notifier.notifier_connect_timeout_sec,
            notifier_read_timeout_sec=notifier.notifier_read_timeout_sec,
            cycle_interval_sec=runtime.cycle_interval_sec,
            feed_batch_size=runtime.feed_batch_size,
            trigger_batch_size=runtime.trigger_batch_size,
            expiry_sweep_lag_sec=runtime.expiry_sweep_lag_sec,
            feed_retention_days=runtime.feed_retention_days,
            timezone=runtime.timezone,
            log_level=runtime.log_level,
            dry_run=runtime.dry_run,
            run_once=runtime.run_once,
        )
