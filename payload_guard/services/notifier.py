from __future__ import annotations

import logging
from typing import Protocol

import requests

from payload_guard.logging_utils import log_event, redact_sensitive_text
from payload_guard.observability import events


class NotificationError(RuntimeError):
    """Raised when message delivery fails."""

    def __init__(
        self,
        message: str,
        *,
        topic: str | None = None,
        last_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.topic = topic
        self.last_error = last_error


class Notifier(Protocol):
    def publish(self, topic: str, message: str) -> None:
        ...


class WebhookNotifier:
    """Publishes lifecycle messages to an incoming-webhook endpoint.

    Each publish makes a single attempt and only the HTTP status decides
    success. Redelivery is left to the caller's hosting layer, so failures
    surface as NotificationError right away.
    """

    def __init__(
        self,
        hook_url: str,
        bot_name: str,
        timeout_sec: int = 5,
        connect_timeout_sec: int | None = None,
        read_timeout_sec: int | None = None,
        session: requests.Session | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.hook_url = hook_url
        self.bot_name = bot_name
        self.timeout_sec = timeout_sec
        self.connect_timeout_sec = connect_timeout_sec or timeout_sec
        self.read_timeout_sec = read_timeout_sec or timeout_sec
        self.session = session or requests.Session()
        self.logger = logger or logging.getLogger("payload_guard.notifier")

    def close(self) -> None:
        self.session.close()

    def publish(self, topic: str, message: str) -> None:
        payload: dict[str, object] = {
            "botName": self.bot_name,
            "topic": topic,
            "text": message,
        }
        try:
            response = self.session.post(
                self.hook_url,
                json=payload,
                timeout=(self.connect_timeout_sec, self.read_timeout_sec),
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise NotificationError(
                f"webhook publish failed: {redact_sensitive_text(exc)}",
                topic=topic,
                last_error=exc,
            ) from exc

        self.logger.debug(log_event(events.NOTIFICATION_SENT, topic=topic))


class LoggingNotifier:
    """Logs messages instead of delivering them (dry-run mode)."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or logging.getLogger("payload_guard.notifier")

    def close(self) -> None:
        return None

    def publish(self, topic: str, message: str) -> None:
        self.logger.info(log_event(events.NOTIFICATION_DRY_RUN, topic=topic, text=message))
