from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field

from payload_guard.domain.classifier import NO_BODY_ERROR, classify
from payload_guard.domain.message_builder import build_valid_message
from payload_guard.domain.models import (
    ClassificationOutcome,
    ClassificationResult,
    DeletionTrigger,
    InvalidEventRecord,
)
from payload_guard.errors import SchedulerArmError, StoreWriteError
from payload_guard.logging_utils import log_event, redact_sensitive_text
from payload_guard.observability import events
from payload_guard.repositories.deletion_scheduler import DeletionScheduler
from payload_guard.repositories.event_store import EventStore
from payload_guard.services.notifier import NotificationError, Notifier
from payload_guard.settings import Settings

VALID_MESSAGE = "Valid JSON - email will be sent"
INVALID_MESSAGE = "Invalid JSON - will be stored for cleanup"
STORE_FAILURE_MESSAGE = "Failed to store invalid event"


@dataclass(frozen=True)
class IntakeResponse:
    status_code: int
    body: dict[str, object] = field(default_factory=dict)
    outcome: ClassificationOutcome | None = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def to_http(self) -> dict[str, object]:
        return {
            "statusCode": self.status_code,
            "body": json.dumps(self.body, ensure_ascii=False),
        }


def _body_text(raw_body: str | bytes | None) -> str:
    if isinstance(raw_body, bytes):
        return raw_body.decode("utf-8")
    return raw_body or ""


class IntakeValidator:
    def __init__(
        self,
        settings: Settings,
        event_store: EventStore,
        scheduler: DeletionScheduler,
        notifier: Notifier,
        logger: logging.Logger | None = None,
    ) -> None:
        self.settings = settings
        self.event_store = event_store
        self.scheduler = scheduler
        self.notifier = notifier
        self.logger = logger or logging.getLogger("payload_guard.intake")

    @staticmethod
    def classify(raw_body: str | bytes | None) -> ClassificationResult:
        return classify(raw_body)

    def handle(self, raw_body: str | bytes | None, now: int | None = None) -> IntakeResponse:
        result = self.classify(raw_body)
        if result.outcome is ClassificationOutcome.MALFORMED:
            self.logger.info(log_event(events.INTAKE_MALFORMED, error=result.error))
            message = (
                NO_BODY_ERROR
                if result.error == NO_BODY_ERROR
                else f"Invalid JSON format. Err: {result.error}"
            )
            return IntakeResponse(400, {"message": message}, outcome=result.outcome)

        if result.outcome is ClassificationOutcome.VALID:
            self._publish_valid(result.payload)
            return IntakeResponse(
                200,
                {"message": VALID_MESSAGE, "data": result.payload},
                outcome=result.outcome,
            )

        current = int(time.time()) if now is None else now
        try:
            self.store_invalid(_body_text(raw_body), now=current)
        except StoreWriteError as exc:
            self.logger.error(
                log_event(
                    events.INTAKE_STORE_WRITE_FAILED,
                    created_at=current,
                    error=redact_sensitive_text(exc.last_error or exc),
                )
            )
            return IntakeResponse(500, {"message": STORE_FAILURE_MESSAGE}, outcome=result.outcome)

        return IntakeResponse(
            200,
            {"message": INVALID_MESSAGE, "data": result.payload},
            outcome=result.outcome,
        )

    def _publish_valid(self, payload: object) -> None:
        try:
            self.notifier.publish(self.settings.notification_topic, build_valid_message(payload))
        except NotificationError as exc:
            self.logger.error(
                log_event(
                    events.NOTIFICATION_FAILED,
                    source="intake",
                    error=redact_sensitive_text(exc.last_error or exc),
                )
            )
            return
        self.logger.info(log_event(events.INTAKE_VALID))

    def store_invalid(self, payload_text: str, *, now: int) -> InvalidEventRecord:
        """Persist an invalid body verbatim and arm its deletion trigger.

        StoreWriteError propagates and no trigger is armed. A failed arm only
        leaves passive expiry as the deletion path, so it is logged and swallowed.
        """
        record = InvalidEventRecord.create(
            partition_key=self.settings.partition_key,
            created_at=now,
            payload=payload_text,
            retention_sec=self.settings.retention_sec,
        )
        self.event_store.put(record)
        self.logger.info(
            log_event(
                events.INTAKE_INVALID_STORED,
                partition_key=record.partition_key,
                created_at=record.created_at,
                expires_at=record.expires_at,
            )
        )

        trigger = DeletionTrigger.for_record(record, delay_sec=self.settings.trigger_delay_sec)
        try:
            self.scheduler.arm(trigger, now=now)
        except SchedulerArmError as exc:
            self.logger.warning(
                log_event(
                    events.INTAKE_SCHEDULER_ARM_FAILED,
                    name=trigger.name,
                    fire_at=trigger.fire_at,
                    conflict=exc.conflict,
                    error=redact_sensitive_text(exc.last_error or exc),
                )
            )
            return record

        self.logger.info(
            log_event(events.INTAKE_SCHEDULER_ARMED, name=trigger.name, fire_at=trigger.fire_at)
        )
        return record


def handle_validate_request(
    validator: IntakeValidator,
    raw_body: str | bytes | None,
    now: int | None = None,
) -> dict[str, object]:
    return validator.handle(raw_body, now=now).to_http()
