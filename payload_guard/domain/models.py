from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

DEFAULT_PARTITION_KEY = "InvalidEvents"
RETENTION_SECONDS = 24 * 3600
GRACE_SECONDS = 30 * 60
TRIGGER_NAME_PREFIX = "delete-"


@dataclass(frozen=True)
class RecordKey:
    partition_key: str
    created_at: int


@dataclass(frozen=True)
class InvalidEventRecord:
    partition_key: str
    created_at: int
    payload: str
    expires_at: int

    @classmethod
    def create(
        cls,
        *,
        partition_key: str,
        created_at: int,
        payload: str,
        retention_sec: int = RETENTION_SECONDS,
    ) -> InvalidEventRecord:
        return cls(
            partition_key=partition_key,
            created_at=created_at,
            payload=payload,
            expires_at=created_at + retention_sec,
        )

    @property
    def key(self) -> RecordKey:
        return RecordKey(partition_key=self.partition_key, created_at=self.created_at)


class RemovalReason(str, Enum):
    EXPIRED = "expired"
    EXPLICIT = "explicit"


@dataclass(frozen=True)
class RemovalEvent:
    seq: int
    key: RecordKey
    reason: RemovalReason
    removed_at: int


@dataclass(frozen=True)
class DeletionTrigger:
    name: str
    fire_at: int
    target: RecordKey

    @classmethod
    def for_record(
        cls,
        record: InvalidEventRecord,
        *,
        delay_sec: int = RETENTION_SECONDS + GRACE_SECONDS,
    ) -> DeletionTrigger:
        return cls(
            name=trigger_name_for(record.created_at),
            fire_at=record.created_at + delay_sec,
            target=record.key,
        )


def trigger_name_for(created_at: int) -> str:
    return f"{TRIGGER_NAME_PREFIX}{created_at}"


class ClassificationOutcome(str, Enum):
    MALFORMED = "malformed"
    VALID = "valid"
    INVALID = "invalid"


@dataclass(frozen=True)
class ClassificationResult:
    outcome: ClassificationOutcome
    payload: Any = None
    error: str | None = None

    @property
    def is_malformed(self) -> bool:
        return self.outcome is ClassificationOutcome.MALFORMED


class ScheduledDeletionOutcome(str, Enum):
    DELETED = "deleted"
    ALREADY_GONE = "already_gone"
