from __future__ import annotations

import json

from payload_guard.domain.models import RecordKey


def serialize_payload(payload: object) -> str:
    return json.dumps(payload, ensure_ascii=False)


def retention_seconds(key: RecordKey, now: int) -> int:
    return now - key.created_at


def build_valid_message(payload: object) -> str:
    return f"Valid JSON received: {serialize_payload(payload)}"


def build_removed_message(key: RecordKey, now: int) -> str:
    return (
        f"Item with PK={key.partition_key}, SK={key.created_at} was removed "
        f"(TTL or manual) after {retention_seconds(key, now)} seconds."
    )


def build_scheduler_deleted_message(key: RecordKey, now: int) -> str:
    return (
        f"Item with PK={key.partition_key} SK={key.created_at} was deleted "
        f"by scheduler after {retention_seconds(key, now)} seconds."
    )
