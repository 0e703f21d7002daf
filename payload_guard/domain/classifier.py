from __future__ import annotations

import json

from payload_guard.domain.models import ClassificationOutcome, ClassificationResult
from payload_guard.errors import MalformedInputError

NO_BODY_ERROR = "No body"


def parse_body(raw_body: str | bytes | None) -> object:
    """Decode a request body into a JSON value.

    Raises MalformedInputError for a missing body, undecodable bytes, invalid
    or too deeply nested JSON, or a falsy JSON scalar (``null``, ``false``,
    ``0``, ``""``). Empty objects and arrays are accepted.
    """
    if raw_body is None:
        raise MalformedInputError(NO_BODY_ERROR)
    if isinstance(raw_body, bytes):
        try:
            raw_body = raw_body.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedInputError(f"body is not valid UTF-8: {exc}") from exc
    if not raw_body.strip():
        raise MalformedInputError(NO_BODY_ERROR)

    try:
        payload = json.loads(raw_body)
    except (json.JSONDecodeError, RecursionError) as exc:
        raise MalformedInputError(str(exc)) from exc
    if not payload and not isinstance(payload, (dict, list)):
        raise MalformedInputError(NO_BODY_ERROR)
    return payload


def is_marked_valid(payload: object) -> bool:
    # Only a JSON boolean true counts; 1 or "true" do not.
    return isinstance(payload, dict) and payload.get("valid") is True


def classify(raw_body: str | bytes | None) -> ClassificationResult:
    try:
        payload = parse_body(raw_body)
    except MalformedInputError as exc:
        return ClassificationResult(outcome=ClassificationOutcome.MALFORMED, error=str(exc))

    if is_marked_valid(payload):
        return ClassificationResult(outcome=ClassificationOutcome.VALID, payload=payload)
    return ClassificationResult(outcome=ClassificationOutcome.INVALID, payload=payload)
