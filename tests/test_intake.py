from __future__ import annotations

import json

import pytest

from payload_guard.domain.models import ClassificationOutcome, RecordKey
from payload_guard.usecases.intake import (
    INVALID_MESSAGE,
    STORE_FAILURE_MESSAGE,
    VALID_MESSAGE,
    IntakeValidator,
    handle_validate_request,
)
from tests.main_test_harness import (
    FakeNotifier,
    InMemoryEventStore,
    InMemoryScheduler,
    capturing_logger,
    make_settings,
)

NOW = 1_700_000_000


def _validator(
    tmp_path,
    *,
    store: InMemoryEventStore | None = None,
    scheduler: InMemoryScheduler | None = None,
    notifier: FakeNotifier | None = None,
):
    logger, handler = capturing_logger("test.intake")
    validator = IntakeValidator(
        settings=make_settings(tmp_path),
        event_store=store or InMemoryEventStore(),
        scheduler=scheduler or InMemoryScheduler(),
        notifier=notifier or FakeNotifier(),
        logger=logger,
    )
    return validator, handler


@pytest.mark.parametrize("raw_body", ["{bad", "", None, "null", "false", "0", "[" * 100_000])
def test_malformed_body_returns_400_without_side_effects(tmp_path, raw_body) -> None:
    store = InMemoryEventStore()
    scheduler = InMemoryScheduler()
    notifier = FakeNotifier()
    validator, _ = _validator(tmp_path, store=store, scheduler=scheduler, notifier=notifier)

    response = validator.handle(raw_body, now=NOW)

    assert response.status_code == 400
    assert response.outcome is ClassificationOutcome.MALFORMED
    assert store.put_calls == 0
    assert scheduler.triggers == {}
    assert notifier.attempts == 0


def test_malformed_json_message_includes_parse_error(tmp_path) -> None:
    validator, _ = _validator(tmp_path)

    response = validator.handle("{bad", now=NOW)

    assert str(response.body["message"]).startswith("Invalid JSON format. Err: ")


def test_falsy_json_body_answers_no_body(tmp_path) -> None:
    validator, _ = _validator(tmp_path)

    response = validator.handle("false", now=NOW)

    assert response.status_code == 400
    assert response.body == {"message": "No body"}


def test_deeply_nested_body_is_rejected_as_malformed(tmp_path) -> None:
    validator, _ = _validator(tmp_path)

    response = validator.handle("[" * 100_000, now=NOW)

    assert response.status_code == 400
    assert str(response.body["message"]).startswith("Invalid JSON format. Err: ")


def test_valid_payload_publishes_once_and_stores_nothing(tmp_path) -> None:
    store = InMemoryEventStore()
    notifier = FakeNotifier()
    validator, _ = _validator(tmp_path, store=store, notifier=notifier)

    response = validator.handle('{"valid": true, "x": 1}', now=NOW)

    assert response.status_code == 200
    assert response.body == {"message": VALID_MESSAGE, "data": {"valid": True, "x": 1}}
    assert len(notifier.published) == 1
    topic, message = notifier.published[0]
    assert topic == "test-topic"
    assert 'valid": true' in message
    assert '"x": 1' in message
    assert store.put_calls == 0


def test_valid_payload_notifier_failure_is_not_fatal(tmp_path) -> None:
    notifier = FakeNotifier(fail_times=1)
    validator, handler = _validator(tmp_path, notifier=notifier)

    response = validator.handle('{"valid": true}', now=NOW)

    assert response.status_code == 200
    assert any('"event": "notification.failed"' in message for message in handler.messages)


def test_invalid_payload_stores_record_and_arms_trigger(tmp_path) -> None:
    store = InMemoryEventStore()
    scheduler = InMemoryScheduler()
    notifier = FakeNotifier()
    validator, _ = _validator(tmp_path, store=store, scheduler=scheduler, notifier=notifier)

    response = validator.handle('{"valid": false}', now=NOW)

    assert response.status_code == 200
    assert response.body == {"message": INVALID_MESSAGE, "data": {"valid": False}}
    key = RecordKey("InvalidEvents", NOW)
    record = store.records[key]
    assert record.payload == '{"valid": false}'
    assert record.expires_at == record.created_at + 86400
    trigger = scheduler.triggers[f"delete-{NOW}"]
    assert trigger.fire_at == record.created_at + 88200
    assert trigger.target == key
    assert notifier.attempts == 0


def test_invalid_payload_stores_bytes_body_verbatim(tmp_path) -> None:
    store = InMemoryEventStore()
    validator, _ = _validator(tmp_path, store=store)

    validator.handle(b'{"x":  1}', now=NOW)

    assert store.records[RecordKey("InvalidEvents", NOW)].payload == '{"x":  1}'


def test_store_failure_returns_500_and_arms_nothing(tmp_path) -> None:
    store = InMemoryEventStore(fail_put=True)
    scheduler = InMemoryScheduler()
    validator, handler = _validator(tmp_path, store=store, scheduler=scheduler)

    response = validator.handle('{"valid": false}', now=NOW)

    assert response.status_code == 500
    assert response.body == {"message": STORE_FAILURE_MESSAGE}
    assert scheduler.triggers == {}
    assert any('"event": "intake.store_write_failed"' in message for message in handler.messages)


def test_scheduler_arm_failure_is_logged_not_fatal(tmp_path) -> None:
    store = InMemoryEventStore()
    scheduler = InMemoryScheduler(fail_arm=True)
    validator, handler = _validator(tmp_path, store=store, scheduler=scheduler)

    response = validator.handle('{"valid": false}', now=NOW)

    assert response.status_code == 200
    assert RecordKey("InvalidEvents", NOW) in store.records
    assert any(
        '"event": "intake.scheduler_arm_failed"' in message for message in handler.messages
    )


def test_same_second_submission_overwrites_and_keeps_single_trigger(tmp_path) -> None:
    store = InMemoryEventStore()
    scheduler = InMemoryScheduler()
    validator, handler = _validator(tmp_path, store=store, scheduler=scheduler)

    first = validator.handle('{"n": 1}', now=NOW)
    second = validator.handle('{"n": 2}', now=NOW)

    assert first.status_code == second.status_code == 200
    assert store.records[RecordKey("InvalidEvents", NOW)].payload == '{"n": 2}'
    assert list(scheduler.triggers) == [f"delete-{NOW}"]
    assert any('"conflict": true' in message for message in handler.messages)


def test_handle_validate_request_renders_http_response(tmp_path) -> None:
    validator, _ = _validator(tmp_path)

    response = handle_validate_request(validator, '{"valid": true}', now=NOW)

    assert response["statusCode"] == 200
    assert json.loads(str(response["body"])) == {
        "message": VALID_MESSAGE,
        "data": {"valid": True},
    }
