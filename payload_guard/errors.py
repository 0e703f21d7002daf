from __future__ import annotations

from payload_guard.domain.models import DeletionTrigger, RecordKey


class MalformedInputError(ValueError):
    """Raised when a request body cannot be parsed as a JSON document."""


class StoreWriteError(RuntimeError):
    """Raised when the event store fails to persist a record."""

    def __init__(
        self,
        message: str,
        *,
        key: RecordKey | None = None,
        last_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.key = key
        self.last_error = last_error


class SchedulerArmError(RuntimeError):
    """Raised when a deletion trigger cannot be armed."""

    def __init__(
        self,
        message: str,
        *,
        trigger: DeletionTrigger | None = None,
        conflict: bool = False,
        last_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.trigger = trigger
        self.conflict = conflict
        self.last_error = last_error
