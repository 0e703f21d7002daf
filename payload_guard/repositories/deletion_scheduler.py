from __future__ import annotations

from typing import Protocol

from payload_guard.domain.models import DeletionTrigger


class DeletionScheduler(Protocol):
    def arm(self, trigger: DeletionTrigger, *, now: int | None = None) -> None:
        ...

    def claim_due(self, *, now: int | None = None, limit: int = 100) -> list[DeletionTrigger]:
        ...

    def release(self, name: str) -> bool:
        ...

    def prune_fired(
        self,
        *,
        days: int = 7,
        dry_run: bool = False,
        now: int | None = None,
    ) -> int:
        ...

    @property
    def pending_count(self) -> int:
        ...
