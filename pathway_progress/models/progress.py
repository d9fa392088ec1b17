from __future__ import annotations

from dataclasses import dataclass
from typing import Literal
from uuid import UUID

LifecycleStatus = Literal["locked", "not_started", "in_progress", "complete"]
RollupStatus = Literal["not_started", "in_progress", "complete"]


@dataclass(frozen=True, slots=True)
class ActivityState:
    """Per-(enrollment, activity) lifecycle record.

    Created lazily the first time the unlock resolver evaluates the
    activity.  Once status is "complete" it never changes again.
    """

    enrollment_id: UUID
    activity_id: UUID
    status: LifecycleStatus = "locked"
    completion_percent: int = 0
    completed_at: int | None = None
    last_computed_at: int = 0

    @property
    def is_complete(self) -> bool:
        return self.status == "complete"


@dataclass(frozen=True, slots=True)
class CompletionRollup:
    """Derived cache, always reconstructible from ActivityState rows."""

    enrollment_id: UUID
    pathway_id: UUID | None
    rollup_percent: float
    rollup_status: RollupStatus
    computed_at: int
