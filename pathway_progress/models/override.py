from __future__ import annotations

from dataclasses import dataclass
from typing import Literal
from uuid import UUID, uuid4

OverrideType = Literal["exempt", "manual_unlock", "grace_unlock"]
OVERRIDE_TYPES: tuple[str, ...] = ("exempt", "manual_unlock", "grace_unlock")


@dataclass(frozen=True, slots=True)
class ActivityOverride:
    """Administrative exception for one (enrollment, activity).

    At most one row per key has closed_at=None; granting a new override
    closes the previous one instead of stacking.
    """

    id: UUID
    enrollment_id: UUID
    activity_id: UUID
    type: OverrideType
    created_at: int
    applied_by: UUID | None = None
    reason: str | None = None
    expires_at: int | None = None  # grace_unlock only
    closed_at: int | None = None

    @property
    def is_active(self) -> bool:
        return self.closed_at is None

    @staticmethod
    def new(
        *,
        enrollment_id: UUID,
        activity_id: UUID,
        type: OverrideType,
        created_at: int,
        applied_by: UUID | None = None,
        reason: str | None = None,
        expires_at: int | None = None,
    ) -> ActivityOverride:
        return ActivityOverride(
            id=uuid4(),
            enrollment_id=enrollment_id,
            activity_id=activity_id,
            type=type,
            created_at=created_at,
            applied_by=applied_by,
            reason=reason,
            expires_at=expires_at,
        )
