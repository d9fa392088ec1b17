"""Administrative overrides: resolution and management.

Resolution (pure):
  exempt         -> force_unlocked_permanent
  manual_unlock  -> force_unlocked_permanent (ignores later gating changes)
  grace_unlock   -> force_unlocked_until(expires_at)
  no override    -> defer to computed gating

Management: granting supersedes (closes) the active override for the
same (enrollment, activity); revoking closes it.  Revocation is the one
administrative re-lock path, and it applies to every override type.
Both publish StateChanged so the engine recomputes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal
from uuid import UUID

from pathway_progress.core.clock import Clock, utc_now
from pathway_progress.core.errors import NotFoundError
from pathway_progress.core.metrics import OVERRIDES_APPLIED
from pathway_progress.models.override import ActivityOverride, OverrideType
from pathway_progress.repos.curriculum_repo import CurriculumRepo
from pathway_progress.repos.state_store import StateStore
from pathway_progress.services.config_validation import validate_override
from pathway_progress.services.events import StateChangeBus, StateChanged

logger = logging.getLogger(__name__)

DecisionKind = Literal["force_unlocked_permanent", "force_unlocked_until", "defer"]


@dataclass(frozen=True, slots=True)
class OverrideDecision:
    kind: DecisionKind
    expires_at: int | None = None
    override: ActivityOverride | None = None

    def forces_unlock(self, now: int) -> bool:
        if self.kind == "force_unlocked_permanent":
            return True
        if self.kind == "force_unlocked_until":
            return self.expires_at is not None and now < self.expires_at
        return False


DEFER = OverrideDecision(kind="defer")


def resolve_override(override: ActivityOverride | None) -> OverrideDecision:
    if override is None or not override.is_active:
        return DEFER
    if override.type in ("exempt", "manual_unlock"):
        return OverrideDecision(kind="force_unlocked_permanent", override=override)
    if override.type == "grace_unlock":
        return OverrideDecision(
            kind="force_unlocked_until",
            expires_at=override.expires_at,
            override=override,
        )
    logger.warning("Unknown override type %r on override %s", override.type, override.id)
    return DEFER


class OverrideService:
    def __init__(
        self,
        curriculum: CurriculumRepo,
        store: StateStore,
        bus: StateChangeBus,
        clock: Clock = utc_now,
    ) -> None:
        self._curriculum = curriculum
        self._store = store
        self._bus = bus
        self._clock = clock

    def _require(self, enrollment_id: UUID, activity_id: UUID) -> None:
        if self._curriculum.get_enrollment(enrollment_id) is None:
            raise NotFoundError("enrollment", enrollment_id)
        if self._curriculum.get_activity(activity_id) is None:
            raise NotFoundError("activity", activity_id)

    def grant(
        self,
        enrollment_id: UUID,
        activity_id: UUID,
        type: OverrideType,
        *,
        applied_by: UUID | None = None,
        reason: str | None = None,
        expires_at: int | None = None,
    ) -> ActivityOverride:
        self._require(enrollment_id, activity_id)
        now = self._clock()
        validate_override(type, expires_at, now)

        override = ActivityOverride.new(
            enrollment_id=enrollment_id,
            activity_id=activity_id,
            type=type,
            created_at=now,
            applied_by=applied_by,
            reason=reason,
            expires_at=expires_at,
        )
        superseded = self._store.add_override(override)
        OVERRIDES_APPLIED.labels(override_type=type).inc()
        logger.info(
            "Override %s granted on activity %s%s",
            type,
            activity_id,
            f" (superseding {superseded.type})" if superseded else "",
            extra={"enrollment_id": str(enrollment_id), "activity_id": str(activity_id)},
        )
        self._bus.publish(StateChanged(enrollment_id, activity_id, "override"))
        return override

    def revoke(
        self,
        enrollment_id: UUID,
        activity_id: UUID,
        *,
        revoked_by: UUID | None = None,
    ) -> ActivityOverride | None:
        """Close the active override, if any, and recompute."""
        self._require(enrollment_id, activity_id)
        closed = self._store.close_override(enrollment_id, activity_id, self._clock())
        if closed is None:
            return None
        logger.info(
            "Override %s revoked on activity %s by %s",
            closed.type,
            activity_id,
            revoked_by or "system",
            extra={"enrollment_id": str(enrollment_id), "activity_id": str(activity_id)},
        )
        self._bus.publish(StateChanged(enrollment_id, activity_id, "override"))
        return closed

    def history(self, enrollment_id: UUID, activity_id: UUID) -> list[ActivityOverride]:
        self._require(enrollment_id, activity_id)
        return self._store.list_overrides(enrollment_id, activity_id)
