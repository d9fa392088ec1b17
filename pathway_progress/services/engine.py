"""Progression engine: recomputation protocol and read interface.

One recompute of an enrollment, under its lock:

  1. read the assigned pathway's active activities and every state row
  2. run the unlock resolver over all of them, prerequisites first
     (one completion can unlock several dependents at once)
  3. recompute the rollup from a fresh read, after step 2 has settled

Completion signals enter through record_progress(); they write the
activity's state and publish StateChanged, which this engine handles by
recomputing synchronously.

Reads recompute first when a time boundary (a drip release or a grace
override expiry) has passed since the last recompute.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass, replace
from typing import Literal
from uuid import UUID

from pathway_progress.core.clock import Clock, utc_now
from pathway_progress.core.errors import (
    NotFoundError,
    SignalValidationError,
    StateConflictError,
)
from pathway_progress.core.metrics import (
    RECOMPUTATIONS,
    RECOMPUTE_DURATION,
    STATE_CONFLICTS,
)
from pathway_progress.models.curriculum import Activity
from pathway_progress.models.progress import (
    ActivityState,
    CompletionRollup,
    LifecycleStatus,
)
from pathway_progress.repos.curriculum_repo import CurriculumRepo
from pathway_progress.repos.state_store import StateStore
from pathway_progress.services.assignment import resolve_assigned_pathway
from pathway_progress.services.config_validation import (
    prerequisite_graph,
    topological_order,
)
from pathway_progress.services.drip import release_time
from pathway_progress.services.events import StateChangeBus, StateChanged, Trigger
from pathway_progress.services.locks import EnrollmentLocks
from pathway_progress.services.prerequisites import GroupEvaluation
from pathway_progress.services.rollup import RollupCalculator
from pathway_progress.services.unlock import UnlockResolver

logger = logging.getLogger(__name__)

LockReason = Literal["prerequisites", "drip", "none", "complete"]


@dataclass(frozen=True, slots=True)
class ActivityProgress:
    activity_id: UUID
    title: str
    type: str
    ordering_hint: int
    weight: float
    status: LifecycleStatus
    completion_percent: int
    completed_at: int | None


@dataclass(frozen=True, slots=True)
class RecomputeResult:
    enrollment_id: UUID
    pathway_id: UUID | None
    transitions: tuple[ActivityState, ...]
    rollup: CompletionRollup


@dataclass(frozen=True, slots=True)
class SignalResult:
    applied: bool
    state: ActivityState | None
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class LockExplanation:
    activity_id: UUID
    status: LifecycleStatus
    reason: LockReason
    unmet_groups: tuple[GroupEvaluation, ...] = ()
    next_available_at: int | None = None
    override_type: str | None = None
    override_expires_at: int | None = None


class ProgressionEngine:
    def __init__(
        self,
        curriculum: CurriculumRepo,
        store: StateStore,
        bus: StateChangeBus,
        locks: EnrollmentLocks,
        *,
        clock: Clock = utc_now,
        precision: int = 2,
    ) -> None:
        self._curriculum = curriculum
        self._store = store
        self._locks = locks
        self._clock = clock
        self._unlock = UnlockResolver(curriculum, store)
        self._rollup = RollupCalculator(curriculum, store, precision)
        bus.subscribe(self._on_state_changed)
        self._bus = bus

    # ------------------------------------------------------------------
    # Recomputation
    # ------------------------------------------------------------------

    def _on_state_changed(self, event: StateChanged) -> None:
        self.recompute(event.enrollment_id, event.trigger)

    def _require_enrollment(self, enrollment_id: UUID) -> None:
        if self._curriculum.get_enrollment(enrollment_id) is None:
            raise NotFoundError("enrollment", enrollment_id)

    def assigned_pathway_id(self, enrollment_id: UUID) -> UUID | None:
        return resolve_assigned_pathway(self._curriculum.list_assignments(enrollment_id))

    def _assigned_activities(self, enrollment_id: UUID) -> tuple[UUID | None, list[Activity]]:
        pathway_id = self.assigned_pathway_id(enrollment_id)
        if pathway_id is None:
            return None, []
        return pathway_id, self._curriculum.list_activities(pathway_id)

    def recompute(self, enrollment_id: UUID, trigger: Trigger = "manual") -> RecomputeResult:
        self._require_enrollment(enrollment_id)
        start = time.monotonic()

        with self._locks.hold(enrollment_id):
            now = self._clock()
            pathway_id, activities = self._assigned_activities(enrollment_id)
            by_id = {a.id: a for a in activities}
            states = {s.activity_id: s for s in self._store.list_states(enrollment_id)}
            graph = prerequisite_graph(
                {a.id: self._curriculum.list_prerequisite_groups(a.id) for a in activities}
            )

            transitions: list[ActivityState] = []
            for activity_id in topological_order(by_id, graph):
                written = self._unlock.resolve(
                    enrollment_id, by_id[activity_id], states, now
                )
                if written is not None:
                    states[activity_id] = written
                    transitions.append(written)

            rollup = self._rollup.recompute(enrollment_id, pathway_id, now)

        RECOMPUTATIONS.labels(trigger=trigger).inc()
        RECOMPUTE_DURATION.observe(time.monotonic() - start)
        logger.info(
            "Recomputed enrollment trigger=%s transitions=%d rollup=%.2f%% (%s)",
            trigger,
            len(transitions),
            rollup.rollup_percent,
            rollup.rollup_status,
            extra={"enrollment_id": str(enrollment_id)},
        )
        return RecomputeResult(
            enrollment_id=enrollment_id,
            pathway_id=pathway_id,
            transitions=tuple(transitions),
            rollup=rollup,
        )

    def recompute_all(
        self, enrollment_ids: Iterable[UUID] | None = None
    ) -> list[RecomputeResult]:
        """Re-derive every state and rollup from scratch (backfill)."""
        if enrollment_ids is None:
            enrollment_ids = [e.id for e in self._curriculum.list_enrollments()]
        return [self.recompute(eid, "backfill") for eid in enrollment_ids]

    # ------------------------------------------------------------------
    # Completion signals
    # ------------------------------------------------------------------

    def record_progress(
        self,
        enrollment_id: UUID,
        activity_id: UUID,
        percent: int,
        *,
        complete: bool = False,
    ) -> SignalResult:
        """Apply an external progress/completion signal, then recompute.

        Unknown ids raise NotFoundError.  Conflicting signals (activity
        outside the assigned pathway, or a regression of a complete
        activity) are logged and reported as not applied.
        """
        self._require_enrollment(enrollment_id)
        activity = self._curriculum.get_activity(activity_id)
        if activity is None:
            raise NotFoundError("activity", activity_id)
        if not 0 <= percent <= 100:
            raise SignalValidationError(f"percent must be within 0..100 (got {percent})")
        complete = complete or percent == 100

        with self._locks.hold(enrollment_id):
            try:
                state = self._apply_signal(enrollment_id, activity, percent, complete)
            except StateConflictError as exc:
                STATE_CONFLICTS.labels(reason=exc.reason).inc()
                logger.warning(
                    "Rejected progress signal: %s",
                    exc,
                    extra={
                        "enrollment_id": str(enrollment_id),
                        "activity_id": str(activity_id),
                    },
                )
                return SignalResult(
                    applied=False,
                    state=self._store.get_state(enrollment_id, activity_id),
                    reason=exc.reason,
                )
            if state is None:
                # Duplicate completion of a complete activity
                return SignalResult(
                    applied=True,
                    state=self._store.get_state(enrollment_id, activity_id),
                )
            self._bus.publish(StateChanged(enrollment_id, activity_id, "signal"))

        return SignalResult(
            applied=True, state=self._store.get_state(enrollment_id, activity_id)
        )

    def _apply_signal(
        self, enrollment_id: UUID, activity: Activity, percent: int, complete: bool
    ) -> ActivityState | None:
        if not activity.active or activity.pathway_id != self.assigned_pathway_id(
            enrollment_id
        ):
            raise StateConflictError(
                "not_in_pathway",
                f"activity {activity.id} is not in the enrollment's assigned pathway",
            )

        now = self._clock()
        current = self._store.get_state(enrollment_id, activity.id)
        if current is not None and current.is_complete and complete:
            return None
        base = current or ActivityState(enrollment_id=enrollment_id, activity_id=activity.id)

        status: LifecycleStatus
        if complete:
            status = "complete"
        elif base.status == "locked":
            # Percent is kept; the activity stays locked until its gates open
            status = "locked"
        else:
            status = "in_progress" if percent > 0 else "not_started"

        updated = replace(
            base,
            status=status,
            completion_percent=100 if complete else percent,
            completed_at=now if complete else None,
            last_computed_at=now,
        )
        # The store refuses to move a complete row backward
        self._store.upsert_state(updated)
        return updated

    # ------------------------------------------------------------------
    # Read interface
    # ------------------------------------------------------------------

    def _time_boundaries(self, enrollment_id: UUID) -> list[int]:
        _, activities = self._assigned_activities(enrollment_id)
        states = {s.activity_id: s for s in self._store.list_states(enrollment_id)}
        boundaries = []
        for a in activities:
            rule = self._curriculum.get_drip_rule(a.id)
            anchor_id = getattr(rule, "anchor_activity_id", None)
            released = release_time(rule, states.get(anchor_id) if anchor_id else None)
            if released is not None:
                boundaries.append(released)
            override = self._store.get_active_override(enrollment_id, a.id)
            if override is not None and override.expires_at is not None:
                boundaries.append(override.expires_at)
        return boundaries

    def _refresh_if_due(self, enrollment_id: UUID) -> CompletionRollup:
        """Recompute when the clock crossed a gate boundary since the last run."""
        cached = self._store.get_rollup(enrollment_id)
        now = self._clock()
        if cached is not None and not any(
            cached.computed_at < b <= now for b in self._time_boundaries(enrollment_id)
        ):
            return cached
        return self.recompute(enrollment_id, "clock").rollup

    def list_progress(self, enrollment_id: UUID) -> list[ActivityProgress]:
        self._require_enrollment(enrollment_id)
        self._refresh_if_due(enrollment_id)
        _, activities = self._assigned_activities(enrollment_id)
        states = {s.activity_id: s for s in self._store.list_states(enrollment_id)}
        result = []
        for a in activities:
            s = states.get(a.id)
            result.append(
                ActivityProgress(
                    activity_id=a.id,
                    title=a.title,
                    type=a.type,
                    ordering_hint=a.ordering_hint,
                    weight=a.weight,
                    status=s.status if s is not None else "locked",
                    completion_percent=s.completion_percent if s is not None else 0,
                    completed_at=s.completed_at if s is not None else None,
                )
            )
        return result

    def get_rollup(self, enrollment_id: UUID) -> CompletionRollup:
        """Cached rollup, recomputed first if missing or behind the clock."""
        self._require_enrollment(enrollment_id)
        return self._refresh_if_due(enrollment_id)

    def explain_lock(self, enrollment_id: UUID, activity_id: UUID) -> LockExplanation:
        self._require_enrollment(enrollment_id)
        self._refresh_if_due(enrollment_id)
        _, activities = self._assigned_activities(enrollment_id)
        activity = next((a for a in activities if a.id == activity_id), None)
        if activity is None:
            raise NotFoundError("activity in assigned pathway", activity_id)

        states = {s.activity_id: s for s in self._store.list_states(enrollment_id)}
        current = states.get(activity_id)
        if current is not None and current.is_complete:
            return LockExplanation(activity_id=activity_id, status="complete", reason="complete")

        now = self._clock()
        decision = self._unlock.evaluate(enrollment_id, activity, states, now)
        override = decision.override.override
        override_type = override.type if override is not None else None
        override_expires_at = override.expires_at if override is not None else None

        if current is not None:
            status = current.status
        else:
            status = "not_started" if decision.unlocked else "locked"

        if decision.unlocked:
            return LockExplanation(
                activity_id=activity_id,
                status=status,
                reason="none",
                override_type=override_type,
                override_expires_at=override_expires_at,
            )

        reason: LockReason = (
            "prerequisites" if not decision.prerequisites.satisfied else "drip"
        )
        return LockExplanation(
            activity_id=activity_id,
            status=status,
            reason=reason,
            unmet_groups=decision.prerequisites.unmet_groups,
            next_available_at=(
                decision.drip.next_available_at if not decision.drip.satisfied else None
            ),
            override_type=override_type,
            override_expires_at=override_expires_at,
        )
