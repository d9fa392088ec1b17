"""Unlock resolver: composes prerequisites, drip and overrides into a
lifecycle status for one (enrollment, activity).

    locked -> not_started -> in_progress -> complete

The resolver only decides whether the activity may be entered.  Moves
into in_progress / complete come from completion signals.  The one
backward move it makes is not_started|in_progress -> locked, when the
gates no longer hold (typically an expired grace_unlock).  A complete
activity is never touched.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, replace
from uuid import UUID

from pathway_progress.core.metrics import ACTIVITY_TRANSITIONS
from pathway_progress.models.curriculum import Activity, DelayAfterActivityDrip
from pathway_progress.models.progress import ActivityState, LifecycleStatus
from pathway_progress.repos.curriculum_repo import CurriculumRepo
from pathway_progress.repos.state_store import StateStore
from pathway_progress.services.drip import DripEvaluation, evaluate_drip
from pathway_progress.services.overrides import OverrideDecision, resolve_override
from pathway_progress.services.prerequisites import (
    PrerequisiteResult,
    evaluate_prerequisites,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class GateDecision:
    unlocked: bool
    prerequisites: PrerequisiteResult
    drip: DripEvaluation
    override: OverrideDecision


def combine_gates(
    prerequisites: PrerequisiteResult,
    drip: DripEvaluation,
    override: OverrideDecision,
    now: int,
) -> bool:
    """Most restrictive wins unless an override forces the issue."""
    if override.forces_unlock(now):
        return True
    return prerequisites.satisfied and drip.satisfied


def next_status(current: ActivityState | None, unlocked: bool) -> LifecycleStatus:
    if current is None:
        return "not_started" if unlocked else "locked"
    if current.status == "complete":
        return "complete"
    if unlocked:
        if current.status == "locked":
            # Progress recorded while locked resumes as in_progress
            return "in_progress" if current.completion_percent > 0 else "not_started"
        return current.status
    return "locked"


class UnlockResolver:
    def __init__(self, curriculum: CurriculumRepo, store: StateStore) -> None:
        self._curriculum = curriculum
        self._store = store

    def evaluate(
        self,
        enrollment_id: UUID,
        activity: Activity,
        states: Mapping[UUID, ActivityState],
        now: int,
    ) -> GateDecision:
        """Compute the gate for `activity` from an already-read state snapshot."""
        groups = self._curriculum.list_prerequisite_groups(activity.id)
        referenced = {pid for g in groups for pid in g.prerequisite_ids}
        known = {pid for pid in referenced if self._curriculum.get_activity(pid) is not None}
        statuses = {aid: s.status for aid, s in states.items()}
        prerequisites = evaluate_prerequisites(groups, statuses, known)

        rule = self._curriculum.get_drip_rule(activity.id)
        anchor_state = None
        anchor_exists = True
        if isinstance(rule, DelayAfterActivityDrip):
            anchor_state = states.get(rule.anchor_activity_id)
            anchor_exists = (
                self._curriculum.get_activity(rule.anchor_activity_id) is not None
            )
        drip = evaluate_drip(rule, anchor_state, now, anchor_exists=anchor_exists)

        override = resolve_override(
            self._store.get_active_override(enrollment_id, activity.id)
        )
        return GateDecision(
            unlocked=combine_gates(prerequisites, drip, override, now),
            prerequisites=prerequisites,
            drip=drip,
            override=override,
        )

    def resolve(
        self,
        enrollment_id: UUID,
        activity: Activity,
        states: Mapping[UUID, ActivityState],
        now: int,
    ) -> ActivityState | None:
        """Write the activity's new status if it changed.

        Returns the written state, or None when nothing was written.
        A missing row is created on first evaluation.
        """
        current = states.get(activity.id)
        if current is not None and current.is_complete:
            return None

        decision = self.evaluate(enrollment_id, activity, states, now)
        status = next_status(current, decision.unlocked)
        if current is not None and status == current.status:
            return None

        if current is None:
            updated = ActivityState(
                enrollment_id=enrollment_id,
                activity_id=activity.id,
                status=status,
                last_computed_at=now,
            )
        else:
            updated = replace(current, status=status, last_computed_at=now)
        self._store.upsert_state(updated)

        from_status = current.status if current is not None else "none"
        ACTIVITY_TRANSITIONS.labels(from_status=from_status, to_status=status).inc()
        logger.debug(
            "Activity %s %s -> %s",
            activity.id,
            from_status,
            status,
            extra={"enrollment_id": str(enrollment_id), "activity_id": str(activity.id)},
        )
        return updated
