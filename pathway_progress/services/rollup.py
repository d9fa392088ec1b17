"""Completion rollup: weighted average of activity completion.

    rollup_percent = sum(weight_i * percent_i) / sum(weight_i)

over every active activity of the enrollment's assigned pathway.
Activities with no state row (or still locked) count as 0% at full
weight.  The rollup is always recomputed from a fresh read of the
state rows, never patched incrementally, so re-running it is safe.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from uuid import UUID

from pathway_progress.core.metrics import CONFIG_ANOMALIES
from pathway_progress.models.curriculum import Activity
from pathway_progress.models.progress import (
    ActivityState,
    CompletionRollup,
    RollupStatus,
)
from pathway_progress.repos.curriculum_repo import CurriculumRepo
from pathway_progress.repos.state_store import StateStore

logger = logging.getLogger(__name__)


def activity_percent(state: ActivityState | None) -> int:
    if state is None or state.status == "locked":
        return 0
    if state.is_complete:
        return 100
    return max(0, min(100, state.completion_percent))


def compute_rollup(
    activities: Iterable[Activity],
    states: Mapping[UUID, ActivityState],
    *,
    enrollment_id: UUID,
    pathway_id: UUID | None,
    now: int,
    precision: int = 2,
) -> CompletionRollup:
    total_weight = 0.0
    weighted_sum = 0.0
    all_complete = True
    has_state = False

    for activity in activities:
        weight = float(activity.weight)
        if weight <= 0:
            CONFIG_ANOMALIES.labels(kind="non_positive_weight").inc()
            logger.warning(
                "Activity %s has non-positive weight %s; counting it as 1.0",
                activity.id,
                activity.weight,
            )
            weight = 1.0
        state = states.get(activity.id)
        has_state = has_state or state is not None
        all_complete = all_complete and state is not None and state.is_complete
        total_weight += weight
        weighted_sum += weight * activity_percent(state)

    if total_weight == 0:
        # Nothing assigned: a defined, empty rollup rather than an error
        return CompletionRollup(
            enrollment_id=enrollment_id,
            pathway_id=pathway_id,
            rollup_percent=0.0,
            rollup_status="not_started",
            computed_at=now,
        )

    percent = round(weighted_sum / total_weight, precision)
    status: RollupStatus
    if not has_state or percent == 0:
        status = "not_started"
    elif all_complete:
        status = "complete"
    else:
        status = "in_progress"

    return CompletionRollup(
        enrollment_id=enrollment_id,
        pathway_id=pathway_id,
        rollup_percent=percent,
        rollup_status=status,
        computed_at=now,
    )


class RollupCalculator:
    """Owns the completion_rollup cache."""

    def __init__(
        self, curriculum: CurriculumRepo, store: StateStore, precision: int = 2
    ) -> None:
        self._curriculum = curriculum
        self._store = store
        self._precision = precision

    def recompute(
        self, enrollment_id: UUID, pathway_id: UUID | None, now: int
    ) -> CompletionRollup:
        activities = (
            self._curriculum.list_activities(pathway_id) if pathway_id is not None else []
        )
        states = {s.activity_id: s for s in self._store.list_states(enrollment_id)}
        rollup = compute_rollup(
            activities,
            states,
            enrollment_id=enrollment_id,
            pathway_id=pathway_id,
            now=now,
            precision=self._precision,
        )
        self._store.upsert_rollup(rollup)
        return rollup
