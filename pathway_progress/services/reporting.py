"""Pathway-level aggregates for administrators."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from pathway_progress.core.errors import NotFoundError
from pathway_progress.repos.curriculum_repo import CurriculumRepo
from pathway_progress.repos.state_store import StateStore
from pathway_progress.services.assignment import resolve_assigned_pathway


@dataclass(frozen=True, slots=True)
class ActivityCompletion:
    activity_id: UUID
    title: str
    completed: int


@dataclass(frozen=True, slots=True)
class PathwaySummary:
    pathway_id: UUID
    enrollment_count: int
    average_rollup_percent: float
    complete_count: int
    activities: tuple[ActivityCompletion, ...]


class ReportingService:
    def __init__(self, curriculum: CurriculumRepo, store: StateStore) -> None:
        self._curriculum = curriculum
        self._store = store

    def _enrollments_on(self, pathway_id: UUID) -> list[UUID]:
        ids = []
        for assignment in self._curriculum.list_assignments_for_pathway(pathway_id):
            eid = assignment.enrollment_id
            enrollment = self._curriculum.get_enrollment(eid)
            if enrollment is None or not enrollment.active:
                continue
            if resolve_assigned_pathway(self._curriculum.list_assignments(eid)) == pathway_id:
                ids.append(eid)
        return ids

    def pathway_summary(self, pathway_id: UUID) -> PathwaySummary:
        if self._curriculum.get_pathway(pathway_id) is None:
            raise NotFoundError("pathway", pathway_id)

        enrollment_ids = self._enrollments_on(pathway_id)
        rollups = {r.enrollment_id: r for r in self._store.list_rollups(enrollment_ids)}
        # Enrollments without a cached rollup count as 0%
        percents = [
            rollups[e].rollup_percent if e in rollups else 0.0 for e in enrollment_ids
        ]
        average = round(sum(percents) / len(percents), 2) if percents else 0.0
        complete = sum(1 for r in rollups.values() if r.rollup_status == "complete")

        completed_by_activity: dict[UUID, int] = {}
        for eid in enrollment_ids:
            for state in self._store.list_states(eid):
                if state.is_complete:
                    completed_by_activity[state.activity_id] = (
                        completed_by_activity.get(state.activity_id, 0) + 1
                    )

        return PathwaySummary(
            pathway_id=pathway_id,
            enrollment_count=len(enrollment_ids),
            average_rollup_percent=average,
            complete_count=complete,
            activities=tuple(
                ActivityCompletion(
                    activity_id=a.id,
                    title=a.title,
                    completed=completed_by_activity.get(a.id, 0),
                )
                for a in self._curriculum.list_activities(pathway_id)
            ),
        )
