"""Completion-signal adapters.

External systems report progress in their own terms (a course id, an
instrument + phase, a form, attended coaching sessions).  These adapters
find the matching activities through each activity's typed config and
hand the result to ProgressionEngine.record_progress().
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from uuid import UUID

from pathway_progress.core.errors import NotFoundError
from pathway_progress.models.curriculum import (
    Activity,
    ChildAssessmentRef,
    CoachingAttendanceRef,
    CourseRef,
    ObservationRef,
    SelfAssessmentRef,
)
from pathway_progress.repos.curriculum_repo import CurriculumRepo
from pathway_progress.services.engine import ProgressionEngine, SignalResult

logger = logging.getLogger(__name__)


class SignalRouter:
    def __init__(self, curriculum: CurriculumRepo, engine: ProgressionEngine) -> None:
        self._curriculum = curriculum
        self._engine = engine

    def _matching(
        self, enrollment_id: UUID, predicate: Callable[[Activity], bool]
    ) -> list[Activity]:
        pathway_id = self._engine.assigned_pathway_id(enrollment_id)
        if pathway_id is None:
            return []
        return [a for a in self._curriculum.list_activities(pathway_id) if predicate(a)]

    def _require_enrollment(self, enrollment_id: UUID) -> None:
        if self._curriculum.get_enrollment(enrollment_id) is None:
            raise NotFoundError("enrollment", enrollment_id)

    def course_progress(
        self, user_id: UUID, course_id: str, percent: int
    ) -> list[SignalResult]:
        """Course engine reported progress for a user (all their enrollments)."""
        results = []
        for enrollment in self._curriculum.list_enrollments_for_user(user_id):
            if not enrollment.active:
                continue
            for activity in self._matching(
                enrollment.id,
                lambda a: isinstance(a.config, CourseRef)
                and a.config.course_id == course_id,
            ):
                results.append(
                    self._engine.record_progress(enrollment.id, activity.id, percent)
                )
        if not results:
            logger.debug("No course activity matches course_id=%s", course_id)
        return results

    def assessment_submitted(
        self,
        enrollment_id: UUID,
        activity_type: str,
        instrument_id: str,
        phase: str | None = None,
    ) -> list[SignalResult]:
        self._require_enrollment(enrollment_id)
        ref_type = {
            "teacher_self_assessment": SelfAssessmentRef,
            "child_assessment": ChildAssessmentRef,
        }.get(activity_type)
        if ref_type is None:
            raise ValueError(f"not an assessment activity type: {activity_type!r}")

        def matches(a: Activity) -> bool:
            ref = a.config
            if not isinstance(ref, ref_type) or ref.instrument_id != instrument_id:
                return False
            # An activity configured for one phase ignores the other
            return ref.phase is None or ref.phase == phase

        return [
            self._engine.record_progress(enrollment_id, a.id, 100)
            for a in self._matching(enrollment_id, matches)
        ]

    def observation_submitted(
        self, enrollment_id: UUID, form_id: str
    ) -> list[SignalResult]:
        self._require_enrollment(enrollment_id)
        return [
            self._engine.record_progress(enrollment_id, a.id, 100)
            for a in self._matching(
                enrollment_id,
                lambda a: isinstance(a.config, ObservationRef)
                and a.config.form_id == form_id,
            )
        ]

    def coaching_attendance(
        self, enrollment_id: UUID, attended_sessions: int
    ) -> list[SignalResult]:
        """Coaching scheduler reported the enrollment's attended-session count."""
        self._require_enrollment(enrollment_id)
        results = []
        for a in self._matching(
            enrollment_id, lambda a: isinstance(a.config, CoachingAttendanceRef)
        ):
            assert isinstance(a.config, CoachingAttendanceRef)
            needed = a.config.session_number or 1
            if attended_sessions >= needed:
                results.append(self._engine.record_progress(enrollment_id, a.id, 100))
        return results
