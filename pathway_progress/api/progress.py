"""Learner progress endpoints.

  POST /v1/progress/signals
    -> route the external event to matching activities
    -> record progress + recompute (synchronously, under the enrollment lock)
    -> 202 Accepted with per-activity outcome

  GET  /v1/progress/enrollments/{id}                      activities + rollup
  GET  /v1/progress/enrollments/{id}/activities/{aid}/lock  why is it locked?
  POST /v1/progress/enrollments/{id}/recompute            force a recompute
  POST /v1/progress/recompute                             backfill
"""

from __future__ import annotations

from typing import Annotated, Literal
from uuid import UUID

from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from pathway_progress.api.dependencies import assignment_service, engine, signal_router
from pathway_progress.services.engine import RecomputeResult, SignalResult

router = APIRouter(prefix="/v1/progress", tags=["progress"])


# --- Signal payloads (tagged by `source`) ---


class ActivityProgressSignal(BaseModel):
    source: Literal["activity_progress"]
    enrollment_id: UUID
    activity_id: UUID
    percent: int
    complete: bool = False


class CourseProgressSignal(BaseModel):
    source: Literal["course_progress"]
    user_id: UUID
    course_id: str
    percent: int


class AssessmentSubmittedSignal(BaseModel):
    source: Literal["assessment_submitted"]
    enrollment_id: UUID
    activity_type: Literal["teacher_self_assessment", "child_assessment"]
    instrument_id: str
    phase: Literal["pre", "post"] | None = None


class ObservationSubmittedSignal(BaseModel):
    source: Literal["observation_submitted"]
    enrollment_id: UUID
    form_id: str


class CoachingAttendanceSignal(BaseModel):
    source: Literal["coaching_attendance"]
    enrollment_id: UUID
    attended_sessions: int = Field(ge=0)


SignalIn = Annotated[
    ActivityProgressSignal
    | CourseProgressSignal
    | AssessmentSubmittedSignal
    | ObservationSubmittedSignal
    | CoachingAttendanceSignal,
    Field(discriminator="source"),
]


class SignalOutcomeOut(BaseModel):
    enrollment_id: UUID | None
    activity_id: UUID | None
    applied: bool
    status: str | None
    completion_percent: int | None
    reason: str | None


class SignalAcceptedOut(BaseModel):
    results: list[SignalOutcomeOut]


class ActivityProgressOut(BaseModel):
    activity_id: UUID
    title: str
    type: str
    ordering_hint: int
    weight: float
    status: str
    completion_percent: int
    completed_at: int | None


class RollupOut(BaseModel):
    pathway_id: UUID | None
    rollup_percent: float
    rollup_status: str
    computed_at: int


class EnrollmentProgressOut(BaseModel):
    enrollment_id: UUID
    pathway_id: UUID | None
    activities: list[ActivityProgressOut]
    rollup: RollupOut


class UnmetGroupOut(BaseModel):
    group_id: UUID
    type: str
    n_required: int | None
    completed: int
    total: int
    blockers: list[UUID]


class OverrideInfoOut(BaseModel):
    type: str
    expires_at: int | None


class LockExplanationOut(BaseModel):
    activity_id: UUID
    status: str
    reason: str
    unmet_groups: list[UnmetGroupOut]
    next_available_at: int | None
    override: OverrideInfoOut | None


class RecomputeOut(BaseModel):
    enrollment_id: UUID
    pathway_id: UUID | None
    transitions: int
    rollup: RollupOut


class BackfillIn(BaseModel):
    enrollment_ids: list[UUID] | None = None
    sync_role_defaults: bool = False


class BackfillOut(BaseModel):
    recomputed: int
    role_default_assignments: int


def _outcome(result: SignalResult) -> SignalOutcomeOut:
    state = result.state
    return SignalOutcomeOut(
        enrollment_id=state.enrollment_id if state else None,
        activity_id=state.activity_id if state else None,
        applied=result.applied,
        status=state.status if state else None,
        completion_percent=state.completion_percent if state else None,
        reason=result.reason,
    )


def _recompute_out(result: RecomputeResult) -> RecomputeOut:
    rollup = result.rollup
    return RecomputeOut(
        enrollment_id=result.enrollment_id,
        pathway_id=result.pathway_id,
        transitions=len(result.transitions),
        rollup=RollupOut(
            pathway_id=rollup.pathway_id,
            rollup_percent=rollup.rollup_percent,
            rollup_status=rollup.rollup_status,
            computed_at=rollup.computed_at,
        ),
    )


# ---------------------------------------------------------------------------
# POST /v1/progress/signals
# ---------------------------------------------------------------------------


@router.post(
    "/signals",
    response_model=SignalAcceptedOut,
    status_code=status.HTTP_202_ACCEPTED,
)
def ingest_signal(signal: SignalIn) -> SignalAcceptedOut:
    if isinstance(signal, ActivityProgressSignal):
        results = [
            engine.record_progress(
                signal.enrollment_id,
                signal.activity_id,
                signal.percent,
                complete=signal.complete,
            )
        ]
    elif isinstance(signal, CourseProgressSignal):
        results = signal_router.course_progress(
            signal.user_id, signal.course_id, signal.percent
        )
    elif isinstance(signal, AssessmentSubmittedSignal):
        results = signal_router.assessment_submitted(
            signal.enrollment_id, signal.activity_type, signal.instrument_id, signal.phase
        )
    elif isinstance(signal, ObservationSubmittedSignal):
        results = signal_router.observation_submitted(signal.enrollment_id, signal.form_id)
    else:
        results = signal_router.coaching_attendance(
            signal.enrollment_id, signal.attended_sessions
        )
    return SignalAcceptedOut(results=[_outcome(r) for r in results])


# ---------------------------------------------------------------------------
# Read interface
# ---------------------------------------------------------------------------


@router.get("/enrollments/{enrollment_id}", response_model=EnrollmentProgressOut)
def get_enrollment_progress(enrollment_id: UUID) -> EnrollmentProgressOut:
    activities = engine.list_progress(enrollment_id)
    rollup = engine.get_rollup(enrollment_id)
    return EnrollmentProgressOut(
        enrollment_id=enrollment_id,
        pathway_id=rollup.pathway_id,
        activities=[
            ActivityProgressOut(
                activity_id=a.activity_id,
                title=a.title,
                type=a.type,
                ordering_hint=a.ordering_hint,
                weight=a.weight,
                status=a.status,
                completion_percent=a.completion_percent,
                completed_at=a.completed_at,
            )
            for a in activities
        ],
        rollup=RollupOut(
            pathway_id=rollup.pathway_id,
            rollup_percent=rollup.rollup_percent,
            rollup_status=rollup.rollup_status,
            computed_at=rollup.computed_at,
        ),
    )


@router.get(
    "/enrollments/{enrollment_id}/activities/{activity_id}/lock",
    response_model=LockExplanationOut,
)
def explain_lock(enrollment_id: UUID, activity_id: UUID) -> LockExplanationOut:
    explanation = engine.explain_lock(enrollment_id, activity_id)
    override = None
    if explanation.override_type is not None:
        override = OverrideInfoOut(
            type=explanation.override_type, expires_at=explanation.override_expires_at
        )
    return LockExplanationOut(
        activity_id=explanation.activity_id,
        status=explanation.status,
        reason=explanation.reason,
        unmet_groups=[
            UnmetGroupOut(
                group_id=g.group_id,
                type=g.type,
                n_required=g.n_required,
                completed=g.completed,
                total=g.total,
                blockers=list(g.blockers),
            )
            for g in explanation.unmet_groups
        ],
        next_available_at=explanation.next_available_at,
        override=override,
    )


# ---------------------------------------------------------------------------
# Recomputation
# ---------------------------------------------------------------------------


@router.post("/enrollments/{enrollment_id}/recompute", response_model=RecomputeOut)
def recompute_enrollment(enrollment_id: UUID) -> RecomputeOut:
    return _recompute_out(engine.recompute(enrollment_id, "manual"))


@router.post("/recompute", response_model=BackfillOut)
def recompute_all(body: BackfillIn) -> BackfillOut:
    created = 0
    if body.sync_role_defaults:
        created = assignment_service.sync_role_defaults(body.enrollment_ids)
    results = engine.recompute_all(body.enrollment_ids)
    return BackfillOut(recomputed=len(results), role_default_assignments=created)
