"""Administrator configuration endpoints: pathways, activities, gating
rules, enrollments and pathway assignment.

Every write goes through CurriculumService / AssignmentService, which
reject invalid definitions (422) before anything is stored.
"""

from __future__ import annotations

from typing import Annotated, Literal
from uuid import UUID

from fastapi import APIRouter, Response, status
from pydantic import BaseModel, Field

from pathway_progress.api.dependencies import (
    assignment_service,
    curriculum_service,
    reporting_service,
)
from pathway_progress.models.curriculum import (
    DelayAfterActivityDrip,
    DripRule,
    FixedDateDrip,
    config_from_dict,
    config_to_dict,
)
from pathway_progress.services.curriculum_service import GroupSpec

router = APIRouter(prefix="/v1/curriculum", tags=["curriculum"])


# --- Activity config payloads (tagged by `kind`) ---


class CourseConfigIn(BaseModel):
    kind: Literal["course"]
    course_id: str


class SelfAssessmentConfigIn(BaseModel):
    kind: Literal["teacher_self_assessment"]
    instrument_id: str
    phase: Literal["pre", "post"] | None = None


class ChildAssessmentConfigIn(BaseModel):
    kind: Literal["child_assessment"]
    instrument_id: str
    phase: Literal["pre", "post"] | None = None


class ObservationConfigIn(BaseModel):
    kind: Literal["observation"]
    form_id: str


class CoachingAttendanceConfigIn(BaseModel):
    kind: Literal["coaching_attendance"]
    session_number: int | None = Field(default=None, ge=1)


ActivityConfigIn = Annotated[
    CourseConfigIn
    | SelfAssessmentConfigIn
    | ChildAssessmentConfigIn
    | ObservationConfigIn
    | CoachingAttendanceConfigIn,
    Field(discriminator="kind"),
]


# --- Drip payloads (tagged by `type`) ---


class FixedDateDripIn(BaseModel):
    type: Literal["fixed_date"]
    release_at: int


class DelayAfterActivityDripIn(BaseModel):
    type: Literal["delay_after_activity"]
    anchor_activity_id: UUID
    delay_days: int


DripRuleIn = Annotated[
    FixedDateDripIn | DelayAfterActivityDripIn, Field(discriminator="type")
]


class PathwayIn(BaseModel):
    name: str
    target_roles: list[str] = []


class PathwayOut(BaseModel):
    id: UUID
    name: str
    target_roles: list[str]
    active: bool


class ActivityIn(BaseModel):
    pathway_id: UUID
    title: str
    config: ActivityConfigIn
    weight: float = 1.0
    ordering_hint: int = 0


class ActivityOut(BaseModel):
    id: UUID
    pathway_id: UUID
    title: str
    type: str
    config: dict
    weight: float
    ordering_hint: int
    active: bool


class GroupIn(BaseModel):
    type: Literal["all_of", "any_of", "n_of_m"]
    prerequisite_ids: list[UUID]
    n_required: int | None = None


class PrerequisitesIn(BaseModel):
    groups: list[GroupIn]


class GroupOut(BaseModel):
    id: UUID
    type: str
    prerequisite_ids: list[UUID]
    n_required: int | None


class DripRuleOut(BaseModel):
    activity_id: UUID
    type: str
    release_at: int | None = None
    anchor_activity_id: UUID | None = None
    delay_days: int | None = None


class EnrollmentIn(BaseModel):
    user_id: UUID
    roles: list[str] = []


class EnrollmentOut(BaseModel):
    id: UUID
    user_id: UUID
    roles: list[str]
    active: bool


class AssignmentIn(BaseModel):
    pathway_id: UUID
    assignment_type: Literal["explicit", "role_default"] = "explicit"
    assigned_by: UUID | None = None


class AssignmentOut(BaseModel):
    enrollment_id: UUID
    pathway_id: UUID
    assignment_type: str
    assigned_at: int
    assigned_by: UUID | None


class ActivityCompletionOut(BaseModel):
    activity_id: UUID
    title: str
    completed: int


class PathwaySummaryOut(BaseModel):
    pathway_id: UUID
    enrollment_count: int
    average_rollup_percent: float
    complete_count: int
    activities: list[ActivityCompletionOut]


def _drip_out(rule: DripRule) -> DripRuleOut:
    if isinstance(rule, FixedDateDrip):
        return DripRuleOut(activity_id=rule.activity_id, type=rule.type, release_at=rule.release_at)
    return DripRuleOut(
        activity_id=rule.activity_id,
        type=rule.type,
        anchor_activity_id=rule.anchor_activity_id,
        delay_days=rule.delay_days,
    )


# ---------------------------------------------------------------------------
# Pathways
# ---------------------------------------------------------------------------


@router.post("/pathways", response_model=PathwayOut, status_code=status.HTTP_201_CREATED)
def create_pathway(body: PathwayIn) -> PathwayOut:
    pathway = curriculum_service.create_pathway(body.name, body.target_roles)
    return PathwayOut(
        id=pathway.id,
        name=pathway.name,
        target_roles=list(pathway.target_roles),
        active=pathway.active,
    )


@router.get("/pathways/{pathway_id}/summary", response_model=PathwaySummaryOut)
def get_pathway_summary(pathway_id: UUID) -> PathwaySummaryOut:
    summary = reporting_service.pathway_summary(pathway_id)
    return PathwaySummaryOut(
        pathway_id=summary.pathway_id,
        enrollment_count=summary.enrollment_count,
        average_rollup_percent=summary.average_rollup_percent,
        complete_count=summary.complete_count,
        activities=[
            ActivityCompletionOut(activity_id=a.activity_id, title=a.title, completed=a.completed)
            for a in summary.activities
        ],
    )


# ---------------------------------------------------------------------------
# Activities and gating
# ---------------------------------------------------------------------------


@router.post("/activities", response_model=ActivityOut, status_code=status.HTTP_201_CREATED)
def create_activity(body: ActivityIn) -> ActivityOut:
    activity = curriculum_service.add_activity(
        body.pathway_id,
        body.title,
        config_from_dict(body.config.model_dump()),
        weight=body.weight,
        ordering_hint=body.ordering_hint,
    )
    return ActivityOut(
        id=activity.id,
        pathway_id=activity.pathway_id,
        title=activity.title,
        type=activity.type,
        config=config_to_dict(activity.config),
        weight=activity.weight,
        ordering_hint=activity.ordering_hint,
        active=activity.active,
    )


@router.delete("/activities/{activity_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_activity(activity_id: UUID) -> Response:
    """Take an activity out of its pathway; stored state is kept."""
    curriculum_service.set_activity_active(activity_id, False)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/activities/{activity_id}/prerequisites", response_model=list[GroupOut])
def put_prerequisites(activity_id: UUID, body: PrerequisitesIn) -> list[GroupOut]:
    groups = curriculum_service.set_prerequisites(
        activity_id,
        [
            GroupSpec(type=g.type, prerequisite_ids=g.prerequisite_ids, n_required=g.n_required)
            for g in body.groups
        ],
    )
    return [
        GroupOut(
            id=g.id,
            type=g.type,
            prerequisite_ids=list(g.prerequisite_ids),
            n_required=g.n_required,
        )
        for g in groups
    ]


@router.put("/activities/{activity_id}/drip", response_model=DripRuleOut)
def put_drip_rule(activity_id: UUID, body: DripRuleIn) -> DripRuleOut:
    rule: DripRule
    if isinstance(body, FixedDateDripIn):
        rule = FixedDateDrip(activity_id=activity_id, release_at=body.release_at)
    else:
        rule = DelayAfterActivityDrip(
            activity_id=activity_id,
            anchor_activity_id=body.anchor_activity_id,
            delay_days=body.delay_days,
        )
    curriculum_service.set_drip_rule(activity_id, rule)
    return _drip_out(rule)


@router.delete("/activities/{activity_id}/drip", status_code=status.HTTP_204_NO_CONTENT)
def delete_drip_rule(activity_id: UUID) -> Response:
    curriculum_service.set_drip_rule(activity_id, None)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Enrollments and assignment
# ---------------------------------------------------------------------------


@router.post("/enrollments", response_model=EnrollmentOut, status_code=status.HTTP_201_CREATED)
def create_enrollment(body: EnrollmentIn) -> EnrollmentOut:
    enrollment = curriculum_service.create_enrollment(body.user_id, body.roles)
    return EnrollmentOut(
        id=enrollment.id,
        user_id=enrollment.user_id,
        roles=list(enrollment.roles),
        active=enrollment.active,
    )


@router.post(
    "/enrollments/{enrollment_id}/assignments",
    response_model=AssignmentOut,
    status_code=status.HTTP_201_CREATED,
)
def assign_pathway(enrollment_id: UUID, body: AssignmentIn) -> AssignmentOut:
    assignment = assignment_service.assign_pathway(
        enrollment_id,
        body.pathway_id,
        body.assignment_type,
        assigned_by=body.assigned_by,
    )
    return AssignmentOut(
        enrollment_id=assignment.enrollment_id,
        pathway_id=assignment.pathway_id,
        assignment_type=assignment.assignment_type,
        assigned_at=assignment.assigned_at,
        assigned_by=assignment.assigned_by,
    )
