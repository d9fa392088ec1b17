"""Administrative override endpoints.

PUT replaces whatever override is active for the (enrollment, activity);
DELETE revokes it, which re-locks the activity on the following
recompute unless the computed gates already hold.
"""

from __future__ import annotations

from typing import Literal
from uuid import UUID

from fastapi import APIRouter, HTTPException, Response, status
from pydantic import BaseModel

from pathway_progress.api.dependencies import override_service
from pathway_progress.models.override import ActivityOverride

router = APIRouter(prefix="/v1/overrides", tags=["overrides"])


class OverrideIn(BaseModel):
    type: Literal["exempt", "manual_unlock", "grace_unlock"]
    applied_by: UUID | None = None
    reason: str | None = None
    expires_at: int | None = None


class OverrideOut(BaseModel):
    id: UUID
    enrollment_id: UUID
    activity_id: UUID
    type: str
    created_at: int
    applied_by: UUID | None
    reason: str | None
    expires_at: int | None
    closed_at: int | None


def _out(o: ActivityOverride) -> OverrideOut:
    return OverrideOut(
        id=o.id,
        enrollment_id=o.enrollment_id,
        activity_id=o.activity_id,
        type=o.type,
        created_at=o.created_at,
        applied_by=o.applied_by,
        reason=o.reason,
        expires_at=o.expires_at,
        closed_at=o.closed_at,
    )


@router.put(
    "/enrollments/{enrollment_id}/activities/{activity_id}",
    response_model=OverrideOut,
)
def grant_override(enrollment_id: UUID, activity_id: UUID, body: OverrideIn) -> OverrideOut:
    override = override_service.grant(
        enrollment_id,
        activity_id,
        body.type,
        applied_by=body.applied_by,
        reason=body.reason,
        expires_at=body.expires_at,
    )
    return _out(override)


@router.delete(
    "/enrollments/{enrollment_id}/activities/{activity_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
def revoke_override(
    enrollment_id: UUID, activity_id: UUID, revoked_by: UUID | None = None
) -> Response:
    if override_service.revoke(enrollment_id, activity_id, revoked_by=revoked_by) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="no active override"
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/enrollments/{enrollment_id}/activities/{activity_id}",
    response_model=list[OverrideOut],
)
def override_history(enrollment_id: UUID, activity_id: UUID) -> list[OverrideOut]:
    return [_out(o) for o in override_service.history(enrollment_id, activity_id)]
