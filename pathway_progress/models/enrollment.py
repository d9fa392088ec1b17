from __future__ import annotations

from dataclasses import dataclass
from typing import Literal
from uuid import UUID, uuid4

AssignmentType = Literal["explicit", "role_default"]


@dataclass(frozen=True, slots=True)
class Enrollment:
    """A participant's membership in one track."""

    id: UUID
    user_id: UUID
    roles: tuple[str, ...] = ()
    active: bool = True

    @staticmethod
    def new(*, user_id: UUID, roles: tuple[str, ...] = ()) -> Enrollment:
        return Enrollment(id=uuid4(), user_id=user_id, roles=roles)


@dataclass(frozen=True, slots=True)
class PathwayAssignment:
    enrollment_id: UUID
    pathway_id: UUID
    assignment_type: AssignmentType
    assigned_at: int
    assigned_by: UUID | None = None
