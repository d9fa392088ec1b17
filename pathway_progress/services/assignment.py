"""Pathway assignment: which pathway an enrollment is working through.

An enrollment may hold several assignments; the one the engine uses is
the earliest explicit assignment, else the earliest role default.
Role defaults are created for enrollments with no assignment at all,
from each active pathway's target_roles.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from uuid import UUID

from pathway_progress.core.clock import Clock, utc_now
from pathway_progress.core.errors import NotFoundError, StateConflictError
from pathway_progress.models.enrollment import AssignmentType, PathwayAssignment
from pathway_progress.repos.curriculum_repo import CurriculumRepo
from pathway_progress.services.events import StateChangeBus, StateChanged

logger = logging.getLogger(__name__)


def resolve_assigned_pathway(assignments: Iterable[PathwayAssignment]) -> UUID | None:
    ordered = sorted(
        assignments,
        key=lambda a: (a.assignment_type != "explicit", a.assigned_at),
    )
    return ordered[0].pathway_id if ordered else None


def normalize_role(role: str) -> str:
    return role.strip().lower().replace("_", " ")


class AssignmentService:
    def __init__(
        self,
        curriculum: CurriculumRepo,
        bus: StateChangeBus,
        clock: Clock = utc_now,
    ) -> None:
        self._curriculum = curriculum
        self._bus = bus
        self._clock = clock

    def assign_pathway(
        self,
        enrollment_id: UUID,
        pathway_id: UUID,
        assignment_type: AssignmentType = "explicit",
        *,
        assigned_by: UUID | None = None,
    ) -> PathwayAssignment:
        if self._curriculum.get_enrollment(enrollment_id) is None:
            raise NotFoundError("enrollment", enrollment_id)
        if self._curriculum.get_pathway(pathway_id) is None:
            raise NotFoundError("pathway", pathway_id)
        if any(
            a.pathway_id == pathway_id
            for a in self._curriculum.list_assignments(enrollment_id)
        ):
            raise StateConflictError(
                "already_assigned",
                f"pathway {pathway_id} is already assigned to enrollment {enrollment_id}",
            )

        assignment = PathwayAssignment(
            enrollment_id=enrollment_id,
            pathway_id=pathway_id,
            assignment_type=assignment_type,
            assigned_at=self._clock(),
            assigned_by=assigned_by,
        )
        self._curriculum.add_assignment(assignment)
        logger.info(
            "Pathway %s assigned (%s)",
            pathway_id,
            assignment_type,
            extra={"enrollment_id": str(enrollment_id)},
        )
        self._bus.publish(StateChanged(enrollment_id, None, "assignment"))
        return assignment

    def unassign_pathway(self, enrollment_id: UUID, pathway_id: UUID) -> bool:
        if self._curriculum.get_enrollment(enrollment_id) is None:
            raise NotFoundError("enrollment", enrollment_id)
        removed = self._curriculum.remove_assignment(enrollment_id, pathway_id)
        if removed:
            logger.info(
                "Pathway %s unassigned",
                pathway_id,
                extra={"enrollment_id": str(enrollment_id)},
            )
            self._bus.publish(StateChanged(enrollment_id, None, "assignment"))
        return removed

    def assigned_pathway_id(self, enrollment_id: UUID) -> UUID | None:
        return resolve_assigned_pathway(self._curriculum.list_assignments(enrollment_id))

    def sync_role_defaults(self, enrollment_ids: Iterable[UUID] | None = None) -> int:
        """Create role_default assignments for unassigned active enrollments.

        Returns the number of assignments created.
        """
        if enrollment_ids is None:
            enrollments = self._curriculum.list_enrollments()
        else:
            enrollments = [
                e
                for e in (self._curriculum.get_enrollment(i) for i in enrollment_ids)
                if e is not None
            ]
        pathways = [p for p in self._curriculum.list_pathways() if p.active]

        created = 0
        for enrollment in enrollments:
            if not enrollment.active:
                continue
            if self._curriculum.list_assignments(enrollment.id):
                continue
            roles = {normalize_role(r) for r in enrollment.roles}
            for pathway in pathways:
                targets = {normalize_role(r) for r in pathway.target_roles}
                if roles & targets:
                    self.assign_pathway(enrollment.id, pathway.id, "role_default")
                    created += 1
        return created
