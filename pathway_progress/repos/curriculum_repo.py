from __future__ import annotations

from dataclasses import replace
from typing import Protocol
from uuid import UUID

from pathway_progress.models.curriculum import (
    Activity,
    DripRule,
    Pathway,
    PrerequisiteGroup,
)
from pathway_progress.models.enrollment import Enrollment, PathwayAssignment


class CurriculumRepo(Protocol):
    """Administrator-owned configuration, read-only to the engine."""

    def add_pathway(self, pathway: Pathway) -> None: ...
    def get_pathway(self, pathway_id: UUID) -> Pathway | None: ...
    def list_pathways(self) -> list[Pathway]: ...

    def add_activity(self, activity: Activity) -> None: ...
    def get_activity(self, activity_id: UUID) -> Activity | None: ...
    def set_activity_active(self, activity_id: UUID, active: bool) -> Activity | None: ...
    def list_activities(
        self, pathway_id: UUID, *, include_inactive: bool = False
    ) -> list[Activity]: ...

    def set_prerequisite_groups(
        self, activity_id: UUID, groups: list[PrerequisiteGroup]
    ) -> None: ...
    def list_prerequisite_groups(self, activity_id: UUID) -> list[PrerequisiteGroup]: ...

    def set_drip_rule(self, activity_id: UUID, rule: DripRule | None) -> None: ...
    def get_drip_rule(self, activity_id: UUID) -> DripRule | None: ...

    def add_enrollment(self, enrollment: Enrollment) -> None: ...
    def get_enrollment(self, enrollment_id: UUID) -> Enrollment | None: ...
    def list_enrollments(self) -> list[Enrollment]: ...
    def list_enrollments_for_user(self, user_id: UUID) -> list[Enrollment]: ...

    def add_assignment(self, assignment: PathwayAssignment) -> None: ...
    def remove_assignment(self, enrollment_id: UUID, pathway_id: UUID) -> bool: ...
    def list_assignments(self, enrollment_id: UUID) -> list[PathwayAssignment]: ...
    def list_assignments_for_pathway(
        self, pathway_id: UUID
    ) -> list[PathwayAssignment]: ...


class InMemoryCurriculumRepo:
    def __init__(self) -> None:
        self._pathways: dict[UUID, Pathway] = {}
        self._activities: dict[UUID, Activity] = {}
        self._groups: dict[UUID, list[PrerequisiteGroup]] = {}
        self._drip: dict[UUID, DripRule] = {}
        self._enrollments: dict[UUID, Enrollment] = {}
        self._assignments: list[PathwayAssignment] = []

    def clear(self) -> None:
        self._pathways.clear()
        self._activities.clear()
        self._groups.clear()
        self._drip.clear()
        self._enrollments.clear()
        self._assignments.clear()

    # --- pathways ---

    def add_pathway(self, pathway: Pathway) -> None:
        if pathway.id in self._pathways:
            raise ValueError("pathway already exists")
        self._pathways[pathway.id] = pathway

    def get_pathway(self, pathway_id: UUID) -> Pathway | None:
        return self._pathways.get(pathway_id)

    def list_pathways(self) -> list[Pathway]:
        return list(self._pathways.values())

    # --- activities ---

    def add_activity(self, activity: Activity) -> None:
        if activity.id in self._activities:
            raise ValueError("activity already exists")
        self._activities[activity.id] = activity

    def get_activity(self, activity_id: UUID) -> Activity | None:
        return self._activities.get(activity_id)

    def set_activity_active(self, activity_id: UUID, active: bool) -> Activity | None:
        a = self._activities.get(activity_id)
        if a is None:
            return None
        updated = replace(a, active=active)
        self._activities[activity_id] = updated
        return updated

    def list_activities(
        self, pathway_id: UUID, *, include_inactive: bool = False
    ) -> list[Activity]:
        found = [
            a
            for a in self._activities.values()
            if a.pathway_id == pathway_id and (include_inactive or a.active)
        ]
        return sorted(found, key=lambda a: (a.ordering_hint, a.title))

    # --- gating configuration ---

    def set_prerequisite_groups(
        self, activity_id: UUID, groups: list[PrerequisiteGroup]
    ) -> None:
        if groups:
            self._groups[activity_id] = list(groups)
        else:
            self._groups.pop(activity_id, None)

    def list_prerequisite_groups(self, activity_id: UUID) -> list[PrerequisiteGroup]:
        return list(self._groups.get(activity_id, []))

    def set_drip_rule(self, activity_id: UUID, rule: DripRule | None) -> None:
        if rule is None:
            self._drip.pop(activity_id, None)
        else:
            self._drip[activity_id] = rule

    def get_drip_rule(self, activity_id: UUID) -> DripRule | None:
        return self._drip.get(activity_id)

    # --- enrollments ---

    def add_enrollment(self, enrollment: Enrollment) -> None:
        if enrollment.id in self._enrollments:
            raise ValueError("enrollment already exists")
        self._enrollments[enrollment.id] = enrollment

    def get_enrollment(self, enrollment_id: UUID) -> Enrollment | None:
        return self._enrollments.get(enrollment_id)

    def list_enrollments(self) -> list[Enrollment]:
        return list(self._enrollments.values())

    def list_enrollments_for_user(self, user_id: UUID) -> list[Enrollment]:
        return [e for e in self._enrollments.values() if e.user_id == user_id]

    # --- pathway assignments ---

    def add_assignment(self, assignment: PathwayAssignment) -> None:
        for a in self._assignments:
            if (
                a.enrollment_id == assignment.enrollment_id
                and a.pathway_id == assignment.pathway_id
            ):
                raise ValueError("assignment already exists")
        self._assignments.append(assignment)

    def remove_assignment(self, enrollment_id: UUID, pathway_id: UUID) -> bool:
        before = len(self._assignments)
        self._assignments = [
            a
            for a in self._assignments
            if not (a.enrollment_id == enrollment_id and a.pathway_id == pathway_id)
        ]
        return len(self._assignments) != before

    def list_assignments(self, enrollment_id: UUID) -> list[PathwayAssignment]:
        return [a for a in self._assignments if a.enrollment_id == enrollment_id]

    def list_assignments_for_pathway(
        self, pathway_id: UUID
    ) -> list[PathwayAssignment]:
        return [a for a in self._assignments if a.pathway_id == pathway_id]
