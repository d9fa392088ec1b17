"""SQL implementation of CurriculumRepo."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from pathway_progress.db.tables import (
    ActivityRow,
    DripRuleRow,
    EnrollmentRow,
    PathwayAssignmentRow,
    PathwayRow,
    PrereqGroupRow,
    PrereqItemRow,
)
from pathway_progress.models.curriculum import (
    Activity,
    DelayAfterActivityDrip,
    DripRule,
    FixedDateDrip,
    Pathway,
    PrerequisiteGroup,
    PrerequisiteItem,
    config_from_dict,
    config_to_dict,
)
from pathway_progress.models.enrollment import Enrollment, PathwayAssignment


class SqlCurriculumRepo:
    """Satisfies the CurriculumRepo Protocol; one transaction per call."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def _add(self, row: Any, what: str) -> None:
        try:
            with self._session_factory.begin() as session:
                session.add(row)
        except IntegrityError as exc:
            raise ValueError(f"{what} already exists") from exc

    # --- pathways ---

    def add_pathway(self, pathway: Pathway) -> None:
        self._add(
            PathwayRow(
                id=pathway.id,
                name=pathway.name,
                target_roles=list(pathway.target_roles),
                active=pathway.active,
            ),
            "pathway",
        )

    def get_pathway(self, pathway_id: UUID) -> Pathway | None:
        with self._session_factory() as session:
            row = session.get(PathwayRow, pathway_id)
            return _row_to_pathway(row) if row is not None else None

    def list_pathways(self) -> list[Pathway]:
        with self._session_factory() as session:
            rows = session.execute(select(PathwayRow).order_by(PathwayRow.name)).scalars()
            return [_row_to_pathway(r) for r in rows]

    # --- activities ---

    def add_activity(self, activity: Activity) -> None:
        self._add(
            ActivityRow(
                id=activity.id,
                pathway_id=activity.pathway_id,
                title=activity.title,
                type=activity.type,
                config=config_to_dict(activity.config),
                weight=activity.weight,
                ordering_hint=activity.ordering_hint,
                active=activity.active,
            ),
            "activity",
        )

    def get_activity(self, activity_id: UUID) -> Activity | None:
        with self._session_factory() as session:
            row = session.get(ActivityRow, activity_id)
            return _row_to_activity(row) if row is not None else None

    def set_activity_active(self, activity_id: UUID, active: bool) -> Activity | None:
        with self._session_factory.begin() as session:
            result = session.execute(
                update(ActivityRow).where(ActivityRow.id == activity_id).values(active=active)
            )
            if result.rowcount == 0:
                return None
        return self.get_activity(activity_id)

    def list_activities(
        self, pathway_id: UUID, *, include_inactive: bool = False
    ) -> list[Activity]:
        stmt = select(ActivityRow).where(ActivityRow.pathway_id == pathway_id)
        if not include_inactive:
            stmt = stmt.where(ActivityRow.active.is_(True))
        stmt = stmt.order_by(ActivityRow.ordering_hint, ActivityRow.title)
        with self._session_factory() as session:
            return [_row_to_activity(r) for r in session.execute(stmt).scalars()]

    # --- gating configuration ---

    def set_prerequisite_groups(
        self, activity_id: UUID, groups: list[PrerequisiteGroup]
    ) -> None:
        with self._session_factory.begin() as session:
            old_ids = select(PrereqGroupRow.id).where(
                PrereqGroupRow.activity_id == activity_id
            )
            session.execute(delete(PrereqItemRow).where(PrereqItemRow.group_id.in_(old_ids)))
            session.execute(
                delete(PrereqGroupRow).where(PrereqGroupRow.activity_id == activity_id)
            )
            for position, g in enumerate(groups):
                session.add(
                    PrereqGroupRow(
                        id=g.id,
                        activity_id=activity_id,
                        type=g.type,
                        n_required=g.n_required,
                        position=position,
                    )
                )
                # Parent rows must exist before the items referencing them
                session.flush()
                session.add_all(
                    PrereqItemRow(
                        id=item.id,
                        group_id=g.id,
                        prerequisite_activity_id=item.prerequisite_activity_id,
                        position=i,
                    )
                    for i, item in enumerate(g.items)
                )

    def list_prerequisite_groups(self, activity_id: UUID) -> list[PrerequisiteGroup]:
        with self._session_factory() as session:
            group_rows = session.execute(
                select(PrereqGroupRow)
                .where(PrereqGroupRow.activity_id == activity_id)
                .order_by(PrereqGroupRow.position)
            ).scalars().all()
            if not group_rows:
                return []
            item_rows = session.execute(
                select(PrereqItemRow)
                .where(PrereqItemRow.group_id.in_([g.id for g in group_rows]))
                .order_by(PrereqItemRow.position)
            ).scalars().all()

        items_by_group: dict[UUID, list[PrerequisiteItem]] = {}
        for r in item_rows:
            items_by_group.setdefault(r.group_id, []).append(
                PrerequisiteItem(
                    id=r.id,
                    group_id=r.group_id,
                    prerequisite_activity_id=r.prerequisite_activity_id,
                )
            )
        return [
            PrerequisiteGroup(
                id=g.id,
                activity_id=g.activity_id,
                type=g.type,  # type: ignore[arg-type]
                items=tuple(items_by_group.get(g.id, [])),
                n_required=g.n_required,
            )
            for g in group_rows
        ]

    def set_drip_rule(self, activity_id: UUID, rule: DripRule | None) -> None:
        with self._session_factory.begin() as session:
            session.execute(delete(DripRuleRow).where(DripRuleRow.activity_id == activity_id))
            if rule is None:
                return
            if isinstance(rule, FixedDateDrip):
                row = DripRuleRow(
                    activity_id=activity_id, type=rule.type, release_at=rule.release_at
                )
            else:
                row = DripRuleRow(
                    activity_id=activity_id,
                    type=rule.type,
                    anchor_activity_id=rule.anchor_activity_id,
                    delay_days=rule.delay_days,
                )
            session.add(row)

    def get_drip_rule(self, activity_id: UUID) -> DripRule | None:
        with self._session_factory() as session:
            row = session.get(DripRuleRow, activity_id)
            if row is None:
                return None
            if row.type == "fixed_date":
                return FixedDateDrip(activity_id=row.activity_id, release_at=row.release_at or 0)
            return DelayAfterActivityDrip(
                activity_id=row.activity_id,
                anchor_activity_id=row.anchor_activity_id,  # type: ignore[arg-type]
                delay_days=row.delay_days or 0,
            )

    # --- enrollments ---

    def add_enrollment(self, enrollment: Enrollment) -> None:
        self._add(
            EnrollmentRow(
                id=enrollment.id,
                user_id=enrollment.user_id,
                roles=list(enrollment.roles),
                active=enrollment.active,
            ),
            "enrollment",
        )

    def get_enrollment(self, enrollment_id: UUID) -> Enrollment | None:
        with self._session_factory() as session:
            row = session.get(EnrollmentRow, enrollment_id)
            return _row_to_enrollment(row) if row is not None else None

    def list_enrollments(self) -> list[Enrollment]:
        with self._session_factory() as session:
            rows = session.execute(select(EnrollmentRow)).scalars()
            return [_row_to_enrollment(r) for r in rows]

    def list_enrollments_for_user(self, user_id: UUID) -> list[Enrollment]:
        with self._session_factory() as session:
            rows = session.execute(
                select(EnrollmentRow).where(EnrollmentRow.user_id == user_id)
            ).scalars()
            return [_row_to_enrollment(r) for r in rows]

    # --- pathway assignments ---

    def add_assignment(self, assignment: PathwayAssignment) -> None:
        self._add(
            PathwayAssignmentRow(
                enrollment_id=assignment.enrollment_id,
                pathway_id=assignment.pathway_id,
                assignment_type=assignment.assignment_type,
                assigned_at=assignment.assigned_at,
                assigned_by=assignment.assigned_by,
            ),
            "assignment",
        )

    def remove_assignment(self, enrollment_id: UUID, pathway_id: UUID) -> bool:
        with self._session_factory.begin() as session:
            result = session.execute(
                delete(PathwayAssignmentRow).where(
                    PathwayAssignmentRow.enrollment_id == enrollment_id,
                    PathwayAssignmentRow.pathway_id == pathway_id,
                )
            )
            return result.rowcount > 0

    def list_assignments(self, enrollment_id: UUID) -> list[PathwayAssignment]:
        with self._session_factory() as session:
            rows = session.execute(
                select(PathwayAssignmentRow).where(
                    PathwayAssignmentRow.enrollment_id == enrollment_id
                )
            ).scalars()
            return [_row_to_assignment(r) for r in rows]

    def list_assignments_for_pathway(
        self, pathway_id: UUID
    ) -> list[PathwayAssignment]:
        with self._session_factory() as session:
            rows = session.execute(
                select(PathwayAssignmentRow).where(
                    PathwayAssignmentRow.pathway_id == pathway_id
                )
            ).scalars()
            return [_row_to_assignment(r) for r in rows]


def _row_to_pathway(row: PathwayRow) -> Pathway:
    return Pathway(
        id=row.id,
        name=row.name,
        target_roles=tuple(row.target_roles or ()),
        active=row.active,
    )


def _row_to_activity(row: ActivityRow) -> Activity:
    return Activity(
        id=row.id,
        pathway_id=row.pathway_id,
        title=row.title,
        type=row.type,  # type: ignore[arg-type]
        config=config_from_dict(row.config),
        weight=row.weight,
        ordering_hint=row.ordering_hint,
        active=row.active,
    )


def _row_to_enrollment(row: EnrollmentRow) -> Enrollment:
    return Enrollment(
        id=row.id,
        user_id=row.user_id,
        roles=tuple(row.roles or ()),
        active=row.active,
    )


def _row_to_assignment(row: PathwayAssignmentRow) -> PathwayAssignment:
    return PathwayAssignment(
        enrollment_id=row.enrollment_id,
        pathway_id=row.pathway_id,
        assignment_type=row.assignment_type,  # type: ignore[arg-type]
        assigned_at=row.assigned_at,
        assigned_by=row.assigned_by,
    )
