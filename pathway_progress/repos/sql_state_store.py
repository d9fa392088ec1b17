"""SQL implementation of StateStore.

activity_state and completion_rollup are written with INSERT ... ON
CONFLICT DO UPDATE (PostgreSQL and SQLite dialects); other dialects fall
back to Session.merge().
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from pathway_progress.db.tables import (
    ActivityOverrideRow,
    ActivityStateRow,
    CompletionRollupRow,
)
from pathway_progress.models.override import ActivityOverride
from pathway_progress.models.progress import ActivityState, CompletionRollup
from pathway_progress.repos.state_store import guard_terminal


def _upsert(
    session: Session,
    row_type: type,
    values: dict[str, Any],
    key_columns: tuple[str, ...],
) -> None:
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        session.merge(row_type(**values))
        return

    stmt = insert(row_type).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=list(key_columns),
        set_={k: v for k, v in values.items() if k not in key_columns},
    )
    session.execute(stmt)


class SqlStateStore:
    """Satisfies the StateStore Protocol; one transaction per call."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    # --- activity_state ---

    def get_state(self, enrollment_id: UUID, activity_id: UUID) -> ActivityState | None:
        with self._session_factory() as session:
            row = session.get(ActivityStateRow, (enrollment_id, activity_id))
            return _row_to_state(row) if row is not None else None

    def list_states(self, enrollment_id: UUID) -> list[ActivityState]:
        with self._session_factory() as session:
            rows = session.execute(
                select(ActivityStateRow).where(
                    ActivityStateRow.enrollment_id == enrollment_id
                )
            ).scalars()
            return [_row_to_state(r) for r in rows]

    def upsert_state(self, state: ActivityState) -> None:
        with self._session_factory.begin() as session:
            existing = session.execute(
                select(ActivityStateRow)
                .where(
                    ActivityStateRow.enrollment_id == state.enrollment_id,
                    ActivityStateRow.activity_id == state.activity_id,
                )
                .with_for_update()
            ).scalar_one_or_none()
            guard_terminal(_row_to_state(existing) if existing else None, state)
            _upsert(
                session,
                ActivityStateRow,
                {
                    "enrollment_id": state.enrollment_id,
                    "activity_id": state.activity_id,
                    "status": state.status,
                    "completion_percent": state.completion_percent,
                    "completed_at": state.completed_at,
                    "last_computed_at": state.last_computed_at,
                },
                ("enrollment_id", "activity_id"),
            )

    # --- activity_override ---

    def get_active_override(
        self, enrollment_id: UUID, activity_id: UUID
    ) -> ActivityOverride | None:
        with self._session_factory() as session:
            row = session.execute(
                select(ActivityOverrideRow)
                .where(
                    ActivityOverrideRow.enrollment_id == enrollment_id,
                    ActivityOverrideRow.activity_id == activity_id,
                    ActivityOverrideRow.closed_at.is_(None),
                )
                .order_by(ActivityOverrideRow.created_at.desc())
                .limit(1)
            ).scalar_one_or_none()
            return _row_to_override(row) if row is not None else None

    def add_override(self, override: ActivityOverride) -> ActivityOverride | None:
        """Store override, closing any active one for the same key.

        Returns the superseded override (now closed), if any.
        """
        with self._session_factory.begin() as session:
            superseded = self._close_active(
                session, override.enrollment_id, override.activity_id, override.created_at
            )
            session.add(
                ActivityOverrideRow(
                    id=override.id,
                    enrollment_id=override.enrollment_id,
                    activity_id=override.activity_id,
                    type=override.type,
                    created_at=override.created_at,
                    applied_by=override.applied_by,
                    reason=override.reason,
                    expires_at=override.expires_at,
                    closed_at=override.closed_at,
                )
            )
        return superseded

    def close_override(
        self, enrollment_id: UUID, activity_id: UUID, closed_at: int
    ) -> ActivityOverride | None:
        with self._session_factory.begin() as session:
            return self._close_active(session, enrollment_id, activity_id, closed_at)

    @staticmethod
    def _close_active(
        session: Session, enrollment_id: UUID, activity_id: UUID, closed_at: int
    ) -> ActivityOverride | None:
        rows = session.execute(
            select(ActivityOverrideRow)
            .where(
                ActivityOverrideRow.enrollment_id == enrollment_id,
                ActivityOverrideRow.activity_id == activity_id,
                ActivityOverrideRow.closed_at.is_(None),
            )
            .with_for_update()
        ).scalars().all()
        if not rows:
            return None
        session.execute(
            update(ActivityOverrideRow)
            .where(ActivityOverrideRow.id.in_([r.id for r in rows]))
            .values(closed_at=closed_at)
        )
        latest = max(rows, key=lambda r: r.created_at)
        return replace(_row_to_override(latest), closed_at=closed_at)

    def list_overrides(
        self, enrollment_id: UUID, activity_id: UUID
    ) -> list[ActivityOverride]:
        with self._session_factory() as session:
            rows = session.execute(
                select(ActivityOverrideRow)
                .where(
                    ActivityOverrideRow.enrollment_id == enrollment_id,
                    ActivityOverrideRow.activity_id == activity_id,
                )
                .order_by(ActivityOverrideRow.created_at)
            ).scalars()
            return [_row_to_override(r) for r in rows]

    # --- completion_rollup ---

    def get_rollup(self, enrollment_id: UUID) -> CompletionRollup | None:
        with self._session_factory() as session:
            row = session.get(CompletionRollupRow, enrollment_id)
            return _row_to_rollup(row) if row is not None else None

    def upsert_rollup(self, rollup: CompletionRollup) -> None:
        with self._session_factory.begin() as session:
            _upsert(
                session,
                CompletionRollupRow,
                {
                    "enrollment_id": rollup.enrollment_id,
                    "pathway_id": rollup.pathway_id,
                    "rollup_percent": rollup.rollup_percent,
                    "rollup_status": rollup.rollup_status,
                    "computed_at": rollup.computed_at,
                },
                ("enrollment_id",),
            )

    def list_rollups(self, enrollment_ids: Iterable[UUID]) -> list[CompletionRollup]:
        ids = list(enrollment_ids)
        if not ids:
            return []
        with self._session_factory() as session:
            rows = session.execute(
                select(CompletionRollupRow).where(CompletionRollupRow.enrollment_id.in_(ids))
            ).scalars()
            return [_row_to_rollup(r) for r in rows]


def _row_to_state(row: ActivityStateRow) -> ActivityState:
    return ActivityState(
        enrollment_id=row.enrollment_id,
        activity_id=row.activity_id,
        status=row.status,  # type: ignore[arg-type]
        completion_percent=row.completion_percent,
        completed_at=row.completed_at,
        last_computed_at=row.last_computed_at,
    )


def _row_to_override(row: ActivityOverrideRow) -> ActivityOverride:
    return ActivityOverride(
        id=row.id,
        enrollment_id=row.enrollment_id,
        activity_id=row.activity_id,
        type=row.type,  # type: ignore[arg-type]
        created_at=row.created_at,
        applied_by=row.applied_by,
        reason=row.reason,
        expires_at=row.expires_at,
        closed_at=row.closed_at,
    )


def _row_to_rollup(row: CompletionRollupRow) -> CompletionRollup:
    return CompletionRollup(
        enrollment_id=row.enrollment_id,
        pathway_id=row.pathway_id,
        rollup_percent=row.rollup_percent,
        rollup_status=row.rollup_status,  # type: ignore[arg-type]
        computed_at=row.computed_at,
    )
