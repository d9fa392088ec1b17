"""SQLAlchemy table definitions.

These map to the frozen dataclass domain models in pathway_progress/models/.
The domain models stay as-is; these tables are the persistence layer.
Repos convert between SQLAlchemy rows and domain dataclasses.

Column types are the generic ones (Uuid, JSON) so the same metadata runs
on PostgreSQL in production and SQLite in tests.  Timestamps are epoch
seconds.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from pathway_progress.db.engine import Base

# --- Curriculum configuration (administrator-owned) ---


class PathwayRow(Base):
    __tablename__ = "pathway"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    target_roles: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class ActivityRow(Base):
    __tablename__ = "activity"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    pathway_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("pathway.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    config: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    weight: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    ordering_hint: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class PrereqGroupRow(Base):
    __tablename__ = "activity_prereq_group"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    activity_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("activity.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    n_required: Mapped[int | None] = mapped_column(Integer, nullable=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class PrereqItemRow(Base):
    __tablename__ = "activity_prereq_item"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    group_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("activity_prereq_group.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    prerequisite_activity_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("activity.id"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class DripRuleRow(Base):
    __tablename__ = "activity_drip_rule"

    # One rule per activity at most
    activity_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("activity.id", ondelete="CASCADE"), primary_key=True
    )
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    release_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    anchor_activity_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("activity.id"), nullable=True
    )
    delay_days: Mapped[int | None] = mapped_column(Integer, nullable=True)


# --- Enrollments and assignment ---


class EnrollmentRow(Base):
    __tablename__ = "enrollment"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    roles: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class PathwayAssignmentRow(Base):
    __tablename__ = "pathway_assignment"

    enrollment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("enrollment.id", ondelete="CASCADE"), primary_key=True
    )
    pathway_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("pathway.id", ondelete="CASCADE"), primary_key=True
    )
    assignment_type: Mapped[str] = mapped_column(String(16), nullable=False)
    assigned_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    assigned_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)


# --- Engine-owned runtime state ---


class ActivityStateRow(Base):
    __tablename__ = "activity_state"

    enrollment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("enrollment.id", ondelete="CASCADE"), primary_key=True
    )
    activity_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("activity.id", ondelete="CASCADE"), primary_key=True
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="locked")
    completion_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    last_computed_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class ActivityOverrideRow(Base):
    __tablename__ = "activity_override"
    __table_args__ = (Index("ix_activity_override_key", "enrollment_id", "activity_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    enrollment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("enrollment.id", ondelete="CASCADE"), nullable=False
    )
    activity_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("activity.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    applied_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    expires_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    closed_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)


class CompletionRollupRow(Base):
    __tablename__ = "completion_rollup"

    enrollment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("enrollment.id", ondelete="CASCADE"), primary_key=True
    )
    pathway_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    rollup_percent: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    rollup_status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="not_started"
    )
    computed_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
