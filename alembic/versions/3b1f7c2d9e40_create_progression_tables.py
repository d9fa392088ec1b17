"""create progression tables

Revision ID: 3b1f7c2d9e40
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b1f7c2d9e40"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "pathway",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("target_roles", sa.JSON(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_table(
        "activity",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "pathway_id",
            sa.Uuid(),
            sa.ForeignKey("pathway.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("config", sa.JSON(), nullable=False),
        sa.Column("weight", sa.Float(), nullable=False, server_default="1.0"),
        sa.Column("ordering_hint", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index("ix_activity_pathway_id", "activity", ["pathway_id"])

    op.create_table(
        "activity_prereq_group",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "activity_id",
            sa.Uuid(),
            sa.ForeignKey("activity.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("n_required", sa.Integer(), nullable=True),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index(
        "ix_activity_prereq_group_activity_id", "activity_prereq_group", ["activity_id"]
    )
    op.create_table(
        "activity_prereq_item",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "group_id",
            sa.Uuid(),
            sa.ForeignKey("activity_prereq_group.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "prerequisite_activity_id",
            sa.Uuid(),
            sa.ForeignKey("activity.id"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index(
        "ix_activity_prereq_item_group_id", "activity_prereq_item", ["group_id"]
    )
    op.create_table(
        "activity_drip_rule",
        sa.Column(
            "activity_id",
            sa.Uuid(),
            sa.ForeignKey("activity.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("release_at", sa.BigInteger(), nullable=True),
        sa.Column(
            "anchor_activity_id", sa.Uuid(), sa.ForeignKey("activity.id"), nullable=True
        ),
        sa.Column("delay_days", sa.Integer(), nullable=True),
    )

    op.create_table(
        "enrollment",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("roles", sa.JSON(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index("ix_enrollment_user_id", "enrollment", ["user_id"])
    op.create_table(
        "pathway_assignment",
        sa.Column(
            "enrollment_id",
            sa.Uuid(),
            sa.ForeignKey("enrollment.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "pathway_id",
            sa.Uuid(),
            sa.ForeignKey("pathway.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("assignment_type", sa.String(length=16), nullable=False),
        sa.Column("assigned_at", sa.BigInteger(), nullable=False),
        sa.Column("assigned_by", sa.Uuid(), nullable=True),
    )

    op.create_table(
        "activity_state",
        sa.Column(
            "enrollment_id",
            sa.Uuid(),
            sa.ForeignKey("enrollment.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "activity_id",
            sa.Uuid(),
            sa.ForeignKey("activity.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="locked"),
        sa.Column("completion_percent", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed_at", sa.BigInteger(), nullable=True),
        sa.Column("last_computed_at", sa.BigInteger(), nullable=False, server_default="0"),
    )
    op.create_table(
        "activity_override",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "enrollment_id",
            sa.Uuid(),
            sa.ForeignKey("enrollment.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "activity_id",
            sa.Uuid(),
            sa.ForeignKey("activity.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("created_at", sa.BigInteger(), nullable=False),
        sa.Column("applied_by", sa.Uuid(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("expires_at", sa.BigInteger(), nullable=True),
        sa.Column("closed_at", sa.BigInteger(), nullable=True),
    )
    op.create_index(
        "ix_activity_override_key",
        "activity_override",
        ["enrollment_id", "activity_id"],
    )
    op.create_table(
        "completion_rollup",
        sa.Column(
            "enrollment_id",
            sa.Uuid(),
            sa.ForeignKey("enrollment.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("pathway_id", sa.Uuid(), nullable=True),
        sa.Column("rollup_percent", sa.Float(), nullable=False, server_default="0"),
        sa.Column(
            "rollup_status", sa.String(length=16), nullable=False, server_default="not_started"
        ),
        sa.Column("computed_at", sa.BigInteger(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("completion_rollup")
    op.drop_index("ix_activity_override_key", table_name="activity_override")
    op.drop_table("activity_override")
    op.drop_table("activity_state")
    op.drop_table("pathway_assignment")
    op.drop_index("ix_enrollment_user_id", table_name="enrollment")
    op.drop_table("enrollment")
    op.drop_table("activity_drip_rule")
    op.drop_index("ix_activity_prereq_item_group_id", table_name="activity_prereq_item")
    op.drop_table("activity_prereq_item")
    op.drop_index("ix_activity_prereq_group_activity_id", table_name="activity_prereq_group")
    op.drop_table("activity_prereq_group")
    op.drop_index("ix_activity_pathway_id", table_name="activity")
    op.drop_table("activity")
    op.drop_table("pathway")
