"""Create urgent_shift_alerts table.

Revision ID: 001_urgent_shift_alerts
Revises:
Create Date: 2026-10-19
"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "001_urgent_shift_alerts"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create enum types using raw SQL to avoid checkfirst issues with asyncpg
    op.execute(sa.text(
        "DO $$ BEGIN "
        "CREATE TYPE urgentalerttype AS ENUM ('unassigned_24h', 'unconfirmed_12h'); "
        "EXCEPTION WHEN duplicate_object THEN NULL; "
        "END $$"
    ))
    op.execute(sa.text(
        "DO $$ BEGIN "
        "CREATE TYPE urgentalertpriority AS ENUM "
        "('low', 'medium', 'high', 'critical'); "
        "EXCEPTION WHEN duplicate_object THEN NULL; "
        "END $$"
    ))
    op.execute(sa.text(
        "DO $$ BEGIN "
        "CREATE TYPE urgentalertstatus AS ENUM "
        "('active', 'acknowledged', 'resolved'); "
        "EXCEPTION WHEN duplicate_object THEN NULL; "
        "END $$"
    ))

    op.create_table(
        "urgent_shift_alerts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "shift_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("shifts.id"),
            nullable=False,
        ),
        sa.Column(
            "alert_type",
            postgresql.ENUM(name="urgentalerttype", create_type=False),
            nullable=False,
        ),
        sa.Column(
            "priority",
            postgresql.ENUM(name="urgentalertpriority", create_type=False),
            nullable=False,
        ),
        sa.Column(
            "status",
            postgresql.ENUM(name="urgentalertstatus", create_type=False),
            nullable=False,
            server_default="active",
        ),
        sa.Column("hours_until_shift", sa.Float(), nullable=False),
        sa.Column(
            "urgency_score",
            sa.Float(),
            nullable=False,
            server_default="0",
        ),
        sa.Column("shift_starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "escalation_level",
            sa.Integer(),
            nullable=False,
            server_default="1",
        ),
        sa.Column("last_escalated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("acknowledged_by", sa.String(255), nullable=True),
        sa.Column("acknowledged_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_by", sa.String(255), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolution_reason", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.CheckConstraint(
            "escalation_level BETWEEN 1 AND 5",
            name="ck_urgent_shift_alerts_escalation_level",
        ),
    )

    op.create_index(
        "ix_urgent_shift_alerts_shift_id",
        "urgent_shift_alerts",
        ["shift_id"],
    )
    op.create_index(
        "ix_urgent_shift_alerts_status",
        "urgent_shift_alerts",
        ["status"],
    )
    op.create_index(
        "ix_urgent_shift_alerts_shift_starts_at",
        "urgent_shift_alerts",
        ["shift_starts_at"],
    )
    # At most one active alert per shift
    op.create_index(
        "uq_urgent_shift_alerts_active_shift",
        "urgent_shift_alerts",
        ["shift_id"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
    )


def downgrade() -> None:
    op.drop_index(
        "uq_urgent_shift_alerts_active_shift",
        table_name="urgent_shift_alerts",
    )
    op.drop_index(
        "ix_urgent_shift_alerts_shift_starts_at",
        table_name="urgent_shift_alerts",
    )
    op.drop_index("ix_urgent_shift_alerts_status", table_name="urgent_shift_alerts")
    op.drop_index("ix_urgent_shift_alerts_shift_id", table_name="urgent_shift_alerts")
    op.drop_table("urgent_shift_alerts")
    op.execute(sa.text("DROP TYPE IF EXISTS urgentalertstatus"))
    op.execute(sa.text("DROP TYPE IF EXISTS urgentalertpriority"))
    op.execute(sa.text("DROP TYPE IF EXISTS urgentalerttype"))
