"""create commission requests and bonus tiers

Revision ID: 202610190003
Revises: 202610190002
Create Date: 2026-10-19 00:03:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610190003"
down_revision: str | None = "202610190002"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "commission_request",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("job_id", sa.Integer(), nullable=False),
        sa.Column("check_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("payment_id", sa.String(length=128), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("denial_reason", sa.Text(), nullable=True),
        sa.Column("submitted_by", sa.Integer(), nullable=False),
        sa.Column("reviewed_by", sa.Integer(), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["job_id"], ["crm_job.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "uq_commission_request_active_job",
        "commission_request",
        ["job_id"],
        unique=True,
        postgresql_where=sa.text("status <> 'denied'"),
        sqlite_where=sa.text("status <> 'denied'"),
    )
    op.create_index(
        "ix_commission_request_submitter_status",
        "commission_request",
        ["submitted_by", "status", "created_at"],
        unique=False,
    )

    op.create_table(
        "commission_bonus_tier",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("required_deals", sa.Integer(), nullable=False),
        sa.Column("bonus_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("required_deals"),
    )


def downgrade() -> None:
    op.drop_table("commission_bonus_tier")

    op.drop_index("ix_commission_request_submitter_status", table_name="commission_request")
    op.drop_index("uq_commission_request_active_job", table_name="commission_request")
    op.drop_table("commission_request")
