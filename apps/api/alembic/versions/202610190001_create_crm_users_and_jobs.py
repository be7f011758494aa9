"""create crm users and jobs

Revision ID: 202610190001
Revises:
Create Date: 2026-10-19 00:01:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610190001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "crm_user",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("role", sa.String(length=32), nullable=False, server_default="field_crew"),
        sa.Column("team_lead_id", sa.Integer(), nullable=True),
        sa.Column("rep_code", sa.String(length=32), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["team_lead_id"], ["crm_user.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index("ix_crm_user_team_lead_id", "crm_user", ["team_lead_id"], unique=False)

    op.create_table(
        "crm_job",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="lead"),
        sa.Column("assigned_to", sa.Integer(), nullable=True),
        sa.Column("customer_name", sa.Text(), nullable=False),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("deal_type", sa.String(length=16), nullable=True),
        sa.Column("priority", sa.String(length=16), nullable=True),
        sa.Column("scope_of_work", sa.Text(), nullable=True),
        sa.Column("scheduled_date", sa.Date(), nullable=True),
        sa.Column("internal_notes", sa.Text(), nullable=True),
        sa.Column("customer_status_message", sa.Text(), nullable=True),
        sa.Column("project_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("lien_rights_status", sa.String(length=16), nullable=False, server_default="not_applicable"),
        sa.Column("lien_rights_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("amount_paid", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_crm_job_assigned_to_status", "crm_job", ["assigned_to", "status"], unique=False)
    op.create_index("ix_crm_job_lien_rights_status", "crm_job", ["lien_rights_status"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_crm_job_lien_rights_status", table_name="crm_job")
    op.drop_index("ix_crm_job_assigned_to_status", table_name="crm_job")
    op.drop_table("crm_job")

    op.drop_index("ix_crm_user_team_lead_id", table_name="crm_user")
    op.drop_table("crm_user")
