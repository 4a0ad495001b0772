"""Initial OKR schema

Revision ID: 0001_init
Revises:
Create Date: 2026-10-16
"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def _ts(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    op.create_table(
        "companies",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("slug", sa.String(length=120), nullable=False, unique=True),
        sa.Column("logo_url", sa.String(length=500)),
        sa.Column("settings", sa.JSON()),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_table(
        "profiles",
        sa.Column("id", sa.String(length=255), primary_key=True),
        sa.Column("company_id", sa.String(length=36), sa.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("full_name", sa.String(length=200)),
        sa.Column("role_type", sa.String(length=20), nullable=False),
        sa.Column("department", sa.String(length=120)),
        _ts("created_at"),
        _ts("updated_at"),
        sa.CheckConstraint("role_type IN ('corporativo','gerente','empleado')", name="ck_profiles_role_type"),
    )
    op.create_index("ix_profiles_company_id", "profiles", ["company_id"])
    op.create_table(
        "profile_permissions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("profile_id", sa.String(length=255), sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("permission", sa.String(length=80), nullable=False),
        _ts("granted_at"),
        sa.UniqueConstraint("profile_id", "permission", name="uq_profile_permission"),
    )
    op.create_index("ix_profile_permissions_profile_id", "profile_permissions", ["profile_id"])
    op.create_table(
        "objectives",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("company_id", sa.String(length=36), sa.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False),
        sa.Column("owner_id", sa.String(length=255), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("department", sa.String(length=120)),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
        sa.Column("priority", sa.String(length=10), nullable=False, server_default="medium"),
        sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("start_date", sa.Date()),
        sa.Column("end_date", sa.Date()),
        _ts("created_at"),
        _ts("updated_at"),
        sa.CheckConstraint("progress >= 0 AND progress <= 100", name="ck_objectives_progress"),
    )
    op.create_index("ix_objectives_company_id", "objectives", ["company_id"])
    op.create_index("ix_objectives_owner_id", "objectives", ["owner_id"])
    op.create_index("ix_objectives_company_department", "objectives", ["company_id", "department"])
    op.create_table(
        "key_results",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("company_id", sa.String(length=36), sa.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False),
        sa.Column("objective_id", sa.String(length=36), sa.ForeignKey("objectives.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("target_value", sa.Float(), nullable=False),
        sa.Column("current_value", sa.Float(), nullable=False, server_default="0"),
        sa.Column("unit", sa.String(length=40)),
        sa.Column("progress_percentage", sa.Float(), nullable=False, server_default="0"),
        sa.Column("created_by", sa.String(length=255), sa.ForeignKey("profiles.id")),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_key_results_company_id", "key_results", ["company_id"])
    op.create_index("ix_key_results_objective_id", "key_results", ["objective_id"])
    op.create_table(
        "initiatives",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("company_id", sa.String(length=36), sa.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False),
        sa.Column("objective_id", sa.String(length=36), sa.ForeignKey("objectives.id", ondelete="CASCADE"), nullable=False),
        sa.Column("owner_id", sa.String(length=255), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="planning"),
        sa.Column("priority", sa.String(length=10), nullable=False, server_default="medium"),
        sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("start_date", sa.Date()),
        sa.Column("end_date", sa.Date()),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_initiatives_company_id", "initiatives", ["company_id"])
    op.create_index("ix_initiatives_objective_id", "initiatives", ["objective_id"])
    op.create_index("ix_initiatives_owner_id", "initiatives", ["owner_id"])
    op.create_table(
        "activities",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("company_id", sa.String(length=36), sa.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False),
        sa.Column("initiative_id", sa.String(length=36), sa.ForeignKey("initiatives.id", ondelete="CASCADE"), nullable=False),
        sa.Column("owner_id", sa.String(length=255), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="todo"),
        sa.Column("priority", sa.String(length=10), nullable=False, server_default="medium"),
        sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("due_date", sa.Date()),
        _ts("completed_at", nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_activities_company_id", "activities", ["company_id"])
    op.create_index("ix_activities_initiative_id", "activities", ["initiative_id"])
    op.create_index("ix_activities_owner_id", "activities", ["owner_id"])
    op.create_table(
        "invitations",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("company_id", sa.String(length=36), sa.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("token", sa.String(length=128), nullable=False, unique=True),
        sa.Column("role_type", sa.String(length=20), nullable=False),
        sa.Column("department", sa.String(length=120)),
        sa.Column("invited_by", sa.String(length=255), sa.ForeignKey("profiles.id")),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        _ts("expires_at"),
        _ts("accepted_at", nullable=True),
        sa.Column("accepted_by", sa.String(length=255)),
        sa.Column("reminders_sent", sa.Integer(), nullable=False, server_default="0"),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_invitations_company_id", "invitations", ["company_id"])
    op.create_index("ix_invitations_email", "invitations", ["email"])
    op.create_table(
        "onboarding_sessions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=255), nullable=False, unique=True),
        sa.Column("email", sa.String(length=320)),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="in_progress"),
        sa.Column("current_step", sa.String(length=30), nullable=False, server_default="create_org"),
        sa.Column("partial_data", sa.JSON()),
        sa.Column("invitation_token", sa.String(length=128)),
        _ts("started_at"),
        _ts("completed_at", nullable=True),
        _ts("last_activity"),
    )
    op.create_table(
        "ai_insights",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("company_id", sa.String(length=36), sa.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False),
        sa.Column("profile_id", sa.String(length=255), sa.ForeignKey("profiles.id", ondelete="SET NULL")),
        sa.Column("entity_type", sa.String(length=30)),
        sa.Column("entity_id", sa.String(length=36)),
        sa.Column("category", sa.String(length=30), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("confidence", sa.Float()),
        _ts("created_at"),
    )
    op.create_index("ix_ai_insights_company_id", "ai_insights", ["company_id"])
    op.create_table(
        "email_events",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("event", sa.String(length=60), nullable=False),
        sa.Column("email", sa.String(length=320)),
        sa.Column("message_id", sa.String(length=255)),
        sa.Column("payload", sa.JSON()),
        _ts("received_at"),
    )
    op.create_table(
        "import_logs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("company_id", sa.String(length=36), sa.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.String(length=255), sa.ForeignKey("profiles.id", ondelete="SET NULL")),
        sa.Column("file_name", sa.String(length=255), nullable=False),
        sa.Column("file_type", sa.String(length=10), nullable=False),
        sa.Column("import_type", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="processing"),
        sa.Column("total_records", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("successful_records", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failed_records", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_details", sa.JSON()),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_import_logs_company_id", "import_logs", ["company_id"])


def downgrade() -> None:
    for table in (
        "import_logs",
        "email_events",
        "ai_insights",
        "onboarding_sessions",
        "invitations",
        "activities",
        "initiatives",
        "key_results",
        "objectives",
        "profile_permissions",
        "profiles",
        "companies",
    ):
        op.drop_table(table)
