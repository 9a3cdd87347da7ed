"""Create the bulk upload schema.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column("id", sa.Integer(), sa.Identity(always=False), primary_key=True)


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        server_default=sa.func.now(),
        nullable=False,
    )


def _updated_at() -> sa.Column:
    return sa.Column(
        "updated_at",
        sa.DateTime(timezone=True),
        server_default=sa.func.now(),
        nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        "users",
        _id(),
        sa.Column("keycloak_user_id", sa.Text(), nullable=False, unique=True),
        _created_at(),
    )

    op.create_table(
        "sources",
        _id(),
        sa.Column("label", sa.Text(), nullable=False),
        sa.Column("funder_short_code", sa.Text(), nullable=True),
        _created_at(),
    )

    op.create_table(
        "base_fields",
        _id(),
        sa.Column("label", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), server_default="", nullable=False),
        sa.Column("short_code", sa.Text(), nullable=False, unique=True),
        sa.Column("data_type", sa.Text(), nullable=False),
        sa.Column("scope", sa.Text(), server_default="proposal", nullable=False),
        _created_at(),
        sa.CheckConstraint(
            "data_type IN ('string', 'number', 'phone_number', 'email', 'url', 'boolean')",
            name="base_fields_data_type_check",
        ),
        sa.CheckConstraint(
            "scope IN ('proposal', 'organization')",
            name="base_fields_scope_check",
        ),
    )

    op.create_table(
        "bulk_upload_tasks",
        _id(),
        sa.Column("source_id", sa.Integer(), sa.ForeignKey("sources.id"), nullable=False),
        sa.Column("source_key", sa.Text(), nullable=False),
        sa.Column("file_name", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), server_default="pending", nullable=False),
        sa.Column("file_size", sa.BigInteger(), nullable=True),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint(
            "status IN ('pending', 'in_progress', 'completed', 'failed')",
            name="bulk_upload_tasks_status_check",
        ),
    )
    op.create_index(
        "idx_bulk_upload_tasks_status_updated",
        "bulk_upload_tasks",
        ["status", "updated_at"],
    )
    op.create_index(
        "idx_bulk_upload_tasks_created_by", "bulk_upload_tasks", ["created_by"]
    )

    op.create_table(
        "opportunities",
        _id(),
        sa.Column("title", sa.Text(), nullable=False),
        _created_at(),
    )

    op.create_table(
        "application_forms",
        _id(),
        sa.Column(
            "opportunity_id",
            sa.Integer(),
            sa.ForeignKey("opportunities.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("version", sa.Integer(), server_default="1", nullable=False),
        sa.Column("external_id", sa.Text(), nullable=True),
        _created_at(),
    )

    op.create_table(
        "application_form_fields",
        _id(),
        sa.Column(
            "application_form_id",
            sa.Integer(),
            sa.ForeignKey("application_forms.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "base_field_id", sa.Integer(), sa.ForeignKey("base_fields.id"), nullable=False
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("label", sa.Text(), nullable=False),
        _created_at(),
        sa.UniqueConstraint(
            "application_form_id",
            "position",
            name="application_form_fields_form_position_key",
        ),
    )

    op.create_table(
        "proposals",
        _id(),
        sa.Column(
            "opportunity_id", sa.Integer(), sa.ForeignKey("opportunities.id"), nullable=False
        ),
        sa.Column("external_id", sa.Text(), nullable=False),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        _created_at(),
    )

    op.create_table(
        "proposal_versions",
        _id(),
        sa.Column(
            "proposal_id",
            sa.Integer(),
            sa.ForeignKey("proposals.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "application_form_id",
            sa.Integer(),
            sa.ForeignKey("application_forms.id"),
            nullable=False,
        ),
        sa.Column("source_id", sa.Integer(), sa.ForeignKey("sources.id"), nullable=True),
        sa.Column("version", sa.Integer(), server_default="1", nullable=False),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        _created_at(),
        sa.UniqueConstraint(
            "proposal_id", "version", name="proposal_versions_proposal_version_key"
        ),
    )

    op.create_table(
        "proposal_field_values",
        _id(),
        sa.Column(
            "proposal_version_id",
            sa.Integer(),
            sa.ForeignKey("proposal_versions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "application_form_field_id",
            sa.Integer(),
            sa.ForeignKey("application_form_fields.id"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column("is_valid", sa.Boolean(), nullable=False),
        _created_at(),
    )
    op.create_index(
        "idx_proposal_field_values_version",
        "proposal_field_values",
        ["proposal_version_id"],
    )

    op.create_table(
        "changemakers",
        _id(),
        sa.Column("tax_id", sa.Text(), nullable=False, unique=True),
        sa.Column("name", sa.Text(), nullable=False),
        _created_at(),
    )

    op.create_table(
        "changemakers_proposals",
        _id(),
        sa.Column(
            "changemaker_id",
            sa.Integer(),
            sa.ForeignKey("changemakers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "proposal_id",
            sa.Integer(),
            sa.ForeignKey("proposals.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _created_at(),
        sa.UniqueConstraint(
            "changemaker_id",
            "proposal_id",
            name="changemakers_proposals_changemaker_proposal_key",
        ),
    )

    op.create_table(
        "jobs",
        _id(),
        sa.Column("task_identifier", sa.Text(), nullable=False),
        sa.Column("payload", JSONB(), nullable=False),
        sa.Column("status", sa.Text(), server_default="queued", nullable=False),
        sa.Column("attempts", sa.Integer(), server_default="0", nullable=False),
        sa.Column("locked_by", sa.Text(), nullable=True),
        sa.Column("locked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column(
            "run_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint(
            "status IN ('queued', 'running', 'completed', 'failed')",
            name="jobs_status_check",
        ),
    )
    op.create_index("idx_jobs_status_run_at", "jobs", ["status", "run_at"])


def downgrade() -> None:
    op.drop_index("idx_jobs_status_run_at", table_name="jobs")
    op.drop_table("jobs")
    op.drop_table("changemakers_proposals")
    op.drop_table("changemakers")
    op.drop_index("idx_proposal_field_values_version", table_name="proposal_field_values")
    op.drop_table("proposal_field_values")
    op.drop_table("proposal_versions")
    op.drop_table("proposals")
    op.drop_table("application_form_fields")
    op.drop_table("application_forms")
    op.drop_table("opportunities")
    op.drop_index("idx_bulk_upload_tasks_created_by", table_name="bulk_upload_tasks")
    op.drop_index("idx_bulk_upload_tasks_status_updated", table_name="bulk_upload_tasks")
    op.drop_table("bulk_upload_tasks")
    op.drop_table("base_fields")
    op.drop_table("sources")
    op.drop_table("users")
