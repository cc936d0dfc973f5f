"""core schema: projects, status history, hour ledger, requests, discussions, activity

Revision ID: 0001_core_schema
Revises:
Create Date: 2026-10-19
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001_core_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # projects
    op.create_table(
        "projects",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("code", sa.String(length=32), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default=sa.text("'Pending'")),
        sa.Column("total_hours", sa.Integer(), nullable=False),
        sa.Column("used_hours", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("priority", sa.String(length=16), nullable=False, server_default=sa.text("'Medium'")),
        sa.Column("category", sa.String(length=100), nullable=True),
        sa.Column("deadline", sa.Date(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completion_notes", sa.Text(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(length=128), nullable=True),
        sa.Column("created_by_name", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("code", name="uq_projects_code"),
        sa.CheckConstraint("total_hours >= 0", name="ck_projects_total_hours_nonneg"),
        sa.CheckConstraint("used_hours >= 0", name="ck_projects_used_hours_nonneg"),
        sa.CheckConstraint("used_hours <= total_hours", name="ck_projects_hours_valid"),
    )
    op.create_index("ix_projects_status", "projects", ["status"])
    op.create_index("ix_projects_status_deadline", "projects", ["status", "deadline"])

    # project_status_history (append-only)
    op.create_table(
        "project_status_history",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "project_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("projects.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("from_status", sa.String(length=32), nullable=True),
        sa.Column("to_status", sa.String(length=32), nullable=False),
        sa.Column("changed_by", sa.String(length=128), nullable=True),
        sa.Column("changed_by_name", sa.String(length=255), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_project_status_history_project", "project_status_history", ["project_id"])
    op.create_index("ix_project_status_history_created", "project_status_history", ["created_at"])

    # requests
    op.create_table(
        "requests",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("vendor", sa.String(length=100), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default=sa.text("'Submitted'")),
        sa.Column("priority", sa.String(length=16), nullable=False, server_default=sa.text("'Medium'")),
        sa.Column("created_by", sa.String(length=128), nullable=True),
        sa.Column("created_by_name", sa.String(length=255), nullable=False),
        sa.Column("assigned_to", sa.String(length=128), nullable=True),
        sa.Column("assigned_to_name", sa.String(length=255), nullable=True),
        sa.Column("estimated_hours", sa.Integer(), nullable=True),
        sa.Column("allocated_hours", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("actual_hours", sa.Integer(), nullable=True),
        sa.Column(
            "project_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("projects.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("allocated_hours >= 0", name="ck_requests_allocated_nonneg"),
    )
    op.create_index("ix_requests_status", "requests", ["status"])
    op.create_index("ix_requests_project", "requests", ["project_id"])
    op.create_index("ix_requests_assigned_to", "requests", ["assigned_to"])

    # project_hour_transactions (append-only ledger)
    op.create_table(
        "project_hour_transactions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "project_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("projects.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("seq", sa.Integer(), nullable=False),
        sa.Column(
            "request_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("requests.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("transaction_type", sa.String(length=32), nullable=False),
        sa.Column("hours", sa.Integer(), nullable=False),
        sa.Column("balance_before", sa.Integer(), nullable=False),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        sa.Column("budget_delta", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("performed_by", sa.String(length=128), nullable=True),
        sa.Column("performed_by_name", sa.String(length=255), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("project_id", "seq", name="uq_hour_transactions_project_seq"),
        sa.CheckConstraint(
            "transaction_type IN ('allocation','deallocation','adjustment','completion','rollover','extension')",
            name="ck_hour_transactions_type",
        ),
        sa.CheckConstraint("balance_after = balance_before + hours", name="ck_hour_transactions_balance"),
    )
    op.create_index("ix_hour_transactions_project", "project_hour_transactions", ["project_id"])
    op.create_index("ix_hour_transactions_request", "project_hour_transactions", ["request_id"])
    op.create_index("ix_hour_transactions_type", "project_hour_transactions", ["transaction_type"])

    # discussion_requests
    op.create_table(
        "discussion_requests",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "request_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("requests.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("engineer_id", sa.String(length=128), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("suggested_hours", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default=sa.text("'Pending'")),
        sa.Column("reviewed_by", sa.String(length=128), nullable=True),
        sa.Column("reviewed_by_name", sa.String(length=255), nullable=True),
        sa.Column("manager_response", sa.Text(), nullable=True),
        sa.Column("allocated_hours", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('Pending','Approved','Denied','Override')", name="ck_discussion_requests_status"
        ),
    )
    op.create_index("ix_discussion_requests_request_id", "discussion_requests", ["request_id"])
    op.create_index("ix_discussion_requests_status", "discussion_requests", ["status"])

    # request_activity (append-only)
    op.create_table(
        "request_activity",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "request_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("requests.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("actor_id", sa.String(length=128), nullable=True),
        sa.Column("actor_name", sa.String(length=255), nullable=False),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("details_json", postgresql.JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_request_activity_request", "request_activity", ["request_id"])
    op.create_index("ix_request_activity_created", "request_activity", ["created_at"])


def downgrade():
    op.drop_index("ix_request_activity_created", table_name="request_activity")
    op.drop_index("ix_request_activity_request", table_name="request_activity")
    op.drop_table("request_activity")

    op.drop_index("ix_discussion_requests_status", table_name="discussion_requests")
    op.drop_index("ix_discussion_requests_request_id", table_name="discussion_requests")
    op.drop_table("discussion_requests")

    op.drop_index("ix_hour_transactions_type", table_name="project_hour_transactions")
    op.drop_index("ix_hour_transactions_request", table_name="project_hour_transactions")
    op.drop_index("ix_hour_transactions_project", table_name="project_hour_transactions")
    op.drop_table("project_hour_transactions")

    op.drop_index("ix_requests_assigned_to", table_name="requests")
    op.drop_index("ix_requests_project", table_name="requests")
    op.drop_index("ix_requests_status", table_name="requests")
    op.drop_table("requests")

    op.drop_index("ix_project_status_history_created", table_name="project_status_history")
    op.drop_index("ix_project_status_history_project", table_name="project_status_history")
    op.drop_table("project_status_history")

    op.drop_index("ix_projects_status_deadline", table_name="projects")
    op.drop_index("ix_projects_status", table_name="projects")
    op.drop_table("projects")
