"""inbox items, projects and tasks

Revision ID: 0001_inbox_tables
Revises:
Create Date: 2026-10-19

Initial schema for inbox capture and HITL approval.
"""

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_inbox_tables"
down_revision = None
branch_labels = None
depends_on = None

_json = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    op.create_table(
        "inbox_items",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("raw_text", sa.Text(), nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                "unprocessed",
                "processed",
                "archived",
                name="inbox_item_status",
                native_enum=False,
            ),
            nullable=False,
            server_default="unprocessed",
        ),
        sa.Column("details", _json, nullable=True),
        sa.Column("created_task_id", sa.String(36), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_inbox_items_user_status", "inbox_items", ["user_id", "status"]
    )
    op.create_index(
        "ix_inbox_items_user_created", "inbox_items", ["user_id", "created_at"]
    )

    op.create_table(
        "projects",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("zone_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                "active",
                "on_hold",
                "completed",
                "archived",
                name="project_status",
                native_enum=False,
            ),
            nullable=False,
            server_default="active",
        ),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("details", _json, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_projects_user", "projects", ["user_id"])

    op.create_table(
        "tasks",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("project_id", sa.String(36), nullable=True),
        sa.Column("parent_task_id", sa.String(36), nullable=True),
        sa.Column("zone_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                "todo",
                "in_progress",
                "done",
                "canceled",
                name="task_status",
                native_enum=False,
            ),
            nullable=False,
            server_default="todo",
        ),
        sa.Column(
            "priority",
            sa.Enum("low", "medium", "high", name="task_priority", native_enum=False),
            nullable=False,
            server_default="medium",
        ),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("details", _json, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_tasks_user", "tasks", ["user_id"])
    op.create_index("ix_tasks_project", "tasks", ["project_id"])


def downgrade() -> None:
    op.drop_index("ix_tasks_project", table_name="tasks")
    op.drop_index("ix_tasks_user", table_name="tasks")
    op.drop_table("tasks")
    op.drop_index("ix_projects_user", table_name="projects")
    op.drop_table("projects")
    op.drop_index("ix_inbox_items_user_created", table_name="inbox_items")
    op.drop_index("ix_inbox_items_user_status", table_name="inbox_items")
    op.drop_table("inbox_items")
