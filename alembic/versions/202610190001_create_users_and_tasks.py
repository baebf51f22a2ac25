"""Create users and tasks collections

Revision ID: 202610190001
Revises:
Create Date: 2026-10-19
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "202610190001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=24), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=False, unique=True),
        sa.Column("pending_tasks", postgresql.ARRAY(sa.String(length=24)), nullable=False, server_default=sa.text("'{}'::varchar[]")),
        sa.Column("date_created", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("0")),
    )

    op.create_table(
        "tasks",
        sa.Column("id", sa.String(length=24), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("deadline", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("assigned_user", sa.String(length=24), nullable=False, server_default=sa.text("''")),
        sa.Column("assigned_user_name", sa.Text(), nullable=False, server_default=sa.text("'unassigned'")),
        sa.Column("date_created", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("0")),
    )
    op.create_index("ix_tasks_assigned_user", "tasks", ["assigned_user"])
    op.create_index("ix_tasks_completed", "tasks", ["completed"])


def downgrade() -> None:
    op.drop_index("ix_tasks_completed", table_name="tasks")
    op.drop_index("ix_tasks_assigned_user", table_name="tasks")
    op.drop_table("tasks")
    op.drop_table("users")
