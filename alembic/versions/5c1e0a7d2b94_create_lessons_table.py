"""Create lessons table.

Revision ID: 5c1e0a7d2b94
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "5c1e0a7d2b94"
down_revision = None
branch_labels = None
depends_on = None

_UTC_NOW_ISO = """to_char((now() AT TIME ZONE 'UTC'), 'YYYY-MM-DD"T"HH24:MI:SS"Z"')"""


def upgrade() -> None:
  """Upgrade schema."""
  op.create_table(
    "lessons",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("outline", sa.Text(), nullable=False),
    sa.Column("status", sa.String(), nullable=False),
    sa.Column("generated_code", sa.Text(), nullable=True),
    sa.Column("error_message", sa.Text(), nullable=True),
    sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'{}'::jsonb"), nullable=False),
    sa.Column("created_at", sa.String(), server_default=sa.text(_UTC_NOW_ISO), nullable=False),
    sa.Column("updated_at", sa.String(), server_default=sa.text(_UTC_NOW_ISO), nullable=False),
    sa.PrimaryKeyConstraint("id"),
    sa.CheckConstraint("status IN ('generating', 'generated', 'failed')", name="ck_lessons_status"),
    if_not_exists=True,
  )
  op.create_index(op.f("ix_lessons_status"), "lessons", ["status"], unique=False, if_not_exists=True)
  op.create_index(op.f("ix_lessons_created_at"), "lessons", ["created_at"], unique=False, if_not_exists=True)


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_index(op.f("ix_lessons_created_at"), table_name="lessons", if_exists=True)
  op.drop_index(op.f("ix_lessons_status"), table_name="lessons", if_exists=True)
  op.drop_table("lessons", if_exists=True)
