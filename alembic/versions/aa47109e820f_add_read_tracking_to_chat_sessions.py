"""add read tracking columns to chat_sessions

Revision ID: aa47109e820f
Revises: 207e161c145e
Create Date: 2026-02-08 10:05:42.527461

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import mysql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "aa47109e820f"
down_revision: str | Sequence[str] | None = "207e161c145e"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

Timestamp = sa.DateTime(timezone=True).with_variant(mysql.DATETIME(fsp=6), "mysql")


def upgrade() -> None:
    """Add per-role last-read timestamps."""
    op.add_column(
        "chat_sessions", sa.Column("companion_last_read_at", Timestamp, nullable=True)
    )
    op.add_column(
        "chat_sessions", sa.Column("user_last_read_at", Timestamp, nullable=True)
    )


def downgrade() -> None:
    """Drop per-role last-read timestamps."""
    op.drop_column("chat_sessions", "user_last_read_at")
    op.drop_column("chat_sessions", "companion_last_read_at")
