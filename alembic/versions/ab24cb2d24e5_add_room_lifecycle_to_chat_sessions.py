"""add room type and close state to chat_sessions

Revision ID: ab24cb2d24e5
Revises: aa47109e820f
Create Date: 2026-02-08 10:06:51.178727

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import mysql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "ab24cb2d24e5"
down_revision: str | Sequence[str] | None = "aa47109e820f"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

Timestamp = sa.DateTime(timezone=True).with_variant(mysql.DATETIME(fsp=6), "mysql")


def upgrade() -> None:
    """Add room_type, status, closed_at and closed_by."""
    op.add_column(
        "chat_sessions",
        sa.Column(
            "room_type", sa.String(10), nullable=False, server_default="private"
        ),
    )
    op.add_column(
        "chat_sessions",
        sa.Column("status", sa.String(10), nullable=False, server_default="active"),
    )
    op.add_column("chat_sessions", sa.Column("closed_at", Timestamp, nullable=True))
    op.add_column("chat_sessions", sa.Column("closed_by", sa.Integer(), nullable=True))
    op.create_foreign_key(
        "fk_chat_sessions_closed_by_users",
        "chat_sessions",
        "users",
        ["closed_by"],
        ["id"],
    )
    # Existing sessions without a companion were group rooms all along.
    op.execute(
        "UPDATE chat_sessions SET room_type = 'group' WHERE companion_id IS NULL"
    )


def downgrade() -> None:
    """Drop room lifecycle columns."""
    op.drop_constraint(
        "fk_chat_sessions_closed_by_users", "chat_sessions", type_="foreignkey"
    )
    op.drop_column("chat_sessions", "closed_by")
    op.drop_column("chat_sessions", "closed_at")
    op.drop_column("chat_sessions", "status")
    op.drop_column("chat_sessions", "room_type")
