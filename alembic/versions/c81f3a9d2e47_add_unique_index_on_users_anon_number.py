"""add unique index on users.anon_number

Revision ID: c81f3a9d2e47
Revises: ab24cb2d24e5
Create Date: 2026-02-09 14:21:07.402118

"""

from collections.abc import Sequence

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "c81f3a9d2e47"
down_revision: str | Sequence[str] | None = "ab24cb2d24e5"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Make aliases unique; NULLs stay allowed for users without one."""
    op.create_index(
        op.f("ix_users_anon_number"), "users", ["anon_number"], unique=True
    )


def downgrade() -> None:
    """Drop the alias index."""
    op.drop_index(op.f("ix_users_anon_number"), table_name="users")
