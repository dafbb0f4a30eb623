"""Create users and temporary_links tables.

Revision ID: 001_users_temporary_links
Revises:
Create Date: 2026-10-18

- users: accounts identified by login_key, with activation state
- temporary_links: one outstanding action link per user (PK = users.id)
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

revision: str = "001_users_temporary_links"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), sa.Identity(always=False), primary_key=True),
        sa.Column("login_key", sa.String(255), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column(
            "user_active",
            sa.Boolean(),
            server_default=sa.text("false"),
            nullable=False,
        ),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )

    op.create_table(
        "temporary_links",
        # Shares the user's id: at most one outstanding link per user
        sa.Column(
            "id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("url", sa.String(2048), nullable=False, unique=True),
        sa.Column("purpose", sa.String(20), nullable=False),
        sa.Column("expiration_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("email_info", JSONB(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.CheckConstraint(
            "purpose IN ('activate', 'reset')",
            name="ck_temporary_links_purpose",
        ),
    )
    op.create_index(
        "ix_temporary_links_expiration_time",
        "temporary_links",
        ["expiration_time"],
    )


def downgrade() -> None:
    op.drop_index("ix_temporary_links_expiration_time", table_name="temporary_links")
    op.drop_table("temporary_links")
    op.drop_table("users")
