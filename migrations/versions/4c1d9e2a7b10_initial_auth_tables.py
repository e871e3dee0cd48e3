"""initial auth bridge tables

Revision ID: 4c1d9e2a7b10
Revises:
Create Date: 2026-10-19 09:12:44.518203

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "4c1d9e2a7b10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create nonce ledgers and the application user table."""
    op.create_table(
        "tg_login",
        sa.Column("nonce", sa.String(length=64), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("telegram_id", sa.BigInteger(), nullable=True),
        sa.Column("used", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index("ix_tg_login_created_at", "tg_login", ["created_at"])

    op.create_table(
        "wallet_nonces",
        sa.Column("nonce", sa.String(length=64), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("used_by", sa.Text(), nullable=True),
    )
    op.create_index("ix_wallet_nonces_expires_at", "wallet_nonces", ["expires_at"])

    op.create_table(
        "user",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("auth_uid", sa.Text(), nullable=True, unique=True),
        sa.Column("login_id", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("from_login", sa.Text(), nullable=False),
        sa.Column("have_premium", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.UniqueConstraint("from_login", "login_id", name="uq_user_provider_login"),
    )


def downgrade() -> None:
    """Drop the auth bridge tables."""
    op.drop_table("user")
    op.drop_index("ix_wallet_nonces_expires_at", table_name="wallet_nonces")
    op.drop_table("wallet_nonces")
    op.drop_index("ix_tg_login_created_at", table_name="tg_login")
    op.drop_table("tg_login")
