"""create users, tokens, clients and auth_codes

Revision ID: 20261019_auth_tables
Revises:
Create Date: 2026-10-19 00:00:00
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "20261019_auth_tables"
down_revision: Union[str, Sequence[str], None] = None
branch_labels = None
depends_on = None


def _has_table(name: str) -> bool:
    return sa.inspect(op.get_bind()).has_table(name)


def upgrade() -> None:
    if not _has_table("users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("username", sa.String(255), nullable=False),
            sa.Column("password_hash", sa.Text(), nullable=False),
            sa.Column("role", sa.String(32), server_default="user"),
            sa.Column("scopes", sa.Text(), server_default="api"),
            sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id", name="pk_users"),
            sa.UniqueConstraint("username", name="uq_users_username"),
        )
    if not _has_table("tokens"):
        op.create_table(
            "tokens",
            sa.Column("jti", sa.String(255), nullable=False),
            sa.Column("token_type", sa.String(50), nullable=False, server_default="access"),
            sa.Column("revoked", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("issued_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
            sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("jti", name="pk_tokens"),
        )
        op.create_index("ix_tokens_expires_at", "tokens", ["expires_at"])
    if not _has_table("clients"):
        op.create_table(
            "clients",
            sa.Column("client_id", sa.String(255), nullable=False),
            sa.Column("client_secret", sa.Text(), nullable=False),
            sa.Column("client_secret_hashed", sa.Boolean(), server_default=sa.false()),
            sa.Column("allowed_scopes", sa.Text(), server_default="api"),
            sa.Column("redirect_uris", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
            sa.PrimaryKeyConstraint("client_id", name="pk_clients"),
        )
    if not _has_table("auth_codes"):
        op.create_table(
            "auth_codes",
            sa.Column("code", sa.String(255), nullable=False),
            sa.Column("client_id", sa.String(255), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("redirect_uri", sa.Text(), nullable=False),
            sa.Column("scope", sa.Text(), nullable=True),
            sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
            sa.PrimaryKeyConstraint("code", name="pk_auth_codes"),
        )
        op.create_index("ix_auth_codes_expires_at", "auth_codes", ["expires_at"])


def downgrade() -> None:
    for name in ("auth_codes", "clients", "tokens", "users"):
        if _has_table(name):
            op.drop_table(name)
