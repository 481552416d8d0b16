"""Create api_keys and rate_limit_usage tables.

Revision ID: 002
Revises: 001
Create Date: 2026-10-18

Creates:
- api_keys         : hashed API keys, looked up by public prefix
- rate_limit_usage : per (user_id, resource_type) hourly + daily counters

api_keys columns:
- key_prefix   : String(16), unique — first 16 chars of the raw key (safe to display)
- key_hash     : String(64) — SHA-256 of the full key, compared in constant time
- expires_at   : nullable — NULL = never expires
- revoked_at   : nullable — set once on revocation, never cleared
- last_used_at : nullable — best-effort, updated after each successful verification

rate_limit_usage columns:
- count_hourly / last_reset_hour : counter + start of its UTC hour window
- count_daily  / last_reset_date : counter + start of its UTC day window

Design notes:
- Raw key is never stored — only SHA-256 hash (similar to GitHub API key design)
- Unique index on key_prefix is the verification lookup path; hashes are never scanned
- Keys are soft-revoked, never deleted, so audit rows keep a valid api_key_id
- unique(user_id, resource_type) lets INSERT .. ON CONFLICT DO NOTHING create
  the counter row race-free before the conditional UPDATE
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers used by Alembic
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "api_keys",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("user_id", sa.Uuid, nullable=False),
        sa.Column("key_prefix", sa.String(16), nullable=False),
        sa.Column("key_hash", sa.String(64), nullable=False),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
    )

    # Unique index on key_prefix: O(1) key verification lookups
    op.create_index("ix_api_keys_key_prefix", "api_keys", ["key_prefix"], unique=True)

    # Index on user_id for per-user key listing
    op.create_index("ix_api_keys_user_id", "api_keys", ["user_id"])

    op.create_table(
        "rate_limit_usage",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("user_id", sa.Uuid, nullable=False),
        sa.Column("resource_type", sa.String(50), nullable=False),
        sa.Column("count_hourly", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_reset_hour", sa.DateTime(timezone=True), nullable=False),
        sa.Column("count_daily", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_reset_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint(
            "user_id", "resource_type", name="uq_rate_limit_usage_user_resource"
        ),
    )


def downgrade() -> None:
    op.drop_table("rate_limit_usage")
    op.drop_index("ix_api_keys_user_id", table_name="api_keys")
    op.drop_index("ix_api_keys_key_prefix", table_name="api_keys")
    op.drop_table("api_keys")
