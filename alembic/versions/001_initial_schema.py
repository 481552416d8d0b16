"""Initial schema — profiles and leads.

Revision ID: 001
Revises:
Create Date: 2026-10-18

Creates:
- profiles : identity-provider users; bio feeds pitch generation
- leads    : ingested leads with status, scores, and an optimistic-concurrency version

Indexes / constraints:
- uq_leads_user_tweet : unique(user_id, tweet_id) — re-ingesting a tweet never duplicates a lead
- ix_leads_user_id    : per-user board listing
- ix_leads_user_active: partial index on live leads (WHERE deleted_at IS NULL)

Design notes:
- status is a VARCHAR with a CHECK constraint rather than a native enum so new
  columns on the board do not need an ALTER TYPE
- version starts at 1 and is bumped by exactly 1 per successful status change
- contacted_at / negotiating_at / won_at / lost_at record when each status was reached
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers used by Alembic
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "profiles",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("bio", sa.String(500), nullable=True),
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
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "leads",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("user_id", sa.Uuid, nullable=False),
        sa.Column("tweet_id", sa.String(30), nullable=False),
        sa.Column("tweet_text", sa.String(500), nullable=False),
        sa.Column("tweet_author", sa.String(15), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="Found"),
        sa.Column("spam_score", sa.Float, nullable=False, server_default="0"),
        sa.Column("estimated_value", sa.Float, nullable=False, server_default="0"),
        sa.Column("source", sa.String(50), nullable=False, server_default="webhook"),
        sa.Column(
            "source_metadata",
            sa.JSON().with_variant(postgresql.JSONB(), "postgresql"),
            nullable=True,
        ),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("contacted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("negotiating_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("won_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("lost_at", sa.DateTime(timezone=True), nullable=True),
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
        sa.Column("updated_by", sa.Uuid, nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("user_id", "tweet_id", name="uq_leads_user_tweet"),
        sa.CheckConstraint(
            "status IN ('Found', 'Contacted', 'Negotiating', 'Won', 'Lost')",
            name="ck_leads_status",
        ),
        sa.CheckConstraint("spam_score >= 0 AND spam_score <= 100", name="ck_leads_spam_score"),
        sa.CheckConstraint(
            "estimated_value >= 0 AND estimated_value <= 1000000",
            name="ck_leads_estimated_value",
        ),
    )

    op.create_index("ix_leads_user_id", "leads", ["user_id"])

    # Partial index: board queries only ever look at live leads
    op.create_index(
        "ix_leads_user_active",
        "leads",
        ["user_id", "status"],
        postgresql_where=sa.text("deleted_at IS NULL"),
        sqlite_where=sa.text("deleted_at IS NULL"),
    )


def downgrade() -> None:
    op.drop_index("ix_leads_user_active", table_name="leads")
    op.drop_index("ix_leads_user_id", table_name="leads")
    op.drop_table("leads")
    op.drop_table("profiles")
