"""Create webhook_events and api_usage_logs audit tables.

Revision ID: 003
Revises: 002
Create Date: 2026-10-18

Creates:
- webhook_events  : one row per webhook ingestion attempt, valid or not
- api_usage_logs  : one row per external text-generation call

webhook_events columns:
- request_id     : correlation id of the attempt (not unique — retries are separate attempts)
- payload        : raw body as received, for forensic replay
- headers        : non-credential request headers
- processed      : false for rejected attempts and for failed lead upserts
- error_message  : validation or downstream failure reason
- lead_id        : lead the attempt resolved to

Design notes:
- Append-mostly ledger: rows are only updated to link the lead or record a failure
- api_usage_logs is strictly append-only (cost and latency tracking)
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers used by Alembic
revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    op.create_table(
        "webhook_events",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("request_id", sa.String(64), nullable=False),
        sa.Column("user_id", sa.Uuid, nullable=True),
        sa.Column("api_key_id", sa.Uuid, nullable=True),
        sa.Column("payload", _JSON, nullable=True),
        sa.Column("headers", _JSON, nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("processed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("lead_id", sa.Uuid, nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column(
            "received_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    op.create_index("ix_webhook_events_request_id", "webhook_events", ["request_id"])
    op.create_index("ix_webhook_events_user_id", "webhook_events", ["user_id"])

    op.create_table(
        "api_usage_logs",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("user_id", sa.Uuid, nullable=False),
        sa.Column("request_id", sa.String(64), nullable=False),
        sa.Column("endpoint", sa.String(255), nullable=False),
        sa.Column("method", sa.String(16), nullable=False),
        sa.Column("status_code", sa.Integer, nullable=False),
        sa.Column("model", sa.String(100), nullable=True),
        sa.Column("prompt_tokens", sa.Integer, nullable=True),
        sa.Column("completion_tokens", sa.Integer, nullable=True),
        sa.Column("total_tokens", sa.Integer, nullable=True),
        sa.Column("success", sa.Boolean, nullable=True),
        sa.Column("error_type", sa.String(100), nullable=True),
        sa.Column("latency_ms", sa.Integer, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    op.create_index("ix_api_usage_logs_user_id", "api_usage_logs", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_api_usage_logs_user_id", table_name="api_usage_logs")
    op.drop_table("api_usage_logs")
    op.drop_index("ix_webhook_events_user_id", table_name="webhook_events")
    op.drop_index("ix_webhook_events_request_id", table_name="webhook_events")
    op.drop_table("webhook_events")
