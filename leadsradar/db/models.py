"""SQLAlchemy ORM models for LeadsRadar.

Tables:
- profiles          : identity-provider users (bio used for pitch context)
- api_keys          : hashed API keys, looked up by their public prefix
- rate_limit_usage  : per (user, resource) hourly and daily counters
- leads             : ingested leads with an optimistic-concurrency version
- webhook_events    : one row per webhook ingestion attempt (audit ledger)
- api_usage_logs    : append-only record of external-service calls

Column types are portable: ``sa.Uuid`` and ``JSON`` (JSONB on PostgreSQL) so
the same metadata runs on PostgreSQL in production and SQLite in tests.
Timestamps are stored as UTC.  SQLite returns them without tzinfo; use
:func:`as_utc` before comparing with an aware ``datetime``.
"""

from __future__ import annotations

import datetime
import enum
import uuid
from typing import Any, Optional

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from leadsradar.errors import InvalidInput

_UTC = datetime.timezone.utc

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(_UTC)


def as_utc(value: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
    """Attach UTC tzinfo to naive datetimes read back from the database."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=_UTC)
    return value


class Base(DeclarativeBase):
    pass


class LeadStatus(str, enum.Enum):
    """Kanban column a lead sits in."""

    FOUND = "Found"
    CONTACTED = "Contacted"
    NEGOTIATING = "Negotiating"
    WON = "Won"
    LOST = "Lost"


class ResourceType(str, enum.Enum):
    """Rate-limited resources.  Ceilings live in ``settings.rate_limits``."""

    PITCH_GENERATION = "pitch_generation"
    WEBHOOK_INGESTION = "webhook_ingestion"


class Profile(Base):
    __tablename__ = "profiles"

    # Same id as the identity provider's user (JWT ``sub``)
    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True)
    email: Mapped[str] = mapped_column(sa.String(320), nullable=False)
    bio: Mapped[Optional[str]] = mapped_column(sa.String(500), nullable=True)
    created_at: Mapped[datetime.datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )
    deleted_at: Mapped[Optional[datetime.datetime]] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )


class ApiKey(Base):
    __tablename__ = "api_keys"

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, nullable=False, index=True)
    # First 16 chars of the raw key; public, unique, and the verification lookup path
    key_prefix: Mapped[str] = mapped_column(sa.String(16), nullable=False, unique=True, index=True)
    # SHA-256 hex of the full raw key; the raw key is never stored
    key_hash: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    name: Mapped[str] = mapped_column(sa.String(50), nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utcnow
    )
    expires_at: Mapped[Optional[datetime.datetime]] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    revoked_at: Mapped[Optional[datetime.datetime]] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    last_used_at: Mapped[Optional[datetime.datetime]] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )


class RateLimitUsage(Base):
    __tablename__ = "rate_limit_usage"
    __table_args__ = (
        sa.UniqueConstraint("user_id", "resource_type", name="uq_rate_limit_usage_user_resource"),
    )

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, nullable=False)
    resource_type: Mapped[str] = mapped_column(sa.String(50), nullable=False)
    count_hourly: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    last_reset_hour: Mapped[datetime.datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False
    )
    count_daily: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    last_reset_date: Mapped[datetime.datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utcnow
    )


class Lead(Base):
    __tablename__ = "leads"
    __table_args__ = (
        sa.UniqueConstraint("user_id", "tweet_id", name="uq_leads_user_tweet"),
        sa.CheckConstraint(
            "status IN ('Found', 'Contacted', 'Negotiating', 'Won', 'Lost')", name="ck_leads_status"
        ),
        sa.CheckConstraint("spam_score >= 0 AND spam_score <= 100", name="ck_leads_spam_score"),
        sa.CheckConstraint(
            "estimated_value >= 0 AND estimated_value <= 1000000", name="ck_leads_estimated_value"
        ),
        sa.Index(
            "ix_leads_user_active",
            "user_id",
            "status",
            postgresql_where=sa.text("deleted_at IS NULL"),
            sqlite_where=sa.text("deleted_at IS NULL"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, nullable=False, index=True)
    tweet_id: Mapped[str] = mapped_column(sa.String(30), nullable=False)
    tweet_text: Mapped[str] = mapped_column(sa.String(500), nullable=False)
    tweet_author: Mapped[str] = mapped_column(sa.String(15), nullable=False)
    status: Mapped[LeadStatus] = mapped_column(
        sa.Enum(
            LeadStatus,
            name="lead_status",
            native_enum=False,
            length=20,
            values_callable=lambda members: [m.value for m in members],
        ),
        nullable=False,
        default=LeadStatus.FOUND,
    )
    spam_score: Mapped[float] = mapped_column(sa.Float, nullable=False, default=0)
    estimated_value: Mapped[float] = mapped_column(sa.Float, nullable=False, default=0)
    source: Mapped[str] = mapped_column(sa.String(50), nullable=False, default="webhook")
    source_metadata: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    version: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=1)

    contacted_at: Mapped[Optional[datetime.datetime]] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    negotiating_at: Mapped[Optional[datetime.datetime]] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    won_at: Mapped[Optional[datetime.datetime]] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    lost_at: Mapped[Optional[datetime.datetime]] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime.datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_by: Mapped[Optional[uuid.UUID]] = mapped_column(sa.Uuid, nullable=True)
    deleted_at: Mapped[Optional[datetime.datetime]] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )


class WebhookEvent(Base):
    __tablename__ = "webhook_events"

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)
    request_id: Mapped[str] = mapped_column(sa.String(64), nullable=False, index=True)
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(sa.Uuid, nullable=True, index=True)
    api_key_id: Mapped[Optional[uuid.UUID]] = mapped_column(sa.Uuid, nullable=True)
    payload: Mapped[Any] = mapped_column(JSONType, nullable=True)
    headers: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(sa.String(45), nullable=True)
    processed: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    processed_at: Mapped[Optional[datetime.datetime]] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    lead_id: Mapped[Optional[uuid.UUID]] = mapped_column(sa.Uuid, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    received_at: Mapped[datetime.datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utcnow
    )


class ApiUsageLog(Base):
    __tablename__ = "api_usage_logs"

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, nullable=False, index=True)
    request_id: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    endpoint: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    method: Mapped[str] = mapped_column(sa.String(16), nullable=False)
    status_code: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    model: Mapped[Optional[str]] = mapped_column(sa.String(100), nullable=True)
    prompt_tokens: Mapped[Optional[int]] = mapped_column(sa.Integer, nullable=True)
    completion_tokens: Mapped[Optional[int]] = mapped_column(sa.Integer, nullable=True)
    total_tokens: Mapped[Optional[int]] = mapped_column(sa.Integer, nullable=True)
    success: Mapped[Optional[bool]] = mapped_column(sa.Boolean, nullable=True)
    error_type: Mapped[Optional[str]] = mapped_column(sa.String(100), nullable=True)
    latency_ms: Mapped[Optional[int]] = mapped_column(sa.Integer, nullable=True)
    created_at: Mapped[datetime.datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utcnow
    )


def coerce_uuid(value: uuid.UUID | str, field: str = "id") -> uuid.UUID:
    """Return ``value`` as a UUID, raising InvalidInput for malformed strings."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise InvalidInput(f"Invalid {field} format: '{value}' is not a valid UUID.")
