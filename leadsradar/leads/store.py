"""Lead persistence with idempotent ingestion and optimistic concurrency.

Two write paths touch the ``leads`` table:

- ``upsert_from_ingestion()`` — keyed on (user_id, tweet_id).  The first
  sighting inserts the lead as Found / version 1.  Later sightings are no-ops:
  ingestion is additive, never authoritative, so a lead that has progressed
  past Found is never reset by a re-delivered tweet.

- ``update_status()`` — compare-and-swap on ``version``.  The caller passes
  the version it last read; a single conditional UPDATE applies the new
  status, bumps the version by exactly 1, and stamps the transition column
  (contacted_at, negotiating_at, won_at, lost_at).  A stale caller updates
  nothing and gets VersionConflict.

Leads are never hard-deleted here; rows with ``deleted_at`` set are treated
as missing.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any

import sqlalchemy as sa

from leadsradar.db.models import Lead, LeadStatus, coerce_uuid, utcnow
from leadsradar.db.session import dialect_insert, get_session
from leadsradar.errors import InvalidInput, NotFound, Unauthorized, VersionConflict

logger = logging.getLogger(__name__)

# Status reached -> column stamped with the transition time
_TRANSITION_COLUMNS = {
    LeadStatus.CONTACTED: "contacted_at",
    LeadStatus.NEGOTIATING: "negotiating_at",
    LeadStatus.WON: "won_at",
    LeadStatus.LOST: "lost_at",
}

# Columns ingestion may populate on first insert
_INGESTION_FIELDS = frozenset(
    {"tweet_text", "tweet_author", "spam_score", "estimated_value", "source", "source_metadata"}
)


@dataclass(frozen=True)
class UpsertResult:
    lead_id: uuid.UUID
    created: bool


@dataclass(frozen=True)
class StatusUpdate:
    lead_id: uuid.UUID
    status: LeadStatus
    version: int


def parse_status(value: LeadStatus | str) -> LeadStatus:
    try:
        return LeadStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in LeadStatus)
        raise InvalidInput(f"Invalid status '{value}'. Expected one of: {allowed}")


async def upsert_from_ingestion(
    user_id: uuid.UUID | str,
    tweet_id: str,
    fields: dict[str, Any],
) -> UpsertResult:
    """Create the lead for (user_id, tweet_id) unless it already exists.

    Args:
        user_id:  Owner of the lead.
        tweet_id: Source tweet id; unique per user.
        fields:   Initial column values (tweet_text, tweet_author, spam_score,
                  estimated_value, source, source_metadata).  Ignored when the
                  lead already exists.

    Returns:
        ``UpsertResult(lead_id, created)``.  ``created`` is False when an
        existing lead was found; its state is left untouched.
    """
    owner = coerce_uuid(user_id, "user_id")
    unknown = set(fields) - _INGESTION_FIELDS
    if unknown:
        raise InvalidInput(f"Unsupported lead fields: {', '.join(sorted(unknown))}")

    now = utcnow()
    async with get_session() as session:
        insert = dialect_insert(session)
        result = await session.execute(
            insert(Lead)
            .values(
                id=uuid.uuid4(),
                user_id=owner,
                tweet_id=tweet_id,
                status=LeadStatus.FOUND,
                version=1,
                created_at=now,
                updated_at=now,
                **fields,
            )
            .on_conflict_do_nothing(index_elements=["user_id", "tweet_id"])
            .returning(Lead.id)
        )
        inserted_id = result.scalar_one_or_none()

        if inserted_id is not None:
            await session.commit()
            logger.info("Lead created: lead_id=%s user_id=%s tweet_id=%s", inserted_id, owner, tweet_id)
            return UpsertResult(lead_id=inserted_id, created=True)

        existing_id = (
            await session.execute(
                sa.select(Lead.id).where(Lead.user_id == owner, Lead.tweet_id == tweet_id)
            )
        ).scalar_one()
        await session.commit()

    logger.info(
        "Duplicate tweet ignored: lead_id=%s user_id=%s tweet_id=%s", existing_id, owner, tweet_id
    )
    return UpsertResult(lead_id=existing_id, created=False)


async def update_status(
    lead_id: uuid.UUID | str,
    user_id: uuid.UUID | str,
    new_status: LeadStatus | str,
    expected_version: int,
) -> StatusUpdate:
    """Move a lead to ``new_status`` if nobody changed it since ``expected_version``.

    Raises:
        InvalidInput:    Unknown status or non-positive version.
        NotFound:        Lead missing or soft-deleted.
        Unauthorized:    Lead owned by another user.
        VersionConflict: Stored version differs from ``expected_version``.
    """
    lead_uuid = coerce_uuid(lead_id, "lead_id")
    owner = coerce_uuid(user_id, "user_id")
    status = parse_status(new_status)
    if isinstance(expected_version, bool) or not isinstance(expected_version, int) or expected_version < 1:
        raise InvalidInput("version must be a positive integer")

    now = utcnow()
    values: dict[str, Any] = {
        "status": status,
        "version": Lead.version + 1,
        "updated_at": now,
        "updated_by": owner,
    }
    transition_column = _TRANSITION_COLUMNS.get(status)
    if transition_column:
        values[transition_column] = now

    async with get_session() as session:
        result = await session.execute(
            sa.update(Lead)
            .where(
                Lead.id == lead_uuid,
                Lead.user_id == owner,
                Lead.version == expected_version,
                Lead.deleted_at.is_(None),
            )
            .values(values)
            .returning(Lead.version)
            .execution_options(synchronize_session=False)
        )
        new_version = result.scalar_one_or_none()
        await session.commit()

        if new_version is not None:
            logger.info(
                "Lead status updated: lead_id=%s status=%s version=%d->%d",
                lead_uuid,
                status.value,
                expected_version,
                new_version,
            )
            return StatusUpdate(lead_id=lead_uuid, status=status, version=new_version)

        current = (
            await session.execute(
                sa.select(Lead.user_id, Lead.version, Lead.deleted_at).where(Lead.id == lead_uuid)
            )
        ).one_or_none()

    if current is None or current.deleted_at is not None:
        raise NotFound("Lead not found")
    if current.user_id != owner:
        logger.warning("Status update denied: lead_id=%s caller=%s", lead_uuid, owner)
        raise Unauthorized()

    logger.info(
        "Version conflict: lead_id=%s expected=%d stored=%d",
        lead_uuid,
        expected_version,
        current.version,
    )
    raise VersionConflict(expected_version=expected_version, current_version=current.version)


async def get_lead_for_user(lead_id: uuid.UUID | str, user_id: uuid.UUID | str) -> Lead:
    """Fetch a live lead owned by ``user_id``.

    Leads owned by other users are reported as missing so their existence is
    never revealed.

    Raises:
        NotFound: Lead missing, soft-deleted, or not owned by the caller.
    """
    lead_uuid = coerce_uuid(lead_id, "lead_id")
    owner = coerce_uuid(user_id, "user_id")

    async with get_session() as session:
        lead = (
            await session.execute(
                sa.select(Lead).where(
                    Lead.id == lead_uuid,
                    Lead.user_id == owner,
                    Lead.deleted_at.is_(None),
                )
            )
        ).scalar_one_or_none()

    if lead is None:
        raise NotFound("Lead not found")
    return lead
