"""
Tests for lead persistence: idempotent ingestion upserts and version-checked
status changes.
"""

import asyncio
import datetime
import uuid

import pytest
import sqlalchemy as sa

from leadsradar.db.models import Lead, LeadStatus
from leadsradar.db.session import get_session
from leadsradar.errors import InvalidInput, NotFound, Unauthorized, VersionConflict
from leadsradar.leads import store


def _fields(**overrides):
    fields = {
        "tweet_text": "Looking for a freelance designer for our landing page",
        "tweet_author": "founder_jane",
        "spam_score": 5,
        "estimated_value": 1500,
        "source": "webhook",
    }
    fields.update(overrides)
    return fields


async def _lead(lead_id):
    async with get_session() as session:
        return (await session.execute(sa.select(Lead).where(Lead.id == lead_id))).scalar_one()


# ---------------------------------------------------------------------------
# Upsert
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_first_sighting_creates_found_lead(db, user_id):
    result = await store.upsert_from_ingestion(user_id, "1234567890", _fields())

    assert result.created is True
    lead = await _lead(result.lead_id)
    assert lead.status == LeadStatus.FOUND
    assert lead.version == 1
    assert lead.tweet_author == "founder_jane"
    assert lead.estimated_value == 1500


@pytest.mark.asyncio
async def test_duplicate_tweet_keeps_existing_state(db, user_id):
    first = await store.upsert_from_ingestion(user_id, "42", _fields())
    await store.update_status(first.lead_id, user_id, "Contacted", 1)

    second = await store.upsert_from_ingestion(user_id, "42", _fields(tweet_text="edited text"))

    assert second.created is False
    assert second.lead_id == first.lead_id
    lead = await _lead(first.lead_id)
    assert lead.status == LeadStatus.CONTACTED
    assert lead.version == 2
    assert lead.tweet_text != "edited text"

    async with get_session() as session:
        count = (
            await session.execute(
                sa.select(sa.func.count()).select_from(Lead).where(Lead.user_id == user_id)
            )
        ).scalar_one()
    assert count == 1


@pytest.mark.asyncio
async def test_same_tweet_for_different_users_creates_two_leads(db, user_id, other_user_id):
    a = await store.upsert_from_ingestion(user_id, "77", _fields())
    b = await store.upsert_from_ingestion(other_user_id, "77", _fields())
    assert a.created and b.created
    assert a.lead_id != b.lead_id


@pytest.mark.asyncio
async def test_concurrent_duplicate_upserts_create_one_lead(db, user_id):
    results = await asyncio.gather(
        *(store.upsert_from_ingestion(user_id, "555", _fields()) for _ in range(5))
    )
    assert sum(r.created for r in results) == 1
    assert len({r.lead_id for r in results}) == 1


@pytest.mark.asyncio
async def test_upsert_rejects_unknown_fields(db, user_id):
    with pytest.raises(InvalidInput):
        await store.upsert_from_ingestion(user_id, "1", _fields(status="Won"))


# ---------------------------------------------------------------------------
# Status updates
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_status_update_bumps_version_and_stamps_transition(db, user_id):
    lead_id = (await store.upsert_from_ingestion(user_id, "9", _fields())).lead_id

    contacted = await store.update_status(lead_id, user_id, "Contacted", 1)
    assert (contacted.status, contacted.version) == (LeadStatus.CONTACTED, 2)

    negotiating = await store.update_status(lead_id, user_id, LeadStatus.NEGOTIATING, 2)
    won = await store.update_status(str(lead_id), str(user_id), "Won", negotiating.version)
    assert won.version == 4

    lead = await _lead(lead_id)
    assert lead.status == LeadStatus.WON
    assert lead.contacted_at is not None
    assert lead.negotiating_at is not None
    assert lead.won_at is not None
    assert lead.lost_at is None
    assert lead.updated_by == user_id


@pytest.mark.asyncio
async def test_stale_version_conflicts_and_reports_current(db, user_id):
    lead_id = (await store.upsert_from_ingestion(user_id, "10", _fields())).lead_id
    await store.update_status(lead_id, user_id, "Contacted", 1)

    with pytest.raises(VersionConflict) as exc_info:
        await store.update_status(lead_id, user_id, "Lost", 1)

    assert exc_info.value.current_version == 2
    assert exc_info.value.to_dict()["current_version"] == 2
    lead = await _lead(lead_id)
    assert lead.status == LeadStatus.CONTACTED
    assert lead.lost_at is None


@pytest.mark.asyncio
async def test_concurrent_updates_with_same_version_have_one_winner(db, user_id):
    lead_id = (await store.upsert_from_ingestion(user_id, "11", _fields())).lead_id

    results = await asyncio.gather(
        store.update_status(lead_id, user_id, "Contacted", 1),
        store.update_status(lead_id, user_id, "Lost", 1),
        return_exceptions=True,
    )

    winners = [r for r in results if isinstance(r, store.StatusUpdate)]
    losers = [r for r in results if isinstance(r, VersionConflict)]
    assert len(winners) == 1 and len(losers) == 1
    assert winners[0].version == 2
    assert (await _lead(lead_id)).status == winners[0].status


@pytest.mark.asyncio
async def test_update_by_non_owner_is_unauthorized(db, user_id, other_user_id):
    lead_id = (await store.upsert_from_ingestion(user_id, "12", _fields())).lead_id

    with pytest.raises(Unauthorized):
        await store.update_status(lead_id, other_user_id, "Won", 1)
    assert (await _lead(lead_id)).version == 1


@pytest.mark.asyncio
async def test_update_missing_or_deleted_lead_is_not_found(db, user_id):
    with pytest.raises(NotFound):
        await store.update_status(uuid.uuid4(), user_id, "Won", 1)

    lead_id = (await store.upsert_from_ingestion(user_id, "13", _fields())).lead_id
    async with get_session() as session:
        await session.execute(
            sa.update(Lead)
            .where(Lead.id == lead_id)
            .values(deleted_at=datetime.datetime.now(datetime.timezone.utc))
        )
        await session.commit()

    with pytest.raises(NotFound):
        await store.update_status(lead_id, user_id, "Won", 1)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status, version",
    [("Archived", 1), ("found", 1), ("Won", 0), ("Won", -1), ("Won", True)],
)
async def test_update_rejects_invalid_input(db, user_id, status, version):
    lead_id = (await store.upsert_from_ingestion(user_id, "14", _fields())).lead_id
    with pytest.raises(InvalidInput):
        await store.update_status(lead_id, user_id, status, version)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_get_lead_for_user_hides_other_users_leads(db, user_id, other_user_id):
    lead_id = (await store.upsert_from_ingestion(user_id, "15", _fields())).lead_id

    assert (await store.get_lead_for_user(lead_id, user_id)).id == lead_id
    with pytest.raises(NotFound):
        await store.get_lead_for_user(lead_id, other_user_id)
