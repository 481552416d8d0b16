"""
Tests for the per-user rate limiter: ceilings, window rollover, and the
atomic check-and-increment under concurrency.
"""

import asyncio
import datetime

import pytest
import sqlalchemy as sa

from leadsradar.config import settings
from leadsradar.db.models import RateLimitUsage, ResourceType, as_utc
from leadsradar.db.session import get_session
from leadsradar.errors import InvalidInput
from leadsradar.security import rate_limit

UTC = datetime.timezone.utc
PITCH = ResourceType.PITCH_GENERATION


def at(day, hour, minute=0):
    return datetime.datetime(2026, 3, day, hour, minute, tzinfo=UTC)


async def _row(user_id, resource=PITCH):
    async with get_session() as session:
        return (
            await session.execute(
                sa.select(RateLimitUsage).where(
                    RateLimitUsage.user_id == user_id,
                    RateLimitUsage.resource_type == resource.value,
                )
            )
        ).scalar_one()


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def test_get_limits_reads_settings():
    assert rate_limit.get_limits(PITCH) == ("pitch_generation", 3, 10)
    assert rate_limit.get_limits("webhook_ingestion") == ("webhook_ingestion", 100, 1000)


def test_get_limits_unknown_resource():
    with pytest.raises(InvalidInput):
        rate_limit.get_limits("image_generation")


def test_window_starts_align_to_utc():
    hour_start, day_start = rate_limit.window_starts(at(5, 14, 37))
    assert hour_start == at(5, 14)
    assert day_start == at(5, 0)


# ---------------------------------------------------------------------------
# Ceilings
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_hourly_ceiling_then_rejection_without_mutation(db, user_id):
    now = at(2, 10, 15)
    results = [await rate_limit.check_and_increment(user_id, PITCH, now=now) for _ in range(3)]

    assert [r.allowed for r in results] == [True, True, True]
    assert [r.remaining_hourly for r in results] == [2, 1, 0]
    assert results[-1].remaining_daily == 7

    before = await _row(user_id)
    rejected = await rate_limit.check_and_increment(user_id, PITCH, now=now)
    after = await _row(user_id)

    assert rejected.allowed is False
    assert rejected.remaining_hourly == 0
    assert rejected.remaining_daily == 7
    assert (after.count_hourly, after.count_daily) == (before.count_hourly, before.count_daily) == (3, 3)
    assert after.updated_at == before.updated_at


@pytest.mark.asyncio
async def test_hour_rollover_resets_hourly_only(db, user_id):
    for _ in range(3):
        await rate_limit.check_and_increment(user_id, PITCH, now=at(2, 10, 5))
    assert not (await rate_limit.check_and_increment(user_id, PITCH, now=at(2, 10, 59))).allowed

    result = await rate_limit.check_and_increment(user_id, PITCH, now=at(2, 11, 0))
    assert result.allowed is True
    assert result.remaining_hourly == 2
    assert result.remaining_daily == 6

    row = await _row(user_id)
    assert row.count_hourly == 1
    assert row.count_daily == 4
    assert as_utc(row.last_reset_hour) == at(2, 11)


@pytest.mark.asyncio
async def test_daily_ceiling_and_next_day_reset(db, user_id):
    # 3 + 3 + 3 + 1 spread over four hours reaches the daily ceiling of 10
    for hour, calls in ((9, 3), (10, 3), (11, 3), (12, 1)):
        for _ in range(calls):
            assert (await rate_limit.check_and_increment(user_id, PITCH, now=at(3, hour, 30))).allowed

    rejected = await rate_limit.check_and_increment(user_id, PITCH, now=at(3, 13, 0))
    assert rejected.allowed is False
    assert rejected.remaining_daily == 0
    assert rejected.remaining_hourly == 3

    next_day = await rate_limit.check_and_increment(user_id, PITCH, now=at(4, 0, 10))
    assert next_day.allowed is True
    assert next_day.remaining_daily == 9
    assert next_day.remaining_hourly == 2


@pytest.mark.asyncio
async def test_users_and_resources_are_independent(db, user_id, other_user_id):
    now = at(2, 8)
    for _ in range(3):
        await rate_limit.check_and_increment(user_id, PITCH, now=now)

    assert (await rate_limit.check_and_increment(other_user_id, PITCH, now=now)).allowed
    webhook = await rate_limit.check_and_increment(user_id, ResourceType.WEBHOOK_INGESTION, now=now)
    assert webhook.allowed
    assert webhook.remaining_hourly == 99


@pytest.mark.asyncio
async def test_configured_limits_are_honoured(db, user_id, monkeypatch):
    monkeypatch.setitem(settings.rate_limits, "pitch_generation", {"hourly": 1, "daily": 1})

    assert (await rate_limit.check_and_increment(user_id, PITCH, now=at(2, 8))).allowed
    assert not (await rate_limit.check_and_increment(user_id, PITCH, now=at(2, 9))).allowed


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_concurrent_requests_never_exceed_ceiling(db, user_id):
    now = at(6, 16, 45)
    results = await asyncio.gather(
        *(rate_limit.check_and_increment(user_id, PITCH, now=now) for _ in range(8))
    )

    assert sum(r.allowed for r in results) == 3
    row = await _row(user_id)
    assert row.count_hourly == 3
    assert row.count_daily == 3


# ---------------------------------------------------------------------------
# Read-only usage
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_get_usage_does_not_increment(db, user_id):
    untouched = await rate_limit.get_usage(user_id, PITCH, now=at(2, 8))
    assert (untouched.allowed, untouched.remaining_hourly, untouched.remaining_daily) == (True, 3, 10)

    await rate_limit.check_and_increment(user_id, PITCH, now=at(2, 8))
    usage = await rate_limit.get_usage(user_id, PITCH, now=at(2, 8, 30))
    again = await rate_limit.get_usage(user_id, PITCH, now=at(2, 8, 30))

    assert usage == again
    assert usage.remaining_hourly == 2
    assert usage.remaining_daily == 9
    assert (await _row(user_id)).count_hourly == 1
