"""Per-user, per-resource rate limiting for LeadsRadar.

Each (user_id, resource_type) pair owns one ``rate_limit_usage`` row holding
an hourly and a daily counter.  Windows are aligned to the UTC hour and the
UTC day: a counter resets to zero the first time a request lands in a newer
window than the one stored on the row.

Ceilings come from ``settings.rate_limits``:
- pitch_generation:  3 per hour, 10 per day
- webhook_ingestion: 100 per hour, 1000 per day

Check-and-increment is ONE conditional UPDATE.  Its SET and WHERE clauses are
computed from the rolled-over ("effective") counts, so rollover, the ceiling
check, and the increment are indivisible.  Two concurrent callers racing for
the last slot serialize on the row lock; the loser re-evaluates the WHERE
clause against the winner's committed counts and updates nothing.  Rejected
requests never touch the counters.
"""

from __future__ import annotations

import datetime
import logging
import uuid
from dataclasses import dataclass

import sqlalchemy as sa

from leadsradar.config import settings
from leadsradar.db.models import RateLimitUsage, ResourceType, as_utc, coerce_uuid, utcnow
from leadsradar.db.session import dialect_insert, get_session
from leadsradar.errors import InvalidInput

logger = logging.getLogger(__name__)

_TS = sa.DateTime(timezone=True)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining_hourly: int
    remaining_daily: int


def get_limits(resource_type: ResourceType | str) -> tuple[str, int, int]:
    """Return ``(resource_name, hourly_limit, daily_limit)`` for a resource.

    Raises:
        InvalidInput: If the resource has no configured ceilings.
    """
    name = resource_type.value if isinstance(resource_type, ResourceType) else str(resource_type)
    limits = settings.rate_limits.get(name)
    if limits is None:
        raise InvalidInput(f"Unknown rate-limited resource: {name}")
    return name, int(limits["hourly"]), int(limits["daily"])


def window_starts(now: datetime.datetime) -> tuple[datetime.datetime, datetime.datetime]:
    """Return the start of the UTC hour and UTC day containing ``now``."""
    now = now.astimezone(datetime.timezone.utc)
    hour_start = now.replace(minute=0, second=0, microsecond=0)
    day_start = hour_start.replace(hour=0)
    return hour_start, day_start


def _effective_counts(
    row: RateLimitUsage, hour_start: datetime.datetime, day_start: datetime.datetime
) -> tuple[int, int]:
    hourly = 0 if as_utc(row.last_reset_hour) < hour_start else row.count_hourly
    daily = 0 if as_utc(row.last_reset_date) < day_start else row.count_daily
    return hourly, daily


async def check_and_increment(
    user_id: uuid.UUID | str,
    resource_type: ResourceType | str,
    now: datetime.datetime | None = None,
) -> RateLimitResult:
    """Atomically consume one slot of ``resource_type`` for ``user_id``.

    Args:
        user_id:       Caller whose counters are charged.
        resource_type: ``"pitch_generation"`` or ``"webhook_ingestion"``.
        now:           Clock override for tests; defaults to the current UTC time.

    Returns:
        ``RateLimitResult`` with ``allowed`` and the slots left in each window
        after this call.  When ``allowed`` is False nothing was incremented.
    """
    owner = coerce_uuid(user_id, "user_id")
    resource, hourly_limit, daily_limit = get_limits(resource_type)
    now = now or utcnow()
    hour_start, day_start = window_starts(now)

    hour_rolled = RateLimitUsage.last_reset_hour < sa.literal(hour_start, _TS)
    day_rolled = RateLimitUsage.last_reset_date < sa.literal(day_start, _TS)
    effective_hourly = sa.case((hour_rolled, 0), else_=RateLimitUsage.count_hourly)
    effective_daily = sa.case((day_rolled, 0), else_=RateLimitUsage.count_daily)

    async with get_session() as session:
        insert = dialect_insert(session)
        # Make sure the row exists; a concurrent creator wins silently.
        await session.execute(
            insert(RateLimitUsage)
            .values(
                id=uuid.uuid4(),
                user_id=owner,
                resource_type=resource,
                count_hourly=0,
                last_reset_hour=hour_start,
                count_daily=0,
                last_reset_date=day_start,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=["user_id", "resource_type"])
        )

        result = await session.execute(
            sa.update(RateLimitUsage)
            .where(
                RateLimitUsage.user_id == owner,
                RateLimitUsage.resource_type == resource,
                effective_hourly < hourly_limit,
                effective_daily < daily_limit,
            )
            .values(
                count_hourly=effective_hourly + 1,
                count_daily=effective_daily + 1,
                last_reset_hour=sa.case(
                    (hour_rolled, sa.literal(hour_start, _TS)),
                    else_=RateLimitUsage.last_reset_hour,
                ),
                last_reset_date=sa.case(
                    (day_rolled, sa.literal(day_start, _TS)),
                    else_=RateLimitUsage.last_reset_date,
                ),
                updated_at=now,
            )
            .returning(RateLimitUsage.count_hourly, RateLimitUsage.count_daily)
            .execution_options(synchronize_session=False)
        )
        counts = result.one_or_none()
        await session.commit()

        if counts is not None:
            return RateLimitResult(
                allowed=True,
                remaining_hourly=max(0, hourly_limit - counts.count_hourly),
                remaining_daily=max(0, daily_limit - counts.count_daily),
            )

        row = (
            await session.execute(
                sa.select(RateLimitUsage).where(
                    RateLimitUsage.user_id == owner,
                    RateLimitUsage.resource_type == resource,
                )
            )
        ).scalar_one()

    hourly, daily = _effective_counts(row, hour_start, day_start)
    logger.info(
        "Rate limit reached: user_id=%s resource=%s hourly=%d/%d daily=%d/%d",
        owner,
        resource,
        hourly,
        hourly_limit,
        daily,
        daily_limit,
    )
    return RateLimitResult(
        allowed=False,
        remaining_hourly=max(0, hourly_limit - hourly),
        remaining_daily=max(0, daily_limit - daily),
    )


async def get_usage(
    user_id: uuid.UUID | str,
    resource_type: ResourceType | str,
    now: datetime.datetime | None = None,
) -> RateLimitResult:
    """Read-only view of the remaining slots; never increments.

    ``allowed`` reports whether the next request would currently pass.
    """
    owner = coerce_uuid(user_id, "user_id")
    resource, hourly_limit, daily_limit = get_limits(resource_type)
    hour_start, day_start = window_starts(now or utcnow())

    async with get_session() as session:
        row = (
            await session.execute(
                sa.select(RateLimitUsage).where(
                    RateLimitUsage.user_id == owner,
                    RateLimitUsage.resource_type == resource,
                )
            )
        ).scalar_one_or_none()

    hourly, daily = (0, 0) if row is None else _effective_counts(row, hour_start, day_start)
    remaining_hourly = max(0, hourly_limit - hourly)
    remaining_daily = max(0, daily_limit - daily)
    return RateLimitResult(
        allowed=remaining_hourly > 0 and remaining_daily > 0,
        remaining_hourly=remaining_hourly,
        remaining_daily=remaining_daily,
    )
