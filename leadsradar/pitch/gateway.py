"""Pitch generation gateway.

Orchestrates one pitch request:

1. Charge the caller's ``pitch_generation`` rate limit.  When the limit is
   reached the request stops here and the provider is never called.
2. Fetch the lead (owned by the caller) and the caller's profile bio.
3. Call the text-generation provider, bounded by ``llm_timeout_seconds``.
4. Append a usage-log row for the call, whether it succeeded or failed.

Provider failures are not retried; they surface as UpstreamError and no
partial pitch is ever returned.  The lead is read-only here.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Optional

import sqlalchemy as sa

from leadsradar.config import settings
from leadsradar.db.models import Profile, ResourceType, coerce_uuid
from leadsradar.db.session import get_session
from leadsradar.errors import InvalidInput, RateLimitExceeded, UpstreamError
from leadsradar.leads import store
from leadsradar.pitch import llm
from leadsradar.security import rate_limit
from leadsradar.usage.log import UsageEntry, record_usage

logger = logging.getLogger(__name__)

USAGE_ENDPOINT = "ai/generate_pitch"


@dataclass(frozen=True)
class PitchResult:
    pitch: str
    remaining_daily: int
    remaining_hourly: int


async def _fetch_bio(user_id: uuid.UUID) -> Optional[str]:
    async with get_session() as session:
        result = await session.execute(
            sa.select(Profile.bio).where(Profile.id == user_id, Profile.deleted_at.is_(None))
        )
        return result.scalar_one_or_none()


async def generate_pitch(
    lead_id: uuid.UUID | str,
    user_id: uuid.UUID | str,
    tone: str = "professional",
    request_id: Optional[str] = None,
) -> PitchResult:
    """Generate an outreach pitch for one of the caller's leads.

    Raises:
        InvalidInput:      Unknown tone or malformed ids (nothing charged).
        RateLimitExceeded: Hourly or daily ceiling reached (provider not called).
        NotFound:          Lead missing or not owned by the caller.
        UpstreamError:     Provider failed, timed out, or returned nothing.
    """
    if tone not in llm.TONES:
        raise InvalidInput(f"Invalid tone '{tone}'. Expected one of: {', '.join(llm.TONES)}")
    lead_uuid = coerce_uuid(lead_id, "lead_id")
    owner = coerce_uuid(user_id, "user_id")
    request_id = request_id or str(uuid.uuid4())

    limit = await rate_limit.check_and_increment(owner, ResourceType.PITCH_GENERATION)
    if not limit.allowed:
        raise RateLimitExceeded(
            "Daily pitch generation limit reached. Please upgrade to continue."
            if limit.remaining_daily == 0
            else "Hourly pitch generation limit reached. Please try again later."
        )

    lead = await store.get_lead_for_user(lead_uuid, owner)
    bio = await _fetch_bio(owner)
    prompt = llm.build_pitch_prompt(
        tweet_text=lead.tweet_text,
        tone=tone,
        user_bio=bio,
        lead_name=lead.tweet_author,
    )

    started = time.perf_counter()
    try:
        completion = await asyncio.wait_for(
            llm.generate_text(prompt), timeout=settings.llm_timeout_seconds
        )
    except (UpstreamError, asyncio.TimeoutError) as exc:
        latency_ms = int((time.perf_counter() - started) * 1000)
        error = exc if isinstance(exc, UpstreamError) else UpstreamError(detail="Generation timed out")
        logger.warning(
            "Pitch generation failed: lead_id=%s request_id=%s detail=%s",
            lead_uuid,
            request_id,
            error.detail,
        )
        await record_usage(
            UsageEntry(
                user_id=owner,
                request_id=request_id,
                endpoint=USAGE_ENDPOINT,
                method="ACTION",
                status_code=error.status_code,
                model=settings.llm_model,
                success=False,
                error_type=type(exc).__name__,
                latency_ms=latency_ms,
            )
        )
        raise UpstreamError(
            "Failed to generate pitch. Please try again.", detail=error.detail
        ) from exc

    latency_ms = int((time.perf_counter() - started) * 1000)
    await record_usage(
        UsageEntry(
            user_id=owner,
            request_id=request_id,
            endpoint=USAGE_ENDPOINT,
            method="ACTION",
            status_code=200,
            model=completion.model,
            prompt_tokens=completion.prompt_tokens,
            completion_tokens=completion.completion_tokens,
            total_tokens=completion.total_tokens,
            success=True,
            latency_ms=latency_ms,
        )
    )
    logger.info(
        "Pitch generated: lead_id=%s user_id=%s latency_ms=%d remaining_daily=%d",
        lead_uuid,
        owner,
        latency_ms,
        limit.remaining_daily,
    )
    return PitchResult(
        pitch=completion.text,
        remaining_daily=limit.remaining_daily,
        remaining_hourly=limit.remaining_hourly,
    )
