"""Text generation client for outreach pitches.

Calls the Gemini ``generateContent`` REST endpoint with httpx.  The call is
bounded by ``settings.llm_timeout_seconds``; timeouts, transport errors,
non-2xx responses, and empty completions all surface as UpstreamError.  There
is no retry here; the gateway reports the failure to the caller.

``generate_text()`` is the single seam tests replace.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from leadsradar.config import settings
from leadsradar.errors import UpstreamError

logger = logging.getLogger(__name__)

TONES = ("professional", "casual", "friendly", "urgent")

DEFAULT_BIO = "I help businesses grow."

_PITCH_PROMPT = """\
You are an expert sales copywriter assistant for "{app_name}".
Your goal is to write a personalized Twitter DM pitch.

CONTEXT:
- User's Service/Bio: "{bio}"
- Lead: @{lead_name}
- Lead's Tweet: "{tweet_text}"
- Goal: Start a conversation to offer the user's service.

INSTRUCTIONS:
- Tone: {tone}.
- Length: Keep it under 280 characters if possible, or max 2 brief sentences.
- Personalization: Reference their tweet specifically.
- Call to Action: Low friction question.
- Formatting: Plain text, no hashtags, no emojis (unless tone is friendly).

DRAFT THE DM:"""


@dataclass(frozen=True)
class Completion:
    text: str
    model: str
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None


def build_pitch_prompt(
    tweet_text: str,
    tone: str,
    user_bio: Optional[str] = None,
    lead_name: Optional[str] = None,
) -> str:
    return _PITCH_PROMPT.format(
        app_name=settings.app_name,
        bio=user_bio or DEFAULT_BIO,
        lead_name=lead_name or "there",
        tweet_text=tweet_text,
        tone=tone,
    )


def _parse_completion(data: dict, model: str) -> Completion:
    try:
        parts = data["candidates"][0]["content"]["parts"]
        text = "".join(part.get("text", "") for part in parts).strip()
    except (KeyError, IndexError, TypeError) as exc:
        raise UpstreamError(detail=f"Unexpected generation response shape: {exc}") from exc
    if not text:
        raise UpstreamError(detail="Generation returned empty text")

    usage = data.get("usageMetadata") or {}
    return Completion(
        text=text,
        model=model,
        prompt_tokens=usage.get("promptTokenCount"),
        completion_tokens=usage.get("candidatesTokenCount"),
        total_tokens=usage.get("totalTokenCount"),
    )


async def generate_text(prompt: str) -> Completion:
    """Send ``prompt`` to the configured model and return its completion.

    Raises:
        UpstreamError: Missing API key, timeout, transport/HTTP error, or an
                       empty / malformed response.
    """
    if not settings.gemini_api_key:
        raise UpstreamError(detail="No text-generation API key configured")

    url = f"{settings.gemini_base_url}/models/{settings.llm_model}:generateContent"
    body = {
        "contents": [{"role": "user", "parts": [{"text": prompt}]}],
        "generationConfig": {
            "maxOutputTokens": settings.llm_max_tokens,
            "temperature": settings.llm_temperature,
        },
    }

    try:
        async with httpx.AsyncClient(timeout=settings.llm_timeout_seconds) as client:
            response = await client.post(
                url,
                params={"key": settings.gemini_api_key},
                headers={"content-type": "application/json"},
                json=body,
            )
            response.raise_for_status()
            data = response.json()
    except httpx.TimeoutException as exc:
        raise UpstreamError(detail=f"Generation timed out after {settings.llm_timeout_seconds}s") from exc
    except httpx.HTTPStatusError as exc:
        raise UpstreamError(detail=f"Generation returned HTTP {exc.response.status_code}") from exc
    except (httpx.HTTPError, ValueError) as exc:
        raise UpstreamError(detail=f"Generation request failed: {exc.__class__.__name__}") from exc

    return _parse_completion(data, settings.llm_model)
