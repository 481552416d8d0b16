"""Inbound lead webhook endpoint.

Endpoint:
- POST /webhooks/twitter — ingest one lead from an integration

Pipeline, in order (each step short-circuits):
1. API key from ``X-API-Key``       -> 401 when missing/invalid
2. ``webhook_ingestion`` rate limit -> 429
3. Payload schema validation       -> 400 with field details (attempt recorded)
4. Event log + lead upsert          -> 200 ``{success, lead_id, request_id}``

Anything unexpected is logged with the request id and returned as an opaque
500 carrying the same ``request_id``.
"""

from __future__ import annotations

import json
import logging
import uuid

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from leadsradar.api.auth import require_api_key
from leadsradar.api.errors import get_request_id
from leadsradar.db.models import ResourceType
from leadsradar.errors import LeadsRadarError, RateLimitExceeded
from leadsradar.security import rate_limit
from leadsradar.security.api_key import KeyVerification
from leadsradar.webhooks import ingest as ingestor

logger = logging.getLogger(__name__)

webhooks_router = APIRouter(prefix="/webhooks", tags=["webhooks"])


class WebhookAccepted(BaseModel):
    success: bool
    lead_id: str
    request_id: str


async def _read_body(request: Request):
    """Decode the JSON body, keeping the raw text when it is not valid JSON."""
    raw = await request.body()
    try:
        return json.loads(raw)
    except ValueError:
        return raw.decode("utf-8", errors="replace")


@webhooks_router.post(
    "/twitter",
    response_model=WebhookAccepted,
    operation_id="ingest_twitter_lead",
    summary="Ingest a lead from a tweet",
)
async def ingest_twitter_lead(
    request: Request,
    key: KeyVerification = Depends(require_api_key),
):
    request_id = get_request_id(request) or str(uuid.uuid4())

    try:
        limit = await rate_limit.check_and_increment(key.user_id, ResourceType.WEBHOOK_INGESTION)
        if not limit.allowed:
            logger.warning("Rate limit exceeded: request_id=%s user_id=%s", request_id, key.user_id)
            raise RateLimitExceeded()

        result = await ingestor.ingest(
            user_id=key.user_id,
            api_key_id=key.key_id,
            request_id=request_id,
            raw_payload=await _read_body(request),
            headers=dict(request.headers),
            ip_address=request.client.host if request.client else None,
        )
    except LeadsRadarError:
        raise
    except Exception:
        logger.exception("Webhook processing error: request_id=%s", request_id)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal Server Error", "request_id": request_id},
        )

    return WebhookAccepted(success=True, lead_id=str(result.lead_id), request_id=request_id)
