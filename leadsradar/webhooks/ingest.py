"""Webhook ingestion: validate, audit, and upsert the derived lead.

Every attempt produces exactly one ``webhook_events`` row carrying the raw
payload, including attempts that fail schema validation.  The ledger is
append-mostly: rows are inserted once and only ever updated in place to link
the resulting lead or to record a downstream failure.

Per-attempt states:

    RECEIVED -> VALIDATED -> LOGGED -> LEAD_UPSERTED -> SUCCEEDED
    RECEIVED -> REJECTED            (schema violation, event processed=false)
    LOGGED   -> LOGGED_WITH_ERROR   (lead upsert failed, event processed=false)

The event row is written BEFORE the lead so the audit trail exists even when
the lead write fails.  The two writes are separate atomic statements, not one
transaction.

Idempotency lives at the (user_id, tweet_id) grain in the lead store.  The
same request id delivered twice produces two event rows and one lead.
"""

from __future__ import annotations

import enum
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import pydantic
import sqlalchemy as sa
from pydantic import BaseModel, ConfigDict, Field

from leadsradar.db.models import WebhookEvent, coerce_uuid, utcnow
from leadsradar.db.session import get_session
from leadsradar.errors import InternalError, ValidationError
from leadsradar.leads import store

logger = logging.getLogger(__name__)

# Request headers worth keeping for forensic replay.  Credentials never are.
_RECORDED_HEADERS = frozenset({"content-type", "user-agent", "x-request-id", "x-signature"})


class IngestState(str, enum.Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    REJECTED = "rejected"
    LOGGED = "logged"
    LEAD_UPSERTED = "lead_upserted"
    LOGGED_WITH_ERROR = "logged_with_error"
    SUCCEEDED = "succeeded"


class WebhookPayload(BaseModel):
    """Inbound lead payload."""

    model_config = ConfigDict(extra="ignore")

    tweet_id: str = Field(..., min_length=1, max_length=30, pattern=r"^[0-9]+$")
    tweet_text: str = Field(..., min_length=1, max_length=500)
    tweet_author: str = Field(..., pattern=r"^[a-zA-Z0-9_]{1,15}$")
    spam_score: float = Field(default=0, ge=0, le=100, strict=True)
    estimated_value: float = Field(default=0, ge=0, le=1_000_000, strict=True)


@dataclass(frozen=True)
class IngestResult:
    success: bool
    event_id: uuid.UUID
    lead_id: Optional[uuid.UUID] = None
    created: bool = False
    state: IngestState = IngestState.SUCCEEDED


def _field_errors(exc: pydantic.ValidationError) -> list[dict]:
    details = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ())) or "body"
        details.append({"field": field, "message": error.get("msg", "Invalid value")})
    return details


def _recordable_headers(headers: Optional[Mapping[str, str]]) -> Optional[dict]:
    if not headers:
        return None
    return {k.lower(): v for k, v in headers.items() if k.lower() in _RECORDED_HEADERS}


async def _record_event(**columns: Any) -> uuid.UUID:
    event_id = uuid.uuid4()
    async with get_session() as session:
        session.add(WebhookEvent(id=event_id, received_at=utcnow(), **columns))
        await session.commit()
    return event_id


async def _update_event(event_id: uuid.UUID, **values: Any) -> None:
    async with get_session() as session:
        await session.execute(
            sa.update(WebhookEvent).where(WebhookEvent.id == event_id).values(**values)
        )
        await session.commit()


async def ingest(
    user_id: uuid.UUID | str,
    api_key_id: uuid.UUID | str | None,
    request_id: str,
    raw_payload: Any,
    headers: Optional[Mapping[str, str]] = None,
    ip_address: Optional[str] = None,
) -> IngestResult:
    """Ingest one webhook delivery for an already-authenticated caller.

    Args:
        user_id:     Owner resolved from the API key.
        api_key_id:  Key that authenticated the delivery.
        request_id:  Correlation id for this attempt.
        raw_payload: Decoded JSON body (or the raw text when it was not JSON).
        headers:     Request headers; only non-credential ones are recorded.
        ip_address:  Client address, recorded for audit.

    Returns:
        ``IngestResult`` for a SUCCEEDED attempt.

    Raises:
        ValidationError: Payload violated the schema; the attempt was recorded
                         with processed=false and the field details.
        InternalError:   The audit insert or the lead upsert failed.  When the
                         event row exists it is marked processed=false with the
                         failure reason.
    """
    owner = coerce_uuid(user_id, "user_id")
    key_uuid = coerce_uuid(api_key_id, "api_key_id") if api_key_id is not None else None
    audit_columns = {
        "request_id": request_id,
        "user_id": owner,
        "api_key_id": key_uuid,
        "payload": raw_payload,
        "headers": _recordable_headers(headers),
        "ip_address": ip_address,
    }

    try:
        if not isinstance(raw_payload, dict):
            raise ValidationError(
                "Invalid payload",
                details=[{"field": "body", "message": "Request body must be a JSON object"}],
            )
        payload = WebhookPayload.model_validate(raw_payload)
    except (pydantic.ValidationError, ValidationError) as exc:
        if isinstance(exc, pydantic.ValidationError):
            rejection = ValidationError("Invalid payload", details=_field_errors(exc))
        else:
            rejection = exc
        summary = "; ".join(f"{d['field']}: {d['message']}" for d in rejection.details)
        try:
            await _record_event(
                processed=False, error_message=f"Validation failed: {summary}", **audit_columns
            )
        except Exception as audit_exc:
            logger.exception("Failed to record rejected webhook event: request_id=%s", request_id)
            raise InternalError(request_id, detail="audit insert failed") from audit_exc
        logger.info(
            "Webhook %s: request_id=%s user_id=%s errors=%s",
            IngestState.REJECTED.value,
            request_id,
            owner,
            summary,
        )
        raise rejection

    # VALIDATED -> LOGGED.  processed=true is optimistic and rolled back below on failure.
    try:
        event_id = await _record_event(processed=True, processed_at=utcnow(), **audit_columns)
    except Exception as exc:
        logger.exception("Failed to log webhook event: request_id=%s", request_id)
        raise InternalError(request_id, detail="audit insert failed") from exc

    # LOGGED -> LEAD_UPSERTED
    try:
        upsert = await store.upsert_from_ingestion(
            owner,
            payload.tweet_id,
            {
                "tweet_text": payload.tweet_text,
                "tweet_author": payload.tweet_author,
                "spam_score": payload.spam_score,
                "estimated_value": payload.estimated_value,
                "source": "webhook",
                "source_metadata": {"webhook_event_id": str(event_id), "request_id": request_id},
            },
        )
    except Exception as exc:
        logger.exception(
            "Webhook %s: lead upsert failed request_id=%s event_id=%s",
            IngestState.LOGGED_WITH_ERROR.value,
            request_id,
            event_id,
        )
        try:
            await _update_event(
                event_id,
                processed=False,
                processed_at=None,
                error_message=f"Lead insert failed: {exc}",
            )
        except Exception:
            logger.exception("Failed to mark webhook event %s as failed", event_id)
        raise InternalError(request_id, detail="lead upsert failed") from exc

    try:
        await _update_event(event_id, lead_id=upsert.lead_id)
    except Exception:
        # The lead and the event both exist; only the back-reference is missing.
        logger.warning("Could not link event %s to lead %s", event_id, upsert.lead_id, exc_info=True)

    logger.info(
        "Webhook %s: request_id=%s user_id=%s lead_id=%s created=%s",
        IngestState.SUCCEEDED.value,
        request_id,
        owner,
        upsert.lead_id,
        upsert.created,
    )
    return IngestResult(
        success=True,
        event_id=event_id,
        lead_id=upsert.lead_id,
        created=upsert.created,
        state=IngestState.SUCCEEDED,
    )
