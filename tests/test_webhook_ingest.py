"""
Tests for webhook ingestion: the core ingest() pipeline and the
POST /api/webhooks/twitter endpoint.
"""

from unittest.mock import AsyncMock

import pytest
import sqlalchemy as sa
from fastapi.testclient import TestClient

from leadsradar.config import settings
from leadsradar.db.models import Lead, LeadStatus, WebhookEvent
from leadsradar.db.session import get_session
from leadsradar.errors import InternalError, ValidationError
from leadsradar.leads import store
from leadsradar.security.api_key import issue_api_key, revoke_api_key
from leadsradar.server.main import app
from leadsradar.webhooks.ingest import IngestState, ingest

VALID_PAYLOAD = {
    "tweet_id": "1790000000000000001",
    "tweet_text": "Anyone know a good Shopify developer? Need help this month.",
    "tweet_author": "shop_owner_1",
    "spam_score": 12,
    "estimated_value": 2500,
}


async def _events():
    async with get_session() as session:
        return (await session.execute(sa.select(WebhookEvent))).scalars().all()


async def _leads():
    async with get_session() as session:
        return (await session.execute(sa.select(Lead))).scalars().all()


# ---------------------------------------------------------------------------
# Core pipeline
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_valid_payload_logs_event_and_creates_lead(db, user_id):
    result = await ingest(
        user_id,
        None,
        "req-1",
        dict(VALID_PAYLOAD),
        headers={"Content-Type": "application/json", "X-API-Key": "ldr_live_secret"},
        ip_address="203.0.113.9",
    )

    assert result.success is True
    assert result.created is True
    assert result.state == IngestState.SUCCEEDED

    [event] = await _events()
    assert event.id == result.event_id
    assert event.processed is True
    assert event.lead_id == result.lead_id
    assert event.payload["tweet_id"] == VALID_PAYLOAD["tweet_id"]
    assert event.headers == {"content-type": "application/json"}
    assert event.ip_address == "203.0.113.9"

    [lead] = await _leads()
    assert lead.status == LeadStatus.FOUND
    assert lead.version == 1
    assert lead.source_metadata["webhook_event_id"] == str(event.id)


@pytest.mark.asyncio
async def test_redelivery_adds_event_but_not_lead(db, user_id):
    first = await ingest(user_id, None, "req-1", dict(VALID_PAYLOAD))
    second = await ingest(user_id, None, "req-1", dict(VALID_PAYLOAD))

    assert second.created is False
    assert second.lead_id == first.lead_id
    assert len(await _events()) == 2
    assert len(await _leads()) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides, field",
    [
        ({"tweet_author": "bad-author!"}, "tweet_author"),
        ({"tweet_id": "12ab"}, "tweet_id"),
        ({"tweet_text": ""}, "tweet_text"),
        ({"spam_score": 101}, "spam_score"),
        ({"estimated_value": -1}, "estimated_value"),
        ({"spam_score": "50"}, "spam_score"),
        ({"spam_score": True}, "spam_score"),
        ({"estimated_value": "1000"}, "estimated_value"),
    ],
)
async def test_invalid_payload_is_recorded_and_rejected(db, user_id, overrides, field):
    payload = {**VALID_PAYLOAD, **overrides}

    with pytest.raises(ValidationError) as exc_info:
        await ingest(user_id, None, "req-bad", payload)

    assert [d["field"] for d in exc_info.value.details] == [field]
    [event] = await _events()
    assert event.processed is False
    assert event.error_message.startswith("Validation failed")
    assert event.payload == payload
    assert await _leads() == []


@pytest.mark.asyncio
async def test_non_object_body_is_recorded_and_rejected(db, user_id):
    with pytest.raises(ValidationError):
        await ingest(user_id, None, "req-text", "not json at all")

    [event] = await _events()
    assert event.processed is False
    assert event.payload == "not json at all"


@pytest.mark.asyncio
async def test_missing_optional_scores_default_to_zero(db, user_id):
    payload = {k: VALID_PAYLOAD[k] for k in ("tweet_id", "tweet_text", "tweet_author")}
    result = await ingest(user_id, None, "req-min", payload)

    [lead] = await _leads()
    assert lead.id == result.lead_id
    assert lead.spam_score == 0
    assert lead.estimated_value == 0


@pytest.mark.asyncio
async def test_lead_upsert_failure_marks_event_unprocessed(db, user_id, monkeypatch):
    monkeypatch.setattr(
        store, "upsert_from_ingestion", AsyncMock(side_effect=RuntimeError("connection reset"))
    )

    with pytest.raises(InternalError) as exc_info:
        await ingest(user_id, None, "req-fail", dict(VALID_PAYLOAD))

    assert exc_info.value.request_id == "req-fail"
    [event] = await _events()
    assert event.processed is False
    assert event.processed_at is None
    assert event.error_message == "Lead insert failed: connection reset"
    assert event.lead_id is None


# ---------------------------------------------------------------------------
# HTTP endpoint
# ---------------------------------------------------------------------------


@pytest.fixture
def api_key(run, user_id):
    return run(issue_api_key(user_id, "Zapier"))


def test_webhook_requires_api_key(run):
    with TestClient(app) as client:
        response = client.post("/api/webhooks/twitter", json=VALID_PAYLOAD)

    assert response.status_code == 401
    assert response.json()["error"] == "Missing API Key"
    assert run(_events()) == []


def test_webhook_rejects_unknown_and_revoked_keys(run, api_key, user_id):
    run(revoke_api_key(user_id, api_key.key_id))

    with TestClient(app) as client:
        unknown = client.post(
            "/api/webhooks/twitter", json=VALID_PAYLOAD, headers={"X-API-Key": "ldr_test_" + "q" * 43}
        )
        revoked = client.post(
            "/api/webhooks/twitter", json=VALID_PAYLOAD, headers={"X-API-Key": api_key.full_key}
        )

    assert unknown.status_code == 401
    assert revoked.status_code == 401
    assert revoked.json()["error"] == "Invalid API Key"


def test_webhook_happy_path(run, api_key):
    with TestClient(app) as client:
        response = client.post(
            "/api/webhooks/twitter", json=VALID_PAYLOAD, headers={"X-API-Key": api_key.full_key}
        )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["request_id"] == response.headers["X-Request-ID"]

    [lead] = run(_leads())
    assert str(lead.id) == body["lead_id"]
    [event] = run(_events())
    assert event.request_id == body["request_id"]
    assert event.api_key_id == api_key.key_id


def test_webhook_invalid_payload_returns_400_with_details(run, api_key):
    with TestClient(app) as client:
        response = client.post(
            "/api/webhooks/twitter",
            json={**VALID_PAYLOAD, "tweet_author": "way_too_long_author_name"},
            headers={"X-API-Key": api_key.full_key},
        )

    assert response.status_code == 400
    body = response.json()
    assert body["details"][0]["field"] == "tweet_author"
    assert body["request_id"] == response.headers["X-Request-ID"]
    [event] = run(_events())
    assert event.processed is False


def test_webhook_string_score_returns_400(run, api_key):
    with TestClient(app) as client:
        response = client.post(
            "/api/webhooks/twitter",
            json={**VALID_PAYLOAD, "spam_score": "50", "estimated_value": 99.5},
            headers={"X-API-Key": api_key.full_key},
        )

    assert response.status_code == 400
    assert [d["field"] for d in response.json()["details"]] == ["spam_score"]
    [event] = run(_events())
    assert event.processed is False
    assert run(_leads()) == []


def test_webhook_malformed_json_returns_400(run, api_key):
    with TestClient(app) as client:
        response = client.post(
            "/api/webhooks/twitter",
            content=b"{not json",
            headers={"X-API-Key": api_key.full_key, "Content-Type": "application/json"},
        )

    assert response.status_code == 400
    [event] = run(_events())
    assert event.payload == "{not json"


def test_webhook_rate_limited_returns_429(run, api_key, monkeypatch):
    monkeypatch.setitem(settings.rate_limits, "webhook_ingestion", {"hourly": 1, "daily": 1000})

    with TestClient(app) as client:
        headers = {"X-API-Key": api_key.full_key}
        first = client.post("/api/webhooks/twitter", json=VALID_PAYLOAD, headers=headers)
        second = client.post(
            "/api/webhooks/twitter", json={**VALID_PAYLOAD, "tweet_id": "2"}, headers=headers
        )

    assert first.status_code == 200
    assert second.status_code == 429
    assert len(run(_events())) == 1


def test_webhook_upsert_failure_returns_500_with_request_id(run, api_key, monkeypatch):
    monkeypatch.setattr(
        store, "upsert_from_ingestion", AsyncMock(side_effect=RuntimeError("disk full"))
    )

    with TestClient(app) as client:
        response = client.post(
            "/api/webhooks/twitter", json=VALID_PAYLOAD, headers={"X-API-Key": api_key.full_key}
        )

    assert response.status_code == 500
    body = response.json()
    assert body["request_id"] == response.headers["X-Request-ID"]
    assert "disk full" not in body["error"]
    [event] = run(_events())
    assert event.processed is False
