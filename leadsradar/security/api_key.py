"""API key issuance, verification, and revocation for LeadsRadar.

API keys use an ``ldr_live_`` (or ``ldr_test_``) prefix followed by a URL-safe
random token.  Only the first 16 characters (``key_prefix``) and the SHA-256
hash of the full key are stored — the raw key is shown exactly ONCE to the
caller at issuance time and cannot be recovered afterward.

Key lifecycle:
1. ``issue_api_key()`` — generates key, inserts ApiKey row, returns raw key once.
2. ``verify_api_key()`` — looks the row up by its indexed prefix, compares the
   hash of the presented key in constant time, checks revocation and expiry,
   and schedules a best-effort ``last_used_at`` update.
3. ``revoke_api_key()`` — owner-only, sets ``revoked_at`` once.  Terminal.

Keys are never physically deleted.  Never log a raw key; the prefix is the
only part that may appear in logs.
"""

from __future__ import annotations

import datetime
import hashlib
import hmac
import logging
import secrets
import uuid
from dataclasses import dataclass
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError

from leadsradar import background
from leadsradar.config import settings
from leadsradar.db.models import ApiKey, as_utc, coerce_uuid, utcnow
from leadsradar.db.session import get_session
from leadsradar.errors import InvalidInput, NotFound, Unauthorized, ValidationError

logger = logging.getLogger(__name__)

KEY_PREFIX_LENGTH = 16
MAX_KEY_NAME_LENGTH = 50
LIVE_KEY_MARKER = "ldr_live_"
TEST_KEY_MARKER = "ldr_test_"

# Prefix collisions are astronomically rare; a few fresh draws are plenty.
_MAX_ISSUE_ATTEMPTS = 3


@dataclass(frozen=True)
class IssuedKey:
    """Result of issuing a key.  ``full_key`` is never retrievable again."""

    full_key: str
    prefix: str
    key_id: uuid.UUID


@dataclass(frozen=True)
class KeyVerification:
    valid: bool
    user_id: Optional[uuid.UUID] = None
    key_id: Optional[uuid.UUID] = None


INVALID_KEY = KeyVerification(valid=False)


# ---------------------------------------------------------------------------
# Low-level key generation
# ---------------------------------------------------------------------------


def hash_api_key(raw_key: str) -> str:
    return hashlib.sha256(raw_key.encode()).hexdigest()


def generate_api_key(live: bool = True) -> tuple[str, str, str]:
    """Generate a new API key and return its components.

    Returns:
        A ``(raw_key, key_prefix, key_hash)`` triple where:
        - ``raw_key``    — full key shown once to the user (e.g. ``"ldr_live_Ab3..."``).
        - ``key_prefix`` — first 16 characters, public and used for lookup.
        - ``key_hash``   — SHA-256 hex digest compared on verification.
    """
    marker = LIVE_KEY_MARKER if live else TEST_KEY_MARKER
    key = marker + secrets.token_urlsafe(32)
    return key, key[:KEY_PREFIX_LENGTH], hash_api_key(key)


def key_status(record: ApiKey, now: Optional[datetime.datetime] = None) -> str:
    """Return ``"revoked"``, ``"expired"`` or ``"active"`` for a key row."""
    now = now or utcnow()
    if record.revoked_at is not None:
        return "revoked"
    expires_at = as_utc(record.expires_at)
    if expires_at is not None and expires_at <= now:
        return "expired"
    return "active"


# ---------------------------------------------------------------------------
# Issue / verify / revoke
# ---------------------------------------------------------------------------


def _validate_issue_input(name: str | None, expires_in_days: int | None) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError(
            "Key name is required",
            details=[{"field": "name", "message": "Key name is required"}],
        )
    if len(cleaned) > MAX_KEY_NAME_LENGTH:
        message = f"Key name must be at most {MAX_KEY_NAME_LENGTH} characters"
        raise ValidationError(message, details=[{"field": "name", "message": message}])
    if expires_in_days is not None and (
        isinstance(expires_in_days, bool) or not isinstance(expires_in_days, int) or expires_in_days <= 0
    ):
        raise InvalidInput("expires_in_days must be a positive integer")
    return cleaned


async def issue_api_key(
    user_id: uuid.UUID | str,
    name: str,
    expires_in_days: int | None = None,
) -> IssuedKey:
    """Create a new API key for ``user_id`` and return the raw key once.

    Args:
        user_id:         Owner of the key.
        name:            Human label, 1-50 characters after stripping.
        expires_in_days: Optional lifetime; must be positive when given.

    Raises:
        ValidationError: If the name is empty or too long.
        InvalidInput:    If ``expires_in_days`` is not a positive integer.
    """
    owner = coerce_uuid(user_id, "user_id")
    cleaned_name = _validate_issue_input(name, expires_in_days)

    now = utcnow()
    expires_at = now + datetime.timedelta(days=expires_in_days) if expires_in_days else None

    for attempt in range(1, _MAX_ISSUE_ATTEMPTS + 1):
        raw_key, key_prefix, key_hash = generate_api_key(live=settings.api_key_env != "test")
        record = ApiKey(
            id=uuid.uuid4(),
            user_id=owner,
            key_prefix=key_prefix,
            key_hash=key_hash,
            name=cleaned_name,
            created_at=now,
            expires_at=expires_at,
        )
        async with get_session() as session:
            session.add(record)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.warning(
                    "API key prefix collision on attempt %d (prefix=%s), regenerating",
                    attempt,
                    key_prefix,
                )
                continue

        logger.info("API key issued: key_id=%s prefix=%s user_id=%s", record.id, key_prefix, owner)
        return IssuedKey(full_key=raw_key, prefix=key_prefix, key_id=record.id)

    raise RuntimeError("Could not allocate a unique API key prefix")


async def _touch_last_used(key_id: uuid.UUID) -> None:
    async with get_session() as session:
        await session.execute(
            sa.update(ApiKey).where(ApiKey.id == key_id).values(last_used_at=utcnow())
        )
        await session.commit()


async def verify_api_key(presented_key: str | None) -> KeyVerification:
    """Verify a presented raw key.

    Candidate rows are found by the indexed 16-character prefix, never by
    scanning hashes.  The SHA-256 of the presented key is compared with
    ``hmac.compare_digest`` so timing does not leak how much of a hash matched.

    Returns:
        ``KeyVerification(valid=True, user_id, key_id)`` for an active key,
        otherwise ``INVALID_KEY``.  Unknown, revoked and expired keys are
        indistinguishable to the caller.
    """
    if not presented_key or len(presented_key) <= KEY_PREFIX_LENGTH:
        return INVALID_KEY

    prefix = presented_key[:KEY_PREFIX_LENGTH]
    presented_hash = hash_api_key(presented_key)

    async with get_session() as session:
        result = await session.execute(sa.select(ApiKey).where(ApiKey.key_prefix == prefix))
        candidates = result.scalars().all()

    match = None
    for candidate in candidates:
        if hmac.compare_digest(candidate.key_hash, presented_hash):
            match = candidate

    if match is None:
        return INVALID_KEY

    status = key_status(match)
    if status != "active":
        logger.info("Rejected %s API key: prefix=%s", status, prefix)
        return INVALID_KEY

    background.fire_and_forget(_touch_last_used(match.id), f"last_used_at for key {match.id}")
    return KeyVerification(valid=True, user_id=match.user_id, key_id=match.id)


async def revoke_api_key(user_id: uuid.UUID | str, key_id: uuid.UUID | str) -> bool:
    """Revoke a key owned by ``user_id``.

    Revocation is terminal and idempotent: revoking an already-revoked key
    succeeds without moving ``revoked_at``.

    Raises:
        NotFound:     If the key does not exist.
        Unauthorized: If the key belongs to another user.
    """
    owner = coerce_uuid(user_id, "user_id")
    key_uuid = coerce_uuid(key_id, "key_id")

    async with get_session() as session:
        result = await session.execute(
            sa.select(ApiKey.user_id, ApiKey.key_prefix).where(ApiKey.id == key_uuid)
        )
        row = result.one_or_none()
        if row is None:
            raise NotFound("API key not found")
        if row.user_id != owner:
            logger.warning("Revoke denied: key_id=%s caller=%s", key_uuid, owner)
            raise Unauthorized()

        await session.execute(
            sa.update(ApiKey)
            .where(ApiKey.id == key_uuid, ApiKey.revoked_at.is_(None))
            .values(revoked_at=utcnow())
        )
        await session.commit()

    logger.info("API key revoked: key_id=%s prefix=%s user_id=%s", key_uuid, row.key_prefix, owner)
    return True
