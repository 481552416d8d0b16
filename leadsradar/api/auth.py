"""Authentication dependencies for the LeadsRadar HTTP API.

Two kinds of caller reach the API:

- Integrations posting webhooks present an API key in the ``X-API-Key``
  header.  ``require_api_key`` verifies it through the key store and returns
  the ``KeyVerification`` (owning user id + key id).
- Dashboard users present the identity provider's access token as
  ``Authorization: Bearer <token>``.  ``require_user`` turns it into a
  ``CallerContext``.

Both headers are declared with ``auto_error=False`` so a missing credential
produces our own 401 body instead of FastAPI's default 403.
"""

from __future__ import annotations

import logging

from fastapi import Security
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer

from leadsradar.errors import Unauthorized
from leadsradar.security.api_key import KEY_PREFIX_LENGTH, KeyVerification, verify_api_key
from leadsradar.security.identity import CallerContext, decode_token

logger = logging.getLogger(__name__)

API_KEY_HEADER = APIKeyHeader(name="X-API-Key", auto_error=False)
BEARER = HTTPBearer(auto_error=False)


async def require_api_key(api_key: str | None = Security(API_KEY_HEADER)) -> KeyVerification:
    """FastAPI dependency that verifies the ``X-API-Key`` header.

    Raises:
        Unauthorized: If the header is absent or the key is unknown, revoked,
                      or expired.
    """
    if not api_key:
        raise Unauthorized("Missing API Key")

    verification = await verify_api_key(api_key)
    if not verification.valid:
        # Only the public prefix is ever logged
        logger.warning("Invalid API Key attempt: prefix=%s", api_key[:KEY_PREFIX_LENGTH])
        raise Unauthorized("Invalid API Key")
    return verification


async def require_user(
    credentials: HTTPAuthorizationCredentials | None = Security(BEARER),
) -> CallerContext:
    """FastAPI dependency that resolves the dashboard caller from a bearer token."""
    if credentials is None or not credentials.credentials:
        raise Unauthorized()
    return decode_token(credentials.credentials)
