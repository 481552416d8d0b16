"""API key management endpoints for the dashboard.

Endpoints:
- POST   /keys          — issue a key; the full key is in this response only
- DELETE /keys/{key_id} — revoke a key (idempotent)

Both require the dashboard caller's bearer token; the owning user is always
taken from the token, never from the request body.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from leadsradar.api.auth import require_user
from leadsradar.security.api_key import issue_api_key, revoke_api_key
from leadsradar.security.identity import CallerContext

logger = logging.getLogger(__name__)

keys_router = APIRouter(prefix="/keys", tags=["keys"])


class IssueKeyRequest(BaseModel):
    name: str = Field(..., description="Label shown in the key list (1-50 characters)")
    expires_in_days: int | None = Field(default=None, description="Optional lifetime in days")


class IssueKeyResponse(BaseModel):
    success: bool
    key: str
    prefix: str
    key_id: str


class RevokeKeyResponse(BaseModel):
    success: bool


@keys_router.post(
    "",
    response_model=IssueKeyResponse,
    operation_id="issue_api_key",
    summary="Issue a new API key",
    description="Returns the full key exactly once.  Store it now; it cannot be shown again.",
    status_code=201,
)
async def issue_key(
    body: IssueKeyRequest,
    caller: CallerContext = Depends(require_user),
) -> IssueKeyResponse:
    issued = await issue_api_key(caller.user_id, body.name, body.expires_in_days)
    return IssueKeyResponse(
        success=True,
        key=issued.full_key,
        prefix=issued.prefix,
        key_id=str(issued.key_id),
    )


@keys_router.delete(
    "/{key_id}",
    response_model=RevokeKeyResponse,
    operation_id="revoke_api_key",
    summary="Revoke an API key",
)
async def revoke_key(
    key_id: str,
    caller: CallerContext = Depends(require_user),
) -> RevokeKeyResponse:
    await revoke_api_key(caller.user_id, key_id)
    return RevokeKeyResponse(success=True)
