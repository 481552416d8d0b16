"""Lead actions for the dashboard.

Endpoints:
- PATCH /leads/{lead_id}/status — move a lead between Kanban columns
- POST  /leads/{lead_id}/pitch  — generate an outreach pitch for a lead

Status changes use optimistic concurrency: the body carries the version the
client last saw.  A stale version returns 409 with ``current_version`` so the
client can refetch and retry.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from leadsradar.api.auth import require_user
from leadsradar.api.errors import get_request_id
from leadsradar.leads.store import update_status
from leadsradar.pitch import llm
from leadsradar.pitch.gateway import generate_pitch
from leadsradar.security.identity import CallerContext

logger = logging.getLogger(__name__)

leads_router = APIRouter(prefix="/leads", tags=["leads"])


class StatusChangeRequest(BaseModel):
    status: str = Field(..., description="Found | Contacted | Negotiating | Won | Lost")
    version: int = Field(..., description="Version the client last observed")


class StatusChangeResponse(BaseModel):
    success: bool
    lead_id: str
    status: str
    version: int


class PitchRequest(BaseModel):
    tone: str = Field(default="professional", description=" | ".join(llm.TONES))


class PitchResponse(BaseModel):
    success: bool
    pitch: str
    remaining: int


@leads_router.patch(
    "/{lead_id}/status",
    response_model=StatusChangeResponse,
    operation_id="update_lead_status",
    summary="Change a lead's status (version-checked)",
)
async def change_status(
    lead_id: str,
    body: StatusChangeRequest,
    caller: CallerContext = Depends(require_user),
) -> StatusChangeResponse:
    result = await update_status(lead_id, caller.user_id, body.status, body.version)
    return StatusChangeResponse(
        success=True,
        lead_id=str(result.lead_id),
        status=result.status.value,
        version=result.version,
    )


@leads_router.post(
    "/{lead_id}/pitch",
    response_model=PitchResponse,
    operation_id="generate_lead_pitch",
    summary="Generate an outreach pitch for a lead",
)
async def pitch(
    lead_id: str,
    request: Request,
    body: PitchRequest | None = None,
    caller: CallerContext = Depends(require_user),
) -> PitchResponse:
    tone = body.tone if body else "professional"
    result = await generate_pitch(lead_id, caller.user_id, tone, request_id=get_request_id(request))
    return PitchResponse(success=True, pitch=result.pitch, remaining=result.remaining_daily)
