"""Top-level FastAPI APIRouter for the LeadsRadar HTTP API.

Prefix:  /api

Sub-routers included:
- health_router   — GET /api/health
- webhooks_router — POST /api/webhooks/twitter
- keys_router     — POST /api/keys, DELETE /api/keys/{key_id}
- leads_router    — PATCH /api/leads/{lead_id}/status, POST /api/leads/{lead_id}/pitch
"""

from __future__ import annotations

from fastapi import APIRouter

from leadsradar.api.routes.health import health_router
from leadsradar.api.routes.keys import keys_router
from leadsradar.api.routes.leads import leads_router
from leadsradar.api.routes.webhooks import webhooks_router

api_router = APIRouter(prefix="/api")

api_router.include_router(health_router)
api_router.include_router(webhooks_router)
api_router.include_router(keys_router)
api_router.include_router(leads_router)
