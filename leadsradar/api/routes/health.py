"""Health endpoint: reports whether the database is reachable."""

from __future__ import annotations

import logging

import sqlalchemy as sa
from fastapi import APIRouter
from fastapi.responses import JSONResponse

from leadsradar.config import settings
from leadsradar.db.models import Profile
from leadsradar.db.session import get_session

logger = logging.getLogger(__name__)

health_router = APIRouter(tags=["health"])


@health_router.get("/health", operation_id="health")
async def health() -> JSONResponse:
    """200 when a trivial query succeeds, 503 with the error otherwise."""
    try:
        async with get_session() as session:
            await session.execute(sa.select(Profile.id).limit(1))
    except Exception as exc:
        logger.warning("Health check failed: %s", exc)
        return JSONResponse(
            status_code=503,
            content={"status": "error", "database": "disconnected", "error": str(exc)},
        )

    return JSONResponse(
        status_code=200,
        content={"status": "ok", "database": "connected", "version": settings.app_version},
    )
