"""LeadsRadar HTTP server entry point.

Entry point:
    uvicorn leadsradar.server.main:app --host 0.0.0.0 --port 8000

Or run directly:
    python -m leadsradar.server.main
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.routing import APIRoute

from leadsradar import background
from leadsradar.api.errors import register_exception_handlers
from leadsradar.api.middleware import request_id_middleware
from leadsradar.api.router import api_router
from leadsradar.config import settings
from leadsradar.db.session import engine

logger = logging.getLogger(__name__)


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup logging; on shutdown flush background writes and dispose the engine."""
    configure_logging()
    logger.info("%s %s starting up...", settings.app_name, settings.app_version)

    yield

    logger.info("Shutting down, flushing background tasks...")
    await background.drain()
    await engine.dispose()
    logger.info("Database engine disposed.")


def custom_generate_unique_id(route: APIRoute) -> str:
    """Generate deterministic, SDK-friendly operation IDs for REST routes."""
    if route.tags:
        return f"{route.tags[0]}-{route.name}"
    return route.name


app = FastAPI(
    title=settings.app_name,
    description="Lead ingestion, triage, and pitch generation API",
    version=settings.app_version,
    lifespan=lifespan,
    generate_unique_id_function=custom_generate_unique_id,
)

app.middleware("http")(request_id_middleware)
register_exception_handlers(app)
app.include_router(api_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
