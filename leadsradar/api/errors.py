"""Exception handlers that render the error taxonomy as JSON.

Every error body has the shape ``{"error": <message>, "code": <code>, ...}``
and carries the request's correlation id as ``request_id``.  Unexpected
exceptions are logged with full context and returned as an opaque 500.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from leadsradar.errors import LeadsRadarError

logger = logging.getLogger(__name__)


def get_request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


async def leadsradar_error_handler(request: Request, exc: LeadsRadarError) -> JSONResponse:
    body = exc.to_dict()
    request_id = get_request_id(request)
    if request_id:
        body.setdefault("request_id", request_id)
    if exc.status_code >= 500:
        logger.error(
            "%s on %s %s: request_id=%s detail=%s",
            exc.code,
            request.method,
            request.url.path,
            request_id,
            exc.detail,
        )
    return JSONResponse(status_code=exc.status_code, content=body)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body") or "body",
            "message": error.get("msg", "Invalid value"),
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={
            "error": "Invalid input",
            "code": "validation_error",
            "details": details,
            "request_id": get_request_id(request),
        },
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    request_id = get_request_id(request)
    logger.exception(
        "Unhandled error on %s %s: request_id=%s", request.method, request.url.path, request_id
    )
    return JSONResponse(
        status_code=500,
        content={"error": "Internal Server Error", "code": "internal_error", "request_id": request_id},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LeadsRadarError, leadsradar_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
