"""Request correlation middleware for the LeadsRadar API.

Every request gets a fresh UUID, exposed to handlers as
``request.state.request_id`` and echoed in the ``X-Request-ID`` response
header.  The same id appears in log lines and in error bodies so a support
lookup can go from a client report straight to the logs.

Registered in ``server/main.py`` with ``app.middleware("http")``; a plain
function middleware avoids the BaseHTTPMiddleware pitfalls with streaming
responses and exception handlers.
"""

from __future__ import annotations

import uuid
from typing import Awaitable, Callable

from fastapi import Request, Response

REQUEST_ID_HEADER = "X-Request-ID"


async def request_id_middleware(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response
