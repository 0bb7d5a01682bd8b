"""
FastAPI middleware for request correlation and access logging.
"""

from __future__ import annotations

import re
import time
import uuid
from typing import Awaitable, Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
_UPSTREAM_ID = re.compile(r"^[A-Za-z0-9._-]{8,128}$")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Tag every request with an id and log its outcome.

    The id is taken from an incoming X-Request-ID header when the auth proxy
    already assigned one (and it looks sane), otherwise a fresh UUID. It is:

    1. stored in request.state.request_id
    2. bound as request_id into structlog contextvars, so every log line of
       the export or restore carries it
    3. returned to the client in the X-Request-ID header

    Example:
        >>> app.add_middleware(RequestIDMiddleware)
        >>> # Response headers will include:
        >>> # X-Request-ID: 550e8400-e29b-41d4-a716-446655440000
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        upstream = request.headers.get(REQUEST_ID_HEADER, "")
        request_id = upstream if _UPSTREAM_ID.match(upstream) else str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.time()
        with structlog.contextvars.bound_contextvars(request_id=request_id):
            response = await call_next(request)
            logger.debug(
                "request_completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round((time.time() - start_time) * 1000, 1),
            )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
