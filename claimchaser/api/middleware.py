"""
API Middleware.

Request ID injection and structured access logging for every incoming
API request.
"""

from __future__ import annotations

import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from claimchaser.logging_config import generate_trace_id, get_logger, trace_id_var

logger = get_logger(__name__)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Inject a unique request ID into every request and response."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID", generate_trace_id())
        token = trace_id_var.set(request_id)

        start = time.monotonic()
        try:
            response = await call_next(request)
        finally:
            elapsed_ms = round((time.monotonic() - start) * 1000, 1)
            trace_id_var.reset(token)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time-Ms"] = str(elapsed_ms)

        logger.info(
            "api_request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            elapsed_ms=elapsed_ms,
            request_id=request_id,
        )

        return response
