"""
Request context middleware for observability.

Injects a request_id into every request for log correlation and writes one
completion line per request (method, path, status, duration, caller).

Headers:
- X-Request-ID: Unique ID for this request (generated if not provided)
"""

import re
import time
from typing import Optional

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from inkwell.core.context import clear_context, generate_request_id, set_request_id

# Request ID validation to prevent log injection attacks
MAX_ID_LENGTH = 64
SAFE_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_\-]+$")


def _validate_id(value: Optional[str]) -> Optional[str]:
    """Return the caller's ID when it is short and log-safe, else None."""
    if not value:
        return None
    if len(value) > MAX_ID_LENGTH:
        return None
    if not SAFE_ID_PATTERN.match(value):
        return None
    return value


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        logger = request.app.state.logger

        request_id = _validate_id(request.headers.get("X-Request-ID")) or generate_request_id()
        set_request_id(request_id)
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            path=request.url.path,
            method=request.method,
        )

        start_time = time.perf_counter()
        status_code = 500  # Default to error in case of exception

        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            duration_ms = round((time.perf_counter() - start_time) * 1000, 1)
            identity = getattr(request.state, "identity", None)
            fields = {
                "status_code": status_code,
                "duration_ms": duration_ms,
                "user_id": identity.id if identity else "anonymous",
            }
            if status_code >= 500:
                logger.error("Request completed", **fields)
            elif status_code >= 400:
                logger.warning("Request completed", **fields)
            else:
                logger.info("Request completed", **fields)

            clear_context()
            structlog.contextvars.clear_contextvars()
