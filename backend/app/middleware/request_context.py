"""
Request context middleware.

Generates or propagates X-Request-ID and keeps it in a ContextVar so every
log line written while handling the request carries the same id.
"""

import logging
import time
from contextvars import ContextVar
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger(__name__)

_request_id_var: ContextVar[str] = ContextVar("request_id", default="")

# Probes that would otherwise drown the access log
QUIET_PATHS = frozenset({"/api/health", "/metrics"})

MAX_REQUEST_ID_LENGTH = 64


def get_request_id() -> str:
    """Get the current request ID from context."""
    return _request_id_var.get()


def _incoming_request_id(request: Request) -> str:
    candidate = request.headers.get("X-Request-ID", "")
    if candidate and len(candidate) <= MAX_REQUEST_ID_LENGTH and candidate.isprintable():
        return candidate
    return uuid4().hex


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = _incoming_request_id(request)
        token = _request_id_var.set(request_id)

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
            duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
            response.headers["X-Request-ID"] = request_id
            if request.url.path not in QUIET_PATHS:
                logger.info(
                    "%s %s %s %.0fms",
                    request.method,
                    request.url.path,
                    response.status_code,
                    duration_ms,
                    extra={"duration_ms": duration_ms},
                )
            return response
        finally:
            _request_id_var.reset(token)
