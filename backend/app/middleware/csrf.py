"""
CSRF middleware.

Rejects state-changing requests whose `x-csrf-token` header does not match
the `csrf-token` cookie (see app.auth.csrf). Login, the token endpoint
itself and the probes are exempt.
"""

import logging

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from app.auth.csrf import validate_csrf_token

logger = logging.getLogger(__name__)

EXEMPT_PATHS = frozenset({
    "/api/auth/login",
    "/api/auth/csrf",
    "/api/health",
    "/metrics",
})


class CSRFMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        path = request.url.path.rstrip("/") or "/"
        if path in EXEMPT_PATHS or validate_csrf_token(request):
            return await call_next(request)
        return JSONResponse(status_code=403, content={"error": "Invalid CSRF token"})
