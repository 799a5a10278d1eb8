"""
Prometheus metrics middleware.

Collects HTTP request metrics (counter + histogram) and exposes
application-level counters for authorization decisions and the cache.
"""

import re
import time

from prometheus_client import Counter, Histogram, Gauge
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

# ── HTTP metrics ─────────────────────────────────────────────────────────────

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status_code"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

# ── Authorization metrics ────────────────────────────────────────────────────

authz_denials_total = Counter(
    "authz_denials_total",
    "Requests refused by the permission gate",
    ["role", "check"],  # check: capability | ownership
)

# ── Cache metrics ────────────────────────────────────────────────────────────

cache_lookups_total = Counter(
    "cache_lookups_total",
    "Cache reads by outcome",
    ["result"],  # hit | miss | skipped | error
)

cache_available = Gauge(
    "cache_available",
    "1 when the Redis cache is reachable, 0 otherwise",
)

_NUMERIC_SEGMENT = re.compile(r"^\d+$")


def _normalize_path(path: str) -> str:
    """Collapse numeric ids to reduce label cardinality.

    e.g. /api/agents/42/scorecard -> /api/agents/{id}/scorecard
    """
    parts = path.strip("/").split("/")
    normalized = [
        "{id}" if _NUMERIC_SEGMENT.match(part) or len(part) > 32 else part
        for part in parts
    ]
    return "/" + "/".join(normalized)


class PrometheusMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        # Skip metrics endpoint itself to avoid recursion
        if request.url.path == "/metrics":
            return await call_next(request)

        method = request.method
        path = _normalize_path(request.url.path)

        start = time.time()
        response = await call_next(request)
        duration = time.time() - start

        http_requests_total.labels(
            method=method,
            path=path,
            status_code=response.status_code,
        ).inc()

        http_request_duration_seconds.labels(
            method=method,
            path=path,
        ).observe(duration)

        return response
