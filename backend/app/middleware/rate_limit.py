"""
Redis-backed sliding window rate limiter middleware.

Shares the cache layer's connection (`app.state.cache`). When the cache is
not available the limiter fails open: requests pass unthrottled.
"""

import logging
import time

from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from app.config import settings

logger = logging.getLogger(__name__)

# Paths exempt from rate limiting
EXEMPT_PATHS = frozenset({"/api/health", "/metrics"})

WINDOW_SECONDS = 60


class RateLimitMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        limit = settings.rate_limit_per_minute
        if limit <= 0 or request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        cache = getattr(request.app.state, "cache", None)
        r = cache.client if cache is not None else None
        if r is None:
            # Cache down or not yet connected: fail open
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        now = time.time()
        key = f"ratelimit:{client_ip}"

        try:
            pipe = r.pipeline()
            # Remove entries outside the sliding window
            pipe.zremrangebyscore(key, 0, now - WINDOW_SECONDS)
            pipe.zadd(key, {f"{now}:{id(request)}": now})
            pipe.zcard(key)
            pipe.expire(key, WINDOW_SECONDS)
            results = await pipe.execute()
            request_count = results[2]
        except (RedisError, OSError) as exc:
            logger.warning("Rate limiter Redis error: %s", exc)
            return await call_next(request)

        if request_count > limit:
            logger.info("Rate limit exceeded for %s (%d/min)", client_ip, request_count)
            return JSONResponse(
                status_code=429,
                content={"error": "Too many requests. Please try again later."},
                headers={"Retry-After": str(WINDOW_SECONDS)},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(max(0, limit - request_count))
        return response
