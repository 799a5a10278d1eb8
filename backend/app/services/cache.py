"""
Cache layer — best-effort Redis cache in front of the database.

The cache is never the system of record. Every operation degrades to
"miss" / no-op when Redis cannot be reached, so a cache outage costs
latency on the database side and nothing else.

Availability is an explicit CacheState owned by the CacheClient and only
changed by its connection-event handlers (_on_connect / _on_ready /
_on_error / _on_reset). Request handlers read it, never write it. A request
seeing a stale state is harmless: the worst case is one extra miss.

Connection attempts are bounded (connect timeout x max_retries with capped
backoff). After an outage the client stays UNAVAILABLE for
`retry_interval` seconds; the next cache call after that pings once and
re-enables caching if Redis answers. `health()` and `reconnect()` retry
straight away.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from enum import Enum
from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import (
    ConnectionError as RedisConnectionError,
    RedisError,
    TimeoutError as RedisTimeoutError,
)

from app.config import settings
from app.middleware.metrics import cache_available, cache_lookups_total

logger = logging.getLogger(__name__)


class CacheKeys:
    """Key prefixes. Invalidation works on these prefixes, not single keys."""

    USER = "user:"
    SESSION = "session:"
    AGENT_METRICS = "agent_metrics:"
    QUICK_NOTES = "quick_notes:"
    ROLE_PERMISSIONS = "role_permissions:"


class CacheTTL:
    SHORT = 300        # 5 minutes
    MEDIUM = 1800      # 30 minutes
    LONG = 3600        # 1 hour
    DAY = 86400        # 24 hours


class CacheState(str, Enum):
    UNKNOWN = "unknown"          # not connected yet / reconnect requested
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


# Errors that mean the backend itself is unreachable
_CONNECTION_ERRORS = (RedisConnectionError, RedisTimeoutError, OSError)


class CacheClient:
    def __init__(
        self,
        redis_client: aioredis.Redis | None = None,
        *,
        max_retries: int | None = None,
        connect_timeout: float | None = None,
        backoff_step: float = 1.0,
        backoff_cap: float = 5.0,
        retry_interval: float | None = None,
    ):
        self._redis = redis_client
        self._state = CacheState.UNKNOWN
        self._error_logged = False
        self._failed_at = 0.0
        self._connect_lock = asyncio.Lock()
        self.max_retries = max(1, max_retries if max_retries is not None else settings.redis_max_retries)
        self.connect_timeout = connect_timeout if connect_timeout is not None else settings.redis_connect_timeout
        self.backoff_step = backoff_step
        self.backoff_cap = backoff_cap
        self.retry_interval = retry_interval if retry_interval is not None else settings.redis_retry_interval

    # ── State ────────────────────────────────────────────────────────────────

    @property
    def state(self) -> CacheState:
        return self._state

    @property
    def available(self) -> bool:
        return self._state == CacheState.AVAILABLE

    @property
    def client(self) -> aioredis.Redis | None:
        """Underlying connection, only when the backend is known to be up."""
        return self._redis if self.available else None

    # ── Connection events ────────────────────────────────────────────────────

    def _on_connect(self) -> None:
        self._state = CacheState.AVAILABLE
        cache_available.set(1)
        self._error_logged = False
        logger.info("Redis connected - caching enabled")

    def _on_ready(self) -> None:
        self._state = CacheState.AVAILABLE

    def _on_error(self, exc: BaseException) -> None:
        self._state = CacheState.UNAVAILABLE
        self._failed_at = time.monotonic()
        cache_available.set(0)
        # One warning per outage, not one per request
        if not self._error_logged:
            logger.warning("Redis not available - caching disabled (%s)", exc)
            self._error_logged = True

    def _on_reset(self) -> None:
        # Next call connects from scratch; an outage already warned about stays quiet
        self._state = CacheState.UNKNOWN

    # ── Connection management ────────────────────────────────────────────────

    def _build_client(self) -> aioredis.Redis:
        return aioredis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            password=settings.redis_password or None,
            db=settings.redis_db,
            socket_connect_timeout=self.connect_timeout,
            socket_timeout=self.connect_timeout,
            decode_responses=True,
        )

    async def connect(self) -> bool:
        """Establish the shared connection. Returns True when available."""
        async with self._connect_lock:
            if self._state != CacheState.UNKNOWN:
                return self.available
            if self._redis is None:
                self._redis = self._build_client()

            last_exc: BaseException | None = None
            for attempt in range(1, self.max_retries + 1):
                try:
                    await self._redis.ping()
                except (RedisError, OSError) as exc:
                    last_exc = exc
                    logger.debug("Redis connect attempt %d/%d failed: %s", attempt, self.max_retries, exc)
                    if attempt < self.max_retries:
                        await asyncio.sleep(min(attempt * self.backoff_step, self.backoff_cap))
                    continue
                self._on_connect()
                self._on_ready()
                return True

            self._on_error(last_exc or RedisConnectionError("connect failed"))
            return False

    async def reconnect(self) -> bool:
        """Forget the previous outage and try to connect again."""
        self._on_reset()
        return await self.connect()

    async def close(self) -> None:
        if self._redis is not None:
            try:
                await self._redis.aclose()
            except (RedisError, OSError) as exc:
                logger.debug("Error closing Redis connection: %s", exc)
        self._redis = None
        self._on_reset()

    def _retry_due(self) -> bool:
        return time.monotonic() - self._failed_at >= self.retry_interval

    async def _retry(self, force: bool = False) -> bool:
        """Ping a backend marked unavailable once; re-enable caching if it answers."""
        async with self._connect_lock:
            if self._state != CacheState.UNAVAILABLE:
                return self.available
            # Concurrent callers queued behind a failed attempt must not retry again
            if not force and not self._retry_due():
                return False
            if self._redis is None:
                self._redis = self._build_client()
            try:
                await self._redis.ping()
            except (RedisError, OSError) as exc:
                logger.debug("Redis recovery attempt failed: %s", exc)
                self._on_error(exc)
                return False
            self._on_connect()
            self._on_ready()
            return True

    async def _ready(self) -> bool:
        if self._state == CacheState.UNAVAILABLE:
            return self._retry_due() and await self._retry()
        if self._state == CacheState.UNKNOWN:
            return await self.connect()
        return True

    def _handle_failure(self, op: str, key: str, exc: Exception) -> None:
        if isinstance(exc, _CONNECTION_ERRORS):
            self._on_error(exc)
        else:
            logger.debug("Cache %s failed for %s: %s", op, key, exc)

    # ── Operations ───────────────────────────────────────────────────────────

    async def get(self, key: str) -> Any | None:
        """Cached value, or None on miss, expiry or any backend failure."""
        if not await self._ready():
            cache_lookups_total.labels(result="skipped").inc()
            return None
        try:
            raw = await self._redis.get(key)
        except (RedisError, OSError) as exc:
            cache_lookups_total.labels(result="error").inc()
            self._handle_failure("get", key, exc)
            return None
        if raw is None:
            cache_lookups_total.labels(result="miss").inc()
            return None
        cache_lookups_total.labels(result="hit").inc()
        try:
            return json.loads(raw)
        except ValueError:
            logger.debug("Discarding undecodable cache entry %s", key)
            return None

    async def set(self, key: str, value: Any, ttl: int = CacheTTL.MEDIUM) -> None:
        if not await self._ready():
            return
        try:
            payload = json.dumps(value, default=str)
        except (TypeError, ValueError) as exc:
            logger.warning("Value for %s is not cacheable: %s", key, exc)
            return
        try:
            await self._redis.setex(key, ttl, payload)
        except (RedisError, OSError) as exc:
            self._handle_failure("set", key, exc)

    async def delete(self, key: str) -> None:
        if not await self._ready():
            return
        try:
            await self._redis.delete(key)
        except (RedisError, OSError) as exc:
            self._handle_failure("delete", key, exc)

    async def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern. Returns the number removed."""
        if not await self._ready():
            return 0
        try:
            keys = [k async for k in self._redis.scan_iter(match=pattern, count=500)]
            if keys:
                await self._redis.delete(*keys)
        except (RedisError, OSError) as exc:
            self._handle_failure("delete_pattern", pattern, exc)
            return 0
        return len(keys)

    # ── Invalidation helpers ─────────────────────────────────────────────────

    async def invalidate_user_cache(self, user_id: int) -> None:
        await self.delete_pattern(f"{CacheKeys.USER}{user_id}:*")

    async def invalidate_agent_cache(self, agent_id: int) -> None:
        """Drop everything derived from one agent's data."""
        await self.delete_pattern(f"{CacheKeys.AGENT_METRICS}{agent_id}:*")
        await self.delete_pattern(f"{CacheKeys.QUICK_NOTES}{agent_id}:*")
        await self.delete_pattern(f"{CacheKeys.QUICK_NOTES}*:{agent_id}:*")
        await self.delete_pattern(f"{CacheKeys.SESSION}{agent_id}:*")

    async def invalidate_role_permissions(self, role: str) -> None:
        await self.delete(f"{CacheKeys.ROLE_PERMISSIONS}{role}")
        await self.delete_pattern(f"{CacheKeys.USER}*:permissions")

    async def health(self) -> dict:
        if self._state == CacheState.UNAVAILABLE:
            await self._retry(force=True)
        if not await self._ready():
            return {"status": "disconnected", "state": self._state.value}
        try:
            await self._redis.ping()
        except (RedisError, OSError) as exc:
            self._handle_failure("ping", "-", exc)
            return {"status": "disconnected", "state": self._state.value}
        return {"status": "connected", "state": self._state.value}
