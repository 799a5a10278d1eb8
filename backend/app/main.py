import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import settings
from app.database import engine
from app.middleware.logging_config import configure_logging
from app.services.cache import CacheClient

configure_logging(settings.log_level, settings.log_json)
logger = logging.getLogger("app")

from app.api.auth import router as auth_router  # noqa: E402
from app.api.agents import router as agents_router  # noqa: E402
from app.api.scorecard import router as scorecard_router  # noqa: E402
from app.api.roles import router as roles_router  # noqa: E402
from app.api.users import router as users_router  # noqa: E402
from app.api.sessions import router as sessions_router  # noqa: E402
from app.api.quick_notes import router as quick_notes_router  # noqa: E402
from app.api.metrics import router as metrics_router  # noqa: E402


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: verify DB connection, try the cache (failure only disables caching)
    async with engine.begin() as conn:
        await conn.execute(text("SELECT 1"))
    await app.state.cache.connect()
    logger.info("Startup complete (cache %s)", app.state.cache.state.value)
    yield
    # Shutdown
    await app.state.cache.close()
    await engine.dispose()


app = FastAPI(
    title="Coaching API",
    description="Call-center coaching and agent performance management",
    version="0.1.0",
    lifespan=lifespan,
)

# Process-wide cache client; handlers reach it through deps.get_cache
app.state.cache = CacheClient()

# ── CSRF (innermost: runs after request id / rate limiting) ──────────────────
from app.middleware.csrf import CSRFMiddleware  # noqa: E402

app.add_middleware(CSRFMiddleware)

# ── CORS (tightened) ─────────────────────────────────────────────────────────
origins = [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization", "X-Request-ID", settings.csrf_header_name],
)

# ── Security headers middleware ──────────────────────────────────────────────
from app.middleware.security_headers import SecurityHeadersMiddleware  # noqa: E402

app.add_middleware(SecurityHeadersMiddleware)

# ── Rate limiting middleware ─────────────────────────────────────────────────
from app.middleware.rate_limit import RateLimitMiddleware  # noqa: E402

app.add_middleware(RateLimitMiddleware)

# ── Request context middleware (request ID + timing) ─────────────────────────
from app.middleware.request_context import RequestContextMiddleware  # noqa: E402

app.add_middleware(RequestContextMiddleware)

# ── Prometheus metrics middleware ────────────────────────────────────────────
from app.middleware.metrics import PrometheusMiddleware  # noqa: E402

app.add_middleware(PrometheusMiddleware)


# ── Error handlers: every error body is {"error": "..."} ─────────────────────

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    issues = [
        {
            "path": ".".join(str(p) for p in err.get("loc", ()) if p != "body"),
            "message": err.get("msg", ""),
        }
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"error": "Validation failed", "issues": issues})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Log the cause; the client only ever sees a generic message."""
    logger.error(
        "Unhandled %s on %s %s: %s",
        type(exc).__name__, request.method, request.url.path, exc,
        exc_info=exc,
    )
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# Register API routers
app.include_router(auth_router)
app.include_router(agents_router)
app.include_router(scorecard_router)
app.include_router(roles_router)
app.include_router(users_router)
app.include_router(sessions_router)
app.include_router(quick_notes_router)
app.include_router(metrics_router)


# ── Health check ─────────────────────────────────────────────────────────────

_health_cache: dict = {}
_health_cache_ts: float = 0.0
HEALTH_CACHE_TTL = 10.0  # seconds


@app.get("/api/health")
async def health_check(request: Request):
    global _health_cache, _health_cache_ts

    now = time.time()
    if _health_cache and (now - _health_cache_ts) < HEALTH_CACHE_TTL:
        return _health_cache

    components: dict = {}

    # Database
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        components["database"] = {"status": "connected"}
    except Exception as exc:
        logger.warning("Health check: database unreachable (%s)", exc)
        components["database"] = {"status": "disconnected"}

    # Cache (never required; down means degraded)
    components["cache"] = await request.app.state.cache.health()

    db_ok = components["database"]["status"] == "connected"
    cache_ok = components["cache"]["status"] == "connected"

    if db_ok and cache_ok:
        overall = "healthy"
    elif not db_ok:
        overall = "unhealthy"
    else:
        overall = "degraded"

    result = {
        "status": overall,
        "environment": settings.environment,
        "components": components,
    }

    _health_cache = result
    _health_cache_ts = now
    return result
