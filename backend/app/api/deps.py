"""
API Dependencies — DB session, cache, auth context, permission guards.

`get_request_context`:
  1. Extracts the Bearer token from the Authorization header
  2. Decodes and validates the JWT
  3. Parses the role claim (unknown role -> 401)
  4. Returns the RequestContext

What the caller may do is decided by the PermissionGate; the guards below
are thin FastAPI wrappers around `PermissionGate.authorize`.
"""

import logging
from typing import AsyncGenerator

from fastapi import Depends, HTTPException, Request
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.context import RequestContext
from app.auth.gate import PermissionGate, unauthorized
from app.auth.jwt import decode_access_token
from app.auth.permissions import Capability
from app.auth.roles import Role, parse_role
from app.database import async_session
from app.services.cache import CacheClient

logger = logging.getLogger(__name__)


# ── Database session ─────────────────────────────────────────────────────────

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a DB session per request, commit on success, rollback on error.

    Handlers that invalidate cache entries commit their writes before
    invalidating, so a concurrent reader cannot re-cache pre-write rows.
    """
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# ── Cache ────────────────────────────────────────────────────────────────────

def get_cache(request: Request) -> CacheClient:
    """The process-wide cache client created in main.py."""
    return request.app.state.cache


# ── Request context (JWT authentication) ──────────────────────────────────────

def _decode_principal(request: Request) -> RequestContext | None:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None

    token = auth_header[7:]  # strip "Bearer "
    try:
        claims = decode_access_token(token)
    except JWTError as e:
        logger.debug("JWT decode failed: %s", e)
        return None

    role = parse_role(str(claims.get("role", "")))
    if role is None:
        logger.warning("Token for user %s carries unknown role %r", claims.get("sub"), claims.get("role"))
        return None

    try:
        user_id = int(claims["sub"])
    except (KeyError, TypeError, ValueError):
        return None

    return RequestContext(user_id=user_id, role=role, email=claims.get("email", ""))


async def get_optional_context(request: Request) -> RequestContext | None:
    return _decode_principal(request)


async def get_request_context(request: Request) -> RequestContext:
    ctx = _decode_principal(request)
    if ctx is None:
        raise unauthorized()
    return ctx


# ── Permission gate ──────────────────────────────────────────────────────────

async def get_gate(
    db: AsyncSession = Depends(get_db),
    cache: CacheClient = Depends(get_cache),
) -> PermissionGate:
    return PermissionGate(db, cache)


# ── Permission guards ────────────────────────────────────────────────────────

def require(*caps: Capability):
    """
    FastAPI dependency that checks the caller has ALL listed capabilities.

    Usage:
        @router.get("/agents")
        async def list_agents(ctx: RequestContext = Depends(require(Capability.VIEW_AGENTS))):
            ...
    """
    async def _check(
        ctx: RequestContext | None = Depends(get_optional_context),
        gate: PermissionGate = Depends(get_gate),
    ) -> RequestContext:
        return await gate.authorize(ctx, *caps)
    return _check


def require_any(*caps: Capability):
    """
    FastAPI dependency that checks the caller has AT LEAST ONE of the listed capabilities.
    """
    async def _check(
        ctx: RequestContext | None = Depends(get_optional_context),
        gate: PermissionGate = Depends(get_gate),
    ) -> RequestContext:
        return await gate.authorize(ctx, *caps, require_all=False)
    return _check


def require_role(*roles: Role):
    """FastAPI dependency restricting an endpoint to specific roles."""
    async def _check(ctx: RequestContext = Depends(get_request_context)) -> RequestContext:
        if ctx.role not in roles:
            raise HTTPException(status_code=403, detail="Forbidden")
        return ctx
    return _check
