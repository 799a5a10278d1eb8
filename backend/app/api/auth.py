"""Authentication API — login, logout, profile, CSRF tokens."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_cache, get_db, get_request_context, require
from app.auth.context import RequestContext
from app.auth.csrf import clear_csrf_cookie, generate_csrf_token, set_csrf_cookie
from app.auth.jwt import create_access_token
from app.auth.passwords import hash_password, password_policy_error, verify_password
from app.auth.permissions import Capability
from app.models.user import User
from app.schemas.schemas import (
    ChangePasswordRequest,
    CsrfTokenResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    UserProfile,
)
from app.services.cache import CacheClient, CacheKeys, CacheTTL

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


async def _get_user_or_404(user_id: int, db: AsyncSession) -> User:
    user = (await db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


# ── Login / logout ────────────────────────────────────────────────────────────

@router.post("/login", response_model=LoginResponse)
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)):
    """Authenticate with email + password, receive a JWT access token."""
    user = (await db.execute(
        select(User).where(User.email == body.email)
    )).scalar_one_or_none()

    if not user or not verify_password(body.password, user.password_hash):
        logger.info("Failed login for %s", body.email)
        raise HTTPException(status_code=401, detail="Invalid email or password")

    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account is disabled")

    access_token = create_access_token(user.id, user.email, user.role)
    logger.info("Login: %s (%s)", user.email, user.role)

    return LoginResponse(access_token=access_token, user=UserProfile.model_validate(user))


@router.post("/logout", response_model=MessageResponse)
async def logout(
    ctx: RequestContext = Depends(get_request_context),
    cache: CacheClient = Depends(get_cache),
):
    """Drop the caller's cached data and CSRF cookie. Tokens expire on their own."""
    await cache.invalidate_user_cache(ctx.user_id)
    response = JSONResponse({"message": "Logged out"})
    clear_csrf_cookie(response)
    return response


# ── Profile ───────────────────────────────────────────────────────────────────

@router.get("/me", response_model=UserProfile)
async def me(
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
    cache: CacheClient = Depends(get_cache),
):
    """Return current authenticated user profile."""
    key = f"{CacheKeys.USER}{ctx.user_id}:profile"
    cached = await cache.get(key)
    if cached is not None:
        return UserProfile.model_validate(cached)

    profile = UserProfile.model_validate(await _get_user_or_404(ctx.user_id, db))
    await cache.set(key, profile.model_dump(mode="json"), CacheTTL.MEDIUM)
    return profile


@router.put("/me/password", response_model=MessageResponse)
async def change_password(
    body: ChangePasswordRequest,
    ctx: RequestContext = Depends(require(Capability.UPDATE_PROFILE)),
    db: AsyncSession = Depends(get_db),
    cache: CacheClient = Depends(get_cache),
):
    """Change own password (requires current password)."""
    user = await _get_user_or_404(ctx.user_id, db)

    if not verify_password(body.current_password, user.password_hash):
        raise HTTPException(status_code=400, detail="Current password is incorrect")

    problem = password_policy_error(body.new_password)
    if problem:
        raise HTTPException(status_code=400, detail=problem)

    user.password_hash = hash_password(body.new_password)
    await db.commit()
    await cache.invalidate_user_cache(ctx.user_id)
    logger.info("Password changed for user %s", ctx.user_id)
    return MessageResponse(message="Password updated")


# ── CSRF ──────────────────────────────────────────────────────────────────────

def _csrf_response(token: str) -> JSONResponse:
    response = JSONResponse(CsrfTokenResponse(csrf_token=token).model_dump(by_alias=True))
    set_csrf_cookie(response, token)
    return response


@router.get("/csrf", response_model=CsrfTokenResponse)
async def issue_csrf_token():
    """Issue a fresh CSRF token (body + httpOnly cookie). No login required."""
    return _csrf_response(generate_csrf_token())


@router.post("/csrf", response_model=CsrfTokenResponse)
async def refresh_csrf_token(ctx: RequestContext = Depends(get_request_context)):
    """Rotate the CSRF token for a signed-in user."""
    logger.debug("CSRF token refreshed for %s", ctx.actor)
    return _csrf_response(generate_csrf_token())
