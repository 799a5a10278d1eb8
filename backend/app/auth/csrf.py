"""
CSRF protection — double-submit cookie.

A token is issued into an httpOnly, SameSite=Strict cookie and returned
in the response body. State-changing requests must echo it back in the
`x-csrf-token` header; the header must equal the cookie. Safe methods
(GET/HEAD/OPTIONS) are never checked.
"""

import hmac
import logging
import secrets

from starlette.requests import Request
from starlette.responses import Response

from app.config import settings

logger = logging.getLogger(__name__)

CSRF_TOKEN_BYTES = 32
SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


def generate_csrf_token() -> str:
    return secrets.token_hex(CSRF_TOKEN_BYTES)


def set_csrf_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.csrf_cookie_name,
        value=token,
        max_age=settings.csrf_token_max_age,
        path="/",
        secure=settings.is_production,
        httponly=True,
        samesite="strict",
    )


def clear_csrf_cookie(response: Response) -> None:
    response.delete_cookie(settings.csrf_cookie_name, path="/")


def validate_csrf_token(request: Request) -> bool:
    if request.method in SAFE_METHODS:
        return True

    cookie_token = request.cookies.get(settings.csrf_cookie_name)
    if not cookie_token:
        logger.warning("CSRF validation failed: no token cookie (%s %s)", request.method, request.url.path)
        return False

    header_token = request.headers.get(settings.csrf_header_name)
    if not header_token:
        logger.warning("CSRF validation failed: no token header (%s %s)", request.method, request.url.path)
        return False

    if not hmac.compare_digest(cookie_token.encode(), header_token.encode()):
        logger.warning("CSRF validation failed: token mismatch (%s %s)", request.method, request.url.path)
        return False
    return True
