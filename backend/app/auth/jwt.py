"""
Bearer access tokens.

A token carries the user id (`sub`), email and role. The role claim is what
the PermissionGate trusts until the token expires, so a role change applies
the next time the user logs in; grant changes for a role apply immediately.
"""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from app.config import settings

ALGORITHM = "HS256"
TOKEN_TYPE = "access"

_REQUIRED_CLAIMS = ("sub", "role")


def create_access_token(user_id: int, email: str, role: str, expires_in: timedelta | None = None) -> str:
    issued_at = datetime.now(timezone.utc)
    lifetime = expires_in if expires_in is not None else timedelta(minutes=settings.access_token_expire_minutes)
    claims = {
        "sub": str(user_id),
        "email": email,
        "role": role,
        "type": TOKEN_TYPE,
        "iat": issued_at,
        "exp": issued_at + lifetime,
    }
    return jwt.encode(claims, settings.secret_key, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verified claims of an access token. Raises JWTError when unusable."""
    claims = jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    if claims.get("type") != TOKEN_TYPE:
        raise JWTError("Not an access token")
    missing = [name for name in _REQUIRED_CLAIMS if not claims.get(name)]
    if missing:
        raise JWTError(f"Token is missing claims: {', '.join(missing)}")
    return claims
