"""Password hashing and policy (passlib + bcrypt)."""

from passlib.context import CryptContext

MIN_PASSWORD_LENGTH = 8

_ctx = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=12)


def hash_password(plain: str) -> str:
    return _ctx.hash(plain)


def verify_password(plain: str, hashed: str | None) -> bool:
    # Accounts provisioned without a password can never log in
    if not hashed:
        return False
    return _ctx.verify(plain, hashed)


def password_policy_error(plain: str) -> str | None:
    """Return a human-readable reason the password is rejected, or None."""
    if len(plain) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
    if plain.isalpha() or plain.isdigit():
        return "Password must mix letters with digits or symbols"
    return None
