"""
RequestContext — the authenticated principal behind a request.

Built by `get_request_context()` in deps.py from the JWT. It only says
who is asking; what they may do is decided by the PermissionGate.
"""

from __future__ import annotations

from dataclasses import dataclass

from app.auth.roles import Role


@dataclass(frozen=True)
class RequestContext:
    user_id: int
    role: Role
    email: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def actor(self) -> str:
        """Identity string for audit logging."""
        return f"{self.role.value}:{self.user_id}"
