from app.auth.permissions import Capability
from app.auth.roles import Role, DEFAULT_ROLE_PERMISSIONS, parse_role
from app.auth.context import RequestContext
from app.auth.gate import PermissionGate, Resource, OWNERSHIP_RULES

__all__ = [
    "Capability", "Role", "DEFAULT_ROLE_PERMISSIONS", "parse_role",
    "RequestContext", "PermissionGate", "Resource", "OWNERSHIP_RULES",
]
