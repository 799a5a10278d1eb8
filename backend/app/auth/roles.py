"""
Role definitions and the default capability bundle for each role.

    AGENT < TEAM_LEADER < MANAGER < ADMIN

ADMIN is a superuser: the permission gate allows it every capability
regardless of what is stored. The other bundles below are only the seed
for the `role_permissions` table; at runtime the table is the source of
truth.
"""

from enum import Enum

from app.auth.permissions import Capability


class Role(str, Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    TEAM_LEADER = "TEAM_LEADER"
    AGENT = "AGENT"


ROLE_DISPLAY_NAMES: dict[Role, str] = {
    Role.ADMIN: "Administrator",
    Role.MANAGER: "Manager",
    Role.TEAM_LEADER: "Team Leader",
    Role.AGENT: "Agent",
}

ROLE_DESCRIPTIONS: dict[Role, str] = {
    Role.ADMIN: "Full system access with all permissions",
    Role.MANAGER: "Manage team leaders and view team performance",
    Role.TEAM_LEADER: "Manage agents and conduct coaching sessions",
    Role.AGENT: "Call center agent with basic access",
}


# ── Agent: self service only ──
_AGENT_CAPS: set[Capability] = {
    Capability.VIEW_OWN_METRICS,
    Capability.VIEW_OWN_SESSIONS,
    Capability.UPDATE_PROFILE,
}

# ── Team leader: runs coaching for their own team ──
_TEAM_LEADER_CAPS: set[Capability] = {
    Capability.VIEW_AGENTS,
    Capability.MANAGE_AGENTS,
    Capability.CONDUCT_SESSIONS,
    Capability.VIEW_SESSIONS,
    Capability.MANAGE_SESSIONS,
    Capability.VIEW_AGENT_METRICS,
    Capability.MANAGE_AGENT_METRICS,
    Capability.VIEW_OWN_SESSIONS,
    Capability.UPDATE_PROFILE,
    Capability.VIEW_SCORECARDS,
    Capability.CREATE_SCORECARDS,
}

# ── Manager: oversees team leaders, reporting ──
_MANAGER_CAPS: set[Capability] = {
    Capability.VIEW_USERS,
    Capability.VIEW_TEAM_LEADERS,
    Capability.MANAGE_TEAM_LEADERS,
    Capability.VIEW_REPORTS,
    Capability.CREATE_REPORTS,
    Capability.MANAGE_SESSIONS,
    Capability.VIEW_SESSIONS,
    Capability.VIEW_AGENTS,
    Capability.VIEW_AGENT_METRICS,
    Capability.VIEW_TEAM_DATA,
    Capability.VIEW_OWN_SESSIONS,
    Capability.UPDATE_PROFILE,
    Capability.VIEW_SCORECARDS,
    Capability.CREATE_SCORECARDS,
    Capability.MANAGE_SCORECARDS,
}

# ── Admin: everything ──
_ADMIN_CAPS: set[Capability] = {c for c in Capability}


DEFAULT_ROLE_PERMISSIONS: dict[Role, set[Capability]] = {
    Role.ADMIN: _ADMIN_CAPS,
    Role.MANAGER: _MANAGER_CAPS,
    Role.TEAM_LEADER: _TEAM_LEADER_CAPS,
    Role.AGENT: _AGENT_CAPS,
}


def parse_role(value: str) -> Role | None:
    """Case-insensitive role lookup; None for unknown values."""
    try:
        return Role(value.upper())
    except ValueError:
        return None
