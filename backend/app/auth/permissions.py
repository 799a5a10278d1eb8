"""
Capability constants — the named permissions that can be granted to a role.

Values match the `permissions.name` column. Which roles hold which
capability is data (the `role_permissions` table), seeded from
DEFAULT_ROLE_PERMISSIONS in app.auth.roles and editable by admins.
"""

from enum import Enum


class Capability(str, Enum):
    # ── Users & roles ──
    MANAGE_USERS = "manage_users"
    VIEW_USERS = "view_users"
    MANAGE_ROLES = "manage_roles"
    VIEW_ROLES = "view_roles"

    # ── Reports ──
    VIEW_REPORTS = "view_reports"
    CREATE_REPORTS = "create_reports"

    # ── System ──
    MANAGE_SYSTEM = "manage_system"
    MANAGE_DATABASE = "manage_database"

    # ── Coaching sessions ──
    MANAGE_SESSIONS = "manage_sessions"
    VIEW_SESSIONS = "view_sessions"
    CONDUCT_SESSIONS = "conduct_sessions"

    # ── Team leaders & agents ──
    VIEW_TEAM_LEADERS = "view_team_leaders"
    MANAGE_TEAM_LEADERS = "manage_team_leaders"
    VIEW_AGENTS = "view_agents"
    MANAGE_AGENTS = "manage_agents"

    # ── Metrics ──
    VIEW_AGENT_METRICS = "view_agent_metrics"
    MANAGE_AGENT_METRICS = "manage_agent_metrics"
    VIEW_OWN_METRICS = "view_own_metrics"

    # ── Data access ──
    VIEW_ALL_DATA = "view_all_data"
    VIEW_TEAM_DATA = "view_team_data"

    # ── Self service ──
    VIEW_OWN_SESSIONS = "view_own_sessions"
    UPDATE_PROFILE = "update_profile"

    # ── Scorecards ──
    VIEW_SCORECARDS = "view_scorecards"
    CREATE_SCORECARDS = "create_scorecards"
    MANAGE_SCORECARDS = "manage_scorecards"
