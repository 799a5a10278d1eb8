"""
Permission seed — the capability catalogue and default role assignments.

Idempotent: existing permissions are updated in place, missing ones are
inserted, and default role grants are only added (never removed) unless
--reset is given, in which case each role's grants are replaced by the
defaults.

Usage:
    python -m app.seed.permissions
    python -m app.seed.permissions --reset
"""

import asyncio
import sys
import time

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.auth.permissions import Capability
from app.auth.roles import DEFAULT_ROLE_PERMISSIONS, Role
from app.config import settings
from app.models import Permission, RolePermission

# name -> (display name, description, resource, action, category)
PERMISSION_CATALOGUE: dict[Capability, tuple[str, str, str, str, str]] = {
    Capability.MANAGE_USERS: ("Manage Users", "Create, update and deactivate users", "users", "manage", "User Management"),
    Capability.VIEW_USERS: ("View Users", "View user profiles", "users", "read", "User Management"),
    Capability.MANAGE_ROLES: ("Manage Roles", "Change which permissions a role holds", "roles", "manage", "User Management"),
    Capability.VIEW_ROLES: ("View Roles", "View roles and their permissions", "roles", "read", "User Management"),
    Capability.VIEW_REPORTS: ("View Reports", "View performance reports", "reports", "read", "Reports"),
    Capability.CREATE_REPORTS: ("Create Reports", "Generate performance reports", "reports", "create", "Reports"),
    Capability.MANAGE_SYSTEM: ("Manage System", "Change system settings", "system", "manage", "System"),
    Capability.MANAGE_DATABASE: ("Manage Database", "Run database maintenance", "database", "manage", "System"),
    Capability.MANAGE_SESSIONS: ("Manage Sessions", "Schedule and edit coaching sessions", "sessions", "manage", "Coaching"),
    Capability.VIEW_SESSIONS: ("View Sessions", "View coaching sessions", "sessions", "read", "Coaching"),
    Capability.CONDUCT_SESSIONS: ("Conduct Sessions", "Run coaching sessions", "sessions", "conduct", "Coaching"),
    Capability.VIEW_TEAM_LEADERS: ("View Team Leaders", "View team leader profiles", "team_leaders", "read", "Team Management"),
    Capability.MANAGE_TEAM_LEADERS: ("Manage Team Leaders", "Assign and edit team leaders", "team_leaders", "manage", "Team Management"),
    Capability.VIEW_AGENTS: ("View Agents", "View agent profiles", "agents", "read", "Team Management"),
    Capability.MANAGE_AGENTS: ("Manage Agents", "Edit agent profiles", "agents", "manage", "Team Management"),
    Capability.VIEW_AGENT_METRICS: ("View Agent Metrics", "View agent performance metrics", "metrics", "read", "Performance"),
    Capability.MANAGE_AGENT_METRICS: ("Manage Agent Metrics", "Record agent performance metrics", "metrics", "manage", "Performance"),
    Capability.VIEW_OWN_METRICS: ("View Own Metrics", "View your own performance metrics", "metrics", "read_own", "Performance"),
    Capability.VIEW_ALL_DATA: ("View All Data", "Organisation-wide data access", "data", "read_all", "Data Access"),
    Capability.VIEW_TEAM_DATA: ("View Team Data", "Team-level data access", "data", "read_team", "Data Access"),
    Capability.VIEW_OWN_SESSIONS: ("View Own Sessions", "View your own coaching sessions", "sessions", "read_own", "Self Service"),
    Capability.UPDATE_PROFILE: ("Update Profile", "Edit your own profile and password", "profile", "update", "Self Service"),
    Capability.VIEW_SCORECARDS: ("View Scorecards", "View agent scorecards", "scorecards", "read", "Performance"),
    Capability.CREATE_SCORECARDS: ("Create Scorecards", "Create and update agent scorecards", "scorecards", "create", "Performance"),
    Capability.MANAGE_SCORECARDS: ("Manage Scorecards", "Delete agent scorecards", "scorecards", "manage", "Performance"),
}


async def seed_permissions(session: AsyncSession, reset: bool = False) -> dict[str, int]:
    """Upsert the catalogue and default grants. Returns counts of rows added."""
    existing = {
        p.name: p for p in (await session.execute(select(Permission))).scalars().all()
    }
    added_permissions = 0
    for cap, (display, description, resource, action, category) in PERMISSION_CATALOGUE.items():
        perm = existing.get(cap.value)
        if perm is None:
            perm = Permission(name=cap.value)
            session.add(perm)
            existing[cap.value] = perm
            added_permissions += 1
        perm.display_name = display
        perm.description = description
        perm.resource = resource
        perm.action = action
        perm.category = category
    await session.flush()

    added_grants = 0
    for role, caps in DEFAULT_ROLE_PERMISSIONS.items():
        if reset:
            await session.execute(delete(RolePermission).where(RolePermission.role == role.value))
            granted: set[int] = set()
        else:
            granted = set(
                (await session.execute(
                    select(RolePermission.permission_id).where(RolePermission.role == role.value)
                )).scalars().all()
            )
        for cap in sorted(caps, key=lambda c: c.value):
            perm_id = existing[cap.value].id
            if perm_id not in granted:
                session.add(RolePermission(role=role.value, permission_id=perm_id))
                added_grants += 1
    await session.flush()

    return {"permissions": added_permissions, "grants": added_grants}


async def main():
    start = time.time()
    engine = create_async_engine(settings.database_url, echo=False)
    async_sess = async_sessionmaker(engine, expire_on_commit=False)
    reset = "--reset" in sys.argv

    async with async_sess() as session:
        counts = await seed_permissions(session, reset=reset)
        await session.commit()

    await engine.dispose()
    print(
        f"Permissions seeded in {time.time() - start:.1f}s: "
        f"{counts['permissions']} new permissions, {counts['grants']} new grants"
        f" across {len(Role)} roles"
    )


if __name__ == "__main__":
    asyncio.run(main())
