"""
PermissionGate — the single allow/deny decision point.

Two questions are answered here and nowhere else:

  has_permission(role, capability)
      Does the role hold the named capability? ADMIN always does.
      Capabilities are read from `role_permissions` (cached per role).

  has_ownership_access(principal, resource)
      May this caller touch this particular resource? ADMIN and the
      owner always may. Everyone else goes through OWNERSHIP_RULES,
      a table keyed by role, so adding a role means adding a row.

`authorize()` combines both and raises the HTTP error:
    no principal           -> 401 Unauthorized
    capability missing     -> 403 Forbidden
    ownership check fails  -> 403 Forbidden
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.context import RequestContext
from app.auth.permissions import Capability
from app.auth.roles import Role
from app.middleware.metrics import authz_denials_total
from app.models import Permission, RolePermission, User
from app.services.cache import CacheClient, CacheKeys, CacheTTL

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Resource:
    """Something owned by a user. `owner_id` is the agent the data belongs to."""

    owner_id: int | None
    kind: str = "resource"


OwnershipRule = Callable[["PermissionGate", RequestContext, Resource], Awaitable[bool]]
ManagerPolicy = Callable[[RequestContext, Resource], Awaitable[bool]]


async def allow_all_managers(principal: RequestContext, resource: Resource) -> bool:
    """Default manager scope: organisation-wide."""
    return True


# ── Ownership rules ──────────────────────────────────────────────────────────

async def _always(gate: PermissionGate, principal: RequestContext, resource: Resource) -> bool:
    return True


async def _self_only(gate: PermissionGate, principal: RequestContext, resource: Resource) -> bool:
    # Owner already matched before the rule runs; agents have no reports
    return False


async def _own_team(gate: PermissionGate, principal: RequestContext, resource: Resource) -> bool:
    if resource.owner_id is None:
        return False
    return resource.owner_id in await gate.team_agent_ids(principal.user_id)


async def _manager_scope(gate: PermissionGate, principal: RequestContext, resource: Resource) -> bool:
    return await gate.manager_policy(principal, resource)


OWNERSHIP_RULES: dict[Role, OwnershipRule] = {
    Role.ADMIN: _always,
    Role.MANAGER: _manager_scope,
    Role.TEAM_LEADER: _own_team,
    Role.AGENT: _self_only,
}


def unauthorized() -> HTTPException:
    return HTTPException(status_code=401, detail="Unauthorized", headers={"WWW-Authenticate": "Bearer"})


def forbidden() -> HTTPException:
    return HTTPException(status_code=403, detail="Forbidden")


class PermissionGate:
    def __init__(
        self,
        db: AsyncSession,
        cache: CacheClient | None = None,
        manager_policy: ManagerPolicy = allow_all_managers,
    ):
        self.db = db
        self.cache = cache
        self.manager_policy = manager_policy
        self._role_caps: dict[Role, frozenset[str]] = {}
        self._teams: dict[int, frozenset[int]] = {}

    # ── Capabilities ─────────────────────────────────────────────────────────

    async def capabilities_for(self, role: Role) -> frozenset[str]:
        """Capability names granted to a role (ADMIN: every known capability)."""
        if role == Role.ADMIN:
            return frozenset(c.value for c in Capability)
        if role in self._role_caps:
            return self._role_caps[role]

        key = f"{CacheKeys.ROLE_PERMISSIONS}{role.value}"
        cached = await self.cache.get(key) if self.cache else None
        if isinstance(cached, list):
            caps = frozenset(cached)
        else:
            result = await self.db.execute(
                select(Permission.name)
                .join(RolePermission, RolePermission.permission_id == Permission.id)
                .where(RolePermission.role == role.value)
            )
            caps = frozenset(result.scalars().all())
            if self.cache:
                await self.cache.set(key, sorted(caps), CacheTTL.MEDIUM)

        self._role_caps[role] = caps
        return caps

    async def has_permission(self, role: Role, capability: Capability | str) -> bool:
        if role == Role.ADMIN:
            return True
        name = capability.value if isinstance(capability, Capability) else capability
        return name in await self.capabilities_for(role)

    # ── Ownership ────────────────────────────────────────────────────────────

    async def team_agent_ids(self, team_leader_id: int) -> frozenset[int]:
        if team_leader_id not in self._teams:
            result = await self.db.execute(
                select(User.id).where(User.team_leader_id == team_leader_id)
            )
            self._teams[team_leader_id] = frozenset(result.scalars().all())
        return self._teams[team_leader_id]

    async def has_ownership_access(self, principal: RequestContext, resource: Resource) -> bool:
        if principal.is_admin:
            return True
        if resource.owner_id is not None and resource.owner_id == principal.user_id:
            return True
        rule = OWNERSHIP_RULES.get(principal.role)
        if rule is None:
            return False
        return await rule(self, principal, resource)

    # ── Combined check ───────────────────────────────────────────────────────

    async def authorize(
        self,
        principal: RequestContext | None,
        *capabilities: Capability,
        resource: Resource | None = None,
        require_all: bool = True,
    ) -> RequestContext:
        """Raise 401/403 unless the caller passes every requested check."""
        if principal is None:
            raise unauthorized()

        if capabilities:
            granted = [await self.has_permission(principal.role, c) for c in capabilities]
            ok = all(granted) if require_all else any(granted)
            if not ok:
                logger.info(
                    "Permission denied for %s: needs %s of %s",
                    principal.actor,
                    "all" if require_all else "one",
                    [c.value for c in capabilities],
                )
                authz_denials_total.labels(role=principal.role.value, check="capability").inc()
                raise forbidden()

        if resource is not None and not await self.has_ownership_access(principal, resource):
            logger.info(
                "Ownership denied for %s on %s owned by %s",
                principal.actor, resource.kind, resource.owner_id,
            )
            authz_denials_total.labels(role=principal.role.value, check="ownership").inc()
            raise forbidden()

        return principal
