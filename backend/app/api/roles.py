"""
Roles API — administer which permissions each role holds.

ADMIN only. Changes take effect on the next request: the role's cached
permission set and every user's cached permission list are invalidated.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_cache, get_db, require_role
from app.auth.context import RequestContext
from app.auth.roles import ROLE_DESCRIPTIONS, ROLE_DISPLAY_NAMES, Role, parse_role
from app.models import Permission, RolePermission, User
from app.schemas.schemas import RolePermissionItem, RolePermissionsUpdate, RoleSummary
from app.services.audit_service import AuditService
from app.services.cache import CacheClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/roles", tags=["roles"])

admin_only = require_role(Role.ADMIN)


def _parse_role_or_400(value: str) -> Role:
    role = parse_role(value)
    if role is None:
        raise HTTPException(status_code=400, detail="Invalid role")
    return role


def _item(permission: Permission, enabled: bool) -> RolePermissionItem:
    return RolePermissionItem(
        id=permission.name,
        name=permission.name,
        description=permission.description,
        category=permission.category,
        enabled=enabled,
    )


async def _granted_names(db: AsyncSession, role: Role) -> set[str]:
    rows = await db.execute(
        select(Permission.name)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .where(RolePermission.role == role.value)
    )
    return set(rows.scalars().all())


async def _role_detail(db: AsyncSession, role: Role) -> RoleSummary:
    """Every permission with its enabled flag for one role."""
    permissions = (await db.execute(select(Permission).order_by(Permission.category, Permission.name))).scalars().all()
    granted = await _granted_names(db, role)
    user_count = (await db.execute(
        select(func.count()).select_from(User).where(User.role == role.value)
    )).scalar() or 0
    return RoleSummary(
        role=role.value,
        display_name=ROLE_DISPLAY_NAMES[role],
        description=ROLE_DESCRIPTIONS[role],
        user_count=user_count,
        permissions=[_item(p, p.name in granted) for p in permissions],
    )


# ── GET /api/roles ────────────────────────────────────────────────────────────

@router.get("", response_model=list[RoleSummary])
async def list_roles(
    ctx: RequestContext = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
):
    """All roles with their user counts and granted permissions."""
    counts = dict((await db.execute(
        select(User.role, func.count()).group_by(User.role)
    )).all())

    grants = (await db.execute(
        select(RolePermission).order_by(RolePermission.role, RolePermission.permission_id)
    )).scalars().all()
    by_role: dict[str, list[Permission]] = {}
    for grant in grants:
        by_role.setdefault(grant.role, []).append(grant.permission)

    return [
        RoleSummary(
            role=role.value,
            display_name=ROLE_DISPLAY_NAMES[role],
            description=ROLE_DESCRIPTIONS[role],
            user_count=counts.get(role.value, 0),
            permissions=[_item(p, True) for p in by_role.get(role.value, [])],
        )
        for role in Role
    ]


# ── GET /api/roles/{role} ─────────────────────────────────────────────────────

@router.get("/{role}", response_model=RoleSummary)
async def get_role(
    role: str,
    ctx: RequestContext = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
):
    return await _role_detail(db, _parse_role_or_400(role))


# ── PUT /api/roles/{role} ─────────────────────────────────────────────────────

@router.put("/{role}", response_model=RoleSummary)
async def update_role_permissions(
    role: str,
    body: RolePermissionsUpdate,
    ctx: RequestContext = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
    cache: CacheClient = Depends(get_cache),
):
    """
    Enable or disable permissions for a role. Each item is
    `{id: <permission name>, enabled: bool}`; unknown names are skipped.
    """
    target = _parse_role_or_400(role)

    names = [item.id for item in body.permissions]
    permissions = {
        p.name: p for p in (await db.execute(select(Permission).where(Permission.name.in_(names)))).scalars().all()
    }
    granted = await _granted_names(db, target)

    added, removed = [], []
    for item in body.permissions:
        permission = permissions.get(item.id)
        if permission is None:
            logger.warning("Permission not found: %s", item.id)
            continue
        if item.enabled and item.id not in granted:
            db.add(RolePermission(role=target.value, permission_id=permission.id))
            granted.add(item.id)
            added.append(item.id)
        elif not item.enabled and item.id in granted:
            await db.execute(
                delete(RolePermission).where(
                    RolePermission.role == target.value,
                    RolePermission.permission_id == permission.id,
                )
            )
            granted.discard(item.id)
            removed.append(item.id)
    await db.flush()

    if added or removed:
        await AuditService(db).log_event(
            ctx, "UPDATE", "role_permissions", target.value, {"added": added, "removed": removed}
        )
        logger.info("Role %s permissions changed by %s: +%s -%s", target.value, ctx.actor, added, removed)
    await db.commit()
    await cache.invalidate_role_permissions(target.value)

    return await _role_detail(db, target)
