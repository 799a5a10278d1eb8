"""Users API — the caller's effective permissions."""

from fastapi import APIRouter, Depends

from app.api.deps import get_cache, get_gate, get_request_context
from app.auth.context import RequestContext
from app.auth.gate import PermissionGate
from app.schemas.schemas import UserPermissionsResponse
from app.services.cache import CacheClient, CacheKeys, CacheTTL

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/permissions", response_model=UserPermissionsResponse)
async def my_permissions(
    ctx: RequestContext = Depends(get_request_context),
    gate: PermissionGate = Depends(get_gate),
    cache: CacheClient = Depends(get_cache),
):
    """Capability names the caller's role currently holds."""
    key = f"{CacheKeys.USER}{ctx.user_id}:permissions"
    cached = await cache.get(key)
    if cached is not None:
        return UserPermissionsResponse.model_validate(cached)

    caps = await gate.capabilities_for(ctx.role)
    response = UserPermissionsResponse(role=ctx.role.value, permissions=sorted(caps))
    await cache.set(key, response.model_dump(mode="json"), CacheTTL.LONG)
    return response
