"""
Scorecard API — monthly agent scorecards.

  GET    /api/agents/{id}/scorecard?year=&month=   view (cached)
  POST   /api/agents/{id}/scorecard                create or update a month
  DELETE /api/agents/{id}/scorecard?month=&year=   remove a month

Every write commits, then invalidates the agent's cached data.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_cache, get_db, get_gate, require, require_any
from app.auth.context import RequestContext
from app.auth.gate import PermissionGate, Resource
from app.auth.permissions import Capability
from app.auth.roles import Role
from app.models import User
from app.schemas.schemas import (
    AgentMetricSchema,
    MessageResponse,
    ScorecardAgent,
    ScorecardResponse,
    ScorecardSaveRequest,
)
from app.services.audit_service import AuditService
from app.services.cache import CacheClient, CacheKeys, CacheTTL
from app.services.scorecard import (
    ScorecardService,
    calculate_trends,
    calculate_yearly_average,
    previous_period,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/agents", tags=["scorecards"])


async def _get_agent_or_404(agent_id: int, db: AsyncSession) -> User:
    agent = (await db.execute(
        select(User).where(User.id == agent_id, User.role == Role.AGENT.value)
    )).scalar_one_or_none()
    if agent is None:
        raise HTTPException(status_code=404, detail="Agent not found")
    return agent


def _cache_key(agent_id: int, year: int, month: int | None) -> str:
    return f"{CacheKeys.AGENT_METRICS}{agent_id}:{year}:{month if month is not None else 'all'}"


# ── GET ───────────────────────────────────────────────────────────────────────

@router.get("/{agent_id}/scorecard", response_model=ScorecardResponse)
async def get_scorecard(
    agent_id: int,
    year: int | None = Query(None, ge=2000, le=2100),
    month: int | None = Query(None, ge=1, le=12),
    ctx: RequestContext = Depends(require_any(Capability.VIEW_SCORECARDS, Capability.VIEW_OWN_METRICS)),
    gate: PermissionGate = Depends(get_gate),
    db: AsyncSession = Depends(get_db),
    cache: CacheClient = Depends(get_cache),
):
    """
    Scorecards for one agent and year. With `month`, also returns the
    change against the previous month; without it, the yearly average.
    """
    await gate.authorize(ctx, resource=Resource(owner_id=agent_id, kind="scorecard"))
    year = year or datetime.now(timezone.utc).year

    key = _cache_key(agent_id, year, month)
    cached = await cache.get(key)
    if cached is not None:
        return ScorecardResponse.model_validate(cached)

    agent = await _get_agent_or_404(agent_id, db)
    service = ScorecardService(db)
    metrics = await service.list_metrics(agent_id, year, month)

    trends: dict[str, float] = {}
    yearly_average = None
    if month is not None:
        prev_month, prev_year = previous_period(month, year)
        previous = await service.get_metric(agent_id, prev_month, prev_year)
        if metrics and previous is not None:
            trends = calculate_trends(metrics[0], previous)
    elif metrics:
        yearly_average = calculate_yearly_average(metrics)

    response = ScorecardResponse(
        agent=ScorecardAgent.model_validate(agent),
        metrics=[AgentMetricSchema.model_validate(m) for m in metrics],
        trends=trends,
        yearly_average=yearly_average,
        year=year,
        month=month,
    )
    await cache.set(key, response.model_dump(mode="json"), CacheTTL.MEDIUM)
    return response


# ── POST ──────────────────────────────────────────────────────────────────────

@router.post("/{agent_id}/scorecard", response_model=AgentMetricSchema)
async def save_scorecard(
    agent_id: int,
    body: ScorecardSaveRequest,
    ctx: RequestContext = Depends(require(Capability.CREATE_SCORECARDS)),
    gate: PermissionGate = Depends(get_gate),
    db: AsyncSession = Depends(get_db),
    cache: CacheClient = Depends(get_cache),
):
    """Create or replace the scorecard for (agent, month, year)."""
    await gate.authorize(ctx, resource=Resource(owner_id=agent_id, kind="scorecard"))
    await _get_agent_or_404(agent_id, db)

    metric, created = await ScorecardService(db).upsert(agent_id, body)
    await AuditService(db).log_event(
        ctx,
        "CREATE" if created else "UPDATE",
        "scorecard",
        metric.id,
        {"agent_id": agent_id, "month": body.month, "year": body.year, "percentage": metric.percentage},
    )
    await db.commit()
    await cache.invalidate_agent_cache(agent_id)
    return AgentMetricSchema.model_validate(metric)


# ── DELETE ────────────────────────────────────────────────────────────────────

@router.delete("/{agent_id}/scorecard", response_model=MessageResponse)
async def delete_scorecard(
    agent_id: int,
    month: int = Query(..., ge=1, le=12),
    year: int = Query(..., ge=2000, le=2100),
    ctx: RequestContext = Depends(require(Capability.MANAGE_SCORECARDS)),
    gate: PermissionGate = Depends(get_gate),
    db: AsyncSession = Depends(get_db),
    cache: CacheClient = Depends(get_cache),
):
    """Remove one month's scorecard. Month and year are both required."""
    await gate.authorize(ctx, resource=Resource(owner_id=agent_id, kind="scorecard"))

    if not await ScorecardService(db).delete(agent_id, month, year):
        raise HTTPException(status_code=404, detail="Scorecard not found")

    await AuditService(db).log_event(
        ctx, "DELETE", "scorecard", None, {"agent_id": agent_id, "month": month, "year": year}
    )
    await db.commit()
    await cache.invalidate_agent_cache(agent_id)
    return MessageResponse(message="Scorecard deleted")
