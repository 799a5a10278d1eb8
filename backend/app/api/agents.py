"""
Agents API — agent directory and profiles.

Team leaders see their own team; managers and admins see every agent.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from app.api.deps import get_db, get_gate, require, require_any
from app.auth.context import RequestContext
from app.auth.gate import PermissionGate, Resource
from app.auth.permissions import Capability
from app.auth.roles import Role
from app.models import AgentMetric, User
from app.schemas.schemas import AgentDetail, AgentSummary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/agents", tags=["agents"])

# Number of most recent scorecards used for the list-view average
RECENT_METRICS = 6


async def _recent_percentages(db: AsyncSession, agent_ids: list[int]) -> dict[int, list[float]]:
    """Latest RECENT_METRICS scorecard percentages per agent, newest first."""
    if not agent_ids:
        return {}
    rows = await db.execute(
        select(AgentMetric.agent_id, AgentMetric.percentage)
        .where(AgentMetric.agent_id.in_(agent_ids))
        .order_by(AgentMetric.agent_id, AgentMetric.year.desc(), AgentMetric.month.desc())
    )
    recent: dict[int, list[float]] = {}
    for agent_id, percentage in rows:
        bucket = recent.setdefault(agent_id, [])
        if len(bucket) < RECENT_METRICS:
            bucket.append(percentage or 0.0)
    return recent


def _average(values: list[float]) -> float:
    return round(sum(values) / len(values), 1) if values else 0.0


# ── GET /api/agents ───────────────────────────────────────────────────────────

@router.get("", response_model=list[AgentSummary])
async def list_agents(
    ctx: RequestContext = Depends(require(Capability.VIEW_AGENTS)),
    db: AsyncSession = Depends(get_db),
):
    """Agents visible to the caller, with their recent average score."""
    query = select(User).where(User.role == Role.AGENT.value, User.is_active.is_(True))
    if ctx.role == Role.TEAM_LEADER:
        query = query.where(User.team_leader_id == ctx.user_id)
    agents = (await db.execute(query.order_by(User.name.asc(), User.id.asc()))).scalars().all()

    recent = await _recent_percentages(db, [a.id for a in agents])
    return [
        AgentSummary(
            id=a.id,
            name=a.name,
            email=a.email,
            employee_id=a.employee_id,
            department=a.department,
            team_leader_id=a.team_leader_id,
            average_score=_average(recent.get(a.id, [])),
            metrics_count=len(recent.get(a.id, [])),
        )
        for a in agents
    ]


# ── GET /api/agents/{id} ──────────────────────────────────────────────────────

@router.get("/{agent_id}", response_model=AgentDetail)
async def get_agent(
    agent_id: int,
    ctx: RequestContext = Depends(require_any(Capability.VIEW_AGENTS, Capability.VIEW_OWN_METRICS)),
    gate: PermissionGate = Depends(get_gate),
    db: AsyncSession = Depends(get_db),
):
    """Single agent profile. Ownership is checked before the lookup."""
    await gate.authorize(ctx, resource=Resource(owner_id=agent_id, kind="agent"))

    leader = aliased(User)
    row = (await db.execute(
        select(User, leader.name)
        .outerjoin(leader, leader.id == User.team_leader_id)
        .where(User.id == agent_id, User.role == Role.AGENT.value)
    )).first()
    if row is None:
        raise HTTPException(status_code=404, detail="Agent not found")
    agent, leader_name = row

    recent = (await _recent_percentages(db, [agent.id])).get(agent.id, [])
    return AgentDetail(
        id=agent.id,
        name=agent.name,
        email=agent.email,
        employee_id=agent.employee_id,
        department=agent.department,
        team_leader_id=agent.team_leader_id,
        team_leader_name=leader_name,
        created_at=agent.created_at,
        average_score=_average(recent),
        metrics_count=len(recent),
    )
