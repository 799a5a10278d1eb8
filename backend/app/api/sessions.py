"""
Coaching Sessions API

Listing is scoped by role: agents see their own sessions, team leaders
the sessions they conduct, managers and admins everything.

Lifecycle:
  SCHEDULED   -> IN_PROGRESS | COMPLETED | CANCELLED | NO_SHOW
  IN_PROGRESS -> COMPLETED | CANCELLED
COMPLETED, CANCELLED and NO_SHOW are final. Recording the outcome
(PATCH /api/sessions/{id}) completes the session.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_cache, get_db, get_gate, require, require_any
from app.auth.context import RequestContext
from app.auth.gate import PermissionGate, Resource, forbidden
from app.auth.permissions import Capability
from app.auth.roles import Role
from app.models import CoachingSession, User
from app.schemas.schemas import (
    SessionCreate,
    SessionListResponse,
    SessionSchema,
    SessionStatus,
    SessionStatusUpdate,
    SessionUpdate,
)
from app.services.audit_service import AuditService
from app.services.cache import CacheClient, CacheKeys, CacheTTL

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sessions", tags=["sessions"])

can_view = require_any(Capability.VIEW_SESSIONS, Capability.VIEW_OWN_SESSIONS)
can_manage = require(Capability.MANAGE_SESSIONS)

# Valid status transitions: current_status -> set of allowed next statuses
_VALID_TRANSITIONS: dict[SessionStatus, set[SessionStatus]] = {
    SessionStatus.SCHEDULED: {
        SessionStatus.IN_PROGRESS, SessionStatus.COMPLETED, SessionStatus.CANCELLED, SessionStatus.NO_SHOW,
    },
    SessionStatus.IN_PROGRESS: {SessionStatus.COMPLETED, SessionStatus.CANCELLED},
    SessionStatus.COMPLETED: set(),  # terminal state
    SessionStatus.CANCELLED: set(),  # terminal state
    SessionStatus.NO_SHOW: set(),    # terminal state
}

# Sessions whose outcome may still be recorded or corrected
_OPEN_FOR_NOTES = {SessionStatus.SCHEDULED, SessionStatus.IN_PROGRESS, SessionStatus.COMPLETED}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


async def _get_session_for(
    session_id: int, ctx: RequestContext, gate: PermissionGate, db: AsyncSession
) -> CoachingSession:
    """Load a session the caller may act on: 404 if missing, 403 if outside their scope."""
    session = (await db.execute(
        select(CoachingSession).where(CoachingSession.id == session_id)
    )).scalar_one_or_none()
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")

    # The leader who runs the session may always reach it
    if session.team_leader_id != ctx.user_id and not await gate.has_ownership_access(
        ctx, Resource(owner_id=session.agent_id, kind="session")
    ):
        raise forbidden()
    return session


async def _invalidate(cache: CacheClient, agent_id: int) -> None:
    await cache.invalidate_agent_cache(agent_id)
    await cache.delete_pattern(f"{CacheKeys.SESSION}*")


# ── GET /api/sessions ─────────────────────────────────────────────────────────

@router.get("", response_model=SessionListResponse)
async def list_sessions(
    status: SessionStatus | None = Query(None),
    ctx: RequestContext = Depends(can_view),
    db: AsyncSession = Depends(get_db),
    cache: CacheClient = Depends(get_cache),
):
    key = f"{CacheKeys.SESSION}{ctx.user_id}:{status.value if status else 'all'}"
    cached = await cache.get(key)
    if cached is not None:
        return SessionListResponse.model_validate(cached)

    query = select(CoachingSession)
    if ctx.role == Role.AGENT:
        query = query.where(CoachingSession.agent_id == ctx.user_id)
    elif ctx.role == Role.TEAM_LEADER:
        query = query.where(CoachingSession.team_leader_id == ctx.user_id)
    if status is not None:
        query = query.where(CoachingSession.status == status.value)

    rows = (await db.execute(query.order_by(CoachingSession.scheduled_date.desc()))).scalars().all()
    response = SessionListResponse(
        sessions=[SessionSchema.model_validate(s) for s in rows],
        total=len(rows),
    )
    await cache.set(key, response.model_dump(mode="json"), CacheTTL.SHORT)
    return response


# ── POST /api/sessions ────────────────────────────────────────────────────────

@router.post("", response_model=SessionSchema, status_code=201)
async def create_session(
    body: SessionCreate,
    ctx: RequestContext = Depends(can_manage),
    gate: PermissionGate = Depends(get_gate),
    db: AsyncSession = Depends(get_db),
    cache: CacheClient = Depends(get_cache),
):
    """Schedule a session with an agent. The caller becomes the session's leader."""
    await gate.authorize(ctx, resource=Resource(owner_id=body.agent_id, kind="agent"))

    agent = (await db.execute(
        select(User).where(User.id == body.agent_id, User.role == Role.AGENT.value)
    )).scalar_one_or_none()
    if agent is None:
        raise HTTPException(status_code=404, detail="Agent not found")

    session = CoachingSession(
        agent_id=agent.id,
        team_leader_id=ctx.user_id,
        scheduled_date=body.scheduled_date,
        session_date=body.scheduled_date,
        status=SessionStatus.SCHEDULED.value,
        preparation_notes=body.preparation_notes,
        duration=body.duration,
    )
    db.add(session)
    await db.flush()
    await db.refresh(session)

    await AuditService(db).log_event(ctx, "CREATE", "session", session.id, {"agent_id": agent.id})
    await db.commit()
    await _invalidate(cache, agent.id)
    logger.info("Session %s scheduled for agent %s by %s", session.id, agent.id, ctx.actor)
    return SessionSchema.model_validate(session)


# ── GET /api/sessions/{id} ────────────────────────────────────────────────────

@router.get("/{session_id}", response_model=SessionSchema)
async def get_session(
    session_id: int,
    ctx: RequestContext = Depends(can_view),
    gate: PermissionGate = Depends(get_gate),
    db: AsyncSession = Depends(get_db),
):
    return SessionSchema.model_validate(await _get_session_for(session_id, ctx, gate, db))


# ── PATCH /api/sessions/{id} ──────────────────────────────────────────────────

@router.patch("/{session_id}", response_model=SessionSchema)
async def record_session_outcome(
    session_id: int,
    body: SessionUpdate,
    ctx: RequestContext = Depends(can_manage),
    gate: PermissionGate = Depends(get_gate),
    db: AsyncSession = Depends(get_db),
    cache: CacheClient = Depends(get_cache),
):
    """Save notes, follow-up date and score; the session becomes COMPLETED."""
    session = await _get_session_for(session_id, ctx, gate, db)
    if SessionStatus(session.status) not in _OPEN_FOR_NOTES:
        raise HTTPException(status_code=400, detail=f"Cannot record an outcome for a {session.status} session")

    previous = session.status
    changes = body.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(session, field, value)
    session.status = SessionStatus.COMPLETED.value
    await db.flush()
    await db.refresh(session)

    await AuditService(db).log_event(
        ctx, "UPDATE", "session", session.id,
        {"agent_id": session.agent_id, "fields": sorted(changes), "from": previous, "to": session.status},
    )
    await db.commit()
    await _invalidate(cache, session.agent_id)
    return SessionSchema.model_validate(session)


# ── PATCH /api/sessions/{id}/status ───────────────────────────────────────────

@router.patch("/{session_id}/status", response_model=SessionSchema)
async def change_session_status(
    session_id: int,
    body: SessionStatusUpdate,
    ctx: RequestContext = Depends(can_manage),
    gate: PermissionGate = Depends(get_gate),
    db: AsyncSession = Depends(get_db),
    cache: CacheClient = Depends(get_cache),
):
    session = await _get_session_for(session_id, ctx, gate, db)
    current = SessionStatus(session.status)
    if body.status not in _VALID_TRANSITIONS.get(current, set()):
        raise HTTPException(
            status_code=400,
            detail=f"Cannot move a session from {current.value} to {body.status.value}",
        )

    session.status = body.status.value
    if body.status == SessionStatus.IN_PROGRESS:
        session.session_date = _utcnow()
    await db.flush()
    await db.refresh(session)

    await AuditService(db).log_event(
        ctx, "UPDATE", "session", session.id,
        {"agent_id": session.agent_id, "from": current.value, "to": body.status.value},
    )
    await db.commit()
    await _invalidate(cache, session.agent_id)
    logger.info("Session %s %s -> %s by %s", session.id, current.value, body.status.value, ctx.actor)
    return SessionSchema.model_validate(session)
