"""
Quick Notes API — short coaching observations about an agent.

Visibility:
  AGENT        notes they wrote + public notes about themselves
  TEAM_LEADER  notes they wrote + public notes about their team
  MANAGER/ADMIN everything
"""

import logging
import math

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import and_, false, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_cache, get_db, get_gate, get_request_context
from app.auth.context import RequestContext
from app.auth.gate import PermissionGate, Resource, forbidden
from app.auth.roles import Role
from app.models import QuickNote, User
from app.schemas.schemas import (
    MessageResponse,
    NoteCategory,
    QuickNoteCreate,
    QuickNoteListResponse,
    QuickNoteSchema,
)
from app.services.audit_service import AuditService
from app.services.cache import CacheClient, CacheKeys, CacheTTL

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/quick-notes", tags=["quick-notes"])


async def _visibility_clause(ctx: RequestContext, gate: PermissionGate):
    if ctx.role in (Role.ADMIN, Role.MANAGER):
        return None
    public = QuickNote.is_private.is_(False)
    if ctx.role == Role.AGENT:
        about_me = and_(QuickNote.agent_id == ctx.user_id, public)
        return or_(QuickNote.author_id == ctx.user_id, about_me)
    if ctx.role == Role.TEAM_LEADER:
        team = await gate.team_agent_ids(ctx.user_id)
        about_team = and_(QuickNote.agent_id.in_(team), public) if team else false()
        return or_(QuickNote.author_id == ctx.user_id, about_team)
    return false()


async def _invalidate(cache: CacheClient, agent_id: int) -> None:
    await cache.invalidate_agent_cache(agent_id)
    await cache.delete_pattern(f"{CacheKeys.QUICK_NOTES}*")


# ── GET /api/quick-notes ──────────────────────────────────────────────────────

@router.get("", response_model=QuickNoteListResponse)
async def list_quick_notes(
    agent_id: int | None = Query(None, alias="agentId"),
    category: NoteCategory | None = Query(None),
    search: str | None = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    ctx: RequestContext = Depends(get_request_context),
    gate: PermissionGate = Depends(get_gate),
    db: AsyncSession = Depends(get_db),
    cache: CacheClient = Depends(get_cache),
):
    key = (
        f"{CacheKeys.QUICK_NOTES}{ctx.user_id}:{category.value if category else 'all'}:"
        f"{agent_id if agent_id is not None else 'all'}:{search or ''}:{page}:{limit}"
    )
    cached = await cache.get(key)
    if cached is not None:
        return QuickNoteListResponse.model_validate(cached)

    conditions = []
    visibility = await _visibility_clause(ctx, gate)
    if visibility is not None:
        conditions.append(visibility)
    if agent_id is not None:
        conditions.append(QuickNote.agent_id == agent_id)
    if category is not None:
        conditions.append(QuickNote.category == category.value)
    if search:
        conditions.append(QuickNote.content.ilike(f"%{search}%"))

    total = (await db.execute(
        select(func.count()).select_from(QuickNote).where(*conditions)
    )).scalar() or 0
    rows = (await db.execute(
        select(QuickNote)
        .where(*conditions)
        .order_by(QuickNote.created_at.desc(), QuickNote.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )).scalars().all()

    response = QuickNoteListResponse(
        quick_notes=[QuickNoteSchema.model_validate(n) for n in rows],
        total=total,
        page=page,
        limit=limit,
        pages=math.ceil(total / limit) if total else 0,
    )
    await cache.set(key, response.model_dump(mode="json"), CacheTTL.SHORT)
    return response


# ── POST /api/quick-notes ─────────────────────────────────────────────────────

@router.post("", response_model=QuickNoteSchema, status_code=201)
async def create_quick_note(
    body: QuickNoteCreate,
    ctx: RequestContext = Depends(get_request_context),
    gate: PermissionGate = Depends(get_gate),
    db: AsyncSession = Depends(get_db),
    cache: CacheClient = Depends(get_cache),
):
    await gate.authorize(ctx, resource=Resource(owner_id=body.agent_id, kind="quick_note"))

    agent = (await db.execute(
        select(User).where(User.id == body.agent_id, User.role == Role.AGENT.value)
    )).scalar_one_or_none()
    if agent is None:
        raise HTTPException(status_code=404, detail="Agent not found")

    note = QuickNote(
        content=body.content.strip(),
        category=body.category.value,
        agent_id=agent.id,
        author_id=ctx.user_id,
        is_private=body.is_private,
    )
    db.add(note)
    await db.flush()
    await db.refresh(note)

    await AuditService(db).log_event(ctx, "CREATE", "quick_note", note.id, {"agent_id": agent.id})
    await db.commit()
    await _invalidate(cache, agent.id)
    return QuickNoteSchema.model_validate(note)


# ── DELETE /api/quick-notes/{id} ──────────────────────────────────────────────

@router.delete("/{note_id}", response_model=MessageResponse)
async def delete_quick_note(
    note_id: int,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
    cache: CacheClient = Depends(get_cache),
):
    """Only the author (or an admin) may delete a note."""
    note = (await db.execute(select(QuickNote).where(QuickNote.id == note_id))).scalar_one_or_none()
    if note is None:
        raise HTTPException(status_code=404, detail="Quick note not found")
    if note.author_id != ctx.user_id and not ctx.is_admin:
        raise forbidden()

    agent_id = note.agent_id
    await db.delete(note)
    await db.flush()

    await AuditService(db).log_event(ctx, "DELETE", "quick_note", note_id, {"agent_id": agent_id})
    await db.commit()
    await _invalidate(cache, agent_id)
    return MessageResponse(message="Quick note deleted")
