"""
Audit Service — append-only trail of changes to coaching data.

Scorecard saves/deletes, quick note writes and role permission changes
each add one row. Entries are written in the caller's transaction, so a
rolled-back change leaves no audit row behind.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.context import RequestContext
from app.models import AuditLog

logger = logging.getLogger(__name__)


class AuditService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def log_event(
        self,
        actor: RequestContext,
        action: str,
        resource: str,
        resource_id: str | int | None = None,
        details: dict | None = None,
    ) -> AuditLog:
        """
        Record one change.

        Args:
            actor: the authenticated caller
            action: CREATE | UPDATE | DELETE
            resource: "scorecard", "quick_note", "role_permissions", ...
            resource_id: id of the affected row, if any
            details: free-form context stored as JSON
        """
        entry = AuditLog(
            user_id=actor.user_id,
            action=action,
            resource=resource,
            resource_id=str(resource_id) if resource_id is not None else None,
            details=details or {},
        )
        self.session.add(entry)
        await self.session.flush()
        logger.info("audit %s %s %s by %s", action, resource, entry.resource_id, actor.actor)
        return entry
