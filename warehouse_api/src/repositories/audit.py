from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select

from src.db.models.audit import AuditEvent
from .base import BaseRepository


class AuditRepository(BaseRepository):
    """Repository for audit events."""

    async def list_events(
        self,
        *,
        entity_type: Optional[str],
        entity_id: Optional[UUID],
        user_id: Optional[UUID],
        limit: int,
        offset: int,
    ) -> List[AuditEvent]:
        stmt = select(AuditEvent)
        if entity_type:
            stmt = stmt.where(AuditEvent.entity_type == entity_type)
        if entity_id:
            stmt = stmt.where(AuditEvent.entity_id == entity_id)
        if user_id:
            stmt = stmt.where(AuditEvent.user_id == user_id)
        stmt = stmt.order_by(AuditEvent.created_at.desc()).offset(offset).limit(limit)
        res = await self.scalars(stmt)
        return list(res)
