from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.context import UserContext
from src.db.models.audit import AuditEvent
from src.repositories.audit import AuditRepository
from src.services.base import BaseService

logger = logging.getLogger(__name__)


class AuditService(BaseService):
    """Stores who-did-what records alongside the business change that caused them."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = AuditRepository(session)

    # PUBLIC_INTERFACE
    async def record(
        self,
        ctx: UserContext,
        action: str,
        entity_type: str,
        entity_id: Optional[UUID],
        details: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
    ) -> AuditEvent:
        """
        Stage an audit event in the current transaction.

        The caller's commit persists it together with the audited change.
        """
        event = AuditEvent(
            user_id=ctx.user_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            details=json.dumps(details, default=str) if details else None,
            ip_address=ip_address,
        )
        await self.repo.add(event)
        logger.debug("Audit %s %s %s", action, entity_type, entity_id)
        return event

    async def list_events(
        self,
        *,
        entity_type: Optional[str] = None,
        entity_id: Optional[UUID] = None,
        user_id: Optional[UUID] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[AuditEvent]:
        return await self.repo.list_events(
            entity_type=entity_type, entity_id=entity_id, user_id=user_id, limit=limit, offset=offset
        )
