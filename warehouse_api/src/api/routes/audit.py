from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.deps import get_tenant_session, require_permission
from src.core.permissions import PermissionCode
from src.schemas.audit import AuditEventRead
from src.services.audit import AuditService

router = APIRouter(prefix="/audit-events", tags=["Audit"])


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[AuditEventRead],
    summary="List audit events",
    description="Most recent first.",
    dependencies=[Depends(require_permission(PermissionCode.MANAGE_USERS, PermissionCode.VIEW_REPORTS))],
)
async def list_audit_events(
    session: AsyncSession = Depends(get_tenant_session),
    entity_type: Optional[str] = Query(None, description="e.g. sales_order, ncr"),
    entity_id: Optional[UUID] = Query(None),
    user_id: Optional[UUID] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[AuditEventRead]:
    events = await AuditService(session).list_events(
        entity_type=entity_type, entity_id=entity_id, user_id=user_id, limit=limit, offset=offset
    )
    return [AuditEventRead.model_validate(e) for e in events]
