from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.context import UserContext
from src.core.deps import get_tenant_session, require_permission, require_roles
from src.core.permissions import PermissionCode, RoleName
from src.schemas.cycle_counts import (
    ApproveVarianceRequest,
    CycleCountCreate,
    CycleCountDetail,
    CycleCountLineRead,
    CycleCountRead,
    CycleCountStatusUpdate,
    CycleCountSummary,
    RecordCountRequest,
)
from src.services.cycle_counts import CycleCountService, summarize_lines

router = APIRouter(prefix="/cycle-counts", tags=["Cycle Counts"])

_MANAGERS = (RoleName.ADMIN, RoleName.SUPERVISOR, RoleName.INVENTORY)
_COUNTERS = _MANAGERS + (RoleName.OPERATOR,)


def _detail(count) -> CycleCountDetail:
    detail = CycleCountDetail.model_validate(count)
    detail.summary = CycleCountSummary(**summarize_lines(count.lines))
    return detail


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=CycleCountDetail,
    status_code=status.HTTP_201_CREATED,
    summary="Create cycle count",
    description="Schedule a count with one line per balance of the site, optionally limited to locations and items.",
)
async def create_cycle_count(
    payload: CycleCountCreate,
    ctx: UserContext = Depends(require_roles(*_MANAGERS)),
    session: AsyncSession = Depends(get_tenant_session),
) -> CycleCountDetail:
    count = await CycleCountService(session).create_count(ctx, **payload.model_dump())
    return _detail(count)


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[CycleCountRead],
    summary="List cycle counts",
    dependencies=[Depends(require_permission(PermissionCode.VIEW_INVENTORY, PermissionCode.CYCLE_COUNT))],
)
async def list_cycle_counts(
    session: AsyncSession = Depends(get_tenant_session),
    status_filter: Optional[str] = Query(None, alias="status"),
    site_id: Optional[UUID] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[CycleCountRead]:
    counts = await CycleCountService(session).list_counts(status=status_filter, site_id=site_id, limit=limit, offset=offset)
    return [CycleCountRead.model_validate(c) for c in counts]


# PUBLIC_INTERFACE
@router.get(
    "/{count_id}",
    response_model=CycleCountDetail,
    summary="Get cycle count",
    description="Count with its lines and a progress summary.",
    dependencies=[Depends(require_permission(PermissionCode.VIEW_INVENTORY, PermissionCode.CYCLE_COUNT))],
)
async def get_cycle_count(
    count_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> CycleCountDetail:
    return _detail(await CycleCountService(session).get_count(count_id))


# PUBLIC_INTERFACE
@router.patch(
    "/{count_id}/status",
    response_model=CycleCountDetail,
    summary="Change cycle count status",
)
async def update_cycle_count_status(
    payload: CycleCountStatusUpdate,
    count_id: UUID = Path(...),
    ctx: UserContext = Depends(require_roles(*_MANAGERS)),
    session: AsyncSession = Depends(get_tenant_session),
) -> CycleCountDetail:
    return _detail(await CycleCountService(session).update_status(ctx, count_id, payload.status))


# PUBLIC_INTERFACE
@router.post(
    "/{count_id}/lines/{line_id}/count",
    response_model=CycleCountLineRead,
    summary="Record counted quantity",
)
async def record_count(
    payload: RecordCountRequest,
    count_id: UUID = Path(...),
    line_id: UUID = Path(...),
    ctx: UserContext = Depends(require_roles(*_COUNTERS)),
    session: AsyncSession = Depends(get_tenant_session),
) -> CycleCountLineRead:
    line = await CycleCountService(session).record_count(
        ctx, count_id, line_id, payload.counted_qty_base, payload.notes
    )
    return CycleCountLineRead.model_validate(line)


# PUBLIC_INTERFACE
@router.post(
    "/{count_id}/lines/{line_id}/approve",
    response_model=CycleCountLineRead,
    summary="Approve or reject a variance",
    description="An approved nonzero variance adjusts the balance to the counted quantity.",
)
async def approve_variance(
    payload: ApproveVarianceRequest,
    count_id: UUID = Path(...),
    line_id: UUID = Path(...),
    ctx: UserContext = Depends(require_roles(RoleName.ADMIN, RoleName.SUPERVISOR)),
    session: AsyncSession = Depends(get_tenant_session),
) -> CycleCountLineRead:
    line = await CycleCountService(session).approve_variance(ctx, count_id, line_id, payload.approved, payload.notes)
    return CycleCountLineRead.model_validate(line)


# PUBLIC_INTERFACE
@router.delete(
    "/{count_id}",
    response_model=CycleCountRead,
    summary="Delete cycle count",
    description="Removes the lines of a SCHEDULED or CANCELLED count and marks it CANCELLED.",
)
async def delete_cycle_count(
    count_id: UUID = Path(...),
    ctx: UserContext = Depends(require_roles(RoleName.ADMIN, RoleName.SUPERVISOR)),
    session: AsyncSession = Depends(get_tenant_session),
) -> CycleCountRead:
    return CycleCountRead.model_validate(await CycleCountService(session).delete_count(ctx, count_id))
