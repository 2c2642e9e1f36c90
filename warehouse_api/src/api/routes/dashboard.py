from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.deps import get_tenant_session, require_permission
from src.core.permissions import PermissionCode
from src.schemas.dashboard import DashboardStats, SuggestedAction
from src.services.dashboard import DashboardService

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


# PUBLIC_INTERFACE
@router.get(
    "/stats",
    response_model=DashboardStats,
    summary="Dashboard statistics",
    description="Inventory, production, job, quality and cold chain KPIs for the tenant.",
    dependencies=[Depends(require_permission(PermissionCode.VIEW_DASHBOARD))],
)
async def dashboard_stats(session: AsyncSession = Depends(get_tenant_session)) -> DashboardStats:
    return DashboardStats(**await DashboardService(session).stats())


# PUBLIC_INTERFACE
@router.get(
    "/suggested-actions",
    response_model=List[SuggestedAction],
    summary="Suggested replenishments",
    description="Items below their reorder point with a suggested order quantity.",
    dependencies=[Depends(require_permission(PermissionCode.VIEW_DASHBOARD))],
)
async def suggested_actions(session: AsyncSession = Depends(get_tenant_session)) -> List[SuggestedAction]:
    rows = await DashboardService(session).suggested_actions()
    return [SuggestedAction(**r) for r in rows]
