from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.context import UserContext
from src.core.deps import get_tenant_session, require_permission, require_roles
from src.core.permissions import PermissionCode, RoleName
from src.schemas.cold_chain import (
    ColdChainDashboard,
    ComplianceRow,
    ExcursionRead,
    InvestigateRequest,
    ReadingCreate,
    ReadingRead,
    TemperatureZoneCreate,
    TemperatureZoneRead,
)
from src.services.cold_chain import ColdChainService

router = APIRouter(prefix="/cold-chain", tags=["Cold Chain"])

_QUALITY_ROLES = (RoleName.ADMIN, RoleName.SUPERVISOR, RoleName.QC)
_view = [Depends(require_permission(PermissionCode.VIEW_INVENTORY))]


# PUBLIC_INTERFACE
@router.get(
    "/zones",
    response_model=List[TemperatureZoneRead],
    summary="List temperature zones",
    dependencies=_view,
)
async def list_zones(
    session: AsyncSession = Depends(get_tenant_session),
    site_id: Optional[UUID] = Query(None),
    active_only: bool = Query(False),
) -> List[TemperatureZoneRead]:
    zones = await ColdChainService(session).list_zones(site_id=site_id, active_only=active_only)
    return [TemperatureZoneRead.model_validate(z) for z in zones]


# PUBLIC_INTERFACE
@router.post(
    "/zones",
    response_model=TemperatureZoneRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create temperature zone",
    description="Thresholds must satisfy critical_min <= warning_min <= min_temp < max_temp <= warning_max <= critical_max.",
)
async def create_zone(
    payload: TemperatureZoneCreate,
    ctx: UserContext = Depends(require_permission(PermissionCode.MANAGE_FACILITIES)),
    session: AsyncSession = Depends(get_tenant_session),
) -> TemperatureZoneRead:
    zone = await ColdChainService(session).create_zone(ctx, payload.model_dump())
    return TemperatureZoneRead.model_validate(zone)


# PUBLIC_INTERFACE
@router.get(
    "/zones/{zone_id}",
    response_model=TemperatureZoneRead,
    summary="Get temperature zone",
    dependencies=_view,
)
async def get_zone(
    zone_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> TemperatureZoneRead:
    return TemperatureZoneRead.model_validate(await ColdChainService(session).get_zone(zone_id))


# PUBLIC_INTERFACE
@router.post(
    "/readings",
    response_model=ReadingRead,
    status_code=status.HTTP_201_CREATED,
    summary="Record temperature reading",
    description="Classifies the reading and opens, escalates or ends the zone's excursion.",
)
async def record_reading(
    payload: ReadingCreate,
    ctx: UserContext = Depends(
        require_permission(PermissionCode.EDIT_INVENTORY, PermissionCode.MANAGE_FACILITIES)
    ),
    session: AsyncSession = Depends(get_tenant_session),
) -> ReadingRead:
    reading = await ColdChainService(session).record_reading(ctx, **payload.model_dump())
    return ReadingRead.model_validate(reading)


# PUBLIC_INTERFACE
@router.get(
    "/zones/{zone_id}/history",
    response_model=List[ReadingRead],
    summary="Reading history",
    dependencies=_view,
)
async def reading_history(
    zone_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    limit: int = Query(1000, ge=1, le=10000),
) -> List[ReadingRead]:
    readings = await ColdChainService(session).history(zone_id, start=start, end=end, limit=limit)
    return [ReadingRead.model_validate(r) for r in readings]


# PUBLIC_INTERFACE
@router.get(
    "/excursions",
    response_model=List[ExcursionRead],
    summary="List excursions",
    dependencies=_view,
)
async def list_excursions(
    session: AsyncSession = Depends(get_tenant_session),
    zone_id: Optional[UUID] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[ExcursionRead]:
    excursions = await ColdChainService(session).list_excursions(
        zone_id=zone_id, status=status_filter, start=start, end=end, limit=limit, offset=offset
    )
    return [ExcursionRead.model_validate(e) for e in excursions]


# PUBLIC_INTERFACE
@router.post(
    "/excursions/{excursion_id}/investigate",
    response_model=ExcursionRead,
    summary="Investigate excursion",
    description="Record root cause, corrective action and affected item dispositions; the excursion becomes RESOLVED.",
)
async def investigate_excursion(
    payload: InvestigateRequest,
    excursion_id: UUID = Path(...),
    ctx: UserContext = Depends(require_roles(*_QUALITY_ROLES)),
    session: AsyncSession = Depends(get_tenant_session),
) -> ExcursionRead:
    excursion = await ColdChainService(session).investigate(ctx, excursion_id, **payload.model_dump())
    return ExcursionRead.model_validate(excursion)


# PUBLIC_INTERFACE
@router.post(
    "/excursions/{excursion_id}/close",
    response_model=ExcursionRead,
    summary="Close excursion",
)
async def close_excursion(
    excursion_id: UUID = Path(...),
    ctx: UserContext = Depends(require_roles(*_QUALITY_ROLES)),
    session: AsyncSession = Depends(get_tenant_session),
) -> ExcursionRead:
    return ExcursionRead.model_validate(await ColdChainService(session).close_excursion(ctx, excursion_id))


# PUBLIC_INTERFACE
@router.get(
    "/dashboard",
    response_model=ColdChainDashboard,
    summary="Cold chain dashboard",
    dependencies=_view,
)
async def cold_chain_dashboard(
    session: AsyncSession = Depends(get_tenant_session),
    site_id: Optional[UUID] = Query(None),
) -> ColdChainDashboard:
    return ColdChainDashboard(**await ColdChainService(session).dashboard(site_id=site_id))


# PUBLIC_INTERFACE
@router.get(
    "/compliance",
    response_model=List[ComplianceRow],
    summary="Compliance report",
    description="Per-zone reading counts and compliance percentage; defaults to the last 7 days.",
    dependencies=[Depends(require_permission(PermissionCode.VIEW_INVENTORY, PermissionCode.VIEW_REPORTS))],
)
async def compliance_report(
    session: AsyncSession = Depends(get_tenant_session),
    zone_id: Optional[List[UUID]] = Query(None, description="Zones to include; all when omitted"),
    site_id: Optional[UUID] = Query(None),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
) -> List[ComplianceRow]:
    rows = await ColdChainService(session).compliance_report(zone_ids=zone_id, site_id=site_id, start=start, end=end)
    return [ComplianceRow(**r) for r in rows]
