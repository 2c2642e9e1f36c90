from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.context import UserContext
from src.core.deps import get_tenant_session, require_permission, require_roles
from src.core.permissions import PermissionCode, RoleName
from src.schemas.quality import (
    CapaCreate,
    CapaRead,
    CapaUpdate,
    NcrCreate,
    NcrDetail,
    NcrRead,
    NcrUpdate,
    Severity,
)
from src.services.quality import QualityService

router = APIRouter(tags=["Quality"])

_QUALITY_ROLES = (RoleName.ADMIN, RoleName.SUPERVISOR, RoleName.QC)
_view_quality = [Depends(require_permission(PermissionCode.VIEW_QUALITY))]


# PUBLIC_INTERFACE
@router.get(
    "/ncrs",
    response_model=List[NcrRead],
    summary="List NCRs",
    description="List non-conformance reports, newest first.",
    dependencies=_view_quality,
)
async def list_ncrs(
    session: AsyncSession = Depends(get_tenant_session),
    status_filter: Optional[str] = Query(None, alias="status"),
    severity: Optional[Severity] = Query(None),
    search: Optional[str] = Query(None, description="Filter by NCR number (substring)"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[NcrRead]:
    ncrs = await QualityService(session).list_ncrs(
        status=status_filter, severity=severity, search=search, limit=limit, offset=offset
    )
    return [NcrRead.model_validate(n) for n in ncrs]


# PUBLIC_INTERFACE
@router.post(
    "/ncrs",
    response_model=NcrRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create NCR",
    description="Report a non-conformance; it is numbered NCR-nnnnnn and starts OPEN with a PENDING disposition.",
)
async def create_ncr(
    payload: NcrCreate,
    ctx: UserContext = Depends(require_roles(*_QUALITY_ROLES)),
    session: AsyncSession = Depends(get_tenant_session),
) -> NcrRead:
    ncr = await QualityService(session).create_ncr(ctx, **payload.model_dump())
    return NcrRead.model_validate(ncr)


# PUBLIC_INTERFACE
@router.get(
    "/ncrs/{ncr_id}",
    response_model=NcrDetail,
    summary="Get NCR",
    description="NCR with its corrective and preventive actions.",
    dependencies=_view_quality,
)
async def get_ncr(
    ncr_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> NcrDetail:
    return NcrDetail.model_validate(await QualityService(session).get_ncr(ncr_id))


# PUBLIC_INTERFACE
@router.patch(
    "/ncrs/{ncr_id}",
    response_model=NcrRead,
    summary="Update NCR",
    description=(
        "Review, disposition and close an NCR. Closing needs a disposition and, "
        "when capa_required is set, at least one CAPA."
    ),
)
async def update_ncr(
    payload: NcrUpdate,
    ncr_id: UUID = Path(...),
    ctx: UserContext = Depends(require_roles(*_QUALITY_ROLES)),
    session: AsyncSession = Depends(get_tenant_session),
) -> NcrRead:
    ncr = await QualityService(session).update_ncr(ctx, ncr_id, payload.model_dump(exclude_unset=True))
    return NcrRead.model_validate(ncr)


# PUBLIC_INTERFACE
@router.post(
    "/ncrs/{ncr_id}/capas",
    response_model=CapaRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create CAPA",
)
async def create_capa(
    payload: CapaCreate,
    ncr_id: UUID = Path(...),
    ctx: UserContext = Depends(require_roles(*_QUALITY_ROLES)),
    session: AsyncSession = Depends(get_tenant_session),
) -> CapaRead:
    capa = await QualityService(session).create_capa(ctx, ncr_id, payload.model_dump())
    return CapaRead.model_validate(capa)


# PUBLIC_INTERFACE
@router.get(
    "/capas/{capa_id}",
    response_model=CapaRead,
    summary="Get CAPA",
    dependencies=_view_quality,
)
async def get_capa(
    capa_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> CapaRead:
    return CapaRead.model_validate(await QualityService(session).get_capa(capa_id))


# PUBLIC_INTERFACE
@router.patch(
    "/capas/{capa_id}",
    response_model=CapaRead,
    summary="Update CAPA",
    description="IMPLEMENTED records implemented_at; VERIFIED records verified_at and verified_by.",
)
async def update_capa(
    payload: CapaUpdate,
    capa_id: UUID = Path(...),
    ctx: UserContext = Depends(require_roles(*_QUALITY_ROLES)),
    session: AsyncSession = Depends(get_tenant_session),
) -> CapaRead:
    capa = await QualityService(session).update_capa(ctx, capa_id, payload.model_dump(exclude_unset=True))
    return CapaRead.model_validate(capa)
