from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.deps import get_tenant_session, require_permission
from src.core.permissions import PermissionCode
from src.db.models.tenancy import Site
from src.repositories.tenancy import SiteRepository
from src.schemas.master_data import SiteCreate, SiteRead, SiteUpdate

router = APIRouter(prefix="/sites", tags=["Sites"])


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[SiteRead],
    summary="List sites",
    description="List the tenant's sites ordered by code.",
    dependencies=[Depends(require_permission(PermissionCode.VIEW_INVENTORY))],
)
async def list_sites(
    session: AsyncSession = Depends(get_tenant_session),
    active_only: bool = Query(False, description="Only active sites"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[SiteRead]:
    repo = SiteRepository(session)
    sites = await repo.list_sites(active_only=active_only, limit=limit, offset=offset)
    return [SiteRead.model_validate(s) for s in sites]


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=SiteRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create site",
    dependencies=[Depends(require_permission(PermissionCode.MANAGE_FACILITIES))],
)
async def create_site(
    payload: SiteCreate,
    session: AsyncSession = Depends(get_tenant_session),
) -> SiteRead:
    repo = SiteRepository(session)
    if await repo.get_site_by_code(payload.code):
        raise HTTPException(status_code=409, detail=f"Site with code '{payload.code}' already exists")
    site = Site(**payload.model_dump())
    await repo.add(site)
    await repo.flush()
    await repo.commit()
    return SiteRead.model_validate(site)


# PUBLIC_INTERFACE
@router.patch(
    "/{site_id}",
    response_model=SiteRead,
    summary="Update site",
    dependencies=[Depends(require_permission(PermissionCode.MANAGE_FACILITIES))],
)
async def update_site(
    payload: SiteUpdate,
    site_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> SiteRead:
    repo = SiteRepository(session)
    site = await repo.get_site(site_id)
    if not site:
        raise HTTPException(status_code=404, detail="Site not found")
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(site, field, value)
    await repo.flush()
    await repo.commit()
    return SiteRead.model_validate(site)
