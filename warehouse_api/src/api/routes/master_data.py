from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.context import UserContext
from src.core.deps import get_tenant_session, require_permission, require_site_access
from src.core.permissions import PermissionCode
from src.db.models.master_data import Item, ItemUomConversion, Location
from src.repositories.master_data import ItemRepository, LocationRepository
from src.schemas.master_data import (
    ItemCategory,
    ItemCreate,
    ItemRead,
    ItemUpdate,
    LocationCreate,
    LocationRead,
    LocationType,
    UomConversion,
)

router = APIRouter(prefix="/master-data", tags=["Master Data"])


def _check_conversions(base_uom: str, conversions: List[UomConversion]) -> None:
    seen = set()
    for conv in conversions:
        if conv.uom == base_uom:
            raise HTTPException(status_code=400, detail="Alternate unit cannot be the base unit")
        if conv.uom in seen:
            raise HTTPException(status_code=400, detail=f"Duplicate unit: {conv.uom}")
        seen.add(conv.uom)


# PUBLIC_INTERFACE
@router.get(
    "/items",
    response_model=List[ItemRead],
    summary="List items",
    description="List items for the tenant ordered by SKU.",
    dependencies=[Depends(require_permission(PermissionCode.VIEW_INVENTORY))],
)
async def list_items(
    session: AsyncSession = Depends(get_tenant_session),
    search: Optional[str] = Query(None, description="Filter by SKU or name (substring)"),
    category: Optional[ItemCategory] = Query(None, description="Filter by category"),
    active_only: bool = Query(False),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[ItemRead]:
    repo = ItemRepository(session)
    items = await repo.list_items(search=search, category=category, active_only=active_only, limit=limit, offset=offset)
    return [ItemRead.model_validate(x) for x in items]


# PUBLIC_INTERFACE
@router.get(
    "/items/{item_id}",
    response_model=ItemRead,
    summary="Get item",
    dependencies=[Depends(require_permission(PermissionCode.VIEW_INVENTORY))],
)
async def get_item(
    item_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> ItemRead:
    item = await ItemRepository(session).get_item(item_id)
    if not item:
        raise HTTPException(status_code=404, detail="Item not found")
    return ItemRead.model_validate(item)


# PUBLIC_INTERFACE
@router.post(
    "/items",
    response_model=ItemRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create item",
    description="Create an item with its allowed alternate units of measure.",
    dependencies=[Depends(require_permission(PermissionCode.EDIT_INVENTORY))],
)
async def create_item(
    payload: ItemCreate,
    session: AsyncSession = Depends(get_tenant_session),
) -> ItemRead:
    repo = ItemRepository(session)
    if await repo.get_item_by_sku(payload.sku):
        raise HTTPException(status_code=409, detail=f"Item with sku '{payload.sku}' already exists")
    _check_conversions(payload.base_uom, payload.allowed_uoms)

    item = Item(**payload.model_dump(exclude={"allowed_uoms"}), conversions=[])
    for conv in payload.allowed_uoms:
        item.conversions.append(ItemUomConversion(uom=conv.uom, to_base=conv.to_base))
    await repo.add(item)
    await repo.flush()
    await repo.commit()
    return ItemRead.model_validate(item)


# PUBLIC_INTERFACE
@router.patch(
    "/items/{item_id}",
    response_model=ItemRead,
    summary="Update item",
    description="Update item fields; allowed_uoms, when given, replaces the existing conversions.",
    dependencies=[Depends(require_permission(PermissionCode.EDIT_INVENTORY))],
)
async def update_item(
    payload: ItemUpdate,
    item_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> ItemRead:
    repo = ItemRepository(session)
    item = await repo.get_item(item_id)
    if not item:
        raise HTTPException(status_code=404, detail="Item not found")

    changes = payload.model_dump(exclude_unset=True, exclude={"allowed_uoms"})
    for field, value in changes.items():
        setattr(item, field, value)

    if payload.allowed_uoms is not None:
        _check_conversions(item.base_uom, payload.allowed_uoms)
        item.conversions.clear()
        # old rows must be gone before the (item, uom) pairs are inserted again
        await repo.flush()
        for conv in payload.allowed_uoms:
            item.conversions.append(ItemUomConversion(uom=conv.uom, to_base=conv.to_base))

    await repo.flush()
    await repo.commit()
    return ItemRead.model_validate(item)


# PUBLIC_INTERFACE
@router.get(
    "/locations",
    response_model=List[LocationRead],
    summary="List locations",
    description="List storage locations ordered by label, optionally filtered by site and type.",
    dependencies=[Depends(require_permission(PermissionCode.VIEW_INVENTORY))],
)
async def list_locations(
    session: AsyncSession = Depends(get_tenant_session),
    site_id: Optional[UUID] = Query(None),
    type: Optional[LocationType] = Query(None, description="Location type"),
    active_only: bool = Query(False),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[LocationRead]:
    repo = LocationRepository(session)
    records = await repo.list_locations(site_id=site_id, type=type, active_only=active_only, limit=limit, offset=offset)
    return [LocationRead.model_validate(r) for r in records]


# PUBLIC_INTERFACE
@router.post(
    "/locations",
    response_model=LocationRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create location",
)
async def create_location(
    payload: LocationCreate,
    ctx: UserContext = Depends(require_permission(PermissionCode.EDIT_INVENTORY)),
    session: AsyncSession = Depends(get_tenant_session),
) -> LocationRead:
    require_site_access(ctx, payload.site_id)
    repo = LocationRepository(session)
    if await repo.get_location_by_label(payload.site_id, payload.label):
        raise HTTPException(status_code=409, detail=f"Location '{payload.label}' already exists at this site")
    location = Location(**payload.model_dump())
    await repo.add(location)
    await repo.flush()
    await repo.commit()
    return LocationRead.model_validate(location)
