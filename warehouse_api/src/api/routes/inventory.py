from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.context import UserContext
from src.core.deps import get_tenant_session, require_permission, require_roles
from src.core.permissions import PermissionCode, RoleName
from src.schemas.inventory import (
    ConvertRequest,
    ConvertResponse,
    EventType,
    InventoryBalanceRead,
    InventoryEventCreate,
    InventoryEventRead,
    OnHandRead,
    ReasonCodeCreate,
    ReasonCodeRead,
    ReasonCodeUpdate,
    ReasonType,
)
from src.schemas.master_data import LocationType
from src.services.inventory import InventoryService

router = APIRouter(prefix="/inventory", tags=["Inventory"])


# PUBLIC_INTERFACE
@router.post(
    "/events",
    response_model=InventoryEventRead,
    status_code=status.HTTP_201_CREATED,
    summary="Post inventory event",
    description=(
        "Record a stock movement. The entered quantity is converted to the item's base unit and the affected "
        "balances are updated in the same transaction. ADJUST, SCRAP and HOLD need adjust_inventory."
    ),
)
async def post_inventory_event(
    payload: InventoryEventCreate,
    ctx: UserContext = Depends(
        require_permission(PermissionCode.EDIT_INVENTORY, PermissionCode.ADJUST_INVENTORY)
    ),
    session: AsyncSession = Depends(get_tenant_session),
) -> InventoryEventRead:
    """Apply an inventory event; negative balances are refused unless an Admin/Supervisor adjusts."""
    service = InventoryService(session)
    event = await service.post_event(ctx, **payload.model_dump())
    return InventoryEventRead.model_validate(event)


# PUBLIC_INTERFACE
@router.get(
    "/events",
    response_model=List[InventoryEventRead],
    summary="List inventory events",
    description="Most recent events first.",
    dependencies=[Depends(require_permission(PermissionCode.VIEW_INVENTORY))],
)
async def list_inventory_events(
    session: AsyncSession = Depends(get_tenant_session),
    item_id: Optional[UUID] = Query(None),
    location_id: Optional[UUID] = Query(None, description="Matches either side of the movement"),
    event_type: Optional[EventType] = Query(None),
    site_id: Optional[UUID] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[InventoryEventRead]:
    service = InventoryService(session)
    events = await service.list_events(
        item_id=item_id, location_id=location_id, event_type=event_type, site_id=site_id, limit=limit, offset=offset
    )
    return [InventoryEventRead.model_validate(e) for e in events]


# PUBLIC_INTERFACE
@router.get(
    "/balances",
    response_model=List[InventoryBalanceRead],
    summary="List inventory balances",
    dependencies=[Depends(require_permission(PermissionCode.VIEW_INVENTORY))],
)
async def list_inventory_balances(
    session: AsyncSession = Depends(get_tenant_session),
    site_id: Optional[UUID] = Query(None),
    item_id: Optional[UUID] = Query(None),
    location_id: Optional[UUID] = Query(None),
    location_type: Optional[LocationType] = Query(None),
    only_positive: bool = Query(False, description="Hide zero and negative balances"),
    limit: int = Query(1000, ge=1, le=10000),
    offset: int = Query(0, ge=0),
) -> List[InventoryBalanceRead]:
    service = InventoryService(session)
    balances = await service.list_balances(
        site_id=site_id,
        item_id=item_id,
        location_id=location_id,
        location_type=location_type,
        only_positive=only_positive,
        limit=limit,
        offset=offset,
    )
    return [InventoryBalanceRead.model_validate(b) for b in balances]


# PUBLIC_INTERFACE
@router.get(
    "/items/{item_id}/on-hand",
    response_model=OnHandRead,
    summary="Item on-hand",
    description="Total and per-location on-hand quantity of an item in base units.",
    dependencies=[Depends(require_permission(PermissionCode.VIEW_INVENTORY))],
)
async def item_on_hand(
    item_id: UUID = Path(...),
    site_id: Optional[UUID] = Query(None),
    session: AsyncSession = Depends(get_tenant_session),
) -> OnHandRead:
    return OnHandRead(**await InventoryService(session).item_on_hand(item_id, site_id))


# PUBLIC_INTERFACE
@router.post(
    "/convert",
    response_model=ConvertResponse,
    summary="Convert quantity",
    description="Convert a quantity in any allowed unit of an item to its base unit.",
    dependencies=[Depends(require_permission(PermissionCode.VIEW_INVENTORY))],
)
async def convert_quantity(
    payload: ConvertRequest,
    session: AsyncSession = Depends(get_tenant_session),
) -> ConvertResponse:
    qty_base, factor = await InventoryService(session).convert_quantity(payload.item_id, payload.qty, payload.uom)
    return ConvertResponse(qty_base=qty_base, factor=factor)


_reason_editors = require_roles(RoleName.ADMIN, RoleName.SUPERVISOR, RoleName.INVENTORY)


# PUBLIC_INTERFACE
@router.get(
    "/reason-codes",
    response_model=List[ReasonCodeRead],
    summary="List reason codes",
    description="Active reason codes, optionally for one event type.",
    dependencies=[Depends(require_permission(PermissionCode.VIEW_INVENTORY))],
)
async def list_reason_codes(
    session: AsyncSession = Depends(get_tenant_session),
    type: Optional[ReasonType] = Query(None, description="SCRAP, ADJUST or HOLD"),
    include_inactive: bool = Query(False),
) -> List[ReasonCodeRead]:
    rows = await InventoryService(session).list_reason_codes(type=type, include_inactive=include_inactive)
    return [ReasonCodeRead.model_validate(r) for r in rows]


# PUBLIC_INTERFACE
@router.post(
    "/reason-codes",
    response_model=ReasonCodeRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create reason code",
)
async def create_reason_code(
    payload: ReasonCodeCreate,
    ctx: UserContext = Depends(_reason_editors),
    session: AsyncSession = Depends(get_tenant_session),
) -> ReasonCodeRead:
    reason = await InventoryService(session).create_reason_code(ctx, **payload.model_dump())
    return ReasonCodeRead.model_validate(reason)


# PUBLIC_INTERFACE
@router.patch(
    "/reason-codes/{reason_id}",
    response_model=ReasonCodeRead,
    summary="Update reason code",
    description="Rename, retype, describe or deactivate a reason code.",
)
async def update_reason_code(
    payload: ReasonCodeUpdate,
    reason_id: UUID = Path(...),
    ctx: UserContext = Depends(_reason_editors),
    session: AsyncSession = Depends(get_tenant_session),
) -> ReasonCodeRead:
    reason = await InventoryService(session).update_reason_code(ctx, reason_id, payload.model_dump(exclude_unset=True))
    return ReasonCodeRead.model_validate(reason)
