from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.context import UserContext
from src.core.deps import get_tenant_session, require_permission, require_roles
from src.core.permissions import PermissionCode, RoleName
from src.schemas.transfers import (
    InTransitRow,
    TransferCancel,
    TransferCreate,
    TransferDashboard,
    TransferRead,
    TransferReceive,
    TransferShip,
)
from src.services.transfers import TransferService

router = APIRouter(prefix="/transfers", tags=["Transfers"])

_view = [Depends(require_permission(PermissionCode.VIEW_INVENTORY))]


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[TransferRead],
    summary="List transfers",
    dependencies=_view,
)
async def list_transfers(
    session: AsyncSession = Depends(get_tenant_session),
    status_filter: Optional[str] = Query(None, alias="status"),
    site_id: Optional[UUID] = Query(None, description="Matches either the source or the destination site"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[TransferRead]:
    transfers = await TransferService(session).list_transfers(
        status=status_filter, site_id=site_id, limit=limit, offset=offset
    )
    return [TransferRead.model_validate(t) for t in transfers]


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=TransferRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create transfer",
    description="Create a DRAFT transfer numbered TRF-nnnnnn between two different sites.",
)
async def create_transfer(
    payload: TransferCreate,
    ctx: UserContext = Depends(require_permission(PermissionCode.EDIT_INVENTORY)),
    session: AsyncSession = Depends(get_tenant_session),
) -> TransferRead:
    transfer = await TransferService(session).create_transfer(ctx, **payload.model_dump())
    return TransferRead.model_validate(transfer)


# PUBLIC_INTERFACE
@router.get(
    "/in-transit",
    response_model=List[InTransitRow],
    summary="In-transit inventory",
    dependencies=_view,
)
async def in_transit(
    session: AsyncSession = Depends(get_tenant_session),
    site_id: Optional[UUID] = Query(None),
) -> List[InTransitRow]:
    rows = await TransferService(session).in_transit(site_id=site_id)
    return [InTransitRow(**r) for r in rows]


# PUBLIC_INTERFACE
@router.get(
    "/dashboard",
    response_model=TransferDashboard,
    summary="Transfer dashboard",
    dependencies=_view,
)
async def transfer_dashboard(session: AsyncSession = Depends(get_tenant_session)) -> TransferDashboard:
    return TransferDashboard(**await TransferService(session).dashboard())


# PUBLIC_INTERFACE
@router.get(
    "/{transfer_id}",
    response_model=TransferRead,
    summary="Get transfer",
    dependencies=_view,
)
async def get_transfer(
    transfer_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> TransferRead:
    return TransferRead.model_validate(await TransferService(session).get_transfer(transfer_id))


# PUBLIC_INTERFACE
@router.post(
    "/{transfer_id}/approve",
    response_model=TransferRead,
    summary="Approve transfer",
)
async def approve_transfer(
    transfer_id: UUID = Path(...),
    ctx: UserContext = Depends(require_roles(RoleName.ADMIN, RoleName.SUPERVISOR, RoleName.INVENTORY)),
    session: AsyncSession = Depends(get_tenant_session),
) -> TransferRead:
    return TransferRead.model_validate(await TransferService(session).approve(ctx, transfer_id))


# PUBLIC_INTERFACE
@router.post(
    "/{transfer_id}/ship",
    response_model=TransferRead,
    summary="Ship transfer",
    description="Post TRANSFER_OUT from each line's source location; a negative balance aborts the whole shipment.",
)
async def ship_transfer(
    transfer_id: UUID = Path(...),
    payload: Optional[TransferShip] = Body(None),
    ctx: UserContext = Depends(require_permission(PermissionCode.EDIT_INVENTORY)),
    session: AsyncSession = Depends(get_tenant_session),
) -> TransferRead:
    payload = payload or TransferShip()
    transfer = await TransferService(session).ship(ctx, transfer_id, **payload.model_dump())
    return TransferRead.model_validate(transfer)


# PUBLIC_INTERFACE
@router.post(
    "/{transfer_id}/receive",
    response_model=TransferRead,
    summary="Receive transfer",
    description="Post TRANSFER_IN of the received quantity; lines with a variance are marked VARIANCE.",
)
async def receive_transfer(
    payload: TransferReceive,
    transfer_id: UUID = Path(...),
    ctx: UserContext = Depends(require_permission(PermissionCode.RECEIVE_GOODS)),
    session: AsyncSession = Depends(get_tenant_session),
) -> TransferRead:
    data = payload.model_dump()
    transfer = await TransferService(session).receive(ctx, transfer_id, data["lines"])
    return TransferRead.model_validate(transfer)


# PUBLIC_INTERFACE
@router.post(
    "/{transfer_id}/cancel",
    response_model=TransferRead,
    summary="Cancel transfer",
)
async def cancel_transfer(
    payload: TransferCancel,
    transfer_id: UUID = Path(...),
    ctx: UserContext = Depends(require_roles(RoleName.ADMIN, RoleName.SUPERVISOR)),
    session: AsyncSession = Depends(get_tenant_session),
) -> TransferRead:
    return TransferRead.model_validate(await TransferService(session).cancel(ctx, transfer_id, payload.reason))
