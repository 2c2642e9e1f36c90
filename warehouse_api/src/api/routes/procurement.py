from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.context import UserContext
from src.core.deps import get_tenant_session, require_permission
from src.core.permissions import PermissionCode
from src.schemas.procurement import (
    PurchaseOrderCreate,
    PurchaseOrderRead,
    PurchaseOrderStatus,
    PurchaseOrderStatusUpdate,
    ReceiptCreate,
    ReceiptRead,
    SupplierCreate,
    SupplierRead,
)
from src.services.procurement import PurchaseOrderService, SupplierService

router = APIRouter(tags=["Procurement"])

_view_purchasing = [Depends(require_permission(PermissionCode.VIEW_PURCHASING))]


# PUBLIC_INTERFACE
@router.get(
    "/suppliers",
    response_model=List[SupplierRead],
    summary="List suppliers",
    dependencies=_view_purchasing,
)
async def list_suppliers(
    session: AsyncSession = Depends(get_tenant_session),
    search: Optional[str] = Query(None, description="Filter by code or name (substring)"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[SupplierRead]:
    suppliers = await SupplierService(session).list_suppliers(search=search, limit=limit, offset=offset)
    return [SupplierRead.model_validate(s) for s in suppliers]


# PUBLIC_INTERFACE
@router.post(
    "/suppliers",
    response_model=SupplierRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create supplier",
)
async def create_supplier(
    payload: SupplierCreate,
    ctx: UserContext = Depends(require_permission(PermissionCode.CREATE_PURCHASE_ORDER)),
    session: AsyncSession = Depends(get_tenant_session),
) -> SupplierRead:
    supplier = await SupplierService(session).create_supplier(ctx, payload.model_dump())
    return SupplierRead.model_validate(supplier)


# PUBLIC_INTERFACE
@router.get(
    "/purchase-orders",
    response_model=List[PurchaseOrderRead],
    summary="List purchase orders",
    dependencies=_view_purchasing,
)
async def list_purchase_orders(
    session: AsyncSession = Depends(get_tenant_session),
    supplier_id: Optional[UUID] = Query(None),
    status_filter: Optional[PurchaseOrderStatus] = Query(None, alias="status"),
    site_id: Optional[UUID] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[PurchaseOrderRead]:
    orders = await PurchaseOrderService(session).list_purchase_orders(
        supplier_id=supplier_id, status=status_filter, site_id=site_id, limit=limit, offset=offset
    )
    return [PurchaseOrderRead.model_validate(o) for o in orders]


# PUBLIC_INTERFACE
@router.post(
    "/purchase-orders",
    response_model=PurchaseOrderRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create purchase order",
    description="Create a DRAFT purchase order; lines are numbered in the order given.",
)
async def create_purchase_order(
    payload: PurchaseOrderCreate,
    ctx: UserContext = Depends(require_permission(PermissionCode.CREATE_PURCHASE_ORDER)),
    session: AsyncSession = Depends(get_tenant_session),
) -> PurchaseOrderRead:
    po = await PurchaseOrderService(session).create_purchase_order(ctx, **payload.model_dump())
    return PurchaseOrderRead.model_validate(po)


# PUBLIC_INTERFACE
@router.get(
    "/purchase-orders/{po_id}",
    response_model=PurchaseOrderRead,
    summary="Get purchase order",
    dependencies=_view_purchasing,
)
async def get_purchase_order(
    po_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> PurchaseOrderRead:
    return PurchaseOrderRead.model_validate(await PurchaseOrderService(session).get_purchase_order(po_id))


# PUBLIC_INTERFACE
@router.patch(
    "/purchase-orders/{po_id}/status",
    response_model=PurchaseOrderRead,
    summary="Change purchase order status",
    description="Approving needs approve_purchase_order.",
)
async def update_purchase_order_status(
    payload: PurchaseOrderStatusUpdate,
    po_id: UUID = Path(...),
    ctx: UserContext = Depends(
        require_permission(PermissionCode.CREATE_PURCHASE_ORDER, PermissionCode.APPROVE_PURCHASE_ORDER)
    ),
    session: AsyncSession = Depends(get_tenant_session),
) -> PurchaseOrderRead:
    po = await PurchaseOrderService(session).update_status(ctx, po_id, payload.status)
    return PurchaseOrderRead.model_validate(po)


# PUBLIC_INTERFACE
@router.post(
    "/purchase-orders/{po_id}/receive",
    response_model=ReceiptRead,
    status_code=status.HTTP_201_CREATED,
    summary="Receive goods",
    description=(
        "Create a receipt numbered RCV-nnnnnn, post a RECEIVE event per line and "
        "advance the order to PARTIALLY_RECEIVED or RECEIVED."
    ),
)
async def receive_purchase_order(
    payload: ReceiptCreate,
    po_id: UUID = Path(...),
    ctx: UserContext = Depends(require_permission(PermissionCode.RECEIVE_GOODS)),
    session: AsyncSession = Depends(get_tenant_session),
) -> ReceiptRead:
    receipt = await PurchaseOrderService(session).receive(ctx, po_id, **payload.model_dump())
    return ReceiptRead.model_validate(receipt)


# PUBLIC_INTERFACE
@router.get(
    "/purchase-orders/{po_id}/receipts",
    response_model=List[ReceiptRead],
    summary="List receipts of a purchase order",
    dependencies=_view_purchasing,
)
async def list_purchase_order_receipts(
    po_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> List[ReceiptRead]:
    receipts = await PurchaseOrderService(session).list_receipts(po_id)
    return [ReceiptRead.model_validate(r) for r in receipts]
