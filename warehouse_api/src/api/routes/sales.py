from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.context import UserContext
from src.core.deps import get_tenant_session, require_permission, require_roles
from src.core.permissions import PermissionCode, RoleName
from src.schemas.sales import (
    AllocationResult,
    CancelRequest,
    CustomerCreate,
    CustomerRead,
    PickTaskComplete,
    PickTaskCreate,
    PickTaskRead,
    SalesOrderCreate,
    SalesOrderRead,
    SalesOrderUpdate,
    ShipmentRead,
    ShipRequest,
)
from src.services.sales import CustomerService, SalesOrderService

router = APIRouter(tags=["Sales"])

_view_sales = [Depends(require_permission(PermissionCode.VIEW_SALES))]
_PICKERS = (RoleName.ADMIN, RoleName.SUPERVISOR, RoleName.INVENTORY)


# PUBLIC_INTERFACE
@router.get(
    "/customers",
    response_model=List[CustomerRead],
    summary="List customers",
    dependencies=_view_sales,
)
async def list_customers(
    session: AsyncSession = Depends(get_tenant_session),
    search: Optional[str] = Query(None, description="Filter by code or name (substring)"),
    active_only: bool = Query(False),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[CustomerRead]:
    customers = await CustomerService(session).list_customers(
        search=search, active_only=active_only, limit=limit, offset=offset
    )
    return [CustomerRead.model_validate(c) for c in customers]


# PUBLIC_INTERFACE
@router.post(
    "/customers",
    response_model=CustomerRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create customer",
)
async def create_customer(
    payload: CustomerCreate,
    ctx: UserContext = Depends(require_permission(PermissionCode.MANAGE_CUSTOMERS)),
    session: AsyncSession = Depends(get_tenant_session),
) -> CustomerRead:
    customer = await CustomerService(session).create_customer(ctx, payload.model_dump())
    return CustomerRead.model_validate(customer)


# PUBLIC_INTERFACE
@router.get(
    "/customers/{customer_id}",
    response_model=CustomerRead,
    summary="Get customer",
    dependencies=_view_sales,
)
async def get_customer(
    customer_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> CustomerRead:
    return CustomerRead.model_validate(await CustomerService(session).get_customer(customer_id))


# PUBLIC_INTERFACE
@router.get(
    "/sales-orders",
    response_model=List[SalesOrderRead],
    summary="List sales orders",
    dependencies=_view_sales,
)
async def list_sales_orders(
    session: AsyncSession = Depends(get_tenant_session),
    status_filter: Optional[str] = Query(None, alias="status"),
    customer_id: Optional[UUID] = Query(None),
    site_id: Optional[UUID] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[SalesOrderRead]:
    orders = await SalesOrderService(session).list_orders(
        status=status_filter, customer_id=customer_id, site_id=site_id, limit=limit, offset=offset
    )
    return [SalesOrderRead.model_validate(o) for o in orders]


# PUBLIC_INTERFACE
@router.post(
    "/sales-orders",
    response_model=SalesOrderRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create sales order",
    description="Create a DRAFT order. Line totals, tax and the order total are computed server side.",
)
async def create_sales_order(
    payload: SalesOrderCreate,
    ctx: UserContext = Depends(require_permission(PermissionCode.CREATE_SALES_ORDER)),
    session: AsyncSession = Depends(get_tenant_session),
) -> SalesOrderRead:
    order = await SalesOrderService(session).create_order(ctx, **payload.model_dump())
    return SalesOrderRead.model_validate(order)


# PUBLIC_INTERFACE
@router.get(
    "/sales-orders/{order_id}",
    response_model=SalesOrderRead,
    summary="Get sales order",
    dependencies=_view_sales,
)
async def get_sales_order(
    order_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> SalesOrderRead:
    return SalesOrderRead.model_validate(await SalesOrderService(session).get_order(order_id))


# PUBLIC_INTERFACE
@router.patch(
    "/sales-orders/{order_id}",
    response_model=SalesOrderRead,
    summary="Update draft sales order",
)
async def update_sales_order(
    payload: SalesOrderUpdate,
    order_id: UUID = Path(...),
    ctx: UserContext = Depends(require_permission(PermissionCode.EDIT_SALES_ORDER)),
    session: AsyncSession = Depends(get_tenant_session),
) -> SalesOrderRead:
    order = await SalesOrderService(session).update_order(ctx, order_id, payload.model_dump(exclude_unset=True))
    return SalesOrderRead.model_validate(order)


# PUBLIC_INTERFACE
@router.post(
    "/sales-orders/{order_id}/confirm",
    response_model=SalesOrderRead,
    summary="Confirm sales order",
)
async def confirm_sales_order(
    order_id: UUID = Path(...),
    ctx: UserContext = Depends(require_permission(PermissionCode.EDIT_SALES_ORDER)),
    session: AsyncSession = Depends(get_tenant_session),
) -> SalesOrderRead:
    return SalesOrderRead.model_validate(await SalesOrderService(session).confirm_order(ctx, order_id))


# PUBLIC_INTERFACE
@router.post(
    "/sales-orders/{order_id}/cancel",
    response_model=SalesOrderRead,
    summary="Cancel sales order",
    description="Cancels the order, its lines and any open pick tasks.",
)
async def cancel_sales_order(
    order_id: UUID = Path(...),
    payload: Optional[CancelRequest] = Body(None),
    ctx: UserContext = Depends(require_permission(PermissionCode.EDIT_SALES_ORDER)),
    session: AsyncSession = Depends(get_tenant_session),
) -> SalesOrderRead:
    reason = payload.reason if payload else None
    return SalesOrderRead.model_validate(await SalesOrderService(session).cancel_order(ctx, order_id, reason))


# PUBLIC_INTERFACE
@router.post(
    "/sales-orders/{order_id}/allocate",
    response_model=AllocationResult,
    summary="Allocate inventory",
    description="Reserve available STOCK and SHIPPING quantity at the order's site; the order becomes ALLOCATED when every line is covered.",
)
async def allocate_sales_order(
    order_id: UUID = Path(...),
    ctx: UserContext = Depends(
        require_roles(RoleName.ADMIN, RoleName.SUPERVISOR, RoleName.SALES, RoleName.INVENTORY)
    ),
    session: AsyncSession = Depends(get_tenant_session),
) -> AllocationResult:
    return AllocationResult(**await SalesOrderService(session).allocate(ctx, order_id))


# PUBLIC_INTERFACE
@router.post(
    "/sales-orders/{order_id}/pick-tasks",
    response_model=PickTaskRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create pick task",
    description="Plan picks first-in first-out across STOCK locations for an ALLOCATED order.",
)
async def create_pick_task(
    order_id: UUID = Path(...),
    payload: Optional[PickTaskCreate] = Body(None),
    ctx: UserContext = Depends(require_roles(*_PICKERS)),
    session: AsyncSession = Depends(get_tenant_session),
) -> PickTaskRead:
    assigned = payload.assigned_to_user_id if payload else None
    task = await SalesOrderService(session).create_pick_task(ctx, order_id, assigned)
    return PickTaskRead.model_validate(task)


# PUBLIC_INTERFACE
@router.get(
    "/sales-orders/{order_id}/pick-tasks",
    response_model=List[PickTaskRead],
    summary="List pick tasks of an order",
    dependencies=[Depends(require_permission(PermissionCode.VIEW_SALES, PermissionCode.VIEW_INVENTORY))],
)
async def list_pick_tasks(
    order_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> List[PickTaskRead]:
    tasks = await SalesOrderService(session).list_pick_tasks(order_id)
    return [PickTaskRead.model_validate(t) for t in tasks]


# PUBLIC_INTERFACE
@router.post(
    "/pick-tasks/{task_id}/complete",
    response_model=PickTaskRead,
    summary="Complete pick task",
    description="Record picked quantities; the order becomes PACKED once every line is picked.",
)
async def complete_pick_task(
    task_id: UUID = Path(...),
    payload: Optional[PickTaskComplete] = Body(None),
    ctx: UserContext = Depends(require_roles(*_PICKERS, RoleName.OPERATOR)),
    session: AsyncSession = Depends(get_tenant_session),
) -> PickTaskRead:
    picked = payload.picked if payload else None
    task = await SalesOrderService(session).complete_pick_task(ctx, task_id, picked)
    return PickTaskRead.model_validate(task)


# PUBLIC_INTERFACE
@router.post(
    "/sales-orders/{order_id}/ship",
    response_model=ShipmentRead,
    status_code=status.HTTP_201_CREATED,
    summary="Ship sales order",
    description="Post SHIP events from the picked locations and mark the order SHIPPED.",
)
async def ship_sales_order(
    order_id: UUID = Path(...),
    payload: Optional[ShipRequest] = Body(None),
    ctx: UserContext = Depends(require_permission(PermissionCode.CREATE_SHIPMENT)),
    session: AsyncSession = Depends(get_tenant_session),
) -> ShipmentRead:
    payload = payload or ShipRequest()
    shipment = await SalesOrderService(session).ship_order(
        ctx, order_id, carrier=payload.carrier, tracking_number=payload.tracking_number
    )
    return ShipmentRead.model_validate(shipment)


# PUBLIC_INTERFACE
@router.post(
    "/sales-orders/{order_id}/deliver",
    response_model=SalesOrderRead,
    summary="Mark sales order delivered",
)
async def deliver_sales_order(
    order_id: UUID = Path(...),
    ctx: UserContext = Depends(require_permission(PermissionCode.CREATE_SHIPMENT)),
    session: AsyncSession = Depends(get_tenant_session),
) -> SalesOrderRead:
    return SalesOrderRead.model_validate(await SalesOrderService(session).deliver_order(ctx, order_id))


# PUBLIC_INTERFACE
@router.get(
    "/sales-orders/{order_id}/shipments",
    response_model=List[ShipmentRead],
    summary="List shipments of an order",
    dependencies=_view_sales,
)
async def list_shipments(
    order_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> List[ShipmentRead]:
    shipments = await SalesOrderService(session).list_shipments(order_id)
    return [ShipmentRead.model_validate(s) for s in shipments]
