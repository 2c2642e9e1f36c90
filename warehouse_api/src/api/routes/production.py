from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.context import UserContext
from src.core.deps import get_tenant_session, require_permission, require_roles
from src.core.permissions import PermissionCode, RoleName
from src.schemas.common import MessageResponse
from src.schemas.production import (
    BomCreate,
    BomRead,
    BomStatusUpdate,
    MaterialIssueCreate,
    MaterialRequirement,
    ProductionConsumptionRead,
    ProductionOrderCreate,
    ProductionOrderRead,
    ProductionOrderUpdate,
    ProductionOutputCreate,
    ProductionOutputRead,
    ProductionYield,
)
from src.services.production import BomService, ProductionOrderService

router = APIRouter(tags=["Production"])

_view_production = [Depends(require_permission(PermissionCode.VIEW_PRODUCTION))]


# PUBLIC_INTERFACE
@router.get(
    "/boms",
    response_model=List[BomRead],
    summary="List BOMs",
    dependencies=[Depends(require_permission(PermissionCode.VIEW_BOM))],
)
async def list_boms(
    session: AsyncSession = Depends(get_tenant_session),
    item_id: Optional[UUID] = Query(None, description="Parent item"),
    status_filter: Optional[str] = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[BomRead]:
    boms = await BomService(session).list_boms(item_id=item_id, status=status_filter, limit=limit, offset=offset)
    return [BomRead.model_validate(b) for b in boms]


# PUBLIC_INTERFACE
@router.post(
    "/boms",
    response_model=BomRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create BOM",
    description="Create a DRAFT bill of materials. The parent item may not be its own component.",
)
async def create_bom(
    payload: BomCreate,
    ctx: UserContext = Depends(require_permission(PermissionCode.CREATE_BOM)),
    session: AsyncSession = Depends(get_tenant_session),
) -> BomRead:
    bom = await BomService(session).create_bom(ctx, **payload.model_dump())
    return BomRead.model_validate(bom)


# PUBLIC_INTERFACE
@router.get(
    "/boms/{bom_id}",
    response_model=BomRead,
    summary="Get BOM",
    dependencies=[Depends(require_permission(PermissionCode.VIEW_BOM))],
)
async def get_bom(
    bom_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> BomRead:
    return BomRead.model_validate(await BomService(session).get_bom(bom_id))


# PUBLIC_INTERFACE
@router.patch(
    "/boms/{bom_id}/status",
    response_model=BomRead,
    summary="Change BOM status",
    description="Activating needs approve_bom and obsoletes the item's other ACTIVE BOM.",
)
async def update_bom_status(
    payload: BomStatusUpdate,
    bom_id: UUID = Path(...),
    ctx: UserContext = Depends(require_permission(PermissionCode.EDIT_BOM)),
    session: AsyncSession = Depends(get_tenant_session),
) -> BomRead:
    return BomRead.model_validate(await BomService(session).update_status(ctx, bom_id, payload.status))


# PUBLIC_INTERFACE
@router.get(
    "/production-orders",
    response_model=List[ProductionOrderRead],
    summary="List production orders",
    dependencies=_view_production,
)
async def list_production_orders(
    session: AsyncSession = Depends(get_tenant_session),
    status_filter: Optional[str] = Query(None, alias="status"),
    site_id: Optional[UUID] = Query(None),
    item_id: Optional[UUID] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[ProductionOrderRead]:
    orders = await ProductionOrderService(session).list_orders(
        status=status_filter, site_id=site_id, item_id=item_id, limit=limit, offset=offset
    )
    return [ProductionOrderRead.model_validate(o) for o in orders]


# PUBLIC_INTERFACE
@router.post(
    "/production-orders",
    response_model=ProductionOrderRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create production order",
    description="Create a PLANNED order from an ACTIVE BOM.",
)
async def create_production_order(
    payload: ProductionOrderCreate,
    ctx: UserContext = Depends(require_permission(PermissionCode.CREATE_PRODUCTION_ORDER)),
    session: AsyncSession = Depends(get_tenant_session),
) -> ProductionOrderRead:
    order = await ProductionOrderService(session).create_order(ctx, **payload.model_dump())
    return ProductionOrderRead.model_validate(order)


# PUBLIC_INTERFACE
@router.get(
    "/production-orders/{order_id}",
    response_model=ProductionOrderRead,
    summary="Get production order",
    dependencies=_view_production,
)
async def get_production_order(
    order_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> ProductionOrderRead:
    return ProductionOrderRead.model_validate(await ProductionOrderService(session).get_order(order_id))


# PUBLIC_INTERFACE
@router.patch(
    "/production-orders/{order_id}",
    response_model=ProductionOrderRead,
    summary="Update production order",
    description="Edit an open order and/or move it through PLANNED, RELEASED, IN_PROGRESS, COMPLETED and CLOSED.",
)
async def update_production_order(
    payload: ProductionOrderUpdate,
    order_id: UUID = Path(...),
    ctx: UserContext = Depends(require_permission(PermissionCode.EDIT_PRODUCTION_ORDER)),
    session: AsyncSession = Depends(get_tenant_session),
) -> ProductionOrderRead:
    order = await ProductionOrderService(session).update_order(ctx, order_id, payload.model_dump(exclude_unset=True))
    return ProductionOrderRead.model_validate(order)


# PUBLIC_INTERFACE
@router.delete(
    "/production-orders/{order_id}",
    response_model=MessageResponse,
    summary="Delete production order",
    description="Only PLANNED orders without recorded output.",
)
async def delete_production_order(
    order_id: UUID = Path(...),
    ctx: UserContext = Depends(require_roles(RoleName.ADMIN, RoleName.SUPERVISOR)),
    session: AsyncSession = Depends(get_tenant_session),
) -> MessageResponse:
    await ProductionOrderService(session).delete_order(ctx, order_id)
    return MessageResponse(message="Production order deleted")


# PUBLIC_INTERFACE
@router.get(
    "/production-orders/{order_id}/requirements",
    response_model=List[MaterialRequirement],
    summary="Material requirements",
    description="Component quantities needed for the ordered quantity, including scrap.",
    dependencies=_view_production,
)
async def production_order_requirements(
    order_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> List[MaterialRequirement]:
    rows = await ProductionOrderService(session).requirements(order_id)
    return [MaterialRequirement(**r) for r in rows]


# PUBLIC_INTERFACE
@router.post(
    "/production-orders/{order_id}/outputs",
    response_model=ProductionOutputRead,
    status_code=status.HTTP_201_CREATED,
    summary="Record production output",
)
async def record_production_output(
    payload: ProductionOutputCreate,
    order_id: UUID = Path(...),
    ctx: UserContext = Depends(
        require_permission(PermissionCode.COMPLETE_PRODUCTION_JOB, PermissionCode.EDIT_PRODUCTION_ORDER)
    ),
    session: AsyncSession = Depends(get_tenant_session),
) -> ProductionOutputRead:
    output = await ProductionOrderService(session).record_output(ctx, order_id, **payload.model_dump())
    return ProductionOutputRead.model_validate(output)


# PUBLIC_INTERFACE
@router.get(
    "/production-orders/{order_id}/outputs",
    response_model=List[ProductionOutputRead],
    summary="List production outputs",
    dependencies=_view_production,
)
async def list_production_outputs(
    order_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> List[ProductionOutputRead]:
    outputs = await ProductionOrderService(session).list_outputs(order_id)
    return [ProductionOutputRead.model_validate(o) for o in outputs]


# PUBLIC_INTERFACE
@router.post(
    "/production-orders/{order_id}/issues",
    response_model=ProductionConsumptionRead,
    status_code=status.HTTP_201_CREATED,
    summary="Issue material",
    description="Issue a BOM component from a stock location to the order (ISSUE_TO_WORKCELL).",
)
async def issue_production_material(
    payload: MaterialIssueCreate,
    order_id: UUID = Path(...),
    ctx: UserContext = Depends(
        require_permission(PermissionCode.COMPLETE_PRODUCTION_JOB, PermissionCode.EDIT_PRODUCTION_ORDER)
    ),
    session: AsyncSession = Depends(get_tenant_session),
) -> ProductionConsumptionRead:
    consumption = await ProductionOrderService(session).issue_material(ctx, order_id, **payload.model_dump())
    return ProductionConsumptionRead.model_validate(consumption)


# PUBLIC_INTERFACE
@router.get(
    "/production-orders/{order_id}/consumptions",
    response_model=List[ProductionConsumptionRead],
    summary="List material consumption",
    dependencies=_view_production,
)
async def list_production_consumptions(
    order_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> List[ProductionConsumptionRead]:
    rows = await ProductionOrderService(session).list_consumptions(order_id)
    return [ProductionConsumptionRead.model_validate(c) for c in rows]


# PUBLIC_INTERFACE
@router.get(
    "/production-orders/{order_id}/yield",
    response_model=ProductionYield,
    summary="Yield analysis",
    description="Planned vs actual component usage for the quantity completed, with efficiency and quality rate.",
    dependencies=_view_production,
)
async def production_order_yield(
    order_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> ProductionYield:
    return ProductionYield(**await ProductionOrderService(session).yield_report(order_id))
