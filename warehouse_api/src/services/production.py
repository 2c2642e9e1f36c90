from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.context import UserContext
from src.core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from src.core.permissions import PermissionCode
from src.db.models.production import Bom, BomComponent, ProductionConsumption, ProductionOrder, ProductionOutput
from src.repositories.production import BomRepository, ProductionOrderRepository
from src.services.audit import AuditService
from src.services.base import BaseService, utcnow
from src.services.inventory import InventoryEventInput, InventoryService
from src.services.realtime import notify_dashboard
from src.services.workflow import BOM_FLOW, PRODUCTION_ORDER_FLOW

logger = logging.getLogger(__name__)

ISSUE_METHODS = ("MANUAL", "BACKFLUSH", "PREISSUE")
LOCKED_ORDER_STATUSES = ("COMPLETED", "CLOSED", "CANCELLED")
OUTPUT_ALLOWED_STATUSES = ("RELEASED", "IN_PROGRESS")

_ORDER_FIELDS = ("priority", "qty_ordered", "scheduled_start", "scheduled_end", "notes")


# PUBLIC_INTERFACE
def material_requirements(order, bom) -> List[dict]:
    """
    Component quantities needed for a production order.

    required = qty_ordered / base_qty * qty_per * (1 + scrap_factor / 100)
    """
    base_qty = float(bom.base_qty or 1) or 1.0
    rows = []
    for comp in bom.components:
        required = float(order.qty_ordered) / base_qty * float(comp.qty_per) * (1 + float(comp.scrap_factor or 0) / 100)
        rows.append(
            {
                "component_id": comp.id,
                "item_id": comp.item_id,
                "sequence": comp.sequence,
                "qty_per": float(comp.qty_per),
                "scrap_factor": float(comp.scrap_factor or 0),
                "uom": comp.uom,
                "issue_method": comp.issue_method,
                "is_optional": bool(comp.is_optional),
                "required_qty": round(required, 6),
            }
        )
    return rows


# PUBLIC_INTERFACE
def yield_analysis(order, bom, consumptions) -> dict:
    """
    Planned vs actual component usage for the quantity completed so far.

    planned = qty_completed / base_qty * qty_per; a positive variance means
    the order consumed more than the BOM calls for.
    """
    base_qty = float(bom.base_qty or 1) or 1.0
    completed = float(order.qty_completed or 0)
    rejected = float(order.qty_rejected or 0)
    components = []
    for comp in bom.components:
        planned = completed / base_qty * float(comp.qty_per)
        actual = sum(float(c.qty_consumed) for c in consumptions if c.item_id == comp.item_id)
        variance = actual - planned
        components.append(
            {
                "item_id": comp.item_id,
                "uom": comp.uom,
                "planned_qty": round(planned, 6),
                "actual_qty": round(actual, 6),
                "variance": round(variance, 6),
                "variance_percent": round(variance / planned * 100, 2) if planned > 0 else 0.0,
            }
        )
    ordered = float(order.qty_ordered or 0)
    reported = completed + rejected
    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "qty_ordered": ordered,
        "qty_completed": completed,
        "qty_rejected": rejected,
        "production_efficiency": round(completed / ordered * 100, 2) if ordered > 0 else 0.0,
        "quality_rate": round(completed / reported * 100, 2) if reported > 0 else 0.0,
        "components": components,
        "components_over_consumed": sum(1 for c in components if c["variance"] > 1e-9),
        "components_under_consumed": sum(1 for c in components if c["variance"] < -1e-9),
    }


# PUBLIC_INTERFACE
def validate_components(item_id: UUID, components: List[Dict[str, Any]]) -> None:
    """BOM components: at least one, positive qty_per, scrap 0-100, known issue method, not the BOM item."""
    if not components:
        raise ValidationError("BOM must have at least one component")
    for comp in components:
        if comp["item_id"] == item_id:
            raise ValidationError("BOM item cannot be its own component")
        if float(comp.get("qty_per") or 0) <= 0:
            raise ValidationError("Component qty_per must be greater than 0")
        scrap = float(comp.get("scrap_factor") or 0)
        if scrap < 0 or scrap > 100:
            raise ValidationError("Component scrap_factor must be between 0 and 100")
        if comp.get("issue_method", "BACKFLUSH") not in ISSUE_METHODS:
            raise ValidationError(f"Invalid issue method: {comp.get('issue_method')}")


class BomService(BaseService):
    """Bills of materials."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = BomRepository(session)
        self.audit = AuditService(session)

    # PUBLIC_INTERFACE
    async def create_bom(
        self,
        ctx: UserContext,
        *,
        item_id: UUID,
        bom_number: str,
        version: int,
        base_qty: float,
        base_uom: str,
        components: List[Dict[str, Any]],
        effective_from=None,
        effective_to=None,
        notes: Optional[str] = None,
    ) -> Bom:
        validate_components(item_id, components)
        if await self.repo.get_bom_version(item_id, version):
            raise ConflictError(f"BOM version {version} already exists for this item")

        bom = Bom(
            item_id=item_id,
            bom_number=bom_number,
            version=version,
            status="DRAFT",
            base_qty=base_qty,
            base_uom=base_uom,
            effective_from=effective_from,
            effective_to=effective_to,
            notes=notes,
            created_by_user_id=ctx.user_id,
            components=[],
        )
        for idx, comp in enumerate(components, start=1):
            bom.components.append(
                BomComponent(
                    item_id=comp["item_id"],
                    sequence=comp.get("sequence") or idx,
                    qty_per=float(comp["qty_per"]),
                    uom=comp["uom"],
                    scrap_factor=float(comp.get("scrap_factor") or 0),
                    is_optional=bool(comp.get("is_optional", False)),
                    issue_method=comp.get("issue_method") or "BACKFLUSH",
                    notes=comp.get("notes"),
                )
            )
        await self.repo.add(bom)
        await self.repo.flush()
        await self.audit.record(ctx, "create", "bom", bom.id, {"bom_number": bom_number, "version": version})
        await self.repo.commit()
        return bom

    async def get_bom(self, bom_id: UUID) -> Bom:
        bom = await self.repo.get_bom(bom_id)
        if not bom:
            raise NotFoundError("BOM")
        return bom

    async def list_boms(self, **filters) -> List[Bom]:
        return await self.repo.list_boms(**filters)

    # PUBLIC_INTERFACE
    async def update_status(self, ctx: UserContext, bom_id: UUID, status: str) -> Bom:
        """Change BOM status; activating obsoletes the item's other ACTIVE BOMs."""
        bom = await self.get_bom(bom_id)
        if not ctx.can(PermissionCode.EDIT_BOM):
            raise AuthorizationError("Insufficient permissions")
        if status == "ACTIVE" and not ctx.can(PermissionCode.APPROVE_BOM):
            raise AuthorizationError("Approving a BOM requires approve_bom")
        BOM_FLOW.validate(bom.status, status)

        if status == "ACTIVE":
            for other in await self.repo.list_active_boms_for_item(bom.item_id):
                if other.id != bom.id:
                    other.status = "OBSOLETE"
                    logger.info("BOM %s v%s obsoleted by activation of %s", other.bom_number, other.version, bom.id)
        previous = bom.status
        bom.status = status
        await self.audit.record(ctx, "status_change", "bom", bom.id, {"from": previous, "to": status})
        await self.repo.commit()
        return bom


class ProductionOrderService(BaseService):
    """Production order lifecycle and output reporting."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = ProductionOrderRepository(session)
        self.bom_repo = BomRepository(session)
        self.inventory = InventoryService(session)
        self.audit = AuditService(session)

    async def _get(self, order_id: UUID) -> ProductionOrder:
        order = await self.repo.get_order(order_id)
        if not order:
            raise NotFoundError("Production order")
        return order

    async def get_order(self, order_id: UUID) -> ProductionOrder:
        return await self._get(order_id)

    async def list_orders(self, **filters) -> List[ProductionOrder]:
        return await self.repo.list_orders(**filters)

    # PUBLIC_INTERFACE
    async def create_order(
        self,
        ctx: UserContext,
        *,
        site_id: UUID,
        order_number: str,
        bom_id: UUID,
        qty_ordered: float,
        uom: str,
        priority: int = 5,
        scheduled_start=None,
        scheduled_end=None,
        notes: Optional[str] = None,
    ) -> ProductionOrder:
        """Create a PLANNED order from an ACTIVE BOM."""
        ctx.ensure_site(site_id)
        bom = await self.bom_repo.get_bom(bom_id)
        if not bom:
            raise NotFoundError("BOM")
        if bom.status != "ACTIVE":
            raise ValidationError("Can only create production orders from ACTIVE BOMs")
        if await self.repo.get_order_by_number(order_number):
            raise ValidationError("Order number already exists")
        if priority < 1 or priority > 10:
            raise ValidationError("Priority must be between 1 and 10")
        if qty_ordered <= 0:
            raise ValidationError("qty_ordered must be greater than 0")

        order = ProductionOrder(
            site_id=site_id,
            order_number=order_number,
            bom_id=bom.id,
            item_id=bom.item_id,
            status="PLANNED",
            priority=priority,
            qty_ordered=qty_ordered,
            qty_completed=0.0,
            qty_rejected=0.0,
            uom=uom,
            scheduled_start=scheduled_start,
            scheduled_end=scheduled_end,
            notes=notes,
            created_by_user_id=ctx.user_id,
        )
        await self.repo.add(order)
        await self.repo.flush()
        await self.audit.record(ctx, "create", "production_order", order.id, {"order_number": order_number})
        await self.repo.commit()
        logger.info("Production order created: %s qty=%s", order_number, qty_ordered)
        return order

    # PUBLIC_INTERFACE
    async def update_order(self, ctx: UserContext, order_id: UUID, changes: Dict[str, Any]) -> ProductionOrder:
        """Edit an open order and/or move it through the status table."""
        order = await self._get(order_id)
        ctx.ensure_site(order.site_id)
        if order.status in LOCKED_ORDER_STATUSES:
            raise ValidationError(f"Cannot edit {order.status} production orders")

        priority = changes.get("priority")
        if priority is not None and (priority < 1 or priority > 10):
            raise ValidationError("Priority must be between 1 and 10")

        new_status = changes.get("status")
        if new_status and new_status != order.status:
            PRODUCTION_ORDER_FLOW.validate(order.status, new_status)
            now = utcnow()
            if new_status == "RELEASED" and order.status == "PLANNED":
                order.released_by_user_id = ctx.user_id
                order.released_at = now
            elif new_status == "IN_PROGRESS":
                if order.actual_start is None:
                    order.actual_start = now
            elif new_status == "COMPLETED":
                if order.actual_start is None:
                    order.actual_start = order.scheduled_start or now
                order.actual_end = now
            logger.info("Production order %s status %s -> %s", order.order_number, order.status, new_status)
            order.status = new_status

        for field in _ORDER_FIELDS:
            if field in changes and changes[field] is not None:
                setattr(order, field, changes[field])

        await self.audit.record(ctx, "update", "production_order", order.id, {k: v for k, v in changes.items() if v is not None})
        await self.repo.commit()
        return order

    # PUBLIC_INTERFACE
    async def delete_order(self, ctx: UserContext, order_id: UUID) -> None:
        """Delete a PLANNED order that has no recorded output."""
        order = await self._get(order_id)
        ctx.ensure_site(order.site_id)
        if order.status != "PLANNED":
            raise ValidationError("Only PLANNED production orders can be deleted")
        if await self.repo.count_outputs(order.id):
            raise ValidationError("Cannot delete a production order with recorded output")
        await self.audit.record(ctx, "delete", "production_order", order.id, {"order_number": order.order_number})
        await self.repo.delete(order)
        await self.repo.commit()

    async def _consume(
        self,
        ctx: UserContext,
        order: ProductionOrder,
        *,
        item_id: UUID,
        qty: float,
        uom: str,
        from_location_id: UUID,
        component_id: Optional[UUID] = None,
        backflushed: bool = False,
        notes: Optional[str] = None,
    ) -> ProductionConsumption:
        """Issue component stock to the workcell and record it against the order."""
        qty_base, _ = await self.inventory.convert_quantity(item_id, qty, uom)
        await self.inventory.apply_event(
            ctx,
            InventoryEventInput(
                tenant_id=ctx.tenant_id,
                site_id=order.site_id,
                event_type="ISSUE_TO_WORKCELL",
                item_id=item_id,
                qty_entered=qty,
                uom_entered=uom,
                qty_base=qty_base,
                from_location_id=from_location_id,
                reference_id=str(order.id),
                notes=notes or f"{'Backflush' if backflushed else 'Material issue'}: {order.order_number}",
            ),
            commit=False,
        )
        consumption = ProductionConsumption(
            production_order_id=order.id,
            bom_component_id=component_id,
            item_id=item_id,
            qty_consumed=qty,
            uom=uom,
            qty_base=qty_base,
            from_location_id=from_location_id,
            is_backflushed=backflushed,
            notes=notes,
            created_by_user_id=ctx.user_id,
        )
        await self.repo.add(consumption)
        return consumption

    # PUBLIC_INTERFACE
    async def record_output(
        self,
        ctx: UserContext,
        order_id: UUID,
        *,
        qty_completed: float,
        qty_rejected: float = 0.0,
        uom: Optional[str] = None,
        to_location_id: Optional[UUID] = None,
        from_location_id: Optional[UUID] = None,
        notes: Optional[str] = None,
    ) -> ProductionOutput:
        """
        Report good and rejected quantity.

        The order starts (RELEASED -> IN_PROGRESS) on the first output and
        completes when the reported total reaches qty_ordered. Good quantity
        posted to a location is received into inventory, and BACKFLUSH
        components of the BOM are issued from from_location_id for it.
        """
        order = await self._get(order_id)
        ctx.ensure_site(order.site_id)
        if order.status not in OUTPUT_ALLOWED_STATUSES:
            raise ValidationError("Output can only be recorded for RELEASED or IN_PROGRESS orders")
        if qty_completed < 0 or qty_rejected < 0:
            raise ValidationError("Quantities cannot be negative")
        if qty_completed + qty_rejected <= 0:
            raise ValidationError("Output quantity must be greater than 0")

        reported = float(order.qty_completed) + float(order.qty_rejected) + qty_completed + qty_rejected
        if reported > float(order.qty_ordered) + 1e-9:
            raise ValidationError("Output exceeds ordered quantity")

        backflush: List[BomComponent] = []
        base_qty = 1.0
        if qty_completed > 0:
            bom = await self.bom_repo.get_bom(order.bom_id)
            if bom is not None:
                backflush = [comp for comp in bom.components if comp.issue_method == "BACKFLUSH"]
                base_qty = float(bom.base_qty or 1) or 1.0
        if backflush and not from_location_id:
            raise ValidationError("from_location_id is required to backflush components")

        uom = uom or order.uom
        qty_base, _ = await self.inventory.convert_quantity(order.item_id, qty_completed, uom)

        output = ProductionOutput(
            production_order_id=order.id,
            item_id=order.item_id,
            qty_completed=qty_completed,
            qty_rejected=qty_rejected,
            uom=uom,
            qty_base=qty_base,
            to_location_id=to_location_id,
            notes=notes,
            recorded_by_user_id=ctx.user_id,
        )
        await self.repo.add(output)

        now = utcnow()
        order.qty_completed = float(order.qty_completed) + qty_completed
        order.qty_rejected = float(order.qty_rejected) + qty_rejected
        if order.status == "RELEASED":
            order.status = "IN_PROGRESS"
            order.actual_start = order.actual_start or now
        if reported >= float(order.qty_ordered) - 1e-9:
            order.status = "COMPLETED"
            order.actual_end = now

        for comp in backflush:
            consumed = qty_completed / base_qty * float(comp.qty_per) * (1 + float(comp.scrap_factor or 0) / 100)
            await self._consume(
                ctx,
                order,
                item_id=comp.item_id,
                qty=round(consumed, 6),
                uom=comp.uom,
                from_location_id=from_location_id,
                component_id=comp.id,
                backflushed=True,
            )

        if to_location_id and qty_completed > 0:
            await self.inventory.apply_event(
                ctx,
                InventoryEventInput(
                    tenant_id=ctx.tenant_id,
                    site_id=order.site_id,
                    event_type="RECEIVE",
                    item_id=order.item_id,
                    qty_entered=qty_completed,
                    uom_entered=uom,
                    qty_base=qty_base,
                    to_location_id=to_location_id,
                    reference_id=str(order.id),
                    notes=f"Production output: {order.order_number}",
                ),
                commit=False,
            )

        await self.repo.flush()
        await self.audit.record(
            ctx, "output", "production_order", order.id,
            {"qty_completed": qty_completed, "qty_rejected": qty_rejected, "backflushed": len(backflush)},
        )
        await self.repo.commit()
        logger.info(
            "Production output recorded: order=%s good=%s rejected=%s backflushed=%s status=%s",
            order.order_number, qty_completed, qty_rejected, len(backflush), order.status,
        )
        await notify_dashboard(
            ctx.tenant_id,
            "production.output",
            {"order_id": str(order.id), "status": order.status, "qty_completed": float(order.qty_completed)},
            ctx.user_id,
        )
        return output

    # PUBLIC_INTERFACE
    async def issue_material(
        self,
        ctx: UserContext,
        order_id: UUID,
        *,
        item_id: UUID,
        qty: float,
        from_location_id: UUID,
        uom: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> ProductionConsumption:
        """Manually issue a BOM component to a RELEASED or IN_PROGRESS order."""
        order = await self._get(order_id)
        ctx.ensure_site(order.site_id)
        if order.status not in OUTPUT_ALLOWED_STATUSES:
            raise ValidationError("Material can only be issued to RELEASED or IN_PROGRESS orders")
        if qty <= 0:
            raise ValidationError("Quantity must be greater than 0")
        bom = await self.bom_repo.get_bom(order.bom_id)
        if not bom:
            raise NotFoundError("BOM")
        component = next((comp for comp in bom.components if comp.item_id == item_id), None)
        if component is None:
            raise ValidationError("Item is not a component of the order's BOM", details={"item_id": str(item_id)})

        consumption = await self._consume(
            ctx,
            order,
            item_id=item_id,
            qty=qty,
            uom=uom or component.uom,
            from_location_id=from_location_id,
            component_id=component.id,
            notes=notes,
        )
        await self.repo.flush()
        await self.audit.record(
            ctx, "material_issue", "production_order", order.id,
            {"item_id": str(item_id), "qty": qty, "uom": consumption.uom},
        )
        await self.repo.commit()
        logger.info("Material issued: order=%s item=%s qty=%s", order.order_number, item_id, qty)
        return consumption

    async def list_outputs(self, order_id: UUID) -> List[ProductionOutput]:
        await self._get(order_id)
        return await self.repo.list_outputs(order_id)

    async def list_consumptions(self, order_id: UUID) -> List[ProductionConsumption]:
        await self._get(order_id)
        return await self.repo.list_consumptions(order_id)

    # PUBLIC_INTERFACE
    async def requirements(self, order_id: UUID) -> List[dict]:
        """Material requirements of an order from its BOM."""
        order = await self._get(order_id)
        bom = await self.bom_repo.get_bom(order.bom_id)
        if not bom:
            raise NotFoundError("BOM")
        return material_requirements(order, bom)

    async def yield_report(self, order_id: UUID) -> dict:
        order = await self._get(order_id)
        bom = await self.bom_repo.get_bom(order.bom_id)
        if not bom:
            raise NotFoundError("BOM")
        return yield_analysis(order, bom, await self.repo.list_consumptions(order.id))
