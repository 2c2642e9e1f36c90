"""
Sales order processing: order entry, allocation, FIFO picking, shipping and delivery.

Allocation and picking work in the item's base unit; sales order lines keep
their entered unit and are converted with the item's UoM conversions.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.context import UserContext
from src.core.errors import ConflictError, NotFoundError, ValidationError
from src.db.models.sales import Customer, PickTask, PickTaskLine, SalesOrder, SalesOrderLine, Shipment
from src.repositories.inventory import InventoryRepository
from src.repositories.master_data import ItemRepository
from src.repositories.sales import CustomerRepository, SalesOrderRepository
from src.services.audit import AuditService
from src.services.base import BaseService, format_document_number, utcnow
from src.services.inventory import InventoryEventInput, InventoryService, conversion_factor
from src.services.realtime import notify_dashboard
from src.services.workflow import SALES_ORDER_FLOW

logger = logging.getLogger(__name__)

LINE_STATUSES = ("OPEN", "ALLOCATED", "PICKING", "PICKED", "SHIPPED", "CANCELLED")
ALLOCATABLE_LOCATION_TYPES = ("STOCK", "SHIPPING")
PICK_LOCATION_TYPE = "STOCK"
ACTIVE_PICK_STATUSES = ("PENDING", "IN_PROGRESS")

_EDITABLE_FIELDS = (
    "customer_po",
    "requested_date",
    "promised_date",
    "ship_to_name",
    "ship_to_address1",
    "ship_to_city",
    "ship_to_state",
    "ship_to_zip",
    "ship_to_country",
    "notes",
)


# PUBLIC_INTERFACE
def compute_line_total(qty: float, unit_price: float, discount: float = 0.0, tax_rate: float = 0.0) -> Tuple[float, float, float]:
    """Return (net, tax, line_total) where net = qty*price - discount."""
    net = float(qty) * float(unit_price) - float(discount or 0)
    tax = net * float(tax_rate or 0) / 100
    return round(net, 4), round(tax, 4), round(net + tax, 4)


# PUBLIC_INTERFACE
def compute_totals(lines: Iterable[Dict[str, Any]], shipping_amount: float = 0.0, discount_amount: float = 0.0) -> dict:
    """Order subtotal, tax and total from line dicts (qty_ordered, unit_price, discount, tax_rate)."""
    subtotal = 0.0
    tax = 0.0
    for line in lines:
        net, line_tax, _ = compute_line_total(
            line["qty_ordered"], line.get("unit_price") or 0, line.get("discount") or 0, line.get("tax_rate") or 0
        )
        subtotal += net
        tax += line_tax
    total = subtotal + tax + float(shipping_amount or 0) - float(discount_amount or 0)
    return {"subtotal": round(subtotal, 4), "tax_amount": round(tax, 4), "total": round(total, 4)}


# PUBLIC_INTERFACE
def allocate_lines(
    lines: Sequence,
    available: Dict[UUID, float],
    factors: Optional[Dict[UUID, float]] = None,
) -> List[dict]:
    """
    Allocate available base quantity to order lines in line order.

    `available` maps item_id to base quantity and is drawn down as lines of the
    same item consume it. `factors` maps line id to the line-unit-to-base
    factor (1 when missing). Line quantities are updated in place.
    """
    factors = factors or {}
    pool = dict(available)
    results = []
    for line in lines:
        if line.status == "CANCELLED":
            continue
        factor = factors.get(line.id, 1.0)
        ordered = float(line.qty_ordered)
        allocated = float(line.qty_allocated or 0)
        needed_base = max(ordered - allocated, 0.0) * factor
        on_hand = pool.get(line.item_id, 0.0)
        take = min(needed_base, max(on_hand, 0.0))
        pool[line.item_id] = on_hand - take

        line.qty_allocated = allocated + take / factor
        fully = float(line.qty_allocated) >= ordered - 1e-9
        line.status = "ALLOCATED" if fully else "OPEN"
        results.append(
            {
                "line_id": line.id,
                "item_id": line.item_id,
                "qty_ordered": ordered,
                "qty_allocated": float(line.qty_allocated),
                "available": on_hand / factor,
                "shortfall": max(ordered - float(line.qty_allocated), 0.0),
            }
        )
    return results


# PUBLIC_INTERFACE
def plan_fifo_picks(
    lines: Sequence,
    balances: Sequence,
    factors: Optional[Dict[UUID, float]] = None,
    reserved: Optional[Dict[Tuple[UUID, UUID], float]] = None,
) -> List[dict]:
    """
    Split each line's allocated-but-unpicked quantity across stock balances.

    `balances` must already be ordered oldest first (updated_at ascending); a
    balance consumed by one line is not offered again to the next. `reserved`
    maps (item_id, location_id) to base quantity already picked there but not
    yet shipped, which is not offered either.
    """
    factors = factors or {}
    reserved = reserved or {}
    remaining = {id(b): float(b.qty_base) - reserved.get((b.item_id, b.location_id), 0.0) for b in balances}
    plan = []
    for line in lines:
        factor = factors.get(line.id, 1.0)
        needed = (float(line.qty_allocated or 0) - float(line.qty_picked or 0)) * factor
        if needed <= 0:
            continue
        for balance in balances:
            if balance.item_id != line.item_id:
                continue
            left = remaining[id(balance)]
            if left <= 0:
                continue
            take = min(needed, left)
            remaining[id(balance)] = left - take
            needed -= take
            plan.append(
                {
                    "sales_order_line_id": line.id,
                    "item_id": line.item_id,
                    "location_id": balance.location_id,
                    "qty_to_pick": take,
                }
            )
            if needed <= 1e-9:
                break
    return plan


class CustomerService(BaseService):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = CustomerRepository(session)
        self.audit = AuditService(session)

    async def create_customer(self, ctx: UserContext, data: Dict[str, Any]) -> Customer:
        if await self.repo.get_customer_by_code(data["code"]):
            raise ConflictError("Customer code already exists")
        customer = Customer(
            code=data["code"],
            name=data["name"],
            email=data.get("email"),
            phone=data.get("phone"),
            billing_address=data.get("billing_address"),
            shipping_address1=data.get("shipping_address1"),
            shipping_city=data.get("shipping_city"),
            shipping_state=data.get("shipping_state"),
            shipping_zip=data.get("shipping_zip"),
            shipping_country=data.get("shipping_country"),
            payment_terms=data.get("payment_terms"),
            credit_limit=data.get("credit_limit"),
            tax_exempt=bool(data.get("tax_exempt", False)),
            is_active=bool(data.get("is_active", True)),
        )
        await self.repo.add(customer)
        await self.repo.flush()
        await self.audit.record(ctx, "create", "customer", customer.id, {"code": customer.code})
        await self.repo.commit()
        return customer

    async def get_customer(self, customer_id: UUID) -> Customer:
        customer = await self.repo.get_customer(customer_id)
        if not customer:
            raise NotFoundError("Customer")
        return customer

    async def list_customers(self, **filters) -> List[Customer]:
        return await self.repo.list_customers(**filters)


class SalesOrderService(BaseService):
    """Order-to-delivery workflow."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = SalesOrderRepository(session)
        self.customer_repo = CustomerRepository(session)
        self.item_repo = ItemRepository(session)
        self.inventory_repo = InventoryRepository(session)
        self.inventory = InventoryService(session)
        self.audit = AuditService(session)

    async def _get(self, order_id: UUID) -> SalesOrder:
        order = await self.repo.get_order(order_id)
        if not order:
            raise NotFoundError("Sales order")
        return order

    async def _load(self, ctx: UserContext, order_id: UUID) -> SalesOrder:
        order = await self._get(order_id)
        ctx.ensure_site(order.site_id)
        return order

    async def _line_factors(self, lines: Sequence[SalesOrderLine]) -> Dict[UUID, float]:
        items = {item.id: item for item in await self.item_repo.get_items(list({line.item_id for line in lines}))}
        factors = {}
        for line in lines:
            item = items.get(line.item_id)
            factors[line.id] = conversion_factor(item, line.uom) if item else 1.0
        return factors

    def _build_lines(self, order: SalesOrder, lines: List[Dict[str, Any]]) -> None:
        for idx, data in enumerate(lines, start=1):
            qty = float(data["qty_ordered"])
            tax_rate = float(data.get("tax_rate") or 0)
            if qty <= 0:
                raise ValidationError("qty_ordered must be greater than 0")
            if tax_rate < 0 or tax_rate > 100:
                raise ValidationError("tax_rate must be between 0 and 100")
            _, _, line_total = compute_line_total(qty, data.get("unit_price") or 0, data.get("discount") or 0, tax_rate)
            order.lines.append(
                SalesOrderLine(
                    line_number=idx,
                    item_id=data["item_id"],
                    description=data.get("description"),
                    qty_ordered=qty,
                    qty_allocated=0.0,
                    qty_picked=0.0,
                    qty_shipped=0.0,
                    uom=data["uom"],
                    unit_price=float(data.get("unit_price") or 0),
                    discount=float(data.get("discount") or 0),
                    tax_rate=tax_rate,
                    line_total=line_total,
                    status="OPEN",
                )
            )
        totals = compute_totals(lines, order.shipping_amount, order.discount_amount)
        order.subtotal = totals["subtotal"]
        order.tax_amount = totals["tax_amount"]
        order.total = totals["total"]

    async def _check_items(self, lines: List[Dict[str, Any]]) -> None:
        wanted = {data["item_id"] for data in lines}
        found = await self.item_repo.get_items(list(wanted))
        if len(found) != len(wanted):
            raise ValidationError("One or more items not found")

    async def get_order(self, order_id: UUID) -> SalesOrder:
        return await self._get(order_id)

    async def list_orders(self, **filters) -> List[SalesOrder]:
        return await self.repo.list_orders(**filters)

    # PUBLIC_INTERFACE
    async def create_order(
        self,
        ctx: UserContext,
        *,
        site_id: UUID,
        customer_id: UUID,
        order_number: str,
        lines: List[Dict[str, Any]],
        order_date: Optional[date] = None,
        shipping_amount: float = 0.0,
        discount_amount: float = 0.0,
        **header: Any,
    ) -> SalesOrder:
        """Create a DRAFT order; ship-to fields default to the customer's shipping address."""
        ctx.ensure_site(site_id)
        if not lines:
            raise ValidationError("Sales order must have at least one line")
        if await self.repo.get_order_by_number(order_number):
            raise ValidationError("Order number already exists")
        customer = await self.customer_repo.get_customer(customer_id)
        if not customer or not customer.is_active:
            raise ValidationError("Customer not found or inactive")
        await self._check_items(lines)

        order = SalesOrder(
            site_id=site_id,
            customer_id=customer.id,
            order_number=order_number,
            customer_po=header.get("customer_po"),
            status="DRAFT",
            order_date=order_date or date.today(),
            requested_date=header.get("requested_date"),
            promised_date=header.get("promised_date"),
            ship_to_name=header.get("ship_to_name") or customer.name,
            ship_to_address1=header.get("ship_to_address1") or customer.shipping_address1,
            ship_to_city=header.get("ship_to_city") or customer.shipping_city,
            ship_to_state=header.get("ship_to_state") or customer.shipping_state,
            ship_to_zip=header.get("ship_to_zip") or customer.shipping_zip,
            ship_to_country=header.get("ship_to_country") or customer.shipping_country,
            shipping_amount=float(shipping_amount or 0),
            discount_amount=float(discount_amount or 0),
            notes=header.get("notes"),
            created_by_user_id=ctx.user_id,
            lines=[],
        )
        self._build_lines(order, lines)
        await self.repo.add(order)
        await self.repo.flush()
        await self.audit.record(ctx, "create", "sales_order", order.id, {"order_number": order_number, "total": order.total})
        await self.repo.commit()
        logger.info("Sales order created: %s total=%s", order_number, order.total)
        return order

    # PUBLIC_INTERFACE
    async def update_order(self, ctx: UserContext, order_id: UUID, changes: Dict[str, Any]) -> SalesOrder:
        """Edit a DRAFT order; new lines replace the old ones and totals are recomputed."""
        order = await self._load(ctx, order_id)
        if order.status != "DRAFT":
            raise ValidationError("Can only edit draft orders")
        for field in _EDITABLE_FIELDS:
            if changes.get(field) is not None:
                setattr(order, field, changes[field])
        for field in ("shipping_amount", "discount_amount"):
            if changes.get(field) is not None:
                setattr(order, field, float(changes[field]))

        new_lines = changes.get("lines")
        if new_lines is not None:
            if not new_lines:
                raise ValidationError("Sales order must have at least one line")
            await self._check_items(new_lines)
            order.lines.clear()
            self._build_lines(order, new_lines)
        else:
            totals = compute_totals(
                [
                    {"qty_ordered": l.qty_ordered, "unit_price": l.unit_price, "discount": l.discount, "tax_rate": l.tax_rate}
                    for l in order.lines
                ],
                order.shipping_amount,
                order.discount_amount,
            )
            order.subtotal = totals["subtotal"]
            order.tax_amount = totals["tax_amount"]
            order.total = totals["total"]

        await self.audit.record(ctx, "update", "sales_order", order.id, {k: v for k, v in changes.items() if k != "lines"})
        await self.repo.commit()
        return order

    async def _transition(self, ctx: UserContext, order: SalesOrder, status: str, details: Optional[dict] = None) -> None:
        SALES_ORDER_FLOW.validate(order.status, status)
        previous = order.status
        order.status = status
        payload = {"from": previous, "to": status}
        payload.update(details or {})
        await self.audit.record(ctx, "status_change", "sales_order", order.id, payload)
        logger.info("Sales order %s status %s -> %s", order.order_number, previous, status)

    # PUBLIC_INTERFACE
    async def confirm_order(self, ctx: UserContext, order_id: UUID) -> SalesOrder:
        order = await self._load(ctx, order_id)
        await self._transition(ctx, order, "CONFIRMED")
        await self.repo.commit()
        return order

    # PUBLIC_INTERFACE
    async def cancel_order(self, ctx: UserContext, order_id: UUID, reason: Optional[str] = None) -> SalesOrder:
        """Cancel the order, its lines and any open pick tasks."""
        order = await self._load(ctx, order_id)
        await self._transition(ctx, order, "CANCELLED", {"reason": reason} if reason else None)
        for line in order.lines:
            line.status = "CANCELLED"
        for task in await self.repo.list_pick_tasks(order.id):
            if task.status in ACTIVE_PICK_STATUSES:
                task.status = "CANCELLED"
        await self.repo.commit()
        return order

    # PUBLIC_INTERFACE
    async def allocate(self, ctx: UserContext, order_id: UUID) -> dict:
        """Reserve available STOCK/SHIPPING quantity of the order's site for each line."""
        order = await self._load(ctx, order_id)
        if order.status != "CONFIRMED":
            raise ValidationError("Can only allocate confirmed orders")

        available = {}
        for item_id in {line.item_id for line in order.lines}:
            available[item_id] = await self.inventory_repo.available_qty(order.site_id, item_id, ALLOCATABLE_LOCATION_TYPES)
        results = allocate_lines(order.lines, available, await self._line_factors(order.lines))

        open_lines = [line for line in order.lines if line.status != "CANCELLED"]
        fully = bool(open_lines) and all(line.status == "ALLOCATED" for line in open_lines)
        if fully:
            await self._transition(ctx, order, "ALLOCATED")
        await self.audit.record(ctx, "allocate", "sales_order", order.id, {"fully_allocated": fully})
        await self.repo.commit()
        return {"order_id": order.id, "status": order.status, "fully_allocated": fully, "lines": results}

    # PUBLIC_INTERFACE
    async def create_pick_task(self, ctx: UserContext, order_id: UUID, assigned_to_user_id: Optional[UUID] = None) -> PickTask:
        """
        Generate a PICK-nnnnnn task from a FIFO plan over the site's STOCK balances.

        An order still PICKING after a short pick gets a follow-up task for the
        lines that are not PICKED yet; stock already picked for the order is
        left out of the plan.
        """
        order = await self._load(ctx, order_id)
        if order.status not in ("ALLOCATED", "PICKING"):
            raise ValidationError("Can only create pick tasks for allocated orders")
        existing = await self.repo.list_pick_tasks(order.id)
        if any(task.status in ACTIVE_PICK_STATUSES for task in existing):
            raise ValidationError("Order already has active pick tasks")

        reserved: Dict[Tuple[UUID, UUID], float] = {}
        for done in existing:
            if done.status != "COMPLETED":
                continue
            for pick_line in done.lines:
                key = (pick_line.item_id, pick_line.location_id)
                reserved[key] = reserved.get(key, 0.0) + float(pick_line.qty_picked or 0)

        balances = await self.inventory_repo.list_balances(
            site_id=order.site_id, location_type=PICK_LOCATION_TYPE, only_positive=True, limit=100000
        )
        factors = await self._line_factors(order.lines)
        lines = [line for line in order.lines if line.status not in ("CANCELLED", "PICKED")]
        plan = plan_fifo_picks(lines, balances, factors, reserved)
        if not plan:
            raise ValidationError("No items to pick")

        items = {item.id: item for item in await self.item_repo.get_items(list({p["item_id"] for p in plan}))}
        task = PickTask(
            site_id=order.site_id,
            sales_order_id=order.id,
            task_number=format_document_number("PICK", await self.repo.count_pick_tasks()),
            status="PENDING",
            priority="NORMAL",
            assigned_to_user_id=assigned_to_user_id,
            lines=[],
        )
        for step in plan:
            item = items.get(step["item_id"])
            task.lines.append(
                PickTaskLine(
                    sales_order_line_id=step["sales_order_line_id"],
                    item_id=step["item_id"],
                    location_id=step["location_id"],
                    qty_to_pick=step["qty_to_pick"],
                    qty_picked=0.0,
                    uom=item.base_uom if item else "EA",
                    status="PENDING",
                )
            )
        await self.repo.add(task)

        if order.status != "PICKING":
            await self._transition(ctx, order, "PICKING")
        for line in lines:
            line.status = "PICKING"
        await self.repo.flush()
        await self.audit.record(ctx, "create", "pick_task", task.id, {"task_number": task.task_number, "lines": len(plan)})
        await self.repo.commit()
        return task

    async def list_pick_tasks(self, order_id: UUID) -> List[PickTask]:
        await self._get(order_id)
        return await self.repo.list_pick_tasks(order_id)

    # PUBLIC_INTERFACE
    async def complete_pick_task(
        self, ctx: UserContext, task_id: UUID, picked: Optional[Dict[UUID, float]] = None
    ) -> PickTask:
        """
        Record picked quantities (default qty_to_pick) and close the task.

        The order moves to PACKED once every line has been picked.
        """
        task = await self.repo.get_pick_task(task_id)
        if not task:
            raise NotFoundError("Pick task")
        ctx.ensure_site(task.site_id)
        if task.status not in ACTIVE_PICK_STATUSES:
            raise ValidationError(f"Cannot complete a {task.status} pick task")
        order = await self._get(task.sales_order_id)
        picked = picked or {}
        factors = await self._line_factors(order.lines)
        order_lines = {line.id: line for line in order.lines}

        for pick_line in task.lines:
            qty = float(picked.get(pick_line.id, pick_line.qty_to_pick))
            if qty < 0:
                raise ValidationError("Picked quantity cannot be negative")
            pick_line.qty_picked = qty
            pick_line.status = "COMPLETED"
            so_line = order_lines.get(pick_line.sales_order_line_id)
            if so_line is None:
                continue
            so_line.qty_picked = float(so_line.qty_picked or 0) + qty / factors.get(so_line.id, 1.0)
            if float(so_line.qty_picked) >= float(so_line.qty_allocated) - 1e-9:
                so_line.status = "PICKED"

        task.status = "COMPLETED"
        task.completed_at = utcnow()
        open_lines = [line for line in order.lines if line.status != "CANCELLED"]
        if open_lines and all(line.status == "PICKED" for line in open_lines):
            await self._transition(ctx, order, "PACKED")
        await self.audit.record(ctx, "complete", "pick_task", task.id, {"order_status": order.status})
        await self.repo.commit()
        return task

    # PUBLIC_INTERFACE
    async def ship_order(
        self,
        ctx: UserContext,
        order_id: UUID,
        *,
        carrier: Optional[str] = None,
        tracking_number: Optional[str] = None,
    ) -> Shipment:
        """Ship a PACKED order: SHIP events from the picked locations, lines and order SHIPPED."""
        order = await self._load(ctx, order_id)
        if order.status != "PACKED":
            raise ValidationError("Can only ship packed orders")

        now = utcnow()
        shipment = Shipment(
            site_id=order.site_id,
            sales_order_id=order.id,
            shipment_number=format_document_number("SHP", await self.repo.count_shipments()),
            status="SHIPPED",
            carrier=carrier,
            tracking_number=tracking_number,
            shipped_at=now,
        )
        await self.repo.add(shipment)

        for task in await self.repo.list_pick_tasks(order.id):
            if task.status != "COMPLETED":
                continue
            for pick_line in task.lines:
                if float(pick_line.qty_picked or 0) <= 0:
                    continue
                await self.inventory.apply_event(
                    ctx,
                    InventoryEventInput(
                        tenant_id=ctx.tenant_id,
                        site_id=order.site_id,
                        event_type="SHIP",
                        item_id=pick_line.item_id,
                        qty_entered=float(pick_line.qty_picked),
                        uom_entered=pick_line.uom,
                        qty_base=float(pick_line.qty_picked),
                        from_location_id=pick_line.location_id,
                        reference_id=str(order.id),
                        notes=f"Shipped on {shipment.shipment_number} for order {order.order_number}",
                    ),
                    commit=False,
                )

        for line in order.lines:
            if line.status == "CANCELLED":
                continue
            line.qty_shipped = float(line.qty_picked or 0)
            line.status = "SHIPPED"
        await self._transition(ctx, order, "SHIPPED", {"shipment_number": shipment.shipment_number})
        await self.repo.flush()
        await self.repo.commit()
        await notify_dashboard(
            ctx.tenant_id, "sales_order.shipped", {"order_id": str(order.id), "shipment": shipment.shipment_number}, ctx.user_id
        )
        return shipment

    # PUBLIC_INTERFACE
    async def deliver_order(self, ctx: UserContext, order_id: UUID) -> SalesOrder:
        order = await self._load(ctx, order_id)
        await self._transition(ctx, order, "DELIVERED")
        now = utcnow()
        for shipment in await self.repo.list_shipments(order.id):
            shipment.status = "DELIVERED"
            shipment.delivered_at = now
        await self.repo.commit()
        return order

    async def list_shipments(self, order_id: UUID) -> List[Shipment]:
        await self._get(order_id)
        return await self.repo.list_shipments(order_id)
