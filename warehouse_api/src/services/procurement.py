from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.context import UserContext
from src.core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from src.core.permissions import PermissionCode
from src.db.models.procurement import PurchaseOrder, PurchaseOrderLine, Receipt, ReceiptLine, Supplier
from src.repositories.procurement import PurchaseOrderRepository, SupplierRepository
from src.services.audit import AuditService
from src.services.base import BaseService, format_document_number, utcnow
from src.services.inventory import InventoryEventInput, InventoryService
from src.services.realtime import notify_dashboard
from src.services.workflow import PURCHASE_ORDER_FLOW

logger = logging.getLogger(__name__)

RECEIVABLE_STATUSES = ("APPROVED", "SENT", "PARTIALLY_RECEIVED")


class SupplierService(BaseService):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = SupplierRepository(session)
        self.audit = AuditService(session)

    async def create_supplier(self, ctx: UserContext, data: Dict[str, Any]) -> Supplier:
        if await self.repo.get_supplier_by_code(data["code"]):
            raise ConflictError("Supplier code already exists")
        supplier = Supplier(
            code=data["code"],
            name=data["name"],
            email=data.get("email"),
            phone=data.get("phone"),
            address=data.get("address"),
            payment_terms=data.get("payment_terms"),
            is_active=data.get("is_active", True),
        )
        await self.repo.add(supplier)
        await self.repo.flush()
        await self.audit.record(ctx, "create", "supplier", supplier.id, {"code": supplier.code})
        await self.repo.commit()
        return supplier

    async def list_suppliers(self, *, search: Optional[str] = None, limit: int = 100, offset: int = 0) -> List[Supplier]:
        return await self.repo.list_suppliers(search=search, limit=limit, offset=offset)


class PurchaseOrderService(BaseService):
    """Purchase orders and goods receipt."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = PurchaseOrderRepository(session)
        self.supplier_repo = SupplierRepository(session)
        self.inventory = InventoryService(session)
        self.audit = AuditService(session)

    async def _get(self, po_id: UUID) -> PurchaseOrder:
        po = await self.repo.get_purchase_order(po_id)
        if not po:
            raise NotFoundError("Purchase order")
        return po

    async def get_purchase_order(self, po_id: UUID) -> PurchaseOrder:
        return await self._get(po_id)

    async def list_purchase_orders(self, **filters) -> List[PurchaseOrder]:
        return await self.repo.list_purchase_orders(**filters)

    # PUBLIC_INTERFACE
    async def create_purchase_order(
        self,
        ctx: UserContext,
        *,
        site_id: UUID,
        supplier_id: UUID,
        po_number: str,
        lines: List[Dict[str, Any]],
        order_date: Optional[date] = None,
        expected_date: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> PurchaseOrder:
        """Create a DRAFT purchase order with numbered lines."""
        ctx.ensure_site(site_id)
        if not lines:
            raise ValidationError("Purchase order must have at least one line")
        if not await self.supplier_repo.get_supplier(supplier_id):
            raise NotFoundError("Supplier")
        if await self.repo.get_by_po_number(po_number):
            raise ConflictError("PO number already exists")

        po = PurchaseOrder(
            site_id=site_id,
            supplier_id=supplier_id,
            po_number=po_number,
            status="DRAFT",
            order_date=order_date or date.today(),
            expected_date=expected_date,
            notes=notes,
            created_by_user_id=ctx.user_id,
            lines=[],
        )
        for idx, data in enumerate(lines, start=1):
            if float(data["qty_ordered"]) <= 0:
                raise ValidationError("qty_ordered must be greater than 0")
            if float(data.get("unit_price") or 0) < 0:
                raise ValidationError("unit_price cannot be negative")
            po.lines.append(
                PurchaseOrderLine(
                    line_number=idx,
                    item_id=data["item_id"],
                    qty_ordered=float(data["qty_ordered"]),
                    qty_received=0.0,
                    uom=data["uom"],
                    unit_price=float(data.get("unit_price") or 0),
                    status="OPEN",
                )
            )
        await self.repo.add(po)
        await self.repo.flush()
        await self.audit.record(ctx, "create", "purchase_order", po.id, {"po_number": po_number, "lines": len(lines)})
        await self.repo.commit()
        logger.info("Purchase order created: %s lines=%d", po_number, len(lines))
        return po

    # PUBLIC_INTERFACE
    async def update_status(self, ctx: UserContext, po_id: UUID, status: str) -> PurchaseOrder:
        """Move a PO through its status table; approval needs approve_purchase_order."""
        po = await self._get(po_id)
        ctx.ensure_site(po.site_id)
        PURCHASE_ORDER_FLOW.validate(po.status, status)
        if status == "APPROVED":
            if not ctx.can(PermissionCode.APPROVE_PURCHASE_ORDER):
                raise AuthorizationError("Insufficient permissions")
            po.approved_by_user_id = ctx.user_id
            po.approved_at = utcnow()
        previous = po.status
        po.status = status
        await self.audit.record(ctx, "status_change", "purchase_order", po.id, {"from": previous, "to": status})
        await self.repo.commit()
        logger.info("Purchase order %s status %s -> %s", po.po_number, previous, status)
        return po

    # PUBLIC_INTERFACE
    async def receive(
        self,
        ctx: UserContext,
        po_id: UUID,
        *,
        location_id: UUID,
        lines: List[Dict[str, Any]],
        receipt_date: Optional[date] = None,
        received_by: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Receipt:
        """
        Receive goods against a PO.

        Each received line posts a RECEIVE event to the receipt location; the
        receipt, the PO line quantities and the events commit together.
        """
        po = await self._get(po_id)
        ctx.ensure_site(po.site_id)
        if po.status not in RECEIVABLE_STATUSES:
            raise ValidationError("Purchase order must be approved before receiving")
        if not lines:
            raise ValidationError("Receipt must have at least one line")
        po_lines = {line.id: line for line in po.lines}

        receipt = Receipt(
            site_id=po.site_id,
            purchase_order_id=po.id,
            receipt_number=format_document_number("RCV", await self.repo.count_receipts()),
            receipt_date=receipt_date or date.today(),
            location_id=location_id,
            received_by=received_by or ctx.display_name,
            notes=notes,
            lines=[],
        )
        await self.repo.add(receipt)

        for data in lines:
            po_line = po_lines.get(data["purchase_order_line_id"])
            if po_line is None:
                raise ValidationError(
                    "Purchase order line not found", details={"purchase_order_line_id": str(data["purchase_order_line_id"])}
                )
            qty = float(data["qty_received"])
            if qty <= 0:
                raise ValidationError("qty_received must be greater than 0")
            uom = data.get("uom") or po_line.uom

            receipt.lines.append(
                ReceiptLine(
                    purchase_order_line_id=po_line.id,
                    item_id=po_line.item_id,
                    qty_received=qty,
                    uom=uom,
                    notes=data.get("notes"),
                )
            )
            po_line.qty_received = float(po_line.qty_received or 0) + qty
            po_line.status = "RECEIVED" if po_line.qty_received >= float(po_line.qty_ordered) else "PARTIALLY_RECEIVED"

            qty_base, _ = await self.inventory.convert_quantity(po_line.item_id, qty, uom)
            await self.inventory.apply_event(
                ctx,
                InventoryEventInput(
                    tenant_id=ctx.tenant_id,
                    site_id=po.site_id,
                    event_type="RECEIVE",
                    item_id=po_line.item_id,
                    qty_entered=qty,
                    uom_entered=uom,
                    qty_base=qty_base,
                    to_location_id=location_id,
                    reference_id=str(po.id),
                    notes=f"Received from PO {po.po_number}",
                ),
                commit=False,
            )

        fully = all(float(line.qty_received or 0) >= float(line.qty_ordered) for line in po.lines)
        po.status = "RECEIVED" if fully else "PARTIALLY_RECEIVED"

        await self.repo.flush()
        await self.audit.record(
            ctx, "receive", "purchase_order", po.id,
            {"receipt_number": receipt.receipt_number, "lines": len(lines), "status": po.status},
        )
        await self.repo.commit()
        logger.info("PO %s received: receipt=%s status=%s", po.po_number, receipt.receipt_number, po.status)
        await notify_dashboard(
            ctx.tenant_id, "purchase_order.received", {"po_id": str(po.id), "status": po.status}, ctx.user_id
        )
        return receipt

    async def list_receipts(self, po_id: UUID) -> List[Receipt]:
        await self._get(po_id)
        return await self.repo.list_receipts(po_id)
