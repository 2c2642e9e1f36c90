from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.context import UserContext
from src.core.errors import NotFoundError, ValidationError
from src.db.models.transfers import TransferLine, TransferOrder
from src.repositories.master_data import ItemRepository
from src.repositories.transfers import TransferRepository
from src.services.audit import AuditService
from src.services.base import BaseService, format_document_number, utcnow
from src.services.inventory import InventoryEventInput, InventoryService
from src.services.realtime import notify_dashboard
from src.services.workflow import TRANSFER_FLOW

logger = logging.getLogger(__name__)

TRANSFER_PRIORITIES = ("LOW", "NORMAL", "HIGH", "URGENT")
TRANSFER_LINE_STATUSES = ("PENDING", "SHIPPED", "RECEIVED", "VARIANCE")


# PUBLIC_INTERFACE
def line_variance(shipped: float, received: float, damaged: float) -> float:
    """Quantity shipped but neither received nor reported damaged."""
    return round(float(shipped) - float(received) - float(damaged), 6)


class TransferService(BaseService):
    """Inter-site transfers. Quantities are in the item's base unit."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = TransferRepository(session)
        self.item_repo = ItemRepository(session)
        self.inventory = InventoryService(session)
        self.audit = AuditService(session)

    async def _get(self, transfer_id: UUID) -> TransferOrder:
        transfer = await self.repo.get_transfer(transfer_id)
        if not transfer:
            raise NotFoundError("Transfer order")
        return transfer

    async def _base_uoms(self, transfer: TransferOrder) -> Dict[UUID, str]:
        items = await self.item_repo.get_items(list({line.item_id for line in transfer.lines}))
        return {item.id: item.base_uom for item in items}

    async def _transition(self, ctx: UserContext, transfer: TransferOrder, status: str, details: Optional[dict] = None) -> None:
        TRANSFER_FLOW.validate(transfer.status, status)
        previous = transfer.status
        transfer.status = status
        payload = {"from": previous, "to": status}
        payload.update(details or {})
        await self.audit.record(ctx, "status_change", "transfer_order", transfer.id, payload)
        logger.info("Transfer %s status %s -> %s", transfer.transfer_number, previous, status)

    async def get_transfer(self, transfer_id: UUID) -> TransferOrder:
        return await self._get(transfer_id)

    async def list_transfers(self, **filters) -> List[TransferOrder]:
        return await self.repo.list_transfers(**filters)

    # PUBLIC_INTERFACE
    async def create_transfer(
        self,
        ctx: UserContext,
        *,
        from_site_id: UUID,
        to_site_id: UUID,
        lines: List[Dict[str, Any]],
        priority: str = "NORMAL",
        required_date: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> TransferOrder:
        if from_site_id == to_site_id:
            raise ValidationError("Source and destination sites must be different")
        ctx.ensure_site(from_site_id)
        if priority not in TRANSFER_PRIORITIES:
            raise ValidationError(f"Invalid priority: {priority}")
        if not lines:
            raise ValidationError("Transfer must have at least one line")

        transfer = TransferOrder(
            transfer_number=format_document_number("TRF", await self.repo.count_transfers()),
            from_site_id=from_site_id,
            to_site_id=to_site_id,
            status="DRAFT",
            priority=priority,
            required_date=required_date,
            notes=notes,
            requested_by_user_id=ctx.user_id,
            lines=[],
        )
        for data in lines:
            if float(data["requested_qty"]) < 1:
                raise ValidationError("requested_qty must be at least 1")
            if not data.get("from_location_id"):
                raise ValidationError("from_location_id is required")
            transfer.lines.append(
                TransferLine(
                    item_id=data["item_id"],
                    from_location_id=data["from_location_id"],
                    to_location_id=data.get("to_location_id"),
                    lot_number=data.get("lot_number"),
                    requested_qty=float(data["requested_qty"]),
                    shipped_qty=0.0,
                    received_qty=0.0,
                    damaged_qty=0.0,
                    variance_qty=0.0,
                    status="PENDING",
                )
            )
        await self.repo.add(transfer)
        await self.repo.flush()
        await self.audit.record(ctx, "create", "transfer_order", transfer.id, {"transfer_number": transfer.transfer_number})
        await self.repo.commit()
        logger.info("Transfer created: %s lines=%d", transfer.transfer_number, len(transfer.lines))
        return transfer

    # PUBLIC_INTERFACE
    async def approve(self, ctx: UserContext, transfer_id: UUID) -> TransferOrder:
        transfer = await self._get(transfer_id)
        await self._transition(ctx, transfer, "APPROVED")
        transfer.approved_by_user_id = ctx.user_id
        await self.repo.commit()
        return transfer

    # PUBLIC_INTERFACE
    async def ship(
        self,
        ctx: UserContext,
        transfer_id: UUID,
        *,
        carrier: Optional[str] = None,
        tracking_number: Optional[str] = None,
        estimated_arrival: Optional[datetime] = None,
    ) -> TransferOrder:
        """Post TRANSFER_OUT for every line; any negative balance aborts the whole shipment."""
        transfer = await self._get(transfer_id)
        if transfer.status != "APPROVED":
            raise ValidationError("Only APPROVED transfers can be shipped")
        ctx.ensure_site(transfer.from_site_id)
        uoms = await self._base_uoms(transfer)

        for line in transfer.lines:
            qty = float(line.requested_qty)
            await self.inventory.apply_event(
                ctx,
                InventoryEventInput(
                    tenant_id=ctx.tenant_id,
                    site_id=transfer.from_site_id,
                    event_type="TRANSFER_OUT",
                    item_id=line.item_id,
                    qty_entered=qty,
                    uom_entered=uoms.get(line.item_id, "EA"),
                    qty_base=qty,
                    from_location_id=line.from_location_id,
                    reference_id=str(transfer.id),
                    notes=f"Transfer {transfer.transfer_number} shipped",
                ),
                commit=False,
            )
            line.shipped_qty = qty
            line.status = "SHIPPED"

        transfer.carrier = carrier
        transfer.tracking_number = tracking_number
        transfer.estimated_arrival = estimated_arrival
        transfer.shipped_at = utcnow()
        await self._transition(ctx, transfer, "SHIPPED")
        await self.repo.commit()
        await notify_dashboard(
            ctx.tenant_id, "transfer.shipped", {"transfer_id": str(transfer.id)}, ctx.user_id
        )
        return transfer

    # PUBLIC_INTERFACE
    async def receive(self, ctx: UserContext, transfer_id: UUID, lines: List[Dict[str, Any]]) -> TransferOrder:
        """
        Receive a SHIPPED transfer at the destination site.

        Each entry names a line, the received and damaged quantities and the
        destination location (defaulting to the line's planned one). Lines
        left out of the payload arrived with nothing, so their whole shipped
        quantity becomes variance.
        """
        transfer = await self._get(transfer_id)
        if transfer.status != "SHIPPED":
            raise ValidationError("Only SHIPPED transfers can be received")
        ctx.ensure_site(transfer.to_site_id)
        by_id = {line.id: line for line in transfer.lines}
        uoms = await self._base_uoms(transfer)
        seen = set()

        for data in lines:
            line = by_id.get(data["line_id"])
            if line is None:
                raise ValidationError("Transfer line not found", details={"line_id": str(data["line_id"])})
            received = float(data.get("received_qty") or 0)
            damaged = float(data.get("damaged_qty") or 0)
            if received < 0 or damaged < 0:
                raise ValidationError("Quantities cannot be negative")
            to_location_id = data.get("to_location_id") or line.to_location_id
            if received > 0 and not to_location_id:
                raise ValidationError("to_location_id is required to receive a line")

            if received > 0:
                await self.inventory.apply_event(
                    ctx,
                    InventoryEventInput(
                        tenant_id=ctx.tenant_id,
                        site_id=transfer.to_site_id,
                        event_type="TRANSFER_IN",
                        item_id=line.item_id,
                        qty_entered=received,
                        uom_entered=uoms.get(line.item_id, "EA"),
                        qty_base=received,
                        to_location_id=to_location_id,
                        reference_id=str(transfer.id),
                        notes=f"Transfer {transfer.transfer_number} received",
                    ),
                    commit=False,
                )
            line.to_location_id = to_location_id
            line.received_qty = received
            line.damaged_qty = damaged
            line.variance_qty = line_variance(line.shipped_qty, received, damaged)
            line.status = "RECEIVED" if line.variance_qty == 0 else "VARIANCE"
            seen.add(line.id)

        for line in transfer.lines:
            if line.id in seen:
                continue
            line.received_qty = 0.0
            line.damaged_qty = 0.0
            line.variance_qty = line_variance(line.shipped_qty, 0.0, 0.0)
            line.status = "RECEIVED" if line.variance_qty == 0 else "VARIANCE"

        transfer.received_at = utcnow()
        await self._transition(ctx, transfer, "RECEIVED")
        await self.repo.commit()
        return transfer

    # PUBLIC_INTERFACE
    async def cancel(self, ctx: UserContext, transfer_id: UUID, reason: str) -> TransferOrder:
        transfer = await self._get(transfer_id)
        if transfer.status not in ("DRAFT", "APPROVED"):
            raise ValidationError("Only DRAFT or APPROVED transfers can be cancelled")
        if not reason:
            raise ValidationError("Cancel reason is required")
        transfer.cancel_reason = reason
        await self._transition(ctx, transfer, "CANCELLED", {"reason": reason})
        await self.repo.commit()
        return transfer

    # PUBLIC_INTERFACE
    async def in_transit(self, *, site_id: Optional[UUID] = None) -> List[dict]:
        """Lines of SHIPPED transfers."""
        transfers = await self.repo.list_transfers(status="SHIPPED", site_id=site_id, limit=1000, offset=0)
        rows = []
        for transfer in transfers:
            for line in transfer.lines:
                rows.append(
                    {
                        "transfer_id": transfer.id,
                        "transfer_number": transfer.transfer_number,
                        "from_site_id": transfer.from_site_id,
                        "to_site_id": transfer.to_site_id,
                        "item_id": line.item_id,
                        "lot_number": line.lot_number,
                        "shipped_qty": float(line.shipped_qty),
                        "shipped_at": transfer.shipped_at,
                        "estimated_arrival": transfer.estimated_arrival,
                        "carrier": transfer.carrier,
                        "tracking_number": transfer.tracking_number,
                    }
                )
        return rows

    async def dashboard(self) -> dict:
        in_transit = await self.in_transit()
        return {
            "by_status": await self.repo.count_by_status(),
            "in_transit_lines": len(in_transit),
            "in_transit_qty": sum(row["shipped_qty"] for row in in_transit),
        }
