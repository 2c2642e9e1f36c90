from __future__ import annotations

import logging
from datetime import date
from typing import Iterable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.context import UserContext
from src.core.errors import AuthorizationError, NotFoundError, ValidationError
from src.core.permissions import RoleName
from src.db.models.inventory import CycleCount, CycleCountLine
from src.repositories.inventory import CycleCountRepository, InventoryRepository
from src.services.audit import AuditService
from src.services.base import BaseService, utcnow
from src.services.inventory import InventoryEventInput, InventoryService
from src.services.realtime import notify_dashboard
from src.services.workflow import CYCLE_COUNT_FLOW

logger = logging.getLogger(__name__)

LINE_STATUSES = ("PENDING", "COUNTED", "VARIANCE_APPROVED", "VARIANCE_REJECTED")
COUNTED_LINE_STATUSES = ("COUNTED", "VARIANCE_APPROVED", "VARIANCE_REJECTED")
APPROVER_ROLES = (RoleName.ADMIN, RoleName.SUPERVISOR)


# PUBLIC_INTERFACE
def summarize_lines(lines: Iterable) -> dict:
    """Line counters shown with a cycle count."""
    lines = list(lines)
    counted = [line for line in lines if line.status in COUNTED_LINE_STATUSES]
    return {
        "total_lines": len(lines),
        "counted_lines": len(counted),
        "pending_lines": sum(1 for line in lines if line.status == "PENDING"),
        "variance_lines": sum(1 for line in counted if (line.variance_qty_base or 0) != 0),
    }


class CycleCountService(BaseService):
    """Scheduling, counting and variance approval of cycle counts."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = CycleCountRepository(session)
        self.inventory_repo = InventoryRepository(session)
        self.inventory = InventoryService(session)
        self.audit = AuditService(session)

    async def _get(self, count_id: UUID) -> CycleCount:
        count = await self.repo.get_count(count_id)
        if not count:
            raise NotFoundError("Cycle count")
        return count

    @staticmethod
    def _line(count: CycleCount, line_id: UUID) -> CycleCountLine:
        for line in count.lines:
            if line.id == line_id:
                return line
        raise NotFoundError("Cycle count line")

    # PUBLIC_INTERFACE
    async def create_count(
        self,
        ctx: UserContext,
        *,
        site_id: UUID,
        name: str,
        scheduled_date: Optional[date] = None,
        assigned_to_user_id: Optional[UUID] = None,
        notes: Optional[str] = None,
        location_ids: Optional[Sequence[UUID]] = None,
        item_ids: Optional[Sequence[UUID]] = None,
    ) -> CycleCount:
        """Create a SCHEDULED count with one PENDING line per matching balance of the site."""
        ctx.ensure_site(site_id)
        count = CycleCount(
            site_id=site_id,
            name=name,
            status="SCHEDULED",
            scheduled_date=scheduled_date,
            assigned_to_user_id=assigned_to_user_id,
            notes=notes,
            created_by_user_id=ctx.user_id,
            lines=[],
        )
        balances = await self.inventory_repo.list_balances(site_id=site_id, limit=100000)
        wanted_locations = set(location_ids or [])
        wanted_items = set(item_ids or [])
        for balance in balances:
            if wanted_locations and balance.location_id not in wanted_locations:
                continue
            if wanted_items and balance.item_id not in wanted_items:
                continue
            count.lines.append(
                CycleCountLine(
                    item_id=balance.item_id,
                    location_id=balance.location_id,
                    expected_qty_base=float(balance.qty_base),
                    status="PENDING",
                )
            )
        await self.repo.add(count)
        await self.repo.flush()
        await self.audit.record(ctx, "create", "cycle_count", count.id, {"name": name, "lines": len(count.lines)})
        await self.repo.commit()
        logger.info("Cycle count created: id=%s site=%s lines=%d", count.id, site_id, len(count.lines))
        return count

    async def get_count(self, count_id: UUID) -> CycleCount:
        return await self._get(count_id)

    async def list_counts(self, **filters) -> List[CycleCount]:
        return await self.repo.list_counts(**filters)

    # PUBLIC_INTERFACE
    async def update_status(self, ctx: UserContext, count_id: UUID, status: str) -> CycleCount:
        """Move a count through SCHEDULED -> IN_PROGRESS -> COMPLETED (or CANCELLED)."""
        count = await self._get(count_id)
        ctx.ensure_site(count.site_id)
        CYCLE_COUNT_FLOW.validate(count.status, status)
        if status == "COMPLETED":
            pending = sum(1 for line in count.lines if line.status == "PENDING")
            if pending:
                raise ValidationError(f"{pending} lines have not been counted")
            count.completed_at = utcnow()
        elif status == "IN_PROGRESS":
            count.started_at = utcnow()
        previous = count.status
        count.status = status
        await self.audit.record(ctx, "status_change", "cycle_count", count.id, {"from": previous, "to": status})
        await self.repo.commit()
        logger.info("Cycle count %s status %s -> %s", count.id, previous, status)
        return count

    # PUBLIC_INTERFACE
    async def record_count(
        self,
        ctx: UserContext,
        count_id: UUID,
        line_id: UUID,
        counted_qty_base: float,
        notes: Optional[str] = None,
    ) -> CycleCountLine:
        """Record the counted quantity of a line; a SCHEDULED count starts automatically."""
        count = await self._get(count_id)
        ctx.ensure_site(count.site_id)
        if count.status == "SCHEDULED":
            count.status = "IN_PROGRESS"
            count.started_at = utcnow()
        elif count.status != "IN_PROGRESS":
            raise ValidationError("Cycle count must be in progress to record counts")
        if counted_qty_base < 0:
            raise ValidationError("Counted quantity cannot be negative")

        line = self._line(count, line_id)
        if line.status not in ("PENDING", "COUNTED"):
            raise ValidationError(f"Cannot record count for a line in status {line.status}")

        line.counted_qty_base = counted_qty_base
        line.variance_qty_base = counted_qty_base - float(line.expected_qty_base)
        line.status = "COUNTED"
        line.counted_by_user_id = ctx.user_id
        line.counted_at = utcnow()
        if notes is not None:
            line.notes = notes
        await self.repo.commit()
        return line

    # PUBLIC_INTERFACE
    async def delete_count(self, ctx: UserContext, count_id: UUID) -> CycleCount:
        """Drop the lines of a SCHEDULED or CANCELLED count and mark it CANCELLED."""
        count = await self._get(count_id)
        ctx.ensure_site(count.site_id)
        if count.status not in ("SCHEDULED", "CANCELLED"):
            raise ValidationError("Only SCHEDULED or CANCELLED cycle counts can be deleted")
        count.lines.clear()
        count.status = "CANCELLED"
        await self.audit.record(ctx, "delete", "cycle_count", count.id)
        await self.repo.commit()
        return count

    # PUBLIC_INTERFACE
    async def approve_variance(
        self,
        ctx: UserContext,
        count_id: UUID,
        line_id: UUID,
        approved: bool,
        notes: Optional[str] = None,
    ) -> CycleCountLine:
        """
        Approve or reject a counted line's variance.

        An approved nonzero variance posts an ADJUST event and sets the balance
        to the counted quantity, all in one transaction.
        """
        if not ctx.has_role(*APPROVER_ROLES):
            raise AuthorizationError("Only Admin or Supervisor can approve variances")

        count = await self._get(count_id)
        ctx.ensure_site(count.site_id)
        line = self._line(count, line_id)
        if line.status != "COUNTED":
            raise ValidationError("Line must be COUNTED before variance approval")

        line.status = "VARIANCE_APPROVED" if approved else "VARIANCE_REJECTED"
        line.approved_by_user_id = ctx.user_id
        line.approved_at = utcnow()
        if notes is not None:
            line.notes = notes

        variance = float(line.variance_qty_base or 0)
        if approved and variance != 0:
            balance = await self.inventory_repo.get_balance(line.item_id, line.location_id, for_update=True)
            if balance is not None:
                item = await self.inventory.item_repo.get_item(line.item_id)
                # shortages leave the location, overages arrive at it
                side = "from_location_id" if variance < 0 else "to_location_id"
                await self.inventory.apply_event(
                    ctx,
                    InventoryEventInput(
                        tenant_id=ctx.tenant_id,
                        site_id=count.site_id,
                        event_type="ADJUST",
                        item_id=line.item_id,
                        qty_entered=abs(variance),
                        uom_entered=item.base_uom if item else "EA",
                        qty_base=abs(variance),
                        **{side: line.location_id},
                        reason_code="CYCLE_COUNT",
                        reference_id=str(count.id),
                        notes=f"Cycle count adjustment: {count.name}",
                    ),
                    commit=False,
                )
                balance.qty_base = float(line.counted_qty_base)

        await self.audit.record(
            ctx,
            "variance_approved" if approved else "variance_rejected",
            "cycle_count_line",
            line.id,
            {"cycle_count_id": str(count.id), "variance": variance},
        )
        await self.repo.commit()
        logger.info("Cycle count variance %s: count=%s line=%s variance=%s",
                    "approved" if approved else "rejected", count.id, line.id, variance)
        if approved and variance != 0:
            await notify_dashboard(
                ctx.tenant_id,
                "cycle_count.variance_approved",
                {"cycle_count_id": str(count.id), "line_id": str(line.id), "variance": variance},
                ctx.user_id,
            )
        return line
