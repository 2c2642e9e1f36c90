from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.inventory import CycleCount, InventoryBalance, InventoryEvent, ReasonCode
from src.db.models.master_data import Location
from .base import BaseRepository


class InventoryRepository(BaseRepository):
    """
    Repository for inventory events and balances.

    All queries are automatically tenant-scoped by Postgres RLS.
    """

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)

    # Events
    async def list_events(
        self,
        *,
        item_id: Optional[UUID],
        location_id: Optional[UUID],
        event_type: Optional[str],
        site_id: Optional[UUID],
        limit: int,
        offset: int,
    ) -> List[InventoryEvent]:
        stmt = select(InventoryEvent)
        if item_id:
            stmt = stmt.where(InventoryEvent.item_id == item_id)
        if location_id:
            stmt = stmt.where(
                (InventoryEvent.from_location_id == location_id) | (InventoryEvent.to_location_id == location_id)
            )
        if event_type:
            stmt = stmt.where(InventoryEvent.event_type == event_type)
        if site_id:
            stmt = stmt.where(InventoryEvent.site_id == site_id)
        stmt = stmt.order_by(InventoryEvent.created_at.desc()).offset(offset).limit(limit)
        res = await self.scalars(stmt)
        return list(res)

    async def count_events_since(self, since: datetime) -> int:
        stmt = select(func.count(InventoryEvent.id)).where(InventoryEvent.created_at >= since)
        result = await self.execute(stmt)
        return int(result.scalar_one())

    async def top_moving_items(self, since: datetime, limit: int = 5) -> List[Tuple[UUID, int]]:
        stmt = (
            select(InventoryEvent.item_id, func.count(InventoryEvent.id).label("events"))
            .where(InventoryEvent.created_at >= since)
            .group_by(InventoryEvent.item_id)
            .order_by(func.count(InventoryEvent.id).desc())
            .limit(limit)
        )
        result = await self.execute(stmt)
        return [(row[0], int(row[1])) for row in result.all()]

    # Balances
    async def get_balance(self, item_id: UUID, location_id: UUID, *, for_update: bool = False) -> Optional[InventoryBalance]:
        stmt = select(InventoryBalance).where(
            InventoryBalance.item_id == item_id,
            InventoryBalance.location_id == location_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        return await self.scalar_one_or_none(stmt)

    async def list_balances(
        self,
        *,
        site_id: Optional[UUID] = None,
        item_id: Optional[UUID] = None,
        location_id: Optional[UUID] = None,
        location_type: Optional[str] = None,
        only_positive: bool = False,
        limit: int = 1000,
        offset: int = 0,
    ) -> List[InventoryBalance]:
        stmt = select(InventoryBalance)
        if location_type:
            stmt = stmt.join(Location, Location.id == InventoryBalance.location_id).where(Location.type == location_type)
        if site_id:
            stmt = stmt.where(InventoryBalance.site_id == site_id)
        if item_id:
            stmt = stmt.where(InventoryBalance.item_id == item_id)
        if location_id:
            stmt = stmt.where(InventoryBalance.location_id == location_id)
        if only_positive:
            stmt = stmt.where(InventoryBalance.qty_base > 0)
        stmt = stmt.order_by(InventoryBalance.updated_at.asc()).offset(offset).limit(limit)
        res = await self.scalars(stmt)
        return list(res)

    async def available_qty(self, site_id: UUID, item_id: UUID, location_types: Sequence[str]) -> float:
        """Sum of positive balances of an item at the given location types of a site."""
        stmt = (
            select(func.coalesce(func.sum(InventoryBalance.qty_base), 0.0))
            .join(Location, Location.id == InventoryBalance.location_id)
            .where(
                InventoryBalance.site_id == site_id,
                InventoryBalance.item_id == item_id,
                InventoryBalance.qty_base > 0,
                Location.type.in_(list(location_types)),
            )
        )
        result = await self.execute(stmt)
        return float(result.scalar_one() or 0.0)

    async def on_hand_by_item(self) -> dict[UUID, float]:
        stmt = select(InventoryBalance.item_id, func.sum(InventoryBalance.qty_base)).group_by(InventoryBalance.item_id)
        result = await self.execute(stmt)
        return {row[0]: float(row[1] or 0.0) for row in result.all()}

    async def total_stock(self) -> float:
        stmt = select(func.coalesce(func.sum(InventoryBalance.qty_base), 0.0))
        result = await self.execute(stmt)
        return float(result.scalar_one() or 0.0)


class CycleCountRepository(BaseRepository):
    """Repository for cycle counts and their lines."""

    async def list_counts(
        self, *, status: Optional[str], site_id: Optional[UUID], limit: int, offset: int
    ) -> List[CycleCount]:
        stmt = select(CycleCount)
        if status:
            stmt = stmt.where(CycleCount.status == status)
        if site_id:
            stmt = stmt.where(CycleCount.site_id == site_id)
        stmt = stmt.order_by(CycleCount.created_at.desc()).offset(offset).limit(limit)
        res = await self.scalars(stmt)
        return list(res)

    async def get_count(self, count_id: UUID) -> Optional[CycleCount]:
        stmt = select(CycleCount).where(CycleCount.id == count_id)
        return await self.scalar_one_or_none(stmt)

    async def count_by_status(self, statuses: Sequence[str]) -> int:
        stmt = select(func.count(CycleCount.id)).where(CycleCount.status.in_(list(statuses)))
        result = await self.execute(stmt)
        return int(result.scalar_one())


class ReasonCodeRepository(BaseRepository):
    """Tenant reason code catalog."""

    async def list_reason_codes(self, *, type: Optional[str] = None, include_inactive: bool = False) -> List[ReasonCode]:
        stmt = select(ReasonCode)
        if type:
            stmt = stmt.where(ReasonCode.type == type)
        if not include_inactive:
            stmt = stmt.where(ReasonCode.is_active.is_(True))
        res = await self.scalars(stmt.order_by(ReasonCode.type, ReasonCode.code))
        return list(res)

    async def get_reason_code(self, reason_id: UUID) -> Optional[ReasonCode]:
        stmt = select(ReasonCode).where(ReasonCode.id == reason_id)
        return await self.scalar_one_or_none(stmt)

    async def get_by_code(self, code: str) -> Optional[ReasonCode]:
        stmt = select(ReasonCode).where(ReasonCode.code == code)
        return await self.scalar_one_or_none(stmt)
