from __future__ import annotations

from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.production import Bom, ProductionConsumption, ProductionOrder, ProductionOutput
from .base import BaseRepository


class BomRepository(BaseRepository):
    """Repository for BOMs."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)

    async def list_boms(
        self, *, item_id: Optional[UUID], status: Optional[str], limit: int, offset: int
    ) -> List[Bom]:
        stmt = select(Bom)
        if item_id:
            stmt = stmt.where(Bom.item_id == item_id)
        if status:
            stmt = stmt.where(Bom.status == status)
        stmt = stmt.order_by(Bom.bom_number, Bom.version.desc()).offset(offset).limit(limit)
        res = await self.scalars(stmt)
        return list(res)

    async def get_bom(self, bom_id: UUID) -> Optional[Bom]:
        stmt = select(Bom).where(Bom.id == bom_id)
        return await self.scalar_one_or_none(stmt)

    async def get_bom_version(self, item_id: UUID, version: int) -> Optional[Bom]:
        stmt = select(Bom).where(Bom.item_id == item_id, Bom.version == version)
        return await self.scalar_one_or_none(stmt)

    async def list_active_boms_for_item(self, item_id: UUID) -> List[Bom]:
        stmt = select(Bom).where(Bom.item_id == item_id, Bom.status == "ACTIVE")
        res = await self.scalars(stmt)
        return list(res)


class ProductionOrderRepository(BaseRepository):
    """Repository for production orders and their outputs."""

    async def list_orders(
        self,
        *,
        status: Optional[str],
        site_id: Optional[UUID],
        item_id: Optional[UUID],
        limit: int,
        offset: int,
    ) -> List[ProductionOrder]:
        stmt = select(ProductionOrder)
        if status:
            stmt = stmt.where(ProductionOrder.status == status)
        if site_id:
            stmt = stmt.where(ProductionOrder.site_id == site_id)
        if item_id:
            stmt = stmt.where(ProductionOrder.item_id == item_id)
        stmt = stmt.order_by(ProductionOrder.priority.asc(), ProductionOrder.created_at.desc())
        stmt = stmt.offset(offset).limit(limit)
        res = await self.scalars(stmt)
        return list(res)

    async def get_order(self, order_id: UUID) -> Optional[ProductionOrder]:
        stmt = select(ProductionOrder).where(ProductionOrder.id == order_id)
        return await self.scalar_one_or_none(stmt)

    async def get_order_by_number(self, order_number: str) -> Optional[ProductionOrder]:
        stmt = select(ProductionOrder).where(ProductionOrder.order_number == order_number)
        return await self.scalar_one_or_none(stmt)

    async def count_outputs(self, order_id: UUID) -> int:
        stmt = select(func.count(ProductionOutput.id)).where(ProductionOutput.production_order_id == order_id)
        result = await self.execute(stmt)
        return int(result.scalar_one())

    async def list_outputs(self, order_id: UUID) -> List[ProductionOutput]:
        stmt = (
            select(ProductionOutput)
            .where(ProductionOutput.production_order_id == order_id)
            .order_by(ProductionOutput.created_at.asc())
        )
        res = await self.scalars(stmt)
        return list(res)

    async def list_consumptions(self, order_id: UUID) -> List[ProductionConsumption]:
        stmt = (
            select(ProductionConsumption)
            .where(ProductionConsumption.production_order_id == order_id)
            .order_by(ProductionConsumption.created_at.asc())
        )
        res = await self.scalars(stmt)
        return list(res)

    async def count_by_status(self) -> Dict[str, int]:
        stmt = select(ProductionOrder.status, func.count(ProductionOrder.id)).group_by(ProductionOrder.status)
        result = await self.execute(stmt)
        return {row[0]: int(row[1]) for row in result.all()}
