from __future__ import annotations

from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import func, or_, select

from src.db.models.transfers import TransferOrder
from .base import BaseRepository


class TransferRepository(BaseRepository):
    """Repository for inter-site transfer orders."""

    async def list_transfers(
        self,
        *,
        status: Optional[str],
        site_id: Optional[UUID],
        limit: int,
        offset: int,
    ) -> List[TransferOrder]:
        stmt = select(TransferOrder)
        if status:
            stmt = stmt.where(TransferOrder.status == status)
        if site_id:
            stmt = stmt.where(or_(TransferOrder.from_site_id == site_id, TransferOrder.to_site_id == site_id))
        stmt = stmt.order_by(TransferOrder.created_at.desc()).offset(offset).limit(limit)
        res = await self.scalars(stmt)
        return list(res)

    async def get_transfer(self, transfer_id: UUID) -> Optional[TransferOrder]:
        stmt = select(TransferOrder).where(TransferOrder.id == transfer_id)
        return await self.scalar_one_or_none(stmt)

    async def count_transfers(self) -> int:
        return await self.count(TransferOrder)

    async def count_by_status(self) -> Dict[str, int]:
        stmt = select(TransferOrder.status, func.count(TransferOrder.id)).group_by(TransferOrder.status)
        result = await self.execute(stmt)
        return {row[0]: int(row[1]) for row in result.all()}
