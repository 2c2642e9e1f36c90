from __future__ import annotations

from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import func, select

from src.db.models.quality import Capa, Ncr
from .base import BaseRepository


class QualityRepository(BaseRepository):
    """Repository for NCRs and CAPAs."""

    async def list_ncrs(
        self,
        *,
        status: Optional[str],
        severity: Optional[str],
        search: Optional[str],
        limit: int,
        offset: int,
    ) -> List[Ncr]:
        stmt = select(Ncr)
        if status:
            stmt = stmt.where(Ncr.status == status)
        if severity:
            stmt = stmt.where(Ncr.severity == severity)
        if search:
            stmt = stmt.where(Ncr.ncr_number.ilike(f"%{search}%"))
        stmt = stmt.order_by(Ncr.created_at.desc()).offset(offset).limit(limit)
        res = await self.scalars(stmt)
        return list(res)

    async def get_ncr(self, ncr_id: UUID) -> Optional[Ncr]:
        stmt = select(Ncr).where(Ncr.id == ncr_id)
        return await self.scalar_one_or_none(stmt)

    async def count_ncrs(self) -> int:
        return await self.count(Ncr)

    async def count_ncrs_by_status(self, statuses: Sequence[str]) -> int:
        stmt = select(func.count(Ncr.id)).where(Ncr.status.in_(list(statuses)))
        result = await self.execute(stmt)
        return int(result.scalar_one())

    async def list_capas(self, ncr_id: UUID) -> List[Capa]:
        stmt = select(Capa).where(Capa.ncr_id == ncr_id).order_by(Capa.created_at.asc())
        res = await self.scalars(stmt)
        return list(res)

    async def get_capa(self, capa_id: UUID) -> Optional[Capa]:
        stmt = select(Capa).where(Capa.id == capa_id)
        return await self.scalar_one_or_none(stmt)

    async def count_capas(self) -> int:
        return await self.count(Capa)
