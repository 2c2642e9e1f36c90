from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select

from src.db.models.tenancy import Site
from .base import BaseRepository


class SiteRepository(BaseRepository):
    """Repository for sites of the current tenant."""

    async def list_sites(self, *, active_only: bool = False, limit: int = 100, offset: int = 0) -> List[Site]:
        stmt = select(Site)
        if active_only:
            stmt = stmt.where(Site.is_active.is_(True))
        stmt = stmt.order_by(Site.code).offset(offset).limit(limit)
        res = await self.scalars(stmt)
        return list(res)

    async def get_site(self, site_id: UUID) -> Optional[Site]:
        stmt = select(Site).where(Site.id == site_id)
        return await self.scalar_one_or_none(stmt)

    async def get_site_by_code(self, code: str) -> Optional[Site]:
        stmt = select(Site).where(Site.code == code)
        return await self.scalar_one_or_none(stmt)
