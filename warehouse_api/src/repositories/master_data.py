from __future__ import annotations

from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.master_data import Item, Location
from .base import BaseRepository


class ItemRepository(BaseRepository):
    """Repository for Items and their UoM conversions."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)

    async def list_items(
        self,
        *,
        search: Optional[str],
        category: Optional[str],
        active_only: bool = False,
        limit: int,
        offset: int,
    ) -> List[Item]:
        stmt = select(Item)
        if search:
            like = f"%{search}%"
            stmt = stmt.where(or_(Item.sku.ilike(like), Item.name.ilike(like)))
        if category:
            stmt = stmt.where(Item.category == category)
        if active_only:
            stmt = stmt.where(Item.is_active.is_(True))
        stmt = stmt.order_by(Item.sku).offset(offset).limit(limit)
        res = await self.scalars(stmt)
        return list(res)

    async def get_item(self, item_id: UUID) -> Optional[Item]:
        stmt = select(Item).where(Item.id == item_id)
        return await self.scalar_one_or_none(stmt)

    async def get_item_by_sku(self, sku: str) -> Optional[Item]:
        stmt = select(Item).where(Item.sku == sku)
        return await self.scalar_one_or_none(stmt)

    async def get_items(self, item_ids: Sequence[UUID]) -> List[Item]:
        if not item_ids:
            return []
        stmt = select(Item).where(Item.id.in_(list(item_ids)))
        res = await self.scalars(stmt)
        return list(res)


class LocationRepository(BaseRepository):
    """
    Repository for Locations.

    All queries are automatically tenant-scoped by Postgres RLS.
    """

    async def list_locations(
        self,
        *,
        site_id: Optional[UUID],
        type: Optional[str],
        active_only: bool = False,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Location]:
        stmt = select(Location)
        if site_id:
            stmt = stmt.where(Location.site_id == site_id)
        if type:
            stmt = stmt.where(Location.type == type)
        if active_only:
            stmt = stmt.where(Location.is_active.is_(True))
        stmt = stmt.order_by(Location.label).offset(offset).limit(limit)
        res = await self.scalars(stmt)
        return list(res)

    async def get_location(self, location_id: UUID) -> Optional[Location]:
        stmt = select(Location).where(Location.id == location_id)
        return await self.scalar_one_or_none(stmt)

    async def get_location_by_label(self, site_id: UUID, label: str) -> Optional[Location]:
        stmt = select(Location).where(Location.site_id == site_id, Location.label == label)
        return await self.scalar_one_or_none(stmt)
