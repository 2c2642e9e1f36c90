from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import func, select

from src.db.models.cold_chain import TemperatureExcursion, TemperatureReading, TemperatureZone
from .base import BaseRepository


class ColdChainRepository(BaseRepository):
    """Repository for temperature zones, readings and excursions."""

    # Zones
    async def list_zones(self, *, site_id: Optional[UUID] = None, active_only: bool = False) -> List[TemperatureZone]:
        stmt = select(TemperatureZone)
        if site_id:
            stmt = stmt.where(TemperatureZone.site_id == site_id)
        if active_only:
            stmt = stmt.where(TemperatureZone.is_active.is_(True))
        stmt = stmt.order_by(TemperatureZone.code)
        res = await self.scalars(stmt)
        return list(res)

    async def get_zone(self, zone_id: UUID) -> Optional[TemperatureZone]:
        stmt = select(TemperatureZone).where(TemperatureZone.id == zone_id)
        return await self.scalar_one_or_none(stmt)

    async def get_zone_by_code(self, site_id: UUID, code: str) -> Optional[TemperatureZone]:
        stmt = select(TemperatureZone).where(TemperatureZone.site_id == site_id, TemperatureZone.code == code)
        return await self.scalar_one_or_none(stmt)

    # Readings
    async def list_readings(
        self,
        *,
        zone_ids: Optional[Sequence[UUID]] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 1000,
    ) -> List[TemperatureReading]:
        stmt = select(TemperatureReading)
        if zone_ids:
            stmt = stmt.where(TemperatureReading.zone_id.in_(list(zone_ids)))
        if start:
            stmt = stmt.where(TemperatureReading.recorded_at >= start)
        if end:
            stmt = stmt.where(TemperatureReading.recorded_at <= end)
        stmt = stmt.order_by(TemperatureReading.recorded_at.desc()).limit(limit)
        res = await self.scalars(stmt)
        return list(res)

    async def latest_reading(self, zone_id: UUID) -> Optional[TemperatureReading]:
        stmt = (
            select(TemperatureReading)
            .where(TemperatureReading.zone_id == zone_id)
            .order_by(TemperatureReading.recorded_at.desc())
            .limit(1)
        )
        return await self.scalar_one_or_none(stmt)

    async def count_status_since(self, zone_id: UUID, since: datetime) -> dict[str, int]:
        stmt = (
            select(TemperatureReading.status, func.count(TemperatureReading.id))
            .where(TemperatureReading.zone_id == zone_id, TemperatureReading.recorded_at >= since)
            .group_by(TemperatureReading.status)
        )
        result = await self.execute(stmt)
        return {row[0]: int(row[1]) for row in result.all()}

    async def count_alerts_since(self, since: datetime) -> int:
        stmt = select(func.count(TemperatureReading.id)).where(
            TemperatureReading.alert_triggered.is_(True),
            TemperatureReading.recorded_at >= since,
        )
        result = await self.execute(stmt)
        return int(result.scalar_one())

    # Excursions
    async def get_active_excursion(self, zone_id: UUID) -> Optional[TemperatureExcursion]:
        stmt = (
            select(TemperatureExcursion)
            .where(
                TemperatureExcursion.zone_id == zone_id,
                TemperatureExcursion.status.in_(["OPEN", "INVESTIGATING"]),
            )
            .order_by(TemperatureExcursion.start_time.desc())
            .limit(1)
        )
        return await self.scalar_one_or_none(stmt)

    async def get_excursion(self, excursion_id: UUID) -> Optional[TemperatureExcursion]:
        stmt = select(TemperatureExcursion).where(TemperatureExcursion.id == excursion_id)
        return await self.scalar_one_or_none(stmt)

    async def list_excursions(
        self,
        *,
        zone_ids: Optional[Sequence[UUID]] = None,
        status: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[TemperatureExcursion]:
        stmt = select(TemperatureExcursion)
        if zone_ids:
            stmt = stmt.where(TemperatureExcursion.zone_id.in_(list(zone_ids)))
        if status:
            stmt = stmt.where(TemperatureExcursion.status == status)
        if start:
            stmt = stmt.where(TemperatureExcursion.start_time >= start)
        if end:
            stmt = stmt.where(TemperatureExcursion.start_time <= end)
        stmt = stmt.order_by(TemperatureExcursion.start_time.desc()).offset(offset).limit(limit)
        res = await self.scalars(stmt)
        return list(res)

    async def count_active_excursions(self) -> int:
        stmt = select(func.count(TemperatureExcursion.id)).where(
            TemperatureExcursion.status.in_(["OPEN", "INVESTIGATING"])
        )
        result = await self.execute(stmt)
        return int(result.scalar_one())
