"""
Cold chain monitoring.

Readings are classified against the zone's warning and critical bands. Alerts
open (or extend) an excursion for the zone; the next NORMAL reading ends it.
Excursions are then investigated and closed by quality staff.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.context import UserContext
from src.core.errors import ConflictError, NotFoundError, ValidationError
from src.db.models.cold_chain import TemperatureExcursion, TemperatureReading, TemperatureZone
from src.repositories.cold_chain import ColdChainRepository
from src.services.audit import AuditService
from src.services.base import BaseService, utcnow
from src.services.realtime import notify_dashboard
from src.services.workflow import EXCURSION_FLOW

logger = logging.getLogger(__name__)

READING_STATUSES = ("NORMAL", "WARNING", "CRITICAL")
ITEM_DISPOSITIONS = ("QUARANTINE", "SCRAP", "RELEASE")


# PUBLIC_INTERFACE
def classify_reading(zone, temperature: float) -> str:
    """NORMAL, WARNING or CRITICAL for a temperature in the given zone."""
    if temperature <= zone.critical_min or temperature >= zone.critical_max:
        return "CRITICAL"
    if temperature <= zone.warning_min or temperature >= zone.warning_max:
        return "WARNING"
    return "NORMAL"


# PUBLIC_INTERFACE
def validate_thresholds(
    *, min_temp: float, max_temp: float, warning_min: float, warning_max: float, critical_min: float, critical_max: float
) -> None:
    """critical_min <= warning_min <= min_temp < max_temp <= warning_max <= critical_max"""
    if min_temp >= max_temp:
        raise ValidationError("min_temp must be lower than max_temp")
    if not (critical_min <= warning_min <= min_temp):
        raise ValidationError("Lower thresholds must satisfy critical_min <= warning_min <= min_temp")
    if not (max_temp <= warning_max <= critical_max):
        raise ValidationError("Upper thresholds must satisfy max_temp <= warning_max <= critical_max")


# PUBLIC_INTERFACE
def compliance_summary(readings: Iterable, excursion_count: int = 0) -> dict:
    """Reading counts by status and the share of NORMAL readings (100 when there are none)."""
    counts = {status: 0 for status in READING_STATUSES}
    total = 0
    for reading in readings:
        total += 1
        counts[reading.status] = counts.get(reading.status, 0) + 1
    percentage = round(counts["NORMAL"] / total * 100, 2) if total else 100.0
    return {
        "total_readings": total,
        "normal_readings": counts["NORMAL"],
        "warning_readings": counts["WARNING"],
        "critical_readings": counts["CRITICAL"],
        "excursion_count": excursion_count,
        "compliance_percentage": percentage,
    }


def _duration_minutes(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds() // 60)


class ColdChainService(BaseService):
    """Zones, readings and excursion handling."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = ColdChainRepository(session)
        self.audit = AuditService(session)

    async def _zone(self, zone_id: UUID) -> TemperatureZone:
        zone = await self.repo.get_zone(zone_id)
        if not zone:
            raise NotFoundError("Temperature zone")
        return zone

    # PUBLIC_INTERFACE
    async def create_zone(self, ctx: UserContext, data: Dict[str, Any]) -> TemperatureZone:
        ctx.ensure_site(data["site_id"])
        validate_thresholds(
            min_temp=data["min_temp"],
            max_temp=data["max_temp"],
            warning_min=data["warning_min"],
            warning_max=data["warning_max"],
            critical_min=data["critical_min"],
            critical_max=data["critical_max"],
        )
        if await self.repo.get_zone_by_code(data["site_id"], data["code"]):
            raise ConflictError("Zone code already exists at this site")
        zone = TemperatureZone(
            site_id=data["site_id"],
            code=data["code"],
            name=data["name"],
            min_temp=data["min_temp"],
            max_temp=data["max_temp"],
            unit=data.get("unit") or "C",
            warning_min=data["warning_min"],
            warning_max=data["warning_max"],
            critical_min=data["critical_min"],
            critical_max=data["critical_max"],
            is_active=data.get("is_active", True),
        )
        await self.repo.add(zone)
        await self.repo.flush()
        await self.audit.record(ctx, "create", "temperature_zone", zone.id, {"code": zone.code})
        await self.repo.commit()
        return zone

    async def get_zone(self, zone_id: UUID) -> TemperatureZone:
        return await self._zone(zone_id)

    async def list_zones(self, *, site_id: Optional[UUID] = None, active_only: bool = False) -> List[TemperatureZone]:
        return await self.repo.list_zones(site_id=site_id, active_only=active_only)

    # PUBLIC_INTERFACE
    async def record_reading(
        self,
        ctx: UserContext,
        *,
        zone_id: UUID,
        temperature: float,
        humidity: Optional[float] = None,
        device_id: Optional[str] = None,
        recorded_at: Optional[datetime] = None,
    ) -> TemperatureReading:
        """
        Store a reading and keep the zone's excursion up to date.

        An alert opens an excursion when the zone has no running one, or widens
        the running one (min/max, WARNING escalated to CRITICAL). A NORMAL
        reading ends a running excursion.
        """
        zone = await self._zone(zone_id)
        recorded_at = recorded_at or utcnow()
        status = classify_reading(zone, temperature)
        alert = status != "NORMAL"

        reading = TemperatureReading(
            zone_id=zone.id,
            device_id=device_id,
            temperature=temperature,
            humidity=humidity,
            status=status,
            alert_triggered=alert,
            recorded_at=recorded_at,
        )
        await self.repo.add(reading)

        active = await self.repo.get_active_excursion(zone.id)
        running = active if active is not None and active.end_time is None else None
        if alert:
            if running is None:
                excursion = TemperatureExcursion(
                    zone_id=zone.id,
                    status="OPEN",
                    severity=status,
                    start_time=recorded_at,
                    min_temp=temperature,
                    max_temp=temperature,
                    affected_items=[],
                )
                await self.repo.add(excursion)
                logger.warning("Temperature excursion opened: zone=%s temp=%s severity=%s", zone.code, temperature, status)
            else:
                running.min_temp = min(running.min_temp, temperature)
                running.max_temp = max(running.max_temp, temperature)
                if status == "CRITICAL" and running.severity == "WARNING":
                    running.severity = "CRITICAL"
                    logger.warning("Temperature excursion escalated to CRITICAL: zone=%s", zone.code)
        elif running is not None:
            running.end_time = recorded_at
            running.duration_minutes = _duration_minutes(running.start_time, recorded_at)
            logger.info("Temperature excursion ended: zone=%s duration=%s min", zone.code, running.duration_minutes)

        await self.repo.flush()
        await self.repo.commit()
        if alert:
            await notify_dashboard(
                ctx.tenant_id,
                "cold_chain.alert",
                {"zone_id": str(zone.id), "zone": zone.code, "temperature": temperature, "status": status},
                ctx.user_id,
            )
        return reading

    async def history(
        self, zone_id: UUID, *, start: Optional[datetime] = None, end: Optional[datetime] = None, limit: int = 1000
    ) -> List[TemperatureReading]:
        await self._zone(zone_id)
        return await self.repo.list_readings(zone_ids=[zone_id], start=start, end=end, limit=limit)

    async def list_excursions(self, *, zone_id: Optional[UUID] = None, **filters) -> List[TemperatureExcursion]:
        return await self.repo.list_excursions(zone_ids=[zone_id] if zone_id else None, **filters)

    async def _excursion(self, excursion_id: UUID) -> TemperatureExcursion:
        excursion = await self.repo.get_excursion(excursion_id)
        if not excursion:
            raise NotFoundError("Excursion")
        return excursion

    # PUBLIC_INTERFACE
    async def investigate(
        self,
        ctx: UserContext,
        excursion_id: UUID,
        *,
        root_cause: str,
        corrective_action: str,
        affected_items: Optional[List[Dict[str, Any]]] = None,
    ) -> TemperatureExcursion:
        """Record the investigation outcome and resolve the excursion."""
        excursion = await self._excursion(excursion_id)
        EXCURSION_FLOW.validate(excursion.status, "RESOLVED")
        items = []
        for entry in affected_items or []:
            if entry.get("disposition") not in ITEM_DISPOSITIONS:
                raise ValidationError(f"Invalid disposition: {entry.get('disposition')}")
            items.append({k: (str(v) if isinstance(v, UUID) else v) for k, v in entry.items()})

        excursion.root_cause = root_cause
        excursion.corrective_action = corrective_action
        excursion.investigated_by = ctx.display_name
        excursion.affected_items = items
        excursion.status = "RESOLVED"
        await self.audit.record(ctx, "investigate", "temperature_excursion", excursion.id, {"affected_items": len(items)})
        await self.repo.commit()
        return excursion

    # PUBLIC_INTERFACE
    async def close_excursion(self, ctx: UserContext, excursion_id: UUID) -> TemperatureExcursion:
        excursion = await self._excursion(excursion_id)
        EXCURSION_FLOW.validate(excursion.status, "CLOSED")
        excursion.status = "CLOSED"
        await self.audit.record(ctx, "close", "temperature_excursion", excursion.id)
        await self.repo.commit()
        return excursion

    # PUBLIC_INTERFACE
    async def dashboard(self, *, site_id: Optional[UUID] = None) -> dict:
        """Latest reading per zone, active excursions, today's alerts and 24h compliance."""
        now = utcnow()
        since = now - timedelta(hours=24)
        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
        zones = await self.repo.list_zones(site_id=site_id, active_only=True)

        rows = []
        total = 0
        normal = 0
        for zone in zones:
            latest = await self.repo.latest_reading(zone.id)
            counts = await self.repo.count_status_since(zone.id, since)
            total += sum(counts.values())
            normal += counts.get("NORMAL", 0)
            rows.append(
                {
                    "zone_id": zone.id,
                    "code": zone.code,
                    "name": zone.name,
                    "min_temp": zone.min_temp,
                    "max_temp": zone.max_temp,
                    "temperature": latest.temperature if latest else None,
                    "humidity": latest.humidity if latest else None,
                    "status": latest.status if latest else None,
                    "recorded_at": latest.recorded_at if latest else None,
                }
            )
        return {
            "zones": rows,
            "active_excursions": await self.repo.count_active_excursions(),
            "alerts_today": await self.repo.count_alerts_since(start_of_day),
            "compliance_rate_24h": round(normal / total * 100, 2) if total else 100.0,
        }

    # PUBLIC_INTERFACE
    async def compliance_report(
        self,
        *,
        zone_ids: Optional[Sequence[UUID]] = None,
        site_id: Optional[UUID] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[dict]:
        """Per-zone compliance for a period (default: the last 7 days)."""
        end = end or utcnow()
        start = start or end - timedelta(days=7)
        zones = await self.repo.list_zones(site_id=site_id)
        if zone_ids:
            wanted = set(zone_ids)
            zones = [zone for zone in zones if zone.id in wanted]

        report = []
        for zone in zones:
            readings = await self.repo.list_readings(zone_ids=[zone.id], start=start, end=end, limit=1000000)
            excursions = await self.repo.list_excursions(zone_ids=[zone.id], start=start, end=end, limit=100000)
            row = {"zone_id": zone.id, "zone_code": zone.code, "zone_name": zone.name, "start": start, "end": end}
            row.update(compliance_summary(readings, len(excursions)))
            report.append(row)
        return report
