from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class TemperatureZoneCreate(BaseModel):
    """Zone with its target range and warning/critical bands."""
    site_id: UUID
    code: str = Field(..., min_length=1)
    name: str
    min_temp: float
    max_temp: float
    unit: Literal["C", "F"] = "C"
    warning_min: float
    warning_max: float
    critical_min: float
    critical_max: float
    is_active: bool = True


class TemperatureZoneRead(TemperatureZoneCreate):
    id: UUID
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ReadingCreate(BaseModel):
    zone_id: UUID
    temperature: float
    humidity: Optional[float] = Field(None, ge=0, le=100)
    device_id: Optional[str] = None
    recorded_at: Optional[datetime] = Field(None, description="Defaults to now")


class ReadingRead(BaseModel):
    id: UUID
    zone_id: UUID
    device_id: Optional[str] = None
    temperature: float
    humidity: Optional[float] = None
    status: str = Field(..., description="NORMAL, WARNING or CRITICAL")
    alert_triggered: bool
    recorded_at: datetime

    class Config:
        from_attributes = True


class AffectedItem(BaseModel):
    item_id: UUID
    qty: Optional[float] = Field(None, ge=0)
    lot_number: Optional[str] = None
    disposition: Literal["QUARANTINE", "SCRAP", "RELEASE"]


class InvestigateRequest(BaseModel):
    root_cause: str = Field(..., min_length=1)
    corrective_action: str = Field(..., min_length=1)
    affected_items: List[AffectedItem] = Field(default_factory=list)


class ExcursionRead(BaseModel):
    id: UUID
    zone_id: UUID
    status: str
    severity: str
    start_time: datetime
    end_time: Optional[datetime] = None
    min_temp: float
    max_temp: float
    duration_minutes: Optional[int] = None
    affected_items: List[Dict[str, Any]] = Field(default_factory=list)
    root_cause: Optional[str] = None
    corrective_action: Optional[str] = None
    investigated_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ZoneStatus(BaseModel):
    zone_id: UUID
    code: str
    name: str
    min_temp: float
    max_temp: float
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    status: Optional[str] = None
    recorded_at: Optional[datetime] = None


class ColdChainDashboard(BaseModel):
    zones: List[ZoneStatus] = Field(default_factory=list)
    active_excursions: int
    alerts_today: int
    compliance_rate_24h: float


class ComplianceRow(BaseModel):
    zone_id: UUID
    zone_code: str
    zone_name: str
    start: datetime
    end: datetime
    total_readings: int
    normal_readings: int
    warning_readings: int
    critical_readings: int
    excursion_count: int
    compliance_percentage: float
