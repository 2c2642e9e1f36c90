from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID as PyUUID

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Index, Integer, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import Base, SiteMixin, TenantMixin, TimestampMixin, UUIDPkMixin


class TemperatureZone(UUIDPkMixin, TenantMixin, SiteMixin, TimestampMixin, Base):
    """Temperature-controlled storage zone with warning/critical bands."""
    __tablename__ = "temperature_zones"
    __table_args__ = (
        UniqueConstraint("tenant_id", "site_id", "code", name="uq_temperature_zones_tenant_site_code"),
    )

    code: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    min_temp: Mapped[float] = mapped_column(Float, nullable=False)
    max_temp: Mapped[float] = mapped_column(Float, nullable=False)
    unit: Mapped[str] = mapped_column(Text, nullable=False, default="C", server_default="C")
    warning_min: Mapped[float] = mapped_column(Float, nullable=False)
    warning_max: Mapped[float] = mapped_column(Float, nullable=False)
    critical_min: Mapped[float] = mapped_column(Float, nullable=False)
    critical_max: Mapped[float] = mapped_column(Float, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")


class TemperatureReading(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Sensor or manual reading for a zone."""
    __tablename__ = "temperature_readings"
    __table_args__ = (
        Index("ix_temperature_readings_zone_recorded", "zone_id", "recorded_at"),
    )

    zone_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("temperature_zones.id", ondelete="CASCADE"), nullable=False
    )
    device_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    temperature: Mapped[float] = mapped_column(Float, nullable=False)
    humidity: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False)
    alert_triggered: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class TemperatureExcursion(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Contiguous out-of-range period for a zone."""
    __tablename__ = "temperature_excursions"

    zone_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("temperature_zones.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(Text, nullable=False, default="OPEN", server_default="OPEN")
    severity: Mapped[str] = mapped_column(Text, nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    min_temp: Mapped[float] = mapped_column(Float, nullable=False)
    max_temp: Mapped[float] = mapped_column(Float, nullable=False)
    duration_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    affected_items: Mapped[list] = mapped_column(JSONB, nullable=False, default=list, server_default="[]")
    root_cause: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    corrective_action: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    investigated_by: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
