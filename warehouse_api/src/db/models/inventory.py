from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional
from uuid import UUID as PyUUID

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.db.base import (
    Base,
    CreatedByMixin,
    Quantity,
    SiteMixin,
    TenantMixin,
    TimestampMixin,
    UUIDPkMixin,
)


class InventoryEvent(UUIDPkMixin, TenantMixin, SiteMixin, CreatedByMixin, TimestampMixin, Base):
    """Immutable record of a stock movement; balances are derived from these."""
    __tablename__ = "inventory_events"
    __table_args__ = (
        Index("ix_inventory_events_tenant_item_created", "tenant_id", "item_id", "created_at"),
    )

    event_type: Mapped[str] = mapped_column(Text, nullable=False)
    item_id: Mapped[PyUUID] = mapped_column(UUID(as_uuid=True), ForeignKey("items.id", ondelete="RESTRICT"), nullable=False)
    qty_entered: Mapped[float] = mapped_column(Quantity, nullable=False)
    uom_entered: Mapped[str] = mapped_column(Text, nullable=False)
    qty_base: Mapped[float] = mapped_column(Quantity, nullable=False)
    from_location_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("locations.id", ondelete="RESTRICT"), nullable=True
    )
    to_location_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("locations.id", ondelete="RESTRICT"), nullable=True
    )
    reason_code: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reference_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class InventoryBalance(UUIDPkMixin, TenantMixin, SiteMixin, TimestampMixin, Base):
    """On-hand quantity of an item at a location, in base units."""
    __tablename__ = "inventory_balances"
    __table_args__ = (
        UniqueConstraint("tenant_id", "item_id", "location_id", name="uq_inventory_balances_tenant_item_location"),
    )

    item_id: Mapped[PyUUID] = mapped_column(UUID(as_uuid=True), ForeignKey("items.id", ondelete="RESTRICT"), nullable=False)
    location_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False
    )
    qty_base: Mapped[float] = mapped_column(Quantity, nullable=False, default=0, server_default="0")


class ReasonCode(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Tenant catalog of reasons that SCRAP, ADJUST and HOLD events cite."""
    __tablename__ = "reason_codes"
    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_reason_codes_tenant_code"),
    )

    type: Mapped[str] = mapped_column(Text, nullable=False)
    code: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")


class CycleCount(UUIDPkMixin, TenantMixin, SiteMixin, CreatedByMixin, TimestampMixin, Base):
    """Scheduled partial physical count of a site."""
    __tablename__ = "cycle_counts"

    name: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="SCHEDULED", server_default="SCHEDULED")
    scheduled_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    assigned_to_user_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    lines: Mapped[List["CycleCountLine"]] = relationship(
        "CycleCountLine",
        lazy="selectin",
        order_by="CycleCountLine.created_at",
        cascade="all, delete-orphan",
    )


class CycleCountLine(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Expected vs counted quantity for one item at one location."""
    __tablename__ = "cycle_count_lines"

    cycle_count_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("cycle_counts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    item_id: Mapped[PyUUID] = mapped_column(UUID(as_uuid=True), ForeignKey("items.id", ondelete="RESTRICT"), nullable=False)
    location_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False
    )
    expected_qty_base: Mapped[float] = mapped_column(Quantity, nullable=False)
    counted_qty_base: Mapped[Optional[float]] = mapped_column(Quantity, nullable=True)
    variance_qty_base: Mapped[Optional[float]] = mapped_column(Quantity, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="PENDING", server_default="PENDING")
    counted_by_user_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    counted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_by_user_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
