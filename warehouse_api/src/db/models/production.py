from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional
from uuid import UUID as PyUUID

from sqlalchemy import Boolean, CheckConstraint, Date, DateTime, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.db.base import Base, CreatedByMixin, Quantity, SiteMixin, TenantMixin, TimestampMixin, UUIDPkMixin


class Bom(UUIDPkMixin, TenantMixin, CreatedByMixin, TimestampMixin, Base):
    """Versioned bill of materials for a manufactured item."""
    __tablename__ = "boms"
    __table_args__ = (
        UniqueConstraint("tenant_id", "item_id", "version", name="uq_boms_tenant_item_version"),
    )

    item_id: Mapped[PyUUID] = mapped_column(UUID(as_uuid=True), ForeignKey("items.id", ondelete="RESTRICT"), nullable=False)
    bom_number: Mapped[str] = mapped_column(Text, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="DRAFT", server_default="DRAFT")
    base_qty: Mapped[float] = mapped_column(Quantity, nullable=False, default=1)
    base_uom: Mapped[str] = mapped_column(Text, nullable=False)
    effective_from: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    effective_to: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    components: Mapped[List["BomComponent"]] = relationship(
        "BomComponent", lazy="selectin", order_by="BomComponent.sequence", cascade="all, delete-orphan"
    )


class BomComponent(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Component line of a BOM."""
    __tablename__ = "bom_components"
    __table_args__ = (
        CheckConstraint("qty_per > 0", name="qty_per_positive"),
        CheckConstraint("scrap_factor >= 0 AND scrap_factor <= 100", name="scrap_factor_range"),
    )

    bom_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("boms.id", ondelete="CASCADE"), nullable=False, index=True
    )
    item_id: Mapped[PyUUID] = mapped_column(UUID(as_uuid=True), ForeignKey("items.id", ondelete="RESTRICT"), nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    qty_per: Mapped[float] = mapped_column(Quantity, nullable=False)
    uom: Mapped[str] = mapped_column(Text, nullable=False)
    scrap_factor: Mapped[float] = mapped_column(Quantity, nullable=False, default=0, server_default="0")
    is_optional: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    issue_method: Mapped[str] = mapped_column(Text, nullable=False, default="BACKFLUSH", server_default="BACKFLUSH")
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class ProductionOrder(UUIDPkMixin, TenantMixin, SiteMixin, CreatedByMixin, TimestampMixin, Base):
    """Order to manufacture qty_ordered of an item from an ACTIVE BOM."""
    __tablename__ = "production_orders"
    __table_args__ = (
        UniqueConstraint("tenant_id", "order_number", name="uq_production_orders_tenant_order_number"),
        CheckConstraint("priority BETWEEN 1 AND 10", name="priority_range"),
    )

    order_number: Mapped[str] = mapped_column(Text, nullable=False)
    bom_id: Mapped[PyUUID] = mapped_column(UUID(as_uuid=True), ForeignKey("boms.id", ondelete="RESTRICT"), nullable=False)
    item_id: Mapped[PyUUID] = mapped_column(UUID(as_uuid=True), ForeignKey("items.id", ondelete="RESTRICT"), nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="PLANNED", server_default="PLANNED")
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=5, server_default="5")
    qty_ordered: Mapped[float] = mapped_column(Quantity, nullable=False)
    qty_completed: Mapped[float] = mapped_column(Quantity, nullable=False, default=0, server_default="0")
    qty_rejected: Mapped[float] = mapped_column(Quantity, nullable=False, default=0, server_default="0")
    uom: Mapped[str] = mapped_column(Text, nullable=False)
    scheduled_start: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    scheduled_end: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    actual_start: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    actual_end: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    released_by_user_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    released_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class ProductionOutput(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Completed and rejected quantity reported against a production order."""
    __tablename__ = "production_outputs"

    production_order_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("production_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    item_id: Mapped[PyUUID] = mapped_column(UUID(as_uuid=True), ForeignKey("items.id", ondelete="RESTRICT"), nullable=False)
    qty_completed: Mapped[float] = mapped_column(Quantity, nullable=False, default=0)
    qty_rejected: Mapped[float] = mapped_column(Quantity, nullable=False, default=0)
    uom: Mapped[str] = mapped_column(Text, nullable=False)
    qty_base: Mapped[float] = mapped_column(Quantity, nullable=False)
    to_location_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("locations.id", ondelete="SET NULL"), nullable=True
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    recorded_by_user_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )


class ProductionConsumption(UUIDPkMixin, TenantMixin, CreatedByMixin, TimestampMixin, Base):
    """Component material issued to a production order, manually or by backflush."""
    __tablename__ = "production_consumptions"

    production_order_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("production_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    bom_component_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("bom_components.id", ondelete="SET NULL"), nullable=True
    )
    item_id: Mapped[PyUUID] = mapped_column(UUID(as_uuid=True), ForeignKey("items.id", ondelete="RESTRICT"), nullable=False)
    qty_consumed: Mapped[float] = mapped_column(Quantity, nullable=False)
    uom: Mapped[str] = mapped_column(Text, nullable=False)
    qty_base: Mapped[float] = mapped_column(Quantity, nullable=False)
    from_location_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("locations.id", ondelete="SET NULL"), nullable=True
    )
    is_backflushed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
