from __future__ import annotations

from typing import List, Optional
from uuid import UUID as PyUUID

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.db.base import Base, Money, Quantity, SiteMixin, TenantMixin, TimestampMixin, UUIDPkMixin


class Item(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Item master record; quantities are tracked in base_uom."""
    __tablename__ = "items"
    __table_args__ = (
        UniqueConstraint("tenant_id", "sku", name="uq_items_tenant_sku"),
    )

    sku: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(Text, nullable=False)
    base_uom: Mapped[str] = mapped_column(Text, nullable=False)
    min_qty_base: Mapped[Optional[float]] = mapped_column(Quantity, nullable=True)
    max_qty_base: Mapped[Optional[float]] = mapped_column(Quantity, nullable=True)
    reorder_point_base: Mapped[Optional[float]] = mapped_column(Quantity, nullable=True)
    lead_time_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    barcode: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    standard_cost: Mapped[Optional[float]] = mapped_column(Money, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")

    conversions: Mapped[List["ItemUomConversion"]] = relationship(
        "ItemUomConversion",
        back_populates="item",
        lazy="selectin",
        cascade="all, delete-orphan",
    )


class ItemUomConversion(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Alternate unit of measure for an item with its factor to base_uom."""
    __tablename__ = "item_uom_conversions"
    __table_args__ = (
        UniqueConstraint("item_id", "uom", name="uq_item_uom_conversions_item_uom"),
        CheckConstraint("to_base > 0", name="to_base_positive"),
    )

    item_id: Mapped[PyUUID] = mapped_column(UUID(as_uuid=True), ForeignKey("items.id", ondelete="CASCADE"), nullable=False)
    uom: Mapped[str] = mapped_column(Text, nullable=False)
    to_base: Mapped[float] = mapped_column(Quantity, nullable=False)

    item: Mapped["Item"] = relationship("Item", back_populates="conversions")


class Location(UUIDPkMixin, TenantMixin, SiteMixin, TimestampMixin, Base):
    """Storage location (zone/bin) inside a site."""
    __tablename__ = "locations"
    __table_args__ = (
        UniqueConstraint("site_id", "label", name="uq_locations_site_label"),
    )

    zone: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    bin: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    label: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
