from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional
from uuid import UUID as PyUUID

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.db.base import (
    Base,
    CreatedByMixin,
    Money,
    Quantity,
    SiteMixin,
    TenantMixin,
    TimestampMixin,
    UUIDPkMixin,
)


class Supplier(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Vendor master record."""
    __tablename__ = "suppliers"
    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_suppliers_tenant_code"),
    )

    code: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    payment_terms: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")


class PurchaseOrder(UUIDPkMixin, TenantMixin, SiteMixin, CreatedByMixin, TimestampMixin, Base):
    """Purchase order header."""
    __tablename__ = "purchase_orders"
    __table_args__ = (
        UniqueConstraint("tenant_id", "po_number", name="uq_purchase_orders_tenant_po_number"),
    )

    supplier_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False
    )
    po_number: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="DRAFT", server_default="DRAFT")
    order_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    expected_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    approved_by_user_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    lines: Mapped[List["PurchaseOrderLine"]] = relationship(
        "PurchaseOrderLine",
        lazy="selectin",
        order_by="PurchaseOrderLine.line_number",
        cascade="all, delete-orphan",
    )


class PurchaseOrderLine(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Line of a purchase order."""
    __tablename__ = "purchase_order_lines"

    purchase_order_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    item_id: Mapped[PyUUID] = mapped_column(UUID(as_uuid=True), ForeignKey("items.id", ondelete="RESTRICT"), nullable=False)
    qty_ordered: Mapped[float] = mapped_column(Quantity, nullable=False)
    qty_received: Mapped[float] = mapped_column(Quantity, nullable=False, default=0, server_default="0")
    uom: Mapped[str] = mapped_column(Text, nullable=False)
    unit_price: Mapped[float] = mapped_column(Money, nullable=False, default=0, server_default="0")
    status: Mapped[str] = mapped_column(Text, nullable=False, default="OPEN", server_default="OPEN")


class Receipt(UUIDPkMixin, TenantMixin, SiteMixin, TimestampMixin, Base):
    """Goods receipt against a purchase order."""
    __tablename__ = "receipts"
    __table_args__ = (
        UniqueConstraint("tenant_id", "receipt_number", name="uq_receipts_tenant_receipt_number"),
    )

    purchase_order_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("purchase_orders.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    receipt_number: Mapped[str] = mapped_column(Text, nullable=False)
    receipt_date: Mapped[date] = mapped_column(Date, nullable=False)
    location_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False
    )
    received_by: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    lines: Mapped[List["ReceiptLine"]] = relationship("ReceiptLine", lazy="selectin", cascade="all, delete-orphan")


class ReceiptLine(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Quantity received for one purchase order line."""
    __tablename__ = "receipt_lines"

    receipt_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("receipts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    purchase_order_line_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("purchase_order_lines.id", ondelete="RESTRICT"), nullable=False
    )
    item_id: Mapped[PyUUID] = mapped_column(UUID(as_uuid=True), ForeignKey("items.id", ondelete="RESTRICT"), nullable=False)
    qty_received: Mapped[float] = mapped_column(Quantity, nullable=False)
    uom: Mapped[str] = mapped_column(Text, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
