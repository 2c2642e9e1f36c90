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


class Customer(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Customer master."""
    __tablename__ = "customers"
    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_customers_tenant_code"),
    )

    code: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    billing_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    shipping_address1: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    shipping_city: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    shipping_state: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    shipping_zip: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    shipping_country: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    payment_terms: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    credit_limit: Mapped[Optional[float]] = mapped_column(Money, nullable=True)
    tax_exempt: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")


class SalesOrder(UUIDPkMixin, TenantMixin, SiteMixin, CreatedByMixin, TimestampMixin, Base):
    """Sales order header with computed totals."""
    __tablename__ = "sales_orders"
    __table_args__ = (
        UniqueConstraint("tenant_id", "order_number", name="uq_sales_orders_tenant_order_number"),
    )

    customer_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False
    )
    order_number: Mapped[str] = mapped_column(Text, nullable=False)
    customer_po: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="DRAFT", server_default="DRAFT")
    order_date: Mapped[date] = mapped_column(Date, nullable=False)
    requested_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    promised_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    ship_to_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ship_to_address1: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ship_to_city: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ship_to_state: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ship_to_zip: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ship_to_country: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    subtotal: Mapped[float] = mapped_column(Money, nullable=False, default=0, server_default="0")
    tax_amount: Mapped[float] = mapped_column(Money, nullable=False, default=0, server_default="0")
    shipping_amount: Mapped[float] = mapped_column(Money, nullable=False, default=0, server_default="0")
    discount_amount: Mapped[float] = mapped_column(Money, nullable=False, default=0, server_default="0")
    total: Mapped[float] = mapped_column(Money, nullable=False, default=0, server_default="0")
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    lines: Mapped[List["SalesOrderLine"]] = relationship(
        "SalesOrderLine",
        lazy="selectin",
        order_by="SalesOrderLine.line_number",
        cascade="all, delete-orphan",
    )


class SalesOrderLine(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Sales order line item."""
    __tablename__ = "sales_order_lines"

    sales_order_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("sales_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    item_id: Mapped[PyUUID] = mapped_column(UUID(as_uuid=True), ForeignKey("items.id", ondelete="RESTRICT"), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    qty_ordered: Mapped[float] = mapped_column(Quantity, nullable=False)
    qty_allocated: Mapped[float] = mapped_column(Quantity, nullable=False, default=0, server_default="0")
    qty_picked: Mapped[float] = mapped_column(Quantity, nullable=False, default=0, server_default="0")
    qty_shipped: Mapped[float] = mapped_column(Quantity, nullable=False, default=0, server_default="0")
    uom: Mapped[str] = mapped_column(Text, nullable=False)
    unit_price: Mapped[float] = mapped_column(Money, nullable=False, default=0, server_default="0")
    discount: Mapped[float] = mapped_column(Money, nullable=False, default=0, server_default="0")
    tax_rate: Mapped[float] = mapped_column(Money, nullable=False, default=0, server_default="0")
    line_total: Mapped[float] = mapped_column(Money, nullable=False, default=0, server_default="0")
    status: Mapped[str] = mapped_column(Text, nullable=False, default="OPEN", server_default="OPEN")


class PickTask(UUIDPkMixin, TenantMixin, SiteMixin, TimestampMixin, Base):
    """Warehouse pick task generated from an allocated sales order."""
    __tablename__ = "pick_tasks"
    __table_args__ = (
        UniqueConstraint("tenant_id", "task_number", name="uq_pick_tasks_tenant_task_number"),
    )

    sales_order_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("sales_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    task_number: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="PENDING", server_default="PENDING")
    priority: Mapped[str] = mapped_column(Text, nullable=False, default="NORMAL", server_default="NORMAL")
    assigned_to_user_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    lines: Mapped[List["PickTaskLine"]] = relationship(
        "PickTaskLine", lazy="selectin", order_by="PickTaskLine.created_at", cascade="all, delete-orphan"
    )


class PickTaskLine(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Quantity of one sales order line to pick from one location."""
    __tablename__ = "pick_task_lines"

    pick_task_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("pick_tasks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sales_order_line_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("sales_order_lines.id", ondelete="CASCADE"), nullable=False
    )
    item_id: Mapped[PyUUID] = mapped_column(UUID(as_uuid=True), ForeignKey("items.id", ondelete="RESTRICT"), nullable=False)
    location_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False
    )
    qty_to_pick: Mapped[float] = mapped_column(Quantity, nullable=False)
    qty_picked: Mapped[float] = mapped_column(Quantity, nullable=False, default=0, server_default="0")
    uom: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="PENDING", server_default="PENDING")


class Shipment(UUIDPkMixin, TenantMixin, SiteMixin, TimestampMixin, Base):
    """Outbound shipment of a sales order."""
    __tablename__ = "shipments"
    __table_args__ = (
        UniqueConstraint("tenant_id", "shipment_number", name="uq_shipments_tenant_shipment_number"),
    )

    sales_order_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("sales_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    shipment_number: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="SHIPPED", server_default="SHIPPED")
    carrier: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tracking_number: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    shipped_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
