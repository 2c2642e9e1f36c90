from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional
from uuid import UUID as PyUUID

from sqlalchemy import Date, DateTime, ForeignKey, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.db.base import Base, Quantity, TenantMixin, TimestampMixin, UUIDPkMixin


class TransferOrder(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Stock transfer between two sites of the same tenant."""
    __tablename__ = "transfer_orders"
    __table_args__ = (
        UniqueConstraint("tenant_id", "transfer_number", name="uq_transfer_orders_tenant_transfer_number"),
    )

    transfer_number: Mapped[str] = mapped_column(Text, nullable=False)
    from_site_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("sites.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    to_site_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("sites.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(Text, nullable=False, default="DRAFT", server_default="DRAFT")
    priority: Mapped[str] = mapped_column(Text, nullable=False, default="NORMAL", server_default="NORMAL")
    required_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    carrier: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tracking_number: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    estimated_arrival: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    shipped_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    received_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancel_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    requested_by_user_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    approved_by_user_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    lines: Mapped[List["TransferLine"]] = relationship(
        "TransferLine", lazy="selectin", order_by="TransferLine.created_at", cascade="all, delete-orphan"
    )


class TransferLine(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Item quantity moved by a transfer order."""
    __tablename__ = "transfer_lines"

    transfer_order_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("transfer_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    item_id: Mapped[PyUUID] = mapped_column(UUID(as_uuid=True), ForeignKey("items.id", ondelete="RESTRICT"), nullable=False)
    from_location_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False
    )
    to_location_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("locations.id", ondelete="RESTRICT"), nullable=True
    )
    lot_number: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    requested_qty: Mapped[float] = mapped_column(Quantity, nullable=False)
    shipped_qty: Mapped[float] = mapped_column(Quantity, nullable=False, default=0, server_default="0")
    received_qty: Mapped[float] = mapped_column(Quantity, nullable=False, default=0, server_default="0")
    damaged_qty: Mapped[float] = mapped_column(Quantity, nullable=False, default=0, server_default="0")
    variance_qty: Mapped[float] = mapped_column(Quantity, nullable=False, default=0, server_default="0")
    status: Mapped[str] = mapped_column(Text, nullable=False, default="PENDING", server_default="PENDING")
