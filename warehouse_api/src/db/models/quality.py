from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional
from uuid import UUID as PyUUID

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.db.base import Base, Quantity, TenantMixin, TimestampMixin, UUIDPkMixin


class Ncr(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Non-conformance report raised against an item, lot or production order."""
    __tablename__ = "ncrs"
    __table_args__ = (
        UniqueConstraint("tenant_id", "ncr_number", name="uq_ncrs_tenant_ncr_number"),
    )

    site_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("sites.id", ondelete="SET NULL"), nullable=True, index=True
    )
    ncr_number: Mapped[str] = mapped_column(Text, nullable=False)
    item_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("items.id", ondelete="SET NULL"), nullable=True
    )
    production_order_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("production_orders.id", ondelete="SET NULL"), nullable=True
    )
    lot_number: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    issue_type: Mapped[str] = mapped_column(Text, nullable=False)
    severity: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    qty_affected: Mapped[float] = mapped_column(Quantity, nullable=False)
    uom: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="OPEN", server_default="OPEN")
    disposition: Mapped[str] = mapped_column(Text, nullable=False, default="PENDING", server_default="PENDING")
    disposition_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    disposition_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    root_cause: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    capa_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    reported_by_user_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    reviewed_by: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_by: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    capas: Mapped[List["Capa"]] = relationship("Capa", lazy="selectin", order_by="Capa.created_at", viewonly=True)


class Capa(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Corrective and preventive action attached to an NCR."""
    __tablename__ = "capas"
    __table_args__ = (
        UniqueConstraint("tenant_id", "capa_number", name="uq_capas_tenant_capa_number"),
    )

    ncr_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("ncrs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    capa_number: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="OPEN", server_default="OPEN")
    root_cause_analysis: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    proposed_actions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    responsible_person: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    target_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    implemented_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    verification_method: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    verified_by: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    verification_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    effectiveness_check: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
