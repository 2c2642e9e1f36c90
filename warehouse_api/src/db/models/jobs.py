from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional
from uuid import UUID as PyUUID

from sqlalchemy import Date, DateTime, ForeignKey, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.db.base import Base, CreatedByMixin, Quantity, SiteMixin, TenantMixin, TimestampMixin, UUIDPkMixin


class Job(UUIDPkMixin, TenantMixin, SiteMixin, CreatedByMixin, TimestampMixin, Base):
    """Warehouse work assignment (receiving, putaway, pick, ...)."""
    __tablename__ = "jobs"
    __table_args__ = (
        UniqueConstraint("tenant_id", "job_number", name="uq_jobs_tenant_job_number"),
    )

    job_number: Mapped[str] = mapped_column(Text, nullable=False)
    job_type: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="DRAFT", server_default="DRAFT")
    priority: Mapped[str] = mapped_column(Text, nullable=False, default="NORMAL", server_default="NORMAL")
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    assigned_to_user_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    scheduled_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    lines: Mapped[List["JobLine"]] = relationship(
        "JobLine", lazy="selectin", order_by="JobLine.created_at", cascade="all, delete-orphan"
    )


class JobLine(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Item quantity to handle as part of a job."""
    __tablename__ = "job_lines"

    job_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    item_id: Mapped[PyUUID] = mapped_column(UUID(as_uuid=True), ForeignKey("items.id", ondelete="RESTRICT"), nullable=False)
    from_location_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("locations.id", ondelete="SET NULL"), nullable=True
    )
    to_location_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("locations.id", ondelete="SET NULL"), nullable=True
    )
    qty_ordered: Mapped[float] = mapped_column(Quantity, nullable=False)
    qty_completed: Mapped[float] = mapped_column(Quantity, nullable=False, default=0, server_default="0")
    uom: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="PENDING", server_default="PENDING")
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
