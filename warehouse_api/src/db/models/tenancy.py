from __future__ import annotations

from typing import Optional
from uuid import UUID as PyUUID

from sqlalchemy import Boolean, ForeignKey, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import Base, TenantMixin, TimestampMixin, UUIDPkMixin


class Tenant(UUIDPkMixin, TimestampMixin, Base):
    """Customer organization; root of all tenant-scoped data."""
    __tablename__ = "tenants"

    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    slug: Mapped[str] = mapped_column(Text, nullable=False, unique=True)


class Site(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Physical warehouse or facility belonging to a tenant."""
    __tablename__ = "sites"
    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_sites_tenant_code"),
    )

    code: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    timezone: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")


class UserSite(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Site membership of a user."""
    __tablename__ = "user_sites"
    __table_args__ = (
        UniqueConstraint("tenant_id", "user_id", "site_id", name="uq_user_sites_tenant_user_site"),
    )

    user_id: Mapped[PyUUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    site_id: Mapped[PyUUID] = mapped_column(UUID(as_uuid=True), ForeignKey("sites.id", ondelete="CASCADE"), nullable=False)
