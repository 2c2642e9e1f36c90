from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID as PyUUID

from sqlalchemy import DateTime, ForeignKey, MetaData, Numeric, func, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column


# Standardized naming convention for alembic-friendly constraints/indexes.
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# Quantities and money are fixed-point in the database and floats in Python.
Quantity = Numeric(18, 6, asdecimal=False)
Money = Numeric(18, 4, asdecimal=False)


class Base(DeclarativeBase):
    """Declarative base class with metadata naming conventions."""
    metadata = MetaData(naming_convention=NAMING_CONVENTION)
    # Server-generated columns (ids, tenant_id, timestamps) are returned on
    # INSERT/UPDATE so async code never triggers an implicit refresh.
    __mapper_args__ = {"eager_defaults": True}


class UUIDPkMixin:
    """UUID primary key generated by the database."""
    id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("uuid_generate_v4()"),
    )


class TimestampMixin:
    """created_at/updated_at maintained by the database and the ORM."""
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class TenantMixin:
    """
    Tenant scoping column.

    The server default reads the `app.tenant_id` GUC so inserts made inside
    tenant_context() are stamped automatically and pass the RLS check.
    """
    tenant_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        server_default=text("current_setting('app.tenant_id', true)::uuid"),
    )


class SiteMixin:
    """Physical site (warehouse/facility) the row belongs to."""

    @declared_attr
    def site_id(cls) -> Mapped[PyUUID]:
        return mapped_column(
            UUID(as_uuid=True),
            ForeignKey("sites.id", ondelete="RESTRICT"),
            nullable=False,
            index=True,
        )


class CreatedByMixin:
    """Nullable reference to the user who created the row."""

    @declared_attr
    def created_by_user_id(cls) -> Mapped[Optional[PyUUID]]:
        return mapped_column(
            UUID(as_uuid=True),
            ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        )
