from __future__ import annotations

from datetime import date, datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

IssueMethod = Literal["MANUAL", "BACKFLUSH", "PREISSUE"]


class BomComponentCreate(BaseModel):
    item_id: UUID = Field(..., description="Component item")
    sequence: Optional[int] = Field(None, ge=1, description="Position; defaults to the list order")
    qty_per: float = Field(..., gt=0, description="Quantity per base_qty of the parent")
    uom: str
    scrap_factor: float = Field(0, ge=0, le=100, description="Expected scrap in percent")
    is_optional: bool = False
    issue_method: IssueMethod = "BACKFLUSH"
    notes: Optional[str] = None


class BomCreate(BaseModel):
    """Bill of materials for an item; created as DRAFT."""
    item_id: UUID
    bom_number: str = Field(..., min_length=1)
    version: int = Field(1, ge=1)
    base_qty: float = Field(1, gt=0)
    base_uom: str
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None
    notes: Optional[str] = None
    components: List[BomComponentCreate] = Field(..., min_length=1)


class BomStatusUpdate(BaseModel):
    status: Literal["DRAFT", "ACTIVE", "OBSOLETE"]


class BomComponentRead(BaseModel):
    id: UUID
    item_id: UUID
    sequence: int
    qty_per: float
    uom: str
    scrap_factor: float
    is_optional: bool
    issue_method: str
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class BomRead(BaseModel):
    id: UUID
    item_id: UUID
    bom_number: str
    version: int
    status: str
    base_qty: float
    base_uom: str
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None
    notes: Optional[str] = None
    components: List[BomComponentRead] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ProductionOrderCreate(BaseModel):
    site_id: UUID
    order_number: str = Field(..., min_length=1)
    bom_id: UUID = Field(..., description="ACTIVE BOM to build from")
    qty_ordered: float = Field(..., gt=0)
    uom: str
    priority: int = Field(5, ge=1, le=10)
    scheduled_start: Optional[datetime] = None
    scheduled_end: Optional[datetime] = None
    notes: Optional[str] = None


class ProductionOrderUpdate(BaseModel):
    priority: Optional[int] = Field(None, ge=1, le=10)
    qty_ordered: Optional[float] = Field(None, gt=0)
    scheduled_start: Optional[datetime] = None
    scheduled_end: Optional[datetime] = None
    notes: Optional[str] = None
    status: Optional[Literal["PLANNED", "RELEASED", "IN_PROGRESS", "COMPLETED", "CLOSED", "CANCELLED"]] = None


class ProductionOrderRead(BaseModel):
    id: UUID
    site_id: UUID
    order_number: str
    bom_id: UUID
    item_id: UUID
    status: str
    priority: int
    qty_ordered: float
    qty_completed: float
    qty_rejected: float
    uom: str
    scheduled_start: Optional[datetime] = None
    scheduled_end: Optional[datetime] = None
    actual_start: Optional[datetime] = None
    actual_end: Optional[datetime] = None
    released_by_user_id: Optional[UUID] = None
    released_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ProductionOutputCreate(BaseModel):
    """Good and rejected quantity produced; good stock is received at to_location_id when given."""
    qty_completed: float = Field(..., ge=0)
    qty_rejected: float = Field(0, ge=0)
    uom: Optional[str] = Field(None, description="Defaults to the order unit")
    to_location_id: Optional[UUID] = None
    from_location_id: Optional[UUID] = Field(None, description="Location BACKFLUSH components are issued from")
    notes: Optional[str] = None


class ProductionOutputRead(BaseModel):
    id: UUID
    production_order_id: UUID
    item_id: UUID
    qty_completed: float
    qty_rejected: float
    uom: str
    qty_base: float
    to_location_id: Optional[UUID] = None
    notes: Optional[str] = None
    recorded_by_user_id: Optional[UUID] = None
    created_at: datetime

    class Config:
        from_attributes = True


class MaterialRequirement(BaseModel):
    component_id: UUID
    item_id: UUID
    sequence: int
    qty_per: float
    scrap_factor: float
    uom: str
    issue_method: str
    is_optional: bool
    required_qty: float = Field(..., description="qty_ordered / base_qty * qty_per * (1 + scrap_factor / 100)")


class MaterialIssueCreate(BaseModel):
    """Manual issue of a BOM component to the order's workcell."""
    item_id: UUID
    qty: float = Field(..., gt=0)
    uom: Optional[str] = Field(None, description="Defaults to the BOM component unit")
    from_location_id: UUID
    notes: Optional[str] = None


class ProductionConsumptionRead(BaseModel):
    id: UUID
    production_order_id: UUID
    bom_component_id: Optional[UUID] = None
    item_id: UUID
    qty_consumed: float
    uom: str
    qty_base: float
    from_location_id: Optional[UUID] = None
    is_backflushed: bool
    notes: Optional[str] = None
    created_by_user_id: Optional[UUID] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ComponentYield(BaseModel):
    item_id: UUID
    uom: str
    planned_qty: float
    actual_qty: float
    variance: float = Field(..., description="actual - planned; positive means over-consumed")
    variance_percent: float


class ProductionYield(BaseModel):
    order_id: UUID
    order_number: str
    qty_ordered: float
    qty_completed: float
    qty_rejected: float
    production_efficiency: float = Field(..., description="qty_completed / qty_ordered, percent")
    quality_rate: float = Field(..., description="qty_completed / (completed + rejected), percent")
    components: List[ComponentYield]
    components_over_consumed: int
    components_under_consumed: int
