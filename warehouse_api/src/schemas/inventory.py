from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

EventType = Literal[
    "RECEIVE",
    "MOVE",
    "ISSUE_TO_WORKCELL",
    "RETURN",
    "SCRAP",
    "HOLD",
    "RELEASE",
    "COUNT",
    "ADJUST",
    "SHIP",
    "TRANSFER_OUT",
    "TRANSFER_IN",
]


class InventoryEventCreate(BaseModel):
    """Stock movement as entered by a user; the quantity is converted to the item's base unit."""
    site_id: UUID = Field(..., description="Site the movement happens at")
    event_type: EventType = Field(..., description="Kind of movement")
    item_id: UUID = Field(..., description="Item moved")
    qty_entered: float = Field(..., gt=0, description="Quantity in uom_entered, greater than 0")
    uom_entered: str = Field(..., description="Unit of the entered quantity")
    from_location_id: Optional[UUID] = Field(None, description="Source location")
    to_location_id: Optional[UUID] = Field(None, description="Destination location")
    reason_code: Optional[str] = Field(None, description="Required for SCRAP, ADJUST and HOLD")
    reference_id: Optional[str] = Field(None, description="External document reference")
    notes: Optional[str] = None


class InventoryEventRead(BaseModel):
    id: UUID
    site_id: UUID
    event_type: str
    item_id: UUID
    qty_entered: float
    uom_entered: str
    qty_base: float = Field(..., description="Quantity in the item's base unit")
    from_location_id: Optional[UUID] = None
    to_location_id: Optional[UUID] = None
    reason_code: Optional[str] = None
    reference_id: Optional[str] = None
    notes: Optional[str] = None
    created_by_user_id: Optional[UUID] = None
    created_at: datetime

    class Config:
        from_attributes = True


class InventoryBalanceRead(BaseModel):
    """On-hand quantity of an item at a location."""
    id: UUID
    site_id: UUID
    item_id: UUID
    location_id: UUID
    qty_base: float = Field(..., description="On-hand quantity in base units")
    updated_at: datetime

    class Config:
        from_attributes = True


class OnHandLocation(BaseModel):
    location_id: UUID
    site_id: UUID
    qty_base: float


class OnHandRead(BaseModel):
    """Total and per-location on-hand quantity of an item."""
    item_id: UUID
    sku: str
    base_uom: str
    total_qty_base: float
    locations: List[OnHandLocation] = Field(default_factory=list)


class ConvertRequest(BaseModel):
    item_id: UUID = Field(..., description="Item whose conversions apply")
    qty: float = Field(..., description="Quantity in uom")
    uom: str = Field(..., description="Unit to convert from")


class ConvertResponse(BaseModel):
    qty_base: float = Field(..., description="Quantity in the item's base unit")
    factor: float = Field(..., description="Base units per one uom")


ReasonType = Literal["SCRAP", "ADJUST", "HOLD"]


class ReasonCodeCreate(BaseModel):
    type: ReasonType = Field(..., description="Event type the reason applies to")
    code: str = Field(..., min_length=1, description="Unique per tenant, e.g. DAMAGED")
    description: Optional[str] = None


class ReasonCodeUpdate(BaseModel):
    type: Optional[ReasonType] = None
    code: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    is_active: Optional[bool] = None


class ReasonCodeRead(BaseModel):
    id: UUID
    type: str
    code: str
    description: Optional[str] = None
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True
