from __future__ import annotations

from datetime import date, datetime
from typing import Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class TransferLineCreate(BaseModel):
    item_id: UUID
    from_location_id: UUID = Field(..., description="Source location at the source site")
    to_location_id: Optional[UUID] = Field(None, description="Planned destination location")
    lot_number: Optional[str] = None
    requested_qty: float = Field(..., ge=1, description="Quantity in the item's base unit")


class TransferCreate(BaseModel):
    from_site_id: UUID
    to_site_id: UUID
    priority: Literal["LOW", "NORMAL", "HIGH", "URGENT"] = "NORMAL"
    required_date: Optional[date] = None
    notes: Optional[str] = None
    lines: List[TransferLineCreate] = Field(..., min_length=1)


class TransferShip(BaseModel):
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    estimated_arrival: Optional[datetime] = None


class TransferReceiveLine(BaseModel):
    line_id: UUID
    received_qty: float = Field(..., ge=0)
    damaged_qty: float = Field(0, ge=0)
    to_location_id: Optional[UUID] = Field(None, description="Defaults to the line's planned destination")


class TransferReceive(BaseModel):
    lines: List[TransferReceiveLine] = Field(..., min_length=1)


class TransferCancel(BaseModel):
    reason: str = Field(..., min_length=1)


class TransferLineRead(BaseModel):
    id: UUID
    item_id: UUID
    from_location_id: UUID
    to_location_id: Optional[UUID] = None
    lot_number: Optional[str] = None
    requested_qty: float
    shipped_qty: float
    received_qty: float
    damaged_qty: float
    variance_qty: float
    status: str

    class Config:
        from_attributes = True


class TransferRead(BaseModel):
    id: UUID
    transfer_number: str
    from_site_id: UUID
    to_site_id: UUID
    status: str
    priority: str
    required_date: Optional[date] = None
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    estimated_arrival: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    received_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    notes: Optional[str] = None
    requested_by_user_id: Optional[UUID] = None
    approved_by_user_id: Optional[UUID] = None
    lines: List[TransferLineRead] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class InTransitRow(BaseModel):
    transfer_id: UUID
    transfer_number: str
    from_site_id: UUID
    to_site_id: UUID
    item_id: UUID
    lot_number: Optional[str] = None
    shipped_qty: float
    shipped_at: Optional[datetime] = None
    estimated_arrival: Optional[datetime] = None
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None


class TransferDashboard(BaseModel):
    by_status: Dict[str, int] = Field(default_factory=dict)
    in_transit_lines: int
    in_transit_qty: float
