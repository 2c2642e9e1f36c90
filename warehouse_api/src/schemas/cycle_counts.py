from __future__ import annotations

from datetime import date, datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class CycleCountCreate(BaseModel):
    """Schedule a count; lines are generated from the site's balances."""
    site_id: UUID = Field(..., description="Site to count")
    name: str = Field(..., min_length=1, description="Count name")
    scheduled_date: Optional[date] = None
    assigned_to_user_id: Optional[UUID] = None
    notes: Optional[str] = None
    location_ids: Optional[List[UUID]] = Field(None, description="Limit lines to these locations")
    item_ids: Optional[List[UUID]] = Field(None, description="Limit lines to these items")


class CycleCountStatusUpdate(BaseModel):
    status: Literal["SCHEDULED", "IN_PROGRESS", "COMPLETED", "CANCELLED"] = Field(..., description="Target status")


class RecordCountRequest(BaseModel):
    counted_qty_base: float = Field(..., ge=0, description="Counted quantity in base units")
    notes: Optional[str] = None


class ApproveVarianceRequest(BaseModel):
    approved: bool = Field(..., description="Approve (true) or reject (false) the variance")
    notes: Optional[str] = None


class CycleCountLineRead(BaseModel):
    id: UUID
    item_id: UUID
    location_id: UUID
    expected_qty_base: float
    counted_qty_base: Optional[float] = None
    variance_qty_base: Optional[float] = None
    status: str
    counted_by_user_id: Optional[UUID] = None
    counted_at: Optional[datetime] = None
    approved_by_user_id: Optional[UUID] = None
    approved_at: Optional[datetime] = None
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class CycleCountSummary(BaseModel):
    total_lines: int
    counted_lines: int
    pending_lines: int
    variance_lines: int


class CycleCountRead(BaseModel):
    id: UUID
    site_id: UUID
    name: str
    status: str
    scheduled_date: Optional[date] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    assigned_to_user_id: Optional[UUID] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class CycleCountDetail(CycleCountRead):
    """Count with its lines and progress summary."""
    lines: List[CycleCountLineRead] = Field(default_factory=list)
    summary: Optional[CycleCountSummary] = None
