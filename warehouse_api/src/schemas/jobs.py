from __future__ import annotations

from datetime import date, datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

JobType = Literal["RECEIVING", "PUTAWAY", "PICK", "PACK", "SHIP", "TRANSFER", "ADJUSTMENT", "COUNT", "MAINTENANCE", "OTHER"]
JobPriority = Literal["LOW", "NORMAL", "HIGH", "URGENT"]
JobStatus = Literal["DRAFT", "OPEN", "IN_PROGRESS", "COMPLETED", "CANCELLED"]


class JobLineCreate(BaseModel):
    item_id: Optional[UUID] = Field(None, description="Item to handle; lines without an item are skipped")
    from_location_id: Optional[UUID] = None
    to_location_id: Optional[UUID] = None
    qty_ordered: float = Field(0, ge=0)
    uom: str = Field("EA")
    notes: Optional[str] = None


class JobCreate(BaseModel):
    """Warehouse job with optional lines; starts DRAFT unless OPEN is requested."""
    site_id: UUID
    job_type: JobType
    priority: JobPriority = "NORMAL"
    status: Literal["DRAFT", "OPEN"] = "DRAFT"
    description: Optional[str] = None
    assigned_to_user_id: Optional[UUID] = None
    scheduled_date: Optional[date] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None
    lines: List[JobLineCreate] = Field(default_factory=list)


class JobUpdate(BaseModel):
    description: Optional[str] = None
    priority: Optional[JobPriority] = None
    assigned_to_user_id: Optional[UUID] = None
    scheduled_date: Optional[date] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None
    status: Optional[JobStatus] = Field(None, description="Target status, validated against the job workflow")


class CompleteLineRequest(BaseModel):
    qty_completed: float = Field(..., ge=0)
    notes: Optional[str] = None


class JobLineRead(BaseModel):
    id: UUID
    item_id: UUID
    from_location_id: Optional[UUID] = None
    to_location_id: Optional[UUID] = None
    qty_ordered: float
    qty_completed: float
    uom: str
    status: str
    notes: Optional[str] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class JobSummary(BaseModel):
    total_lines: int
    completed_lines: int
    pending_lines: int
    total_qty_ordered: float
    total_qty_completed: float


class JobRead(BaseModel):
    id: UUID
    site_id: UUID
    job_number: str
    job_type: str
    status: str
    priority: str
    description: Optional[str] = None
    assigned_to_user_id: Optional[UUID] = None
    scheduled_date: Optional[date] = None
    due_date: Optional[date] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_by_user_id: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class JobDetail(JobRead):
    lines: List[JobLineRead] = Field(default_factory=list)
    summary: Optional[JobSummary] = None
