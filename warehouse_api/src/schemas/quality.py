from __future__ import annotations

from datetime import date, datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

Severity = Literal["MINOR", "MAJOR", "CRITICAL"]
Disposition = Literal["PENDING", "USE_AS_IS", "REWORK", "SCRAP", "RETURN_TO_VENDOR"]


class NcrCreate(BaseModel):
    """Non-conformance report; created OPEN with a PENDING disposition."""
    issue_type: str = Field(..., min_length=1)
    severity: Severity
    description: str = Field(..., min_length=1)
    qty_affected: float = Field(..., gt=0)
    uom: str
    site_id: Optional[UUID] = None
    item_id: Optional[UUID] = None
    production_order_id: Optional[UUID] = None
    lot_number: Optional[str] = None
    capa_required: bool = False


class NcrUpdate(BaseModel):
    severity: Optional[Severity] = None
    description: Optional[str] = None
    lot_number: Optional[str] = None
    disposition: Optional[Disposition] = None
    disposition_notes: Optional[str] = None
    root_cause: Optional[str] = None
    reviewed_by: Optional[str] = None
    approved_by: Optional[str] = None
    capa_required: Optional[bool] = None
    status: Optional[Literal["OPEN", "UNDER_REVIEW", "DISPOSITIONED", "CLOSED", "CANCELLED"]] = None


class CapaCreate(BaseModel):
    root_cause_analysis: Optional[str] = None
    proposed_actions: Optional[str] = None
    responsible_person: Optional[str] = None
    target_date: Optional[date] = None
    verification_method: Optional[str] = None
    verification_notes: Optional[str] = None
    effectiveness_check: Optional[str] = None


class CapaUpdate(CapaCreate):
    verified_by: Optional[str] = None
    status: Optional[Literal["OPEN", "IN_PROGRESS", "IMPLEMENTED", "VERIFIED", "CLOSED", "CANCELLED"]] = None


class CapaRead(BaseModel):
    id: UUID
    ncr_id: UUID
    capa_number: str
    status: str
    root_cause_analysis: Optional[str] = None
    proposed_actions: Optional[str] = None
    responsible_person: Optional[str] = None
    target_date: Optional[date] = None
    implemented_at: Optional[datetime] = None
    verification_method: Optional[str] = None
    verified_at: Optional[datetime] = None
    verified_by: Optional[str] = None
    verification_notes: Optional[str] = None
    effectiveness_check: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class NcrRead(BaseModel):
    id: UUID
    ncr_number: str
    site_id: Optional[UUID] = None
    item_id: Optional[UUID] = None
    production_order_id: Optional[UUID] = None
    lot_number: Optional[str] = None
    issue_type: str
    severity: str
    description: str
    qty_affected: float
    uom: str
    status: str
    disposition: str
    disposition_notes: Optional[str] = None
    disposition_date: Optional[datetime] = None
    root_cause: Optional[str] = None
    capa_required: bool
    reported_by_user_id: Optional[UUID] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    closed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class NcrDetail(NcrRead):
    capas: List[CapaRead] = Field(default_factory=list)
