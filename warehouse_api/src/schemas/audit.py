from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class AuditEventRead(BaseModel):
    """Who did what to which entity."""
    id: UUID
    user_id: Optional[UUID] = None
    action: str = Field(..., description="create, update, status_change, ...")
    entity_type: str
    entity_id: Optional[UUID] = None
    details: Optional[str] = Field(None, description="JSON encoded details")
    ip_address: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
