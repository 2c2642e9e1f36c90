from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class WsEnvelope(BaseModel):
    """Envelope for WebSocket messages."""
    type: str = Field(..., description="Message type (e.g., 'dashboard.snapshot', 'inventory.event').")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Message payload.")
    at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), description="Timestamp (UTC).")
    user_id: Optional[UUID] = Field(default=None, description="Sender user id, if applicable.")


class DashboardEvent(BaseModel):
    """Business event pushed to dashboard subscribers so they can refresh."""
    event: str = Field(..., description="Event name (e.g., 'inventory.event_applied', 'production.output').")
    details: Dict[str, Any] = Field(default_factory=dict, description="Event details.")
    at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), description="Event timestamp (UTC).")
    user_id: Optional[UUID] = Field(default=None, description="Initiating user id, if known.")
