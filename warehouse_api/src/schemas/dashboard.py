from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class TopMovingItem(BaseModel):
    item_id: UUID
    sku: Optional[str] = None
    name: Optional[str] = None
    event_count: int


class DashboardStats(BaseModel):
    """Tenant-wide KPIs; also pushed over the dashboard WebSocket."""
    total_items: int = Field(..., description="Active items")
    total_stock: float = Field(..., description="Sum of all balances in base units")
    low_stock_items: int = Field(..., description="Items at or below their reorder point")
    out_of_stock_items: int
    recent_transactions: int = Field(..., description="Inventory events in the last 24 hours")
    active_production: int = Field(..., description="RELEASED or IN_PROGRESS production orders")
    planned_production: int
    completed_production: int
    open_jobs: int
    open_ncrs: int
    pending_cycle_counts: int
    active_excursions: int
    top_moving_items: List[TopMovingItem] = Field(default_factory=list)
    generated_at: datetime


class SuggestedAction(BaseModel):
    item_id: UUID
    sku: str
    name: str
    base_uom: str
    on_hand: float
    reorder_point: float
    suggested_qty: float
    lead_time_days: Optional[int] = None
