from __future__ import annotations

import logging
from datetime import timedelta
from typing import Dict, Iterable, List
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.repositories.cold_chain import ColdChainRepository
from src.repositories.inventory import CycleCountRepository, InventoryRepository
from src.repositories.jobs import JobRepository
from src.repositories.master_data import ItemRepository
from src.repositories.production import ProductionOrderRepository
from src.repositories.quality import QualityRepository
from src.services.base import BaseService, utcnow
from src.services.quality import OPEN_NCR_STATUSES

logger = logging.getLogger(__name__)

OPEN_JOB_STATUSES = ("OPEN", "IN_PROGRESS")
PENDING_COUNT_STATUSES = ("SCHEDULED", "IN_PROGRESS")


# PUBLIC_INTERFACE
def stock_alerts(items: Iterable, on_hand: Dict[UUID, float]) -> dict:
    """Counts of items at/below their reorder point and items with nothing on hand."""
    low = 0
    out = 0
    for item in items:
        qty = on_hand.get(item.id, 0.0)
        if item.reorder_point_base is not None and qty <= float(item.reorder_point_base):
            low += 1
        if qty <= 0:
            out += 1
    return {"low_stock_items": low, "out_of_stock_items": out}


# PUBLIC_INTERFACE
def suggested_replenishments(items: Iterable, on_hand: Dict[UUID, float]) -> List[dict]:
    """
    Items below their reorder point with a suggested order quantity of
    max(max_qty_base - on_hand, reorder_point_base - on_hand).
    """
    rows = []
    for item in items:
        if item.reorder_point_base is None:
            continue
        qty = on_hand.get(item.id, 0.0)
        reorder = float(item.reorder_point_base)
        if qty >= reorder:
            continue
        ceiling = float(item.max_qty_base) if item.max_qty_base is not None else reorder
        rows.append(
            {
                "item_id": item.id,
                "sku": item.sku,
                "name": item.name,
                "base_uom": item.base_uom,
                "on_hand": qty,
                "reorder_point": reorder,
                "suggested_qty": max(ceiling - qty, reorder - qty),
                "lead_time_days": item.lead_time_days,
            }
        )
    rows.sort(key=lambda r: r["on_hand"] - r["reorder_point"])
    return rows


class DashboardService(BaseService):
    """Aggregated tenant KPIs."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.item_repo = ItemRepository(session)
        self.inventory_repo = InventoryRepository(session)
        self.production_repo = ProductionOrderRepository(session)
        self.job_repo = JobRepository(session)
        self.quality_repo = QualityRepository(session)
        self.count_repo = CycleCountRepository(session)
        self.cold_chain_repo = ColdChainRepository(session)

    async def _active_items(self):
        return await self.item_repo.list_items(search=None, category=None, active_only=True, limit=100000, offset=0)

    # PUBLIC_INTERFACE
    async def stats(self) -> dict:
        now = utcnow()
        items = await self._active_items()
        on_hand = await self.inventory_repo.on_hand_by_item()
        by_status = await self.production_repo.count_by_status()

        top = await self.inventory_repo.top_moving_items(now - timedelta(days=7), limit=5)
        names = {item.id: item for item in items}
        top_moving = [
            {
                "item_id": item_id,
                "sku": names[item_id].sku if item_id in names else None,
                "name": names[item_id].name if item_id in names else None,
                "event_count": events,
            }
            for item_id, events in top
        ]

        stats = {
            "total_items": len(items),
            "total_stock": await self.inventory_repo.total_stock(),
            "recent_transactions": await self.inventory_repo.count_events_since(now - timedelta(hours=24)),
            "active_production": by_status.get("RELEASED", 0) + by_status.get("IN_PROGRESS", 0),
            "planned_production": by_status.get("PLANNED", 0),
            "completed_production": by_status.get("COMPLETED", 0),
            "open_jobs": await self.job_repo.count_by_status(OPEN_JOB_STATUSES),
            "open_ncrs": await self.quality_repo.count_ncrs_by_status(OPEN_NCR_STATUSES),
            "pending_cycle_counts": await self.count_repo.count_by_status(PENDING_COUNT_STATUSES),
            "active_excursions": await self.cold_chain_repo.count_active_excursions(),
            "top_moving_items": top_moving,
            "generated_at": now,
        }
        stats.update(stock_alerts(items, on_hand))
        return stats

    # PUBLIC_INTERFACE
    async def suggested_actions(self) -> List[dict]:
        items = await self._active_items()
        on_hand = await self.inventory_repo.on_hand_by_item()
        return suggested_replenishments(items, on_hand)
