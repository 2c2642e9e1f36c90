from uuid import uuid4

from src.services.dashboard import DashboardService, stock_alerts, suggested_replenishments

from tests.fakes import FakeItemRepo, FakeRepo, make_item


def _items():
    flour = make_item("RM-FLOUR-25", "KG", reorder_point_base=100, max_qty_base=500, lead_time_days=3)
    sugar = make_item("RM-SUGAR-25", "KG", reorder_point_base=50)
    salt = make_item("RM-SALT-1", "KG")
    return flour, sugar, salt


def test_stock_alerts_count_low_and_empty_items():
    flour, sugar, salt = _items()
    on_hand = {flour.id: 100.0, sugar.id: 60.0}

    assert stock_alerts([flour, sugar, salt], on_hand) == {"low_stock_items": 1, "out_of_stock_items": 1}


def test_suggested_replenishments_order_by_shortfall():
    flour, sugar, salt = _items()
    on_hand = {flour.id: 80.0, sugar.id: 10.0}

    rows = suggested_replenishments([flour, sugar, salt], on_hand)

    assert [row["sku"] for row in rows] == ["RM-SUGAR-25", "RM-FLOUR-25"]
    assert rows[0]["suggested_qty"] == 40.0
    assert rows[1]["suggested_qty"] == 420.0
    assert rows[1]["lead_time_days"] == 3


def test_items_at_reorder_point_need_no_replenishment():
    flour, _, _ = _items()
    assert suggested_replenishments([flour], {flour.id: 100.0}) == []


async def test_stats_combine_every_module():
    flour, sugar, salt = _items()
    service = DashboardService(None)
    service.item_repo = FakeItemRepo([flour, sugar, salt])
    service.inventory_repo = FakeRepo(
        on_hand_by_item={flour.id: 250.0, sugar.id: 20.0},
        top_moving_items=[(flour.id, 12), (uuid4(), 2)],
        total_stock=270.0,
        count_events_since=31,
    )
    service.production_repo = FakeRepo(count_by_status={"PLANNED": 2, "RELEASED": 1, "IN_PROGRESS": 3, "COMPLETED": 7})
    service.job_repo = FakeRepo(count_by_status=4)
    service.quality_repo = FakeRepo(count_ncrs_by_status=1)
    service.count_repo = FakeRepo(count_by_status=2)
    service.cold_chain_repo = FakeRepo(count_active_excursions=0)

    stats = await service.stats()

    assert stats["total_items"] == 3
    assert stats["total_stock"] == 270.0
    assert stats["recent_transactions"] == 31
    assert (stats["planned_production"], stats["active_production"], stats["completed_production"]) == (2, 4, 7)
    assert (stats["open_jobs"], stats["open_ncrs"], stats["pending_cycle_counts"]) == (4, 1, 2)
    assert stats["low_stock_items"] == 1
    assert stats["out_of_stock_items"] == 1
    assert stats["top_moving_items"][0] == {"item_id": flour.id, "sku": "RM-FLOUR-25", "name": flour.name, "event_count": 12}
    assert stats["top_moving_items"][1]["sku"] is None
