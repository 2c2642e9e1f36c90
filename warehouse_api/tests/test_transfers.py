from datetime import datetime, timezone
from uuid import uuid4

import pytest

from src.core.errors import AuthorizationError, InventoryError, ValidationError
from src.db.models.inventory import InventoryEvent
from src.db.models.transfers import TransferLine, TransferOrder
from src.services.transfers import TransferService, line_variance

from tests.fakes import (
    OTHER_SITE_ID,
    SITE_ID,
    FakeItemRepo,
    FakeRepo,
    make_balance,
    make_ctx,
    make_inventory_service,
    make_item,
    make_location,
)


@pytest.fixture
def both_sites():
    return make_ctx("Inventory", site_ids=[SITE_ID, OTHER_SITE_ID])


def test_line_variance():
    assert line_variance(10, 10, 0) == 0
    assert line_variance(10, 7, 2) == 1
    assert line_variance(0.3, 0.1, 0.2) == 0


def _service(audit, transfer=None, items=(), balances=(), count=0, transfers=()):
    service = TransferService(None)
    service.repo = FakeRepo(get_transfer=transfer, count_transfers=count, list_transfers=list(transfers))
    service.item_repo = FakeItemRepo(items)
    service.inventory = make_inventory_service(items=items, balances=balances)
    service.audit = audit
    return service


def _transfer(status, lines):
    return TransferOrder(
        id=uuid4(),
        transfer_number="TRF-000001",
        from_site_id=SITE_ID,
        to_site_id=OTHER_SITE_ID,
        status=status,
        priority="NORMAL",
        lines=list(lines),
    )


def _line(item_id, from_location_id, qty, shipped=0.0, to_location_id=None, status="PENDING"):
    return TransferLine(
        id=uuid4(),
        item_id=item_id,
        from_location_id=from_location_id,
        to_location_id=to_location_id,
        requested_qty=qty,
        shipped_qty=shipped,
        received_qty=0.0,
        damaged_qty=0.0,
        variance_qty=0.0,
        status=status,
    )


async def test_create_transfer(both_sites, audit):
    item_id, shelf_id = uuid4(), uuid4()
    service = _service(audit)

    transfer = await service.create_transfer(
        both_sites,
        from_site_id=SITE_ID,
        to_site_id=OTHER_SITE_ID,
        priority="HIGH",
        lines=[{"item_id": item_id, "from_location_id": shelf_id, "requested_qty": 40, "lot_number": "L-0301"}],
    )

    assert transfer.transfer_number == "TRF-000001"
    assert transfer.status == "DRAFT"
    assert transfer.requested_by_user_id == both_sites.user_id
    (line,) = transfer.lines
    assert (line.requested_qty, line.shipped_qty, line.status, line.lot_number) == (40.0, 0.0, "PENDING", "L-0301")


@pytest.mark.parametrize(
    "kwargs, message",
    [
        ({"to_site_id": SITE_ID}, "must be different"),
        ({"priority": "ASAP"}, "Invalid priority"),
        ({"lines": []}, "at least one line"),
        ({"lines": [{"item_id": "x", "from_location_id": "y", "requested_qty": 0}]}, "at least 1"),
        ({"lines": [{"item_id": "x", "requested_qty": 2}]}, "from_location_id is required"),
    ],
)
async def test_create_transfer_validation(both_sites, audit, kwargs, message):
    params = {
        "from_site_id": SITE_ID,
        "to_site_id": OTHER_SITE_ID,
        "lines": [{"item_id": "x", "from_location_id": "y", "requested_qty": 1}],
    }
    params.update(kwargs)
    with pytest.raises(ValidationError, match=message):
        await _service(audit).create_transfer(both_sites, **params)


async def test_create_transfer_needs_source_site_access(audit):
    ctx = make_ctx("Inventory", site_ids=[OTHER_SITE_ID])
    with pytest.raises(AuthorizationError):
        await _service(audit).create_transfer(
            ctx, from_site_id=SITE_ID, to_site_id=OTHER_SITE_ID, lines=[{"item_id": "x", "from_location_id": "y", "requested_qty": 1}]
        )


async def test_ship_posts_transfer_out(both_sites, audit):
    flour = make_item("RM-FLOUR-25", "KG")
    shelf = make_location()
    line = _line(flour.id, shelf.id, 40)
    transfer = _transfer("DRAFT", [line])
    service = _service(audit, transfer, items=[flour], balances=[make_balance(flour.id, shelf.id, 100)])

    with pytest.raises(ValidationError, match="Only APPROVED"):
        await service.ship(both_sites, transfer.id)

    await service.approve(both_sites, transfer.id)
    assert transfer.approved_by_user_id == both_sites.user_id

    await service.ship(both_sites, transfer.id, carrier="Own fleet")

    assert transfer.status == "SHIPPED"
    assert transfer.shipped_at is not None
    assert (line.shipped_qty, line.status) == (40, "SHIPPED")
    assert service.inventory.repo.qty(flour.id, shelf.id) == 60
    (event,) = service.inventory.repo.added_of(InventoryEvent)
    assert (event.event_type, event.uom_entered, event.reference_id) == ("TRANSFER_OUT", "KG", str(transfer.id))


async def test_ship_without_stock_keeps_the_transfer_approved(both_sites, audit):
    flour = make_item("RM-FLOUR-25", "KG")
    shelf = make_location()
    transfer = _transfer("APPROVED", [_line(flour.id, shelf.id, 40)])
    service = _service(audit, transfer, items=[flour], balances=[make_balance(flour.id, shelf.id, 10)])

    with pytest.raises(InventoryError, match="Negative balance prevented"):
        await service.ship(both_sites, transfer.id)
    assert transfer.status == "APPROVED"
    assert service.repo.commits == 0


async def test_receive_records_variance(both_sites, audit):
    flour = make_item("RM-FLOUR-25", "KG")
    planned = make_location(site_id=OTHER_SITE_ID)
    chosen = make_location(site_id=OTHER_SITE_ID)
    full = _line(flour.id, uuid4(), 40, shipped=40, to_location_id=planned.id, status="SHIPPED")
    short = _line(flour.id, uuid4(), 20, shipped=20, status="SHIPPED")
    transfer = _transfer("SHIPPED", [full, short])
    service = _service(audit, transfer, items=[flour])

    await service.receive(
        both_sites,
        transfer.id,
        [
            {"line_id": full.id, "received_qty": 40},
            {"line_id": short.id, "received_qty": 17, "damaged_qty": 2, "to_location_id": chosen.id},
        ],
    )

    assert transfer.status == "RECEIVED"
    assert transfer.received_at is not None
    assert (full.status, full.variance_qty) == ("RECEIVED", 0)
    assert (short.status, short.variance_qty, short.to_location_id) == ("VARIANCE", 1, chosen.id)
    assert service.inventory.repo.qty(flour.id, planned.id) == 40
    assert service.inventory.repo.qty(flour.id, chosen.id) == 17
    assert {e.event_type for e in service.inventory.repo.added_of(InventoryEvent)} == {"TRANSFER_IN"}


async def test_receive_needs_a_destination(both_sites, audit):
    line = _line(uuid4(), uuid4(), 5, shipped=5, status="SHIPPED")
    service = _service(audit, _transfer("SHIPPED", [line]))
    with pytest.raises(ValidationError, match="to_location_id is required"):
        await service.receive(both_sites, uuid4(), [{"line_id": line.id, "received_qty": 5}])


async def test_cancel(both_sites, audit):
    transfer = _transfer("APPROVED", [])
    service = _service(audit, transfer)

    with pytest.raises(ValidationError, match="reason is required"):
        await service.cancel(both_sites, transfer.id, "")

    await service.cancel(both_sites, transfer.id, "stock found locally")
    assert transfer.status == "CANCELLED"
    assert transfer.cancel_reason == "stock found locally"

    with pytest.raises(ValidationError, match="Only DRAFT or APPROVED"):
        await _service(audit, _transfer("SHIPPED", [])).cancel(both_sites, uuid4(), "too late")


async def test_in_transit_lists_shipped_lines(audit):
    transfer = _transfer("SHIPPED", [_line(uuid4(), uuid4(), 5, shipped=5), _line(uuid4(), uuid4(), 3, shipped=3)])
    transfer.carrier = "Own fleet"
    transfer.shipped_at = datetime(2024, 3, 1, tzinfo=timezone.utc)
    service = _service(audit, transfers=[transfer])

    rows = await service.in_transit()

    assert [row["shipped_qty"] for row in rows] == [5.0, 3.0]
    assert rows[0]["carrier"] == "Own fleet"
    assert rows[0]["transfer_number"] == "TRF-000001"


async def test_lines_missing_from_the_receipt_are_variance(both_sites, audit):
    flour = make_item("RM-FLOUR-25", "KG")
    dock = make_location(site_id=OTHER_SITE_ID)
    first = _line(flour.id, uuid4(), 10, shipped=10, to_location_id=dock.id, status="SHIPPED")
    second = _line(flour.id, uuid4(), 6, shipped=6, to_location_id=dock.id, status="SHIPPED")
    service = _service(audit, _transfer("SHIPPED", [first, second]), items=[flour])

    transfer = await service.receive(both_sites, uuid4(), [{"line_id": first.id, "received_qty": 10}])

    assert transfer.status == "RECEIVED"
    assert (first.status, first.variance_qty) == ("RECEIVED", 0)
    assert (second.status, second.received_qty, second.variance_qty) == ("VARIANCE", 0, 6)
    assert service.inventory.repo.qty(flour.id, dock.id) == 10


async def test_receive_into_a_location_of_another_site(both_sites, audit):
    flour = make_item("RM-FLOUR-25", "KG")
    source_shelf = make_location(site_id=SITE_ID)
    line = _line(flour.id, uuid4(), 5, shipped=5, status="SHIPPED")
    transfer = _transfer("SHIPPED", [line])
    service = _service(audit, transfer, items=[flour])

    with pytest.raises(ValidationError, match="Location not found at site"):
        await service.receive(both_sites, transfer.id, [{"line_id": line.id, "received_qty": 5, "to_location_id": source_shelf.id}])
    assert transfer.status == "SHIPPED"
    assert service.repo.commits == 0
