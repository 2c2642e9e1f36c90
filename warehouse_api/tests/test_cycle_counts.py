from types import SimpleNamespace
from uuid import uuid4

import pytest

from src.core.errors import AuthorizationError, NotFoundError, ValidationError
from src.db.models.inventory import CycleCount, CycleCountLine, InventoryEvent
from src.services.cycle_counts import CycleCountService, summarize_lines

from tests.fakes import (
    OTHER_SITE_ID,
    SITE_ID,
    FakeRepo,
    make_balance,
    make_ctx,
    make_inventory_service,
    make_item,
    make_location,
)


def _service(audit, count=None, items=(), balances=()):
    service = CycleCountService(None)
    service.inventory = make_inventory_service(items=items, balances=balances)
    service.inventory_repo = service.inventory.repo
    service.repo = FakeRepo(get_count=count)
    service.audit = audit
    return service


def _count(status="IN_PROGRESS", lines=()):
    return CycleCount(id=uuid4(), site_id=SITE_ID, name="Aisle A", status=status, lines=list(lines))


def _line(item_id, location_id, expected, status="PENDING", counted=None):
    return CycleCountLine(
        id=uuid4(),
        item_id=item_id,
        location_id=location_id,
        expected_qty_base=expected,
        counted_qty_base=counted,
        variance_qty_base=None if counted is None else counted - expected,
        status=status,
    )


async def test_create_count_snapshots_matching_balances(inventory_ctx, audit):
    item = make_item()
    shelf, dock = make_location(), make_location(loc_type="RECEIVING")
    balances = [
        make_balance(item.id, shelf.id, 12),
        make_balance(item.id, dock.id, 4),
        make_balance(item.id, make_location(site_id=OTHER_SITE_ID).id, 9, site_id=OTHER_SITE_ID),
    ]
    service = _service(audit, balances=balances)

    count = await service.create_count(inventory_ctx, site_id=SITE_ID, name="Aisle A", location_ids=[shelf.id])

    assert count.status == "SCHEDULED"
    assert [(line.location_id, line.expected_qty_base, line.status) for line in count.lines] == [
        (shelf.id, 12.0, "PENDING")
    ]
    assert service.repo.commits == 1
    assert audit.actions() == ["create"]


async def test_record_count_starts_a_scheduled_count(inventory_ctx, audit):
    line = _line(uuid4(), uuid4(), 10)
    count = _count("SCHEDULED", [line])
    service = _service(audit, count)

    recorded = await service.record_count(inventory_ctx, count.id, line.id, 8, notes="two bags torn")

    assert count.status == "IN_PROGRESS"
    assert count.started_at is not None
    assert recorded.status == "COUNTED"
    assert recorded.variance_qty_base == -2
    assert recorded.counted_by_user_id == inventory_ctx.user_id
    assert recorded.notes == "two bags torn"


async def test_record_count_rejects_negative_and_closed_counts(inventory_ctx, audit):
    line = _line(uuid4(), uuid4(), 10)
    service = _service(audit, _count(lines=[line]))
    with pytest.raises(ValidationError, match="cannot be negative"):
        await service.record_count(inventory_ctx, uuid4(), line.id, -1)

    service = _service(audit, _count("COMPLETED", [line]))
    with pytest.raises(ValidationError, match="must be in progress"):
        await service.record_count(inventory_ctx, uuid4(), line.id, 3)


async def test_unknown_line(inventory_ctx, audit):
    service = _service(audit, _count(lines=[]))
    with pytest.raises(NotFoundError):
        await service.record_count(inventory_ctx, uuid4(), uuid4(), 1)


async def test_complete_requires_every_line_counted(supervisor_ctx, audit):
    count = _count(lines=[_line(uuid4(), uuid4(), 1), _line(uuid4(), uuid4(), 2, "COUNTED", 2)])
    service = _service(audit, count)

    with pytest.raises(ValidationError, match="1 lines have not been counted"):
        await service.update_status(supervisor_ctx, count.id, "COMPLETED")

    count.lines[0].status = "COUNTED"
    await service.update_status(supervisor_ctx, count.id, "COMPLETED")
    assert count.status == "COMPLETED"
    assert count.completed_at is not None


async def test_delete_only_scheduled_or_cancelled(supervisor_ctx, audit):
    service = _service(audit, _count("IN_PROGRESS"))
    with pytest.raises(ValidationError):
        await service.delete_count(supervisor_ctx, uuid4())

    count = _count("SCHEDULED", [_line(uuid4(), uuid4(), 1)])
    service = _service(audit, count)
    await service.delete_count(supervisor_ctx, count.id)
    assert count.status == "CANCELLED"
    assert count.lines == []


async def test_only_admin_or_supervisor_approve(inventory_ctx, audit):
    service = _service(audit, _count())
    with pytest.raises(AuthorizationError):
        await service.approve_variance(inventory_ctx, uuid4(), uuid4(), True)


async def test_approved_variance_adjusts_the_balance(supervisor_ctx, audit):
    item = make_item(base_uom="EA")
    shelf = make_location()
    line = _line(item.id, shelf.id, 10, "COUNTED", 7)
    count = _count(lines=[line])
    service = _service(audit, count, items=[item], balances=[make_balance(item.id, shelf.id, 10)])

    approved = await service.approve_variance(supervisor_ctx, count.id, line.id, True)

    assert approved.status == "VARIANCE_APPROVED"
    assert approved.approved_by_user_id == supervisor_ctx.user_id
    assert service.inventory_repo.qty(item.id, shelf.id) == 7
    (event,) = service.inventory_repo.added_of(InventoryEvent)
    assert event.event_type == "ADJUST"
    assert event.qty_base == 3
    assert event.from_location_id == shelf.id
    assert event.to_location_id is None
    assert event.uom_entered == "EA"
    assert event.reason_code == "CYCLE_COUNT"
    # one commit for the line and the adjustment together
    assert service.inventory_repo.commits == 0
    assert service.repo.commits == 1


async def test_found_stock_is_adjusted_into_the_location(supervisor_ctx, audit):
    item = make_item(base_uom="EA")
    shelf = make_location()
    line = _line(item.id, shelf.id, 10, "COUNTED", 14)
    service = _service(audit, _count(lines=[line]), items=[item], balances=[make_balance(item.id, shelf.id, 10)])

    await service.approve_variance(supervisor_ctx, uuid4(), line.id, True)

    (event,) = service.inventory_repo.added_of(InventoryEvent)
    assert (event.qty_entered, event.qty_base) == (4, 4)
    assert event.to_location_id == shelf.id
    assert event.from_location_id is None
    assert service.inventory_repo.qty(item.id, shelf.id) == 14


async def test_rejected_variance_leaves_stock_alone(supervisor_ctx, audit):
    item = make_item()
    shelf = make_location()
    line = _line(item.id, shelf.id, 10, "COUNTED", 7)
    service = _service(audit, _count(lines=[line]), items=[item], balances=[make_balance(item.id, shelf.id, 10)])

    await service.approve_variance(supervisor_ctx, uuid4(), line.id, False)

    assert line.status == "VARIANCE_REJECTED"
    assert service.inventory_repo.qty(item.id, shelf.id) == 10
    assert service.inventory_repo.added == []
    assert audit.actions() == ["variance_rejected"]


async def test_variance_needs_a_counted_line(supervisor_ctx, audit):
    line = _line(uuid4(), uuid4(), 1)
    service = _service(audit, _count(lines=[line]))
    with pytest.raises(ValidationError, match="must be COUNTED"):
        await service.approve_variance(supervisor_ctx, uuid4(), line.id, True)


def test_summarize_lines():
    lines = [
        SimpleNamespace(status="PENDING", variance_qty_base=None),
        SimpleNamespace(status="COUNTED", variance_qty_base=0),
        SimpleNamespace(status="VARIANCE_APPROVED", variance_qty_base=-2),
    ]
    assert summarize_lines(lines) == {
        "total_lines": 3,
        "counted_lines": 2,
        "pending_lines": 1,
        "variance_lines": 1,
    }


@pytest.mark.parametrize("operation", ["status", "record", "delete", "approve"])
async def test_counts_at_other_sites_are_off_limits(audit, operation):
    outsider = make_ctx("Supervisor", site_ids=[OTHER_SITE_ID])
    line = _line(uuid4(), uuid4(), 10, "COUNTED", 7)
    count = _count("SCHEDULED" if operation == "delete" else "IN_PROGRESS", [line])
    service = _service(audit, count)

    with pytest.raises(AuthorizationError, match="Site access denied"):
        if operation == "status":
            await service.update_status(outsider, count.id, "CANCELLED")
        elif operation == "record":
            await service.record_count(outsider, count.id, line.id, 9)
        elif operation == "delete":
            await service.delete_count(outsider, count.id)
        else:
            await service.approve_variance(outsider, count.id, line.id, True)
    assert line.counted_qty_base == 7
    assert service.repo.commits == 0
