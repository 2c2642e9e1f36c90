from datetime import date
from types import SimpleNamespace
from uuid import uuid4

import pytest

from src.core.errors import AuthorizationError, ConflictError, ValidationError
from src.db.models.inventory import InventoryEvent
from src.db.models.sales import Customer, PickTask, SalesOrder, SalesOrderLine, Shipment
from src.services.sales import (
    CustomerService,
    SalesOrderService,
    allocate_lines,
    compute_line_total,
    compute_totals,
    plan_fifo_picks,
)

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


def test_line_total_applies_discount_then_tax():
    assert compute_line_total(10, 2.5, 5, 10) == (20.0, 2.0, 22.0)
    assert compute_line_total(3, 1.1) == (3.3, 0.0, 3.3)


def test_order_totals_include_shipping_and_header_discount():
    lines = [
        {"qty_ordered": 10, "unit_price": 2.5, "discount": 5, "tax_rate": 10},
        {"qty_ordered": 1, "unit_price": 100},
    ]
    assert compute_totals(lines, shipping_amount=15, discount_amount=7) == {
        "subtotal": 120.0,
        "tax_amount": 2.0,
        "total": 130.0,
    }


def _line(item_id, qty, uom="EA", status="OPEN", allocated=0.0, picked=0.0, number=1):
    return SalesOrderLine(
        id=uuid4(),
        line_number=number,
        item_id=item_id,
        qty_ordered=qty,
        qty_allocated=allocated,
        qty_picked=picked,
        qty_shipped=0.0,
        uom=uom,
        unit_price=1.0,
        status=status,
    )


def test_allocation_shares_one_pool_per_item():
    item = uuid4()
    cases = _line(item, 2, "CASE")
    singles = _line(item, 10, number=2)
    cancelled = _line(item, 50, status="CANCELLED", number=3)

    rows = allocate_lines([cases, singles, cancelled], {item: 30}, {cases.id: 12})

    assert [r["line_id"] for r in rows] == [cases.id, singles.id]
    assert cases.qty_allocated == 2
    assert cases.status == "ALLOCATED"
    assert singles.qty_allocated == 6
    assert singles.status == "OPEN"
    assert rows[1]["shortfall"] == 4
    assert rows[1]["available"] == 6
    assert cancelled.qty_allocated == 0


def test_fifo_plan_consumes_balances_across_lines():
    item = uuid4()
    old = SimpleNamespace(item_id=item, location_id=uuid4(), qty_base=5)
    new = SimpleNamespace(item_id=item, location_id=uuid4(), qty_base=20)
    other = SimpleNamespace(item_id=uuid4(), location_id=uuid4(), qty_base=99)
    first = _line(item, 8, allocated=8)
    second = _line(item, 10, allocated=10, picked=4)

    plan = plan_fifo_picks([first, second], [other, old, new])

    assert [(p["sales_order_line_id"], p["location_id"], p["qty_to_pick"]) for p in plan] == [
        (first.id, old.location_id, 5),
        (first.id, new.location_id, 3),
        (second.id, new.location_id, 6),
    ]


async def test_customer_codes_are_unique(audit):
    service = CustomerService(None)
    service.repo = FakeRepo(get_customer_by_code=Customer(id=uuid4(), code="C-1", name="Corner Shop"))
    service.audit = audit
    with pytest.raises(ConflictError):
        await service.create_customer(make_ctx("Sales"), {"code": "C-1", "name": "Corner Shop"})


class FakeSalesRepo(FakeRepo):
    """Serves the order and whatever pick tasks and shipments were added."""

    def __init__(self, order=None, **returns):
        super().__init__(count_pick_tasks=0, count_shipments=0, get_order_by_number=None, **returns)
        self.order = order

    async def get_order(self, order_id):
        return self.order

    async def list_pick_tasks(self, order_id):
        return self.added_of(PickTask)

    async def get_pick_task(self, task_id):
        return next((t for t in self.added_of(PickTask) if t.id == task_id), None)

    async def list_shipments(self, order_id):
        return self.added_of(Shipment)


def _order(status, lines):
    return SalesOrder(
        id=uuid4(),
        site_id=SITE_ID,
        customer_id=uuid4(),
        order_number="SO-1001",
        status=status,
        order_date=date(2024, 3, 1),
        lines=list(lines),
    )


def _service(audit, order=None, items=(), balances=(), customer=None):
    service = SalesOrderService(None)
    service.repo = FakeSalesRepo(order)
    service.customer_repo = FakeRepo(get_customer=customer)
    service.item_repo = FakeItemRepo(items)
    service.inventory = make_inventory_service(items=items, balances=balances)
    service.inventory_repo = service.inventory.repo
    service.audit = audit
    return service


async def test_create_order_fills_ship_to_from_the_customer(audit):
    ctx = make_ctx("Sales")
    cookies = make_item("FG-COOKIE-12", "EA")
    customer = Customer(id=uuid4(), code="C-1", name="Corner Shop", shipping_city="Leeds", is_active=True)
    service = _service(audit, items=[cookies], customer=customer)

    order = await service.create_order(
        ctx,
        site_id=SITE_ID,
        customer_id=customer.id,
        order_number="SO-1001",
        shipping_amount=5,
        lines=[{"item_id": cookies.id, "qty_ordered": 10, "uom": "EA", "unit_price": 2.5, "tax_rate": 10}],
    )

    assert order.status == "DRAFT"
    assert order.ship_to_name == "Corner Shop"
    assert order.ship_to_city == "Leeds"
    assert (order.subtotal, order.tax_amount, order.total) == (25.0, 2.5, 32.5)
    assert order.lines[0].line_total == 27.5


async def test_create_order_rejects_inactive_customers_and_unknown_items(audit):
    ctx = make_ctx("Sales")
    cookies = make_item("FG-COOKIE-12", "EA")
    line = {"item_id": cookies.id, "qty_ordered": 1, "uom": "EA"}

    inactive = Customer(id=uuid4(), code="C-2", name="Closed", is_active=False)
    with pytest.raises(ValidationError, match="inactive"):
        await _service(audit, items=[cookies], customer=inactive).create_order(
            ctx, site_id=SITE_ID, customer_id=inactive.id, order_number="SO-1", lines=[line]
        )

    active = Customer(id=uuid4(), code="C-1", name="Open", is_active=True)
    with pytest.raises(ValidationError, match="items not found"):
        await _service(audit, customer=active).create_order(
            ctx, site_id=SITE_ID, customer_id=active.id, order_number="SO-1", lines=[line]
        )


async def test_only_draft_orders_are_editable(audit):
    order = _order("CONFIRMED", [])
    with pytest.raises(ValidationError, match="draft"):
        await _service(audit, order).update_order(make_ctx("Sales"), order.id, {"notes": "rush"})


async def test_order_to_delivery(audit):
    ctx = make_ctx("Sales")
    cookies = make_item("FG-COOKIE-12", "EA", {"CASE": 12})
    first, second = make_location(label="A-01"), make_location(label="A-02")
    line = _line(cookies.id, 2, "CASE")
    order = _order("DRAFT", [line])
    service = _service(
        audit,
        order,
        items=[cookies],
        balances=[make_balance(cookies.id, first.id, 10), make_balance(cookies.id, second.id, 20)],
    )

    await service.confirm_order(ctx, order.id)
    assert order.status == "CONFIRMED"

    result = await service.allocate(ctx, order.id)
    assert result["fully_allocated"] is True
    assert order.status == "ALLOCATED"
    assert line.qty_allocated == 2

    task = await service.create_pick_task(ctx, order.id)
    assert task.task_number == "PICK-000001"
    assert [(l.location_id, l.qty_to_pick, l.uom) for l in task.lines] == [(first.id, 10, "EA"), (second.id, 14, "EA")]
    assert order.status == "PICKING"
    assert line.status == "PICKING"

    with pytest.raises(ValidationError):
        await service.ship_order(ctx, order.id)

    await service.complete_pick_task(ctx, task.id)
    assert task.status == "COMPLETED"
    assert line.status == "PICKED"
    assert order.status == "PACKED"

    shipment = await service.ship_order(ctx, order.id, carrier="DHL")
    assert shipment.shipment_number == "SHP-000001"
    assert order.status == "SHIPPED"
    assert line.status == "SHIPPED"
    assert line.qty_shipped == pytest.approx(2)
    assert service.inventory_repo.qty(cookies.id, first.id) == 0
    assert service.inventory_repo.qty(cookies.id, second.id) == 6
    events = service.inventory_repo.added_of(InventoryEvent)
    assert [e.event_type for e in events] == ["SHIP", "SHIP"]

    await service.deliver_order(ctx, order.id)
    assert order.status == "DELIVERED"
    assert shipment.status == "DELIVERED"
    assert shipment.delivered_at is not None


async def test_partial_allocation_keeps_the_order_confirmed(audit):
    cookies = make_item("FG-COOKIE-12", "EA")
    line = _line(cookies.id, 10)
    order = _order("CONFIRMED", [line])
    service = _service(audit, order, items=[cookies], balances=[make_balance(cookies.id, uuid4(), 4)])

    result = await service.allocate(make_ctx("Sales"), order.id)

    assert result["fully_allocated"] is False
    assert result["lines"][0]["shortfall"] == 6
    assert order.status == "CONFIRMED"


async def test_pick_task_needs_stock(audit):
    cookies = make_item("FG-COOKIE-12", "EA")
    order = _order("ALLOCATED", [_line(cookies.id, 1, status="ALLOCATED", allocated=1)])
    with pytest.raises(ValidationError, match="No items to pick"):
        await _service(audit, order, items=[cookies]).create_pick_task(make_ctx("Sales"), order.id)


async def test_cancel_closes_lines_and_open_pick_tasks(audit):
    line = _line(uuid4(), 1, status="PICKING")
    order = _order("PICKING", [line])
    service = _service(audit, order)
    task = PickTask(id=uuid4(), site_id=SITE_ID, sales_order_id=order.id, task_number="PICK-000001", status="PENDING", lines=[])
    await service.repo.add(task)

    await service.cancel_order(make_ctx("Sales"), order.id, reason="customer called")

    assert order.status == "CANCELLED"
    assert line.status == "CANCELLED"
    assert task.status == "CANCELLED"
    assert audit.records[-1][3] == {"from": "PICKING", "to": "CANCELLED", "reason": "customer called"}


def test_fifo_plan_skips_stock_already_picked():
    item = uuid4()
    shelf = SimpleNamespace(item_id=item, location_id=uuid4(), qty_base=10)
    line = _line(item, 10, allocated=10, picked=6)

    plan = plan_fifo_picks([line], [shelf], reserved={(item, shelf.location_id): 8})

    assert [p["qty_to_pick"] for p in plan] == [2]


async def test_short_pick_gets_a_follow_up_task(audit):
    ctx = make_ctx("Sales")
    cookies = make_item("FG-COOKIE-12", "EA")
    first, second = make_location(label="A-01"), make_location(label="A-02")
    line = _line(cookies.id, 12, status="ALLOCATED", allocated=12)
    order = _order("ALLOCATED", [line])
    service = _service(
        audit,
        order,
        items=[cookies],
        balances=[make_balance(cookies.id, first.id, 10), make_balance(cookies.id, second.id, 5)],
    )

    task = await service.create_pick_task(ctx, order.id)
    from_first, from_second = task.lines
    await service.complete_pick_task(ctx, task.id, {from_first.id: 10, from_second.id: 0})
    assert line.status == "PICKING"
    assert order.status == "PICKING"

    follow_up = await service.create_pick_task(ctx, order.id)
    assert [(l.location_id, l.qty_to_pick) for l in follow_up.lines] == [(second.id, 2)]
    assert order.status == "PICKING"

    await service.complete_pick_task(ctx, follow_up.id)
    assert line.qty_picked == 12
    assert line.status == "PICKED"
    assert order.status == "PACKED"


async def test_no_follow_up_while_a_pick_is_open(audit):
    ctx = make_ctx("Sales")
    cookies = make_item("FG-COOKIE-12", "EA")
    shelf = make_location()
    order = _order("ALLOCATED", [_line(cookies.id, 3, status="ALLOCATED", allocated=3)])
    service = _service(audit, order, items=[cookies], balances=[make_balance(cookies.id, shelf.id, 10)])

    await service.create_pick_task(ctx, order.id)
    with pytest.raises(ValidationError, match="already has active pick tasks"):
        await service.create_pick_task(ctx, order.id)


@pytest.mark.parametrize(
    "status, operation",
    [
        ("DRAFT", "update"),
        ("DRAFT", "confirm"),
        ("CONFIRMED", "allocate"),
        ("ALLOCATED", "pick"),
        ("PACKED", "ship"),
        ("SHIPPED", "deliver"),
        ("CONFIRMED", "cancel"),
    ],
)
async def test_orders_at_other_sites_are_off_limits(audit, status, operation):
    outsider = make_ctx("Sales", site_ids=[OTHER_SITE_ID])
    order = _order(status, [_line(uuid4(), 1)])
    service = _service(audit, order)
    calls = {
        "update": lambda: service.update_order(outsider, order.id, {"notes": "rush"}),
        "confirm": lambda: service.confirm_order(outsider, order.id),
        "allocate": lambda: service.allocate(outsider, order.id),
        "pick": lambda: service.create_pick_task(outsider, order.id),
        "ship": lambda: service.ship_order(outsider, order.id),
        "deliver": lambda: service.deliver_order(outsider, order.id),
        "cancel": lambda: service.cancel_order(outsider, order.id),
    }

    with pytest.raises(AuthorizationError, match="Site access denied"):
        await calls[operation]()
    assert order.status == status
    assert service.repo.commits == 0


async def test_pick_tasks_at_other_sites_are_off_limits(audit):
    order = _order("PICKING", [_line(uuid4(), 1, status="PICKING", allocated=1)])
    service = _service(audit, order)
    task = PickTask(id=uuid4(), site_id=SITE_ID, sales_order_id=order.id, task_number="PICK-000001", status="PENDING", lines=[])
    await service.repo.add(task)

    with pytest.raises(AuthorizationError, match="Site access denied"):
        await service.complete_pick_task(make_ctx("Sales", site_ids=[OTHER_SITE_ID]), task.id)
    assert task.status == "PENDING"
