from types import SimpleNamespace
from uuid import uuid4

import pytest

from src.core.errors import AuthorizationError, ConflictError, InventoryError, NotFoundError, ValidationError
from src.db.models.inventory import InventoryEvent
from src.db.models.production import Bom, BomComponent, ProductionConsumption, ProductionOrder, ProductionOutput
from src.services.production import (
    BomService,
    ProductionOrderService,
    material_requirements,
    validate_components,
    yield_analysis,
)

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


def _bom(item_id=None, status="ACTIVE", components=()):
    return Bom(
        id=uuid4(),
        item_id=item_id or uuid4(),
        bom_number="BOM-COOKIE",
        version=1,
        status=status,
        base_qty=10,
        base_uom="EA",
        components=list(components),
    )


def _order(item_id, status="RELEASED", qty=10.0, bom_id=None):
    return ProductionOrder(
        id=uuid4(),
        site_id=SITE_ID,
        order_number="PO-2024-001",
        bom_id=bom_id or uuid4(),
        item_id=item_id,
        status=status,
        priority=5,
        qty_ordered=qty,
        qty_completed=0.0,
        qty_rejected=0.0,
        uom="EA",
    )


def test_material_requirements_scale_by_base_qty_and_scrap():
    flour, sugar = uuid4(), uuid4()
    bom = SimpleNamespace(
        base_qty=10,
        components=[
            SimpleNamespace(id=uuid4(), item_id=flour, sequence=1, qty_per=2, scrap_factor=5, uom="KG",
                            issue_method="BACKFLUSH", is_optional=False),
            SimpleNamespace(id=uuid4(), item_id=sugar, sequence=2, qty_per=0.5, scrap_factor=None, uom="KG",
                            issue_method="MANUAL", is_optional=True),
        ],
    )
    rows = material_requirements(SimpleNamespace(qty_ordered=100), bom)

    assert [r["required_qty"] for r in rows] == [21.0, 5.0]
    assert rows[1]["scrap_factor"] == 0.0
    assert rows[1]["is_optional"] is True


@pytest.mark.parametrize(
    "components, message",
    [
        ([], "at least one component"),
        ([{"item_id": "self", "qty_per": 1}], "its own component"),
        ([{"item_id": "x", "qty_per": 0}], "qty_per must be greater than 0"),
        ([{"item_id": "x", "qty_per": 1, "scrap_factor": 150}], "scrap_factor must be between 0 and 100"),
        ([{"item_id": "x", "qty_per": 1, "issue_method": "TELEPATHY"}], "Invalid issue method"),
    ],
)
def test_validate_components(components, message):
    with pytest.raises(ValidationError, match=message):
        validate_components("self", components)


async def test_create_bom_rejects_duplicate_versions(audit):
    service = BomService(None)
    service.repo = FakeRepo(get_bom_version=_bom())
    service.audit = audit

    with pytest.raises(ConflictError):
        await service.create_bom(
            make_ctx("Engineering"),
            item_id=uuid4(),
            bom_number="BOM-1",
            version=1,
            base_qty=1,
            base_uom="EA",
            components=[{"item_id": uuid4(), "qty_per": 1, "uom": "KG"}],
        )


async def test_create_bom_numbers_components(audit):
    service = BomService(None)
    service.repo = FakeRepo(get_bom_version=None)
    service.audit = audit

    bom = await service.create_bom(
        make_ctx("Engineering"),
        item_id=uuid4(),
        bom_number="BOM-1",
        version=2,
        base_qty=12,
        base_uom="EA",
        components=[
            {"item_id": uuid4(), "qty_per": 1.5, "uom": "KG"},
            {"item_id": uuid4(), "qty_per": 1, "uom": "EA", "issue_method": "MANUAL"},
        ],
    )

    assert bom.status == "DRAFT"
    assert [(c.sequence, c.issue_method) for c in bom.components] == [(1, "BACKFLUSH"), (2, "MANUAL")]


async def test_activating_a_bom_needs_approval(audit):
    bom = _bom(status="DRAFT")
    service = BomService(None)
    service.repo = FakeRepo(get_bom=bom, list_active_boms_for_item=[])
    service.audit = audit

    with pytest.raises(AuthorizationError):
        await service.update_status(make_ctx("Engineering"), bom.id, "ACTIVE")
    with pytest.raises(AuthorizationError):
        await service.update_status(make_ctx("Viewer"), bom.id, "OBSOLETE")


async def test_activation_obsoletes_previous_active_bom(admin_ctx, audit):
    item_id = uuid4()
    old = _bom(item_id, "ACTIVE")
    new = _bom(item_id, "DRAFT")
    service = BomService(None)
    service.repo = FakeRepo(get_bom=new, list_active_boms_for_item=[old])
    service.audit = audit

    await service.update_status(admin_ctx, new.id, "ACTIVE")

    assert new.status == "ACTIVE"
    assert old.status == "OBSOLETE"
    assert service.repo.commits == 1


def _order_service(audit, order=None, bom=None, items=(), outputs=0, balances=(), consumptions=()):
    service = ProductionOrderService(None)
    service.repo = FakeRepo(
        get_order=order, get_order_by_number=None, count_outputs=outputs, list_consumptions=list(consumptions)
    )
    service.bom_repo = FakeRepo(get_bom=bom)
    service.inventory = make_inventory_service(items=items, balances=balances)
    service.audit = audit
    return service


async def test_orders_come_from_active_boms(supervisor_ctx, audit):
    service = _order_service(audit, bom=_bom(status="DRAFT"))
    with pytest.raises(ValidationError, match="ACTIVE BOMs"):
        await service.create_order(supervisor_ctx, site_id=SITE_ID, order_number="P-1", bom_id=uuid4(), qty_ordered=5, uom="EA")


async def test_create_order(supervisor_ctx, audit):
    bom = _bom()
    service = _order_service(audit, bom=bom)

    with pytest.raises(ValidationError, match="Priority"):
        await service.create_order(
            supervisor_ctx, site_id=SITE_ID, order_number="P-1", bom_id=bom.id, qty_ordered=5, uom="EA", priority=11
        )

    order = await service.create_order(supervisor_ctx, site_id=SITE_ID, order_number="P-1", bom_id=bom.id, qty_ordered=5, uom="EA")
    assert order.status == "PLANNED"
    assert order.item_id == bom.item_id
    assert order.qty_completed == 0


async def test_release_records_the_releasing_user(supervisor_ctx, audit):
    order = _order(uuid4(), "PLANNED")
    await _order_service(audit, order).update_order(supervisor_ctx, order.id, {"status": "RELEASED", "priority": 2})

    assert order.status == "RELEASED"
    assert order.released_by_user_id == supervisor_ctx.user_id
    assert order.priority == 2


async def test_finished_orders_are_locked(supervisor_ctx, audit):
    with pytest.raises(ValidationError, match="Cannot edit COMPLETED"):
        await _order_service(audit, _order(uuid4(), "COMPLETED")).update_order(supervisor_ctx, uuid4(), {"notes": "x"})


async def test_delete_order(supervisor_ctx, audit):
    with pytest.raises(ValidationError, match="Only PLANNED"):
        await _order_service(audit, _order(uuid4(), "RELEASED")).delete_order(supervisor_ctx, uuid4())
    with pytest.raises(ValidationError, match="recorded output"):
        await _order_service(audit, _order(uuid4(), "PLANNED"), outputs=1).delete_order(supervisor_ctx, uuid4())

    order = _order(uuid4(), "PLANNED")
    service = _order_service(audit, order)
    await service.delete_order(supervisor_ctx, order.id)
    assert service.repo.deleted == [order]


async def test_output_progresses_and_completes_the_order(operator_ctx, audit):
    cookies = make_item("FG-COOKIE-12", "EA", {"CASE": 12})
    shelf = make_location()
    order = _order(cookies.id, "RELEASED", qty=3)
    order.uom = "CASE"
    service = _order_service(audit, order, items=[cookies])

    first = await service.record_output(operator_ctx, order.id, qty_completed=1, to_location_id=shelf.id)
    assert order.status == "IN_PROGRESS"
    assert order.actual_start is not None
    assert first.uom == "CASE"
    assert first.qty_base == 12
    assert service.inventory.repo.qty(cookies.id, shelf.id) == 12
    (event,) = service.inventory.repo.added_of(InventoryEvent)
    assert event.event_type == "RECEIVE"
    assert event.reference_id == str(order.id)

    await service.record_output(operator_ctx, order.id, qty_completed=1, qty_rejected=1)
    assert order.status == "COMPLETED"
    assert order.actual_end is not None
    assert order.qty_completed == 2
    assert order.qty_rejected == 1
    assert len(service.repo.added_of(ProductionOutput)) == 2
    assert service.inventory.repo.qty(cookies.id, shelf.id) == 12


async def test_output_cannot_exceed_the_order(operator_ctx, audit):
    cookies = make_item("FG-COOKIE-12", "EA")
    order = _order(cookies.id, "IN_PROGRESS", qty=10)
    order.qty_completed = 8.0
    service = _order_service(audit, order, items=[cookies])

    with pytest.raises(ValidationError, match="exceeds ordered"):
        await service.record_output(operator_ctx, order.id, qty_completed=3)


@pytest.mark.parametrize("status", ["PLANNED", "COMPLETED", "CANCELLED"])
async def test_output_needs_a_running_order(operator_ctx, audit, status):
    service = _order_service(audit, _order(uuid4(), status))
    with pytest.raises(ValidationError, match="RELEASED or IN_PROGRESS"):
        await service.record_output(operator_ctx, uuid4(), qty_completed=1)


async def test_requirements_use_the_order_bom(operator_ctx, audit):
    comp = BomComponent(id=uuid4(), item_id=uuid4(), sequence=1, qty_per=3, scrap_factor=0, uom="KG",
                        issue_method="BACKFLUSH", is_optional=False)
    bom = _bom(components=[comp])
    order = _order(bom.item_id, bom_id=bom.id, qty=20)

    rows = await _order_service(audit, order, bom=bom).requirements(order.id)

    assert rows[0]["required_qty"] == 6.0


def _cookie_bom(cookies, flour, sugar):
    return _bom(
        cookies.id,
        components=[
            BomComponent(id=uuid4(), item_id=flour.id, sequence=1, qty_per=2, scrap_factor=5, uom="KG",
                         issue_method="BACKFLUSH", is_optional=False),
            BomComponent(id=uuid4(), item_id=sugar.id, sequence=2, qty_per=0.5, scrap_factor=0, uom="KG",
                         issue_method="MANUAL", is_optional=False),
        ],
    )


async def test_output_backflushes_components(operator_ctx, audit):
    cookies, flour, sugar = make_item("FG-COOKIE", "EA"), make_item("RM-FLOUR", "KG"), make_item("RM-SUGAR", "KG")
    line_side = make_location(loc_type="WIP")
    bom = _cookie_bom(cookies, flour, sugar)
    order = _order(cookies.id, "RELEASED", qty=20, bom_id=bom.id)
    service = _order_service(
        audit, order, bom=bom, items=[cookies, flour, sugar], balances=[make_balance(flour.id, line_side.id, 50)]
    )

    await service.record_output(operator_ctx, order.id, qty_completed=10, from_location_id=line_side.id)

    (event,) = service.inventory.repo.added_of(InventoryEvent)
    assert event.event_type == "ISSUE_TO_WORKCELL"
    assert event.item_id == flour.id
    assert event.qty_base == pytest.approx(2.1)
    assert event.reference_id == str(order.id)
    assert service.inventory.repo.qty(flour.id, line_side.id) == pytest.approx(47.9)
    (consumption,) = service.repo.added_of(ProductionConsumption)
    assert consumption.is_backflushed is True
    assert consumption.bom_component_id == bom.components[0].id
    assert consumption.qty_consumed == pytest.approx(2.1)


async def test_backflush_needs_a_source_location(operator_ctx, audit):
    cookies, flour, sugar = make_item("FG-COOKIE", "EA"), make_item("RM-FLOUR", "KG"), make_item("RM-SUGAR", "KG")
    bom = _cookie_bom(cookies, flour, sugar)
    order = _order(cookies.id, "RELEASED", qty=20, bom_id=bom.id)
    service = _order_service(audit, order, bom=bom, items=[cookies, flour, sugar])

    with pytest.raises(ValidationError, match="from_location_id is required"):
        await service.record_output(operator_ctx, order.id, qty_completed=10)
    assert order.qty_completed == 0
    assert service.repo.added == []


async def test_backflush_cannot_drive_stock_negative(operator_ctx, audit):
    cookies, flour, sugar = make_item("FG-COOKIE", "EA"), make_item("RM-FLOUR", "KG"), make_item("RM-SUGAR", "KG")
    line_side = make_location(loc_type="WIP")
    bom = _cookie_bom(cookies, flour, sugar)
    order = _order(cookies.id, "RELEASED", qty=20, bom_id=bom.id)
    service = _order_service(
        audit, order, bom=bom, items=[cookies, flour, sugar], balances=[make_balance(flour.id, line_side.id, 1)]
    )

    with pytest.raises(InventoryError, match="Negative balance prevented"):
        await service.record_output(operator_ctx, order.id, qty_completed=10, from_location_id=line_side.id)
    assert service.repo.commits == 0


async def test_manual_material_issue(operator_ctx, audit):
    cookies, flour, sugar = make_item("FG-COOKIE", "EA"), make_item("RM-FLOUR", "KG"), make_item("RM-SUGAR", "KG")
    store = make_location()
    bom = _cookie_bom(cookies, flour, sugar)
    order = _order(cookies.id, "IN_PROGRESS", qty=20, bom_id=bom.id)
    service = _order_service(
        audit, order, bom=bom, items=[cookies, flour, sugar], balances=[make_balance(sugar.id, store.id, 5)]
    )

    consumption = await service.issue_material(operator_ctx, order.id, item_id=sugar.id, qty=1.5, from_location_id=store.id)

    assert consumption.uom == "KG"
    assert consumption.is_backflushed is False
    assert service.inventory.repo.qty(sugar.id, store.id) == 3.5
    (event,) = service.inventory.repo.added_of(InventoryEvent)
    assert (event.event_type, event.from_location_id) == ("ISSUE_TO_WORKCELL", store.id)
    assert service.repo.commits == 1
    assert audit.actions() == ["material_issue"]


async def test_manual_issue_rules(operator_ctx, audit):
    cookies, flour, sugar = make_item("FG-COOKIE", "EA"), make_item("RM-FLOUR", "KG"), make_item("RM-SUGAR", "KG")
    store = make_location()
    bom = _cookie_bom(cookies, flour, sugar)

    service = _order_service(audit, _order(cookies.id, "IN_PROGRESS", bom_id=bom.id), bom=bom, items=[cookies, sugar])
    with pytest.raises(ValidationError, match="not a component"):
        await service.issue_material(operator_ctx, uuid4(), item_id=cookies.id, qty=1, from_location_id=store.id)

    service = _order_service(audit, _order(cookies.id, "PLANNED", bom_id=bom.id), bom=bom, items=[sugar])
    with pytest.raises(ValidationError, match="RELEASED or IN_PROGRESS"):
        await service.issue_material(operator_ctx, uuid4(), item_id=sugar.id, qty=1, from_location_id=store.id)

    service = _order_service(audit, _order(cookies.id, "IN_PROGRESS", bom_id=bom.id), bom=None, items=[sugar])
    with pytest.raises(NotFoundError):
        await service.issue_material(operator_ctx, uuid4(), item_id=sugar.id, qty=1, from_location_id=store.id)


async def test_material_comes_from_the_order_site(operator_ctx, audit):
    cookies, flour, sugar = make_item("FG-COOKIE", "EA"), make_item("RM-FLOUR", "KG"), make_item("RM-SUGAR", "KG")
    elsewhere = make_location(site_id=OTHER_SITE_ID)
    bom = _cookie_bom(cookies, flour, sugar)
    order = _order(cookies.id, "IN_PROGRESS", bom_id=bom.id)
    service = _order_service(audit, order, bom=bom, items=[sugar], balances=[make_balance(sugar.id, elsewhere.id, 5)])

    with pytest.raises(ValidationError, match="Location not found at site"):
        await service.issue_material(operator_ctx, order.id, item_id=sugar.id, qty=1, from_location_id=elsewhere.id)


def test_yield_analysis_compares_planned_and_actual():
    flour, sugar = uuid4(), uuid4()
    bom = SimpleNamespace(
        base_qty=10,
        components=[
            SimpleNamespace(item_id=flour, qty_per=2, uom="KG"),
            SimpleNamespace(item_id=sugar, qty_per=0.5, uom="KG"),
        ],
    )
    order = SimpleNamespace(id=uuid4(), order_number="P-1", qty_ordered=40, qty_completed=20, qty_rejected=5)
    consumptions = [
        SimpleNamespace(item_id=flour, qty_consumed=3),
        SimpleNamespace(item_id=flour, qty_consumed=2),
        SimpleNamespace(item_id=sugar, qty_consumed=0.5),
    ]

    report = yield_analysis(order, bom, consumptions)

    flour_row, sugar_row = report["components"]
    assert (flour_row["planned_qty"], flour_row["actual_qty"], flour_row["variance"]) == (4.0, 5.0, 1.0)
    assert flour_row["variance_percent"] == 25.0
    assert sugar_row["variance"] == -0.5
    assert report["production_efficiency"] == 50.0
    assert report["quality_rate"] == 80.0
    assert (report["components_over_consumed"], report["components_under_consumed"]) == (1, 1)


async def test_yield_report_reads_recorded_consumption(supervisor_ctx, audit):
    cookies, flour, sugar = make_item("FG-COOKIE", "EA"), make_item("RM-FLOUR", "KG"), make_item("RM-SUGAR", "KG")
    bom = _cookie_bom(cookies, flour, sugar)
    order = _order(cookies.id, "IN_PROGRESS", qty=20, bom_id=bom.id)
    order.qty_completed = 10.0
    used = [ProductionConsumption(item_id=flour.id, qty_consumed=2.1, uom="KG", qty_base=2.1)]

    report = await _order_service(audit, order, bom=bom, consumptions=used).yield_report(order.id)

    assert report["components"][0]["actual_qty"] == 2.1
    assert report["components"][1]["actual_qty"] == 0


@pytest.mark.parametrize("operation", ["update", "delete", "output", "issue"])
async def test_orders_at_other_sites_are_off_limits(audit, operation):
    ctx = make_ctx("Supervisor", site_ids=[OTHER_SITE_ID])
    cookies = make_item("FG-COOKIE", "EA")
    order = _order(cookies.id, "PLANNED" if operation == "delete" else "RELEASED")
    service = _order_service(audit, order, items=[cookies])

    with pytest.raises(AuthorizationError, match="Site access denied"):
        if operation == "update":
            await service.update_order(ctx, order.id, {"priority": 1})
        elif operation == "delete":
            await service.delete_order(ctx, order.id)
        elif operation == "output":
            await service.record_output(ctx, order.id, qty_completed=1)
        else:
            await service.issue_material(ctx, order.id, item_id=uuid4(), qty=1, from_location_id=uuid4())
    assert service.repo.commits == 0
