from uuid import uuid4

import pydantic
import pytest

from src.core.errors import AuthorizationError, ConflictError, InventoryError, NotFoundError, ValidationError
from src.db.models.inventory import InventoryBalance, InventoryEvent
from src.schemas.inventory import InventoryEventCreate, ReasonCodeCreate
from src.services.inventory import InventoryEventInput

from tests.fakes import (
    OTHER_SITE_ID,
    SITE_ID,
    TENANT_ID,
    make_balance,
    make_ctx,
    make_inventory_service,
    make_item,
    make_location,
    make_reason,
)


@pytest.fixture
def flour():
    return make_item("RM-FLOUR-25", "KG", {"BAG": 25, "PALLET": 1000})


@pytest.fixture
def dock():
    return make_location(loc_type="RECEIVING", label="RCV-01")


@pytest.fixture
def shelf():
    return make_location(loc_type="STOCK", label="A-01-01")


async def test_receive_converts_to_base_units(inventory_ctx, flour, dock):
    service = make_inventory_service(items=[flour], locations=[dock])

    event = await service.post_event(
        inventory_ctx,
        site_id=SITE_ID,
        event_type="RECEIVE",
        item_id=flour.id,
        qty_entered=2,
        uom_entered="BAG",
        to_location_id=dock.id,
    )

    assert event.qty_base == 50
    assert event.qty_entered == 2
    assert event.uom_entered == "BAG"
    assert event.created_by_user_id == inventory_ctx.user_id
    assert service.repo.qty(flour.id, dock.id) == 50
    assert len(service.repo.added_of(InventoryEvent)) == 1
    assert service.repo.commits == 1


async def test_move_updates_both_locations(inventory_ctx, flour, dock, shelf):
    service = make_inventory_service(
        items=[flour], locations=[dock, shelf], balances=[make_balance(flour.id, dock.id, 100)]
    )

    await service.post_event(
        inventory_ctx,
        site_id=SITE_ID,
        event_type="MOVE",
        item_id=flour.id,
        qty_entered=30,
        uom_entered="KG",
        from_location_id=dock.id,
        to_location_id=shelf.id,
    )

    assert service.repo.qty(flour.id, dock.id) == 70
    assert service.repo.qty(flour.id, shelf.id) == 30
    assert len(service.repo.added_of(InventoryBalance)) == 1


async def test_negative_balance_is_rejected_without_writes(inventory_ctx, flour, dock, shelf):
    service = make_inventory_service(
        items=[flour], locations=[dock, shelf], balances=[make_balance(flour.id, dock.id, 10)]
    )

    with pytest.raises(InventoryError):
        await service.post_event(
            inventory_ctx,
            site_id=SITE_ID,
            event_type="MOVE",
            item_id=flour.id,
            qty_entered=1,
            uom_entered="BAG",
            from_location_id=dock.id,
            to_location_id=shelf.id,
        )

    assert service.repo.added == []
    assert service.repo.commits == 0
    assert service.repo.qty(flour.id, dock.id) == 10


async def test_supervisor_adjustment_may_go_negative(supervisor_ctx, flour, shelf):
    service = make_inventory_service(items=[flour], balances=[make_balance(flour.id, shelf.id, 2)])

    await service.apply_event(
        supervisor_ctx,
        InventoryEventInput(
            tenant_id=TENANT_ID,
            site_id=SITE_ID,
            event_type="ADJUST",
            item_id=flour.id,
            qty_entered=5,
            uom_entered="KG",
            qty_base=5,
            from_location_id=shelf.id,
            reason_code="DAMAGE",
        ),
    )

    assert service.repo.qty(flour.id, shelf.id) == -3


async def test_count_sets_the_balance(inventory_ctx, flour, shelf):
    service = make_inventory_service(items=[flour], locations=[shelf], balances=[make_balance(flour.id, shelf.id, 40)])

    await service.post_event(
        inventory_ctx,
        site_id=SITE_ID,
        event_type="COUNT",
        item_id=flour.id,
        qty_entered=36,
        uom_entered="KG",
        to_location_id=shelf.id,
    )

    assert service.repo.qty(flour.id, shelf.id) == 36


async def test_operator_cannot_post_events(operator_ctx, flour, dock):
    service = make_inventory_service(items=[flour], locations=[dock])

    with pytest.raises(AuthorizationError):
        await service.post_event(
            operator_ctx,
            site_id=SITE_ID,
            event_type="RECEIVE",
            item_id=flour.id,
            qty_entered=1,
            uom_entered="KG",
            to_location_id=dock.id,
        )


async def test_site_membership_is_enforced(flour, dock):
    ctx = make_ctx("Inventory", site_ids=[OTHER_SITE_ID])
    service = make_inventory_service(items=[flour], locations=[dock])

    with pytest.raises(AuthorizationError, match="Site access denied"):
        await service.post_event(
            ctx,
            site_id=SITE_ID,
            event_type="RECEIVE",
            item_id=flour.id,
            qty_entered=1,
            uom_entered="KG",
            to_location_id=dock.id,
        )


async def test_location_must_belong_to_the_site(inventory_ctx, flour):
    elsewhere = make_location(site_id=OTHER_SITE_ID)
    service = make_inventory_service(items=[flour], locations=[elsewhere])

    with pytest.raises(ValidationError, match="Location not found at site"):
        await service.post_event(
            inventory_ctx,
            site_id=SITE_ID,
            event_type="RECEIVE",
            item_id=flour.id,
            qty_entered=1,
            uom_entered="KG",
            to_location_id=elsewhere.id,
        )


async def test_unknown_unit_is_rejected(inventory_ctx, flour, dock):
    service = make_inventory_service(items=[flour], locations=[dock])

    with pytest.raises(ValidationError, match="Invalid UoM"):
        await service.post_event(
            inventory_ctx,
            site_id=SITE_ID,
            event_type="RECEIVE",
            item_id=flour.id,
            qty_entered=1,
            uom_entered="CASE",
            to_location_id=dock.id,
        )


async def test_tenant_mismatch(inventory_ctx, flour, dock):
    service = make_inventory_service(items=[flour])

    with pytest.raises(AuthorizationError, match="Tenant mismatch"):
        await service.apply_event(
            inventory_ctx,
            InventoryEventInput(
                tenant_id=uuid4(),
                site_id=SITE_ID,
                event_type="RECEIVE",
                item_id=flour.id,
                qty_entered=1,
                uom_entered="KG",
                qty_base=1,
                to_location_id=dock.id,
            ),
        )


async def test_convert_quantity(flour):
    service = make_inventory_service(items=[flour])

    assert await service.convert_quantity(flour.id, 1.5, "PALLET") == (1500.0, 1000.0)
    with pytest.raises(NotFoundError):
        await service.convert_quantity(uuid4(), 1, "KG")


async def test_item_on_hand(flour, dock, shelf):
    service = make_inventory_service(
        items=[flour],
        balances=[make_balance(flour.id, dock.id, 5), make_balance(flour.id, shelf.id, 20)],
    )

    summary = await service.item_on_hand(flour.id)

    assert summary["sku"] == "RM-FLOUR-25"
    assert summary["total_qty_base"] == 25
    assert {row["location_id"] for row in summary["locations"]} == {dock.id, shelf.id}


@pytest.mark.parametrize("qty", [0, -7])
async def test_non_positive_quantities_leave_stock_alone(inventory_ctx, flour, shelf, qty):
    service = make_inventory_service(items=[flour], balances=[make_balance(flour.id, shelf.id, 10)])

    with pytest.raises(ValidationError, match="Quantity must be greater than 0"):
        await service.apply_event(
            inventory_ctx,
            InventoryEventInput(
                tenant_id=TENANT_ID,
                site_id=SITE_ID,
                event_type="RECEIVE",
                item_id=flour.id,
                qty_entered=qty,
                uom_entered="KG",
                qty_base=qty,
                to_location_id=shelf.id,
            ),
        )
    assert service.repo.qty(flour.id, shelf.id) == 10
    assert service.repo.added == []


def test_event_payload_rejects_non_positive_quantities():
    fields = {"site_id": SITE_ID, "event_type": "RECEIVE", "item_id": uuid4(), "uom_entered": "KG"}
    with pytest.raises(pydantic.ValidationError):
        InventoryEventCreate(qty_entered=-7, **fields)
    with pytest.raises(pydantic.ValidationError):
        InventoryEventCreate(qty_entered=0, **fields)
    assert InventoryEventCreate(qty_entered=0.5, **fields).qty_entered == 0.5


async def test_apply_event_rejects_a_location_of_another_site(supervisor_ctx, flour):
    elsewhere = make_location(site_id=OTHER_SITE_ID)
    service = make_inventory_service(items=[flour], balances=[make_balance(flour.id, elsewhere.id, 10, site_id=OTHER_SITE_ID)])

    with pytest.raises(ValidationError, match="Location not found at site"):
        await service.apply_event(
            supervisor_ctx,
            InventoryEventInput(
                tenant_id=TENANT_ID,
                site_id=SITE_ID,
                event_type="ISSUE_TO_WORKCELL",
                item_id=flour.id,
                qty_entered=4,
                uom_entered="KG",
                qty_base=4,
                from_location_id=elsewhere.id,
            ),
            commit=False,
        )
    assert service.repo.qty(flour.id, elsewhere.id) == 10


async def test_scrap_cites_a_catalog_reason(inventory_ctx, flour, shelf):
    service = make_inventory_service(items=[flour], balances=[make_balance(flour.id, shelf.id, 10)])

    event = await service.post_event(
        inventory_ctx,
        site_id=SITE_ID,
        event_type="SCRAP",
        item_id=flour.id,
        qty_entered=2,
        uom_entered="KG",
        from_location_id=shelf.id,
        reason_code="DAMAGED",
    )

    assert event.reason_code == "DAMAGED"
    assert service.repo.qty(flour.id, shelf.id) == 8


@pytest.mark.parametrize(
    "reason_code, error, message",
    [
        ("NOT-A-CODE", NotFoundError, "Reason code not found"),
        ("QC_FAIL", ValidationError, "Reason code type mismatch"),
    ],
)
async def test_scrap_reason_must_exist_and_match_the_type(inventory_ctx, flour, shelf, reason_code, error, message):
    service = make_inventory_service(items=[flour], balances=[make_balance(flour.id, shelf.id, 10)])

    with pytest.raises(error, match=message):
        await service.post_event(
            inventory_ctx,
            site_id=SITE_ID,
            event_type="SCRAP",
            item_id=flour.id,
            qty_entered=2,
            uom_entered="KG",
            from_location_id=shelf.id,
            reason_code=reason_code,
        )
    assert service.repo.qty(flour.id, shelf.id) == 10


async def test_inactive_reason_codes_cannot_be_cited(inventory_ctx, flour, shelf):
    service = make_inventory_service(
        items=[flour], balances=[make_balance(flour.id, shelf.id, 10)], reasons=[make_reason("DAMAGED", "SCRAP", is_active=False)]
    )

    with pytest.raises(NotFoundError):
        await service.post_event(
            inventory_ctx,
            site_id=SITE_ID,
            event_type="SCRAP",
            item_id=flour.id,
            qty_entered=1,
            uom_entered="KG",
            from_location_id=shelf.id,
            reason_code="DAMAGED",
        )


async def test_create_and_update_reason_codes(supervisor_ctx):
    service = make_inventory_service()

    reason = await service.create_reason_code(supervisor_ctx, type="SCRAP", code="SCRAP-DEFECT", description="Product defect")
    assert (reason.type, reason.code, reason.is_active) == ("SCRAP", "SCRAP-DEFECT", True)
    assert reason.id is not None
    assert service.reason_repo.commits == 1

    with pytest.raises(ConflictError):
        await service.create_reason_code(supervisor_ctx, type="SCRAP", code="DAMAGED")
    with pytest.raises(ValidationError, match="Invalid reason type"):
        await service.create_reason_code(supervisor_ctx, type="RECEIVE", code="DOCK")

    updated = await service.update_reason_code(supervisor_ctx, reason.id, {"is_active": False, "description": "Retired"})
    assert (updated.is_active, updated.description) == (False, "Retired")
    assert [r.code for r in await service.list_reason_codes(type="SCRAP")] == ["DAMAGED"]
    assert len(await service.list_reason_codes(include_inactive=True)) == 4

    with pytest.raises(ConflictError):
        await service.update_reason_code(supervisor_ctx, reason.id, {"code": "QC_FAIL"})
    with pytest.raises(NotFoundError):
        await service.update_reason_code(supervisor_ctx, uuid4(), {"is_active": True})


def test_reason_code_payload_limits_types():
    with pytest.raises(pydantic.ValidationError):
        ReasonCodeCreate(type="RECEIVE", code="DOCK")
    assert ReasonCodeCreate(type="HOLD", code="QC_FAIL").type == "HOLD"


def test_seeded_catalog_covers_every_reason_type():
    from src.db.seed import REASON_CODES

    assert {reason_type for _, reason_type, _ in REASON_CODES} == {"SCRAP", "ADJUST", "HOLD"}
    # cycle count approvals post ADJUST events citing this code
    assert ("CYCLE_COUNT", "ADJUST") in {(code, reason_type) for code, reason_type, _ in REASON_CODES}
