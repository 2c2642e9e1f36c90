from types import SimpleNamespace
from uuid import uuid4

import pytest

from src.core.errors import InventoryError, ValidationError
from src.services.inventory import (
    InventoryEventInput,
    check_negative,
    compute_balance_deltas,
    conversion_factor,
    may_go_negative,
    summarize_on_hand,
    validate_event,
)

from tests.fakes import SITE_ID, TENANT_ID, make_ctx, make_item

A = uuid4()
B = uuid4()


def _event(event_type, qty=10.0, **kwargs) -> InventoryEventInput:
    return InventoryEventInput(
        tenant_id=TENANT_ID,
        site_id=SITE_ID,
        event_type=event_type,
        item_id=uuid4(),
        qty_entered=qty,
        uom_entered="EA",
        qty_base=qty,
        **kwargs,
    )


class TestValidateEvent:
    def test_unknown_type(self):
        with pytest.raises(ValidationError, match="Unknown event type"):
            validate_event(_event("TELEPORT", to_location_id=A))

    @pytest.mark.parametrize("event_type", ["SCRAP", "ADJUST", "HOLD"])
    def test_reason_required(self, event_type):
        with pytest.raises(ValidationError, match="Reason code is required"):
            validate_event(_event(event_type, from_location_id=A, to_location_id=B))

    def test_move_needs_both_sides(self):
        with pytest.raises(ValidationError, match="MOVE requires to_location_id"):
            validate_event(_event("MOVE", from_location_id=A))

    def test_receive_needs_destination(self):
        with pytest.raises(ValidationError, match="RECEIVE requires to_location_id"):
            validate_event(_event("RECEIVE"))

    def test_adjust_needs_one_side(self):
        with pytest.raises(ValidationError):
            validate_event(_event("ADJUST", reason_code="DAMAGE"))
        validate_event(_event("ADJUST", reason_code="DAMAGE", from_location_id=A))

    @pytest.mark.parametrize("qty", [0, -7])
    def test_quantity_must_be_positive(self, qty):
        with pytest.raises(ValidationError, match="Quantity must be greater than 0"):
            validate_event(_event("RECEIVE", qty, to_location_id=A))
        with pytest.raises(ValidationError, match="Quantity must be greater than 0"):
            validate_event(_event("MOVE", qty, from_location_id=A, to_location_id=B))

    def test_valid_events(self):
        validate_event(_event("SHIP", from_location_id=A))
        validate_event(_event("TRANSFER_IN", to_location_id=B))
        validate_event(_event("HOLD", reason_code="QC", from_location_id=A, to_location_id=B))


class TestDeltas:
    def test_receive(self):
        assert compute_balance_deltas(_event("RECEIVE", 5, to_location_id=A), {}) == {A: 5.0}

    def test_move(self):
        assert compute_balance_deltas(_event("MOVE", 3, from_location_id=A, to_location_id=B), {}) == {A: -3.0, B: 3.0}

    @pytest.mark.parametrize("event_type", ["ISSUE_TO_WORKCELL", "SCRAP", "SHIP", "TRANSFER_OUT"])
    def test_outbound(self, event_type):
        assert compute_balance_deltas(_event(event_type, 4, from_location_id=A), {}) == {A: -4.0}

    def test_count_sets_balance_to_counted(self):
        deltas = compute_balance_deltas(_event("COUNT", 7, to_location_id=A), {A: 10.0})
        assert deltas == {A: -3.0}

    def test_count_at_empty_location(self):
        assert compute_balance_deltas(_event("COUNT", 7, to_location_id=A), {}) == {A: 7.0}

    def test_adjust_with_one_side(self):
        deltas = compute_balance_deltas(_event("ADJUST", 2, reason_code="CYCLE_COUNT", from_location_id=A), {})
        assert deltas == {A: -2.0}
        deltas = compute_balance_deltas(_event("ADJUST", 2, reason_code="CYCLE_COUNT", to_location_id=A), {})
        assert deltas == {A: 2.0}


class TestNegativeCheck:
    def test_prevents_negative(self):
        with pytest.raises(InventoryError) as exc:
            check_negative({A: -5.0}, {A: 3.0})
        assert exc.value.message == "Negative balance prevented"
        assert exc.value.details["resulting_qty"] == -2.0

    def test_returns_resulting_balances(self):
        assert check_negative({A: -3.0, B: 3.0}, {A: 3.0}) == {A: 0.0, B: 3.0}

    def test_tolerates_conversion_noise(self):
        check_negative({A: -0.1 - 0.2}, {A: 0.3})

    def test_override(self):
        assert check_negative({A: -5.0}, {A: 3.0}, allow_negative=True) == {A: -2.0}


def test_only_admin_and_supervisor_adjust_below_zero():
    assert may_go_negative(make_ctx("Supervisor"), "ADJUST")
    assert may_go_negative(make_ctx("Admin"), "ADJUST")
    assert not may_go_negative(make_ctx("Supervisor"), "SCRAP")
    assert not may_go_negative(make_ctx("Inventory"), "ADJUST")


def test_conversion_factor():
    item = make_item(base_uom="KG", conversions={"BAG": 25, "PALLET": 1000})
    assert conversion_factor(item, "KG") == 1.0
    assert conversion_factor(item, "BAG") == 25.0
    with pytest.raises(ValidationError, match="Invalid UoM for item") as exc:
        conversion_factor(item, "CASE")
    assert exc.value.details == {"uom": "CASE", "base_uom": "KG"}


def test_on_hand_summary_skips_empty_locations():
    item = make_item()
    balances = [
        SimpleNamespace(location_id=A, site_id=SITE_ID, qty_base=12.5),
        SimpleNamespace(location_id=B, site_id=SITE_ID, qty_base=0),
    ]
    summary = summarize_on_hand(item, balances)
    assert summary["total_qty_base"] == 12.5
    assert [row["location_id"] for row in summary["locations"]] == [A]
    assert summary["base_uom"] == "KG"
