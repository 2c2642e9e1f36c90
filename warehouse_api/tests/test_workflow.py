import pytest

from src.core.errors import ValidationError
from src.services.base import format_document_number
from src.services.workflow import (
    BOM_FLOW,
    EXCURSION_FLOW,
    JOB_FLOW,
    NCR_FLOW,
    PRODUCTION_ORDER_FLOW,
    PURCHASE_ORDER_FLOW,
    SALES_ORDER_FLOW,
    TRANSFER_FLOW,
    StatusMachine,
)


@pytest.mark.parametrize(
    "flow, current, target",
    [
        (JOB_FLOW, "DRAFT", "OPEN"),
        (JOB_FLOW, "IN_PROGRESS", "COMPLETED"),
        (BOM_FLOW, "DRAFT", "ACTIVE"),
        (PRODUCTION_ORDER_FLOW, "RELEASED", "PLANNED"),
        (PURCHASE_ORDER_FLOW, "APPROVED", "PARTIALLY_RECEIVED"),
        (SALES_ORDER_FLOW, "PACKED", "SHIPPED"),
        (NCR_FLOW, "DISPOSITIONED", "CLOSED"),
        (EXCURSION_FLOW, "OPEN", "RESOLVED"),
        (TRANSFER_FLOW, "APPROVED", "CANCELLED"),
    ],
)
def test_allowed_transitions(flow, current, target):
    flow.validate(current, target)
    assert flow.can_transition(current, target)


@pytest.mark.parametrize(
    "flow, current, target",
    [
        (JOB_FLOW, "DRAFT", "COMPLETED"),
        (BOM_FLOW, "OBSOLETE", "ACTIVE"),
        (PRODUCTION_ORDER_FLOW, "COMPLETED", "IN_PROGRESS"),
        (SALES_ORDER_FLOW, "SHIPPED", "CANCELLED"),
        (NCR_FLOW, "OPEN", "CLOSED"),
        (TRANSFER_FLOW, "SHIPPED", "CANCELLED"),
    ],
)
def test_rejected_transitions(flow, current, target):
    with pytest.raises(ValidationError) as exc:
        flow.validate(current, target)
    assert exc.value.message == f"Invalid status transition from {current} to {target}"


@pytest.mark.parametrize("flow, status", [(JOB_FLOW, "OPEN"), (SALES_ORDER_FLOW, "PICKING"), (TRANSFER_FLOW, "APPROVED")])
def test_moving_to_the_current_status_is_rejected(flow, status):
    with pytest.raises(ValidationError, match=f"Invalid status transition from {status} to {status}"):
        flow.validate(status, status)


def test_unknown_status_is_reported_by_name():
    with pytest.raises(ValidationError, match="Unknown job status: ARCHIVED"):
        JOB_FLOW.validate("OPEN", "ARCHIVED")


def test_terminal_statuses():
    assert SALES_ORDER_FLOW.is_terminal("DELIVERED")
    assert not SALES_ORDER_FLOW.is_terminal("DRAFT")
    assert TRANSFER_FLOW.allowed("DRAFT") == ["APPROVED", "CANCELLED"]
    assert TRANSFER_FLOW.allowed("nope") == []


def test_statuses_include_targets_without_outgoing_edges():
    flow = StatusMachine("demo", {"A": ["B"]})
    assert flow.statuses == ["A", "B"]
    assert flow.is_terminal("B")


def test_document_numbers():
    assert format_document_number("JOB", 0) == "JOB-000001"
    assert format_document_number("PICK", 41) == "PICK-000042"
