"""
Status transition tables for every document type.

Each document (cycle count, job, BOM, production order, purchase order, sales
order, NCR, CAPA, excursion, transfer) moves through a fixed set of statuses.
A StatusMachine holds the allowed transitions and raises ValidationError on
anything else.
"""

from __future__ import annotations

from typing import Dict, List, Sequence

from src.core.errors import ValidationError


class StatusMachine:
    """Allowed status transitions for one document type."""

    def __init__(self, name: str, transitions: Dict[str, Sequence[str]]) -> None:
        self.name = name
        self.transitions: Dict[str, List[str]] = {k: list(v) for k, v in transitions.items()}
        targets = {t for v in self.transitions.values() for t in v}
        self.statuses: List[str] = list(self.transitions) + sorted(targets - set(self.transitions))

    def allowed(self, current: str) -> List[str]:
        return list(self.transitions.get(current, []))

    def can_transition(self, current: str, target: str) -> bool:
        return target in self.transitions.get(current, [])

    def is_terminal(self, status: str) -> bool:
        return not self.transitions.get(status)

    # PUBLIC_INTERFACE
    def validate(self, current: str, target: str) -> None:
        """Raise ValidationError unless current -> target is an allowed transition."""
        if target not in self.statuses:
            raise ValidationError(f"Unknown {self.name} status: {target}")
        if not self.can_transition(current, target):
            raise ValidationError(f"Invalid status transition from {current} to {target}")


CYCLE_COUNT_FLOW = StatusMachine(
    "cycle count",
    {
        "SCHEDULED": ["IN_PROGRESS", "CANCELLED"],
        "IN_PROGRESS": ["COMPLETED", "CANCELLED"],
        "COMPLETED": [],
        "CANCELLED": [],
    },
)

JOB_FLOW = StatusMachine(
    "job",
    {
        "DRAFT": ["OPEN", "CANCELLED"],
        "OPEN": ["IN_PROGRESS", "CANCELLED"],
        "IN_PROGRESS": ["COMPLETED", "CANCELLED"],
        "COMPLETED": [],
        "CANCELLED": [],
    },
)

BOM_FLOW = StatusMachine(
    "BOM",
    {
        "DRAFT": ["ACTIVE", "OBSOLETE"],
        "ACTIVE": ["OBSOLETE"],
        "OBSOLETE": [],
    },
)

PRODUCTION_ORDER_FLOW = StatusMachine(
    "production order",
    {
        "PLANNED": ["RELEASED", "CANCELLED"],
        "RELEASED": ["IN_PROGRESS", "PLANNED", "CANCELLED"],
        "IN_PROGRESS": ["COMPLETED", "CANCELLED"],
        "COMPLETED": ["CLOSED"],
        "CLOSED": [],
        "CANCELLED": [],
    },
)

PURCHASE_ORDER_FLOW = StatusMachine(
    "purchase order",
    {
        "DRAFT": ["PENDING_APPROVAL", "APPROVED", "CANCELLED"],
        "PENDING_APPROVAL": ["APPROVED", "DRAFT", "CANCELLED"],
        "APPROVED": ["SENT", "PARTIALLY_RECEIVED", "RECEIVED", "CANCELLED"],
        "SENT": ["PARTIALLY_RECEIVED", "RECEIVED", "CANCELLED"],
        "PARTIALLY_RECEIVED": ["RECEIVED", "CLOSED"],
        "RECEIVED": ["CLOSED"],
        "CLOSED": [],
        "CANCELLED": [],
    },
)

SALES_ORDER_FLOW = StatusMachine(
    "sales order",
    {
        "DRAFT": ["CONFIRMED", "CANCELLED"],
        "CONFIRMED": ["ALLOCATED", "CANCELLED"],
        "ALLOCATED": ["PICKING", "CONFIRMED", "CANCELLED"],
        "PICKING": ["PACKED", "CANCELLED"],
        "PACKED": ["SHIPPED"],
        "SHIPPED": ["DELIVERED"],
        "DELIVERED": [],
        "CANCELLED": [],
    },
)

NCR_FLOW = StatusMachine(
    "NCR",
    {
        "OPEN": ["UNDER_REVIEW", "CANCELLED"],
        "UNDER_REVIEW": ["DISPOSITIONED", "OPEN", "CANCELLED"],
        "DISPOSITIONED": ["CLOSED", "UNDER_REVIEW"],
        "CLOSED": [],
        "CANCELLED": [],
    },
)

CAPA_FLOW = StatusMachine(
    "CAPA",
    {
        "OPEN": ["IN_PROGRESS", "CANCELLED"],
        "IN_PROGRESS": ["IMPLEMENTED", "CANCELLED"],
        "IMPLEMENTED": ["VERIFIED", "IN_PROGRESS"],
        "VERIFIED": ["CLOSED"],
        "CLOSED": [],
        "CANCELLED": [],
    },
)

EXCURSION_FLOW = StatusMachine(
    "excursion",
    {
        "OPEN": ["INVESTIGATING", "RESOLVED"],
        "INVESTIGATING": ["RESOLVED"],
        "RESOLVED": ["CLOSED"],
        "CLOSED": [],
    },
)

TRANSFER_FLOW = StatusMachine(
    "transfer",
    {
        "DRAFT": ["APPROVED", "CANCELLED"],
        "APPROVED": ["SHIPPED", "CANCELLED"],
        "SHIPPED": ["RECEIVED"],
        "RECEIVED": [],
        "CANCELLED": [],
    },
)
