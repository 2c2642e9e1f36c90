"""
Inventory engine.

Stock changes are recorded as immutable inventory events; per-location balances
(in the item's base unit) are derived from them. Every event is validated,
turned into balance deltas, checked against negative stock and written together
with the affected balances in one transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.context import UserContext
from src.core.errors import AuthorizationError, ConflictError, InventoryError, NotFoundError, ValidationError
from src.core.permissions import PermissionCode, RoleName
from src.db.models.inventory import InventoryBalance, InventoryEvent, ReasonCode
from src.repositories.inventory import InventoryRepository, ReasonCodeRepository
from src.repositories.master_data import ItemRepository, LocationRepository
from src.services.base import BaseService
from src.services.realtime import notify_dashboard

logger = logging.getLogger(__name__)

EVENT_TYPES = (
    "RECEIVE",
    "MOVE",
    "ISSUE_TO_WORKCELL",
    "RETURN",
    "SCRAP",
    "HOLD",
    "RELEASE",
    "COUNT",
    "ADJUST",
    "SHIP",
    "TRANSFER_OUT",
    "TRANSFER_IN",
)
REASON_REQUIRED_TYPES = frozenset({"SCRAP", "ADJUST", "HOLD"})

# Which location sides each event type needs. "either" means at least one side.
REQUIRED_LOCATIONS: Dict[str, Tuple[str, ...]] = {
    "RECEIVE": ("to",),
    "COUNT": ("to",),
    "TRANSFER_IN": ("to",),
    "MOVE": ("from", "to"),
    "RETURN": ("from", "to"),
    "HOLD": ("from", "to"),
    "RELEASE": ("from", "to"),
    "ISSUE_TO_WORKCELL": ("from",),
    "SCRAP": ("from",),
    "SHIP": ("from",),
    "TRANSFER_OUT": ("from",),
    "ADJUST": ("either",),
}

NEGATIVE_EXEMPT_ROLES = (RoleName.ADMIN, RoleName.SUPERVISOR)
ADJUSTING_TYPES = REASON_REQUIRED_TYPES


@dataclass
class InventoryEventInput:
    """Fully resolved event (quantity already converted to base units)."""

    tenant_id: UUID
    site_id: UUID
    event_type: str
    item_id: UUID
    qty_entered: float
    uom_entered: str
    qty_base: float
    from_location_id: Optional[UUID] = None
    to_location_id: Optional[UUID] = None
    reason_code: Optional[str] = None
    reference_id: Optional[str] = None
    notes: Optional[str] = None


# PUBLIC_INTERFACE
def conversion_factor(item, uom: str) -> float:
    """Factor from `uom` to the item's base unit; ValidationError when the unit is not allowed."""
    if uom == item.base_uom:
        return 1.0
    for conv in item.conversions or []:
        if conv.uom == uom:
            return float(conv.to_base)
    raise ValidationError("Invalid UoM for item", details={"uom": uom, "base_uom": item.base_uom})


# PUBLIC_INTERFACE
def validate_event(event: InventoryEventInput) -> None:
    """Check event type, reason code and required locations."""
    if event.event_type not in EVENT_TYPES:
        raise ValidationError(f"Unknown event type: {event.event_type}")
    if event.qty_base is None or event.qty_entered is None:
        raise ValidationError("Quantity is required")
    # direction comes from the event type and locations, never from the sign
    if float(event.qty_entered) <= 0 or float(event.qty_base) <= 0:
        raise ValidationError("Quantity must be greater than 0", details={"qty_entered": event.qty_entered})

    if event.event_type in REASON_REQUIRED_TYPES and not event.reason_code:
        raise ValidationError("Reason code is required", details={"event_type": event.event_type})

    required = REQUIRED_LOCATIONS[event.event_type]
    if required == ("either",):
        if not event.from_location_id and not event.to_location_id:
            raise ValidationError("ADJUST requires from_location_id or to_location_id")
        return
    if "from" in required and not event.from_location_id:
        raise ValidationError(f"{event.event_type} requires from_location_id")
    if "to" in required and not event.to_location_id:
        raise ValidationError(f"{event.event_type} requires to_location_id")


# PUBLIC_INTERFACE
def compute_balance_deltas(event: InventoryEventInput, current: Dict[UUID, float]) -> Dict[UUID, float]:
    """
    Return location_id -> signed change in base units.

    `current` holds existing balances for the event's locations; it is only
    consulted for COUNT, whose delta brings the balance to the counted quantity.
    """
    deltas: Dict[UUID, float] = {}

    def _add(location_id: Optional[UUID], qty: float) -> None:
        if location_id is None:
            return
        deltas[location_id] = deltas.get(location_id, 0.0) + qty

    qty = float(event.qty_base)
    etype = event.event_type
    if etype in ("RECEIVE", "TRANSFER_IN"):
        _add(event.to_location_id, qty)
    elif etype in ("MOVE", "RETURN", "HOLD", "RELEASE", "ADJUST"):
        _add(event.from_location_id, -qty)
        _add(event.to_location_id, qty)
    elif etype in ("ISSUE_TO_WORKCELL", "SCRAP", "SHIP", "TRANSFER_OUT"):
        _add(event.from_location_id, -qty)
    elif etype == "COUNT":
        _add(event.to_location_id, qty - current.get(event.to_location_id, 0.0))
    return deltas


# PUBLIC_INTERFACE
def check_negative(deltas: Dict[UUID, float], current: Dict[UUID, float], *, allow_negative: bool = False) -> Dict[UUID, float]:
    """Return the resulting balances; InventoryError when one would drop below zero."""
    results = {loc: current.get(loc, 0.0) + delta for loc, delta in deltas.items()}
    if allow_negative:
        return results
    for loc, qty in results.items():
        # tolerate float noise from unit conversion
        if qty < -1e-9:
            raise InventoryError(
                "Negative balance prevented",
                details={"location_id": str(loc), "resulting_qty": qty},
            )
    return results


def may_go_negative(ctx: UserContext, event_type: str) -> bool:
    return event_type == "ADJUST" and ctx.has_role(*NEGATIVE_EXEMPT_ROLES)


class InventoryService(BaseService):
    """Applies inventory events and answers balance queries."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = InventoryRepository(session)
        self.item_repo = ItemRepository(session)
        self.location_repo = LocationRepository(session)
        self.reason_repo = ReasonCodeRepository(session)

    async def _check_locations(self, site_id: UUID, *location_ids: Optional[UUID]) -> None:
        for loc_id in location_ids:
            if loc_id is None:
                continue
            location = await self.location_repo.get_location(loc_id)
            if not location or location.site_id != site_id:
                raise ValidationError("Location not found at site", details={"location_id": str(loc_id)})

    # PUBLIC_INTERFACE
    async def check_reason_code(self, event_type: str, reason_code: Optional[str]) -> None:
        """A cited reason code must be an active catalog entry; SCRAP/ADJUST/HOLD need one of their own type."""
        if not reason_code:
            return
        reason = await self.reason_repo.get_by_code(reason_code)
        if not reason or not reason.is_active:
            raise NotFoundError("Reason code")
        if event_type in REASON_REQUIRED_TYPES and reason.type != event_type:
            raise ValidationError(
                "Reason code type mismatch",
                details={"reason_code": reason_code, "reason_type": reason.type, "event_type": event_type},
            )

    async def list_reason_codes(self, type: Optional[str] = None, include_inactive: bool = False) -> List[ReasonCode]:
        return await self.reason_repo.list_reason_codes(type=type, include_inactive=include_inactive)

    # PUBLIC_INTERFACE
    async def create_reason_code(
        self, ctx: UserContext, *, type: str, code: str, description: Optional[str] = None
    ) -> ReasonCode:
        if type not in REASON_REQUIRED_TYPES:
            raise ValidationError(f"Invalid reason type: {type}")
        if await self.reason_repo.get_by_code(code):
            raise ConflictError(f"Reason code {code} already exists")
        reason = ReasonCode(type=type, code=code, description=description, is_active=True)
        await self.reason_repo.add(reason)
        await self.reason_repo.flush()
        await self.reason_repo.commit()
        logger.info("Reason code created: %s (%s) by %s", code, type, ctx.user_id)
        return reason

    # PUBLIC_INTERFACE
    async def update_reason_code(self, ctx: UserContext, reason_id: UUID, changes: dict) -> ReasonCode:
        reason = await self.reason_repo.get_reason_code(reason_id)
        if not reason:
            raise NotFoundError("Reason code")
        if changes.get("type") is not None and changes["type"] not in REASON_REQUIRED_TYPES:
            raise ValidationError(f"Invalid reason type: {changes['type']}")
        code = changes.get("code")
        if code and code != reason.code and await self.reason_repo.get_by_code(code):
            raise ConflictError(f"Reason code {code} already exists")
        for field in ("type", "code", "description", "is_active"):
            if changes.get(field) is not None:
                setattr(reason, field, changes[field])
        await self.reason_repo.commit()
        return reason

    # PUBLIC_INTERFACE
    async def convert_quantity(self, item_id: UUID, qty: float, uom: str) -> Tuple[float, float]:
        """Return (qty_base, factor) for qty expressed in uom."""
        item = await self.item_repo.get_item(item_id)
        if not item:
            raise NotFoundError("Item")
        factor = conversion_factor(item, uom)
        return qty * factor, factor

    # PUBLIC_INTERFACE
    async def apply_event(self, ctx: UserContext, event: InventoryEventInput, *, commit: bool = True) -> InventoryEvent:
        """
        Validate an event, update the affected balances and store the event.

        With commit=False the changes are only staged so callers can group
        several events (and their own document updates) in one transaction.
        """
        if event.tenant_id != ctx.tenant_id:
            raise AuthorizationError("Tenant mismatch")
        validate_event(event)
        await self._check_locations(event.site_id, event.from_location_id, event.to_location_id)

        locations = [loc for loc in (event.from_location_id, event.to_location_id) if loc is not None]
        balances: Dict[UUID, Optional[InventoryBalance]] = {}
        for loc in locations:
            if loc not in balances:
                balances[loc] = await self.repo.get_balance(event.item_id, loc, for_update=True)
        current = {loc: float(b.qty_base) if b is not None else 0.0 for loc, b in balances.items()}

        deltas = compute_balance_deltas(event, current)
        results = check_negative(deltas, current, allow_negative=may_go_negative(ctx, event.event_type))

        row = InventoryEvent(
            site_id=event.site_id,
            created_by_user_id=ctx.user_id,
            event_type=event.event_type,
            item_id=event.item_id,
            qty_entered=event.qty_entered,
            uom_entered=event.uom_entered,
            qty_base=event.qty_base,
            from_location_id=event.from_location_id,
            to_location_id=event.to_location_id,
            reason_code=event.reason_code,
            reference_id=event.reference_id,
            notes=event.notes,
        )
        await self.repo.add(row)

        for loc, qty in results.items():
            balance = balances.get(loc)
            if balance is None:
                balance = InventoryBalance(site_id=event.site_id, item_id=event.item_id, location_id=loc, qty_base=qty)
                await self.repo.add(balance)
                balances[loc] = balance
            else:
                balance.qty_base = qty

        await self.repo.flush()
        if commit:
            await self.repo.commit()
        logger.info(
            "Inventory event applied: type=%s item=%s qty_base=%s from=%s to=%s",
            event.event_type,
            event.item_id,
            event.qty_base,
            event.from_location_id,
            event.to_location_id,
        )
        return row

    # PUBLIC_INTERFACE
    async def post_event(
        self,
        ctx: UserContext,
        *,
        site_id: UUID,
        event_type: str,
        item_id: UUID,
        qty_entered: float,
        uom_entered: str,
        from_location_id: Optional[UUID] = None,
        to_location_id: Optional[UUID] = None,
        reason_code: Optional[str] = None,
        reference_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> InventoryEvent:
        """
        Handle an event submitted through the API: permission, site access,
        reason code and unit conversion, then apply_event.
        """
        needed = PermissionCode.ADJUST_INVENTORY if event_type in ADJUSTING_TYPES else PermissionCode.EDIT_INVENTORY
        if not ctx.can(needed):
            raise AuthorizationError("Insufficient permissions")
        ctx.ensure_site(site_id)
        await self.check_reason_code(event_type, reason_code)

        qty_base, _ = await self.convert_quantity(item_id, qty_entered, uom_entered)
        row = await self.apply_event(
            ctx,
            InventoryEventInput(
                tenant_id=ctx.tenant_id,
                site_id=site_id,
                event_type=event_type,
                item_id=item_id,
                qty_entered=qty_entered,
                uom_entered=uom_entered,
                qty_base=qty_base,
                from_location_id=from_location_id,
                to_location_id=to_location_id,
                reason_code=reason_code,
                reference_id=reference_id,
                notes=notes,
            ),
        )
        await notify_dashboard(
            ctx.tenant_id,
            "inventory.event_applied",
            {"event_id": str(row.id), "event_type": event_type, "item_id": str(item_id), "qty_base": qty_base},
            ctx.user_id,
        )
        return row

    async def list_events(self, **filters) -> List[InventoryEvent]:
        return await self.repo.list_events(**filters)

    async def list_balances(self, **filters) -> List[InventoryBalance]:
        return await self.repo.list_balances(**filters)

    # PUBLIC_INTERFACE
    async def item_on_hand(self, item_id: UUID, site_id: Optional[UUID] = None) -> dict:
        """Total and per-location on-hand quantity for an item."""
        item = await self.item_repo.get_item(item_id)
        if not item:
            raise NotFoundError("Item")
        balances = await self.repo.list_balances(item_id=item_id, site_id=site_id)
        return summarize_on_hand(item, balances)


def summarize_on_hand(item, balances: Iterable) -> dict:
    locations = [
        {"location_id": b.location_id, "site_id": b.site_id, "qty_base": float(b.qty_base)}
        for b in balances
        if float(b.qty_base) != 0
    ]
    return {
        "item_id": item.id,
        "sku": item.sku,
        "base_uom": item.base_uom,
        "total_qty_base": sum(loc["qty_base"] for loc in locations),
        "locations": locations,
    }
