"""
In-memory stand-ins for the repository layer.

Services create their repositories in __init__, so tests build a service with
session=None and swap the repositories for these fakes.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Tuple
from uuid import UUID, uuid4

from sqlalchemy import inspect as sa_inspect

import src.db.models  # noqa: F401
from src.core.context import UserContext
from src.db.models.inventory import InventoryBalance, ReasonCode
from src.db.models.master_data import Item, ItemUomConversion, Location
from src.services.inventory import InventoryService

TENANT_ID = UUID("11111111-1111-4111-8111-111111111111")
SITE_ID = UUID("22222222-2222-4222-8222-222222222222")
OTHER_SITE_ID = UUID("33333333-3333-4333-8333-333333333333")


def make_ctx(*roles, site_ids: Optional[List[UUID]] = None, is_superadmin: bool = False) -> UserContext:
    return UserContext(
        user_id=uuid4(),
        tenant_id=TENANT_ID,
        email="user@example.com",
        full_name="Test User",
        roles=[getattr(r, "value", r) for r in roles],
        site_ids=[SITE_ID] if site_ids is None else list(site_ids),
        is_superadmin=is_superadmin,
    )


def stamp(entity: Any) -> None:
    """Give a new row what the database would: an id and scalar column defaults."""
    mapper = sa_inspect(type(entity), raiseerr=False)
    if mapper is None:
        if getattr(entity, "id", None) is None:
            entity.id = uuid4()
        return
    for attr in mapper.column_attrs:
        if getattr(entity, attr.key) is not None:
            continue
        column = attr.columns[0]
        if attr.key == "id":
            entity.id = uuid4()
        elif column.default is not None and column.default.is_scalar:
            setattr(entity, attr.key, column.default.arg)
    for rel in mapper.relationships:
        if rel.uselist:
            for child in getattr(entity, rel.key):
                stamp(child)


class FakeRepo:
    """
    Records writes and answers the named read methods with fixed values.

    FakeRepo(get_job=job, count_jobs=3) makes `await repo.get_job(...)` return
    `job` whatever the arguments are.
    """

    def __init__(self, **returns: Any) -> None:
        self.added: List[Any] = []
        self.deleted: List[Any] = []
        self.commits = 0
        self.flushes = 0
        self.refreshed: List[Any] = []
        for name, value in returns.items():
            self.returns(name, value)

    def returns(self, name: str, value: Any) -> "FakeRepo":
        async def _method(*args, **kwargs):
            return value

        setattr(self, name, _method)
        return self

    def added_of(self, model: type) -> List[Any]:
        return [e for e in self.added if isinstance(e, model)]

    async def add(self, entity: Any) -> None:
        stamp(entity)
        self.added.append(entity)

    async def add_all(self, entities: Iterable[Any]) -> None:
        for entity in entities:
            await self.add(entity)

    async def flush(self) -> None:
        self.flushes += 1
        for entity in self.added:
            stamp(entity)

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        return None

    async def refresh(self, entity: Any, attribute_names: Optional[Iterable[str]] = None) -> None:
        self.refreshed.append(entity)

    async def delete(self, entity: Any) -> None:
        self.deleted.append(entity)


class FakeInventoryRepo(FakeRepo):
    """Balances keyed by (item_id, location_id)."""

    def __init__(self, balances: Iterable[InventoryBalance] = (), **returns: Any) -> None:
        super().__init__(**returns)
        self.balances: Dict[Tuple[UUID, UUID], InventoryBalance] = {}
        for balance in balances:
            self.balances[(balance.item_id, balance.location_id)] = balance

    async def add(self, entity: Any) -> None:
        await super().add(entity)
        if isinstance(entity, InventoryBalance):
            self.balances[(entity.item_id, entity.location_id)] = entity

    async def get_balance(self, item_id: UUID, location_id: UUID, *, for_update: bool = False):
        return self.balances.get((item_id, location_id))

    async def list_balances(self, **filters) -> List[InventoryBalance]:
        rows = list(self.balances.values())
        if filters.get("site_id") is not None:
            rows = [b for b in rows if b.site_id == filters["site_id"]]
        if filters.get("item_id") is not None:
            rows = [b for b in rows if b.item_id == filters["item_id"]]
        if filters.get("only_positive"):
            rows = [b for b in rows if float(b.qty_base) > 0]
        return rows

    async def available_qty(self, site_id: UUID, item_id: UUID, location_types) -> float:
        return sum(
            float(b.qty_base) for b in self.balances.values() if b.site_id == site_id and b.item_id == item_id
        )

    def qty(self, item_id: UUID, location_id: UUID) -> float:
        balance = self.balances.get((item_id, location_id))
        return float(balance.qty_base) if balance is not None else 0.0


class FakeItemRepo(FakeRepo):
    def __init__(self, items: Iterable[Item] = (), **returns: Any) -> None:
        super().__init__(**returns)
        self.items = {item.id: item for item in items}

    async def get_item(self, item_id: UUID):
        return self.items.get(item_id)

    async def get_items(self, item_ids) -> List[Item]:
        return [self.items[i] for i in item_ids if i in self.items]

    async def list_items(self, **filters) -> List[Item]:
        return [item for item in self.items.values() if item.is_active is not False]


class FakeLocationRepo(FakeRepo):
    """Explicit locations first, then every location built by make_location."""

    def __init__(self, locations: Iterable[Location] = ()) -> None:
        super().__init__()
        self.locations = {loc.id: loc for loc in locations}

    async def get_location(self, location_id: UUID):
        return self.locations.get(location_id) or _LOCATIONS.get(location_id)


class FakeReasonCodeRepo(FakeRepo):
    def __init__(self, reasons: Iterable[ReasonCode] = ()) -> None:
        super().__init__()
        self.reasons = {reason.code: reason for reason in reasons}

    async def add(self, entity: Any) -> None:
        await super().add(entity)
        self.reasons[entity.code] = entity

    async def get_by_code(self, code: str):
        return self.reasons.get(code)

    async def get_reason_code(self, reason_id: UUID):
        return next((r for r in self.reasons.values() if r.id == reason_id), None)

    async def list_reason_codes(self, *, type=None, include_inactive=False) -> List[ReasonCode]:
        return [
            r for r in self.reasons.values()
            if (type is None or r.type == type) and (include_inactive or r.is_active)
        ]


class FakeAudit:
    """Collects (action, entity_type, entity_id, details) tuples."""

    def __init__(self) -> None:
        self.records: List[Tuple[str, str, Any, Optional[dict]]] = []

    async def record(self, ctx, action, entity_type, entity_id, details=None, ip_address=None):
        self.records.append((action, entity_type, entity_id, details))

    def actions(self) -> List[str]:
        return [r[0] for r in self.records]


def make_item(sku: str = "RM-FLOUR-25", base_uom: str = "KG", conversions: Optional[Dict[str, float]] = None, **fields) -> Item:
    fields.setdefault("name", sku.title())
    fields.setdefault("category", "PRODUCTION")
    fields.setdefault("is_active", True)
    item = Item(id=uuid4(), sku=sku, base_uom=base_uom, **fields)
    item.conversions = [ItemUomConversion(id=uuid4(), uom=uom, to_base=factor) for uom, factor in (conversions or {}).items()]
    return item


# locations "in the database": every fake location repository can see them
_LOCATIONS: Dict[UUID, Location] = {}


def make_location(site_id: UUID = SITE_ID, loc_type: str = "STOCK", label: Optional[str] = None) -> Location:
    location = Location(id=uuid4(), site_id=site_id, label=label or f"{loc_type}-01", type=loc_type, is_active=True)
    _LOCATIONS[location.id] = location
    return location


def make_reason(code: str, reason_type: str, is_active: bool = True) -> ReasonCode:
    return ReasonCode(id=uuid4(), code=code, type=reason_type, is_active=is_active)


DEFAULT_REASONS = (("DAMAGED", "SCRAP"), ("CYCLE_COUNT", "ADJUST"), ("QC_FAIL", "HOLD"))


def make_balance(item_id: UUID, location_id: UUID, qty: float, site_id: UUID = SITE_ID) -> InventoryBalance:
    return InventoryBalance(id=uuid4(), site_id=site_id, item_id=item_id, location_id=location_id, qty_base=qty)


def make_inventory_service(
    items: Iterable[Item] = (),
    balances: Iterable[InventoryBalance] = (),
    locations: Iterable[Location] = (),
    reasons: Optional[Iterable[ReasonCode]] = None,
) -> InventoryService:
    service = InventoryService(None)
    service.repo = FakeInventoryRepo(balances)
    service.item_repo = FakeItemRepo(items)
    service.location_repo = FakeLocationRepo(locations)
    if reasons is None:
        reasons = [make_reason(code, reason_type) for code, reason_type in DEFAULT_REASONS]
    service.reason_repo = FakeReasonCodeRepo(reasons)
    return service
