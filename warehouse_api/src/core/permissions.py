"""
Role-based access control matrix.

Roles are stored per tenant in the roles table by name; the permissions each
role grants are fixed here and seeded into role_permissions.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, Iterable, List


class RoleName(str, Enum):
    OPERATOR = "Operator"
    SUPERVISOR = "Supervisor"
    INVENTORY = "Inventory"
    PURCHASING = "Purchasing"
    MAINTENANCE = "Maintenance"
    QC = "QC"
    SALES = "Sales"
    ENGINEERING = "Engineering"
    ADMIN = "Admin"
    EXECUTIVE = "Executive"
    VIEWER = "Viewer"


class PermissionCode(str, Enum):
    VIEW_DASHBOARD = "view_dashboard"
    VIEW_INVENTORY = "view_inventory"
    EDIT_INVENTORY = "edit_inventory"
    ADJUST_INVENTORY = "adjust_inventory"
    CYCLE_COUNT = "cycle_count"
    VIEW_PRODUCTION = "view_production"
    CREATE_PRODUCTION_ORDER = "create_production_order"
    EDIT_PRODUCTION_ORDER = "edit_production_order"
    COMPLETE_PRODUCTION_JOB = "complete_production_job"
    VIEW_JOB_CARD = "view_job_card"
    VIEW_PURCHASING = "view_purchasing"
    CREATE_PURCHASE_ORDER = "create_purchase_order"
    APPROVE_PURCHASE_ORDER = "approve_purchase_order"
    RECEIVE_GOODS = "receive_goods"
    VIEW_SALES = "view_sales"
    CREATE_SALES_ORDER = "create_sales_order"
    EDIT_SALES_ORDER = "edit_sales_order"
    MANAGE_CUSTOMERS = "manage_customers"
    CREATE_SHIPMENT = "create_shipment"
    VIEW_SALES_ANALYTICS = "view_sales_analytics"
    VIEW_QUALITY = "view_quality"
    PERFORM_INSPECTION = "perform_inspection"
    CREATE_NCR = "create_ncr"
    MANAGE_QUALITY_PLANS = "manage_quality_plans"
    VIEW_BOM = "view_bom"
    CREATE_BOM = "create_bom"
    EDIT_BOM = "edit_bom"
    APPROVE_BOM = "approve_bom"
    VIEW_USERS = "view_users"
    MANAGE_USERS = "manage_users"
    VIEW_SETTINGS = "view_settings"
    MANAGE_SETTINGS = "manage_settings"
    MANAGE_FACILITIES = "manage_facilities"
    VIEW_REPORTS = "view_reports"
    EXPORT_DATA = "export_data"
    USE_MOBILE_APP = "use_mobile_app"


P = PermissionCode

ALL_PERMISSIONS: FrozenSet[PermissionCode] = frozenset(PermissionCode)

ROLE_PERMISSIONS: Dict[RoleName, FrozenSet[PermissionCode]] = {
    RoleName.OPERATOR: frozenset({
        P.USE_MOBILE_APP, P.VIEW_JOB_CARD, P.COMPLETE_PRODUCTION_JOB, P.VIEW_INVENTORY,
    }),
    RoleName.SUPERVISOR: frozenset({
        P.VIEW_DASHBOARD, P.VIEW_PRODUCTION, P.CREATE_PRODUCTION_ORDER, P.EDIT_PRODUCTION_ORDER,
        P.VIEW_INVENTORY, P.VIEW_JOB_CARD, P.COMPLETE_PRODUCTION_JOB, P.VIEW_BOM,
        P.VIEW_QUALITY, P.PERFORM_INSPECTION, P.VIEW_REPORTS, P.USE_MOBILE_APP,
    }),
    RoleName.INVENTORY: frozenset({
        P.VIEW_DASHBOARD, P.VIEW_INVENTORY, P.EDIT_INVENTORY, P.ADJUST_INVENTORY, P.CYCLE_COUNT,
        P.VIEW_PRODUCTION, P.RECEIVE_GOODS, P.VIEW_REPORTS, P.EXPORT_DATA,
    }),
    RoleName.PURCHASING: frozenset({
        P.VIEW_DASHBOARD, P.VIEW_PURCHASING, P.CREATE_PURCHASE_ORDER, P.APPROVE_PURCHASE_ORDER,
        P.RECEIVE_GOODS, P.VIEW_INVENTORY, P.VIEW_REPORTS, P.EXPORT_DATA,
    }),
    RoleName.MAINTENANCE: frozenset({
        P.VIEW_DASHBOARD, P.VIEW_INVENTORY, P.VIEW_PRODUCTION, P.VIEW_SETTINGS, P.MANAGE_FACILITIES,
    }),
    RoleName.QC: frozenset({
        P.VIEW_DASHBOARD, P.VIEW_QUALITY, P.PERFORM_INSPECTION, P.CREATE_NCR,
        P.MANAGE_QUALITY_PLANS, P.VIEW_PRODUCTION, P.VIEW_INVENTORY, P.VIEW_REPORTS,
    }),
    RoleName.SALES: frozenset({
        P.VIEW_DASHBOARD, P.VIEW_SALES, P.CREATE_SALES_ORDER, P.EDIT_SALES_ORDER,
        P.MANAGE_CUSTOMERS, P.CREATE_SHIPMENT, P.VIEW_SALES_ANALYTICS, P.VIEW_INVENTORY,
        P.VIEW_REPORTS, P.EXPORT_DATA,
    }),
    RoleName.ENGINEERING: frozenset({
        P.VIEW_DASHBOARD, P.VIEW_INVENTORY, P.VIEW_PRODUCTION, P.CREATE_PRODUCTION_ORDER,
        P.VIEW_BOM, P.CREATE_BOM, P.EDIT_BOM, P.VIEW_QUALITY, P.VIEW_REPORTS,
    }),
    RoleName.ADMIN: ALL_PERMISSIONS,
    RoleName.EXECUTIVE: ALL_PERMISSIONS,
    RoleName.VIEWER: frozenset({
        P.VIEW_DASHBOARD, P.VIEW_INVENTORY, P.VIEW_PRODUCTION, P.VIEW_PURCHASING,
        P.VIEW_SALES, P.VIEW_QUALITY, P.VIEW_BOM, P.VIEW_REPORTS,
    }),
}

ROLE_TIERS: Dict[RoleName, int] = {
    RoleName.VIEWER: 0,
    RoleName.OPERATOR: 1,
    RoleName.SUPERVISOR: 2,
    RoleName.INVENTORY: 2,
    RoleName.PURCHASING: 2,
    RoleName.MAINTENANCE: 2,
    RoleName.QC: 2,
    RoleName.SALES: 3,
    RoleName.ENGINEERING: 4,
    RoleName.ADMIN: 5,
    RoleName.EXECUTIVE: 5,
}

_DISPLAY_NAMES: Dict[RoleName, str] = {
    RoleName.INVENTORY: "Inventory Manager",
    RoleName.QC: "Quality Control",
    RoleName.ADMIN: "Administrator",
}

# Roles that bypass site membership checks
SITE_WIDE_ROLES: FrozenSet[RoleName] = frozenset({RoleName.ADMIN, RoleName.EXECUTIVE})


def _to_role(role: str | RoleName) -> RoleName | None:
    try:
        return RoleName(role)
    except ValueError:
        return None


def _to_permission(permission: str | PermissionCode) -> PermissionCode | None:
    try:
        return PermissionCode(permission)
    except ValueError:
        return None


# PUBLIC_INTERFACE
def permissions_for_roles(roles: Iterable[str | RoleName]) -> List[str]:
    """Return the sorted union of permission codes granted by the given role names."""
    granted: set[PermissionCode] = set()
    for role in roles:
        known = _to_role(role)
        if known is not None:
            granted |= ROLE_PERMISSIONS[known]
    return sorted(p.value for p in granted)


# PUBLIC_INTERFACE
def has_permission(roles: Iterable[str | RoleName], permission: str | PermissionCode) -> bool:
    """True when any of the roles grants the permission."""
    perm = _to_permission(permission)
    if perm is None:
        return False
    for role in roles:
        known = _to_role(role)
        if known is not None and perm in ROLE_PERMISSIONS[known]:
            return True
    return False


# PUBLIC_INTERFACE
def has_any_permission(roles: Iterable[str | RoleName], permissions: Iterable[str | PermissionCode]) -> bool:
    role_list = list(roles)
    return any(has_permission(role_list, p) for p in permissions)


# PUBLIC_INTERFACE
def has_all_permissions(roles: Iterable[str | RoleName], permissions: Iterable[str | PermissionCode]) -> bool:
    role_list = list(roles)
    return all(has_permission(role_list, p) for p in permissions)


# PUBLIC_INTERFACE
def get_role_tier(role: str | RoleName) -> int:
    """Hierarchy tier of a role; unknown roles rank with Viewer at 0."""
    known = _to_role(role)
    return ROLE_TIERS.get(known, 0) if known is not None else 0


# PUBLIC_INTERFACE
def get_role_display_name(role: str | RoleName) -> str:
    known = _to_role(role)
    if known is None:
        return str(role)
    return _DISPLAY_NAMES.get(known, known.value)


# PUBLIC_INTERFACE
def can_access_department(role: str | RoleName, department: str) -> bool:
    """
    Department visibility by role. Matching is a case-insensitive substring test.
    """
    dept = (department or "").lower()
    known = _to_role(role)
    if known in (RoleName.ADMIN, RoleName.EXECUTIVE):
        return True
    if known == RoleName.SALES:
        return "sales" in dept
    if known == RoleName.OPERATOR:
        return False
    if known == RoleName.INVENTORY:
        return any(k in dept for k in ("inventory", "receiving", "shipping", "warehouse"))
    if known == RoleName.PURCHASING:
        return any(k in dept for k in ("purchasing", "receiving"))
    if known == RoleName.QC:
        return any(k in dept for k in ("quality", "qc", "inspection", "production"))
    return True


# PUBLIC_INTERFACE
def is_site_wide(roles: Iterable[str | RoleName]) -> bool:
    """True when any role may act on every site of the tenant."""
    return any(_to_role(r) in SITE_WIDE_ROLES for r in roles)
