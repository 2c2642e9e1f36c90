import pytest

from src.core.errors import AuthorizationError
from src.core.permissions import (
    PermissionCode,
    RoleName,
    can_access_department,
    get_role_display_name,
    get_role_tier,
    has_all_permissions,
    has_any_permission,
    has_permission,
    is_site_wide,
    permissions_for_roles,
)

from tests.fakes import OTHER_SITE_ID, SITE_ID, make_ctx


def test_admin_and_executive_hold_every_permission():
    everything = sorted(p.value for p in PermissionCode)
    assert permissions_for_roles([RoleName.ADMIN]) == everything
    assert permissions_for_roles(["Executive"]) == everything


def test_permissions_are_the_union_of_roles():
    granted = permissions_for_roles(["Operator", "QC"])
    assert "complete_production_job" in granted
    assert "create_ncr" in granted
    assert "adjust_inventory" not in granted


def test_unknown_roles_and_permissions_grant_nothing():
    assert permissions_for_roles(["Janitor"]) == []
    assert not has_permission(["Admin"], "launch_rockets")


@pytest.mark.parametrize(
    "role, permission, expected",
    [
        ("Operator", PermissionCode.ADJUST_INVENTORY, False),
        ("Inventory", PermissionCode.ADJUST_INVENTORY, True),
        ("Purchasing", PermissionCode.APPROVE_PURCHASE_ORDER, True),
        ("Engineering", PermissionCode.APPROVE_BOM, False),
        ("Viewer", "view_dashboard", True),
        ("Sales", PermissionCode.CREATE_SHIPMENT, True),
    ],
)
def test_role_matrix(role, permission, expected):
    assert has_permission([role], permission) is expected


def test_any_and_all_permissions():
    roles = ["Engineering"]
    assert has_any_permission(roles, [PermissionCode.APPROVE_BOM, PermissionCode.EDIT_BOM])
    assert not has_all_permissions(roles, [PermissionCode.APPROVE_BOM, PermissionCode.EDIT_BOM])
    assert has_all_permissions(roles, [PermissionCode.CREATE_BOM, PermissionCode.EDIT_BOM])


def test_role_tiers_and_display_names():
    assert get_role_tier("Viewer") == 0
    assert get_role_tier(RoleName.ENGINEERING) == 4
    assert get_role_tier("Admin") == get_role_tier("Executive") == 5
    assert get_role_tier("nobody") == 0

    assert get_role_display_name("Inventory") == "Inventory Manager"
    assert get_role_display_name(RoleName.QC) == "Quality Control"
    assert get_role_display_name("Admin") == "Administrator"
    assert get_role_display_name("Sales") == "Sales"
    assert get_role_display_name("custom") == "custom"


@pytest.mark.parametrize(
    "role, department, expected",
    [
        ("Admin", "Anything", True),
        ("Sales", "Sales Operations", True),
        ("Sales", "Production", False),
        ("Operator", "Production", False),
        ("Inventory", "Receiving Dock", True),
        ("Inventory", "Quality Lab", False),
        ("Purchasing", "purchasing", True),
        ("QC", "Final Inspection", True),
        ("Engineering", "Finance", True),
    ],
)
def test_department_visibility(role, department, expected):
    assert can_access_department(role, department) is expected


def test_site_wide_roles():
    assert is_site_wide(["Operator", "Executive"])
    assert not is_site_wide(["Supervisor"])


def test_context_site_access():
    make_ctx("Operator").ensure_site(SITE_ID)
    make_ctx("Admin", site_ids=[]).ensure_site(OTHER_SITE_ID)
    make_ctx(is_superadmin=True, site_ids=[]).ensure_site(OTHER_SITE_ID)

    with pytest.raises(AuthorizationError):
        make_ctx("Supervisor").ensure_site(OTHER_SITE_ID)


def test_context_roles_and_permissions():
    ctx = make_ctx("Supervisor")
    assert ctx.has_role(RoleName.ADMIN, RoleName.SUPERVISOR)
    assert not ctx.has_role("Admin")
    assert ctx.can(PermissionCode.CREATE_PRODUCTION_ORDER)
    assert not ctx.can("approve_bom")
    assert ctx.can_any(["approve_bom", "view_bom"])

    root = make_ctx(is_superadmin=True)
    assert root.has_role("Admin")
    assert root.can("approve_bom")
    assert root.display_name == "Test User"
