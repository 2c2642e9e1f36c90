"""
Demo data for a fresh database.

Seeds (idempotently):
- a tenant and its main site
- every role with its permissions from the role matrix
- an Admin user with access to the site
- items with alternate units of measure
- storage locations of each type
- frozen, refrigerated and ambient temperature zones
- reason codes cited by scrap, adjustment and hold events

Usage:
  python -m src.db.run_migrations upgrade head
  python -m src.db.seed
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Tuple
from uuid import UUID, uuid4

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.permissions import ROLE_PERMISSIONS, PermissionCode, RoleName, get_role_display_name
from src.core.security import get_password_hash
from src.core.settings import get_app_settings
from src.db.session import session_scope, tenant_context

logger = logging.getLogger(__name__)

SITE_CODE = "MAIN"

# sku, name, category, base_uom, reorder point, [(uom, to_base)]
ITEMS: List[Tuple[str, str, str, str, Optional[float], List[Tuple[str, float]]]] = [
    ("RM-FLOUR-25", "Wheat Flour", "PRODUCTION", "KG", 500.0, [("BAG", 25.0), ("PALLET", 1000.0)]),
    ("RM-SUGAR", "Granulated Sugar", "PRODUCTION", "KG", 200.0, [("BAG", 50.0)]),
    ("PK-BOX-S", "Shipping Box Small", "PACKAGING", "EA", 1000.0, [("BUNDLE", 25.0), ("PALLET", 2000.0)]),
    ("FG-COOKIE-12", "Cookie Pack x12", "PRODUCTION", "EA", 100.0, [("CASE", 12.0)]),
    ("CH-SANITIZER", "Food-Safe Sanitizer", "CHEMICAL_MRO", "L", 20.0, [("DRUM", 200.0)]),
]

# label, type, zone, bin
LOCATIONS: List[Tuple[str, str, Optional[str], Optional[str]]] = [
    ("RCV-01", "RECEIVING", "DOCK", None),
    ("A-01-01", "STOCK", "A", "01-01"),
    ("A-01-02", "STOCK", "A", "01-02"),
    ("WIP-01", "WIP", "LINE1", None),
    ("QC-HOLD", "QC_HOLD", "QC", None),
    ("SHP-01", "SHIPPING", "DOCK", None),
]

# code, type, description
REASON_CODES: List[Tuple[str, str, str]] = [
    ("DAMAGED", "SCRAP", "Damaged in handling"),
    ("SCRAP-DEFECT", "SCRAP", "Production defect"),
    ("CYCLE_COUNT", "ADJUST", "Cycle count variance"),
    ("ADJUST-AUDIT", "ADJUST", "Audit correction"),
    ("QC_FAIL", "HOLD", "Failed quality inspection"),
]

# code, name, min, max, warning_min, warning_max, critical_min, critical_max
ZONES: List[Tuple[str, str, float, float, float, float, float, float]] = [
    ("FROZEN", "Freezer", -25.0, -18.0, -26.0, -17.0, -30.0, -15.0),
    ("REFRIG", "Cooler", 2.0, 8.0, 1.0, 9.0, 0.0, 10.0),
    ("CRT", "Controlled Room Temperature", 15.0, 25.0, 14.0, 26.0, 10.0, 30.0),
]


# PUBLIC_INTERFACE
async def seed_all() -> None:
    """Create the demo tenant and its reference data; safe to run repeatedly."""
    settings = get_app_settings()
    async with session_scope() as session:
        tenant_id = await _ensure_tenant(session, settings.DEFAULT_TENANT_NAME, settings.DEFAULT_TENANT_SLUG)
        async with tenant_context(session, tenant_id):
            site_id = await _seed_site(session)
            role_ids = await _seed_security(session)
            await _seed_admin(
                session, role_ids[RoleName.ADMIN], site_id, settings.SEED_ADMIN_EMAIL, settings.SEED_ADMIN_PASSWORD
            )
            await _seed_items(session)
            await _seed_locations(session, site_id)
            await _seed_zones(session, site_id)
            await _seed_reason_codes(session)
        await session.commit()
    logger.info("Seeded tenant '%s' (%s)", settings.DEFAULT_TENANT_SLUG, tenant_id)


async def _scalar(session: AsyncSession, sql: str, params: Optional[Dict[str, object]] = None):
    res = await session.execute(text(sql), params or {})
    row = res.first()
    return row[0] if row else None


async def _ensure_tenant(session: AsyncSession, name: str, slug: str) -> UUID:
    """
    Find or create the tenant. The tenants RLS policy checks id against
    app.tenant_id, so the GUC is set to the new id before inserting.
    """
    existing = await _scalar(session, "SELECT id FROM tenants WHERE slug = :slug", {"slug": slug})
    if existing:
        return existing

    tenant_id = uuid4()
    await session.execute(text("SELECT set_config('app.tenant_id', :tid, false)"), {"tid": str(tenant_id)})
    await session.execute(
        text("INSERT INTO tenants (id, name, slug) VALUES (:id, :name, :slug) ON CONFLICT (slug) DO NOTHING"),
        {"id": str(tenant_id), "name": name, "slug": slug},
    )
    created = await _scalar(session, "SELECT id FROM tenants WHERE slug = :slug", {"slug": slug})
    if not created:
        raise RuntimeError(f"Failed to create or load tenant '{slug}'")
    return created


async def _seed_site(session: AsyncSession) -> UUID:
    await session.execute(
        text(
            """
            INSERT INTO sites (code, name, timezone)
            VALUES (:code, 'Main Warehouse', 'UTC')
            ON CONFLICT ON CONSTRAINT uq_sites_tenant_code DO NOTHING
            """
        ),
        {"code": SITE_CODE},
    )
    return await _scalar(session, "SELECT id FROM sites WHERE code = :code", {"code": SITE_CODE})


async def _seed_security(session: AsyncSession) -> Dict[RoleName, UUID]:
    """Insert every permission code and role, and link them per the role matrix."""
    for code in PermissionCode:
        await session.execute(
            text(
                """
                INSERT INTO permissions (code, description)
                VALUES (:code, :desc)
                ON CONFLICT ON CONSTRAINT uq_permissions_tenant_code DO NOTHING
                """
            ),
            {"code": code.value, "desc": code.value.replace("_", " ").capitalize()},
        )
    perm_rows = await session.execute(text("SELECT code, id FROM permissions"))
    perm_ids = {code: pid for code, pid in perm_rows.all()}

    role_ids: Dict[RoleName, UUID] = {}
    for role in RoleName:
        await session.execute(
            text(
                """
                INSERT INTO roles (name, description)
                VALUES (:name, :desc)
                ON CONFLICT ON CONSTRAINT uq_roles_tenant_name DO NOTHING
                """
            ),
            {"name": role.value, "desc": get_role_display_name(role)},
        )
        role_ids[role] = await _scalar(session, "SELECT id FROM roles WHERE name = :name", {"name": role.value})

        for perm in ROLE_PERMISSIONS[role]:
            await session.execute(
                text(
                    """
                    INSERT INTO role_permissions (role_id, permission_id)
                    VALUES (:rid, :pid)
                    ON CONFLICT ON CONSTRAINT uq_role_permissions_tenant_role_permission DO NOTHING
                    """
                ),
                {"rid": str(role_ids[role]), "pid": str(perm_ids[perm.value])},
            )
    return role_ids


async def _seed_admin(session: AsyncSession, admin_role_id: UUID, site_id: UUID, email: str, password: str) -> None:
    user_id = await _scalar(session, "SELECT id FROM users WHERE email = :email", {"email": email})
    if user_id is None:
        user_id = await _scalar(
            session,
            """
            INSERT INTO users (email, full_name, hashed_password)
            VALUES (:email, 'Administrator', :pw)
            RETURNING id
            """,
            {"email": email, "pw": get_password_hash(password)},
        )
        logger.info("Created admin user %s", email)

    await session.execute(
        text(
            """
            INSERT INTO user_roles (user_id, role_id) VALUES (:uid, :rid)
            ON CONFLICT ON CONSTRAINT uq_user_roles_tenant_user_role DO NOTHING
            """
        ),
        {"uid": str(user_id), "rid": str(admin_role_id)},
    )
    await session.execute(
        text(
            """
            INSERT INTO user_sites (user_id, site_id) VALUES (:uid, :sid)
            ON CONFLICT ON CONSTRAINT uq_user_sites_tenant_user_site DO NOTHING
            """
        ),
        {"uid": str(user_id), "sid": str(site_id)},
    )


async def _seed_items(session: AsyncSession) -> None:
    for sku, name, category, base_uom, reorder_point, conversions in ITEMS:
        item_id = await _scalar(session, "SELECT id FROM items WHERE sku = :sku", {"sku": sku})
        if item_id is not None:
            continue
        item_id = await _scalar(
            session,
            """
            INSERT INTO items (sku, name, category, base_uom, reorder_point_base)
            VALUES (:sku, :name, :category, :base_uom, :rop)
            RETURNING id
            """,
            {"sku": sku, "name": name, "category": category, "base_uom": base_uom, "rop": reorder_point},
        )
        for uom, to_base in conversions:
            await session.execute(
                text("INSERT INTO item_uom_conversions (item_id, uom, to_base) VALUES (:iid, :uom, :to_base)"),
                {"iid": str(item_id), "uom": uom, "to_base": to_base},
            )


async def _seed_locations(session: AsyncSession, site_id: UUID) -> None:
    for label, loc_type, zone, bin_code in LOCATIONS:
        await session.execute(
            text(
                """
                INSERT INTO locations (site_id, label, type, zone, bin)
                VALUES (:sid, :label, :type, :zone, :bin)
                ON CONFLICT ON CONSTRAINT uq_locations_site_label DO NOTHING
                """
            ),
            {"sid": str(site_id), "label": label, "type": loc_type, "zone": zone, "bin": bin_code},
        )


async def _seed_zones(session: AsyncSession, site_id: UUID) -> None:
    for code, name, lo, hi, warn_lo, warn_hi, crit_lo, crit_hi in ZONES:
        await session.execute(
            text(
                """
                INSERT INTO temperature_zones
                    (site_id, code, name, min_temp, max_temp, warning_min, warning_max, critical_min, critical_max)
                VALUES (:sid, :code, :name, :lo, :hi, :wlo, :whi, :clo, :chi)
                ON CONFLICT ON CONSTRAINT uq_temperature_zones_tenant_site_code DO NOTHING
                """
            ),
            {
                "sid": str(site_id),
                "code": code,
                "name": name,
                "lo": lo,
                "hi": hi,
                "wlo": warn_lo,
                "whi": warn_hi,
                "clo": crit_lo,
                "chi": crit_hi,
            },
        )


async def _seed_reason_codes(session: AsyncSession) -> None:
    for code, reason_type, description in REASON_CODES:
        await session.execute(
            text(
                """
                INSERT INTO reason_codes (type, code, description)
                VALUES (:type, :code, :description)
                ON CONFLICT ON CONSTRAINT uq_reason_codes_tenant_code DO NOTHING
                """
            ),
            {"type": reason_type, "code": code, "description": description},
        )


# PUBLIC_INTERFACE
def main() -> None:
    """Entrypoint to run the asynchronous seeding."""
    logging.basicConfig(level=logging.INFO)
    asyncio.run(seed_all())


if __name__ == "__main__":
    main()
