"""Initial warehouse schema with multi-tenancy and RLS.

- tenancy: tenants, sites, user_sites
- security: users, roles, permissions, user_roles, role_permissions
- audit_events
- master data: items, item_uom_conversions, locations
- inventory: inventory_events, inventory_balances, cycle_counts, cycle_count_lines
- jobs, job_lines
- production: boms, bom_components, production_orders, production_outputs
- purchasing: suppliers, purchase_orders, purchase_order_lines, receipts, receipt_lines
- sales: customers, sales_orders, sales_order_lines, pick_tasks, pick_task_lines, shipments
- quality: ncrs, capas
- cold chain: temperature_zones, temperature_readings, temperature_excursions
- transfers: transfer_orders, transfer_lines

Also creates helper function set_tenant_id(uuid) to set the app.tenant_id GUC.
"""

from typing import List, Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "3c1d9e7a5b20"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

QTY = sa.Numeric(18, 6)
MONEY = sa.Numeric(18, 4)

TENANT_TABLES: List[str] = [
    "sites",
    "users",
    "user_sites",
    "roles",
    "permissions",
    "user_roles",
    "role_permissions",
    "audit_events",
    "items",
    "item_uom_conversions",
    "locations",
    "inventory_events",
    "inventory_balances",
    "cycle_counts",
    "cycle_count_lines",
    "jobs",
    "job_lines",
    "boms",
    "bom_components",
    "production_orders",
    "production_outputs",
    "suppliers",
    "purchase_orders",
    "purchase_order_lines",
    "receipts",
    "receipt_lines",
    "customers",
    "sales_orders",
    "sales_order_lines",
    "pick_tasks",
    "pick_task_lines",
    "shipments",
    "ncrs",
    "capas",
    "temperature_zones",
    "temperature_readings",
    "temperature_excursions",
    "transfer_orders",
    "transfer_lines",
]


def _id() -> sa.Column:
    return sa.Column("id", sa.UUID(), primary_key=True, server_default=sa.text("uuid_generate_v4()"))


def _tenant() -> List[sa.SchemaItem]:
    return [
        sa.Column(
            "tenant_id",
            sa.UUID(),
            nullable=False,
            server_default=sa.text("current_setting('app.tenant_id', true)::uuid"),
        ),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
    ]


def _site(nullable: bool = False, ondelete: str = "RESTRICT") -> List[sa.SchemaItem]:
    return [
        sa.Column("site_id", sa.UUID(), nullable=nullable),
        sa.ForeignKeyConstraint(["site_id"], ["sites.id"], ondelete=ondelete),
    ]


def _user_ref(name: str) -> List[sa.SchemaItem]:
    return [
        sa.Column(name, sa.UUID(), nullable=True),
        sa.ForeignKeyConstraint([name], ["users.id"], ondelete="SET NULL"),
    ]


def _ref(name: str, target: str, ondelete: str = "RESTRICT", nullable: bool = False) -> List[sa.SchemaItem]:
    return [
        sa.Column(name, sa.UUID(), nullable=nullable),
        sa.ForeignKeyConstraint([name], [f"{target}.id"], ondelete=ondelete),
    ]


def _timestamps() -> List[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def _status(default: str) -> sa.Column:
    return sa.Column("status", sa.Text(), nullable=False, server_default=default)


def _index(table: str, *columns: str) -> None:
    op.create_index(f"ix_{table}_{'_'.join(columns)}", table, list(columns))


def upgrade() -> None:
    # Extensions
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp";')

    # Helper function to set tenant in the current session
    op.execute(
        """
        CREATE OR REPLACE FUNCTION set_tenant_id(p_tenant_id uuid)
        RETURNS void AS $$
        BEGIN
            PERFORM set_config('app.tenant_id', p_tenant_id::text, false);
        END;
        $$ LANGUAGE plpgsql;
        """
    )

    # Tenancy
    op.create_table(
        "tenants",
        _id(),
        sa.Column("name", sa.Text(), nullable=False, unique=True),
        sa.Column("slug", sa.Text(), nullable=False, unique=True),
        *_timestamps(),
    )
    op.create_table(
        "sites",
        _id(),
        *_tenant(),
        sa.Column("code", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("timezone", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "code", name="uq_sites_tenant_code"),
    )

    # Security
    op.create_table(
        "users",
        _id(),
        *_tenant(),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("full_name", sa.Text(), nullable=True),
        sa.Column("hashed_password", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("is_superadmin", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "email", name="uq_users_tenant_email"),
    )
    op.create_table(
        "user_sites",
        _id(),
        *_tenant(),
        *_ref("user_id", "users", ondelete="CASCADE"),
        *_ref("site_id", "sites", ondelete="CASCADE"),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "user_id", "site_id", name="uq_user_sites_tenant_user_site"),
    )
    op.create_table(
        "roles",
        _id(),
        *_tenant(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "name", name="uq_roles_tenant_name"),
    )
    op.create_table(
        "permissions",
        _id(),
        *_tenant(),
        sa.Column("code", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "code", name="uq_permissions_tenant_code"),
    )
    op.create_table(
        "user_roles",
        _id(),
        *_tenant(),
        *_ref("user_id", "users", ondelete="CASCADE"),
        *_ref("role_id", "roles", ondelete="CASCADE"),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "user_id", "role_id", name="uq_user_roles_tenant_user_role"),
    )
    op.create_table(
        "role_permissions",
        _id(),
        *_tenant(),
        *_ref("role_id", "roles", ondelete="CASCADE"),
        *_ref("permission_id", "permissions", ondelete="CASCADE"),
        *_timestamps(),
        sa.UniqueConstraint(
            "tenant_id", "role_id", "permission_id", name="uq_role_permissions_tenant_role_permission"
        ),
    )

    # Audit
    op.create_table(
        "audit_events",
        _id(),
        *_tenant(),
        *_user_ref("user_id"),
        sa.Column("action", sa.Text(), nullable=False),
        sa.Column("entity_type", sa.Text(), nullable=False),
        sa.Column("entity_id", sa.UUID(), nullable=True),
        sa.Column("details", sa.Text(), nullable=True),
        sa.Column("ip_address", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_audit_events_tenant_entity", "audit_events", ["tenant_id", "entity_type", "entity_id"])

    # Master data
    op.create_table(
        "items",
        _id(),
        *_tenant(),
        sa.Column("sku", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.Text(), nullable=False),
        sa.Column("base_uom", sa.Text(), nullable=False),
        sa.Column("min_qty_base", QTY, nullable=True),
        sa.Column("max_qty_base", QTY, nullable=True),
        sa.Column("reorder_point_base", QTY, nullable=True),
        sa.Column("lead_time_days", sa.Integer(), nullable=True),
        sa.Column("barcode", sa.Text(), nullable=True),
        sa.Column("standard_cost", MONEY, nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "sku", name="uq_items_tenant_sku"),
    )
    op.create_table(
        "item_uom_conversions",
        _id(),
        *_tenant(),
        *_ref("item_id", "items", ondelete="CASCADE"),
        sa.Column("uom", sa.Text(), nullable=False),
        sa.Column("to_base", QTY, nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("item_id", "uom", name="uq_item_uom_conversions_item_uom"),
        sa.CheckConstraint("to_base > 0", name="ck_item_uom_conversions_to_base_positive"),
    )
    op.create_table(
        "locations",
        _id(),
        *_tenant(),
        *_site(),
        sa.Column("zone", sa.Text(), nullable=True),
        sa.Column("bin", sa.Text(), nullable=True),
        sa.Column("label", sa.Text(), nullable=False),
        sa.Column("type", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("site_id", "label", name="uq_locations_site_label"),
    )

    # Inventory
    op.create_table(
        "inventory_events",
        _id(),
        *_tenant(),
        *_site(),
        *_user_ref("created_by_user_id"),
        sa.Column("event_type", sa.Text(), nullable=False),
        *_ref("item_id", "items"),
        sa.Column("qty_entered", QTY, nullable=False),
        sa.Column("uom_entered", sa.Text(), nullable=False),
        sa.Column("qty_base", QTY, nullable=False),
        *_ref("from_location_id", "locations", nullable=True),
        *_ref("to_location_id", "locations", nullable=True),
        sa.Column("reason_code", sa.Text(), nullable=True),
        sa.Column("reference_id", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_inventory_events_tenant_item_created", "inventory_events", ["tenant_id", "item_id", "created_at"]
    )
    op.create_table(
        "inventory_balances",
        _id(),
        *_tenant(),
        *_site(),
        *_ref("item_id", "items"),
        *_ref("location_id", "locations"),
        sa.Column("qty_base", QTY, nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint(
            "tenant_id", "item_id", "location_id", name="uq_inventory_balances_tenant_item_location"
        ),
    )
    op.create_table(
        "cycle_counts",
        _id(),
        *_tenant(),
        *_site(),
        *_user_ref("created_by_user_id"),
        sa.Column("name", sa.Text(), nullable=False),
        _status("SCHEDULED"),
        sa.Column("scheduled_date", sa.Date(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_user_ref("assigned_to_user_id"),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_table(
        "cycle_count_lines",
        _id(),
        *_tenant(),
        *_ref("cycle_count_id", "cycle_counts", ondelete="CASCADE"),
        *_ref("item_id", "items"),
        *_ref("location_id", "locations"),
        sa.Column("expected_qty_base", QTY, nullable=False),
        sa.Column("counted_qty_base", QTY, nullable=True),
        sa.Column("variance_qty_base", QTY, nullable=True),
        _status("PENDING"),
        *_user_ref("counted_by_user_id"),
        sa.Column("counted_at", sa.DateTime(timezone=True), nullable=True),
        *_user_ref("approved_by_user_id"),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
    )
    _index("cycle_count_lines", "cycle_count_id")

    # Jobs
    op.create_table(
        "jobs",
        _id(),
        *_tenant(),
        *_site(),
        *_user_ref("created_by_user_id"),
        sa.Column("job_number", sa.Text(), nullable=False),
        sa.Column("job_type", sa.Text(), nullable=False),
        _status("DRAFT"),
        sa.Column("priority", sa.Text(), nullable=False, server_default="NORMAL"),
        sa.Column("description", sa.Text(), nullable=True),
        *_user_ref("assigned_to_user_id"),
        sa.Column("scheduled_date", sa.Date(), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "job_number", name="uq_jobs_tenant_job_number"),
    )
    op.create_table(
        "job_lines",
        _id(),
        *_tenant(),
        *_ref("job_id", "jobs", ondelete="CASCADE"),
        *_ref("item_id", "items"),
        *_ref("from_location_id", "locations", ondelete="SET NULL", nullable=True),
        *_ref("to_location_id", "locations", ondelete="SET NULL", nullable=True),
        sa.Column("qty_ordered", QTY, nullable=False),
        sa.Column("qty_completed", QTY, nullable=False, server_default="0"),
        sa.Column("uom", sa.Text(), nullable=False),
        _status("PENDING"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    _index("job_lines", "job_id")

    # Production
    op.create_table(
        "boms",
        _id(),
        *_tenant(),
        *_user_ref("created_by_user_id"),
        *_ref("item_id", "items"),
        sa.Column("bom_number", sa.Text(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        _status("DRAFT"),
        sa.Column("base_qty", QTY, nullable=False),
        sa.Column("base_uom", sa.Text(), nullable=False),
        sa.Column("effective_from", sa.Date(), nullable=True),
        sa.Column("effective_to", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "item_id", "version", name="uq_boms_tenant_item_version"),
    )
    op.create_table(
        "bom_components",
        _id(),
        *_tenant(),
        *_ref("bom_id", "boms", ondelete="CASCADE"),
        *_ref("item_id", "items"),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("qty_per", QTY, nullable=False),
        sa.Column("uom", sa.Text(), nullable=False),
        sa.Column("scrap_factor", QTY, nullable=False, server_default="0"),
        sa.Column("is_optional", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("issue_method", sa.Text(), nullable=False, server_default="BACKFLUSH"),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("qty_per > 0", name="ck_bom_components_qty_per_positive"),
        sa.CheckConstraint(
            "scrap_factor >= 0 AND scrap_factor <= 100", name="ck_bom_components_scrap_factor_range"
        ),
    )
    _index("bom_components", "bom_id")
    op.create_table(
        "production_orders",
        _id(),
        *_tenant(),
        *_site(),
        *_user_ref("created_by_user_id"),
        sa.Column("order_number", sa.Text(), nullable=False),
        *_ref("bom_id", "boms"),
        *_ref("item_id", "items"),
        _status("PLANNED"),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("qty_ordered", QTY, nullable=False),
        sa.Column("qty_completed", QTY, nullable=False, server_default="0"),
        sa.Column("qty_rejected", QTY, nullable=False, server_default="0"),
        sa.Column("uom", sa.Text(), nullable=False),
        sa.Column("scheduled_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("scheduled_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_end", sa.DateTime(timezone=True), nullable=True),
        *_user_ref("released_by_user_id"),
        sa.Column("released_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "order_number", name="uq_production_orders_tenant_order_number"),
        sa.CheckConstraint("priority BETWEEN 1 AND 10", name="ck_production_orders_priority_range"),
    )
    op.create_table(
        "production_outputs",
        _id(),
        *_tenant(),
        *_ref("production_order_id", "production_orders", ondelete="CASCADE"),
        *_ref("item_id", "items"),
        sa.Column("qty_completed", QTY, nullable=False),
        sa.Column("qty_rejected", QTY, nullable=False),
        sa.Column("uom", sa.Text(), nullable=False),
        sa.Column("qty_base", QTY, nullable=False),
        *_ref("to_location_id", "locations", ondelete="SET NULL", nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_user_ref("recorded_by_user_id"),
        *_timestamps(),
    )
    _index("production_outputs", "production_order_id")

    # Purchasing
    op.create_table(
        "suppliers",
        _id(),
        *_tenant(),
        sa.Column("code", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("phone", sa.Text(), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("payment_terms", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "code", name="uq_suppliers_tenant_code"),
    )
    op.create_table(
        "purchase_orders",
        _id(),
        *_tenant(),
        *_site(),
        *_user_ref("created_by_user_id"),
        *_ref("supplier_id", "suppliers"),
        sa.Column("po_number", sa.Text(), nullable=False),
        _status("DRAFT"),
        sa.Column("order_date", sa.Date(), nullable=True),
        sa.Column("expected_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_user_ref("approved_by_user_id"),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "po_number", name="uq_purchase_orders_tenant_po_number"),
    )
    op.create_table(
        "purchase_order_lines",
        _id(),
        *_tenant(),
        *_ref("purchase_order_id", "purchase_orders", ondelete="CASCADE"),
        sa.Column("line_number", sa.Integer(), nullable=False),
        *_ref("item_id", "items"),
        sa.Column("qty_ordered", QTY, nullable=False),
        sa.Column("qty_received", QTY, nullable=False, server_default="0"),
        sa.Column("uom", sa.Text(), nullable=False),
        sa.Column("unit_price", MONEY, nullable=False, server_default="0"),
        _status("OPEN"),
        *_timestamps(),
    )
    _index("purchase_order_lines", "purchase_order_id")
    op.create_table(
        "receipts",
        _id(),
        *_tenant(),
        *_site(),
        *_ref("purchase_order_id", "purchase_orders"),
        sa.Column("receipt_number", sa.Text(), nullable=False),
        sa.Column("receipt_date", sa.Date(), nullable=False),
        *_ref("location_id", "locations"),
        sa.Column("received_by", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "receipt_number", name="uq_receipts_tenant_receipt_number"),
    )
    _index("receipts", "purchase_order_id")
    op.create_table(
        "receipt_lines",
        _id(),
        *_tenant(),
        *_ref("receipt_id", "receipts", ondelete="CASCADE"),
        *_ref("purchase_order_line_id", "purchase_order_lines"),
        *_ref("item_id", "items"),
        sa.Column("qty_received", QTY, nullable=False),
        sa.Column("uom", sa.Text(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
    )
    _index("receipt_lines", "receipt_id")

    # Sales
    op.create_table(
        "customers",
        _id(),
        *_tenant(),
        sa.Column("code", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("phone", sa.Text(), nullable=True),
        sa.Column("billing_address", sa.Text(), nullable=True),
        sa.Column("shipping_address1", sa.Text(), nullable=True),
        sa.Column("shipping_city", sa.Text(), nullable=True),
        sa.Column("shipping_state", sa.Text(), nullable=True),
        sa.Column("shipping_zip", sa.Text(), nullable=True),
        sa.Column("shipping_country", sa.Text(), nullable=True),
        sa.Column("payment_terms", sa.Text(), nullable=True),
        sa.Column("credit_limit", MONEY, nullable=True),
        sa.Column("tax_exempt", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "code", name="uq_customers_tenant_code"),
    )
    op.create_table(
        "sales_orders",
        _id(),
        *_tenant(),
        *_site(),
        *_user_ref("created_by_user_id"),
        *_ref("customer_id", "customers"),
        sa.Column("order_number", sa.Text(), nullable=False),
        sa.Column("customer_po", sa.Text(), nullable=True),
        _status("DRAFT"),
        sa.Column("order_date", sa.Date(), nullable=False),
        sa.Column("requested_date", sa.Date(), nullable=True),
        sa.Column("promised_date", sa.Date(), nullable=True),
        sa.Column("ship_to_name", sa.Text(), nullable=True),
        sa.Column("ship_to_address1", sa.Text(), nullable=True),
        sa.Column("ship_to_city", sa.Text(), nullable=True),
        sa.Column("ship_to_state", sa.Text(), nullable=True),
        sa.Column("ship_to_zip", sa.Text(), nullable=True),
        sa.Column("ship_to_country", sa.Text(), nullable=True),
        sa.Column("subtotal", MONEY, nullable=False, server_default="0"),
        sa.Column("tax_amount", MONEY, nullable=False, server_default="0"),
        sa.Column("shipping_amount", MONEY, nullable=False, server_default="0"),
        sa.Column("discount_amount", MONEY, nullable=False, server_default="0"),
        sa.Column("total", MONEY, nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "order_number", name="uq_sales_orders_tenant_order_number"),
    )
    op.create_table(
        "sales_order_lines",
        _id(),
        *_tenant(),
        *_ref("sales_order_id", "sales_orders", ondelete="CASCADE"),
        sa.Column("line_number", sa.Integer(), nullable=False),
        *_ref("item_id", "items"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("qty_ordered", QTY, nullable=False),
        sa.Column("qty_allocated", QTY, nullable=False, server_default="0"),
        sa.Column("qty_picked", QTY, nullable=False, server_default="0"),
        sa.Column("qty_shipped", QTY, nullable=False, server_default="0"),
        sa.Column("uom", sa.Text(), nullable=False),
        sa.Column("unit_price", MONEY, nullable=False, server_default="0"),
        sa.Column("discount", MONEY, nullable=False, server_default="0"),
        sa.Column("tax_rate", MONEY, nullable=False, server_default="0"),
        sa.Column("line_total", MONEY, nullable=False, server_default="0"),
        _status("OPEN"),
        *_timestamps(),
    )
    _index("sales_order_lines", "sales_order_id")
    op.create_table(
        "pick_tasks",
        _id(),
        *_tenant(),
        *_site(),
        *_ref("sales_order_id", "sales_orders", ondelete="CASCADE"),
        sa.Column("task_number", sa.Text(), nullable=False),
        _status("PENDING"),
        sa.Column("priority", sa.Text(), nullable=False, server_default="NORMAL"),
        *_user_ref("assigned_to_user_id"),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "task_number", name="uq_pick_tasks_tenant_task_number"),
    )
    _index("pick_tasks", "sales_order_id")
    op.create_table(
        "pick_task_lines",
        _id(),
        *_tenant(),
        *_ref("pick_task_id", "pick_tasks", ondelete="CASCADE"),
        *_ref("sales_order_line_id", "sales_order_lines", ondelete="CASCADE"),
        *_ref("item_id", "items"),
        *_ref("location_id", "locations"),
        sa.Column("qty_to_pick", QTY, nullable=False),
        sa.Column("qty_picked", QTY, nullable=False, server_default="0"),
        sa.Column("uom", sa.Text(), nullable=False),
        _status("PENDING"),
        *_timestamps(),
    )
    _index("pick_task_lines", "pick_task_id")
    op.create_table(
        "shipments",
        _id(),
        *_tenant(),
        *_site(),
        *_ref("sales_order_id", "sales_orders", ondelete="CASCADE"),
        sa.Column("shipment_number", sa.Text(), nullable=False),
        _status("SHIPPED"),
        sa.Column("carrier", sa.Text(), nullable=True),
        sa.Column("tracking_number", sa.Text(), nullable=True),
        sa.Column("shipped_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "shipment_number", name="uq_shipments_tenant_shipment_number"),
    )
    _index("shipments", "sales_order_id")

    # Quality
    op.create_table(
        "ncrs",
        _id(),
        *_tenant(),
        *_site(nullable=True, ondelete="SET NULL"),
        sa.Column("ncr_number", sa.Text(), nullable=False),
        *_ref("item_id", "items", ondelete="SET NULL", nullable=True),
        *_ref("production_order_id", "production_orders", ondelete="SET NULL", nullable=True),
        sa.Column("lot_number", sa.Text(), nullable=True),
        sa.Column("issue_type", sa.Text(), nullable=False),
        sa.Column("severity", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("qty_affected", QTY, nullable=False),
        sa.Column("uom", sa.Text(), nullable=False),
        _status("OPEN"),
        sa.Column("disposition", sa.Text(), nullable=False, server_default="PENDING"),
        sa.Column("disposition_notes", sa.Text(), nullable=True),
        sa.Column("disposition_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("root_cause", sa.Text(), nullable=True),
        sa.Column("capa_required", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        *_user_ref("reported_by_user_id"),
        sa.Column("reviewed_by", sa.Text(), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_by", sa.Text(), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "ncr_number", name="uq_ncrs_tenant_ncr_number"),
    )
    op.create_table(
        "capas",
        _id(),
        *_tenant(),
        *_ref("ncr_id", "ncrs", ondelete="CASCADE"),
        sa.Column("capa_number", sa.Text(), nullable=False),
        _status("OPEN"),
        sa.Column("root_cause_analysis", sa.Text(), nullable=True),
        sa.Column("proposed_actions", sa.Text(), nullable=True),
        sa.Column("responsible_person", sa.Text(), nullable=True),
        sa.Column("target_date", sa.Date(), nullable=True),
        sa.Column("implemented_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verification_method", sa.Text(), nullable=True),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verified_by", sa.Text(), nullable=True),
        sa.Column("verification_notes", sa.Text(), nullable=True),
        sa.Column("effectiveness_check", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "capa_number", name="uq_capas_tenant_capa_number"),
    )
    _index("capas", "ncr_id")

    # Cold chain
    op.create_table(
        "temperature_zones",
        _id(),
        *_tenant(),
        *_site(),
        sa.Column("code", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("min_temp", sa.Float(), nullable=False),
        sa.Column("max_temp", sa.Float(), nullable=False),
        sa.Column("unit", sa.Text(), nullable=False, server_default="C"),
        sa.Column("warning_min", sa.Float(), nullable=False),
        sa.Column("warning_max", sa.Float(), nullable=False),
        sa.Column("critical_min", sa.Float(), nullable=False),
        sa.Column("critical_max", sa.Float(), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "site_id", "code", name="uq_temperature_zones_tenant_site_code"),
    )
    op.create_table(
        "temperature_readings",
        _id(),
        *_tenant(),
        *_ref("zone_id", "temperature_zones", ondelete="CASCADE"),
        sa.Column("device_id", sa.Text(), nullable=True),
        sa.Column("temperature", sa.Float(), nullable=False),
        sa.Column("humidity", sa.Float(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("alert_triggered", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_temperature_readings_zone_recorded", "temperature_readings", ["zone_id", "recorded_at"])
    op.create_table(
        "temperature_excursions",
        _id(),
        *_tenant(),
        *_ref("zone_id", "temperature_zones", ondelete="CASCADE"),
        _status("OPEN"),
        sa.Column("severity", sa.Text(), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("min_temp", sa.Float(), nullable=False),
        sa.Column("max_temp", sa.Float(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        sa.Column(
            "affected_items", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")
        ),
        sa.Column("root_cause", sa.Text(), nullable=True),
        sa.Column("corrective_action", sa.Text(), nullable=True),
        sa.Column("investigated_by", sa.Text(), nullable=True),
        *_timestamps(),
    )
    _index("temperature_excursions", "zone_id")

    # Transfers
    op.create_table(
        "transfer_orders",
        _id(),
        *_tenant(),
        sa.Column("transfer_number", sa.Text(), nullable=False),
        *_ref("from_site_id", "sites"),
        *_ref("to_site_id", "sites"),
        _status("DRAFT"),
        sa.Column("priority", sa.Text(), nullable=False, server_default="NORMAL"),
        sa.Column("required_date", sa.Date(), nullable=True),
        sa.Column("carrier", sa.Text(), nullable=True),
        sa.Column("tracking_number", sa.Text(), nullable=True),
        sa.Column("estimated_arrival", sa.DateTime(timezone=True), nullable=True),
        sa.Column("shipped_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancel_reason", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_user_ref("requested_by_user_id"),
        *_user_ref("approved_by_user_id"),
        *_timestamps(),
        sa.UniqueConstraint(
            "tenant_id", "transfer_number", name="uq_transfer_orders_tenant_transfer_number"
        ),
    )
    _index("transfer_orders", "from_site_id")
    _index("transfer_orders", "to_site_id")
    op.create_table(
        "transfer_lines",
        _id(),
        *_tenant(),
        *_ref("transfer_order_id", "transfer_orders", ondelete="CASCADE"),
        *_ref("item_id", "items"),
        *_ref("from_location_id", "locations"),
        *_ref("to_location_id", "locations", nullable=True),
        sa.Column("lot_number", sa.Text(), nullable=True),
        sa.Column("requested_qty", QTY, nullable=False),
        sa.Column("shipped_qty", QTY, nullable=False, server_default="0"),
        sa.Column("received_qty", QTY, nullable=False, server_default="0"),
        sa.Column("damaged_qty", QTY, nullable=False, server_default="0"),
        sa.Column("variance_qty", QTY, nullable=False, server_default="0"),
        _status("PENDING"),
        *_timestamps(),
    )
    _index("transfer_lines", "transfer_order_id")

    # Tenant and site lookup indexes
    for tbl in TENANT_TABLES:
        _index(tbl, "tenant_id")
    for tbl in [
        "locations",
        "inventory_events",
        "inventory_balances",
        "cycle_counts",
        "jobs",
        "production_orders",
        "purchase_orders",
        "receipts",
        "sales_orders",
        "pick_tasks",
        "shipments",
        "ncrs",
        "temperature_zones",
    ]:
        _index(tbl, "site_id")

    # Enable RLS and add policies
    op.execute("ALTER TABLE tenants ENABLE ROW LEVEL SECURITY;")
    op.execute(
        """
        CREATE POLICY tenant_row_access ON tenants
        USING (id = NULLIF(current_setting('app.tenant_id', true), '')::uuid)
        WITH CHECK (id = NULLIF(current_setting('app.tenant_id', true), '')::uuid);
        """
    )
    for tbl in TENANT_TABLES:
        op.execute(f"ALTER TABLE {tbl} ENABLE ROW LEVEL SECURITY;")
        op.execute(
            f"""
            CREATE POLICY {tbl}_tenant_isolation ON {tbl}
            USING (tenant_id = NULLIF(current_setting('app.tenant_id', true), '')::uuid)
            WITH CHECK (tenant_id = NULLIF(current_setting('app.tenant_id', true), '')::uuid);
            """
        )


def downgrade() -> None:
    # Drop RLS policies
    op.execute("DROP POLICY IF EXISTS tenant_row_access ON tenants;")
    for tbl in TENANT_TABLES:
        op.execute(f"DROP POLICY IF EXISTS {tbl}_tenant_isolation ON {tbl};")
        op.execute(f"ALTER TABLE {tbl} DISABLE ROW LEVEL SECURITY;")
    op.execute("ALTER TABLE tenants DISABLE ROW LEVEL SECURITY;")

    # Children before parents
    for tbl in reversed(TENANT_TABLES):
        op.drop_table(tbl)
    op.drop_table("tenants")

    op.execute("DROP FUNCTION IF EXISTS set_tenant_id(uuid);")
