"""Reason code catalog and production material consumption.

- reason_codes: tenant catalog cited by SCRAP, ADJUST and HOLD events
- production_consumptions: component issues against production orders (manual or backflush)
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "5e2a8f1c9d47"
down_revision: Union[str, None] = "3c1d9e7a5b20"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

QTY = sa.Numeric(18, 6)

NEW_TABLES = ["reason_codes", "production_consumptions"]


def _tenant_column() -> sa.Column:
    return sa.Column(
        "tenant_id",
        sa.UUID(),
        nullable=False,
        server_default=sa.text("current_setting('app.tenant_id', true)::uuid"),
    )


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def _enable_rls_with_policy(table: str) -> None:
    op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY;")
    op.execute(
        f"""
        CREATE POLICY {table}_tenant_isolation ON {table}
        USING (tenant_id = NULLIF(current_setting('app.tenant_id', true), '')::uuid)
        WITH CHECK (tenant_id = NULLIF(current_setting('app.tenant_id', true), '')::uuid);
        """
    )


def upgrade() -> None:
    op.create_table(
        "reason_codes",
        sa.Column("id", sa.UUID(), primary_key=True, server_default=sa.text("uuid_generate_v4()")),
        _tenant_column(),
        sa.Column("type", sa.Text(), nullable=False),
        sa.Column("code", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("tenant_id", "code", name="uq_reason_codes_tenant_code"),
        sa.CheckConstraint("type IN ('SCRAP', 'ADJUST', 'HOLD')", name="ck_reason_codes_type"),
    )
    op.create_index("ix_reason_codes_tenant_id", "reason_codes", ["tenant_id"])

    op.create_table(
        "production_consumptions",
        sa.Column("id", sa.UUID(), primary_key=True, server_default=sa.text("uuid_generate_v4()")),
        _tenant_column(),
        sa.Column("production_order_id", sa.UUID(), nullable=False),
        sa.Column("bom_component_id", sa.UUID(), nullable=True),
        sa.Column("item_id", sa.UUID(), nullable=False),
        sa.Column("qty_consumed", QTY, nullable=False),
        sa.Column("uom", sa.Text(), nullable=False),
        sa.Column("qty_base", QTY, nullable=False),
        sa.Column("from_location_id", sa.UUID(), nullable=True),
        sa.Column("is_backflushed", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by_user_id", sa.UUID(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["production_order_id"], ["production_orders.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["bom_component_id"], ["bom_components.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["item_id"], ["items.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["from_location_id"], ["locations.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.CheckConstraint("qty_consumed > 0", name="ck_production_consumptions_qty_positive"),
    )
    op.create_index("ix_production_consumptions_tenant_id", "production_consumptions", ["tenant_id"])
    op.create_index(
        "ix_production_consumptions_production_order_id", "production_consumptions", ["production_order_id"]
    )

    for tbl in NEW_TABLES:
        _enable_rls_with_policy(tbl)


def downgrade() -> None:
    for tbl in NEW_TABLES:
        op.execute(f"DROP POLICY IF EXISTS {tbl}_tenant_isolation ON {tbl};")
        op.execute(f"ALTER TABLE {tbl} DISABLE ROW LEVEL SECURITY;")

    op.drop_index("ix_production_consumptions_production_order_id", table_name="production_consumptions")
    op.drop_index("ix_production_consumptions_tenant_id", table_name="production_consumptions")
    op.drop_table("production_consumptions")
    op.drop_index("ix_reason_codes_tenant_id", table_name="reason_codes")
    op.drop_table("reason_codes")
