from __future__ import annotations

import io
from datetime import datetime, timezone
from typing import Optional, Sequence
from uuid import UUID

import pandas as pd
from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.context import UserContext
from src.core.deps import get_tenant_session, require_permission
from src.core.errors import AuthorizationError
from src.core.permissions import PermissionCode
from src.db.models.inventory import CycleCount, CycleCountLine, InventoryBalance
from src.db.models.master_data import Item, Location
from src.db.models.production import ProductionOrder
from src.db.models.quality import Ncr
from src.db.models.tenancy import Site
from src.services.cold_chain import ColdChainService

# PUBLIC_INTERFACE
router = APIRouter(
    prefix="/reports",
    tags=["Reports"],
)

FORMAT_PATTERN = "^(csv|xlsx|pdf)$"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _check_export(ctx: UserContext, export_format: str) -> None:
    """Spreadsheet and PDF exports additionally need export_data."""
    if export_format in ("xlsx", "pdf") and not ctx.can(PermissionCode.EXPORT_DATA):
        raise AuthorizationError("Exporting xlsx or pdf requires export_data")


def _render_pdf(df: pd.DataFrame, title: str) -> io.BytesIO:
    from reportlab.lib import colors
    from reportlab.lib.pagesizes import landscape, letter
    from reportlab.lib.styles import getSampleStyleSheet
    from reportlab.platypus import Paragraph, SimpleDocTemplate, Table, TableStyle

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=landscape(letter), leftMargin=18, rightMargin=18, topMargin=18, bottomMargin=18)
    styles = getSampleStyleSheet()
    stamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    elements: list = [Paragraph(f"{title} ({stamp})", styles["Title"])]

    data = [list(df.columns)] + df.astype(str).values.tolist()
    table = Table(data, repeatRows=1)
    table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.lightgrey),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, -1), 8),
                ("ALIGN", (0, 0), (-1, -1), "LEFT"),
                ("BOTTOMPADDING", (0, 0), (-1, 0), 6),
                ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
            ]
        )
    )
    elements.append(table)
    doc.build(elements)
    buffer.seek(0)
    return buffer


# PUBLIC_INTERFACE
def export_dataframe(df: pd.DataFrame, filename_base: str, export_format: str) -> StreamingResponse:
    """
    Stream a DataFrame as csv (text/csv), xlsx (openpyxl) or pdf (reportlab table).
    """
    export_format = (export_format or "csv").lower()
    headers = {"Content-Disposition": f'attachment; filename="{filename_base}.{export_format}"'}

    if export_format == "xlsx":
        buffer = io.BytesIO()
        with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
            df.to_excel(writer, index=False, sheet_name="Report")
        buffer.seek(0)
        return StreamingResponse(buffer, media_type=XLSX_MEDIA_TYPE, headers=headers)

    if export_format == "pdf":
        title = filename_base.replace("_", " ").title()
        return StreamingResponse(_render_pdf(df, title), media_type="application/pdf", headers=headers)

    text = io.StringIO()
    df.to_csv(text, index=False)
    text.seek(0)
    return StreamingResponse(text, media_type="text/csv", headers=headers)


async def _fetch_all(session: AsyncSession, stmt: Select) -> Sequence:
    res = await session.execute(stmt)
    return list(res.all())


# PUBLIC_INTERFACE
@router.get(
    "/inventory-balances",
    summary="Inventory balances report",
    description="On-hand quantity per site, item and location in the item's base unit.",
    response_description="File stream (CSV/XLSX/PDF)",
)
async def inventory_balances_report(
    session: AsyncSession = Depends(get_tenant_session),
    ctx: UserContext = Depends(require_permission(PermissionCode.VIEW_REPORTS)),
    site_id: Optional[UUID] = Query(None, description="Filter by site"),
    format: str = Query("csv", pattern=FORMAT_PATTERN, description="Export format: csv | xlsx | pdf"),
):
    _check_export(ctx, format)
    stmt = (
        select(Site.code, Item.sku, Item.name, Location.label, InventoryBalance.qty_base, Item.base_uom)
        .join(Item, Item.id == InventoryBalance.item_id)
        .join(Location, Location.id == InventoryBalance.location_id)
        .join(Site, Site.id == InventoryBalance.site_id)
        .order_by(Site.code, Item.sku, Location.label)
    )
    if site_id:
        stmt = stmt.where(InventoryBalance.site_id == site_id)

    rows = await _fetch_all(session, stmt)
    columns = ["site", "sku", "item", "location", "qty_base", "uom"]
    data = [
        {"site": site, "sku": sku, "item": name, "location": label, "qty_base": float(qty or 0), "uom": uom}
        for site, sku, name, label, qty, uom in rows
    ]
    return export_dataframe(pd.DataFrame(data, columns=columns), "inventory_balances", format)


# PUBLIC_INTERFACE
@router.get(
    "/inventory-valuation",
    summary="Inventory valuation report",
    description="On-hand quantity per item valued at the item's standard cost.",
    response_description="File stream (CSV/XLSX/PDF)",
)
async def inventory_valuation_report(
    session: AsyncSession = Depends(get_tenant_session),
    ctx: UserContext = Depends(require_permission(PermissionCode.VIEW_REPORTS)),
    site_id: Optional[UUID] = Query(None, description="Filter by site"),
    format: str = Query("csv", pattern=FORMAT_PATTERN, description="Export format: csv | xlsx | pdf"),
):
    """
    Inventory valuation.

    Items without a standard cost are listed with an empty value.
    """
    _check_export(ctx, format)
    stmt = (
        select(Item.sku, Item.name, Item.category, Item.base_uom, Item.standard_cost, InventoryBalance.qty_base)
        .join(Item, Item.id == InventoryBalance.item_id)
        .order_by(Item.sku)
    )
    if site_id:
        stmt = stmt.where(InventoryBalance.site_id == site_id)

    totals: dict = {}
    for sku, name, category, uom, cost, qty in await _fetch_all(session, stmt):
        row = totals.setdefault(
            sku, {"sku": sku, "item": name, "category": category, "uom": uom, "qty_base": 0.0, "standard_cost": cost}
        )
        row["qty_base"] += float(qty or 0)

    data = []
    for row in totals.values():
        cost = row["standard_cost"]
        row["standard_cost"] = float(cost) if cost is not None else None
        row["value"] = round(row["qty_base"] * float(cost), 4) if cost is not None else None
        data.append(row)
    columns = ["sku", "item", "category", "uom", "qty_base", "standard_cost", "value"]
    return export_dataframe(pd.DataFrame(data, columns=columns), "inventory_valuation", format)


# PUBLIC_INTERFACE
@router.get(
    "/production-orders",
    summary="Production order status report",
    description="Production orders with completion progress.",
    response_description="File stream (CSV/XLSX/PDF)",
)
async def production_orders_report(
    session: AsyncSession = Depends(get_tenant_session),
    ctx: UserContext = Depends(require_permission(PermissionCode.VIEW_REPORTS)),
    status: Optional[str] = Query(None, description="Filter by production order status"),
    format: str = Query("csv", pattern=FORMAT_PATTERN, description="Export format: csv | xlsx | pdf"),
):
    _check_export(ctx, format)
    stmt = (
        select(
            ProductionOrder.order_number,
            ProductionOrder.status,
            Item.sku,
            ProductionOrder.priority,
            ProductionOrder.qty_ordered,
            ProductionOrder.qty_completed,
            ProductionOrder.qty_rejected,
            ProductionOrder.uom,
            ProductionOrder.scheduled_start,
            ProductionOrder.scheduled_end,
            ProductionOrder.actual_start,
            ProductionOrder.actual_end,
        )
        .join(Item, Item.id == ProductionOrder.item_id)
        .order_by(ProductionOrder.created_at.desc())
    )
    if status:
        stmt = stmt.where(ProductionOrder.status == status)

    data = []
    for (number, po_status, sku, priority, ordered, completed, rejected, uom,
         sched_start, sched_end, actual_start, actual_end) in await _fetch_all(session, stmt):
        qo = float(ordered or 0)
        qc = float(completed or 0)
        data.append(
            {
                "order_number": number,
                "status": po_status,
                "sku": sku,
                "priority": priority,
                "qty_ordered": qo,
                "qty_completed": qc,
                "qty_rejected": float(rejected or 0),
                "uom": uom,
                "progress_percent": round(qc / qo * 100.0, 2) if qo > 0 else None,
                "scheduled_start": sched_start,
                "scheduled_end": sched_end,
                "actual_start": actual_start,
                "actual_end": actual_end,
            }
        )
    columns = [
        "order_number", "status", "sku", "priority", "qty_ordered", "qty_completed", "qty_rejected", "uom",
        "progress_percent", "scheduled_start", "scheduled_end", "actual_start", "actual_end",
    ]
    return export_dataframe(pd.DataFrame(data, columns=columns), "production_orders", format)


# PUBLIC_INTERFACE
@router.get(
    "/ncrs",
    summary="NCR report",
    description="Non-conformance reports with severity, disposition and status.",
    response_description="File stream (CSV/XLSX/PDF)",
)
async def ncr_report(
    session: AsyncSession = Depends(get_tenant_session),
    ctx: UserContext = Depends(require_permission(PermissionCode.VIEW_REPORTS)),
    status: Optional[str] = Query(None, description="Filter by NCR status"),
    severity: Optional[str] = Query(None, description="Filter by severity"),
    format: str = Query("csv", pattern=FORMAT_PATTERN, description="Export format: csv | xlsx | pdf"),
):
    _check_export(ctx, format)
    stmt = select(
        Ncr.ncr_number,
        Ncr.issue_type,
        Ncr.severity,
        Ncr.description,
        Ncr.qty_affected,
        Ncr.uom,
        Ncr.disposition,
        Ncr.status,
        Ncr.capa_required,
        Ncr.created_at,
        Ncr.closed_at,
    ).order_by(Ncr.created_at.desc())
    if status:
        stmt = stmt.where(Ncr.status == status)
    if severity:
        stmt = stmt.where(Ncr.severity == severity)

    columns = [
        "ncr_number", "issue_type", "severity", "description", "qty_affected", "uom",
        "disposition", "status", "capa_required", "created_at", "closed_at",
    ]
    data = [dict(zip(columns, row)) for row in await _fetch_all(session, stmt)]
    for row in data:
        row["qty_affected"] = float(row["qty_affected"] or 0)
    return export_dataframe(pd.DataFrame(data, columns=columns), "ncrs", format)


# PUBLIC_INTERFACE
@router.get(
    "/cold-chain-compliance",
    summary="Cold chain compliance report",
    description="Per-zone reading counts, excursions and compliance percentage for a period.",
    response_description="File stream (CSV/XLSX/PDF)",
)
async def cold_chain_compliance_report(
    session: AsyncSession = Depends(get_tenant_session),
    ctx: UserContext = Depends(require_permission(PermissionCode.VIEW_REPORTS)),
    site_id: Optional[UUID] = Query(None, description="Filter by site"),
    start: Optional[datetime] = Query(None, description="Period start (default: 7 days ago)"),
    end: Optional[datetime] = Query(None, description="Period end (default: now)"),
    format: str = Query("csv", pattern=FORMAT_PATTERN, description="Export format: csv | xlsx | pdf"),
):
    _check_export(ctx, format)
    report = await ColdChainService(session).compliance_report(site_id=site_id, start=start, end=end)
    columns = [
        "zone_code", "zone_name", "start", "end", "total_readings", "normal_readings",
        "warning_readings", "critical_readings", "excursion_count", "compliance_percentage",
    ]
    return export_dataframe(pd.DataFrame(report, columns=columns), "cold_chain_compliance", format)


# PUBLIC_INTERFACE
@router.get(
    "/cycle-count-variances",
    summary="Cycle count variance report",
    description="Counted cycle count lines with expected, counted and variance quantities.",
    response_description="File stream (CSV/XLSX/PDF)",
)
async def cycle_count_variance_report(
    session: AsyncSession = Depends(get_tenant_session),
    ctx: UserContext = Depends(require_permission(PermissionCode.VIEW_REPORTS)),
    site_id: Optional[UUID] = Query(None, description="Filter by site"),
    format: str = Query("csv", pattern=FORMAT_PATTERN, description="Export format: csv | xlsx | pdf"),
):
    _check_export(ctx, format)
    stmt = (
        select(
            CycleCount.name,
            Item.sku,
            Location.label,
            CycleCountLine.expected_qty_base,
            CycleCountLine.counted_qty_base,
            CycleCountLine.variance_qty_base,
            CycleCountLine.status,
        )
        .join(CycleCountLine, CycleCountLine.cycle_count_id == CycleCount.id)
        .join(Item, Item.id == CycleCountLine.item_id)
        .join(Location, Location.id == CycleCountLine.location_id)
        .where(CycleCountLine.counted_qty_base.is_not(None))
        .order_by(CycleCount.created_at.desc(), Item.sku)
    )
    if site_id:
        stmt = stmt.where(CycleCount.site_id == site_id)

    data = [
        {
            "cycle_count": name,
            "sku": sku,
            "location": label,
            "expected_qty": float(expected or 0),
            "counted_qty": float(counted or 0),
            "variance_qty": float(variance or 0),
            "status": line_status,
        }
        for name, sku, label, expected, counted, variance, line_status in await _fetch_all(session, stmt)
    ]
    columns = ["cycle_count", "sku", "location", "expected_qty", "counted_qty", "variance_qty", "status"]
    return export_dataframe(pd.DataFrame(data, columns=columns), "cycle_count_variances", format)
