import io

import pandas as pd
import pytest

from src.api.routes.reports import XLSX_MEDIA_TYPE, export_dataframe

from tests.fakes import TENANT_ID


def _frame() -> pd.DataFrame:
    return pd.DataFrame(
        [
            {"sku": "RM-FLOUR-25", "qty_base": 250.0, "uom": "KG"},
            {"sku": "FG-COOKIE-12", "qty_base": 36.0, "uom": "EA"},
        ],
        columns=["sku", "qty_base", "uom"],
    )


async def _body(response) -> bytes:
    chunks = []
    async for chunk in response.body_iterator:
        chunks.append(chunk.encode() if isinstance(chunk, str) else chunk)
    return b"".join(chunks)


async def test_csv_export():
    response = export_dataframe(_frame(), "inventory_balances", "csv")

    assert response.media_type == "text/csv"
    assert response.headers["Content-Disposition"] == 'attachment; filename="inventory_balances.csv"'
    lines = (await _body(response)).decode().splitlines()
    assert lines == ["sku,qty_base,uom", "RM-FLOUR-25,250.0,KG", "FG-COOKIE-12,36.0,EA"]


async def test_xlsx_export_reads_back():
    response = export_dataframe(_frame(), "ncr_report", "XLSX")

    assert response.media_type == XLSX_MEDIA_TYPE
    df = pd.read_excel(io.BytesIO(await _body(response)), sheet_name="Report", engine="openpyxl")
    assert list(df["sku"]) == ["RM-FLOUR-25", "FG-COOKIE-12"]


async def test_pdf_export():
    response = export_dataframe(_frame(), "cycle_count_variance", "pdf")

    assert response.media_type == "application/pdf"
    assert (await _body(response)).startswith(b"%PDF")


@pytest.mark.parametrize("fmt", ["xlsx", "pdf"])
async def test_file_exports_need_export_permission(client, login_as, supervisor_ctx, fmt):
    login_as(supervisor_ctx)

    response = await client.get(
        f"/api/v1/reports/inventory-balances?format={fmt}", headers={"X-Tenant-ID": str(TENANT_ID)}
    )

    assert response.status_code == 403
    assert response.json()["error"]["message"] == "Exporting xlsx or pdf requires export_data"


async def test_unknown_format_is_rejected(client, login_as, inventory_ctx):
    login_as(inventory_ctx)

    response = await client.get(
        "/api/v1/reports/inventory-balances?format=docx", headers={"X-Tenant-ID": str(TENANT_ID)}
    )

    assert response.status_code == 422
