from datetime import datetime
from pathlib import Path

import pytest
from conftest import make_container, stock_of
from openpyxl import Workbook

from gstbill.domain.errors import ValidationError

HEADERS = ["name", "hsn_code", "unit_price", "tax_rate", "quantity", "purchase_date", "reference"]


def _write(path: Path, rows, headers=HEADERS):
    wb = Workbook()
    ws = wb.active
    ws.append(headers)
    for r in rows:
        ws.append(r)
    wb.save(path)


def test_import_creates_products_and_purchases(tmp_path: Path):
    c = make_container(tmp_path)
    existing = c.inventory.add_product("Urea 45kg", 100.0, 0.18)
    xlsx = tmp_path / "purchases.xlsx"
    _write(
        xlsx,
        [
            ["Urea 45kg", None, None, None, 12, datetime(2024, 5, 1), "PO-77"],
            ["Neem Oil 1L", 3808, 250, 0.05, 4, "2024-05-02", None],
            [None, None, None, None, 3, None, None],
            ["Zinc Sulphate", None, None, None, 2, None, None],
        ],
    )

    ok, skipped = c.excel.import_purchases_excel(str(xlsx))

    assert (ok, skipped) == (2, 2)
    assert stock_of(c, existing) == 12
    neem = c.inventory.get_product_by_name("Neem Oil 1L")
    assert neem.stock_quantity == 4
    assert neem.hsn_code == "3808"

    refs = sorted(p.reference_invoice for p in c.purchases.list_purchases_between("2024-05-01", "2024-05-31"))
    assert refs == ["EXCEL_IMPORT", "PO-77"]


def test_import_rejects_sheet_without_required_headers(tmp_path: Path):
    c = make_container(tmp_path)
    xlsx = tmp_path / "bad.xlsx"
    _write(xlsx, [["Urea", 1]], headers=["name", "quantity"])

    with pytest.raises(ValidationError, match="Missing column header"):
        c.excel.import_purchases_excel(str(xlsx))


def test_rejected_row_does_not_leave_a_new_product_behind(tmp_path: Path):
    c = make_container(tmp_path)
    c.inventory.add_product("Urea 45kg", 100.0, 0.18)
    xlsx = tmp_path / "purchases.xlsx"
    _write(
        xlsx,
        [
            ["Ghost Product", None, 10, 0.05, 0, "2024-05-01", None],
            ["Half Bag", None, 10, 0.05, 2.5, "2024-05-01", None],
            ["Bad Price", None, "n/a", 0.05, 3, "2024-05-01", None],
            ["Urea 45kg", None, None, None, 5, "2024-05-01", None],
        ],
    )

    ok, skipped = c.excel.import_purchases_excel(str(xlsx))

    assert (ok, skipped) == (1, 3)
    assert [p.name for p in c.inventory.list_products()] == ["Urea 45kg"]
    assert c.inventory.get_product_by_name("Urea 45kg").stock_quantity == 5
