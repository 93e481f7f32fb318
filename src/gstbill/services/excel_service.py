from __future__ import annotations

import logging
from datetime import date, datetime

from openpyxl import load_workbook

from gstbill.domain.errors import AppError, ValidationError

log = logging.getLogger(__name__)

REQUIRED_HEADERS = ["name", "hsn_code", "unit_price", "tax_rate", "quantity", "purchase_date", "reference"]


class ExcelService:
    def __init__(self, repo, purchase_service, inventory_service):
        self.repo = repo
        self.purchases = purchase_service
        self.inventory = inventory_service

    def import_purchases_excel(self, path: str) -> tuple[int, int]:
        """
        Each row records one purchase (stock inflow), creating the product when missing.
        Headers:
          name | hsn_code | unit_price | tax_rate | quantity | purchase_date | reference
        """
        wb = load_workbook(path)
        ws = wb.active

        headers = {}
        for col in range(1, ws.max_column + 1):
            v = ws.cell(row=1, column=col).value
            if isinstance(v, str):
                headers[v.strip().lower()] = col

        for r in REQUIRED_HEADERS:
            if r not in headers:
                raise ValidationError(f"Missing column header: {r}")

        ok = 0
        skipped = 0

        for row in range(2, ws.max_row + 1):
            def cell(key):
                return ws.cell(row=row, column=headers[key]).value

            name = cell("name")
            quantity = cell("quantity")
            if not name or quantity is None:
                skipped += 1
                continue

            try:
                name = str(name).strip()
                purchase_date = cell("purchase_date") or date.today()
                if isinstance(purchase_date, datetime):
                    purchase_date = purchase_date.date()
                reference = cell("reference")
                reference = str(reference) if reference is not None else "EXCEL_IMPORT"

                existing = self.repo.get_product_by_name(name)
                if not existing and (cell("unit_price") is None or cell("tax_rate") is None):
                    skipped += 1
                    continue

                # A new product only survives if its purchase is recorded too.
                with self.purchases.uow_factory() as uow:
                    if existing:
                        product_id = existing.id
                    else:
                        hsn = cell("hsn_code")
                        product_id = self.inventory.insert(
                            uow.cur, name, cell("unit_price"), cell("tax_rate"),
                            hsn_code=(str(hsn) if hsn is not None else None),
                        )
                    self.purchases.insert(uow.cur, product_id, quantity, purchase_date, reference)
                ok += 1
            except (AppError, ValueError, TypeError) as e:
                log.warning("Excel import skipped row %s: %s", row, e)
                skipped += 1

        return ok, skipped
