from __future__ import annotations

import calendar
from datetime import date
from typing import Optional

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo

from gstbill.domain.errors import ValidationError
from gstbill.domain.models import DashboardStats, MonthlyBucket, ReportRow
from gstbill.services.validation import as_iso_date

TRANSACTION_TYPES = ("all", "sale", "purchase")


def _window(start: date | str, end: date | str, transaction_type: str) -> tuple[str, str, str]:
    start_iso = as_iso_date(start, "Start date")
    end_iso = as_iso_date(end, "End date")
    kind = (transaction_type or "").strip().lower()
    if kind not in TRANSACTION_TYPES:
        raise ValidationError(f"Transaction type must be one of: {', '.join(TRANSACTION_TYPES)}.")
    return start_iso, end_iso, kind


def _last_months(today: date, count: int) -> list[tuple[int, int]]:
    out = []
    for back in range(count - 1, -1, -1):
        idx = today.year * 12 + (today.month - 1) - back
        out.append((idx // 12, idx % 12 + 1))
    return out


class ReportingService:
    def __init__(self, repo):
        self.repo = repo

    def get_combined_report(
        self, start: date | str, end: date | str, transaction_type: str = "all", limit: int = 10, offset: int = 0
    ) -> list[ReportRow]:
        """Sales (negative quantity_change) and purchases (positive), newest first, then by product name."""
        start_iso, end_iso, kind = _window(start, end, transaction_type)
        if int(limit) < 0 or int(offset) < 0:
            raise ValidationError("Limit and offset must be >= 0.")
        return self.repo.combined_report(start_iso, end_iso, kind, int(limit), int(offset))

    def get_combined_report_count(self, start: date | str, end: date | str, transaction_type: str = "all") -> int:
        return self.repo.combined_report_count(*_window(start, end, transaction_type))

    def export_combined_report(self, start: date | str, end: date | str, transaction_type: str = "all") -> list[ReportRow]:
        start_iso, end_iso, kind = _window(start, end, transaction_type)
        return self.repo.combined_report(start_iso, end_iso, kind)

    def export_combined_report_excel(
        self, path: str, start: date | str, end: date | str, transaction_type: str = "all"
    ) -> int:
        rows = self.export_combined_report(start, end, transaction_type)
        start_iso, end_iso, kind = _window(start, end, transaction_type)

        wb = Workbook()
        ws = wb.active
        ws.title = "Transactions"
        ws["A1"] = "Transactions Report"
        ws["A1"].font = Font(bold=True, size=14)
        ws["A2"] = f"{start_iso}  ->  {end_iso}  ({kind})"

        ws.append([])
        ws.append(["Date", "Type", "Reference", "Product", "Quantity Change"])
        for c in ws[4]:
            c.font = Font(bold=True)

        for r in rows:
            ws.append([r.transaction_date, r.transaction_type, r.reference_number or "", r.product_name, int(r.quantity_change)])

        for col, w in {"A": 14, "B": 12, "C": 18, "D": 34, "E": 16}.items():
            ws.column_dimensions[col].width = w
        ws.freeze_panes = "A5"
        if ws.max_row >= 5:
            tab = Table(displayName="Transactions", ref=f"A4:{get_column_letter(5)}{ws.max_row}")
            tab.tableStyleInfo = TableStyleInfo(name="TableStyleMedium9", showRowStripes=True, showColumnStripes=False)
            ws.add_table(tab)

        wb.save(path)
        return len(rows)

    def dashboard_stats(self, today: Optional[date] = None, months: int = 12) -> DashboardStats:
        if int(months) < 1:
            raise ValidationError("Months must be >= 1.")
        today = today or date.today()
        buckets = _last_months(today, months)
        cutoff = date(buckets[0][0], buckets[0][1], 1).isoformat()

        sales = self.repo.monthly_sales_totals_since(cutoff)
        purchases = self.repo.monthly_purchase_value_since(cutoff)
        invoice_count, revenue = self.repo.invoice_totals_summary()

        chart = []
        for year, month in buckets:
            key = f"{year:04d}-{month:02d}"
            chart.append(
                MonthlyBucket(
                    label=calendar.month_abbr[month],
                    year=year,
                    month=month,
                    sales=float(sales.get(key, 0.0)),
                    purchases=float(purchases.get(key, 0.0)),
                )
            )

        return DashboardStats(
            total_revenue=revenue,
            total_invoices=invoice_count,
            active_customers=self.repo.count_active_customers(),
            products_in_stock=self.repo.total_stock_on_hand(),
            chart=chart,
            out_of_stock=self.repo.list_out_of_stock(),
        )
