from __future__ import annotations

import logging
import sqlite3
from typing import Iterable

from gstbill.domain.errors import NotFoundError
from gstbill.domain.models import GstBreakdown, InvoiceLine

log = logging.getLogger("gstbill.invoices")


def pre_tax_price(inclusive_rate: float, tax_rate: float) -> float:
    return float(inclusive_rate) / (1 + float(tax_rate))


def build_line(item_id, product_name, hsn_code, unit_abbreviation, quantity, unit_price, tax_rate) -> InvoiceLine:
    # CGST and SGST split the line's GST equally.
    taxable = int(quantity) * float(unit_price)
    half_tax = taxable * float(tax_rate) / 2
    return InvoiceLine(
        item_id=int(item_id),
        product_name=str(product_name),
        hsn_code=hsn_code,
        unit_abbreviation=unit_abbreviation,
        quantity=int(quantity),
        unit_price=float(unit_price),
        tax_rate=float(tax_rate),
        inclusive_rate=float(unit_price) * (1 + float(tax_rate)),
        taxable_value=taxable,
        cgst=half_tax,
        sgst=half_tax,
        line_total=taxable + 2 * half_tax,
    )


def gst_breakdown(lines: Iterable[InvoiceLine]) -> GstBreakdown:
    lines = list(lines)
    taxable = sum(l.taxable_value for l in lines)
    cgst = sum(l.cgst for l in lines)
    sgst = sum(l.sgst for l in lines)
    return GstBreakdown(taxable_value=taxable, cgst=cgst, sgst=sgst, grand_total=taxable + cgst + sgst)


class InvoiceTotals:
    """Recomputes Invoice.total_amount from the invoice's current items.

    The sum is always rebuilt from scratch rather than patched with deltas,
    so a repeated call without intervening writes returns the same value.
    """

    def __init__(self, repo):
        self.repo = repo

    def recompute(self, cur: sqlite3.Cursor, invoice_id: int) -> float:
        total = self.repo.write_invoice_total(cur, int(invoice_id))
        if total is None:
            raise NotFoundError(f"Invoice {invoice_id} not found.")
        log.debug("invoice_total_recomputed invoice_id=%s total=%.2f", invoice_id, total)
        return total

    def recompute_all(self, cur: sqlite3.Cursor, invoice_ids: Iterable[int]) -> None:
        for invoice_id in sorted({int(i) for i in invoice_ids}):
            self.recompute(cur, invoice_id)
