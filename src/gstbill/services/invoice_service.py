from __future__ import annotations

import logging
import re
from datetime import date
from typing import Callable, Iterable, Optional

from gstbill.domain.errors import NotFoundError, ValidationError
from gstbill.domain.models import Invoice, InvoiceDocument, InvoiceItem, InvoiceListRow
from gstbill.repositories.unit_of_work import SqliteUnitOfWork, UnitOfWork
from gstbill.services.customer_service import CustomerService
from gstbill.services.invoice_totals import InvoiceTotals, build_line, gst_breakdown, pre_tax_price
from gstbill.services.stock_ledger import StockLedger
from gstbill.services.validation import (
    as_iso_date,
    check_price,
    check_quantity,
    check_tax_rate,
    clean_text,
    require_text,
)

log = logging.getLogger("gstbill.invoices")

ITEMS_PER_PAGE = 10
DEFAULT_INVOICE_NUMBER = "INV-001"


def next_number_after(last: Optional[str]) -> str:
    """INV-007 -> INV-008; anything not shaped PREFIX-N restarts at INV-001."""
    if not last:
        return DEFAULT_INVOICE_NUMBER
    parts = last.split("-")
    if len(parts) != 2:
        return DEFAULT_INVOICE_NUMBER
    m = re.match(r"\s*(\d+)", parts[1])
    if not m:
        return DEFAULT_INVOICE_NUMBER
    return f"{parts[0]}-{int(m.group(1)) + 1:03d}"


class InvoiceService:
    def __init__(
        self,
        repo,
        ledger: StockLedger | None = None,
        totals: InvoiceTotals | None = None,
        customers: CustomerService | None = None,
        uow_factory: Callable[[], UnitOfWork] | None = None,
    ):
        self.repo = repo
        self.ledger = ledger or StockLedger(repo)
        self.totals = totals or InvoiceTotals(repo)
        self.uow_factory = uow_factory or (lambda: SqliteUnitOfWork(repo))
        self.customers = customers or CustomerService(repo, self.uow_factory)

    # ---------- helpers (run on an open transaction) ----------
    def _resolve_line(self, cur, it: dict, fallback: InvoiceItem | None = None) -> tuple[int, int, float, float]:
        """
        it: {product_id, quantity, [unit_price | inclusive_rate], [tax_rate]}

        Price and tax rate are snapshotted from the product when not given.
        """
        product_id = int(it["product_id"])
        quantity = check_quantity(it["quantity"])
        product = self.repo.fetch_product(cur, product_id)
        if not product:
            raise NotFoundError(f"Product {product_id} not found.")

        keep_snapshot = fallback is not None and fallback.product_id == product_id
        if it.get("tax_rate") is not None:
            tax_rate = check_tax_rate(it["tax_rate"])
        else:
            tax_rate = fallback.tax_rate if keep_snapshot else product.tax_rate

        if it.get("inclusive_rate") is not None:
            unit_price = pre_tax_price(check_price(it["inclusive_rate"]), tax_rate)
        elif it.get("unit_price") is not None:
            unit_price = check_price(it["unit_price"])
        else:
            unit_price = fallback.unit_price if keep_snapshot else product.unit_price
        return product_id, quantity, unit_price, tax_rate

    def _insert_line(self, cur, invoice_id: int, it: dict) -> int:
        product_id, quantity, unit_price, tax_rate = self._resolve_line(cur, it)
        item_id = self.repo.insert_invoice_item(cur, invoice_id, product_id, quantity, unit_price, tax_rate)
        self.ledger.apply_sale_insert(cur, item_id, product_id, quantity)
        return item_id

    def _delete_line(self, cur, item: InvoiceItem) -> None:
        self.repo.delete_invoice_item_row(cur, item.id)
        self.ledger.apply_sale_delete(cur, item)

    def _resolve_customer(self, cur, customer_id: Optional[int], new_customer: Optional[dict]) -> Optional[int]:
        if customer_id is not None and new_customer:
            raise ValidationError("Pass either an existing customer or a new customer, not both.")
        if new_customer:
            return self.customers.insert(cur, **new_customer)
        if customer_id is None:
            return None
        if not self.repo.fetch_customer(cur, int(customer_id)):
            raise NotFoundError("Customer not found.")
        return int(customer_id)

    # ---------- invoices ----------
    def create_invoice(
        self,
        invoice_number: str,
        invoice_date: date | str,
        items: Iterable[dict],
        customer_id: Optional[int] = None,
        new_customer: Optional[dict] = None,
        notes: Optional[str] = None,
    ) -> int:
        """Creates the invoice, its customer when ``new_customer`` is given, and every line in one transaction.

        No customer means a guest invoice.
        """
        invoice_number = require_text(invoice_number, "Invoice number")
        invoice_date = as_iso_date(invoice_date, "Invoice date")
        items = list(items)

        with self.uow_factory() as uow:
            cid = self._resolve_customer(uow.cur, customer_id, new_customer)
            invoice_id = self.repo.insert_invoice(uow.cur, cid, invoice_number, invoice_date, clean_text(notes))
            for it in items:
                self._insert_line(uow.cur, invoice_id, it)
            total = self.totals.recompute(uow.cur, invoice_id)

        log.info(
            "invoice_created invoice_id=%s number=%s items=%s total=%.2f customer=%s",
            invoice_id, invoice_number, len(items), total, cid,
            extra={"invoice_id": invoice_id},
        )
        return invoice_id

    def update_invoice(
        self,
        invoice_id: int,
        invoice_number: str,
        invoice_date: date | str,
        items: Iterable[dict],
        customer_id: Optional[int] = None,
        new_customer: Optional[dict] = None,
        notes: Optional[str] = None,
    ) -> None:
        """Rewrites the header and replaces all lines; stock for the old lines is returned first."""
        invoice_number = require_text(invoice_number, "Invoice number")
        invoice_date = as_iso_date(invoice_date, "Invoice date")
        items = list(items)

        with self.uow_factory() as uow:
            if not self.repo.fetch_invoice(uow.cur, int(invoice_id)):
                raise NotFoundError(f"Invoice {invoice_id} not found.")
            cid = self._resolve_customer(uow.cur, customer_id, new_customer)
            self.repo.update_invoice_row(uow.cur, int(invoice_id), cid, invoice_number, invoice_date, clean_text(notes))
            for old in self.repo.fetch_items_for_invoice(uow.cur, int(invoice_id)):
                self._delete_line(uow.cur, old)
            for it in items:
                self._insert_line(uow.cur, int(invoice_id), it)
            total = self.totals.recompute(uow.cur, int(invoice_id))

        log.info("invoice_updated invoice_id=%s items=%s total=%.2f", invoice_id, len(items), total)

    def delete_invoice_by_id(self, invoice_id: int) -> str:
        with self.uow_factory() as uow:
            invoice = self.repo.fetch_invoice(uow.cur, int(invoice_id))
            if not invoice:
                raise NotFoundError(f"Invoice with ID {invoice_id} not found.")
            items = self.repo.fetch_items_for_invoice(uow.cur, invoice.id)
            for item in items:
                self._delete_line(uow.cur, item)
            self.repo.delete_invoice_row(uow.cur, invoice.id)

        log.info(
            "invoice_deleted invoice_id=%s number=%s items=%s", invoice.id, invoice.invoice_number, len(items),
            extra={"invoice_id": invoice.id},
        )
        return "Invoice and associated items deleted successfully."

    def get_invoice(self, invoice_id: int) -> Invoice:
        inv = self.repo.get_invoice(int(invoice_id))
        if not inv:
            raise NotFoundError(f"Invoice {invoice_id} not found.")
        return inv

    def list_invoices(self, page: int = 1, search: Optional[str] = None) -> tuple[list[InvoiceListRow], int]:
        page = max(int(page), 1)
        return self.repo.list_invoices(ITEMS_PER_PAGE, (page - 1) * ITEMS_PER_PAGE, clean_text(search))

    def next_invoice_number(self) -> str:
        return next_number_after(self.repo.last_invoice_number())

    def invoice_document(self, invoice_id: int) -> InvoiceDocument:
        invoice = self.get_invoice(invoice_id)
        customer = self.repo.get_customer(invoice.customer_id) if invoice.customer_id is not None else None
        lines = [build_line(*r) for r in self.repo.invoice_lines_for_invoice(invoice.id)]
        return InvoiceDocument(
            invoice=invoice,
            customer=customer,
            lines=lines,
            company=self.repo.get_company_details(),
            totals=gst_breakdown(lines),
        )

    # ---------- line items ----------
    def invoice_items(self, invoice_id: int) -> list[InvoiceItem]:
        return self.repo.invoice_items_for_invoice(int(invoice_id))

    def add_invoice_item(
        self,
        invoice_id: int,
        product_id: int,
        quantity: int,
        unit_price: Optional[float] = None,
        tax_rate: Optional[float] = None,
        inclusive_rate: Optional[float] = None,
    ) -> int:
        line = {
            "product_id": product_id,
            "quantity": quantity,
            "unit_price": unit_price,
            "tax_rate": tax_rate,
            "inclusive_rate": inclusive_rate,
        }
        with self.uow_factory() as uow:
            if not self.repo.fetch_invoice(uow.cur, int(invoice_id)):
                raise NotFoundError(f"Invoice {invoice_id} not found.")
            item_id = self._insert_line(uow.cur, int(invoice_id), line)
            total = self.totals.recompute(uow.cur, int(invoice_id))

        log.info("invoice_item_added item_id=%s invoice_id=%s total=%.2f", item_id, invoice_id, total)
        return item_id

    def update_invoice_item(
        self,
        item_id: int,
        *,
        invoice_id: Optional[int] = None,
        product_id: Optional[int] = None,
        quantity: Optional[int] = None,
        unit_price: Optional[float] = None,
        tax_rate: Optional[float] = None,
    ) -> None:
        """Changes any subset of fields; moving to another invoice recomputes both totals."""
        with self.uow_factory() as uow:
            old = self.repo.fetch_invoice_item(uow.cur, int(item_id))
            if not old:
                raise NotFoundError(f"Invoice item {item_id} not found.")

            target_invoice = int(invoice_id) if invoice_id is not None else old.invoice_id
            if target_invoice != old.invoice_id and not self.repo.fetch_invoice(uow.cur, target_invoice):
                raise NotFoundError(f"Invoice {target_invoice} not found.")

            line = {
                "product_id": product_id if product_id is not None else old.product_id,
                "quantity": quantity if quantity is not None else old.quantity,
                "unit_price": unit_price,
                "tax_rate": tax_rate,
            }
            new_product, new_qty, new_price, new_tax = self._resolve_line(uow.cur, line, fallback=old)
            self.repo.update_invoice_item_row(uow.cur, old.id, target_invoice, new_product, new_qty, new_price, new_tax)
            self.ledger.apply_sale_update(uow.cur, old, new_product, new_qty)
            self.totals.recompute_all(uow.cur, {old.invoice_id, target_invoice})

        log.info(
            "invoice_item_updated item_id=%s invoice_id=%s->%s product_id=%s->%s qty=%s->%s",
            item_id, old.invoice_id, target_invoice, old.product_id, new_product, old.quantity, new_qty,
        )

    def delete_invoice_item(self, item_id: int) -> None:
        with self.uow_factory() as uow:
            old = self.repo.fetch_invoice_item(uow.cur, int(item_id))
            if not old:
                raise NotFoundError(f"Invoice item {item_id} not found.")
            self._delete_line(uow.cur, old)
            total = self.totals.recompute(uow.cur, old.invoice_id)

        log.info("invoice_item_deleted item_id=%s invoice_id=%s total=%.2f", old.id, old.invoice_id, total)
