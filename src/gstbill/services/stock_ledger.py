from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Optional

from gstbill.domain.errors import NotFoundError
from gstbill.domain.models import InvoiceItem, Purchase, StockMismatch, StockMovement

log = logging.getLogger("gstbill.stock")


class StockLedger:
    """Keeps Product.stock_quantity equal to purchases minus sold quantities.

    Every stock change goes through ``adjust_stock`` on the caller's open
    transaction cursor, so the product row is updated in the same commit as
    the purchase or invoice item that caused it. The purchase and sale hooks
    below reverse the old row's effect and apply the new one.
    """

    def __init__(self, repo):
        self.repo = repo

    def adjust_stock(
        self,
        cur: sqlite3.Cursor,
        product_id: int,
        delta: int,
        *,
        movement_type: str,
        reference_type: str,
        reference_id: int,
        notes: Optional[str] = None,
    ) -> int:
        delta = int(delta)
        stock_after = self.repo.change_stock(cur, int(product_id), delta)
        if stock_after is None:
            raise NotFoundError(f"Product {product_id} not found.")
        if delta:
            dt_iso = datetime.now().replace(microsecond=0).isoformat(sep=" ")
            self.repo.append_stock_movement(
                cur, dt_iso, int(product_id), movement_type, delta, stock_after, reference_type, int(reference_id), notes
            )
        log.debug(
            "stock_adjusted product_id=%s delta=%s stock_after=%s ref=%s:%s",
            product_id, delta, stock_after, reference_type, reference_id,
        )
        return stock_after

    # ---------- Purchases (inflow) ----------
    def _purchase(self, cur, product_id: int, delta: int, purchase_id: int) -> int:
        return self.adjust_stock(
            cur, product_id, delta, movement_type="purchase", reference_type="purchase", reference_id=purchase_id
        )

    def apply_purchase_insert(self, cur: sqlite3.Cursor, purchase_id: int, product_id: int, quantity: int) -> None:
        self._purchase(cur, product_id, int(quantity), purchase_id)

    def apply_purchase_update(self, cur: sqlite3.Cursor, old: Purchase, product_id: int, quantity: int) -> None:
        if int(product_id) == old.product_id:
            self._purchase(cur, product_id, int(quantity) - old.quantity, old.id)
            return
        self._purchase(cur, old.product_id, -old.quantity, old.id)
        self._purchase(cur, product_id, int(quantity), old.id)

    def apply_purchase_delete(self, cur: sqlite3.Cursor, old: Purchase) -> None:
        self._purchase(cur, old.product_id, -old.quantity, old.id)

    # ---------- Invoice items (outflow) ----------
    def _sale(self, cur, product_id: int, delta: int, item_id: int) -> int:
        return self.adjust_stock(
            cur, product_id, delta, movement_type="sale", reference_type="invoice_item", reference_id=item_id
        )

    def apply_sale_insert(self, cur: sqlite3.Cursor, item_id: int, product_id: int, quantity: int) -> None:
        self._sale(cur, product_id, -int(quantity), item_id)

    def apply_sale_update(self, cur: sqlite3.Cursor, old: InvoiceItem, product_id: int, quantity: int) -> None:
        if int(product_id) == old.product_id:
            self._sale(cur, product_id, old.quantity - int(quantity), old.id)
            return
        self._sale(cur, old.product_id, old.quantity, old.id)
        self._sale(cur, product_id, -int(quantity), old.id)

    def apply_sale_delete(self, cur: sqlite3.Cursor, old: InvoiceItem) -> None:
        self._sale(cur, old.product_id, old.quantity, old.id)

    # ---------- Reads ----------
    def movements(self, product_id: int, limit: int = 100) -> list[StockMovement]:
        return self.repo.stock_movements_for_product(int(product_id), int(limit))

    def audit(self) -> list[StockMismatch]:
        mismatches = [m for m in self.repo.stock_reconciliation() if m.stored != m.expected]
        for m in mismatches:
            log.error(
                "stock_mismatch product_id=%s stored=%s expected=%s", m.product_id, m.stored, m.expected,
                extra={"product_id": m.product_id},
            )
        return mismatches
