from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Optional

from gstbill.domain.errors import NotFoundError, WouldViolateInvariantError
from gstbill.domain.models import Purchase
from gstbill.repositories.unit_of_work import SqliteUnitOfWork, UnitOfWork
from gstbill.services.stock_ledger import StockLedger
from gstbill.services.validation import as_iso_date, check_quantity, clean_text

log = logging.getLogger("gstbill.stock")


class PurchaseService:
    def __init__(
        self,
        repo,
        ledger: StockLedger | None = None,
        uow_factory: Callable[[], UnitOfWork] | None = None,
    ):
        self.repo = repo
        self.ledger = ledger or StockLedger(repo)
        self.uow_factory = uow_factory or (lambda: SqliteUnitOfWork(repo))

    def create_purchase(
        self, product_id: int, quantity: int, purchase_date: date | str, reference_invoice: Optional[str] = None
    ) -> int:
        with self.uow_factory() as uow:
            purchase_id = self.insert(uow.cur, product_id, quantity, purchase_date, reference_invoice)

        log.info(
            "purchase_created purchase_id=%s product_id=%s qty=%s", purchase_id, product_id, quantity,
            extra={"purchase_id": purchase_id, "product_id": product_id},
        )
        return purchase_id

    def insert(self, cur, product_id, quantity, purchase_date, reference_invoice=None) -> int:
        """Records the purchase and its stock inflow on an already open transaction."""
        quantity = check_quantity(quantity)
        purchase_date = as_iso_date(purchase_date, "Purchase date")
        if not self.repo.fetch_product(cur, int(product_id)):
            raise NotFoundError("Product not found.")
        purchase_id = self.repo.insert_purchase(cur, int(product_id), quantity, purchase_date, clean_text(reference_invoice))
        self.ledger.apply_purchase_insert(cur, purchase_id, int(product_id), quantity)
        return purchase_id

    def update_purchase(
        self,
        purchase_id: int,
        product_id: int,
        quantity: int,
        purchase_date: date | str,
        reference_invoice: Optional[str] = None,
    ) -> None:
        quantity = check_quantity(quantity)
        purchase_date = as_iso_date(purchase_date, "Purchase date")
        reference_invoice = clean_text(reference_invoice)

        with self.uow_factory() as uow:
            old = self.repo.fetch_purchase(uow.cur, int(purchase_id))
            if not old:
                raise NotFoundError(f"Purchase {purchase_id} not found.")
            if not self.repo.fetch_product(uow.cur, int(product_id)):
                raise NotFoundError("Product not found.")
            self.repo.update_purchase_row(uow.cur, old.id, int(product_id), quantity, purchase_date, reference_invoice)
            self.ledger.apply_purchase_update(uow.cur, old, int(product_id), quantity)

        log.info(
            "purchase_updated purchase_id=%s product_id=%s->%s qty=%s->%s",
            purchase_id, old.product_id, product_id, old.quantity, quantity,
        )

    def delete_purchase(self, purchase_id: int) -> None:
        """Plain delete. The stock CHECK constraint still rejects a negative result."""
        with self.uow_factory() as uow:
            old = self.repo.fetch_purchase(uow.cur, int(purchase_id))
            if not old:
                raise NotFoundError(f"Purchase {purchase_id} not found.")
            self.repo.delete_purchase_row(uow.cur, old.id)
            self.ledger.apply_purchase_delete(uow.cur, old)
        log.info("purchase_deleted purchase_id=%s product_id=%s qty=%s", old.id, old.product_id, old.quantity)

    def delete_purchase_safely(self, purchase_id: int) -> str:
        with self.uow_factory() as uow:
            old = self.repo.fetch_purchase(uow.cur, int(purchase_id))
            if not old:
                raise NotFoundError(f"Purchase with ID {purchase_id} not found.")

            product = self.repo.fetch_product(uow.cur, old.product_id)
            if not product:
                raise NotFoundError("Product not found.")
            if product.stock_quantity - old.quantity < 0:
                log.warning(
                    "purchase_delete_blocked purchase_id=%s stock=%s qty=%s",
                    old.id, product.stock_quantity, old.quantity,
                )
                raise WouldViolateInvariantError(
                    "Cannot delete this purchase. Deleting it would result in a negative stock level "
                    "for the product. Please adjust sales records first."
                )

            self.repo.delete_purchase_row(uow.cur, old.id)
            self.ledger.apply_purchase_delete(uow.cur, old)

        log.info("purchase_deleted purchase_id=%s product_id=%s qty=%s", old.id, old.product_id, old.quantity)
        return "Purchase record deleted successfully."

    def get_purchase(self, purchase_id: int) -> Purchase:
        p = self.repo.get_purchase(int(purchase_id))
        if not p:
            raise NotFoundError(f"Purchase {purchase_id} not found.")
        return p

    def list_purchases_between(self, start: date | str, end: date | str) -> list[Purchase]:
        return self.repo.list_purchases_between(as_iso_date(start), as_iso_date(end))
