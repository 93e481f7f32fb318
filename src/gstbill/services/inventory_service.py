from __future__ import annotations

import logging
from typing import Callable, Optional

from gstbill.domain.errors import NotFoundError
from gstbill.domain.models import Category, Product, Unit
from gstbill.repositories.unit_of_work import SqliteUnitOfWork, UnitOfWork
from gstbill.services.validation import check_price, check_tax_rate, clean_text, require_text

log = logging.getLogger(__name__)


class InventoryService:
    def __init__(self, repo, uow_factory: Callable[[], UnitOfWork] | None = None):
        self.repo = repo
        self.uow_factory = uow_factory or (lambda: SqliteUnitOfWork(repo))

    def list_products(self) -> list[Product]:
        return self.repo.list_products()

    def list_out_of_stock(self) -> list[Product]:
        return self.repo.list_out_of_stock()

    def get_product(self, product_id: int) -> Product:
        p = self.repo.get_product_by_id(int(product_id))
        if not p:
            raise NotFoundError("Product not found.")
        return p

    def get_product_by_name(self, name: str) -> Product:
        p = self.repo.get_product_by_name((name or "").strip())
        if not p:
            raise NotFoundError("Product not found.")
        return p

    def add_product(
        self,
        name: str,
        unit_price: float,
        tax_rate: float,
        hsn_code: Optional[str] = None,
        description: Optional[str] = None,
        unit_id: Optional[int] = None,
        category_id: Optional[int] = None,
    ) -> int:
        """New products start at zero stock; stock only moves through purchases and sales."""
        with self.uow_factory() as uow:
            return self.insert(uow.cur, name, unit_price, tax_rate, hsn_code, description, unit_id, category_id)

    def insert(
        self, cur, name, unit_price, tax_rate, hsn_code=None, description=None, unit_id=None, category_id=None
    ) -> int:
        """Insert on an already open transaction (used by the Excel purchase import)."""
        name = require_text(name, "Name")
        unit_price = check_price(unit_price)
        tax_rate = check_tax_rate(tax_rate)
        pid = self.repo.insert_product(
            cur, name, clean_text(hsn_code), unit_price, tax_rate, clean_text(description), unit_id, category_id
        )
        log.info("product_created product_id=%s name=%s", pid, name)
        return pid

    def update_product(
        self,
        product_id: int,
        name: str,
        unit_price: float,
        tax_rate: float,
        hsn_code: Optional[str] = None,
        description: Optional[str] = None,
        unit_id: Optional[int] = None,
        category_id: Optional[int] = None,
    ) -> None:
        name = require_text(name, "Name")
        unit_price = check_price(unit_price)
        tax_rate = check_tax_rate(tax_rate)
        with self.uow_factory() as uow:
            updated = self.repo.update_product_row(
                uow.cur,
                int(product_id),
                name,
                clean_text(hsn_code),
                unit_price,
                tax_rate,
                clean_text(description),
                unit_id,
                category_id,
            )
            if not updated:
                raise NotFoundError("Product not found.")

    def delete_product(self, product_id: int) -> None:
        with self.uow_factory() as uow:
            if not self.repo.delete_product_row(uow.cur, int(product_id)):
                raise NotFoundError("Product not found.")
        log.info("product_deleted product_id=%s", product_id)

    # ---------- Units / Categories ----------
    def list_units(self) -> list[Unit]:
        return self.repo.list_units()

    def add_unit(self, name: str, abbreviation: str) -> int:
        name = require_text(name, "Unit name")
        abbreviation = require_text(abbreviation, "Abbreviation")
        with self.uow_factory() as uow:
            return self.repo.insert_unit(uow.cur, name, abbreviation)

    def delete_unit(self, unit_id: int) -> None:
        with self.uow_factory() as uow:
            if not self.repo.delete_unit_row(uow.cur, int(unit_id)):
                raise NotFoundError("Unit not found.")

    def list_categories(self) -> list[Category]:
        return self.repo.list_categories()

    def add_category(self, name: str, description: Optional[str] = None, icon_name: Optional[str] = None) -> int:
        name = require_text(name, "Category name")
        with self.uow_factory() as uow:
            return self.repo.insert_category(uow.cur, name, clean_text(description), clean_text(icon_name))

    def delete_category(self, category_id: int) -> None:
        with self.uow_factory() as uow:
            if not self.repo.delete_category_row(uow.cur, int(category_id)):
                raise NotFoundError("Category not found.")
