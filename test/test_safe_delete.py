from pathlib import Path

import pytest
from conftest import make_container, stock_of

from gstbill.domain.errors import ConstraintViolationError, NotFoundError, WouldViolateInvariantError
from gstbill.repositories.sqlite_repo import SqliteRepository
from gstbill.services.inventory_service import InventoryService
from gstbill.services.invoice_service import InvoiceService
from gstbill.services.purchase_service import PurchaseService


def _setup(tmp_path: Path):
    c = make_container(tmp_path)
    pid = c.inventory.add_product("Urea 45kg", 100.0, 0.18)
    return c, pid


def test_safe_delete_refuses_when_stock_would_go_negative(tmp_path: Path):
    c, pid = _setup(tmp_path)
    purchase_id = c.purchases.create_purchase(pid, 10, "2024-05-01")
    c.invoices.create_invoice("INV-001", "2024-05-02", [{"product_id": pid, "quantity": 4}])

    with pytest.raises(WouldViolateInvariantError, match="adjust sales records first"):
        c.purchases.delete_purchase_safely(purchase_id)

    assert stock_of(c, pid) == 6
    assert c.purchases.get_purchase(purchase_id).quantity == 10


def test_safe_delete_succeeds_when_stock_covers_it(tmp_path: Path):
    c, pid = _setup(tmp_path)
    c.purchases.create_purchase(pid, 10, "2024-05-01")
    extra = c.purchases.create_purchase(pid, 5, "2024-05-02")
    c.invoices.create_invoice("INV-001", "2024-05-03", [{"product_id": pid, "quantity": 4}])

    msg = c.purchases.delete_purchase_safely(extra)

    assert msg == "Purchase record deleted successfully."
    assert stock_of(c, pid) == 6
    with pytest.raises(NotFoundError):
        c.purchases.get_purchase(extra)


def test_safe_delete_unknown_purchase(tmp_path: Path):
    c, _pid = _setup(tmp_path)
    with pytest.raises(NotFoundError, match="Purchase with ID 77 not found"):
        c.purchases.delete_purchase_safely(77)


def test_plain_delete_below_zero_is_a_constraint_violation(tmp_path: Path):
    c, pid = _setup(tmp_path)
    purchase_id = c.purchases.create_purchase(pid, 10, "2024-05-01")
    c.invoices.create_invoice("INV-001", "2024-05-02", [{"product_id": pid, "quantity": 4}])

    with pytest.raises(ConstraintViolationError):
        c.purchases.delete_purchase(purchase_id)

    assert stock_of(c, pid) == 6


def test_delete_invoice_returns_stock_for_every_item(tmp_path: Path):
    c, pid = _setup(tmp_path)
    c.purchases.create_purchase(pid, 10, "2024-05-01")
    iid = c.invoices.create_invoice(
        "INV-001", "2024-05-02", [{"product_id": pid, "quantity": 3}, {"product_id": pid, "quantity": 5}]
    )
    assert stock_of(c, pid) == 2

    msg = c.invoices.delete_invoice_by_id(iid)

    assert msg == "Invoice and associated items deleted successfully."
    assert stock_of(c, pid) == 10
    assert c.invoices.invoice_items(iid) == []
    with pytest.raises(NotFoundError):
        c.invoices.get_invoice(iid)


def test_delete_unknown_invoice(tmp_path: Path):
    c, _pid = _setup(tmp_path)
    with pytest.raises(NotFoundError, match="Invoice with ID 5 not found"):
        c.invoices.delete_invoice_by_id(5)


class FailingRepo(SqliteRepository):
    def delete_invoice_row(self, cur, invoice_id):
        raise RuntimeError("forced failure after items were removed")


def test_failed_invoice_delete_rolls_back_stock_and_items(tmp_path: Path):
    db = tmp_path / "billing.db"
    repo = FailingRepo(db)
    repo.init_db()
    inventory = InventoryService(repo)
    purchases = PurchaseService(repo)
    invoices = InvoiceService(repo)

    pid = inventory.add_product("Urea 45kg", 100.0, 0.18)
    purchases.create_purchase(pid, 10, "2024-05-01")
    iid = invoices.create_invoice(
        "INV-001", "2024-05-02", [{"product_id": pid, "quantity": 3}, {"product_id": pid, "quantity": 5}]
    )

    with pytest.raises(RuntimeError):
        invoices.delete_invoice_by_id(iid)

    assert inventory.get_product(pid).stock_quantity == 2
    assert len(invoices.invoice_items(iid)) == 2
    assert invoices.get_invoice(iid).total_amount == pytest.approx(8 * 118.0)
