from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest
from conftest import make_container, stock_of


def test_concurrent_purchases_on_one_product(tmp_path: Path):
    c = make_container(tmp_path)
    pid = c.inventory.add_product("Urea 45kg", 100.0, 0.18)

    def worker(n):
        for _ in range(5):
            c.purchases.create_purchase(pid, 1, "2024-05-01", f"PO-{n}")

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(worker, range(8)))

    assert stock_of(c, pid) == 40
    assert c.ledger.audit() == []
    assert len(c.ledger.movements(pid, limit=100)) == 40


def test_concurrent_invoices_draw_down_stock_exactly(tmp_path: Path):
    c = make_container(tmp_path)
    pid = c.inventory.add_product("Urea 45kg", 100.0, 0.18)
    c.purchases.create_purchase(pid, 100, "2024-05-01")

    def worker(n):
        return c.invoices.create_invoice(f"INV-{n:03d}", "2024-05-02", [{"product_id": pid, "quantity": 3}])

    with ThreadPoolExecutor(max_workers=10) as pool:
        ids = list(pool.map(worker, range(1, 11)))

    assert stock_of(c, pid) == 70
    assert c.ledger.audit() == []
    for iid in ids:
        assert c.invoices.get_invoice(iid).total_amount == pytest.approx(354.0)
