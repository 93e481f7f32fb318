from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from gstbill.repositories.sqlite_repo import SqliteRepository
from gstbill.repositories.unit_of_work import SqliteUnitOfWork
from gstbill.services.customer_service import CompanyService, CustomerService
from gstbill.services.excel_service import ExcelService
from gstbill.services.inventory_service import InventoryService
from gstbill.services.invoice_service import InvoiceService
from gstbill.services.invoice_totals import InvoiceTotals
from gstbill.services.purchase_service import PurchaseService
from gstbill.services.reporting_service import ReportingService
from gstbill.services.stock_ledger import StockLedger


@dataclass(frozen=True)
class AppContainer:
    repo: SqliteRepository
    ledger: StockLedger
    totals: InvoiceTotals
    inventory: InventoryService
    purchases: PurchaseService
    customers: CustomerService
    company: CompanyService
    invoices: InvoiceService
    reporting: ReportingService
    excel: ExcelService


def build_container(db_path: Path | str, busy_timeout: float = 30.0) -> AppContainer:
    repo = SqliteRepository(db_path, busy_timeout=busy_timeout)
    repo.init_db()

    def uow_factory():
        return SqliteUnitOfWork(repo)

    ledger = StockLedger(repo)
    totals = InvoiceTotals(repo)
    inventory = InventoryService(repo, uow_factory)
    purchases = PurchaseService(repo, ledger, uow_factory)
    customers = CustomerService(repo, uow_factory)
    company = CompanyService(repo, uow_factory)
    invoices = InvoiceService(repo, ledger, totals, customers, uow_factory)
    reporting = ReportingService(repo)
    excel = ExcelService(repo, purchases, inventory)

    return AppContainer(
        repo=repo,
        ledger=ledger,
        totals=totals,
        inventory=inventory,
        purchases=purchases,
        customers=customers,
        company=company,
        invoices=invoices,
        reporting=reporting,
        excel=excel,
    )
