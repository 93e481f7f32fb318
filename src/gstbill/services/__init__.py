from .stock_ledger import StockLedger
from .invoice_totals import InvoiceTotals
from .inventory_service import InventoryService
from .purchase_service import PurchaseService
from .customer_service import CustomerService, CompanyService
from .invoice_service import InvoiceService
from .reporting_service import ReportingService
from .excel_service import ExcelService

__all__ = [
    "StockLedger",
    "InvoiceTotals",
    "InventoryService",
    "PurchaseService",
    "CustomerService",
    "CompanyService",
    "InvoiceService",
    "ReportingService",
    "ExcelService",
]
