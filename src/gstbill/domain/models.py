from __future__ import annotations
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Unit:
    id: int
    name: str
    abbreviation: str


@dataclass(frozen=True)
class Category:
    id: int
    name: str
    description: Optional[str]
    icon_name: Optional[str]


@dataclass(frozen=True)
class Product:
    id: int
    name: str
    hsn_code: Optional[str]
    stock_quantity: int
    unit_price: float
    tax_rate: float
    description: Optional[str] = None
    unit_id: Optional[int] = None
    category_id: Optional[int] = None


@dataclass(frozen=True)
class Purchase:
    id: int
    product_id: int
    quantity: int
    purchase_date: str
    reference_invoice: Optional[str]


@dataclass(frozen=True)
class Customer:
    id: int
    name: str
    email: Optional[str]
    phone: Optional[str]
    gst_pan: Optional[str]
    billing_address: Optional[str]
    is_guest: int = 0


@dataclass(frozen=True)
class Invoice:
    id: int
    customer_id: Optional[int]
    invoice_number: str
    invoice_date: str
    notes: Optional[str]
    total_amount: float
    created_at: str


@dataclass(frozen=True)
class InvoiceListRow:
    id: int
    invoice_number: str
    invoice_date: str
    customer_name: Optional[str]
    total_amount: float


@dataclass(frozen=True)
class InvoiceItem:
    id: int
    invoice_id: int
    product_id: int
    quantity: int
    unit_price: float
    tax_rate: float


@dataclass(frozen=True)
class InvoiceLine:
    item_id: int
    product_name: str
    hsn_code: Optional[str]
    unit_abbreviation: Optional[str]
    quantity: int
    unit_price: float
    tax_rate: float
    inclusive_rate: float
    taxable_value: float
    cgst: float
    sgst: float
    line_total: float


@dataclass(frozen=True)
class GstBreakdown:
    taxable_value: float
    cgst: float
    sgst: float
    grand_total: float


@dataclass(frozen=True)
class CompanyDetails:
    name: Optional[str]
    slogan: Optional[str]
    address: Optional[str]
    gstin: Optional[str]
    account_name: Optional[str]
    account_number: Optional[str]
    account_type: Optional[str]
    bank_name: Optional[str]
    ifsc_code: Optional[str]


@dataclass(frozen=True)
class InvoiceDocument:
    invoice: Invoice
    customer: Optional[Customer]
    lines: list[InvoiceLine]
    company: Optional[CompanyDetails]
    totals: GstBreakdown


@dataclass(frozen=True)
class ReportRow:
    transaction_id: Optional[int]
    transaction_date: str
    transaction_type: str
    reference_number: Optional[str]
    product_name: str
    quantity_change: int


@dataclass(frozen=True)
class StockMovement:
    id: int
    datetime: str
    product_id: int
    movement_type: str
    qty_delta: int
    stock_after: int
    reference_type: str
    reference_id: int
    notes: Optional[str]


@dataclass(frozen=True)
class StockMismatch:
    product_id: int
    product_name: str
    stored: int
    expected: int


@dataclass(frozen=True)
class MonthlyBucket:
    label: str
    year: int
    month: int
    sales: float
    purchases: float


@dataclass(frozen=True)
class DashboardStats:
    total_revenue: float
    total_invoices: int
    active_customers: int
    products_in_stock: int
    chart: list[MonthlyBucket]
    out_of_stock: list[Product]
