from .models import Product, Purchase, Customer, Invoice, InvoiceItem, ReportRow
from .errors import (
    AppError,
    ConstraintViolationError,
    NotFoundError,
    ValidationError,
    WouldViolateInvariantError,
)

__all__ = [
    "Product",
    "Purchase",
    "Customer",
    "Invoice",
    "InvoiceItem",
    "ReportRow",
    "AppError",
    "ConstraintViolationError",
    "NotFoundError",
    "ValidationError",
    "WouldViolateInvariantError",
]
