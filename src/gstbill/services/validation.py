from __future__ import annotations

import math
import re
from datetime import date, datetime
from typing import Optional

from gstbill.domain.errors import ValidationError

GSTIN_RE = re.compile(r"^[0-9]{2}[A-Z]{5}[0-9]{4}[A-Z][1-9A-Z]Z[0-9A-Z]$", re.IGNORECASE)
PAN_RE = re.compile(r"^[A-Z]{5}[0-9]{4}[A-Z]$", re.IGNORECASE)


def clean_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def require_text(value: Optional[str], label: str) -> str:
    cleaned = clean_text(value)
    if not cleaned:
        raise ValidationError(f"{label} is required.")
    return cleaned


def as_iso_date(value: date | datetime | str, label: str = "Date") -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    try:
        return date.fromisoformat(str(value).strip()).isoformat()
    except ValueError as exc:
        raise ValidationError(f"{label} must be an ISO date (YYYY-MM-DD).") from exc


def _number(value, label: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{label} must be a number.") from exc
    if not math.isfinite(number):
        raise ValidationError(f"{label} must be a finite number.")
    return number


def check_quantity(qty) -> int:
    number = _number(qty, "Quantity")
    if number != int(number):
        raise ValidationError("Quantity must be a whole number.")
    if number <= 0:
        raise ValidationError("Quantity must be > 0.")
    return int(number)


def check_price(price) -> float:
    price = _number(price, "Unit price")
    if price < 0:
        raise ValidationError("Unit price must be >= 0.")
    return price


def check_tax_rate(rate) -> float:
    rate = _number(rate, "Tax rate")
    if rate < 0 or rate > 1:
        raise ValidationError("Tax rate must be a fraction between 0 and 1.")
    return rate


def check_gstin(value: Optional[str]) -> Optional[str]:
    value = clean_text(value)
    if value is None:
        return None
    value = value.upper()
    if not GSTIN_RE.match(value):
        raise ValidationError(f"Invalid GSTIN: {value}")
    return value


def check_gst_pan(value: Optional[str]) -> Optional[str]:
    value = clean_text(value)
    if value is None:
        return None
    value = value.upper()
    if not (GSTIN_RE.match(value) or PAN_RE.match(value)):
        raise ValidationError(f"Invalid GSTIN / PAN: {value}")
    return value
