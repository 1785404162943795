from __future__ import annotations

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")
QUANTITY_PLACES = Decimal("0.0001")


def round_amount(value: Decimal) -> Decimal:
    """Round to two decimals, ties away from zero."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def format_amount(value: Decimal) -> str:
    """Format a monetary amount with exactly two fractional digits."""
    return f"{round_amount(value):f}"


def format_quantity(value: Decimal) -> str:
    """Format a quantity with exactly four fractional digits."""
    return f"{value.quantize(QUANTITY_PLACES, rounding=ROUND_HALF_UP):f}"


def format_percent(value: Decimal) -> str:
    """Format a rate without trailing zeros: 19 -> "19", 7.50 -> "7.5"."""
    if value == value.to_integral_value():
        return f"{value.quantize(Decimal(1)):f}"
    return f"{value.normalize():f}"


def format_date_102(value: date) -> str:
    """Format a date as YYYYMMDD (UN/CEFACT format 102)."""
    return value.strftime("%Y%m%d")


def parse_date_102(text: str) -> date:
    """Parse a YYYYMMDD string. Raises ValueError on anything else."""
    text = text.strip()
    if len(text) != 8 or not text.isdigit():
        raise ValueError(f"not a format 102 date: {text!r}")
    return datetime.strptime(text, "%Y%m%d").date()


def format_money(value: Decimal, currency: str) -> str:
    """Format an amount for display as CUR X,XXX.XX."""
    return f"{currency} {round_amount(value):,.2f}".strip()


def parse_date_iso(text: str) -> date:
    """Parse a YYYY-MM-DD string as used by UBL. Raises ValueError on anything else."""
    text = text.strip()
    if len(text) != 10:
        raise ValueError(f"not an ISO date: {text!r}")
    return datetime.strptime(text, "%Y-%m-%d").date()
