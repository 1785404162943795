from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

ZERO = Decimal("0")


def to_decimal(value, default: Decimal | None = ZERO) -> Decimal | None:
    """Convert a YAML scalar to Decimal. Floats go through str() to keep their printed value."""
    if value is None or value == "":
        return default
    if isinstance(value, float):
        value = str(value)
    return Decimal(value)


def to_date(value) -> date | None:
    """Accept a date (PyYAML already parses ISO dates) or an ISO YYYY-MM-DD string."""
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


@dataclass
class Period:
    """Invoicing period (BG-14) or line period (BG-26). Either end may be unset."""

    start: date | None = None
    end: date | None = None

    @classmethod
    def from_dict(cls, d: dict) -> Period:
        return cls(start=to_date(d.get("start")), end=to_date(d.get("end")))


@dataclass
class AllowanceCharge:
    """Allowance (charge=False) or charge (charge=True), document level or line level."""

    charge: bool = False
    amount: Decimal = ZERO
    basis_amount: Decimal | None = None
    percent: Decimal | None = None
    reason: str = ""
    reason_code: str = ""
    tax_type: str = "VAT"
    tax_category: str = ""
    tax_rate: Decimal = ZERO

    @property
    def kind(self) -> str:
        return "charge" if self.charge else "allowance"

    @property
    def signed_amount(self) -> Decimal:
        """Contribution to the taxable amount: positive for charges, negative for allowances."""
        return self.amount if self.charge else -self.amount

    @classmethod
    def from_dict(cls, d: dict) -> AllowanceCharge:
        return cls(
            charge=bool(d.get("charge", False)),
            amount=to_decimal(d.get("amount")),
            basis_amount=to_decimal(d.get("basis_amount"), None),
            percent=to_decimal(d.get("percent"), None),
            reason=d.get("reason", ""),
            reason_code=str(d.get("reason_code", "")),
            tax_type=d.get("tax_type", "VAT"),
            tax_category=d.get("tax_category", ""),
            tax_rate=to_decimal(d.get("tax_rate")),
        )
