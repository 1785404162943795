from __future__ import annotations

import logging
from collections.abc import Mapping
from decimal import Decimal

from einvoice.config import EXEMPT_CATEGORIES
from einvoice.models.common import ZERO
from einvoice.models.invoice import Invoice, TradeTax
from einvoice.models.line import InvoiceLine
from einvoice.models.violation import Violation
from einvoice.utils.formatters import round_amount

logger = logging.getLogger(__name__)

ALLOWANCE_ONLY_TEXT = "Document-level allowance has no corresponding invoice lines"


def line_net_amount(line: InvoiceLine) -> Decimal:
    """Quantity x net price / base quantity + line charges - line allowances, rounded to 2.

    A missing or zero base quantity counts as 1; a missing net price as 0.
    """
    base = line.base_quantity if line.base_quantity else Decimal(1)
    price = line.net_price if line.net_price is not None else ZERO
    amount = line.quantity * price / base
    for ac in line.allowance_charges:
        amount += ac.signed_amount
    return round_amount(amount)


def update_line_totals(invoice: Invoice) -> None:
    """Recompute every line net amount (BT-131). Never run implicitly."""
    for line in invoice.lines:
        line.total = line_net_amount(line)


def _default_reason(default: str | Mapping[str, str] | None, category: str) -> str:
    if category not in EXEMPT_CATEGORIES or default is None:
        return ""
    if isinstance(default, str):
        return default
    return default.get(category, "")


def update_trade_taxes(
    invoice: Invoice,
    default_exempt_reason: str | Mapping[str, str] | None = None,
) -> list[Violation]:
    """Rebuild the VAT breakdown (BG-23) from lines and document level allowances/charges.

    Entries are keyed by (category, rate) in first-seen order. Negative
    bases are clamped to zero. Entries fed only by allowances produce a
    ``Check`` violation, which is returned. Existing exemption reasons are
    kept per key; otherwise exempt-like categories get
    *default_exempt_reason* (a string, or a mapping category -> reason).
    """
    basis: dict[tuple[str, Decimal], Decimal] = {}
    allowance_only: dict[tuple[str, Decimal], bool] = {}

    for line in invoice.lines:
        key = (line.tax_category, line.tax_rate)
        basis[key] = basis.get(key, ZERO) + line.total
        allowance_only[key] = False

    for ac in invoice.allowance_charges:
        key = (ac.tax_category, ac.tax_rate)
        basis[key] = basis.get(key, ZERO) + ac.signed_amount
        if ac.charge:
            allowance_only[key] = False
        else:
            allowance_only.setdefault(key, True)

    previous = {(t.category, t.rate): t for t in invoice.trade_taxes}
    violations: list[Violation] = []
    taxes: list[TradeTax] = []
    for (category, rate), amount in basis.items():
        if amount < 0:
            logger.warning("Clamping negative taxable amount %s for %s %s%% to zero", amount, category, rate)
            amount = ZERO
        if allowance_only[(category, rate)]:
            violations.append(Violation("Check", ("BG-20", "BG-23", "BT-116"), ALLOWANCE_ONLY_TEXT))
        old = previous.get((category, rate))
        tax = TradeTax(
            category=category,
            rate=rate,
            basis_amount=amount,
            calculated_amount=round_amount(amount * rate / 100),
        )
        if old is not None and (old.exemption_reason or old.exemption_reason_code):
            tax.exemption_reason = old.exemption_reason
            tax.exemption_reason_code = old.exemption_reason_code
        else:
            tax.exemption_reason = _default_reason(default_exempt_reason, category)
        if old is not None:
            tax.tax_point_date = old.tax_point_date
            tax.due_date_type_code = old.due_date_type_code
        logger.debug("VAT breakdown %s %s%%: basis %s tax %s", category, rate, tax.basis_amount, tax.calculated_amount)
        taxes.append(tax)

    invoice.trade_taxes = taxes
    return violations


def update_allowances_and_charges(invoice: Invoice) -> None:
    """Recompute the document level allowance (BT-107) and charge (BT-108) totals."""
    invoice.allowance_total = sum((ac.amount for ac in invoice.allowances), ZERO)
    invoice.charge_total = sum((ac.amount for ac in invoice.charges), ZERO)


def update_totals(invoice: Invoice) -> None:
    """Recompute BT-106..BT-115 from lines, allowances/charges and the VAT breakdown.

    Run :func:`update_trade_taxes` first: the tax total is summed from the
    current breakdown.
    """
    update_allowances_and_charges(invoice)
    invoice.line_total = sum((line.total for line in invoice.lines), ZERO)
    invoice.tax_basis_total = invoice.line_total - invoice.allowance_total + invoice.charge_total
    invoice.tax_total = sum((t.calculated_amount for t in invoice.trade_taxes), ZERO)
    invoice.grand_total = invoice.tax_basis_total + invoice.tax_total
    invoice.due_payable = invoice.grand_total - invoice.prepaid + invoice.rounding


def calculate(
    invoice: Invoice,
    default_exempt_reason: str | Mapping[str, str] | None = None,
) -> list[Violation]:
    """Run :func:`update_trade_taxes` then :func:`update_totals`; return the Check violations."""
    violations = update_trade_taxes(invoice, default_exempt_reason)
    update_totals(invoice)
    return violations
