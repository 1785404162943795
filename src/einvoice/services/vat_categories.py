from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal

from einvoice.models.common import ZERO
from einvoice.models.invoice import Invoice, TradeTax
from einvoice.services.report import ReportBuilder
from einvoice.utils.formatters import round_amount

logger = logging.getLogger(__name__)

ANY_SELLER_ID = "any"  # VAT id, tax registration or tax representative VAT id
SELLER_VAT_ID = "vat"  # VAT id or tax representative VAT id

BUYER_VAT_OR_LEGAL = "vat-or-legal"
BUYER_VAT = "vat"
BUYER_NO_VAT = "no-vat"


def _positive(rate: Decimal) -> bool:
    return rate > 0


def _zero(rate: Decimal) -> bool:
    return rate == 0


def _non_negative(rate: Decimal) -> bool:
    return rate >= 0


@dataclass(frozen=True)
class Category:
    """Descriptor driving the BR-<prefix>-1..10 checks for one VAT category code."""

    prefix: str
    code: str
    label: str
    exactly_one: bool
    seller_id: str
    buyer_id: str | None
    rate_ok: Callable[[Decimal], bool]
    rate_text: str
    taxed: bool  # tax amount is basis x rate rather than zero
    reason_required: bool


CATEGORIES = [
    Category("S", "S", "Standard rated", False, ANY_SELLER_ID, None, _positive, "greater than 0", True, False),
    Category("AE", "AE", "Reverse charge", True, ANY_SELLER_ID, BUYER_VAT_OR_LEGAL, _zero, "0", False, True),
    Category("E", "E", "Exempt from VAT", True, ANY_SELLER_ID, None, _zero, "0", False, True),
    Category("Z", "Z", "Zero rated", True, ANY_SELLER_ID, None, _zero, "0", False, False),
    Category("G", "G", "Export outside the EU", True, SELLER_VAT_ID, None, _zero, "0", False, True),
    Category("IC", "K", "Intra-community supply", True, ANY_SELLER_ID, BUYER_VAT, _zero, "0", False, True),
    Category("IG", "L", "IGIC", False, ANY_SELLER_ID, BUYER_NO_VAT, _non_negative, "0 or greater", True, False),
    Category("IP", "M", "IPSI", False, ANY_SELLER_ID, BUYER_NO_VAT, _non_negative, "0 or greater", True, False),
]


def _seller_identified(invoice: Invoice, requirement: str) -> bool:
    rep_vat = invoice.tax_representative.vat_id if invoice.tax_representative else ""
    if requirement == SELLER_VAT_ID:
        return bool(invoice.seller.vat_id or rep_vat)
    return bool(invoice.seller.vat_id or invoice.seller.tax_id or rep_vat)


def _buyer_ok(invoice: Invoice, requirement: str | None) -> bool:
    buyer = invoice.buyer
    if requirement == BUYER_VAT_OR_LEGAL:
        return bool(buyer.vat_id or buyer.legal_id)
    if requirement == BUYER_VAT:
        return bool(buyer.vat_id)
    if requirement == BUYER_NO_VAT:
        return not buyer.vat_id
    return True


def expected_basis(invoice: Invoice, category: str, rate: Decimal) -> Decimal:
    """Sum of matching line amounts plus charges minus allowances, clamped at zero."""
    total = ZERO
    for line in invoice.lines:
        if line.tax_category == category and line.tax_rate == rate:
            total += line.total
    for ac in invoice.allowance_charges:
        if ac.tax_category == category and ac.tax_rate == rate:
            total += ac.signed_amount
    return max(total, ZERO)


def _breakdown(invoice: Invoice, code: str) -> list[TradeTax]:
    return [t for t in invoice.trade_taxes if t.category == code]


def _check_category(invoice: Invoice, cat: Category, report: ReportBuilder) -> None:
    p = f"BR-{cat.prefix}"
    lines = [line for line in invoice.lines if line.tax_category == cat.code]
    allowances = [ac for ac in invoice.allowances if ac.tax_category == cat.code]
    charges = [ac for ac in invoice.charges if ac.tax_category == cat.code]
    entries = _breakdown(invoice, cat.code)

    if lines or allowances or charges:
        if cat.exactly_one and len(entries) != 1:
            report.add(f"{p}-1", f"{cat.label} items require exactly one VAT breakdown with category {cat.code} (found {len(entries)})")
        elif not entries:
            report.add(f"{p}-1", f"{cat.label} items require a VAT breakdown with category {cat.code}")

    parties_ok = _seller_identified(invoice, cat.seller_id) and _buyer_ok(invoice, cat.buyer_id)
    for n, items, what in ((2, lines, "line"), (3, allowances, "allowance"), (4, charges, "charge")):
        if items and not parties_ok:
            report.add(f"{p}-{n}", f"{cat.label} {what} requires the seller and buyer tax identifiers of category {cat.code}")

    for line in lines:
        if not cat.rate_ok(line.tax_rate):
            report.add(f"{p}-5", f"{cat.label} line {line.line_id} VAT rate must be {cat.rate_text} (got {line.tax_rate})")
    for ac in allowances:
        if not cat.rate_ok(ac.tax_rate):
            report.add(f"{p}-6", f"{cat.label} allowance VAT rate must be {cat.rate_text} (got {ac.tax_rate})")
    for ac in charges:
        if not cat.rate_ok(ac.tax_rate):
            report.add(f"{p}-7", f"{cat.label} charge VAT rate must be {cat.rate_text} (got {ac.tax_rate})")

    for tax in entries:
        basis = expected_basis(invoice, cat.code, tax.rate)
        if tax.basis_amount != basis:
            report.add(f"{p}-8", f"{cat.label} taxable amount for rate {tax.rate} is {tax.basis_amount}, expected {basis}")
        expected = round_amount(tax.basis_amount * tax.rate / 100) if cat.taxed else ZERO
        if tax.calculated_amount != expected:
            report.add(f"{p}-9", f"{cat.label} VAT amount is {tax.calculated_amount}, expected {expected}")
        has_reason = bool(tax.exemption_reason or tax.exemption_reason_code)
        if cat.reason_required and not has_reason:
            report.add(f"{p}-10", f"{cat.label} VAT breakdown must have an exemption reason")
        elif not cat.reason_required and has_reason:
            report.add(f"{p}-10", f"{cat.label} VAT breakdown must not have an exemption reason")

    if cat.prefix == "IC" and entries:
        period = invoice.billing_period
        has_period = period is not None and (period.start is not None or period.end is not None)
        if invoice.delivery_date is None and not has_period:
            report.add("BR-IC-11", "Intra-community supply requires an actual delivery date or an invoicing period")
        if not invoice.deliver_to_country:
            report.add("BR-IC-12", "Intra-community supply requires a deliver to country code")


def _check_not_subject(invoice: Invoice, report: ReportBuilder) -> None:
    lines = [line for line in invoice.lines if line.tax_category == "O"]
    allowances = [ac for ac in invoice.allowances if ac.tax_category == "O"]
    charges = [ac for ac in invoice.charges if ac.tax_category == "O"]
    entries = _breakdown(invoice, "O")

    if (lines or allowances or charges) and len(entries) != 1:
        report.add("BR-O-1", f"Not subject to VAT items require exactly one VAT breakdown with category O (found {len(entries)})")

    identified = _seller_identified(invoice, ANY_SELLER_ID) or bool(invoice.buyer.vat_id or invoice.buyer.legal_id)
    for n, items, what in ((2, lines, "line"), (3, allowances, "allowance"), (4, charges, "charge")):
        if items and not identified:
            report.add(f"BR-O-{n}", f"Not subject to VAT {what} requires a seller or buyer tax identifier")

    for line in lines:
        if line.tax_rate != 0:
            report.add("BR-O-5", f"Not subject to VAT line {line.line_id} must not have a VAT rate")
    for ac in allowances:
        if ac.tax_rate != 0:
            report.add("BR-O-6", "Not subject to VAT allowance must not have a VAT rate")
    for ac in charges:
        if ac.tax_rate != 0:
            report.add("BR-O-7", "Not subject to VAT charge must not have a VAT rate")

    if not entries:
        return
    if any(t.category != "O" for t in invoice.trade_taxes):
        report.add("BR-O-8", "Not subject to VAT breakdown must be the only VAT breakdown")
    for tax in entries:
        basis = expected_basis(invoice, "O", tax.rate)
        if tax.basis_amount != basis:
            report.add("BR-O-9", f"Not subject to VAT taxable amount is {tax.basis_amount}, expected {basis}")
        if tax.calculated_amount != 0:
            report.add("BR-O-10", "Not subject to VAT amount must be 0")
        if not (tax.exemption_reason or tax.exemption_reason_code):
            report.add("BR-O-11", "Not subject to VAT breakdown must have an exemption reason")
    if any(line.tax_category != "O" for line in invoice.lines):
        report.add("BR-O-12", "Invoice with Not subject to VAT breakdown must not contain lines of another category")
    if any(ac.tax_category != "O" for ac in invoice.allowances):
        report.add("BR-O-13", "Invoice with Not subject to VAT breakdown must not contain allowances of another category")
    if any(ac.tax_category != "O" for ac in invoice.charges):
        report.add("BR-O-14", "Invoice with Not subject to VAT breakdown must not contain charges of another category")


def check_vat_categories(invoice: Invoice, report: ReportBuilder) -> None:
    """Run the category specific rule sets (S, AE, E, Z, G, K, L, M, O)."""
    for cat in CATEGORIES:
        _check_category(invoice, cat, report)
    _check_not_subject(invoice, report)
    logger.debug("Checked %d VAT categories", len(CATEGORIES) + 1)
