from __future__ import annotations

import logging
from decimal import Decimal

from einvoice.models.common import ZERO, AllowanceCharge, Period
from einvoice.models.invoice import Invoice
from einvoice.models.line import InvoiceLine
from einvoice.services.calculator import line_net_amount
from einvoice.services.peppol import check_peppol
from einvoice.services.profile import LEVEL_BASIC, LEVEL_MINIMUM, LEVEL_UNKNOWN
from einvoice.services.report import ReportBuilder, ValidationReport
from einvoice.services.vat_categories import check_vat_categories, expected_basis
from einvoice.services.xrechnung import check_german_seller, check_xrechnung
from einvoice.utils.formatters import round_amount
from einvoice.utils.validators import has_country_prefix, has_max_decimals

logger = logging.getLogger(__name__)

CREDIT_TRANSFER_CODES = (30, 58)


def validate(invoice: Invoice, raise_on_error: bool = False) -> ValidationReport:
    """Check the invoice against every rule family that applies to its profile.

    Order: parse-time findings, core rules (BR, BR-CO, BR-DEC), VAT
    categories, PEPPOL when tagged, XRechnung when tagged, then the
    German seller check. The invoice is never modified.
    """
    profile = invoice.profile
    report = ReportBuilder(invoice.parse_violations)
    logger.debug("Validating invoice %r with profile %s %s", invoice.number, profile.name, sorted(profile.tags))

    check_core(invoice, report)
    check_calculations(invoice, report)
    check_decimals(invoice, report)
    check_vat_categories(invoice, report)
    if profile.is_peppol:
        logger.debug("Running PEPPOL rules")
        check_peppol(invoice, report)
    if profile.is_xrechnung:
        logger.debug("Running XRechnung rules")
        check_xrechnung(invoice, report)
    check_german_seller(invoice, report)

    result = report.build()
    logger.debug("Validation found %d errors and %d warnings", result.count(), len(result.warnings()))
    if raise_on_error:
        result.raise_for_errors()
    return result


def _period_reversed(period: Period | None) -> bool:
    return (
        period is not None
        and period.start is not None
        and period.end is not None
        and period.end < period.start
    )


def _period_empty(period: Period | None) -> bool:
    return period is not None and period.start is None and period.end is None


def check_core(invoice: Invoice, report: ReportBuilder) -> None:
    """BR-1 to BR-65: presence and shape of header, parties, lines and allowances."""
    level = invoice.profile.level
    if level == LEVEL_UNKNOWN:
        report.add("BR-1", f"Could not determine the profile from specification identifier {invoice.specification_id!r}")
    if not invoice.number:
        report.add("BR-2", "No invoice number found")
    if invoice.issue_date is None:
        report.add("BR-3", "Invoice issue date is missing")
    if invoice.type_code == 0:
        report.add("BR-4", "Invoice type code is missing")
    if not invoice.currency:
        report.add("BR-5", "Invoice currency code is empty")

    seller, buyer = invoice.seller, invoice.buyer
    if not seller.name:
        report.add("BR-6", "Seller name is empty")
    if not buyer.name:
        report.add("BR-7", "Buyer name is empty")
    if seller.address is None:
        report.add("BR-8", "Seller has no postal address")
    elif not seller.address.country:
        report.add("BR-9", "Seller country code is empty")
    if level > LEVEL_MINIMUM:
        if buyer.address is None:
            report.add("BR-10", "Buyer has no postal address")
        elif not buyer.address.country:
            report.add("BR-11", "Buyer country code is empty")

    if invoice.line_total == 0:
        report.add("BR-12", "Sum of invoice line net amount is zero")
    if invoice.tax_basis_total == 0:
        report.add("BR-13", "Invoice total amount without VAT is zero")
    if invoice.grand_total == 0:
        report.add("BR-14", "Invoice total amount with VAT is zero")
    if invoice.due_payable == 0:
        report.add("BR-15", "Amount due for payment is zero")
    if level >= LEVEL_BASIC and not invoice.lines:
        report.add("BR-16", "Invoice must have at least one invoice line")

    if invoice.payee is not None and not invoice.payee.name:
        report.add("BR-17", "Payee has no name, although different from seller")
    rep = invoice.tax_representative
    if rep is not None:
        if not rep.name:
            report.add("BR-18", "Tax representative has no name, although seller has specified one")
        if rep.address is None:
            report.add("BR-19", "Tax representative has no postal address")
        elif not rep.address.country:
            report.add("BR-20", "Tax representative postal address has no country code")
        if not rep.vat_id:
            report.add("BR-56", "Seller tax representative must have a VAT identifier")

    for line in invoice.lines:
        _check_line(line, report)

    if _period_reversed(invoice.billing_period):
        report.add("BR-29", "Invoicing period end date is before the start date")
    if _period_empty(invoice.billing_period):
        report.add("BR-CO-19", "Invoicing period has neither start nor end date")

    for ac in invoice.allowance_charges:
        _check_document_allowance_charge(ac, report)

    for tax in invoice.trade_taxes:
        if not tax.category:
            report.add("BR-47", "VAT breakdown has no category code")
        basis = expected_basis(invoice, tax.category, tax.rate)
        if tax.basis_amount != basis:
            report.add("BR-45", f"VAT breakdown {tax.category} {tax.rate}%: taxable amount {tax.basis_amount} does not equal {basis}")
        if tax.tax_point_date is not None and tax.due_date_type_code:
            report.add("BR-CO-3", "Value added tax point date and its code are mutually exclusive")

    for pm in invoice.payment_means:
        if pm.type_code == 0:
            report.add("BR-49", "Payment means type code must be set")
        if pm.type_code in CREDIT_TRANSFER_CODES and not pm.has_credit_transfer:
            report.add("BR-61", "Payment account identifier required for credit transfer payment types")
            report.add("BR-CO-27", "Payment account identifier (BT-84) must be provided as either IBAN or proprietary ID")

    for doc in invoice.supporting_documents:
        if not doc.id:
            report.add("BR-52", "Supporting document must have a reference")
    if invoice.tax_currency and invoice.tax_currency != invoice.currency and invoice.tax_total_accounting == 0:
        report.add("BR-53", "Tax total in accounting currency must be given when a VAT accounting currency is set")
    for ref in invoice.preceding_invoices:
        if not ref.id:
            report.add("BR-55", "Preceding invoice reference must contain the invoice number")
    ship_to = invoice.ship_to
    if ship_to is not None and ship_to.address is not None and not ship_to.address.country:
        report.add("BR-57", "Deliver to address must have a country code")
    if seller.electronic_address and not seller.electronic_address_scheme:
        report.add("BR-62", "Seller electronic address must have a scheme identifier")
    if buyer.electronic_address and not buyer.electronic_address_scheme:
        report.add("BR-63", "Buyer electronic address must have a scheme identifier")

    for party, label in ((seller, "Seller VAT identifier (BT-31)"), (buyer, "Buyer VAT identifier (BT-48)"), (rep, "Seller tax representative VAT identifier (BT-63)")):
        if party is not None and party.vat_id and not has_country_prefix(party.vat_id):
            report.add("BR-CO-9", f"{label} must start with an ISO 3166-1 alpha-2 country code (got {party.vat_id})")

    if invoice.due_payable > 0:
        if not any(t.due_date is not None or t.description for t in invoice.payment_terms):
            report.add("BR-CO-25", "If amount due for payment is positive, either payment due date or payment terms must be present")
    if not (seller.ids or seller.global_ids or seller.legal_id or seller.vat_id):
        report.add("BR-CO-26", "At least one seller identifier must be present: seller ID (BT-29), legal registration (BT-30) or VAT ID (BT-31)")

    _check_split_payment(invoice, report)


def _check_line(line: InvoiceLine, report: ReportBuilder) -> None:
    ref = line.line_id or "?"
    if not line.line_id:
        report.add("BR-21", "Line has no line ID")
    if line.quantity == 0:
        report.add("BR-22", f"Line {ref} has no billed quantity")
    if not line.unit:
        report.add("BR-23", f"Line {ref} billed quantity has no unit")
    if line.total == 0:
        report.add("BR-24", f"Line {ref} net amount is missing")
    if not line.name:
        report.add("BR-25", f"Line {ref} item name is missing")
    if line.net_price is None:
        report.add("BR-26", f"Line {ref} item net price is missing")
    elif line.net_price < 0:
        report.add("BR-27", f"Line {ref} net price must not be negative")
    if line.gross_price is not None and line.gross_price < 0:
        report.add("BR-28", f"Line {ref} gross price must not be negative")
    if _period_reversed(line.period):
        report.add("BR-30", f"Line {ref} period end date is before the start date")
    if _period_empty(line.period):
        report.add("BR-CO-20", f"Line {ref} period has neither start nor end date")
    if not line.tax_category:
        report.add("BR-CO-4", f"Invoice line {ref} is missing its VAT category code")

    for ac in line.allowance_charges:
        if ac.charge:
            if ac.amount == 0:
                report.add("BR-43", f"Line {ref} charge amount is zero")
            if not ac.reason and not ac.reason_code:
                report.add("BR-44", f"Line {ref} charge must have a reason")
        else:
            if ac.amount == 0:
                report.add("BR-41", f"Line {ref} allowance amount is zero")
            if not ac.reason and not ac.reason_code:
                report.add("BR-42", f"Line {ref} allowance must have a reason")
        _check_reason_pairing("BR-CO-8" if ac.charge else "BR-CO-7", f"Line {ref} {ac.kind}", ac, report)

    for c in line.characteristics:
        if not c.name or not c.value:
            report.add("BR-54", f"Line {ref}: item attribute must have both name and value")
    if line.global_id and not line.global_id_scheme:
        report.add("BR-64", f"Line {ref}: item standard identifier must have a scheme identifier")
    for c in line.classifications:
        if c.code and not c.list_id:
            report.add("BR-65", f"Line {ref}: item classification identifier must have a scheme identifier")

    expected = line_net_amount(line)
    if line.net_price is not None and line.total != expected:
        report.add("Check", f"Line {ref}: net amount {line.total} does not match calculated {expected}")


def _check_document_allowance_charge(ac: AllowanceCharge, report: ReportBuilder) -> None:
    if ac.charge:
        codes = ("BR-36", "BR-37", "BR-38", "BR-39", "BR-40", "BR-CO-6")
    else:
        codes = ("BR-31", "BR-32", "BR-33", "BR-34", "BR-35", "BR-CO-5")
    label = f"Document level {ac.kind}"
    if ac.amount == 0:
        report.add(codes[0], f"{label} amount must not be zero")
    if not ac.tax_category:
        report.add(codes[1], f"{label} VAT category code is not set")
    if not ac.reason and not ac.reason_code:
        report.add(codes[2], f"{label} reason and reason code are both empty")
    if ac.amount < 0:
        report.add(codes[3], f"{label} amount must not be negative")
    if ac.basis_amount is not None and ac.basis_amount < 0:
        report.add(codes[4], f"{label} base amount must not be negative")
    _check_reason_pairing(codes[5], label, ac, report)


def _check_reason_pairing(code: str, label: str, ac: AllowanceCharge, report: ReportBuilder) -> None:
    if ac.reason_code and not ac.reason:
        report.add(code, f"{label} reason code is provided but the reason text is missing")
    elif ac.reason and not ac.reason_code:
        report.add(code, f"{label} reason text is provided but the reason code is missing")


def _check_split_payment(invoice: Invoice, report: ReportBuilder) -> None:
    categories = {line.tax_category for line in invoice.lines}
    categories |= {ac.tax_category for ac in invoice.allowance_charges}
    if "B" not in categories:
        return
    if invoice.seller.country != "IT" or invoice.buyer.country != "IT":
        report.add("BR-B-1", "Split payment VAT category (B) requires both seller and buyer to be in Italy (IT)")
    if "S" in categories:
        report.add("BR-B-2", "Invoice with split payment VAT category (B) must not contain standard rated (S) category")


def check_calculations(invoice: Invoice, report: ReportBuilder) -> None:
    """BR-CO-10 to BR-CO-18: document totals against lines, allowances/charges and the VAT breakdown."""
    line_sum = sum((line.total for line in invoice.lines), ZERO)
    if invoice.line_total != line_sum:
        report.add("BR-CO-10", f"Line total {invoice.line_total} does not match sum of invoice lines {line_sum}")
    allowances = sum((ac.amount for ac in invoice.allowances), ZERO)
    if invoice.allowance_total != allowances:
        report.add("BR-CO-11", f"Allowance total {invoice.allowance_total} does not match sum of document level allowances {allowances}")
    charges = sum((ac.amount for ac in invoice.charges), ZERO)
    if invoice.charge_total != charges:
        report.add("BR-CO-12", f"Charge total {invoice.charge_total} does not match sum of document level charges {charges}")
    basis = invoice.line_total - invoice.allowance_total + invoice.charge_total
    if invoice.tax_basis_total != basis:
        report.add("BR-CO-13", f"Tax basis total {invoice.tax_basis_total} does not match line total - allowance total + charge total = {basis}")
    tax = sum((t.calculated_amount for t in invoice.trade_taxes), ZERO)
    if invoice.tax_total != tax:
        report.add("BR-CO-14", f"Invoice total VAT amount {invoice.tax_total} does not match sum of VAT category amounts {tax}")
    grand = invoice.tax_basis_total + invoice.tax_total
    if invoice.grand_total != grand:
        report.add("BR-CO-15", f"Grand total {invoice.grand_total} does not match tax basis total + tax total = {grand}")
    due = invoice.grand_total - invoice.prepaid + invoice.rounding
    if invoice.due_payable != due:
        report.add("BR-CO-16", f"Due payable amount {invoice.due_payable} does not match grand total - prepaid + rounding = {due}")
    for t in invoice.trade_taxes:
        expected = round_amount(t.basis_amount * t.rate / 100)
        if t.calculated_amount != expected:
            report.add("BR-CO-17", f"VAT category tax amount {t.calculated_amount} does not match expected {expected} (basis {t.basis_amount} x rate {t.rate} / 100)")
    if not invoice.trade_taxes:
        report.add("BR-CO-18", "Invoice should contain at least one VAT breakdown")


def check_decimals(invoice: Invoice, report: ReportBuilder) -> None:
    """BR-DEC-*: monetary amounts carry at most 2 decimals; BR-USER-06: rates at most 4."""

    def amount(value: Decimal | None, code: str, label: str) -> None:
        if value is not None and value != 0 and not has_max_decimals(value, 2):
            report.add(code, f"{label} {value} has more than 2 decimal places")

    def rate(value: Decimal, label: str) -> None:
        if value != 0 and not has_max_decimals(value, 4):
            report.add("BR-USER-06", f"{label} {value} has more than 4 decimal places")

    for ac in invoice.allowance_charges:
        if ac.charge:
            amount(ac.amount, "BR-DEC-05", "Document level charge amount")
            amount(ac.basis_amount, "BR-DEC-06", "Document level charge base amount")
        else:
            amount(ac.amount, "BR-DEC-01", "Document level allowance amount")
            amount(ac.basis_amount, "BR-DEC-02", "Document level allowance base amount")
        rate(ac.tax_rate, f"Document level {ac.kind} VAT rate")
    amount(invoice.line_total, "BR-DEC-09", "Sum of invoice line net amount")
    amount(invoice.allowance_total, "BR-DEC-10", "Sum of allowances on document level")
    amount(invoice.charge_total, "BR-DEC-11", "Sum of charges on document level")
    amount(invoice.tax_basis_total, "BR-DEC-12", "Invoice total amount without VAT")
    amount(invoice.tax_total, "BR-DEC-13", "Invoice total VAT amount")
    amount(invoice.grand_total, "BR-DEC-14", "Invoice total amount with VAT")
    amount(invoice.tax_total_accounting, "BR-DEC-15", "Invoice total VAT amount in accounting currency")
    amount(invoice.prepaid, "BR-DEC-16", "Paid amount")
    amount(invoice.rounding, "BR-DEC-17", "Rounding amount")
    amount(invoice.due_payable, "BR-DEC-18", "Amount due for payment")
    for t in invoice.trade_taxes:
        amount(t.basis_amount, "BR-DEC-19", "VAT category taxable amount")
        amount(t.calculated_amount, "BR-DEC-20", "VAT category tax amount")
        rate(t.rate, f"VAT category rate for {t.category}")
    for line in invoice.lines:
        prefix = f"Line {line.line_id}: "
        amount(line.total, "BR-DEC-23", prefix + "Invoice line net amount")
        for ac in line.allowance_charges:
            if ac.charge:
                amount(ac.amount, "BR-DEC-27", prefix + "Invoice line charge amount")
                amount(ac.basis_amount, "BR-DEC-28", prefix + "Invoice line charge base amount")
            else:
                amount(ac.amount, "BR-DEC-24", prefix + "Invoice line allowance amount")
                amount(ac.basis_amount, "BR-DEC-25", prefix + "Invoice line allowance base amount")
        rate(line.tax_rate, prefix + "Invoiced item VAT rate")
