from __future__ import annotations

import logging

from einvoice.models.invoice import Invoice
from einvoice.services.report import ReportBuilder
from einvoice.utils.validators import count_digits, has_country_prefix, is_valid_email, is_valid_iban, is_valid_skonto

logger = logging.getLogger(__name__)

XRECHNUNG_TYPE_CODES = frozenset({326, 380, 384, 389, 381, 875, 876, 877})
TAXED_CATEGORIES = frozenset({"S", "Z", "E", "AE", "K", "G", "L", "M"})

CREDIT_TRANSFER_CODES = frozenset({30, 58})
CARD_CODES = frozenset({48, 54, 55})
DIRECT_DEBIT_CODES = frozenset({59})


def check_xrechnung(invoice: Invoice, report: ReportBuilder) -> None:
    """German CIUS rules (BR-DE-*), run for XRechnung-tagged invoices."""
    seller = invoice.seller
    if not invoice.payment_means:
        report.add("BR-DE-1", "An invoice must contain information on PAYMENT INSTRUCTIONS (BG-16)")

    if not seller.contacts:
        report.add("BR-DE-2", "The element group SELLER CONTACT (BG-6) must be transmitted")
    address = seller.address
    if address is None or not address.city:
        report.add("BR-DE-3", "The element 'Seller city' (BT-37) must be transmitted")
    if address is None or not address.postcode:
        report.add("BR-DE-4", "The element 'Seller post code' (BT-38) must be transmitted")
    if seller.contacts:
        contact = seller.contacts[0]
        if not contact.name and not contact.department:
            report.add("BR-DE-5", "The element 'Seller contact point' (BT-41) must be transmitted")
        if not contact.phone:
            report.add("BR-DE-6", "The element 'Seller contact telephone number' (BT-42) must be transmitted")
        elif count_digits(contact.phone) < 3:
            report.warn("BR-DE-27", "Seller contact telephone number (BT-42) should contain at least three digits")
        if not contact.email:
            report.add("BR-DE-7", "The element 'Seller contact email address' (BT-43) must be transmitted")
        elif not is_valid_email(contact.email):
            report.warn("BR-DE-28", f"Seller contact email address (BT-43) has an invalid format: {contact.email}")

    buyer_address = invoice.buyer.address
    if buyer_address is None or not buyer_address.city:
        report.add("BR-DE-8", "The element 'Buyer city' (BT-52) must be transmitted")
    if buyer_address is None or not buyer_address.postcode:
        report.add("BR-DE-9", "The element 'Buyer post code' (BT-53) must be transmitted")
    if invoice.ship_to is not None and invoice.ship_to.address is not None:
        if not invoice.ship_to.address.city:
            report.add("BR-DE-10", "The element 'Deliver to city' (BT-77) must be transmitted if delivery address is provided")
        if not invoice.ship_to.address.postcode:
            report.add("BR-DE-11", "The element 'Deliver to post code' (BT-78) must be transmitted if delivery address is provided")

    if not invoice.buyer_reference:
        report.add("BR-DE-15", "The element 'Buyer reference' (BT-10) must be transmitted")

    _check_tax_ids(invoice, report)

    if invoice.type_code not in XRECHNUNG_TYPE_CODES:
        report.add("BR-DE-17", f"Invoice type code (BT-3) {invoice.type_code} is not permitted")
    for terms in invoice.payment_terms:
        if not is_valid_skonto(terms.description):
            report.add("BR-DE-18", "Cash discount in payment terms (BT-20) must use the format #SKONTO#TAGE=n#PROZENT=n.nn#")

    _check_payment_means(invoice, report)

    if invoice.type_code == 384 and not invoice.preceding_invoices:
        report.warn("BR-DE-26", "If invoice type code (BT-3) is 384 (Corrected invoice), PRECEDING INVOICE REFERENCE (BG-3) should be provided")


def _check_tax_ids(invoice: Invoice, report: ReportBuilder) -> None:
    seller = invoice.seller
    rep_vat = invoice.tax_representative.vat_id if invoice.tax_representative else ""
    categories = {line.tax_category for line in invoice.lines}
    categories |= {ac.tax_category for ac in invoice.allowance_charges}
    if categories & TAXED_CATEGORIES and not (seller.vat_id or seller.tax_id or rep_vat):
        report.add("BR-DE-16", "Seller VAT identifier (BT-31), tax registration (BT-32) or tax representative VAT identifier (BT-63) must be transmitted")
    checks = (
        (seller.vat_id, "Seller VAT identifier (BT-31)"),
        (invoice.buyer.vat_id, "Buyer VAT identifier (BT-48)"),
        (rep_vat, "Tax representative VAT identifier (BT-63)"),
    )
    for vat_id, label in checks:
        if vat_id and not has_country_prefix(vat_id):
            report.add("BR-DE-16", f"{label} must have a prefix in accordance with ISO code list 3166-1 alpha-2")


def _check_payment_means(invoice: Invoice, report: ReportBuilder) -> None:
    for pm in invoice.payment_means:
        if pm.type_code in CREDIT_TRANSFER_CODES:
            if not pm.has_credit_transfer:
                report.add("BR-DE-23-a", "Payment means code 30 or 58 (credit transfer) requires BG-17 CREDIT TRANSFER information")
            if pm.has_card:
                report.add("BR-DE-23-b", "Payment means code 30 or 58 (credit transfer) must not contain BG-18 PAYMENT CARD INFORMATION")
            if pm.has_direct_debit:
                report.add("BR-DE-23-b", "Payment means code 30 or 58 (credit transfer) must not contain BG-19 DIRECT DEBIT")
        elif pm.type_code in CARD_CODES:
            if not pm.has_card:
                report.add("BR-DE-24-a", "Payment means code 48, 54, or 55 (payment card) requires BG-18 PAYMENT CARD INFORMATION")
            if pm.has_credit_transfer:
                report.add("BR-DE-24-b", "Payment means code 48, 54, or 55 (payment card) must not contain BG-17 CREDIT TRANSFER")
            if pm.has_direct_debit:
                report.add("BR-DE-24-b", "Payment means code 48, 54, or 55 (payment card) must not contain BG-19 DIRECT DEBIT")
        elif pm.type_code in DIRECT_DEBIT_CODES:
            if not pm.has_direct_debit:
                report.add("BR-DE-25-a", "Payment means code 59 (direct debit) requires BG-19 DIRECT DEBIT information")
            if pm.has_credit_transfer:
                report.add("BR-DE-25-b", "Payment means code 59 (direct debit) must not contain BG-17 CREDIT TRANSFER")
            if pm.has_card:
                report.add("BR-DE-25-b", "Payment means code 59 (direct debit) must not contain BG-18 PAYMENT CARD INFORMATION")

        if pm.type_code == 58 and pm.payee_iban and not is_valid_iban(pm.payee_iban):
            report.warn("BR-DE-19", f"Payment account identifier (BT-84) is not a valid IBAN: {pm.payee_iban}")
        if pm.type_code == 59:
            if pm.payer_iban and not is_valid_iban(pm.payer_iban):
                report.warn("BR-DE-20", f"Debited account identifier (BT-91) is not a valid IBAN: {pm.payer_iban}")
            if not invoice.creditor_reference:
                report.add("BR-DE-30", "Bank assigned creditor identifier (BT-90) must be provided for direct debit")
            if not pm.payer_iban:
                report.add("BR-DE-31", "Debited account identifier (BT-91) must be provided for direct debit")


def check_german_seller(invoice: Invoice, report: ReportBuilder) -> None:
    """BR-DE-21: a German seller should use the XRechnung specification identifier, whatever the profile."""
    if invoice.seller.country != "DE":
        return
    if not invoice.profile.is_xrechnung:
        report.warn("BR-DE-21", "The element 'Specification identifier' (BT-24) should syntactically correspond to the identifier of the XRechnung standard")
