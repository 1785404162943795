from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import BinaryIO

from lxml import etree

from einvoice.config import CII_NSMAP, NS_QDT, NS_RAM, NS_RSM, NS_UDT
from einvoice.models.common import AllowanceCharge, Period
from einvoice.models.invoice import SCHEMA_CII, SCHEMA_UBL, Invoice, TradeTax
from einvoice.models.line import InvoiceLine
from einvoice.models.party import Party
from einvoice.services.exceptions import InvoiceIOError, WriteError
from einvoice.services.profile import LEVEL_BASIC, LEVEL_BASICWL, LEVEL_EN16931, LEVEL_EXTENDED, LEVEL_UNKNOWN
from einvoice.services.ubl_builder import build_ubl
from einvoice.services.xml_encoder import encode_attachment, serialize
from einvoice.utils.formatters import format_amount, format_date_102, format_percent, format_quantity

logger = logging.getLogger(__name__)

RSM = f"{{{NS_RSM}}}"
RAM = f"{{{NS_RAM}}}"
UDT = f"{{{NS_UDT}}}"
QDT = f"{{{NS_QDT}}}"


def _sub(parent: etree._Element, tag: str, text: str | None = None) -> etree._Element:
    el = etree.SubElement(parent, tag)
    if text is not None:
        el.text = text
    return el


def _opt(parent: etree._Element, tag: str, text: str) -> etree._Element | None:
    """Add *tag* only when *text* is non-empty."""
    if not text:
        return None
    return _sub(parent, tag, text)


def _date(parent: etree._Element, tag: str, value: date | None, ns: str = UDT) -> None:
    if value is None:
        return
    wrapper = _sub(parent, tag)
    _sub(wrapper, ns + "DateTimeString", format_date_102(value)).set("format", "102")


def _amount(parent: etree._Element, tag: str, value: Decimal) -> etree._Element:
    return _sub(parent, tag, format_amount(value))


def build_cii(invoice: Invoice) -> etree._Element:
    """Build the rsm:CrossIndustryInvoice tree for *invoice*.

    The profile level decides which optional parts are written. An
    unknown profile is written in full. Empty elements are never emitted
    apart from the schema-mandatory header delivery group.
    """
    if invoice.schema_type != SCHEMA_CII:
        raise WriteError(f"Cannot write schema type {invoice.schema_type!r}")
    if not invoice.specification_id:
        raise WriteError("Specification identifier (BT-24) is required to write an invoice")
    level = invoice.profile.level
    if level == LEVEL_UNKNOWN:
        level = LEVEL_EXTENDED

    root = etree.Element(RSM + "CrossIndustryInvoice", nsmap=CII_NSMAP)

    ctx = _sub(root, RSM + "ExchangedDocumentContext")
    if invoice.business_process:
        _sub(_sub(ctx, RAM + "BusinessProcessSpecifiedDocumentContextParameter"), RAM + "ID", invoice.business_process)
    _sub(_sub(ctx, RAM + "GuidelineSpecifiedDocumentContextParameter"), RAM + "ID", invoice.specification_id.strip())

    doc = _sub(root, RSM + "ExchangedDocument")
    _opt(doc, RAM + "ID", invoice.number)
    if invoice.type_code:
        _sub(doc, RAM + "TypeCode", str(invoice.type_code))
    _date(doc, RAM + "IssueDateTime", invoice.issue_date)
    if level >= LEVEL_BASICWL:
        for note in invoice.notes:
            if not note.text:
                continue
            el = _sub(doc, RAM + "IncludedNote")
            _sub(el, RAM + "Content", note.text)
            _opt(el, RAM + "SubjectCode", note.subject_code)
    if len(doc) == 0:
        root.remove(doc)

    tx = _sub(root, RSM + "SupplyChainTradeTransaction")
    if level >= LEVEL_BASIC:
        for line in invoice.lines:
            _build_line(tx, line, level)
    _build_agreement(tx, invoice, level)
    _build_delivery(tx, invoice, level)
    _build_settlement(tx, invoice, level)
    return root


def _build_party(parent: etree._Element, tag: str, party: Party, level: int, with_address: bool = True) -> None:
    el = _sub(parent, tag)
    for pid in party.ids:
        _opt(el, RAM + "ID", pid)
    for gid in party.global_ids:
        if not gid.id:
            continue
        g = _sub(el, RAM + "GlobalID", gid.id)
        if gid.scheme:
            g.set("schemeID", gid.scheme)
    _opt(el, RAM + "Name", party.name)
    legal = party.legal_organization
    if legal is not None and (legal.id or legal.trading_name):
        org = _sub(el, RAM + "SpecifiedLegalOrganization")
        if legal.id:
            lid = _sub(org, RAM + "ID", legal.id)
            if legal.scheme:
                lid.set("schemeID", legal.scheme)
        if level >= LEVEL_EN16931:
            _opt(org, RAM + "TradingBusinessName", legal.trading_name)
        if len(org) == 0:
            el.remove(org)
    if level >= LEVEL_EN16931:
        for contact in party.contacts:
            if not (contact.name or contact.department or contact.phone or contact.email):
                continue
            c = _sub(el, RAM + "DefinedTradeContact")
            _opt(c, RAM + "PersonName", contact.name)
            _opt(c, RAM + "DepartmentName", contact.department)
            if contact.phone:
                _sub(_sub(c, RAM + "TelephoneUniversalCommunication"), RAM + "CompleteNumber", contact.phone)
            if contact.email:
                _sub(_sub(c, RAM + "EmailURIUniversalCommunication"), RAM + "URIID", contact.email)
    addr = party.address
    if with_address and addr is not None:
        a = _sub(el, RAM + "PostalTradeAddress")
        _opt(a, RAM + "PostcodeCode", addr.postcode)
        _opt(a, RAM + "LineOne", addr.line1)
        _opt(a, RAM + "LineTwo", addr.line2)
        _opt(a, RAM + "LineThree", addr.line3)
        _opt(a, RAM + "CityName", addr.city)
        _opt(a, RAM + "CountryID", addr.country)
        _opt(a, RAM + "CountrySubDivisionName", addr.subdivision)
        if len(a) == 0:
            el.remove(a)
    if party.electronic_address and level >= LEVEL_BASICWL:
        uri = _sub(_sub(el, RAM + "URIUniversalCommunication"), RAM + "URIID", party.electronic_address)
        if party.electronic_address_scheme:
            uri.set("schemeID", party.electronic_address_scheme)
    if party.tax_id:
        _sub(_sub(el, RAM + "SpecifiedTaxRegistration"), RAM + "ID", party.tax_id).set("schemeID", "FC")
    if party.vat_id:
        _sub(_sub(el, RAM + "SpecifiedTaxRegistration"), RAM + "ID", party.vat_id).set("schemeID", "VA")
    if len(el) == 0:
        parent.remove(el)


def _build_agreement(tx: etree._Element, invoice: Invoice, level: int) -> None:
    agreement = _sub(tx, RAM + "ApplicableHeaderTradeAgreement")
    _opt(agreement, RAM + "BuyerReference", invoice.buyer_reference)
    _build_party(agreement, RAM + "SellerTradeParty", invoice.seller, level)
    _build_party(agreement, RAM + "BuyerTradeParty", invoice.buyer, level, with_address=level >= LEVEL_BASICWL)
    if invoice.tax_representative is not None and level >= LEVEL_BASICWL:
        _build_party(agreement, RAM + "SellerTaxRepresentativeTradeParty", invoice.tax_representative, level)
    if invoice.buyer_order_ref:
        _sub(_sub(agreement, RAM + "BuyerOrderReferencedDocument"), RAM + "IssuerAssignedID", invoice.buyer_order_ref)
    if invoice.contract_ref and level >= LEVEL_BASICWL:
        _sub(_sub(agreement, RAM + "ContractReferencedDocument"), RAM + "IssuerAssignedID", invoice.contract_ref)
    if level >= LEVEL_EN16931:
        for doc in invoice.supporting_documents:
            ref = _sub(agreement, RAM + "AdditionalReferencedDocument")
            _opt(ref, RAM + "IssuerAssignedID", doc.id)
            _opt(ref, RAM + "TypeCode", doc.type_code)
            _opt(ref, RAM + "Name", doc.name)
            if doc.attachment:
                obj = _sub(ref, RAM + "AttachmentBinaryObject", encode_attachment(doc.attachment))
                if doc.mime_code:
                    obj.set("mimeCode", doc.mime_code)
                if doc.filename:
                    obj.set("filename", doc.filename)
            _opt(ref, RAM + "ReferenceTypeCode", doc.reference_type_code)
            if len(ref) == 0:
                agreement.remove(ref)
    if len(agreement) == 0:
        tx.remove(agreement)


def _build_delivery(tx: etree._Element, invoice: Invoice, level: int) -> None:
    delivery = _sub(tx, RAM + "ApplicableHeaderTradeDelivery")
    if level < LEVEL_BASICWL:
        return
    if invoice.ship_to is not None:
        _build_party(delivery, RAM + "ShipToTradeParty", invoice.ship_to, level)
    if invoice.delivery_date is not None:
        _date(_sub(delivery, RAM + "ActualDeliverySupplyChainEvent"), RAM + "OccurrenceDateTime", invoice.delivery_date)


def _build_period(parent: etree._Element, period: Period | None) -> None:
    if period is None or (period.start is None and period.end is None):
        return
    el = _sub(parent, RAM + "BillingSpecifiedPeriod")
    _date(el, RAM + "StartDateTime", period.start)
    _date(el, RAM + "EndDateTime", period.end)


def _build_allowance_charge(parent: etree._Element, ac: AllowanceCharge, with_tax: bool) -> None:
    el = _sub(parent, RAM + "SpecifiedTradeAllowanceCharge")
    _sub(_sub(el, RAM + "ChargeIndicator"), UDT + "Indicator", "true" if ac.charge else "false")
    if ac.percent is not None:
        _sub(el, RAM + "CalculationPercent", format_percent(ac.percent))
    if ac.basis_amount is not None:
        _amount(el, RAM + "BasisAmount", ac.basis_amount)
    _amount(el, RAM + "ActualAmount", ac.amount)
    _opt(el, RAM + "ReasonCode", ac.reason_code)
    _opt(el, RAM + "Reason", ac.reason)
    if with_tax:
        tax = _sub(el, RAM + "CategoryTradeTax")
        _sub(tax, RAM + "TypeCode", ac.tax_type or "VAT")
        _opt(tax, RAM + "CategoryCode", ac.tax_category)
        if not (ac.tax_category == "O" and ac.tax_rate == 0):
            _sub(tax, RAM + "RateApplicablePercent", format_percent(ac.tax_rate))


def _build_trade_tax(parent: etree._Element, tax: TradeTax) -> None:
    el = _sub(parent, RAM + "ApplicableTradeTax")
    _amount(el, RAM + "CalculatedAmount", tax.calculated_amount)
    _sub(el, RAM + "TypeCode", tax.type_code or "VAT")
    _opt(el, RAM + "ExemptionReason", tax.exemption_reason)
    _amount(el, RAM + "BasisAmount", tax.basis_amount)
    _opt(el, RAM + "CategoryCode", tax.category)
    _opt(el, RAM + "ExemptionReasonCode", tax.exemption_reason_code)
    if tax.tax_point_date is not None:
        point = _sub(el, RAM + "TaxPointDate")
        _sub(point, UDT + "DateString", format_date_102(tax.tax_point_date)).set("format", "102")
    _opt(el, RAM + "DueDateTypeCode", tax.due_date_type_code)
    if not (tax.category == "O" and tax.rate == 0):
        _sub(el, RAM + "RateApplicablePercent", format_percent(tax.rate))


def _build_settlement(tx: etree._Element, invoice: Invoice, level: int) -> None:
    settlement = _sub(tx, RAM + "ApplicableHeaderTradeSettlement")
    if level >= LEVEL_BASICWL:
        _opt(settlement, RAM + "CreditorReferenceID", invoice.creditor_reference)
        _opt(settlement, RAM + "PaymentReference", invoice.payment_reference)
        _opt(settlement, RAM + "TaxCurrencyCode", invoice.tax_currency)
    _opt(settlement, RAM + "InvoiceCurrencyCode", invoice.currency)
    if invoice.payee is not None and level >= LEVEL_BASICWL:
        _build_party(settlement, RAM + "PayeeTradeParty", invoice.payee, level, with_address=False)

    if level >= LEVEL_BASICWL:
        for pm in invoice.payment_means:
            el = _sub(settlement, RAM + "SpecifiedTradeSettlementPaymentMeans")
            _sub(el, RAM + "TypeCode", str(pm.type_code))
            if level >= LEVEL_EN16931:
                _opt(el, RAM + "Information", pm.information)
            if pm.card_id:
                card = _sub(el, RAM + "ApplicableTradeSettlementFinancialCard")
                _sub(card, RAM + "ID", pm.card_id)
                _opt(card, RAM + "CardholderName", pm.cardholder)
            if pm.payer_iban:
                _sub(_sub(el, RAM + "PayerPartyDebtorFinancialAccount"), RAM + "IBANID", pm.payer_iban)
            if pm.payee_iban or pm.payee_proprietary_id:
                account = _sub(el, RAM + "PayeePartyCreditorFinancialAccount")
                _opt(account, RAM + "IBANID", pm.payee_iban)
                _opt(account, RAM + "AccountName", pm.payee_account_name)
                _opt(account, RAM + "ProprietaryID", pm.payee_proprietary_id)
            if pm.payee_bic:
                _sub(_sub(el, RAM + "PayeeSpecifiedCreditorFinancialInstitution"), RAM + "BICID", pm.payee_bic)

        for tax in invoice.trade_taxes:
            _build_trade_tax(settlement, tax)
        _build_period(settlement, invoice.billing_period)
        for ac in invoice.allowance_charges:
            _build_allowance_charge(settlement, ac, with_tax=True)

        terms = list(invoice.payment_terms)
        for i, t in enumerate(terms):
            mandate = invoice.mandate_id if i == 0 else ""
            if not (t.description or t.due_date or mandate):
                continue
            el = _sub(settlement, RAM + "SpecifiedTradePaymentTerms")
            _opt(el, RAM + "Description", t.description)
            _date(el, RAM + "DueDateDateTime", t.due_date)
            _opt(el, RAM + "DirectDebitMandateID", mandate)
        if not terms and invoice.mandate_id:
            _sub(_sub(settlement, RAM + "SpecifiedTradePaymentTerms"), RAM + "DirectDebitMandateID", invoice.mandate_id)

    totals = _sub(settlement, RAM + "SpecifiedTradeSettlementHeaderMonetarySummation")
    if level >= LEVEL_BASICWL:
        _amount(totals, RAM + "LineTotalAmount", invoice.line_total)
        _amount(totals, RAM + "ChargeTotalAmount", invoice.charge_total)
        _amount(totals, RAM + "AllowanceTotalAmount", invoice.allowance_total)
    _amount(totals, RAM + "TaxBasisTotalAmount", invoice.tax_basis_total)
    tax_total = _amount(totals, RAM + "TaxTotalAmount", invoice.tax_total)
    if invoice.currency:
        tax_total.set("currencyID", invoice.currency)
    if invoice.tax_currency and invoice.tax_currency != invoice.currency:
        _amount(totals, RAM + "TaxTotalAmount", invoice.tax_total_accounting).set("currencyID", invoice.tax_currency)
    if level >= LEVEL_EN16931 and invoice.rounding:
        _amount(totals, RAM + "RoundingAmount", invoice.rounding)
    _amount(totals, RAM + "GrandTotalAmount", invoice.grand_total)
    if level >= LEVEL_BASICWL and invoice.prepaid:
        _amount(totals, RAM + "TotalPrepaidAmount", invoice.prepaid)
    _amount(totals, RAM + "DuePayableAmount", invoice.due_payable)

    if level >= LEVEL_BASICWL:
        for ref in invoice.preceding_invoices:
            el = _sub(settlement, RAM + "InvoiceReferencedDocument")
            _opt(el, RAM + "IssuerAssignedID", ref.id)
            _date(el, RAM + "FormattedIssueDateTime", ref.issue_date, ns=QDT)
            if len(el) == 0:
                settlement.remove(el)


def _build_line(tx: etree._Element, line: InvoiceLine, level: int) -> None:
    item = _sub(tx, RAM + "IncludedSupplyChainTradeLineItem")
    doc = _sub(item, RAM + "AssociatedDocumentLineDocument")
    _opt(doc, RAM + "LineID", line.line_id)
    if line.note and level >= LEVEL_EN16931:
        _sub(_sub(doc, RAM + "IncludedNote"), RAM + "Content", line.note)
    if len(doc) == 0:
        item.remove(doc)

    product = _sub(item, RAM + "SpecifiedTradeProduct")
    if line.global_id:
        gid = _sub(product, RAM + "GlobalID", line.global_id)
        if line.global_id_scheme:
            gid.set("schemeID", line.global_id_scheme)
    if level >= LEVEL_EN16931:
        _opt(product, RAM + "SellerAssignedID", line.seller_assigned_id)
        _opt(product, RAM + "BuyerAssignedID", line.buyer_assigned_id)
    _opt(product, RAM + "Name", line.name)
    if level >= LEVEL_EN16931:
        _opt(product, RAM + "Description", line.description)
        for c in line.characteristics:
            ch = _sub(product, RAM + "ApplicableProductCharacteristic")
            _opt(ch, RAM + "Description", c.name)
            _opt(ch, RAM + "Value", c.value)
            if len(ch) == 0:
                product.remove(ch)
        for c in line.classifications:
            if not c.code:
                continue
            code = _sub(_sub(product, RAM + "DesignatedProductClassification"), RAM + "ClassCode", c.code)
            if c.list_id:
                code.set("listID", c.list_id)
            if c.list_version:
                code.set("listVersionID", c.list_version)
        if line.origin_country:
            _sub(_sub(product, RAM + "OriginTradeCountry"), RAM + "ID", line.origin_country)
    if len(product) == 0:
        item.remove(product)

    agreement = _sub(item, RAM + "SpecifiedLineTradeAgreement")
    if line.order_line_ref and level >= LEVEL_EN16931:
        _sub(_sub(agreement, RAM + "BuyerOrderReferencedDocument"), RAM + "LineID", line.order_line_ref)
    if line.gross_price is not None:
        gross = _sub(agreement, RAM + "GrossPriceProductTradePrice")
        _amount(gross, RAM + "ChargeAmount", line.gross_price)
        for ac in line.gross_price_allowances:
            applied = _sub(gross, RAM + "AppliedTradeAllowanceCharge")
            _sub(_sub(applied, RAM + "ChargeIndicator"), UDT + "Indicator", "true" if ac.charge else "false")
            _amount(applied, RAM + "ActualAmount", ac.amount)
            _opt(applied, RAM + "Reason", ac.reason)
    if line.net_price is not None:
        net = _sub(agreement, RAM + "NetPriceProductTradePrice")
        _amount(net, RAM + "ChargeAmount", line.net_price)
        if line.base_quantity is not None:
            bq = _sub(net, RAM + "BasisQuantity", format_quantity(line.base_quantity))
            if line.base_quantity_unit:
                bq.set("unitCode", line.base_quantity_unit)
    if len(agreement) == 0:
        item.remove(agreement)

    delivery = _sub(item, RAM + "SpecifiedLineTradeDelivery")
    qty = _sub(delivery, RAM + "BilledQuantity", format_quantity(line.quantity))
    if line.unit:
        qty.set("unitCode", line.unit)

    settlement = _sub(item, RAM + "SpecifiedLineTradeSettlement")
    tax = _sub(settlement, RAM + "ApplicableTradeTax")
    _sub(tax, RAM + "TypeCode", "VAT")
    _opt(tax, RAM + "CategoryCode", line.tax_category)
    if not (line.tax_category == "O" and line.tax_rate == 0):
        _sub(tax, RAM + "RateApplicablePercent", format_percent(line.tax_rate))
    _build_period(settlement, line.period)
    for ac in line.allowance_charges:
        _build_allowance_charge(settlement, ac, with_tax=False)
    _amount(_sub(settlement, RAM + "SpecifiedTradeSettlementLineMonetarySummation"), RAM + "LineTotalAmount", line.total)
    if line.accounting_ref and level >= LEVEL_EN16931:
        _sub(_sub(settlement, RAM + "ReceivableSpecifiedTradeAccountingAccount"), RAM + "ID", line.accounting_ref)


def to_bytes(invoice: Invoice) -> bytes:
    """Serialise *invoice* as XML (UTF-8, pretty-printed) in its schema type, CII or UBL."""
    root = build_ubl(invoice) if invoice.schema_type == SCHEMA_UBL else build_cii(invoice)
    data = serialize(root)
    logger.debug("Wrote invoice %r: %d lines, %d bytes", invoice.number, len(invoice.lines), len(data))
    return data


def write(invoice: Invoice, fp: BinaryIO) -> None:
    data = to_bytes(invoice)
    try:
        fp.write(data)
    except OSError as e:
        raise InvoiceIOError(f"Cannot write invoice: {e}") from e


def write_file(invoice: Invoice, path: Path | str) -> None:
    data = to_bytes(invoice)
    try:
        Path(path).write_bytes(data)
    except OSError as e:
        raise InvoiceIOError(f"Cannot write {path}: {e}") from e
