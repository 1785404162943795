from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import BinaryIO

from lxml import etree

from einvoice.config import CII_NSMAP, NS_RSM, UBL_CREDIT_NOTE_NS, UBL_INVOICE_NS
from einvoice.models.common import ZERO, AllowanceCharge, Period
from einvoice.models.invoice import (
    Invoice,
    Note,
    PaymentMeans,
    PaymentTerms,
    ReferencedDocument,
    SupportingDocument,
    TradeTax,
)
from einvoice.models.line import Characteristic, Classification, InvoiceLine
from einvoice.models.party import Contact, GlobalID, LegalOrganization, Party, PostalAddress
from einvoice.services.exceptions import InvoiceIOError, ParseError, UnsupportedSchemaError
from einvoice.services.peppol import find_empty_elements
from einvoice.services.report import ReportBuilder
from einvoice.services.ubl_parser import read_ubl
from einvoice.services.xml_encoder import decode_attachment
from einvoice.utils.formatters import parse_date_102

logger = logging.getLogger(__name__)

NS = CII_NSMAP

# Required by the CII schema even when it carries nothing
_EMPTY_ALLOWED = frozenset({"ApplicableHeaderTradeDelivery"})


def _xml_parser() -> etree.XMLParser:
    return etree.XMLParser(resolve_entities=False, no_network=True, remove_blank_text=True)


def parse_bytes(data: bytes) -> Invoice:
    """Parse a CII or UBL document into an Invoice.

    Syntactic defects raise ParseError. Semantic gaps are left in the
    model for the validator; the parse-time structural findings are kept
    in ``invoice.parse_violations``.
    """
    try:
        root = etree.fromstring(data, parser=_xml_parser())
    except etree.XMLSyntaxError as e:
        raise ParseError(f"Ill-formed XML: {e.msg}", sourceline=e.lineno) from e

    qname = etree.QName(root)
    namespace = qname.namespace or ""
    if (namespace, qname.localname) in ((UBL_INVOICE_NS, "Invoice"), (UBL_CREDIT_NOTE_NS, "CreditNote")):
        invoice, unexpected = read_ubl(root)
    elif namespace == NS_RSM and qname.localname == "CrossIndustryInvoice":
        invoice = _read_invoice(root)
        unexpected = _read_tax_totals(root, invoice)
    else:
        raise UnsupportedSchemaError(f"Unrecognised document root {root.tag}", namespace)

    invoice.parse_violations = _structural_checks(root, invoice, unexpected)
    logger.debug(
        "Parsed invoice %r: profile=%s, %d lines, %d parse findings",
        invoice.number,
        invoice.profile.name,
        len(invoice.lines),
        len(invoice.parse_violations),
    )
    return invoice


def parse(fp: BinaryIO) -> Invoice:
    try:
        data = fp.read()
    except OSError as e:
        raise InvoiceIOError(f"Cannot read invoice: {e}") from e
    return parse_bytes(data)


def parse_file(path: Path | str) -> Invoice:
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        raise InvoiceIOError(f"Cannot read {path}: {e}") from e
    return parse_bytes(data)


# --- scalar readers ---


def _txt(el: etree._Element | None, path: str) -> str:
    if el is None:
        return ""
    return (el.findtext(path, default="", namespaces=NS) or "").strip()


def _decimal(el: etree._Element | None, path: str, line_id: str | None = None) -> Decimal | None:
    if el is None:
        return None
    node = el.find(path, namespaces=NS)
    if node is None:
        return None
    return _node_decimal(node, line_id)


def _node_decimal(node: etree._Element, line_id: str | None = None) -> Decimal | None:
    text = (node.text or "").strip()
    if not text:
        return None
    try:
        value = Decimal(text)
    except InvalidOperation:
        raise ParseError(f"Invalid decimal {text!r} in {etree.QName(node).localname}", line_id, node.sourceline) from None
    if not value.is_finite():
        raise ParseError(f"Invalid decimal {text!r} in {etree.QName(node).localname}", line_id, node.sourceline)
    return value


def _amount(el: etree._Element | None, path: str, line_id: str | None = None) -> Decimal:
    value = _decimal(el, path, line_id)
    return ZERO if value is None else value


def _int(el: etree._Element | None, path: str, line_id: str | None = None) -> int:
    text = _txt(el, path)
    if not text:
        return 0
    try:
        return int(text)
    except ValueError:
        node = el.find(path, namespaces=NS)
        raise ParseError(f"Invalid code {text!r} in {etree.QName(node).localname}", line_id, node.sourceline) from None


def _date(el: etree._Element | None, path: str, line_id: str | None = None) -> date | None:
    """Read a format-102 date from the first DateTimeString or DateString under *path*."""
    if el is None:
        return None
    wrapper = el.find(path, namespaces=NS)
    if wrapper is None:
        return None
    node = None
    for child in wrapper:
        if isinstance(child.tag, str) and etree.QName(child).localname in ("DateTimeString", "DateString"):
            node = child
            break
    if node is None:
        raise ParseError(f"Missing date string in {etree.QName(wrapper).localname}", line_id, wrapper.sourceline)
    fmt = node.get("format")
    if fmt != "102":
        raise ParseError(f"Unsupported date format {fmt!r} in {etree.QName(wrapper).localname}", line_id, node.sourceline)
    try:
        return parse_date_102((node.text or "").strip())
    except ValueError:
        raise ParseError(f"Invalid date {node.text!r} in {etree.QName(wrapper).localname}", line_id, node.sourceline) from None


def _period(el: etree._Element | None, line_id: str | None = None) -> Period | None:
    if el is None:
        return None
    return Period(start=_date(el, "ram:StartDateTime", line_id), end=_date(el, "ram:EndDateTime", line_id))


# --- aggregates ---


def _read_party(el: etree._Element | None) -> Party | None:
    if el is None:
        return None
    party = Party(name=_txt(el, "ram:Name"))
    party.ids = [(i.text or "").strip() for i in el.findall("ram:ID", NS)]
    party.global_ids = [GlobalID(id=(g.text or "").strip(), scheme=g.get("schemeID", "")) for g in el.findall("ram:GlobalID", NS)]

    legal = el.find("ram:SpecifiedLegalOrganization", NS)
    if legal is not None:
        lid = legal.find("ram:ID", NS)
        party.legal_organization = LegalOrganization(
            id=_txt(legal, "ram:ID"),
            scheme=lid.get("schemeID", "") if lid is not None else "",
            trading_name=_txt(legal, "ram:TradingBusinessName"),
        )

    for c in el.findall("ram:DefinedTradeContact", NS):
        party.contacts.append(
            Contact(
                name=_txt(c, "ram:PersonName"),
                department=_txt(c, "ram:DepartmentName"),
                phone=_txt(c, "ram:TelephoneUniversalCommunication/ram:CompleteNumber"),
                email=_txt(c, "ram:EmailURIUniversalCommunication/ram:URIID"),
            )
        )

    addr = el.find("ram:PostalTradeAddress", NS)
    if addr is not None:
        party.address = PostalAddress(
            line1=_txt(addr, "ram:LineOne"),
            line2=_txt(addr, "ram:LineTwo"),
            line3=_txt(addr, "ram:LineThree"),
            postcode=_txt(addr, "ram:PostcodeCode"),
            city=_txt(addr, "ram:CityName"),
            country=_txt(addr, "ram:CountryID"),
            subdivision=_txt(addr, "ram:CountrySubDivisionName"),
        )

    uri = el.find("ram:URIUniversalCommunication/ram:URIID", NS)
    if uri is not None:
        party.electronic_address = (uri.text or "").strip()
        party.electronic_address_scheme = uri.get("schemeID", "")

    for reg in el.findall("ram:SpecifiedTaxRegistration/ram:ID", NS):
        scheme = reg.get("schemeID", "")
        if scheme == "VA":
            party.vat_id = (reg.text or "").strip()
        elif scheme == "FC":
            party.tax_id = (reg.text or "").strip()
    return party


def _read_allowance_charge(el: etree._Element, line_id: str | None = None) -> AllowanceCharge:
    indicator = _txt(el, "ram:ChargeIndicator/udt:Indicator").lower()
    tax = el.find("ram:CategoryTradeTax", NS)
    return AllowanceCharge(
        charge=indicator == "true",
        amount=_amount(el, "ram:ActualAmount", line_id),
        basis_amount=_decimal(el, "ram:BasisAmount", line_id),
        percent=_decimal(el, "ram:CalculationPercent", line_id),
        reason=_txt(el, "ram:Reason"),
        reason_code=_txt(el, "ram:ReasonCode"),
        tax_type=_txt(tax, "ram:TypeCode") or "VAT",
        tax_category=_txt(tax, "ram:CategoryCode"),
        tax_rate=_amount(tax, "ram:RateApplicablePercent", line_id),
    )


def _read_line(el: etree._Element) -> InvoiceLine:
    line_id = _txt(el, "ram:AssociatedDocumentLineDocument/ram:LineID")
    product = el.find("ram:SpecifiedTradeProduct", NS)
    agreement = el.find("ram:SpecifiedLineTradeAgreement", NS)
    delivery = el.find("ram:SpecifiedLineTradeDelivery", NS)
    settlement = el.find("ram:SpecifiedLineTradeSettlement", NS)

    line = InvoiceLine(
        line_id=line_id,
        note=_txt(el, "ram:AssociatedDocumentLineDocument/ram:IncludedNote/ram:Content"),
        seller_assigned_id=_txt(product, "ram:SellerAssignedID"),
        buyer_assigned_id=_txt(product, "ram:BuyerAssignedID"),
        name=_txt(product, "ram:Name"),
        description=_txt(product, "ram:Description"),
        origin_country=_txt(product, "ram:OriginTradeCountry/ram:ID"),
    )
    if product is not None:
        gid = product.find("ram:GlobalID", NS)
        if gid is not None:
            line.global_id = (gid.text or "").strip()
            line.global_id_scheme = gid.get("schemeID", "")
        for c in product.findall("ram:ApplicableProductCharacteristic", NS):
            line.characteristics.append(Characteristic(name=_txt(c, "ram:Description"), value=_txt(c, "ram:Value")))
        for code in product.findall("ram:DesignatedProductClassification/ram:ClassCode", NS):
            line.classifications.append(
                Classification(
                    code=(code.text or "").strip(),
                    list_id=code.get("listID", ""),
                    list_version=code.get("listVersionID", ""),
                )
            )

    if agreement is not None:
        line.order_line_ref = _txt(agreement, "ram:BuyerOrderReferencedDocument/ram:LineID")
        gross = agreement.find("ram:GrossPriceProductTradePrice", NS)
        if gross is not None:
            line.gross_price = _decimal(gross, "ram:ChargeAmount", line_id)
            for applied in gross.findall("ram:AppliedTradeAllowanceCharge", NS):
                line.gross_price_allowances.append(_read_allowance_charge(applied, line_id))
        net = agreement.find("ram:NetPriceProductTradePrice", NS)
        if net is not None:
            line.net_price = _decimal(net, "ram:ChargeAmount", line_id)
            line.base_quantity = _decimal(net, "ram:BasisQuantity", line_id)
            bq = net.find("ram:BasisQuantity", NS)
            if bq is not None:
                line.base_quantity_unit = bq.get("unitCode", "")

    if delivery is not None:
        qty = delivery.find("ram:BilledQuantity", NS)
        line.quantity = _amount(delivery, "ram:BilledQuantity", line_id)
        if qty is not None:
            line.unit = qty.get("unitCode", "")

    if settlement is not None:
        line.tax_category = _txt(settlement, "ram:ApplicableTradeTax/ram:CategoryCode")
        line.tax_rate = _amount(settlement, "ram:ApplicableTradeTax/ram:RateApplicablePercent", line_id)
        line.period = _period(settlement.find("ram:BillingSpecifiedPeriod", NS), line_id)
        for ac in settlement.findall("ram:SpecifiedTradeAllowanceCharge", NS):
            line.allowance_charges.append(_read_allowance_charge(ac, line_id))
        line.total = _amount(settlement, "ram:SpecifiedTradeSettlementLineMonetarySummation/ram:LineTotalAmount", line_id)
        line.accounting_ref = _txt(settlement, "ram:ReceivableSpecifiedTradeAccountingAccount/ram:ID")
    return line


def _read_trade_tax(el: etree._Element) -> TradeTax:
    return TradeTax(
        category=_txt(el, "ram:CategoryCode"),
        rate=_amount(el, "ram:RateApplicablePercent"),
        basis_amount=_amount(el, "ram:BasisAmount"),
        calculated_amount=_amount(el, "ram:CalculatedAmount"),
        type_code=_txt(el, "ram:TypeCode") or "VAT",
        exemption_reason=_txt(el, "ram:ExemptionReason"),
        exemption_reason_code=_txt(el, "ram:ExemptionReasonCode"),
        tax_point_date=_date(el, "ram:TaxPointDate"),
        due_date_type_code=_txt(el, "ram:DueDateTypeCode"),
    )


def _read_payment_means(el: etree._Element) -> PaymentMeans:
    return PaymentMeans(
        type_code=_int(el, "ram:TypeCode"),
        information=_txt(el, "ram:Information"),
        card_id=_txt(el, "ram:ApplicableTradeSettlementFinancialCard/ram:ID"),
        cardholder=_txt(el, "ram:ApplicableTradeSettlementFinancialCard/ram:CardholderName"),
        payer_iban=_txt(el, "ram:PayerPartyDebtorFinancialAccount/ram:IBANID"),
        payee_iban=_txt(el, "ram:PayeePartyCreditorFinancialAccount/ram:IBANID"),
        payee_account_name=_txt(el, "ram:PayeePartyCreditorFinancialAccount/ram:AccountName"),
        payee_proprietary_id=_txt(el, "ram:PayeePartyCreditorFinancialAccount/ram:ProprietaryID"),
        payee_bic=_txt(el, "ram:PayeeSpecifiedCreditorFinancialInstitution/ram:BICID"),
    )


def _read_supporting_document(el: etree._Element) -> SupportingDocument:
    doc = SupportingDocument(
        id=_txt(el, "ram:IssuerAssignedID"),
        type_code=_txt(el, "ram:TypeCode"),
        name=_txt(el, "ram:Name"),
        reference_type_code=_txt(el, "ram:ReferenceTypeCode"),
    )
    obj = el.find("ram:AttachmentBinaryObject", NS)
    if obj is not None:
        try:
            doc.attachment = decode_attachment(obj.text or "")
        except ValueError:
            raise ParseError("cannot decode attachment", sourceline=obj.sourceline) from None
        doc.mime_code = obj.get("mimeCode", "")
        doc.filename = obj.get("filename", "")
    return doc


def _read_invoice(root: etree._Element) -> Invoice:
    invoice = Invoice(
        business_process=_txt(root, "rsm:ExchangedDocumentContext/ram:BusinessProcessSpecifiedDocumentContextParameter/ram:ID"),
        specification_id=_txt(root, "rsm:ExchangedDocumentContext/ram:GuidelineSpecifiedDocumentContextParameter/ram:ID"),
    )
    doc = root.find("rsm:ExchangedDocument", NS)
    invoice.number = _txt(doc, "ram:ID")
    invoice.type_code = _int(doc, "ram:TypeCode")
    invoice.issue_date = _date(doc, "ram:IssueDateTime")
    if doc is not None:
        for note in doc.findall("ram:IncludedNote", NS):
            invoice.notes.append(Note(text=_txt(note, "ram:Content"), subject_code=_txt(note, "ram:SubjectCode")))

    tx = root.find("rsm:SupplyChainTradeTransaction", NS)
    if tx is None:
        return invoice
    for item in tx.findall("ram:IncludedSupplyChainTradeLineItem", NS):
        invoice.lines.append(_read_line(item))

    agreement = tx.find("ram:ApplicableHeaderTradeAgreement", NS)
    invoice.buyer_reference = _txt(agreement, "ram:BuyerReference")
    invoice.seller = _read_party(_find(agreement, "ram:SellerTradeParty")) or Party()
    invoice.buyer = _read_party(_find(agreement, "ram:BuyerTradeParty")) or Party()
    invoice.tax_representative = _read_party(_find(agreement, "ram:SellerTaxRepresentativeTradeParty"))
    invoice.buyer_order_ref = _txt(agreement, "ram:BuyerOrderReferencedDocument/ram:IssuerAssignedID")
    invoice.contract_ref = _txt(agreement, "ram:ContractReferencedDocument/ram:IssuerAssignedID")
    if agreement is not None:
        for ref in agreement.findall("ram:AdditionalReferencedDocument", NS):
            invoice.supporting_documents.append(_read_supporting_document(ref))

    delivery = tx.find("ram:ApplicableHeaderTradeDelivery", NS)
    invoice.ship_to = _read_party(_find(delivery, "ram:ShipToTradeParty"))
    invoice.delivery_date = _date(delivery, "ram:ActualDeliverySupplyChainEvent/ram:OccurrenceDateTime")

    settlement = tx.find("ram:ApplicableHeaderTradeSettlement", NS)
    if settlement is not None:
        _read_settlement(settlement, invoice)
    return invoice


def _find(el: etree._Element | None, path: str) -> etree._Element | None:
    return el.find(path, NS) if el is not None else None


def _read_settlement(settlement: etree._Element, invoice: Invoice) -> None:
    invoice.creditor_reference = _txt(settlement, "ram:CreditorReferenceID")
    invoice.payment_reference = _txt(settlement, "ram:PaymentReference")
    invoice.tax_currency = _txt(settlement, "ram:TaxCurrencyCode")
    invoice.currency = _txt(settlement, "ram:InvoiceCurrencyCode")
    invoice.payee = _read_party(settlement.find("ram:PayeeTradeParty", NS))

    invoice.payment_means = [_read_payment_means(pm) for pm in settlement.findall("ram:SpecifiedTradeSettlementPaymentMeans", NS)]
    invoice.trade_taxes = [_read_trade_tax(t) for t in settlement.findall("ram:ApplicableTradeTax", NS)]
    invoice.billing_period = _period(settlement.find("ram:BillingSpecifiedPeriod", NS))
    invoice.allowance_charges = [_read_allowance_charge(ac) for ac in settlement.findall("ram:SpecifiedTradeAllowanceCharge", NS)]

    for terms in settlement.findall("ram:SpecifiedTradePaymentTerms", NS):
        mandate = _txt(terms, "ram:DirectDebitMandateID")
        if mandate and not invoice.mandate_id:
            invoice.mandate_id = mandate
        description = _txt(terms, "ram:Description")
        due_date = _date(terms, "ram:DueDateDateTime")
        if description or due_date:
            invoice.payment_terms.append(PaymentTerms(description=description, due_date=due_date))

    totals = settlement.find("ram:SpecifiedTradeSettlementHeaderMonetarySummation", NS)
    invoice.line_total = _amount(totals, "ram:LineTotalAmount")
    invoice.charge_total = _amount(totals, "ram:ChargeTotalAmount")
    invoice.allowance_total = _amount(totals, "ram:AllowanceTotalAmount")
    invoice.tax_basis_total = _amount(totals, "ram:TaxBasisTotalAmount")
    invoice.rounding = _amount(totals, "ram:RoundingAmount")
    invoice.grand_total = _amount(totals, "ram:GrandTotalAmount")
    invoice.prepaid = _amount(totals, "ram:TotalPrepaidAmount")
    invoice.due_payable = _amount(totals, "ram:DuePayableAmount")

    for ref in settlement.findall("ram:InvoiceReferencedDocument", NS):
        invoice.preceding_invoices.append(
            ReferencedDocument(id=_txt(ref, "ram:IssuerAssignedID"), issue_date=_date(ref, "ram:FormattedIssueDateTime"))
        )


def _read_tax_totals(root: etree._Element, invoice: Invoice) -> list[str]:
    """Assign BT-110/BT-111 by currencyID and return any unexpected currencies."""
    unexpected = []
    path = ".//ram:SpecifiedTradeSettlementHeaderMonetarySummation/ram:TaxTotalAmount"
    for node in root.iterfind(path, NS):
        currency = node.get("currencyID", "")
        value = _node_decimal(node)
        if value is None:
            value = ZERO
        if not currency or currency == invoice.currency:
            invoice.tax_total = value
        elif currency == invoice.tax_currency:
            invoice.tax_total_accounting = value
        else:
            unexpected.append(currency)
    return unexpected


def _structural_checks(root: etree._Element, invoice: Invoice, unexpected_currencies: list[str]) -> list:
    report = ReportBuilder()
    for currency in unexpected_currencies:
        report.add(
            "UNEXPECTED-TAX-CURRENCY",
            f"Tax total amount uses currency {currency}, expected {invoice.currency or 'none'} or {invoice.tax_currency or 'none'}",
        )
    if invoice.profile.is_peppol:
        for name in find_empty_elements(root):
            if name not in _EMPTY_ALLOWED:
                report.add("PEPPOL-EN16931-R008", f"Document MUST not contain empty elements ({name})")
    return report.build().all()
