from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal, InvalidOperation

from lxml import etree

from einvoice.config import UBL_CREDIT_NOTE_NS, UBL_NSMAP
from einvoice.models.common import ZERO, AllowanceCharge, Period
from einvoice.models.invoice import (
    SCHEMA_UBL,
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
from einvoice.services.exceptions import ParseError
from einvoice.services.xml_encoder import decode_attachment
from einvoice.utils.formatters import parse_date_iso
from einvoice.utils.validators import is_valid_iban

logger = logging.getLogger(__name__)

NS = UBL_NSMAP

# PartyIdentification scheme carrying the SEPA creditor identifier (BT-90)
SEPA_SCHEME = "SEPA"


def _txt(el: etree._Element | None, path: str) -> str:
    if el is None:
        return ""
    return (el.findtext(path, default="", namespaces=NS) or "").strip()


def _find(el: etree._Element | None, path: str) -> etree._Element | None:
    return el.find(path, NS) if el is not None else None


def _decimal(el: etree._Element | None, path: str, line_id: str | None = None) -> Decimal | None:
    node = _find(el, path)
    if node is None:
        return None
    text = (node.text or "").strip()
    if not text:
        return None
    try:
        value = Decimal(text)
    except InvalidOperation:
        value = None
    if value is None or not value.is_finite():
        raise ParseError(f"Invalid decimal {text!r} in {etree.QName(node).localname}", line_id, node.sourceline)
    return value


def _amount(el: etree._Element | None, path: str, line_id: str | None = None) -> Decimal:
    value = _decimal(el, path, line_id)
    return ZERO if value is None else value


def _int(el: etree._Element | None, path: str) -> int:
    text = _txt(el, path)
    if not text:
        return 0
    try:
        return int(text)
    except ValueError:
        node = _find(el, path)
        raise ParseError(f"Invalid code {text!r} in {etree.QName(node).localname}", sourceline=node.sourceline) from None


def _date(el: etree._Element | None, path: str, line_id: str | None = None) -> date | None:
    node = _find(el, path)
    if node is None:
        return None
    try:
        return parse_date_iso(node.text or "")
    except ValueError:
        raise ParseError(f"Invalid date {node.text!r} in {etree.QName(node).localname}", line_id, node.sourceline) from None


def _period(el: etree._Element | None, line_id: str | None = None) -> Period | None:
    if el is None:
        return None
    return Period(start=_date(el, "cbc:StartDate", line_id), end=_date(el, "cbc:EndDate", line_id))


def _address(el: etree._Element | None) -> PostalAddress | None:
    if el is None:
        return None
    return PostalAddress(
        line1=_txt(el, "cbc:StreetName"),
        line2=_txt(el, "cbc:AdditionalStreetName"),
        line3=_txt(el, "cac:AddressLine/cbc:Line"),
        postcode=_txt(el, "cbc:PostalZone"),
        city=_txt(el, "cbc:CityName"),
        country=_txt(el, "cac:Country/cbc:IdentificationCode"),
        subdivision=_txt(el, "cbc:CountrySubentity"),
    )


def _read_party(el: etree._Element | None, legal_name: bool = False) -> Party | None:
    """Read a cac:Party-like element.

    For seller and buyer (*legal_name*) the party name is the legal
    registration name and cac:PartyName holds the trading name. For the
    other roles cac:PartyName is the party name.
    """
    if el is None:
        return None
    party = Party()
    endpoint = el.find("cbc:EndpointID", NS)
    if endpoint is not None:
        party.electronic_address = (endpoint.text or "").strip()
        party.electronic_address_scheme = endpoint.get("schemeID", "")

    for ident in el.findall("cac:PartyIdentification/cbc:ID", NS):
        value = (ident.text or "").strip()
        scheme = ident.get("schemeID", "")
        if scheme:
            party.global_ids.append(GlobalID(id=value, scheme=scheme))
        else:
            party.ids.append(value)

    party_name = _txt(el, "cac:PartyName/cbc:Name")
    legal = el.find("cac:PartyLegalEntity", NS)
    registration_name = _txt(legal, "cbc:RegistrationName")
    trading_name = ""
    if legal_name and registration_name:
        party.name = registration_name
        trading_name = party_name
    else:
        party.name = party_name or registration_name

    company = _find(legal, "cbc:CompanyID")
    if company is not None or trading_name:
        party.legal_organization = LegalOrganization(
            id=(company.text or "").strip() if company is not None else "",
            scheme=company.get("schemeID", "") if company is not None else "",
            trading_name=trading_name,
        )

    party.address = _address(el.find("cac:PostalAddress", NS))

    for scheme in el.findall("cac:PartyTaxScheme", NS):
        company_id = _txt(scheme, "cbc:CompanyID")
        if _txt(scheme, "cac:TaxScheme/cbc:ID") == "VAT":
            party.vat_id = company_id
        else:
            party.tax_id = company_id

    for c in el.findall("cac:Contact", NS):
        party.contacts.append(
            Contact(
                name=_txt(c, "cbc:Name"),
                phone=_txt(c, "cbc:Telephone"),
                email=_txt(c, "cbc:ElectronicMail"),
            )
        )
    return party


def _read_allowance_charge(el: etree._Element, line_id: str | None = None, with_tax: bool = True) -> AllowanceCharge:
    ac = AllowanceCharge(
        charge=_txt(el, "cbc:ChargeIndicator").lower() == "true",
        amount=_amount(el, "cbc:Amount", line_id),
        basis_amount=_decimal(el, "cbc:BaseAmount", line_id),
        percent=_decimal(el, "cbc:MultiplierFactorNumeric", line_id),
        reason=_txt(el, "cbc:AllowanceChargeReason"),
        reason_code=_txt(el, "cbc:AllowanceChargeReasonCode"),
    )
    if with_tax:
        tax = el.find("cac:TaxCategory", NS)
        ac.tax_type = _txt(tax, "cac:TaxScheme/cbc:ID") or "VAT"
        ac.tax_category = _txt(tax, "cbc:ID")
        ac.tax_rate = _amount(tax, "cbc:Percent", line_id)
    return ac


def _read_price(el: etree._Element | None, line: InvoiceLine) -> None:
    if el is None:
        return
    line.net_price = _decimal(el, "cbc:PriceAmount", line.line_id)
    base = el.find("cbc:BaseQuantity", NS)
    if base is not None:
        line.base_quantity = _decimal(el, "cbc:BaseQuantity", line.line_id)
        line.base_quantity_unit = base.get("unitCode", "")
    for ac in el.findall("cac:AllowanceCharge", NS):
        gross = _decimal(ac, "cbc:BaseAmount", line.line_id)
        if gross is not None and line.gross_price is None:
            line.gross_price = gross
        amount = _amount(ac, "cbc:Amount", line.line_id)
        reason = _txt(ac, "cbc:AllowanceChargeReason")
        # A zero price allowance only carries the gross price
        if amount or reason:
            line.gross_price_allowances.append(
                AllowanceCharge(charge=_txt(ac, "cbc:ChargeIndicator").lower() == "true", amount=amount, reason=reason)
            )


def _read_item(el: etree._Element | None, line: InvoiceLine) -> None:
    if el is None:
        return
    line.description = _txt(el, "cbc:Description")
    line.name = _txt(el, "cbc:Name")
    line.buyer_assigned_id = _txt(el, "cac:BuyersItemIdentification/cbc:ID")
    line.seller_assigned_id = _txt(el, "cac:SellersItemIdentification/cbc:ID")
    gid = el.find("cac:StandardItemIdentification/cbc:ID", NS)
    if gid is not None:
        line.global_id = (gid.text or "").strip()
        line.global_id_scheme = gid.get("schemeID", "")
    line.origin_country = _txt(el, "cac:OriginCountry/cbc:IdentificationCode")
    for code in el.findall("cac:CommodityClassification/cbc:ItemClassificationCode", NS):
        line.classifications.append(
            Classification(
                code=(code.text or "").strip(),
                list_id=code.get("listID", ""),
                list_version=code.get("listVersionID", ""),
            )
        )
    tax = el.find("cac:ClassifiedTaxCategory", NS)
    line.tax_category = _txt(tax, "cbc:ID")
    line.tax_rate = _amount(tax, "cbc:Percent", line.line_id)
    for prop in el.findall("cac:AdditionalItemProperty", NS):
        line.characteristics.append(Characteristic(name=_txt(prop, "cbc:Name"), value=_txt(prop, "cbc:Value")))


def _read_line(el: etree._Element, credit_note: bool) -> InvoiceLine:
    line = InvoiceLine(line_id=_txt(el, "cbc:ID"), note=_txt(el, "cbc:Note"))
    quantity_path = "cbc:CreditedQuantity" if credit_note else "cbc:InvoicedQuantity"
    qty = el.find(quantity_path, NS)
    line.quantity = _amount(el, quantity_path, line.line_id)
    if qty is not None:
        line.unit = qty.get("unitCode", "")
    line.total = _amount(el, "cbc:LineExtensionAmount", line.line_id)
    line.accounting_ref = _txt(el, "cbc:AccountingCost")
    line.period = _period(el.find("cac:InvoicePeriod", NS), line.line_id)
    line.order_line_ref = _txt(el, "cac:OrderLineReference/cbc:LineID")
    for ac in el.findall("cac:AllowanceCharge", NS):
        line.allowance_charges.append(_read_allowance_charge(ac, line.line_id, with_tax=False))
    _read_item(el.find("cac:Item", NS), line)
    _read_price(el.find("cac:Price", NS), line)
    return line


def _read_supporting_document(el: etree._Element) -> SupportingDocument:
    ident = el.find("cbc:ID", NS)
    doc = SupportingDocument(
        id=_txt(el, "cbc:ID"),
        type_code=_txt(el, "cbc:DocumentTypeCode"),
        name=_txt(el, "cbc:DocumentDescription"),
        reference_type_code=ident.get("schemeID", "") if ident is not None else "",
    )
    obj = el.find("cac:Attachment/cbc:EmbeddedDocumentBinaryObject", NS)
    if obj is not None:
        try:
            doc.attachment = decode_attachment(obj.text or "")
        except ValueError:
            raise ParseError("cannot decode attachment", sourceline=obj.sourceline) from None
        doc.mime_code = obj.get("mimeCode", "")
        doc.filename = obj.get("filename", "")
    return doc


def _read_note(text: str) -> Note:
    # "#AAI#text" carries the subject code (BT-21) in front of the note
    if text.startswith("#") and text.count("#") >= 2:
        code, _, rest = text[1:].partition("#")
        if code.isalnum():
            return Note(text=rest, subject_code=code)
    return Note(text=text)


def _read_payment(root: etree._Element, invoice: Invoice) -> None:
    for pm in root.findall("cac:PaymentMeans", NS):
        means = PaymentMeans(
            type_code=_int(pm, "cbc:PaymentMeansCode"),
            information=_txt(pm, "cbc:InstructionNote"),
            card_id=_txt(pm, "cac:CardAccount/cbc:PrimaryAccountNumberID"),
            cardholder=_txt(pm, "cac:CardAccount/cbc:HolderName"),
            payee_account_name=_txt(pm, "cac:PayeeFinancialAccount/cbc:Name"),
            payee_bic=_txt(pm, "cac:PayeeFinancialAccount/cac:FinancialInstitutionBranch/cbc:ID"),
            payer_iban=_txt(pm, "cac:PaymentMandate/cac:PayerFinancialAccount/cbc:ID"),
        )
        account = _txt(pm, "cac:PayeeFinancialAccount/cbc:ID")
        if is_valid_iban(account):
            means.payee_iban = account
        else:
            means.payee_proprietary_id = account
        invoice.payment_means.append(means)
        payment_id = _txt(pm, "cbc:PaymentID")
        if payment_id and not invoice.payment_reference:
            invoice.payment_reference = payment_id
        mandate = _txt(pm, "cac:PaymentMandate/cbc:ID")
        if mandate and not invoice.mandate_id:
            invoice.mandate_id = mandate

    due_date = _date(root, "cbc:DueDate")
    for terms in root.findall("cac:PaymentTerms", NS):
        invoice.payment_terms.append(
            PaymentTerms(description=_txt(terms, "cbc:Note"), due_date=_date(terms, "cbc:PaymentDueDate"))
        )
    if due_date is not None:
        if invoice.payment_terms and invoice.payment_terms[0].due_date is None:
            invoice.payment_terms[0].due_date = due_date
        elif not invoice.payment_terms:
            invoice.payment_terms.append(PaymentTerms(due_date=due_date))


def _read_taxes(root: etree._Element, invoice: Invoice) -> list[str]:
    """Read BT-110/BT-111 by currencyID and the VAT breakdown; return unexpected currencies."""
    unexpected = []
    tax_point_date = _date(root, "cbc:TaxPointDate")
    for total in root.findall("cac:TaxTotal", NS):
        node = total.find("cbc:TaxAmount", NS)
        if node is not None:
            currency = node.get("currencyID", "")
            value = _amount(total, "cbc:TaxAmount")
            if not currency or currency == invoice.currency:
                invoice.tax_total = value
            elif currency == invoice.tax_currency:
                invoice.tax_total_accounting = value
            else:
                unexpected.append(currency)
        for sub in total.findall("cac:TaxSubtotal", NS):
            category = sub.find("cac:TaxCategory", NS)
            invoice.trade_taxes.append(
                TradeTax(
                    category=_txt(category, "cbc:ID"),
                    rate=_amount(category, "cbc:Percent"),
                    basis_amount=_amount(sub, "cbc:TaxableAmount"),
                    calculated_amount=_amount(sub, "cbc:TaxAmount"),
                    type_code=_txt(category, "cac:TaxScheme/cbc:ID") or "VAT",
                    exemption_reason=_txt(category, "cbc:TaxExemptionReason"),
                    exemption_reason_code=_txt(category, "cbc:TaxExemptionReasonCode"),
                    tax_point_date=tax_point_date,
                )
            )
    return unexpected


def read_ubl(root: etree._Element) -> tuple[Invoice, list[str]]:
    """Map a UBL Invoice or CreditNote root onto the invoice model.

    Returns the invoice and the TaxTotal currencies that match neither
    the invoice nor the tax currency.
    """
    credit_note = etree.QName(root).namespace == UBL_CREDIT_NOTE_NS
    invoice = Invoice(
        schema_type=SCHEMA_UBL,
        specification_id=_txt(root, "cbc:CustomizationID"),
        business_process=_txt(root, "cbc:ProfileID"),
        number=_txt(root, "cbc:ID"),
        issue_date=_date(root, "cbc:IssueDate"),
        type_code=_int(root, "cbc:CreditNoteTypeCode" if credit_note else "cbc:InvoiceTypeCode"),
        currency=_txt(root, "cbc:DocumentCurrencyCode"),
        tax_currency=_txt(root, "cbc:TaxCurrencyCode"),
        buyer_reference=_txt(root, "cbc:BuyerReference"),
        buyer_order_ref=_txt(root, "cac:OrderReference/cbc:ID"),
        contract_ref=_txt(root, "cac:ContractDocumentReference/cbc:ID"),
    )
    invoice.notes = [_read_note((n.text or "").strip()) for n in root.findall("cbc:Note", NS)]
    invoice.billing_period = _period(root.find("cac:InvoicePeriod", NS))
    for ref in root.findall("cac:BillingReference/cac:InvoiceDocumentReference", NS):
        invoice.preceding_invoices.append(ReferencedDocument(id=_txt(ref, "cbc:ID"), issue_date=_date(ref, "cbc:IssueDate")))
    invoice.supporting_documents = [_read_supporting_document(d) for d in root.findall("cac:AdditionalDocumentReference", NS)]

    invoice.seller = _read_party(root.find("cac:AccountingSupplierParty/cac:Party", NS), legal_name=True) or Party()
    sepa = [g for g in invoice.seller.global_ids if g.scheme == SEPA_SCHEME]
    if sepa:
        invoice.creditor_reference = sepa[0].id
        invoice.seller.global_ids = [g for g in invoice.seller.global_ids if g.scheme != SEPA_SCHEME]
    invoice.buyer = _read_party(root.find("cac:AccountingCustomerParty/cac:Party", NS), legal_name=True) or Party()
    invoice.payee = _read_party(root.find("cac:PayeeParty", NS))
    invoice.tax_representative = _read_party(root.find("cac:TaxRepresentativeParty", NS))

    delivery = root.find("cac:Delivery", NS)
    if delivery is not None:
        invoice.delivery_date = _date(delivery, "cbc:ActualDeliveryDate")
        invoice.ship_to = _read_party(delivery.find("cac:DeliveryParty", NS))
        location = delivery.find("cac:DeliveryLocation", NS)
        if location is not None:
            if invoice.ship_to is None:
                invoice.ship_to = Party()
            ident = location.find("cbc:ID", NS)
            if ident is not None and ident.get("schemeID"):
                invoice.ship_to.global_ids.append(GlobalID(id=(ident.text or "").strip(), scheme=ident.get("schemeID")))
            elif ident is not None:
                invoice.ship_to.ids.append((ident.text or "").strip())
            invoice.ship_to.address = _address(location.find("cac:Address", NS))

    _read_payment(root, invoice)
    invoice.allowance_charges = [_read_allowance_charge(ac) for ac in root.findall("cac:AllowanceCharge", NS)]
    unexpected = _read_taxes(root, invoice)

    totals = root.find("cac:LegalMonetaryTotal", NS)
    invoice.line_total = _amount(totals, "cbc:LineExtensionAmount")
    invoice.tax_basis_total = _amount(totals, "cbc:TaxExclusiveAmount")
    invoice.grand_total = _amount(totals, "cbc:TaxInclusiveAmount")
    invoice.allowance_total = _amount(totals, "cbc:AllowanceTotalAmount")
    invoice.charge_total = _amount(totals, "cbc:ChargeTotalAmount")
    invoice.prepaid = _amount(totals, "cbc:PrepaidAmount")
    invoice.rounding = _amount(totals, "cbc:PayableRoundingAmount")
    invoice.due_payable = _amount(totals, "cbc:PayableAmount")

    line_tag = "cac:CreditNoteLine" if credit_note else "cac:InvoiceLine"
    invoice.lines = [_read_line(el, credit_note) for el in root.findall(line_tag, NS)]
    logger.debug("Read UBL %s %r with %d lines", "credit note" if credit_note else "invoice", invoice.number, len(invoice.lines))
    return invoice, unexpected
