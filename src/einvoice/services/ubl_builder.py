from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from lxml import etree

from einvoice.config import NS_CAC, NS_CBC, UBL_CREDIT_NOTE_NS, UBL_CREDIT_NOTE_TYPES, UBL_INVOICE_NS
from einvoice.models.common import AllowanceCharge, Period
from einvoice.models.invoice import SCHEMA_UBL, Invoice, Note, PaymentMeans, TradeTax
from einvoice.models.line import InvoiceLine
from einvoice.models.party import Party, PostalAddress
from einvoice.services.exceptions import WriteError
from einvoice.services.ubl_parser import SEPA_SCHEME
from einvoice.services.xml_encoder import encode_attachment
from einvoice.utils.formatters import format_amount, format_percent, format_quantity

logger = logging.getLogger(__name__)

CAC = f"{{{NS_CAC}}}"
CBC = f"{{{NS_CBC}}}"


def _sub(parent: etree._Element, tag: str, text: str | None = None) -> etree._Element:
    el = etree.SubElement(parent, tag)
    if text is not None:
        el.text = text
    return el


def _opt(parent: etree._Element, tag: str, text: str) -> etree._Element | None:
    if not text:
        return None
    return _sub(parent, tag, text)


def _date(parent: etree._Element, tag: str, value: date | None) -> None:
    if value is not None:
        _sub(parent, tag, value.isoformat())


def _prune(parent: etree._Element, el: etree._Element) -> None:
    if len(el) == 0 and not el.text:
        parent.remove(el)


class _Writer:
    """Writes one invoice; carries the currency every amount is tagged with."""

    def __init__(self, invoice: Invoice):
        self.invoice = invoice
        self.currency = invoice.currency
        self.credit_note = invoice.type_code in UBL_CREDIT_NOTE_TYPES

    def amount(self, parent: etree._Element, tag: str, value: Decimal, currency: str | None = None) -> etree._Element:
        el = _sub(parent, tag, format_amount(value))
        currency = self.currency if currency is None else currency
        if currency:
            el.set("currencyID", currency)
        return el

    # --- header ---

    def build(self) -> etree._Element:
        inv = self.invoice
        ns = UBL_CREDIT_NOTE_NS if self.credit_note else UBL_INVOICE_NS
        root = etree.Element(f"{{{ns}}}{'CreditNote' if self.credit_note else 'Invoice'}", nsmap={None: ns, "cac": NS_CAC, "cbc": NS_CBC})

        _sub(root, CBC + "CustomizationID", inv.specification_id.strip())
        _opt(root, CBC + "ProfileID", inv.business_process)
        _opt(root, CBC + "ID", inv.number)
        _date(root, CBC + "IssueDate", inv.issue_date)
        due_date = next((t.due_date for t in inv.payment_terms if t.due_date is not None), None)
        if not self.credit_note:
            _date(root, CBC + "DueDate", due_date)
        if inv.type_code:
            _sub(root, CBC + ("CreditNoteTypeCode" if self.credit_note else "InvoiceTypeCode"), str(inv.type_code))
        for note in inv.notes:
            _opt(root, CBC + "Note", _note_text(note))
        _date(root, CBC + "TaxPointDate", next((t.tax_point_date for t in inv.trade_taxes if t.tax_point_date), None))
        _opt(root, CBC + "DocumentCurrencyCode", inv.currency)
        _opt(root, CBC + "TaxCurrencyCode", inv.tax_currency)
        _opt(root, CBC + "BuyerReference", inv.buyer_reference)
        self.period(root, inv.billing_period)
        if inv.buyer_order_ref:
            _sub(_sub(root, CAC + "OrderReference"), CBC + "ID", inv.buyer_order_ref)
        for ref in inv.preceding_invoices:
            if not ref.id:
                continue
            doc = _sub(_sub(root, CAC + "BillingReference"), CAC + "InvoiceDocumentReference")
            _sub(doc, CBC + "ID", ref.id)
            _date(doc, CBC + "IssueDate", ref.issue_date)
        if inv.contract_ref:
            _sub(_sub(root, CAC + "ContractDocumentReference"), CBC + "ID", inv.contract_ref)
        for doc in inv.supporting_documents:
            self.supporting_document(root, doc)

        seller = _sub(root, CAC + "AccountingSupplierParty")
        self.party(seller, CAC + "Party", inv.seller, legal_name=True, sepa=inv.creditor_reference)
        _prune(root, seller)
        buyer = _sub(root, CAC + "AccountingCustomerParty")
        self.party(buyer, CAC + "Party", inv.buyer, legal_name=True)
        _prune(root, buyer)
        if inv.payee is not None:
            self.party(root, CAC + "PayeeParty", inv.payee)
        if inv.tax_representative is not None:
            self.party(root, CAC + "TaxRepresentativeParty", inv.tax_representative)
        self.delivery(root)

        for i, pm in enumerate(inv.payment_means):
            self.payment_means(root, pm, mandate=inv.mandate_id if i == 0 else "")
        for terms in inv.payment_terms:
            if not (terms.description or (self.credit_note and terms.due_date)):
                continue
            el = _sub(root, CAC + "PaymentTerms")
            _opt(el, CBC + "Note", terms.description)
            if self.credit_note:
                _date(el, CBC + "PaymentDueDate", terms.due_date)

        for ac in inv.allowance_charges:
            self.allowance_charge(root, ac, with_tax=True)
        self.tax_totals(root)
        self.monetary_total(root)
        for line in inv.lines:
            self.line(root, line)
        return root

    def period(self, parent: etree._Element, period: Period | None) -> None:
        if period is None or (period.start is None and period.end is None):
            return
        el = _sub(parent, CAC + "InvoicePeriod")
        _date(el, CBC + "StartDate", period.start)
        _date(el, CBC + "EndDate", period.end)

    def supporting_document(self, root: etree._Element, doc) -> None:
        ref = _sub(root, CAC + "AdditionalDocumentReference")
        ident = _opt(ref, CBC + "ID", doc.id)
        if ident is not None and doc.reference_type_code:
            ident.set("schemeID", doc.reference_type_code)
        _opt(ref, CBC + "DocumentTypeCode", doc.type_code)
        _opt(ref, CBC + "DocumentDescription", doc.name)
        if doc.attachment:
            obj = _sub(_sub(ref, CAC + "Attachment"), CBC + "EmbeddedDocumentBinaryObject", encode_attachment(doc.attachment))
            if doc.mime_code:
                obj.set("mimeCode", doc.mime_code)
            if doc.filename:
                obj.set("filename", doc.filename)
        _prune(root, ref)

    # --- parties ---

    def party(self, parent: etree._Element, tag: str, party: Party, legal_name: bool = False, sepa: str = "") -> None:
        el = _sub(parent, tag)
        if party.electronic_address:
            endpoint = _sub(el, CBC + "EndpointID", party.electronic_address)
            if party.electronic_address_scheme:
                endpoint.set("schemeID", party.electronic_address_scheme)
        for pid in party.ids:
            if pid:
                _sub(_sub(el, CAC + "PartyIdentification"), CBC + "ID", pid)
        for gid in party.global_ids:
            if gid.id:
                ident = _sub(_sub(el, CAC + "PartyIdentification"), CBC + "ID", gid.id)
                if gid.scheme:
                    ident.set("schemeID", gid.scheme)
        if sepa:
            _sub(_sub(el, CAC + "PartyIdentification"), CBC + "ID", sepa).set("schemeID", SEPA_SCHEME)

        legal = party.legal_organization
        display_name = (legal.trading_name if legal is not None else "") if legal_name else party.name
        if display_name:
            _sub(_sub(el, CAC + "PartyName"), CBC + "Name", display_name)
        if party.address is not None:
            _address(el, CAC + "PostalAddress", party.address)
        for company_id, scheme in ((party.vat_id, "VAT"), (party.tax_id, "FC")):
            if company_id:
                tax = _sub(el, CAC + "PartyTaxScheme")
                _sub(tax, CBC + "CompanyID", company_id)
                _sub(_sub(tax, CAC + "TaxScheme"), CBC + "ID", scheme)
        if legal_name:
            entity = _sub(el, CAC + "PartyLegalEntity")
            _opt(entity, CBC + "RegistrationName", party.name)
            if legal is not None and legal.id:
                company = _sub(entity, CBC + "CompanyID", legal.id)
                if legal.scheme:
                    company.set("schemeID", legal.scheme)
            _prune(el, entity)
        # A UBL party carries at most one contact
        for contact in party.contacts[:1]:
            c = _sub(el, CAC + "Contact")
            _opt(c, CBC + "Name", contact.name)
            _opt(c, CBC + "Telephone", contact.phone)
            _opt(c, CBC + "ElectronicMail", contact.email)
            _prune(el, c)
        _prune(parent, el)

    def delivery(self, root: etree._Element) -> None:
        inv = self.invoice
        if inv.ship_to is None and inv.delivery_date is None:
            return
        el = _sub(root, CAC + "Delivery")
        _date(el, CBC + "ActualDeliveryDate", inv.delivery_date)
        ship_to = inv.ship_to
        if ship_to is not None:
            location = _sub(el, CAC + "DeliveryLocation")
            if ship_to.global_ids and ship_to.global_ids[0].id:
                gid = ship_to.global_ids[0]
                ident = _sub(location, CBC + "ID", gid.id)
                if gid.scheme:
                    ident.set("schemeID", gid.scheme)
            elif ship_to.ids:
                _opt(location, CBC + "ID", ship_to.ids[0])
            if ship_to.address is not None:
                _address(location, CAC + "Address", ship_to.address)
            _prune(el, location)
            if ship_to.name:
                _sub(_sub(_sub(el, CAC + "DeliveryParty"), CAC + "PartyName"), CBC + "Name", ship_to.name)
        _prune(root, el)

    # --- payment ---

    def payment_means(self, root: etree._Element, pm: PaymentMeans, mandate: str) -> None:
        el = _sub(root, CAC + "PaymentMeans")
        _sub(el, CBC + "PaymentMeansCode", str(pm.type_code))
        _opt(el, CBC + "InstructionNote", pm.information)
        _opt(el, CBC + "PaymentID", self.invoice.payment_reference)
        if pm.card_id:
            card = _sub(el, CAC + "CardAccount")
            _sub(card, CBC + "PrimaryAccountNumberID", pm.card_id)
            _opt(card, CBC + "HolderName", pm.cardholder)
        account_id = pm.payee_iban or pm.payee_proprietary_id
        if account_id:
            account = _sub(el, CAC + "PayeeFinancialAccount")
            _sub(account, CBC + "ID", account_id)
            _opt(account, CBC + "Name", pm.payee_account_name)
            if pm.payee_bic:
                _sub(_sub(account, CAC + "FinancialInstitutionBranch"), CBC + "ID", pm.payee_bic)
        if mandate or pm.payer_iban:
            mandate_el = _sub(el, CAC + "PaymentMandate")
            _opt(mandate_el, CBC + "ID", mandate)
            if pm.payer_iban:
                _sub(_sub(mandate_el, CAC + "PayerFinancialAccount"), CBC + "ID", pm.payer_iban)

    def allowance_charge(self, parent: etree._Element, ac: AllowanceCharge, with_tax: bool) -> None:
        el = _sub(parent, CAC + "AllowanceCharge")
        _sub(el, CBC + "ChargeIndicator", "true" if ac.charge else "false")
        _opt(el, CBC + "AllowanceChargeReasonCode", ac.reason_code)
        _opt(el, CBC + "AllowanceChargeReason", ac.reason)
        if ac.percent is not None:
            _sub(el, CBC + "MultiplierFactorNumeric", format_percent(ac.percent))
        self.amount(el, CBC + "Amount", ac.amount)
        if ac.basis_amount is not None:
            self.amount(el, CBC + "BaseAmount", ac.basis_amount)
        if with_tax:
            _tax_category(el, CAC + "TaxCategory", ac.tax_category, ac.tax_rate, ac.tax_type)

    # --- taxes and totals ---

    def tax_totals(self, root: etree._Element) -> None:
        inv = self.invoice
        total = _sub(root, CAC + "TaxTotal")
        self.amount(total, CBC + "TaxAmount", inv.tax_total)
        for tax in inv.trade_taxes:
            self.tax_subtotal(total, tax)
        if inv.tax_currency and inv.tax_currency != inv.currency:
            accounting = _sub(root, CAC + "TaxTotal")
            self.amount(accounting, CBC + "TaxAmount", inv.tax_total_accounting, inv.tax_currency)

    def tax_subtotal(self, parent: etree._Element, tax: TradeTax) -> None:
        sub = _sub(parent, CAC + "TaxSubtotal")
        self.amount(sub, CBC + "TaxableAmount", tax.basis_amount)
        self.amount(sub, CBC + "TaxAmount", tax.calculated_amount)
        category = _tax_category(sub, CAC + "TaxCategory", tax.category, tax.rate, tax.type_code, write_scheme=False)
        _opt(category, CBC + "TaxExemptionReasonCode", tax.exemption_reason_code)
        _opt(category, CBC + "TaxExemptionReason", tax.exemption_reason)
        _sub(_sub(category, CAC + "TaxScheme"), CBC + "ID", tax.type_code or "VAT")

    def monetary_total(self, root: etree._Element) -> None:
        inv = self.invoice
        totals = _sub(root, CAC + "LegalMonetaryTotal")
        self.amount(totals, CBC + "LineExtensionAmount", inv.line_total)
        self.amount(totals, CBC + "TaxExclusiveAmount", inv.tax_basis_total)
        self.amount(totals, CBC + "TaxInclusiveAmount", inv.grand_total)
        if inv.allowance_total:
            self.amount(totals, CBC + "AllowanceTotalAmount", inv.allowance_total)
        if inv.charge_total:
            self.amount(totals, CBC + "ChargeTotalAmount", inv.charge_total)
        if inv.prepaid:
            self.amount(totals, CBC + "PrepaidAmount", inv.prepaid)
        if inv.rounding:
            self.amount(totals, CBC + "PayableRoundingAmount", inv.rounding)
        self.amount(totals, CBC + "PayableAmount", inv.due_payable)

    # --- lines ---

    def line(self, root: etree._Element, line: InvoiceLine) -> None:
        el = _sub(root, CAC + ("CreditNoteLine" if self.credit_note else "InvoiceLine"))
        _opt(el, CBC + "ID", line.line_id)
        _opt(el, CBC + "Note", line.note)
        qty = _sub(el, CBC + ("CreditedQuantity" if self.credit_note else "InvoicedQuantity"), format_quantity(line.quantity))
        if line.unit:
            qty.set("unitCode", line.unit)
        self.amount(el, CBC + "LineExtensionAmount", line.total)
        _opt(el, CBC + "AccountingCost", line.accounting_ref)
        self.period(el, line.period)
        if line.order_line_ref:
            _sub(_sub(el, CAC + "OrderLineReference"), CBC + "LineID", line.order_line_ref)
        for ac in line.allowance_charges:
            self.allowance_charge(el, ac, with_tax=False)

        item = _sub(el, CAC + "Item")
        _opt(item, CBC + "Description", line.description)
        _opt(item, CBC + "Name", line.name)
        if line.buyer_assigned_id:
            _sub(_sub(item, CAC + "BuyersItemIdentification"), CBC + "ID", line.buyer_assigned_id)
        if line.seller_assigned_id:
            _sub(_sub(item, CAC + "SellersItemIdentification"), CBC + "ID", line.seller_assigned_id)
        if line.global_id:
            gid = _sub(_sub(item, CAC + "StandardItemIdentification"), CBC + "ID", line.global_id)
            if line.global_id_scheme:
                gid.set("schemeID", line.global_id_scheme)
        if line.origin_country:
            _sub(_sub(item, CAC + "OriginCountry"), CBC + "IdentificationCode", line.origin_country)
        for c in line.classifications:
            if not c.code:
                continue
            code = _sub(_sub(item, CAC + "CommodityClassification"), CBC + "ItemClassificationCode", c.code)
            if c.list_id:
                code.set("listID", c.list_id)
            if c.list_version:
                code.set("listVersionID", c.list_version)
        _tax_category(item, CAC + "ClassifiedTaxCategory", line.tax_category, line.tax_rate, "VAT")
        for c in line.characteristics:
            if c.name or c.value:
                prop = _sub(item, CAC + "AdditionalItemProperty")
                _opt(prop, CBC + "Name", c.name)
                _opt(prop, CBC + "Value", c.value)

        if line.net_price is None and line.gross_price is None:
            return
        price = _sub(el, CAC + "Price")
        if line.net_price is not None:
            self.amount(price, CBC + "PriceAmount", line.net_price)
        if line.base_quantity is not None:
            bq = _sub(price, CBC + "BaseQuantity", format_quantity(line.base_quantity))
            if line.base_quantity_unit:
                bq.set("unitCode", line.base_quantity_unit)
        discounts = line.gross_price_allowances or ([AllowanceCharge()] if line.gross_price is not None else [])
        for i, ac in enumerate(discounts):
            applied = _sub(price, CAC + "AllowanceCharge")
            _sub(applied, CBC + "ChargeIndicator", "true" if ac.charge else "false")
            _opt(applied, CBC + "AllowanceChargeReason", ac.reason)
            self.amount(applied, CBC + "Amount", ac.amount)
            if i == 0 and line.gross_price is not None:
                self.amount(applied, CBC + "BaseAmount", line.gross_price)


def _note_text(note: Note) -> str:
    if note.text and note.subject_code:
        return f"#{note.subject_code}#{note.text}"
    return note.text


def _address(parent: etree._Element, tag: str, addr: PostalAddress) -> None:
    el = _sub(parent, tag)
    _opt(el, CBC + "StreetName", addr.line1)
    _opt(el, CBC + "AdditionalStreetName", addr.line2)
    _opt(el, CBC + "CityName", addr.city)
    _opt(el, CBC + "PostalZone", addr.postcode)
    _opt(el, CBC + "CountrySubentity", addr.subdivision)
    if addr.line3:
        _sub(_sub(el, CAC + "AddressLine"), CBC + "Line", addr.line3)
    if addr.country:
        _sub(_sub(el, CAC + "Country"), CBC + "IdentificationCode", addr.country)
    _prune(parent, el)


def _tax_category(
    parent: etree._Element, tag: str, category: str, rate: Decimal, scheme: str, write_scheme: bool = True
) -> etree._Element:
    el = _sub(parent, tag)
    _opt(el, CBC + "ID", category)
    if not (category == "O" and rate == 0):
        _sub(el, CBC + "Percent", format_percent(rate))
    if write_scheme:
        _sub(_sub(el, CAC + "TaxScheme"), CBC + "ID", scheme or "VAT")
    return el


def build_ubl(invoice: Invoice) -> etree._Element:
    """Build a UBL Invoice, or a CreditNote for credit note type codes.

    Everything in the model is written; empty elements are never emitted.
    """
    if invoice.schema_type != SCHEMA_UBL:
        raise WriteError(f"Cannot write schema type {invoice.schema_type!r} as UBL")
    if not invoice.specification_id:
        raise WriteError("Specification identifier (BT-24) is required to write an invoice")
    root = _Writer(invoice).build()
    logger.debug("Built UBL %s for %r", etree.QName(root).localname, invoice.number)
    return root
