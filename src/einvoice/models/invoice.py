from __future__ import annotations

import base64
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from einvoice.models.common import ZERO, AllowanceCharge, Period, to_date, to_decimal
from einvoice.models.line import InvoiceLine
from einvoice.models.party import Party
from einvoice.models.violation import Violation
from einvoice.services.profile import Profile, classify

SCHEMA_CII = "cii"
SCHEMA_UBL = "ubl"


@dataclass
class Note:
    text: str = ""
    subject_code: str = ""

    @classmethod
    def from_dict(cls, d: dict | str) -> Note:
        if isinstance(d, str):
            return cls(text=d)
        return cls(text=d.get("text", ""), subject_code=d.get("subject_code", ""))


@dataclass
class ReferencedDocument:
    """Preceding invoice reference (BG-3): number and optional issue date."""

    id: str = ""
    issue_date: date | None = None

    @classmethod
    def from_dict(cls, d: dict) -> ReferencedDocument:
        return cls(id=str(d.get("id", "")), issue_date=to_date(d.get("issue_date")))


@dataclass
class SupportingDocument:
    """Additional supporting document (BG-24), optionally with an embedded attachment."""

    id: str = ""
    type_code: str = ""
    name: str = ""
    attachment: bytes = b""
    mime_code: str = ""
    filename: str = ""
    reference_type_code: str = ""

    @classmethod
    def from_dict(cls, d: dict) -> SupportingDocument:
        data = d.get("attachment", b"")
        if isinstance(data, str):
            data = base64.b64decode(data, validate=True)
        return cls(
            id=str(d.get("id", "")),
            type_code=str(d.get("type_code", "")),
            name=d.get("name", ""),
            attachment=data,
            mime_code=d.get("mime_code", ""),
            filename=d.get("filename", ""),
            reference_type_code=str(d.get("reference_type_code", "")),
        )


@dataclass
class PaymentMeans:
    """Payment instructions (BG-16) with credit transfer, card and direct debit details."""

    type_code: int = 0
    information: str = ""
    card_id: str = ""
    cardholder: str = ""
    payee_iban: str = ""
    payee_account_name: str = ""
    payee_proprietary_id: str = ""
    payer_iban: str = ""
    payee_bic: str = ""

    @property
    def has_credit_transfer(self) -> bool:
        return bool(self.payee_iban or self.payee_proprietary_id)

    @property
    def has_card(self) -> bool:
        return bool(self.card_id)

    @property
    def has_direct_debit(self) -> bool:
        return bool(self.payer_iban)

    @classmethod
    def from_dict(cls, d: dict) -> PaymentMeans:
        return cls(
            type_code=int(d.get("type_code", 0)),
            information=d.get("information", ""),
            card_id=str(d.get("card_id", "")),
            cardholder=d.get("cardholder", ""),
            payee_iban=d.get("payee_iban", ""),
            payee_account_name=d.get("payee_account_name", ""),
            payee_proprietary_id=str(d.get("payee_proprietary_id", "")),
            payer_iban=d.get("payer_iban", ""),
            payee_bic=d.get("payee_bic", ""),
        )


@dataclass
class PaymentTerms:
    description: str = ""
    due_date: date | None = None

    @classmethod
    def from_dict(cls, d: dict | str) -> PaymentTerms:
        if isinstance(d, str):
            return cls(description=d)
        return cls(description=d.get("description", ""), due_date=to_date(d.get("due_date")))


@dataclass
class TradeTax:
    """VAT breakdown entry (BG-23)."""

    category: str = ""
    rate: Decimal = ZERO
    basis_amount: Decimal = ZERO
    calculated_amount: Decimal = ZERO
    type_code: str = "VAT"
    exemption_reason: str = ""
    exemption_reason_code: str = ""
    tax_point_date: date | None = None
    due_date_type_code: str = ""

    @classmethod
    def from_dict(cls, d: dict) -> TradeTax:
        return cls(
            category=d.get("category", ""),
            rate=to_decimal(d.get("rate")),
            basis_amount=to_decimal(d.get("basis_amount")),
            calculated_amount=to_decimal(d.get("calculated_amount")),
            type_code=d.get("type_code", "VAT"),
            exemption_reason=d.get("exemption_reason", ""),
            exemption_reason_code=d.get("exemption_reason_code", ""),
            tax_point_date=to_date(d.get("tax_point_date")),
            due_date_type_code=str(d.get("due_date_type_code", "")),
        )


@dataclass
class Invoice:
    """Invoice aggregate: header, parties, lines, VAT breakdown, payment and totals.

    Amounts are exact Decimals; unset dates are None. ``parse_violations``
    holds rules that fired while reading the document and is reported
    ahead of every later validation run.
    """

    number: str = ""
    issue_date: date | None = None
    type_code: int = 0
    currency: str = ""
    tax_currency: str = ""
    buyer_reference: str = ""
    specification_id: str = ""
    business_process: str = ""

    seller: Party = field(default_factory=Party)
    buyer: Party = field(default_factory=Party)
    payee: Party | None = None
    ship_to: Party | None = None
    tax_representative: Party | None = None

    buyer_order_ref: str = ""
    contract_ref: str = ""
    preceding_invoices: list[ReferencedDocument] = field(default_factory=list)
    supporting_documents: list[SupportingDocument] = field(default_factory=list)

    billing_period: Period | None = None
    delivery_date: date | None = None

    notes: list[Note] = field(default_factory=list)
    lines: list[InvoiceLine] = field(default_factory=list)
    allowance_charges: list[AllowanceCharge] = field(default_factory=list)
    trade_taxes: list[TradeTax] = field(default_factory=list)

    payment_means: list[PaymentMeans] = field(default_factory=list)
    payment_terms: list[PaymentTerms] = field(default_factory=list)
    mandate_id: str = ""
    creditor_reference: str = ""
    payment_reference: str = ""

    line_total: Decimal = ZERO
    allowance_total: Decimal = ZERO
    charge_total: Decimal = ZERO
    tax_basis_total: Decimal = ZERO
    tax_total: Decimal = ZERO
    tax_total_accounting: Decimal = ZERO
    rounding: Decimal = ZERO
    grand_total: Decimal = ZERO
    prepaid: Decimal = ZERO
    due_payable: Decimal = ZERO

    schema_type: str = SCHEMA_CII
    parse_violations: list[Violation] = field(default_factory=list)

    @property
    def profile(self) -> Profile:
        return classify(self.specification_id, self.business_process)

    @property
    def allowances(self) -> list[AllowanceCharge]:
        return [ac for ac in self.allowance_charges if not ac.charge]

    @property
    def charges(self) -> list[AllowanceCharge]:
        return [ac for ac in self.allowance_charges if ac.charge]

    @property
    def deliver_to_country(self) -> str:
        return self.ship_to.country if self.ship_to else ""

    @classmethod
    def from_dict(cls, d: dict) -> Invoice:
        """Create an Invoice from a YAML-loaded description. Amounts are strings, dates ISO."""
        totals = d.get("totals", {})
        period = d.get("billing_period")

        def party(key: str) -> Party | None:
            return Party.from_dict(d[key]) if d.get(key) else None

        return cls(
            number=str(d.get("number", "")),
            issue_date=to_date(d.get("issue_date")),
            type_code=int(d.get("type_code", 380)),
            currency=d.get("currency", ""),
            tax_currency=d.get("tax_currency", ""),
            buyer_reference=str(d.get("buyer_reference", "")),
            specification_id=d.get("specification_id", ""),
            business_process=d.get("business_process", ""),
            seller=Party.from_dict(d.get("seller", {})),
            buyer=Party.from_dict(d.get("buyer", {})),
            payee=party("payee"),
            ship_to=party("ship_to"),
            tax_representative=party("tax_representative"),
            buyer_order_ref=str(d.get("buyer_order_ref", "")),
            contract_ref=str(d.get("contract_ref", "")),
            preceding_invoices=[ReferencedDocument.from_dict(r) for r in d.get("preceding_invoices", [])],
            supporting_documents=[SupportingDocument.from_dict(s) for s in d.get("supporting_documents", [])],
            billing_period=Period.from_dict(period) if period else None,
            delivery_date=to_date(d.get("delivery_date")),
            notes=[Note.from_dict(n) for n in d.get("notes", [])],
            lines=[InvoiceLine.from_dict(line) for line in d.get("lines", [])],
            allowance_charges=[AllowanceCharge.from_dict(a) for a in d.get("allowance_charges", [])],
            trade_taxes=[TradeTax.from_dict(t) for t in d.get("trade_taxes", [])],
            payment_means=[PaymentMeans.from_dict(p) for p in d.get("payment_means", [])],
            payment_terms=[PaymentTerms.from_dict(t) for t in d.get("payment_terms", [])],
            mandate_id=str(d.get("mandate_id", "")),
            creditor_reference=str(d.get("creditor_reference", "")),
            payment_reference=str(d.get("payment_reference", "")),
            line_total=to_decimal(totals.get("line_total")),
            allowance_total=to_decimal(totals.get("allowance_total")),
            charge_total=to_decimal(totals.get("charge_total")),
            tax_basis_total=to_decimal(totals.get("tax_basis_total")),
            tax_total=to_decimal(totals.get("tax_total")),
            tax_total_accounting=to_decimal(totals.get("tax_total_accounting")),
            rounding=to_decimal(totals.get("rounding")),
            grand_total=to_decimal(totals.get("grand_total")),
            prepaid=to_decimal(totals.get("prepaid")),
            due_payable=to_decimal(totals.get("due_payable")),
            schema_type=d.get("schema_type", SCHEMA_CII),
        )
