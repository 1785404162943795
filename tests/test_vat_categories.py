from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from einvoice.models.common import AllowanceCharge
from einvoice.models.invoice import Invoice, TradeTax
from einvoice.models.line import InvoiceLine
from einvoice.models.party import LegalOrganization, Party, PostalAddress
from einvoice.services.calculator import calculate
from einvoice.services.report import ReportBuilder
from einvoice.services.vat_categories import CATEGORIES, check_vat_categories, expected_basis


def _invoice(category: str, rate: str = "0", seller_vat: str = "FR12345678901", buyer_vat: str = "") -> Invoice:
    invoice = Invoice(
        seller=Party(name="Seller", vat_id=seller_vat, address=PostalAddress(country="FR")),
        buyer=Party(name="Buyer", vat_id=buyer_vat, address=PostalAddress(country="BE")),
        lines=[
            InvoiceLine(
                line_id="1",
                quantity=Decimal("1"),
                net_price=Decimal("100"),
                tax_category=category,
                tax_rate=Decimal(rate),
                total=Decimal("100"),
            ),
        ],
    )
    calculate(invoice, "Exemption")
    return invoice


def _rules(invoice: Invoice) -> set[str]:
    report = ReportBuilder()
    check_vat_categories(invoice, report)
    return report.build().rules()


class TestDescriptorTable:
    def test_all_families_present(self):
        assert [c.code for c in CATEGORIES] == ["S", "AE", "E", "Z", "G", "K", "L", "M"]

    def test_intra_community_prefix(self):
        ic = next(c for c in CATEGORIES if c.code == "K")
        assert ic.prefix == "IC"


class TestStandardRated:
    def test_clean(self):
        assert _rules(_invoice("S", "19")) == set()

    def test_zero_rate(self):
        assert "BR-S-5" in _rules(_invoice("S", "0"))

    def test_seller_identifier(self):
        assert "BR-S-2" in _rules(_invoice("S", "19", seller_vat=""))

    def test_seller_tax_registration_is_enough(self):
        invoice = _invoice("S", "19", seller_vat="")
        invoice.seller.tax_id = "201/123/45678"
        assert "BR-S-2" not in _rules(invoice)

    def test_missing_breakdown(self):
        invoice = _invoice("S", "19")
        invoice.trade_taxes = []
        assert "BR-S-1" in _rules(invoice)

    def test_reason_not_allowed(self):
        invoice = _invoice("S", "19")
        invoice.trade_taxes[0].exemption_reason = "Exempt"
        assert "BR-S-10" in _rules(invoice)

    def test_wrong_amount(self):
        invoice = _invoice("S", "19")
        invoice.trade_taxes[0].calculated_amount = Decimal("0")
        assert "BR-S-9" in _rules(invoice)

    def test_allowance_and_charge_rate(self):
        invoice = _invoice("S", "19")
        invoice.allowance_charges = [
            AllowanceCharge(charge=False, amount=Decimal("1"), tax_category="S", tax_rate=Decimal("0")),
            AllowanceCharge(charge=True, amount=Decimal("1"), tax_category="S", tax_rate=Decimal("0")),
        ]
        rules = _rules(invoice)
        assert "BR-S-6" in rules
        assert "BR-S-7" in rules


class TestZeroRatedFamilies:
    @pytest.mark.parametrize("category,prefix", [("E", "E"), ("Z", "Z"), ("AE", "AE"), ("G", "G"), ("K", "IC")])
    def test_positive_rate_rejected(self, category, prefix):
        assert f"BR-{prefix}-5" in _rules(_invoice(category, "7", buyer_vat="BE0123456789"))

    def test_exempt_clean(self):
        assert _rules(_invoice("E")) == set()

    def test_exempt_needs_reason(self):
        invoice = _invoice("E")
        invoice.trade_taxes[0].exemption_reason = ""
        assert "BR-E-10" in _rules(invoice)

    def test_zero_rated_rejects_reason(self):
        invoice = _invoice("Z")
        invoice.trade_taxes[0].exemption_reason = "Zero"
        assert "BR-Z-10" in _rules(invoice)

    def test_exactly_one_breakdown(self):
        invoice = _invoice("E")
        invoice.trade_taxes.append(TradeTax(category="E", rate=Decimal("0"), exemption_reason="Exempt"))
        assert "BR-E-1" in _rules(invoice)

    def test_export_needs_seller_vat(self):
        invoice = _invoice("G", seller_vat="")
        invoice.seller.tax_id = "201/123/45678"
        assert "BR-G-2" in _rules(invoice)


class TestReverseCharge:
    def test_buyer_vat_or_legal(self):
        assert "BR-AE-2" in _rules(_invoice("AE"))

    def test_buyer_legal_registration(self):
        invoice = _invoice("AE")
        invoice.buyer.legal_organization = LegalOrganization(id="0123456789", scheme="0208")
        assert "BR-AE-2" not in _rules(invoice)

    def test_clean_with_buyer_vat(self):
        assert _rules(_invoice("AE", buyer_vat="BE0123456789")) == set()

    def test_allowance_party_rule(self):
        invoice = _invoice("AE")
        invoice.allowance_charges = [AllowanceCharge(charge=False, amount=Decimal("5"), tax_category="AE")]
        assert "BR-AE-3" in _rules(invoice)


class TestIntraCommunity:
    def test_delivery_information(self):
        rules = _rules(_invoice("K", buyer_vat="BE0123456789"))
        assert "BR-IC-11" in rules
        assert "BR-IC-12" in rules

    def test_with_delivery(self):
        invoice = _invoice("K", buyer_vat="BE0123456789")
        invoice.delivery_date = date(2024, 3, 1)
        invoice.ship_to = Party(name="Depot", address=PostalAddress(country="BE"))
        assert _rules(invoice) == set()

    def test_buyer_vat_required(self):
        assert "BR-IC-2" in _rules(_invoice("K"))

    def test_seller_tax_registration_identifies(self):
        invoice = _invoice("K", seller_vat="", buyer_vat="BE0123456789")
        invoice.seller.tax_id = "201/123/45678"
        invoice.delivery_date = date(2024, 3, 1)
        invoice.ship_to = Party(name="Depot", address=PostalAddress(country="BE"))
        rules = _rules(invoice)
        assert "BR-IC-2" not in rules
        assert rules == set()


class TestCanaryAndCeuta:
    @pytest.mark.parametrize("category,prefix", [("L", "IG"), ("M", "IP")])
    def test_buyer_must_not_have_vat(self, category, prefix):
        assert f"BR-{prefix}-2" in _rules(_invoice(category, "7", buyer_vat="ES12345678Z"))

    @pytest.mark.parametrize("category", ["L", "M"])
    def test_zero_rate_allowed(self, category):
        assert _rules(_invoice(category, "0")) == set()


class TestNotSubject:
    def test_clean(self):
        invoice = _invoice("O")
        assert _rules(invoice) == set()

    def test_rate_not_allowed(self):
        assert "BR-O-5" in _rules(_invoice("O", "7"))

    def test_only_breakdown(self):
        invoice = _invoice("O")
        invoice.lines.append(
            InvoiceLine(line_id="2", quantity=Decimal("1"), net_price=Decimal("10"), tax_category="S", tax_rate=Decimal("19"), total=Decimal("10")),
        )
        calculate(invoice, "Not subject")
        rules = _rules(invoice)
        assert "BR-O-8" in rules
        assert "BR-O-12" in rules

    def test_needs_reason(self):
        invoice = _invoice("O")
        invoice.trade_taxes[0].exemption_reason = ""
        assert "BR-O-11" in _rules(invoice)

    def test_needs_some_identifier(self):
        assert "BR-O-2" in _rules(_invoice("O", seller_vat=""))


class TestExpectedBasis:
    def test_clamped(self, scenario_b):
        assert expected_basis(scenario_b, "S", Decimal("19")) == Decimal("0")

    def test_lines_and_charges(self, scenario_a):
        assert expected_basis(scenario_a, "S", Decimal("19")) == Decimal("180")

    def test_other_rate_ignored(self, scenario_a):
        assert expected_basis(scenario_a, "S", Decimal("7")) == Decimal("0")
