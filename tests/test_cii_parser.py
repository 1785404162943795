from __future__ import annotations

import io
from datetime import date
from decimal import Decimal

import pytest

from einvoice.config import SPEC_FACTURX_MINIMUM
from einvoice.models.invoice import SCHEMA_CII, SCHEMA_UBL
from einvoice.services.cii_builder import to_bytes
from einvoice.services.cii_parser import parse, parse_bytes, parse_file
from einvoice.services.exceptions import InvoiceIOError, ParseError, UnsupportedSchemaError
from einvoice.services.validator import validate


class TestRoundTrip:
    def test_scenario_a(self, scenario_a):
        parsed = parse_bytes(to_bytes(scenario_a))
        assert parsed == scenario_a
        assert validate(parsed).all() == []

    def test_rich_invoice_fields(self, rich_invoice):
        parsed = parse_bytes(to_bytes(rich_invoice))

        assert parsed.number == "RE-2024-0042"
        assert parsed.issue_date == date(2024, 5, 2)
        assert parsed.notes[0].subject_code == "AAI"
        assert parsed.seller.legal_organization.trading_name == "Lumière"
        assert parsed.seller.contacts[0].department == "Billing"
        assert parsed.seller.electronic_address_scheme == "EM"
        assert parsed.seller.tax_id == "552100554"
        assert parsed.buyer.legal_id == "CHE-123.456.789"
        assert parsed.ship_to.country == "CH"
        assert parsed.payee.name == "Factor SA"
        assert parsed.supporting_documents[0].attachment == b"hello"
        assert parsed.preceding_invoices[0].issue_date == date(2024, 1, 10)
        assert parsed.billing_period.end == date(2024, 4, 30)
        assert parsed.mandate_id == "MANDATE-9"
        assert parsed.creditor_reference == "FR12ZZZ123456"
        assert parsed.payment_reference == "RE-2024-0042"
        assert parsed.trade_taxes[0].tax_point_date == date(2024, 4, 30)
        assert parsed.tax_total_accounting == Decimal("20.25")
        assert parsed.prepaid == Decimal("50.00")

        line = parsed.lines[0]
        assert line.total == Decimal("285.00")
        assert line.base_quantity == Decimal("1")
        assert line.base_quantity_unit == "C62"
        assert line.order_line_ref == "3"
        assert line.accounting_ref == "4400"
        assert line.gross_price_allowances[0].reason == "Trade discount"
        assert line.classifications[0].list_version == "19"
        assert line.tax_rate == Decimal("7.7")

    def test_rich_invoice_equal(self, rich_invoice):
        assert parse_bytes(to_bytes(rich_invoice)) == rich_invoice

    def test_minimum_profile_keeps_supported_fields(self, scenario_a):
        scenario_a.specification_id = SPEC_FACTURX_MINIMUM
        parsed = parse_bytes(to_bytes(scenario_a))
        assert parsed.lines == []
        assert parsed.trade_taxes == []
        assert parsed.buyer.address is None
        assert parsed.number == scenario_a.number
        assert parsed.grand_total == scenario_a.grand_total
        assert parsed.due_payable == scenario_a.due_payable
        assert parsed.profile.name == "minimum"

    def test_peppol_round_trip_is_clean(self, peppol_invoice):
        parsed = parse_bytes(to_bytes(peppol_invoice))
        assert parsed.parse_violations == []
        assert validate(parsed).all() == []


class TestSyntaxErrors:
    def test_ill_formed(self):
        with pytest.raises(ParseError) as exc_info:
            parse_bytes(b"<root>\n<unclosed>")
        assert exc_info.value.kind == "parse"
        assert exc_info.value.sourceline is not None

    def test_bad_decimal_names_line(self, scenario_a):
        data = to_bytes(scenario_a).replace(b">1.0000</ram:BilledQuantity>", b">one</ram:BilledQuantity>", 1)
        with pytest.raises(ParseError, match="line 1") as exc_info:
            parse_bytes(data)
        assert exc_info.value.line_id == "1"

    def test_bad_date_format(self, scenario_a):
        data = to_bytes(scenario_a).replace(b'format="102">20240315', b'format="610">20240315', 1)
        with pytest.raises(ParseError, match="date format"):
            parse_bytes(data)

    def test_missing_date_format(self, scenario_a):
        data = to_bytes(scenario_a).replace(b'format="102">20240315', b">20240315", 1)
        with pytest.raises(ParseError):
            parse_bytes(data)

    def test_invalid_date(self, scenario_a):
        data = to_bytes(scenario_a).replace(b">20240315<", b">20241335<", 1)
        with pytest.raises(ParseError, match="Invalid date"):
            parse_bytes(data)

    def test_bad_type_code(self, scenario_a):
        data = to_bytes(scenario_a).replace(b"<ram:TypeCode>380</ram:TypeCode>", b"<ram:TypeCode>X</ram:TypeCode>", 1)
        with pytest.raises(ParseError, match="Invalid code"):
            parse_bytes(data)

    def test_bad_attachment(self, scenario_a):
        from einvoice.models.invoice import SupportingDocument

        scenario_a.supporting_documents = [SupportingDocument(id="TS-1", attachment=b"hello")]
        data = to_bytes(scenario_a).replace(b"aGVsbG8=", b"a$$$", 1)
        with pytest.raises(ParseError, match="cannot decode attachment"):
            parse_bytes(data)


class TestSchemaDetection:
    def test_ubl_invoice_root(self):
        parsed = parse_bytes(b'<Invoice xmlns="urn:oasis:names:specification:ubl:schema:xsd:Invoice-2"/>')
        assert parsed.schema_type == SCHEMA_UBL
        assert parsed.number == ""
        assert parsed.lines == []

    def test_ubl_credit_note_root(self):
        parsed = parse_bytes(b'<CreditNote xmlns="urn:oasis:names:specification:ubl:schema:xsd:CreditNote-2"/>')
        assert parsed.schema_type == SCHEMA_UBL

    def test_ubl_namespace_with_wrong_root(self):
        data = b'<CreditNote xmlns="urn:oasis:names:specification:ubl:schema:xsd:Invoice-2"/>'
        with pytest.raises(UnsupportedSchemaError) as exc_info:
            parse_bytes(data)
        assert exc_info.value.kind == "unsupported-schema"
        assert exc_info.value.namespace.endswith("Invoice-2")

    def test_cii_schema_type(self, scenario_a):
        assert parse_bytes(to_bytes(scenario_a)).schema_type == SCHEMA_CII

    def test_unknown_root(self):
        with pytest.raises(UnsupportedSchemaError):
            parse_bytes(b"<invoice/>")


class TestStructuralChecks:
    def test_unexpected_tax_currency(self, scenario_a):
        data = to_bytes(scenario_a).replace(b'currencyID="EUR"', b'currencyID="USD"', 1)
        parsed = parse_bytes(data)
        assert [v.rule for v in parsed.parse_violations] == ["UNEXPECTED-TAX-CURRENCY"]
        assert parsed.tax_total == Decimal("0")
        assert validate(parsed).violations()[0].rule == "UNEXPECTED-TAX-CURRENCY"

    def test_empty_element_for_peppol(self, peppol_invoice):
        data = to_bytes(peppol_invoice).replace(
            b"<ram:Name>Oak shelf</ram:Name>",
            b"<ram:Name>Oak shelf</ram:Name><ram:Description/>",
            1,
        )
        parsed = parse_bytes(data)
        assert [v.rule for v in parsed.parse_violations] == ["PEPPOL-EN16931-R008"]
        assert "Description" in parsed.parse_violations[0].text

    def test_empty_element_ignored_outside_peppol(self, scenario_a):
        data = to_bytes(scenario_a).replace(
            b"<ram:Name>Oak shelf</ram:Name>",
            b"<ram:Name>Oak shelf</ram:Name><ram:Description/>",
            1,
        )
        assert parse_bytes(data).parse_violations == []


class TestSemanticGaps:
    def test_missing_fields_still_parse(self, scenario_a):
        scenario_a.number = ""
        scenario_a.seller.name = ""
        parsed = parse_bytes(to_bytes(scenario_a))
        assert parsed.number == ""
        report = validate(parsed)
        assert report.has("BR-2")
        assert report.has("BR-6")

    def test_missing_rate_reads_as_zero(self, scenario_a):
        data = to_bytes(scenario_a).replace(b"<ram:RateApplicablePercent>19</ram:RateApplicablePercent>", b"", 1)
        parsed = parse_bytes(data)
        assert parsed.lines[0].tax_rate == Decimal("0")

    def test_empty_invoicing_period(self, scenario_a):
        data = to_bytes(scenario_a).replace(
            b"<ram:InvoiceCurrencyCode>EUR</ram:InvoiceCurrencyCode>",
            b"<ram:InvoiceCurrencyCode>EUR</ram:InvoiceCurrencyCode><ram:BillingSpecifiedPeriod></ram:BillingSpecifiedPeriod>",
            1,
        )
        parsed = parse_bytes(data)
        assert parsed.billing_period is not None
        assert parsed.billing_period.start is None
        assert validate(parsed).has("BR-CO-19")

    def test_empty_line_period(self, scenario_a):
        data = to_bytes(scenario_a).replace(
            b"<ram:SpecifiedLineTradeSettlement>",
            b"<ram:SpecifiedLineTradeSettlement><ram:BillingSpecifiedPeriod/>",
            1,
        )
        parsed = parse_bytes(data)
        assert parsed.lines[0].period is not None
        assert parsed.lines[1].period is None
        assert validate(parsed).has("BR-CO-20")


class TestSources:
    def test_parse_stream(self, scenario_a):
        parsed = parse(io.BytesIO(to_bytes(scenario_a)))
        assert parsed.number == "INV-2024-001"

    def test_parse_file(self, scenario_a, tmp_path):
        path = tmp_path / "invoice.xml"
        path.write_bytes(to_bytes(scenario_a))
        assert parse_file(path).grand_total == Decimal("214.20")

    def test_missing_file(self, tmp_path):
        with pytest.raises(InvoiceIOError) as exc_info:
            parse_file(tmp_path / "nope.xml")
        assert exc_info.value.kind == "io"
