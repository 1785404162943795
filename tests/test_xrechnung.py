from __future__ import annotations

from einvoice.models.invoice import PaymentMeans, PaymentTerms
from einvoice.models.party import Contact, Party, PostalAddress
from einvoice.models.violation import WARNING
from einvoice.services.validator import validate


class TestXRechnungRules:
    def test_clean(self, xrechnung_invoice):
        assert validate(xrechnung_invoice).all() == []

    def test_payment_instructions(self, xrechnung_invoice):
        xrechnung_invoice.payment_means = []
        assert validate(xrechnung_invoice).has("BR-DE-1")

    def test_seller_contact_group(self, xrechnung_invoice):
        xrechnung_invoice.seller.contacts = []
        report = validate(xrechnung_invoice)
        assert report.has("BR-DE-2")
        assert not report.has("BR-DE-6")

    def test_contact_details(self, xrechnung_invoice):
        xrechnung_invoice.seller.contacts = [Contact()]
        report = validate(xrechnung_invoice)
        for rule in ("BR-DE-5", "BR-DE-6", "BR-DE-7"):
            assert report.has(rule), rule

    def test_department_is_a_contact_point(self, xrechnung_invoice):
        xrechnung_invoice.seller.contacts[0].name = ""
        xrechnung_invoice.seller.contacts[0].department = "Accounts"
        assert not validate(xrechnung_invoice).has("BR-DE-5")

    def test_seller_and_buyer_address(self, xrechnung_invoice):
        xrechnung_invoice.seller.address.city = ""
        xrechnung_invoice.seller.address.postcode = ""
        xrechnung_invoice.buyer.address.city = ""
        xrechnung_invoice.buyer.address.postcode = ""
        report = validate(xrechnung_invoice)
        for rule in ("BR-DE-3", "BR-DE-4", "BR-DE-8", "BR-DE-9"):
            assert report.has(rule), rule

    def test_deliver_to_address(self, xrechnung_invoice):
        xrechnung_invoice.ship_to = Party(name="Lager", address=PostalAddress(country="DE"))
        report = validate(xrechnung_invoice)
        assert report.has("BR-DE-10")
        assert report.has("BR-DE-11")

    def test_buyer_reference(self, xrechnung_invoice):
        xrechnung_invoice.buyer_reference = ""
        assert validate(xrechnung_invoice).has("BR-DE-15")

    def test_seller_tax_identifier(self, xrechnung_invoice):
        xrechnung_invoice.seller.vat_id = ""
        assert validate(xrechnung_invoice).has("BR-DE-16")

    def test_vat_id_country_prefix(self, xrechnung_invoice):
        xrechnung_invoice.buyer.vat_id = "123456789"
        assert validate(xrechnung_invoice).has("BR-DE-16")

    def test_type_code(self, xrechnung_invoice):
        xrechnung_invoice.type_code = 393
        assert validate(xrechnung_invoice).has("BR-DE-17")

    def test_skonto_format(self, xrechnung_invoice):
        xrechnung_invoice.payment_terms = [PaymentTerms(description="2% Skonto bei Zahlung in 10 Tagen")]
        assert validate(xrechnung_invoice).has("BR-DE-18")

    def test_skonto_structured(self, xrechnung_invoice):
        xrechnung_invoice.payment_terms = [PaymentTerms(description="#SKONTO#TAGE=10#PROZENT=2.00#\n")]
        assert not validate(xrechnung_invoice).has("BR-DE-18")

    def test_corrected_invoice_warning(self, xrechnung_invoice):
        xrechnung_invoice.type_code = 384
        report = validate(xrechnung_invoice)
        assert report.has("BR-DE-26")
        assert report.is_valid

    def test_phone_and_email_shape_are_warnings(self, xrechnung_invoice):
        xrechnung_invoice.seller.contacts[0].phone = "+49"
        xrechnung_invoice.seller.contacts[0].email = "erika@"
        report = validate(xrechnung_invoice)
        assert {v.rule for v in report.warnings()} == {"BR-DE-27", "BR-DE-28"}
        assert all(v.severity == WARNING for v in report.warnings())
        assert report.is_valid


class TestPaymentMeans:
    def test_credit_transfer_without_account(self, xrechnung_invoice):
        xrechnung_invoice.payment_means = [PaymentMeans(type_code=30)]
        assert validate(xrechnung_invoice).has("BR-DE-23-a")

    def test_credit_transfer_with_card(self, xrechnung_invoice):
        xrechnung_invoice.payment_means[0].card_id = "1234"
        assert validate(xrechnung_invoice).has("BR-DE-23-b")

    def test_card_payment(self, xrechnung_invoice):
        xrechnung_invoice.payment_means = [PaymentMeans(type_code=48, payee_iban="DE02120300000000202051")]
        report = validate(xrechnung_invoice)
        assert report.has("BR-DE-24-a")
        assert report.has("BR-DE-24-b")

    def test_direct_debit(self, xrechnung_invoice):
        xrechnung_invoice.payment_means = [PaymentMeans(type_code=59)]
        report = validate(xrechnung_invoice)
        for rule in ("BR-DE-25-a", "BR-DE-30", "BR-DE-31"):
            assert report.has(rule), rule

    def test_direct_debit_complete(self, xrechnung_invoice):
        xrechnung_invoice.payment_means = [PaymentMeans(type_code=59, payer_iban="DE02120300000000202051")]
        xrechnung_invoice.creditor_reference = "DE98ZZZ09999999999"
        xrechnung_invoice.mandate_id = "MANDATE-1"
        assert validate(xrechnung_invoice).all() == []

    def test_direct_debit_with_transfer(self, xrechnung_invoice):
        xrechnung_invoice.payment_means = [
            PaymentMeans(type_code=59, payer_iban="DE02120300000000202051", payee_iban="DE02120300000000202051"),
        ]
        xrechnung_invoice.creditor_reference = "DE98ZZZ09999999999"
        assert validate(xrechnung_invoice).has("BR-DE-25-b")

    def test_sepa_iban_shape_warning(self, xrechnung_invoice):
        xrechnung_invoice.payment_means[0].payee_iban = "NOT-AN-IBAN"
        report = validate(xrechnung_invoice)
        assert "BR-DE-19" in {v.rule for v in report.warnings()}


class TestGermanSellerOutsideXRechnung:
    def test_warning_for_en16931(self, xrechnung_invoice):
        xrechnung_invoice.specification_id = "urn:cen.eu:en16931:2017"
        report = validate(xrechnung_invoice)
        assert report.has("BR-DE-21")
        assert not report.has("BR-DE-15")

    def test_no_warning_for_xrechnung(self, xrechnung_invoice):
        assert not validate(xrechnung_invoice).has("BR-DE-21")
