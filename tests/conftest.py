from __future__ import annotations

from decimal import Decimal

import pytest
from lxml import etree

from einvoice.config import CII_NSMAP, SPEC_EN16931, SPEC_PEPPOL_BILLING_30
from einvoice.models.invoice import Invoice
from einvoice.services.calculator import calculate, update_line_totals


def xml_text(el: etree._Element, xpath: str) -> str | None:
    """Extract text from a CII element by prefixed path (rsm/ram/udt/qdt)."""
    found = el.find(xpath, namespaces=CII_NSMAP)
    return found.text if found is not None else None


# --- Party fixtures ---


@pytest.fixture
def seller_dict() -> dict:
    return {
        "name": "Atelier Lumière SAS",
        "vat_id": "FR12345678901",
        "address": {
            "line1": "12 Rue de la Paix",
            "postcode": "75002",
            "city": "Paris",
            "country": "FR",
        },
    }


@pytest.fixture
def buyer_dict() -> dict:
    return {
        "name": "Café du Port SARL",
        "address": {
            "line1": "3 Quai des Belges",
            "postcode": "13001",
            "city": "Marseille",
            "country": "FR",
        },
    }


# --- Scenario A: standard rated 19% with a document level discount ---


@pytest.fixture
def scenario_a_dict(seller_dict, buyer_dict) -> dict:
    return {
        "number": "INV-2024-001",
        "issue_date": "2024-03-15",
        "type_code": 380,
        "currency": "EUR",
        "specification_id": SPEC_EN16931,
        "seller": seller_dict,
        "buyer": buyer_dict,
        "lines": [
            {
                "id": "1",
                "name": "Oak shelf",
                "quantity": "1",
                "unit": "C62",
                "net_price": "100.00",
                "tax_category": "S",
                "tax_rate": "19",
                "total": "100.00",
            },
            {
                "id": "2",
                "name": "Wall bracket",
                "quantity": "2",
                "unit": "C62",
                "net_price": "50.00",
                "tax_category": "S",
                "tax_rate": "19",
                "total": "100.00",
            },
        ],
        "allowance_charges": [
            {
                "charge": False,
                "amount": "20.00",
                "reason": "Discount",
                "reason_code": "95",
                "tax_category": "S",
                "tax_rate": "19",
            },
        ],
        "payment_terms": [{"description": "Net 30 days", "due_date": "2024-04-14"}],
    }


@pytest.fixture
def scenario_a(scenario_a_dict) -> Invoice:
    invoice = Invoice.from_dict(scenario_a_dict)
    calculate(invoice)
    return invoice


# --- Scenarios B and C: document level allowance/charge without lines ---


@pytest.fixture
def scenario_b() -> Invoice:
    return Invoice.from_dict(
        {
            "number": "INV-B",
            "currency": "EUR",
            "specification_id": SPEC_EN16931,
            "allowance_charges": [
                {"charge": False, "amount": "100", "reason": "Discount", "reason_code": "95", "tax_category": "S", "tax_rate": "19"},
            ],
        }
    )


@pytest.fixture
def scenario_c() -> Invoice:
    return Invoice.from_dict(
        {
            "number": "INV-C",
            "currency": "EUR",
            "specification_id": SPEC_EN16931,
            "allowance_charges": [
                {"charge": True, "amount": "50", "reason": "Freight", "reason_code": "FC", "tax_category": "S", "tax_rate": "19"},
            ],
        }
    )


# --- Scenario D: mixed categories ---


@pytest.fixture
def scenario_d(seller_dict, buyer_dict) -> Invoice:
    return Invoice.from_dict(
        {
            "number": "INV-D",
            "issue_date": "2024-03-15",
            "currency": "EUR",
            "specification_id": SPEC_EN16931,
            "seller": seller_dict,
            "buyer": buyer_dict,
            "lines": [
                {"id": "1", "name": "Consulting", "quantity": "1", "unit": "HUR", "net_price": "100", "tax_category": "S", "tax_rate": "19", "total": "100"},
                {"id": "2", "name": "Training", "quantity": "1", "unit": "HUR", "net_price": "50", "tax_category": "E", "tax_rate": "0", "total": "50"},
            ],
            "allowance_charges": [
                {"charge": True, "amount": "20", "reason": "Packing", "reason_code": "ABL", "tax_category": "Z", "tax_rate": "0"},
                {"charge": False, "amount": "5", "reason": "Discount", "reason_code": "95", "tax_category": "G", "tax_rate": "0"},
            ],
        }
    )


# --- Scenario E: reverse charge ---


@pytest.fixture
def scenario_e() -> Invoice:
    return Invoice.from_dict(
        {
            "number": "INV-E",
            "issue_date": "2024-03-15",
            "currency": "EUR",
            "specification_id": SPEC_EN16931,
            "seller": {"name": "Nordlicht GmbH", "vat_id": "DE123456789", "address": {"city": "Hamburg", "postcode": "20095", "country": "DE"}},
            "buyer": {"name": "Soleil SA", "vat_id": "FR45678901234", "address": {"city": "Lyon", "postcode": "69001", "country": "FR"}},
            "lines": [
                {"id": "1", "name": "Machine part", "quantity": "1", "unit": "C62", "net_price": "100", "tax_category": "AE", "tax_rate": "0", "total": "100"},
            ],
            "trade_taxes": [
                {"category": "AE", "rate": "0", "basis_amount": "100", "calculated_amount": "0", "exemption_reason": "Reverse charge"},
            ],
            "payment_terms": ["Net 30 days"],
            "totals": {
                "line_total": "100",
                "tax_basis_total": "100",
                "tax_total": "0",
                "grand_total": "100",
                "due_payable": "100",
            },
        }
    )


# --- Scenario F: PEPPOL with an over-precise breakdown amount ---


@pytest.fixture
def scenario_f(scenario_a_dict) -> Invoice:
    scenario_a_dict["specification_id"] = SPEC_PEPPOL_BILLING_30
    invoice = Invoice.from_dict(scenario_a_dict)
    calculate(invoice)
    invoice.trade_taxes[0].basis_amount = Decimal("100.123")
    return invoice


# --- PEPPOL ready invoice ---


@pytest.fixture
def peppol_invoice(scenario_a_dict) -> Invoice:
    scenario_a_dict["specification_id"] = SPEC_PEPPOL_BILLING_30
    scenario_a_dict["business_process"] = "urn:fdc:peppol.eu:2017:poacc:billing:01:1.0"
    scenario_a_dict["buyer_reference"] = "PO-4711"
    scenario_a_dict["seller"]["electronic_address"] = "seller@example.com"
    scenario_a_dict["seller"]["electronic_address_scheme"] = "EM"
    scenario_a_dict["buyer"]["electronic_address"] = "buyer@example.com"
    scenario_a_dict["buyer"]["electronic_address_scheme"] = "EM"
    invoice = Invoice.from_dict(scenario_a_dict)
    calculate(invoice)
    return invoice


# --- XRechnung ready invoice ---


@pytest.fixture
def xrechnung_dict(scenario_a_dict) -> dict:
    scenario_a_dict["specification_id"] = "urn:cen.eu:en16931:2017#compliant#urn:xeinkauf.de:kosit:xrechnung_3.0"
    scenario_a_dict["buyer_reference"] = "04011000-12345-34"
    scenario_a_dict["seller"] = {
        "name": "Nordlicht GmbH",
        "vat_id": "DE123456789",
        "address": {"line1": "Hafenstraße 1", "postcode": "20095", "city": "Hamburg", "country": "DE"},
        "contacts": [{"name": "Erika Muster", "phone": "+49 40 123456", "email": "erika@nordlicht.example"}],
    }
    scenario_a_dict["buyer"] = {
        "name": "Stadtverwaltung Musterstadt",
        "address": {"line1": "Rathausplatz 1", "postcode": "10115", "city": "Berlin", "country": "DE"},
    }
    scenario_a_dict["payment_means"] = [{"type_code": 58, "payee_iban": "DE02120300000000202051"}]
    return scenario_a_dict


@pytest.fixture
def xrechnung_invoice(xrechnung_dict) -> Invoice:
    invoice = Invoice.from_dict(xrechnung_dict)
    calculate(invoice)
    return invoice


# --- Rich invoice touching every optional group ---


@pytest.fixture
def rich_invoice() -> Invoice:
    invoice = Invoice.from_dict(
        {
            "number": "RE-2024-0042",
            "issue_date": "2024-05-02",
            "type_code": 380,
            "currency": "EUR",
            "tax_currency": "CHF",
            "buyer_reference": "LEITWEG-1",
            "specification_id": SPEC_EN16931,
            "notes": [{"text": "Thank you for your order", "subject_code": "AAI"}],
            "seller": {
                "name": "Atelier Lumière SAS",
                "ids": ["SUP-7"],
                "global_ids": [{"id": "4000001000005", "scheme": "0088"}],
                "legal_organization": {"id": "552100554", "scheme": "0002", "trading_name": "Lumière"},
                "contacts": [{"name": "Claire Martin", "department": "Billing", "phone": "+33 1 23 45 67 89", "email": "claire@lumiere.example"}],
                "address": {"line1": "12 Rue de la Paix", "line2": "Bâtiment B", "postcode": "75002", "city": "Paris", "country": "FR", "subdivision": "Île-de-France"},
                "electronic_address": "claire@lumiere.example",
                "electronic_address_scheme": "EM",
                "vat_id": "FR12345678901",
                "tax_id": "552100554",
            },
            "buyer": {
                "name": "Helvetia Möbel AG",
                "legal_organization": {"id": "CHE-123.456.789"},
                "address": {"postcode": "8001", "city": "Zürich", "country": "CH"},
                "vat_id": "CHE123456789",
            },
            "payee": {"name": "Factor SA", "ids": ["FAC-1"]},
            "ship_to": {"name": "Lager Zürich", "address": {"line1": "Hafenweg 4", "postcode": "8005", "city": "Zürich", "country": "CH"}},
            "tax_representative": {"name": "Rep SARL", "vat_id": "FR99887766554", "address": {"city": "Lyon", "country": "FR"}},
            "buyer_order_ref": "PO-77",
            "contract_ref": "CT-2024-1",
            "preceding_invoices": [{"id": "RE-2024-0001", "issue_date": "2024-01-10"}],
            "supporting_documents": [
                {"id": "TS-5", "type_code": "916", "name": "Timesheet", "attachment": "aGVsbG8=", "mime_code": "text/plain", "filename": "ts.txt"},
            ],
            "billing_period": {"start": "2024-04-01", "end": "2024-04-30"},
            "delivery_date": "2024-04-30",
            "lines": [
                {
                    "id": "10",
                    "note": "Delivered in two parts",
                    "global_id": "4012345000009",
                    "global_id_scheme": "0160",
                    "seller_assigned_id": "SKU-OAK",
                    "buyer_assigned_id": "B-991",
                    "name": "Oak shelf",
                    "description": "Solid oak, oiled",
                    "characteristics": [{"name": "Colour", "value": "Natural"}],
                    "classifications": [{"code": "56101500", "list_id": "TST", "list_version": "19"}],
                    "origin_country": "FR",
                    "quantity": "3",
                    "unit": "C62",
                    "gross_price": "110.00",
                    "gross_price_allowances": [{"charge": False, "amount": "10.00", "reason": "Trade discount"}],
                    "net_price": "100.00",
                    "base_quantity": "1",
                    "base_quantity_unit": "C62",
                    "period": {"start": "2024-04-01", "end": "2024-04-15"},
                    "allowance_charges": [{"charge": False, "amount": "15.00", "reason": "Loyalty", "reason_code": "100"}],
                    "tax_category": "S",
                    "tax_rate": "7.7",
                    "order_line_ref": "3",
                    "accounting_ref": "4400",
                },
            ],
            "allowance_charges": [
                {"charge": True, "amount": "12.50", "basis_amount": "125.00", "percent": "10", "reason": "Freight", "reason_code": "FC", "tax_category": "S", "tax_rate": "7.7"},
            ],
            "trade_taxes": [{"category": "S", "rate": "7.7", "tax_point_date": "2024-04-30"}],
            "payment_means": [
                {"type_code": 58, "information": "SEPA credit transfer", "payee_iban": "FR7630006000011234567890189", "payee_account_name": "Lumière", "payee_bic": "AGRIFRPP"},
            ],
            "payment_terms": [{"description": "Net 14 days", "due_date": "2024-05-16"}],
            "mandate_id": "MANDATE-9",
            "creditor_reference": "FR12ZZZ123456",
            "payment_reference": "RE-2024-0042",
            "totals": {"prepaid": "50.00", "tax_total_accounting": "20.25"},
        }
    )
    update_line_totals(invoice)
    calculate(invoice)
    return invoice
