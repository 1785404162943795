from __future__ import annotations

from decimal import Decimal

import pytest

from einvoice.utils.validators import (
    count_digits,
    has_country_prefix,
    has_max_decimals,
    is_peppol_business_process,
    is_valid_email,
    is_valid_iban,
    is_valid_skonto,
)


class TestIsValidIban:
    @pytest.mark.parametrize(
        "value",
        [
            "DE02120300000000202051",
            "DE02 1203 0000 0000 2020 51",
            "fr7630006000011234567890189",
            "NO9386011117947",
        ],
    )
    def test_valid(self, value):
        assert is_valid_iban(value)

    @pytest.mark.parametrize(
        "value",
        [
            "",
            "DE0212030000",
            "D102120300000000202051",
            "DEAB120300000000202051",
            "DE02-1203-0000-0000-2020-51",
            "DE02" + "1" * 31,
        ],
    )
    def test_invalid(self, value):
        assert not is_valid_iban(value)


class TestIsValidEmail:
    @pytest.mark.parametrize("value", ["claire@lumiere.example", "ab@cd", "first.last@example.com"])
    def test_valid(self, value):
        assert is_valid_email(value)

    @pytest.mark.parametrize(
        "value",
        [
            "no-at-sign",
            "two@@example.com",
            "a@example.com",
            "ab@c",
            ".ab@example.com",
            "ab@example.com.",
            "ab.@example.com",
            "ab@.example.com",
            "ab @example.com",
        ],
    )
    def test_invalid(self, value):
        assert not is_valid_email(value)


class TestHasCountryPrefix:
    def test_valid(self):
        assert has_country_prefix("DE123456789")
        assert has_country_prefix("EL123456789")

    def test_lowercase(self):
        assert not has_country_prefix("de123456789")

    def test_digits(self):
        assert not has_country_prefix("123456789")

    def test_empty(self):
        assert not has_country_prefix("")


class TestCountDigits:
    def test_mixed(self):
        assert count_digits("+49 (40) 123-456") == 10

    def test_none(self):
        assert count_digits("n/a") == 0


class TestHasMaxDecimals:
    def test_within(self):
        assert has_max_decimals(Decimal("100.12"), 2)
        assert has_max_decimals(Decimal("100"), 2)

    def test_too_many(self):
        assert not has_max_decimals(Decimal("100.123"), 2)

    def test_trailing_zeros_count(self):
        assert not has_max_decimals(Decimal("1.230"), 2)

    def test_exponent_notation(self):
        assert has_max_decimals(Decimal("1E+2"), 2)

    def test_non_finite(self):
        assert not has_max_decimals(Decimal("NaN"), 2)


class TestIsPeppolBusinessProcess:
    def test_billing_01(self):
        assert is_peppol_business_process("urn:fdc:peppol.eu:2017:poacc:billing:01:1.0")

    def test_surrounding_whitespace(self):
        assert is_peppol_business_process(" urn:fdc:peppol.eu:2017:poacc:billing:05:1.0\n")

    def test_single_digit(self):
        assert not is_peppol_business_process("urn:fdc:peppol.eu:2017:poacc:billing:1:1.0")

    def test_other_version(self):
        assert not is_peppol_business_process("urn:fdc:peppol.eu:2017:poacc:billing:01:2.0")


class TestIsValidSkonto:
    def test_plain_terms(self):
        assert is_valid_skonto("Net 30 days")

    def test_structured(self):
        assert is_valid_skonto("#SKONTO#TAGE=14#PROZENT=2.00#\n")

    def test_structured_with_base(self):
        assert is_valid_skonto("#SKONTO#TAGE=7#PROZENT=3#BASISBETRAG=100.50#")

    def test_free_text_skonto(self):
        assert not is_valid_skonto("2% Skonto bei Zahlung innerhalb 14 Tagen")

    def test_too_many_percent_decimals(self):
        assert not is_valid_skonto("#SKONTO#TAGE=14#PROZENT=2.125#")
