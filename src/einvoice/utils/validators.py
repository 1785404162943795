from __future__ import annotations

import re
from decimal import Decimal

from einvoice.config import BP_PEPPOL_PATTERN

_SKONTO = re.compile(
    r"#SKONTO#TAGE=\d+#PROZENT=\d+(\.\d{1,2})?#(BASISBETRAG=\d+(\.\d{1,2})?#)?",
    re.IGNORECASE,
)


def is_valid_iban(value: str) -> bool:
    """Structural IBAN check (ISO 13616 shape only, no modulo-97 checksum).

    Spaces are ignored and letters are compared case-insensitively.
    """
    iban = value.replace(" ", "").upper()
    if not 15 <= len(iban) <= 34:
        return False
    return re.fullmatch(r"[A-Z]{2}[0-9]{2}[A-Z0-9]+", iban) is not None


def is_valid_email(value: str) -> bool:
    """Check the basic shape of an e-mail address.

    Exactly one "@", no leading or trailing dot, no dot or whitespace next
    to the "@", and at least two characters on each side.
    """
    if value.count("@") != 1:
        return False
    if value.startswith(".") or value.endswith("."):
        return False
    local, domain = value.split("@")
    if len(local) < 2 or len(domain) < 2:
        return False
    if local[-1] == "." or local[-1].isspace():
        return False
    if domain[0] == "." or domain[0].isspace():
        return False
    return True


def has_country_prefix(vat_id: str) -> bool:
    """True if *vat_id* starts with two uppercase ASCII letters (ISO 3166-1 alpha-2)."""
    return re.match(r"[A-Z]{2}", vat_id) is not None


def count_digits(value: str) -> int:
    return sum(1 for ch in value if ch.isdigit())


def has_max_decimals(value: Decimal, places: int) -> bool:
    """True if *value* carries at most *places* fractional digits.

    Trailing zeros count: Decimal("1.230") has three places.
    """
    exponent = value.as_tuple().exponent
    if not isinstance(exponent, int):
        return False
    return exponent >= -places


def is_peppol_business_process(value: str) -> bool:
    """Match urn:fdc:peppol.eu:2017:poacc:billing:NN:1.0."""
    return re.fullmatch(BP_PEPPOL_PATTERN, value.strip()) is not None


def is_valid_skonto(terms: str) -> bool:
    """Payment terms mentioning SKONTO must use the structured #SKONTO# form."""
    if "SKONTO" not in terms.upper():
        return True
    return _SKONTO.search(terms) is not None
