from __future__ import annotations

import logging
from dataclasses import dataclass

from einvoice.config import (
    SPEC_EN16931,
    SPEC_FACTURX_BASIC,
    SPEC_FACTURX_BASICWL,
    SPEC_FACTURX_EXTENDED,
    SPEC_FACTURX_MINIMUM,
    SPEC_PEPPOL_BILLING_30,
)
from einvoice.utils.validators import is_peppol_business_process

logger = logging.getLogger(__name__)

LEVEL_UNKNOWN = 0
LEVEL_MINIMUM = 1
LEVEL_BASICWL = 2
LEVEL_BASIC = 3
LEVEL_EN16931 = 4
LEVEL_EXTENDED = 5

LEVEL_NAMES = {
    LEVEL_UNKNOWN: "unknown",
    LEVEL_MINIMUM: "minimum",
    LEVEL_BASICWL: "basic-wl",
    LEVEL_BASIC: "basic",
    LEVEL_EN16931: "en16931",
    LEVEL_EXTENDED: "extended",
}

# Exact URNs seen in the wild, including the ZUGFeRD 2.0 spellings
_KNOWN: dict[str, tuple[int, frozenset[str]]] = {
    SPEC_FACTURX_MINIMUM: (LEVEL_MINIMUM, frozenset({"minimum"})),
    "urn:zugferd.de:2p0:minimum": (LEVEL_MINIMUM, frozenset({"minimum"})),
    SPEC_FACTURX_BASICWL: (LEVEL_BASICWL, frozenset({"basic-wl"})),
    "urn:zugferd.de:2p0:basicwl": (LEVEL_BASICWL, frozenset({"basic-wl"})),
    SPEC_FACTURX_BASIC: (LEVEL_BASIC, frozenset({"basic"})),
    "urn:cen.eu:en16931:2017:compliant:factur-x.eu:1p0:basic": (LEVEL_BASIC, frozenset({"basic"})),
    "urn:cen.eu:en16931:2017#compliant#urn:zugferd.de:2p0:basic": (LEVEL_BASIC, frozenset({"basic"})),
    SPEC_EN16931: (LEVEL_EN16931, frozenset({"en16931"})),
    SPEC_PEPPOL_BILLING_30: (LEVEL_EN16931, frozenset({"en16931", "peppol"})),
    SPEC_FACTURX_EXTENDED: (LEVEL_EXTENDED, frozenset({"extended"})),
    "urn:cen.eu:en16931:2017#conformant#urn:zugferd.de:2p0:extended": (LEVEL_EXTENDED, frozenset({"extended"})),
}


@dataclass(frozen=True)
class Profile:
    """Conformance level (0-5) and tags derived from BT-24 and BT-23."""

    level: int
    tags: frozenset[str]
    urn: str = ""

    @property
    def name(self) -> str:
        return LEVEL_NAMES[self.level]

    def meets(self, level: int) -> bool:
        return self.level >= level

    @property
    def is_peppol(self) -> bool:
        return "peppol" in self.tags

    @property
    def is_xrechnung(self) -> bool:
        return "xrechnung" in self.tags


def classify(specification_id: str, business_process: str = "") -> Profile:
    """Derive the profile from the specification identifier and business process.

    Unrecognised identifiers give level 0. A PEPPOL business process
    adds the ``peppol`` tag without changing the level.
    """
    urn = (specification_id or "").strip()
    if urn in _KNOWN:
        level, tags = _KNOWN[urn]
    elif "xrechnung" in urn.lower():
        level, tags = LEVEL_EN16931, frozenset({"en16931", "xrechnung"})
    else:
        level, tags = LEVEL_UNKNOWN, frozenset()
    if business_process and is_peppol_business_process(business_process):
        tags = tags | {"peppol"}
    return Profile(level=level, tags=tags, urn=urn)
