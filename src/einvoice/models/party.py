from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class PostalAddress:
    line1: str = ""
    line2: str = ""
    line3: str = ""
    postcode: str = ""
    city: str = ""
    country: str = ""
    subdivision: str = ""

    @classmethod
    def from_dict(cls, d: dict) -> PostalAddress:
        return cls(
            line1=d.get("line1", ""),
            line2=d.get("line2", ""),
            line3=d.get("line3", ""),
            postcode=str(d.get("postcode", "")),
            city=d.get("city", ""),
            country=d.get("country", ""),
            subdivision=d.get("subdivision", ""),
        )


@dataclass
class LegalOrganization:
    """Legal registration (BT-30/BT-47) with optional trading name."""

    id: str = ""
    scheme: str = ""
    trading_name: str = ""

    @classmethod
    def from_dict(cls, d: dict) -> LegalOrganization:
        return cls(
            id=str(d.get("id", "")),
            scheme=str(d.get("scheme", "")),
            trading_name=d.get("trading_name", ""),
        )


@dataclass
class Contact:
    name: str = ""
    phone: str = ""
    email: str = ""
    department: str = ""

    @classmethod
    def from_dict(cls, d: dict) -> Contact:
        return cls(
            name=d.get("name", ""),
            phone=str(d.get("phone", "")),
            email=d.get("email", ""),
            department=d.get("department", ""),
        )


@dataclass
class GlobalID:
    id: str
    scheme: str = ""

    @classmethod
    def from_dict(cls, d: dict) -> GlobalID:
        return cls(id=str(d["id"]), scheme=str(d.get("scheme", "")))


@dataclass
class Party:
    """Seller, buyer, payee, ship-to or seller tax representative."""

    name: str = ""
    ids: list[str] = field(default_factory=list)
    global_ids: list[GlobalID] = field(default_factory=list)
    legal_organization: LegalOrganization | None = None
    address: PostalAddress | None = None
    vat_id: str = ""
    tax_id: str = ""  # non-VAT registration, scheme FC
    contacts: list[Contact] = field(default_factory=list)
    electronic_address: str = ""
    electronic_address_scheme: str = ""

    @property
    def country(self) -> str:
        return self.address.country if self.address else ""

    @property
    def legal_id(self) -> str:
        return self.legal_organization.id if self.legal_organization else ""

    @classmethod
    def from_dict(cls, d: dict) -> Party:
        legal = d.get("legal_organization")
        address = d.get("address")
        return cls(
            name=d.get("name", ""),
            ids=[str(i) for i in d.get("ids", [])],
            global_ids=[GlobalID.from_dict(g) for g in d.get("global_ids", [])],
            legal_organization=LegalOrganization.from_dict(legal) if legal else None,
            address=PostalAddress.from_dict(address) if address else None,
            vat_id=d.get("vat_id", ""),
            tax_id=str(d.get("tax_id", "")),
            contacts=[Contact.from_dict(c) for c in d.get("contacts", [])],
            electronic_address=d.get("electronic_address", ""),
            electronic_address_scheme=str(d.get("electronic_address_scheme", "")),
        )
