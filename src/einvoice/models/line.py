from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from einvoice.models.common import ZERO, AllowanceCharge, Period, to_decimal


@dataclass
class Characteristic:
    """Item attribute (BG-32)."""

    name: str = ""
    value: str = ""

    @classmethod
    def from_dict(cls, d: dict) -> Characteristic:
        return cls(name=d.get("name", ""), value=str(d.get("value", "")))


@dataclass
class Classification:
    """Item classification identifier (BT-158) with list id and version."""

    code: str = ""
    list_id: str = ""
    list_version: str = ""

    @classmethod
    def from_dict(cls, d: dict) -> Classification:
        return cls(
            code=str(d.get("code", "")),
            list_id=d.get("list_id", ""),
            list_version=str(d.get("list_version", "")),
        )


@dataclass
class InvoiceLine:
    """Invoice line (BG-25)."""

    line_id: str = ""
    note: str = ""
    global_id: str = ""
    global_id_scheme: str = ""
    seller_assigned_id: str = ""
    buyer_assigned_id: str = ""
    name: str = ""
    description: str = ""
    characteristics: list[Characteristic] = field(default_factory=list)
    classifications: list[Classification] = field(default_factory=list)
    origin_country: str = ""
    quantity: Decimal = ZERO
    unit: str = ""
    gross_price: Decimal | None = None
    gross_price_allowances: list[AllowanceCharge] = field(default_factory=list)
    net_price: Decimal | None = None
    base_quantity: Decimal | None = None
    base_quantity_unit: str = ""
    period: Period | None = None
    allowance_charges: list[AllowanceCharge] = field(default_factory=list)
    tax_category: str = ""
    tax_rate: Decimal = ZERO
    total: Decimal = ZERO
    order_line_ref: str = ""
    accounting_ref: str = ""

    @property
    def allowances(self) -> list[AllowanceCharge]:
        return [ac for ac in self.allowance_charges if not ac.charge]

    @property
    def charges(self) -> list[AllowanceCharge]:
        return [ac for ac in self.allowance_charges if ac.charge]

    @classmethod
    def from_dict(cls, d: dict) -> InvoiceLine:
        period = d.get("period")
        return cls(
            line_id=str(d.get("id", "")),
            note=d.get("note", ""),
            global_id=str(d.get("global_id", "")),
            global_id_scheme=str(d.get("global_id_scheme", "")),
            seller_assigned_id=str(d.get("seller_assigned_id", "")),
            buyer_assigned_id=str(d.get("buyer_assigned_id", "")),
            name=d.get("name", ""),
            description=d.get("description", ""),
            characteristics=[Characteristic.from_dict(c) for c in d.get("characteristics", [])],
            classifications=[Classification.from_dict(c) for c in d.get("classifications", [])],
            origin_country=d.get("origin_country", ""),
            quantity=to_decimal(d.get("quantity")),
            unit=d.get("unit", ""),
            gross_price=to_decimal(d.get("gross_price"), None),
            gross_price_allowances=[AllowanceCharge.from_dict(a) for a in d.get("gross_price_allowances", [])],
            net_price=to_decimal(d.get("net_price"), None),
            base_quantity=to_decimal(d.get("base_quantity"), None),
            base_quantity_unit=d.get("base_quantity_unit", ""),
            period=Period.from_dict(period) if period else None,
            allowance_charges=[AllowanceCharge.from_dict(a) for a in d.get("allowance_charges", [])],
            tax_category=d.get("tax_category", ""),
            tax_rate=to_decimal(d.get("tax_rate")),
            total=to_decimal(d.get("total")),
            order_line_ref=str(d.get("order_line_ref", "")),
            accounting_ref=str(d.get("accounting_ref", "")),
        )
