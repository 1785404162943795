from __future__ import annotations

import logging

from lxml import etree

from einvoice.config import SPEC_PEPPOL_BILLING_30
from einvoice.models.invoice import Invoice
from einvoice.services.calculator import line_net_amount
from einvoice.services.report import ReportBuilder
from einvoice.utils.validators import is_peppol_business_process

logger = logging.getLogger(__name__)


def check_peppol(invoice: Invoice, report: ReportBuilder) -> None:
    """PEPPOL BIS Billing 3.0 document and line rules (PEPPOL-EN16931-R*)."""
    if not invoice.business_process:
        report.add("PEPPOL-EN16931-R001", "Business process MUST be provided")
    elif not is_peppol_business_process(invoice.business_process):
        report.add(
            "PEPPOL-EN16931-R007",
            f"Business process MUST be in the format 'urn:fdc:peppol.eu:2017:poacc:billing:NN:1.0' (got {invoice.business_process})",
        )
    if len(invoice.notes) > 1:
        report.add("PEPPOL-EN16931-R002", "No more than one note is allowed on document level")
    if not invoice.buyer_reference and not invoice.buyer_order_ref:
        report.add("PEPPOL-EN16931-R003", "A buyer reference or purchase order reference MUST be provided")
    if invoice.specification_id.strip() != SPEC_PEPPOL_BILLING_30:
        report.add("PEPPOL-EN16931-R004", f"Specification identifier MUST have the value '{SPEC_PEPPOL_BILLING_30}'")
    if not invoice.buyer.electronic_address:
        report.add("PEPPOL-EN16931-R010", "Buyer electronic address MUST be provided")
    if not invoice.seller.electronic_address:
        report.add("PEPPOL-EN16931-R020", "Seller electronic address MUST be provided")

    for i, line in enumerate(invoice.lines, start=1):
        ref = line.line_id or str(i)
        if line.base_quantity is not None and line.base_quantity <= 0:
            report.add("PEPPOL-EN16931-R121", f"Line {ref}: Base quantity MUST be a positive number above zero (got {line.base_quantity})")
        if line.base_quantity_unit and line.base_quantity_unit != line.unit:
            report.add(
                "PEPPOL-EN16931-R130",
                f"Line {ref}: Unit code of price base quantity ({line.base_quantity_unit}) MUST be same as invoiced quantity ({line.unit})",
            )
        expected = line_net_amount(line)
        if line.total != expected:
            report.add("PEPPOL-EN16931-R120", f"Line {ref}: Invoice line net amount {line.total} does not match calculated {expected}")


def find_empty_elements(root: etree._Element) -> list[str]:
    """Return the local names of elements with no text, no children and no attributes."""
    empty = []
    for el in root.iter():
        if not isinstance(el.tag, str):
            continue
        if len(el) == 0 and not (el.text or "").strip() and not el.attrib:
            empty.append(etree.QName(el).localname)
    return empty
