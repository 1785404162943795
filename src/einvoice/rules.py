from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Rule:
    """A business rule descriptor: code, the BT-/BG- terms it concerns, and its requirement."""

    code: str
    fields: tuple[str, ...]
    description: str


def _r(code: str, fields: str, description: str) -> Rule:
    return Rule(code, tuple(fields.split()), description)


_CORE = [
    _r("BR-1", "BT-24", "An invoice shall have a specification identifier (BT-24) of a known profile."),
    _r("BR-2", "BT-1", "An invoice shall have an invoice number (BT-1)."),
    _r("BR-3", "BT-2", "An invoice shall have an invoice issue date (BT-2)."),
    _r("BR-4", "BT-3", "An invoice shall have an invoice type code (BT-3)."),
    _r("BR-5", "BT-5", "An invoice shall have an invoice currency code (BT-5)."),
    _r("BR-6", "BT-27", "An invoice shall contain the seller name (BT-27)."),
    _r("BR-7", "BT-44", "An invoice shall contain the buyer name (BT-44)."),
    _r("BR-8", "BG-5", "An invoice shall contain the seller postal address (BG-5)."),
    _r("BR-9", "BT-40", "The seller postal address shall contain a seller country code (BT-40)."),
    _r("BR-10", "BG-8", "An invoice shall contain the buyer postal address (BG-8)."),
    _r("BR-11", "BT-55", "The buyer postal address shall contain a buyer country code (BT-55)."),
    _r("BR-12", "BT-106", "An invoice shall have the sum of invoice line net amount (BT-106)."),
    _r("BR-13", "BT-109", "An invoice shall have the invoice total amount without VAT (BT-109)."),
    _r("BR-14", "BT-112", "An invoice shall have the invoice total amount with VAT (BT-112)."),
    _r("BR-15", "BT-115", "An invoice shall have the amount due for payment (BT-115)."),
    _r("BR-16", "BG-25", "An invoice shall have at least one invoice line (BG-25)."),
    _r("BR-17", "BT-59", "The payee name (BT-59) shall be provided if the payee is different from the seller."),
    _r("BR-18", "BT-62", "The seller tax representative name (BT-62) shall be provided if the seller has a tax representative."),
    _r("BR-19", "BG-12", "The seller tax representative postal address (BG-12) shall be provided if the seller has a tax representative."),
    _r("BR-20", "BT-69", "The seller tax representative postal address shall contain a country code (BT-69)."),
    _r("BR-21", "BT-126", "Each invoice line shall have an invoice line identifier (BT-126)."),
    _r("BR-22", "BT-129", "Each invoice line shall have an invoiced quantity (BT-129)."),
    _r("BR-23", "BT-130", "An invoice line shall have an invoiced quantity unit of measure code (BT-130)."),
    _r("BR-24", "BT-131", "Each invoice line shall have an invoice line net amount (BT-131)."),
    _r("BR-25", "BT-153", "Each invoice line shall contain the item name (BT-153)."),
    _r("BR-26", "BT-146", "Each invoice line shall contain the item net price (BT-146)."),
    _r("BR-27", "BT-146", "The item net price (BT-146) shall not be negative."),
    _r("BR-28", "BT-148", "The item gross price (BT-148) shall not be negative."),
    _r("BR-29", "BT-73 BT-74", "If both invoicing period start date (BT-73) and end date (BT-74) are given, the end date shall be later or equal to the start date."),
    _r("BR-30", "BT-134 BT-135", "If both invoice line period start date (BT-134) and end date (BT-135) are given, the end date shall be later or equal to the start date."),
    _r("BR-31", "BT-92", "Each document level allowance (BG-20) shall have a document level allowance amount (BT-92)."),
    _r("BR-32", "BT-95", "Each document level allowance (BG-20) shall have a document level allowance VAT category code (BT-95)."),
    _r("BR-33", "BT-97 BT-98", "Each document level allowance (BG-20) shall have a document level allowance reason (BT-97) or reason code (BT-98)."),
    _r("BR-34", "BT-92", "The document level allowance amount (BT-92) shall not be negative."),
    _r("BR-35", "BT-93", "The document level allowance base amount (BT-93) shall not be negative."),
    _r("BR-36", "BT-99", "Each document level charge (BG-21) shall have a document level charge amount (BT-99)."),
    _r("BR-37", "BT-102", "Each document level charge (BG-21) shall have a document level charge VAT category code (BT-102)."),
    _r("BR-38", "BT-104 BT-105", "Each document level charge (BG-21) shall have a document level charge reason (BT-104) or reason code (BT-105)."),
    _r("BR-39", "BT-99", "The document level charge amount (BT-99) shall not be negative."),
    _r("BR-40", "BT-100", "The document level charge base amount (BT-100) shall not be negative."),
    _r("BR-41", "BT-136", "Each invoice line allowance (BG-27) shall have an invoice line allowance amount (BT-136)."),
    _r("BR-42", "BT-139 BT-140", "Each invoice line allowance (BG-27) shall have an allowance reason (BT-139) or reason code (BT-140)."),
    _r("BR-43", "BT-141", "Each invoice line charge (BG-28) shall have an invoice line charge amount (BT-141)."),
    _r("BR-44", "BT-144 BT-145", "Each invoice line charge (BG-28) shall have a charge reason (BT-144) or reason code (BT-145)."),
    _r("BR-45", "BT-116", "Each VAT breakdown (BG-23) shall have a VAT category taxable amount (BT-116) equal to the sum of matching line amounts, charges and allowances."),
    _r("BR-47", "BT-118", "Each VAT breakdown (BG-23) shall be defined through a VAT category code (BT-118)."),
    _r("BR-49", "BT-81", "A payment instruction (BG-16) shall specify the payment means type code (BT-81)."),
    _r("BR-52", "BT-122", "Each additional supporting document (BG-24) shall contain a supporting document reference (BT-122)."),
    _r("BR-53", "BT-6 BT-111", "If the VAT accounting currency code (BT-6) is present, the invoice total VAT amount in accounting currency (BT-111) shall be provided."),
    _r("BR-54", "BT-160 BT-161", "Each item attribute (BG-32) shall contain an item attribute name (BT-160) and value (BT-161)."),
    _r("BR-55", "BT-25", "Each preceding invoice reference (BG-3) shall contain a preceding invoice reference (BT-25)."),
    _r("BR-56", "BT-63", "Each seller tax representative party (BG-11) shall have a seller tax representative VAT identifier (BT-63)."),
    _r("BR-57", "BT-80", "Each deliver to address (BG-15) shall contain a deliver to country code (BT-80)."),
    _r("BR-61", "BT-84", "If the payment means type code (BT-81) means SEPA credit transfer, local credit transfer or non-SEPA international credit transfer, the payment account identifier (BT-84) shall be present."),
    _r("BR-62", "BT-34", "The seller electronic address (BT-34) shall have a scheme identifier."),
    _r("BR-63", "BT-49", "The buyer electronic address (BT-49) shall have a scheme identifier."),
    _r("BR-64", "BT-157", "The item standard identifier (BT-157) shall have a scheme identifier."),
    _r("BR-65", "BT-158", "The item classification identifier (BT-158) shall have a scheme identifier."),
]

_CALCULATION = [
    _r("BR-CO-3", "BT-7 BT-8", "Value added tax point date (BT-7) and value added tax point date code (BT-8) are mutually exclusive."),
    _r("BR-CO-4", "BT-151", "Each invoice line (BG-25) shall be categorized with an invoiced item VAT category code (BT-151)."),
    _r("BR-CO-5", "BT-97 BT-98", "Document level allowance reason code (BT-98) and reason (BT-97) shall indicate the same type of allowance."),
    _r("BR-CO-6", "BT-104 BT-105", "Document level charge reason code (BT-105) and reason (BT-104) shall indicate the same type of charge."),
    _r("BR-CO-7", "BT-139 BT-140", "Invoice line allowance reason code (BT-140) and reason (BT-139) shall indicate the same type of allowance."),
    _r("BR-CO-8", "BT-144 BT-145", "Invoice line charge reason code (BT-145) and reason (BT-144) shall indicate the same type of charge."),
    _r("BR-CO-9", "BT-31 BT-48 BT-63", "VAT identifiers (BT-31, BT-48, BT-63) shall have an ISO 3166-1 alpha-2 country prefix."),
    _r("BR-CO-10", "BT-106 BT-131", "Sum of invoice line net amount (BT-106) = sum of invoice line net amounts (BT-131)."),
    _r("BR-CO-11", "BT-107 BT-92", "Sum of allowances on document level (BT-107) = sum of document level allowance amounts (BT-92)."),
    _r("BR-CO-12", "BT-108 BT-99", "Sum of charges on document level (BT-108) = sum of document level charge amounts (BT-99)."),
    _r("BR-CO-13", "BT-109 BT-106 BT-107 BT-108", "Invoice total amount without VAT (BT-109) = BT-106 - BT-107 + BT-108."),
    _r("BR-CO-14", "BT-110 BT-117", "Invoice total VAT amount (BT-110) = sum of VAT category tax amounts (BT-117)."),
    _r("BR-CO-15", "BT-112 BT-109 BT-110", "Invoice total amount with VAT (BT-112) = BT-109 + BT-110."),
    _r("BR-CO-16", "BT-115 BT-112 BT-113 BT-114", "Amount due for payment (BT-115) = BT-112 - BT-113 + BT-114."),
    _r("BR-CO-17", "BT-117 BT-116 BT-119", "VAT category tax amount (BT-117) = VAT category taxable amount (BT-116) x (VAT category rate (BT-119) / 100), rounded to two decimals."),
    _r("BR-CO-18", "BG-23", "An invoice shall have at least one VAT breakdown group (BG-23)."),
    _r("BR-CO-19", "BG-14 BT-73 BT-74", "If invoicing period (BG-14) is used, the start date (BT-73) or the end date (BT-74) shall be filled, or both."),
    _r("BR-CO-20", "BG-26 BT-134 BT-135", "If invoice line period (BG-26) is used, the start date (BT-134) or the end date (BT-135) shall be filled, or both."),
    _r("BR-CO-25", "BT-115 BT-9 BT-20", "In case the amount due for payment (BT-115) is positive, either the payment due date (BT-9) or the payment terms (BT-20) shall be present."),
    _r("BR-CO-26", "BT-29 BT-30 BT-31", "The seller identifier (BT-29), the seller legal registration identifier (BT-30) or the seller VAT identifier (BT-31) shall be present."),
    _r("BR-CO-27", "BT-84", "Either the IBAN or a proprietary ID (BT-84) shall be used for the payment account identifier."),
    _r("BR-B-1", "BT-151 BT-95 BT-102", "An invoice where the VAT category code is split payment (B) shall be a domestic Italian invoice."),
    _r("BR-B-2", "BT-151 BT-95 BT-102", "An invoice that contains split payment (B) shall not contain standard rated (S) VAT."),
]

_DECIMALS = [
    ("BR-DEC-01", "BT-92", "document level allowance amount"),
    ("BR-DEC-02", "BT-93", "document level allowance base amount"),
    ("BR-DEC-05", "BT-99", "document level charge amount"),
    ("BR-DEC-06", "BT-100", "document level charge base amount"),
    ("BR-DEC-09", "BT-106", "sum of invoice line net amount"),
    ("BR-DEC-10", "BT-107", "sum of allowances on document level"),
    ("BR-DEC-11", "BT-108", "sum of charges on document level"),
    ("BR-DEC-12", "BT-109", "invoice total amount without VAT"),
    ("BR-DEC-13", "BT-110", "invoice total VAT amount"),
    ("BR-DEC-14", "BT-112", "invoice total amount with VAT"),
    ("BR-DEC-15", "BT-111", "invoice total VAT amount in accounting currency"),
    ("BR-DEC-16", "BT-113", "paid amount"),
    ("BR-DEC-17", "BT-114", "rounding amount"),
    ("BR-DEC-18", "BT-115", "amount due for payment"),
    ("BR-DEC-19", "BT-116", "VAT category taxable amount"),
    ("BR-DEC-20", "BT-117", "VAT category tax amount"),
    ("BR-DEC-23", "BT-131", "invoice line net amount"),
    ("BR-DEC-24", "BT-136", "invoice line allowance amount"),
    ("BR-DEC-25", "BT-137", "invoice line allowance base amount"),
    ("BR-DEC-27", "BT-141", "invoice line charge amount"),
    ("BR-DEC-28", "BT-142", "invoice line charge base amount"),
]

# (prefix, category code, label, breakdown cardinality)
_CATEGORY_FAMILIES = [
    ("S", "S", "Standard rated", "at least one"),
    ("AE", "AE", "Reverse charge", "exactly one"),
    ("E", "E", "Exempt from VAT", "exactly one"),
    ("Z", "Z", "Zero rated", "exactly one"),
    ("G", "G", "Export outside the EU", "exactly one"),
    ("IC", "K", "Intra-community supply", "exactly one"),
    ("IG", "L", "IGIC", "at least one"),
    ("IP", "M", "IPSI", "at least one"),
]


def _category_rules(prefix: str, code: str, label: str, cardinality: str) -> list[Rule]:
    q = f'"{label}"'
    rate = {
        "S": "greater than zero",
        "IG": "0 (zero) or greater than zero",
        "IP": "0 (zero) or greater than zero",
    }.get(prefix, "0 (zero)")
    if prefix in ("IG", "IP"):
        ids = "shall contain the seller VAT identifier, the seller tax registration identifier or the seller tax representative VAT identifier, and shall not contain the buyer VAT identifier"
    elif prefix == "AE":
        ids = "shall contain the seller VAT identifier, the seller tax registration identifier or the seller tax representative VAT identifier, and the buyer VAT identifier or the buyer legal registration identifier"
    elif prefix == "IC":
        ids = "shall contain the seller VAT identifier or the seller tax representative VAT identifier and the buyer VAT identifier"
    elif prefix == "G":
        ids = "shall contain the seller VAT identifier or the seller tax representative VAT identifier"
    else:
        ids = "shall contain the seller VAT identifier, the seller tax registration identifier or the seller tax representative VAT identifier"
    if prefix in ("S", "IG", "IP"):
        amount = "shall equal the VAT category taxable amount multiplied by the VAT category rate"
        reason = "shall not have a VAT exemption reason code (BT-121) or VAT exemption reason text (BT-120)"
    elif prefix == "Z":
        amount = "shall equal 0 (zero)"
        reason = "shall not have a VAT exemption reason code (BT-121) or VAT exemption reason text (BT-120)"
    else:
        amount = "shall equal 0 (zero)"
        reason = "shall have a VAT exemption reason code (BT-121) or a VAT exemption reason text (BT-120)"
    rules = [
        _r(f"BR-{prefix}-1", "BG-23 BT-118", f"An invoice with a line, document level allowance or charge where the VAT category code is {q} shall contain {cardinality} VAT breakdown (BG-23) with VAT category code {code}."),
        _r(f"BR-{prefix}-2", "BT-31 BT-32 BT-63 BT-48", f"An invoice that contains an invoice line where the VAT category code is {q} {ids}."),
        _r(f"BR-{prefix}-3", "BT-31 BT-32 BT-63 BT-48", f"An invoice that contains a document level allowance where the VAT category code is {q} {ids}."),
        _r(f"BR-{prefix}-4", "BT-31 BT-32 BT-63 BT-48", f"An invoice that contains a document level charge where the VAT category code is {q} {ids}."),
        _r(f"BR-{prefix}-5", "BT-152", f"In an invoice line where the VAT category code is {q} the invoiced item VAT rate (BT-152) shall be {rate}."),
        _r(f"BR-{prefix}-6", "BT-96", f"In a document level allowance where the VAT category code is {q} the allowance VAT rate (BT-96) shall be {rate}."),
        _r(f"BR-{prefix}-7", "BT-103", f"In a document level charge where the VAT category code is {q} the charge VAT rate (BT-103) shall be {rate}."),
        _r(f"BR-{prefix}-8", "BT-116", f"For each VAT category rate where the VAT category code is {q}, the taxable amount (BT-116) shall equal the sum of line net amounts plus charges minus allowances with that category and rate."),
        _r(f"BR-{prefix}-9", "BT-117", f"The VAT category tax amount (BT-117) in a VAT breakdown where the VAT category code is {q} {amount}."),
        _r(f"BR-{prefix}-10", "BT-120 BT-121", f"A VAT breakdown with VAT category code {q} {reason}."),
    ]
    if prefix == "IC":
        rules += [
            _r("BR-IC-11", "BT-72 BG-14", 'In an invoice with a VAT breakdown where the VAT category code is "Intra-community supply" the actual delivery date (BT-72) or the invoicing period (BG-14) shall not be blank.'),
            _r("BR-IC-12", "BT-80", 'In an invoice with a VAT breakdown where the VAT category code is "Intra-community supply" the deliver to country code (BT-80) shall not be blank.'),
        ]
    return rules


_NOT_SUBJECT = [
    _r("BR-O-1", "BG-23 BT-118", 'An invoice that contains a line, document level allowance or charge where the VAT category code is "Not subject to VAT" shall contain exactly one VAT breakdown group (BG-23) with VAT category code O.'),
    _r("BR-O-2", "BT-31 BT-32 BT-63 BT-47 BT-48", 'An invoice that contains an invoice line where the VAT category code is "Not subject to VAT" shall identify the seller or the buyer for tax purposes.'),
    _r("BR-O-3", "BT-31 BT-32 BT-63 BT-47 BT-48", 'An invoice that contains a document level allowance where the VAT category code is "Not subject to VAT" shall identify the seller or the buyer for tax purposes.'),
    _r("BR-O-4", "BT-31 BT-32 BT-63 BT-47 BT-48", 'An invoice that contains a document level charge where the VAT category code is "Not subject to VAT" shall identify the seller or the buyer for tax purposes.'),
    _r("BR-O-5", "BT-152", 'An invoice line where the VAT category code is "Not subject to VAT" shall not contain an invoiced item VAT rate (BT-152).'),
    _r("BR-O-6", "BT-96", 'A document level allowance where the VAT category code is "Not subject to VAT" shall not contain an allowance VAT rate (BT-96).'),
    _r("BR-O-7", "BT-103", 'A document level charge where the VAT category code is "Not subject to VAT" shall not contain a charge VAT rate (BT-103).'),
    _r("BR-O-8", "BG-23", 'An invoice with a VAT breakdown where the VAT category code is "Not subject to VAT" shall not contain other VAT breakdown groups (BG-23).'),
    _r("BR-O-9", "BT-116", 'In a VAT breakdown where the VAT category code is "Not subject to VAT" the taxable amount (BT-116) shall equal the sum of line net amounts plus charges minus allowances with category O.'),
    _r("BR-O-10", "BT-117", 'The VAT category tax amount (BT-117) in a VAT breakdown where the VAT category code is "Not subject to VAT" shall be 0 (zero).'),
    _r("BR-O-11", "BT-120 BT-121", 'A VAT breakdown with VAT category code "Not subject to VAT" shall have a VAT exemption reason code (BT-121) or a VAT exemption reason text (BT-120).'),
    _r("BR-O-12", "BT-151", 'An invoice with a VAT breakdown where the VAT category code is "Not subject to VAT" shall not contain invoice lines with another VAT category code.'),
    _r("BR-O-13", "BT-95", 'An invoice with a VAT breakdown where the VAT category code is "Not subject to VAT" shall not contain document level allowances with another VAT category code.'),
    _r("BR-O-14", "BT-102", 'An invoice with a VAT breakdown where the VAT category code is "Not subject to VAT" shall not contain document level charges with another VAT category code.'),
]

_XRECHNUNG = [
    _r("BR-DE-1", "BG-16", "An invoice must contain information on PAYMENT INSTRUCTIONS (BG-16)."),
    _r("BR-DE-2", "BG-6", "The group SELLER CONTACT (BG-6) must be transmitted."),
    _r("BR-DE-3", "BT-37", "The element Seller city (BT-37) must be transmitted."),
    _r("BR-DE-4", "BT-38", "The element Seller post code (BT-38) must be transmitted."),
    _r("BR-DE-5", "BT-41", "The element Seller contact point (BT-41) must be transmitted."),
    _r("BR-DE-6", "BT-42", "The element Seller contact telephone number (BT-42) must be transmitted."),
    _r("BR-DE-7", "BT-43", "The element Seller contact email address (BT-43) must be transmitted."),
    _r("BR-DE-8", "BT-52", "The element Buyer city (BT-52) must be transmitted."),
    _r("BR-DE-9", "BT-53", "The element Buyer post code (BT-53) must be transmitted."),
    _r("BR-DE-10", "BT-77", "The element Deliver to city (BT-77) must be transmitted if the group DELIVER TO ADDRESS (BG-15) is present."),
    _r("BR-DE-11", "BT-78", "The element Deliver to post code (BT-78) must be transmitted if the group DELIVER TO ADDRESS (BG-15) is present."),
    _r("BR-DE-15", "BT-10", "The element Buyer reference (BT-10) must be transmitted."),
    _r("BR-DE-16", "BT-31 BT-32 BT-63", "If an invoice contains a line, allowance or charge with VAT category S, Z, E, AE, K, G, L or M, the seller VAT identifier, seller tax registration or tax representative VAT identifier must be transmitted."),
    _r("BR-DE-17", "BT-3", "The invoice type code (BT-3) shall be one of 326, 380, 384, 389, 381, 875, 876 or 877."),
    _r("BR-DE-18", "BT-20", "Cash discount information in payment terms (BT-20) must follow the #SKONTO# structured format."),
    _r("BR-DE-19", "BT-84", "The payment account identifier (BT-84) should be a valid IBAN for SEPA credit transfer."),
    _r("BR-DE-20", "BT-91", "The debited account identifier (BT-91) should be a valid IBAN for SEPA direct debit."),
    _r("BR-DE-21", "BT-24", "The specification identifier (BT-24) should correspond to the XRechnung standard for German sellers."),
    _r("BR-DE-23-a", "BG-17", "If the payment means type code (BT-81) is 30 or 58, CREDIT TRANSFER (BG-17) must be transmitted."),
    _r("BR-DE-23-b", "BG-18 BG-19", "If the payment means type code (BT-81) is 30 or 58, PAYMENT CARD INFORMATION (BG-18) and DIRECT DEBIT (BG-19) must not be transmitted."),
    _r("BR-DE-24-a", "BG-18", "If the payment means type code (BT-81) is 48, 54 or 55, PAYMENT CARD INFORMATION (BG-18) must be transmitted."),
    _r("BR-DE-24-b", "BG-17 BG-19", "If the payment means type code (BT-81) is 48, 54 or 55, CREDIT TRANSFER (BG-17) and DIRECT DEBIT (BG-19) must not be transmitted."),
    _r("BR-DE-25-a", "BG-19", "If the payment means type code (BT-81) is 59, DIRECT DEBIT (BG-19) must be transmitted."),
    _r("BR-DE-25-b", "BG-17 BG-18", "If the payment means type code (BT-81) is 59, CREDIT TRANSFER (BG-17) and PAYMENT CARD INFORMATION (BG-18) must not be transmitted."),
    _r("BR-DE-26", "BT-3 BG-3", "If the invoice type code (BT-3) is 384 (corrected invoice), PRECEDING INVOICE REFERENCE (BG-3) should be transmitted."),
    _r("BR-DE-27", "BT-42", "The seller contact telephone number (BT-42) should contain at least three digits."),
    _r("BR-DE-28", "BT-43", "The seller contact email address (BT-43) should have a valid format."),
    _r("BR-DE-30", "BT-90", "If DIRECT DEBIT (BG-19) is transmitted, the bank assigned creditor identifier (BT-90) must be transmitted."),
    _r("BR-DE-31", "BT-91", "If DIRECT DEBIT (BG-19) is transmitted, the debited account identifier (BT-91) must be transmitted."),
]

_PEPPOL = [
    _r("PEPPOL-EN16931-R001", "BT-23", "Business process MUST be provided."),
    _r("PEPPOL-EN16931-R002", "BG-1", "No more than one note is allowed on document level."),
    _r("PEPPOL-EN16931-R003", "BT-10 BT-13", "A buyer reference or purchase order reference MUST be provided."),
    _r("PEPPOL-EN16931-R004", "BT-24", "Specification identifier MUST have the value 'urn:cen.eu:en16931:2017#compliant#urn:fdc:peppol.eu:2017:poacc:billing:3.0'."),
    _r("PEPPOL-EN16931-R007", "BT-23", "Business process MUST be in the format 'urn:fdc:peppol.eu:2017:poacc:billing:NN:1.0' where NN indicates the process number."),
    _r("PEPPOL-EN16931-R008", "", "Document MUST not contain empty elements."),
    _r("PEPPOL-EN16931-R010", "BT-49", "Buyer electronic address MUST be provided."),
    _r("PEPPOL-EN16931-R020", "BT-34", "Seller electronic address MUST be provided."),
    _r("PEPPOL-EN16931-R120", "BT-131", "Invoice line net amount MUST equal (invoiced quantity * (item net price / item price base quantity) + line charges - line allowances."),
    _r("PEPPOL-EN16931-R121", "BT-149", "Base quantity MUST be a positive number above zero."),
    _r("PEPPOL-EN16931-R130", "BT-150 BT-130", "Unit code of price base quantity MUST be same as invoiced quantity."),
]

_CUSTOM = [
    _r("BR-USER-06", "BT-96 BT-103 BT-119 BT-152", "VAT rates shall have at most four decimal places."),
    _r("UNEXPECTED-TAX-CURRENCY", "BT-110 BT-111", "Tax total amounts shall use only the invoice currency (BT-5) or the VAT accounting currency (BT-6)."),
    _r("Check", "BT-131 BT-129 BT-146 BT-149", "Invoice line net amount (BT-131) = invoiced quantity (BT-129) x item net price (BT-146) / item price base quantity (BT-149) + line charges - line allowances."),
]


def _build() -> dict[str, Rule]:
    rules = list(_CORE) + list(_CALCULATION)
    rules += [_r(code, field, f"The allowed maximum number of decimals for the {label} ({field}) is 2.") for code, field, label in _DECIMALS]
    for family in _CATEGORY_FAMILIES:
        rules += _category_rules(*family)
    rules += _NOT_SUBJECT + _XRECHNUNG + _PEPPOL + _CUSTOM
    return {rule.code: rule for rule in rules}


CATALOG: dict[str, Rule] = _build()


def get(code: str) -> Rule:
    """Return the descriptor for *code*. Raises KeyError for unknown codes."""
    return CATALOG[code]
