from __future__ import annotations

import logging
import sys
from pathlib import Path

USAGE = """\
Usage: einvoice <command> [args]

Commands:
  validate FILE               Parse a CII or UBL invoice and print rule violations
  info FILE                   Print a summary of a CII or UBL invoice
  build INVOICE.yaml OUT.xml  Calculate, validate and write an invoice description (CII, or UBL with schema_type: ubl)
"""

EXIT_OK = 0
EXIT_INVALID = 1
EXIT_ERROR = 2


def _setup_logging() -> None:
    from einvoice.config import load_settings

    level = load_settings()["log_level"]
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(levelname)s %(name)s: %(message)s",
    )


def _print_report(report) -> None:
    for violation in report.all():
        print(violation)
    errors, warnings = report.count(), len(report.warnings())
    if errors or warnings:
        print(f"{errors} error(s), {warnings} warning(s)")
    else:
        print("Invoice is valid")


def _validate(path: Path) -> int:
    from einvoice.services.cii_parser import parse_file
    from einvoice.services.validator import validate

    invoice = parse_file(path)
    report = validate(invoice)
    _print_report(report)
    return EXIT_OK if report.is_valid else EXIT_INVALID


def _info(path: Path) -> int:
    from einvoice.services.cii_parser import parse_file
    from einvoice.utils.formatters import format_money, format_percent

    invoice = parse_file(path)
    profile = invoice.profile
    currency = invoice.currency
    tags = ", ".join(sorted(profile.tags)) or "-"
    issued = invoice.issue_date.isoformat() if invoice.issue_date else "-"

    print(f"Invoice:   {invoice.number or '-'} (type {invoice.type_code})")
    print(f"Issued:    {issued}")
    print(f"Profile:   {profile.name} [{tags}]")
    print(f"Seller:    {invoice.seller.name or '-'} {invoice.seller.vat_id}".rstrip())
    print(f"Buyer:     {invoice.buyer.name or '-'} {invoice.buyer.vat_id}".rstrip())
    print(f"Lines:     {len(invoice.lines)}")
    print()
    print(f"  Net:     {format_money(invoice.tax_basis_total, currency)}")
    print(f"  VAT:     {format_money(invoice.tax_total, currency)}")
    print(f"  Total:   {format_money(invoice.grand_total, currency)}")
    print(f"  Due:     {format_money(invoice.due_payable, currency)}")
    if invoice.trade_taxes:
        print()
        print("VAT breakdown:")
        for tax in invoice.trade_taxes:
            print(
                f"  {tax.category:<3} {format_percent(tax.rate):>6}%  "
                f"{format_money(tax.basis_amount, currency)}  {format_money(tax.calculated_amount, currency)}"
            )
    return EXIT_OK


def _build(desc_path: Path, out_path: Path) -> int:
    import yaml

    from einvoice.config import load_settings, load_yaml
    from einvoice.models.invoice import Invoice
    from einvoice.services.calculator import calculate, update_line_totals
    from einvoice.services.cii_builder import write_file
    from einvoice.services.exceptions import InvoiceIOError, ParseError
    from einvoice.services.report import ReportBuilder
    from einvoice.services.validator import validate

    try:
        data = load_yaml(desc_path)
    except OSError as e:
        raise InvoiceIOError(f"Cannot read {desc_path}: {e}") from e
    except yaml.YAMLError as e:
        raise ParseError(f"Invalid YAML in {desc_path}: {e}") from e
    try:
        invoice = Invoice.from_dict(data)
    except (ArithmeticError, AttributeError, KeyError, TypeError, ValueError) as e:
        raise ParseError(f"Invalid invoice description {desc_path}: {e}") from e

    update_line_totals(invoice)
    checks = calculate(invoice, load_settings()["exemption_reasons"])
    builder = ReportBuilder(checks)
    builder.extend(validate(invoice).all())
    report = builder.build()
    _print_report(report)
    if not report.is_valid:
        return EXIT_INVALID
    write_file(invoice, out_path)
    print(f"Wrote {out_path}")
    return EXIT_OK


def run(argv: list[str]) -> int:
    """Dispatch *argv* (without the program name) and return the exit code."""
    from einvoice.services.exceptions import EInvoiceError

    commands = {"validate": 1, "info": 1, "build": 2}
    if not argv or argv[0] not in commands or len(argv) != commands[argv[0]] + 1:
        print(USAGE, file=sys.stderr, end="")
        return EXIT_ERROR

    command, args = argv[0], [Path(a) for a in argv[1:]]
    try:
        if command == "validate":
            return _validate(*args)
        if command == "info":
            return _info(*args)
        return _build(*args)
    except EInvoiceError as e:
        print(f"Error ({e.kind}): {e}", file=sys.stderr)
        return EXIT_ERROR


def main() -> None:
    """Entry point for the einvoice command."""
    _setup_logging()
    sys.exit(run(sys.argv[1:]))


if __name__ == "__main__":
    main()
