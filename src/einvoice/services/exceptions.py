from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from einvoice.services.report import ValidationReport


class EInvoiceError(Exception):
    """Base class for every error raised by the library."""

    kind = "error"


class InvoiceIOError(EInvoiceError):
    """Reading or writing the underlying file or stream failed."""

    kind = "io"


class ParseError(EInvoiceError):
    """The document is not well-formed or holds a value that cannot be decoded.

    *line_id* is the invoice line (BT-126) being parsed when the error
    occurred, *sourceline* the XML source line when lxml knows it.
    """

    kind = "parse"

    def __init__(
        self,
        message: str,
        line_id: str | None = None,
        sourceline: int | None = None,
    ) -> None:
        if line_id:
            message = f"{message} (line {line_id})"
        super().__init__(message)
        self.line_id = line_id
        self.sourceline = sourceline


class UnsupportedSchemaError(EInvoiceError):
    """The root element namespace is not a supported invoice grammar."""

    kind = "unsupported-schema"

    def __init__(self, message: str, namespace: str = "") -> None:
        super().__init__(message)
        self.namespace = namespace


class ValidationError(EInvoiceError):
    """One or more error-severity business rules fired."""

    kind = "validation"

    def __init__(self, report: ValidationReport) -> None:
        super().__init__(str(report))
        self.report = report

    def violations(self):
        return self.report.violations()

    def warnings(self):
        return self.report.warnings()

    def has(self, rule: str) -> bool:
        return self.report.has(rule)

    def count(self) -> int:
        return self.report.count()


class WriteError(EInvoiceError):
    """The invoice cannot be serialised (unknown schema type or bad model)."""

    kind = "write"
