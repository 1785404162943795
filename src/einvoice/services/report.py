from __future__ import annotations

from collections.abc import Iterable

from einvoice import rules
from einvoice.models.violation import ERROR, WARNING, Violation
from einvoice.services.exceptions import ValidationError


class ReportBuilder:
    """Collects violations in the order the rule families add them.

    Field codes come from the rule catalog unless given explicitly.
    """

    def __init__(self, items: Iterable[Violation] = ()) -> None:
        self.items: list[Violation] = list(items)

    def add(self, code: str, text: str, fields: tuple[str, ...] | None = None) -> None:
        self._append(code, text, fields, ERROR)

    def warn(self, code: str, text: str, fields: tuple[str, ...] | None = None) -> None:
        self._append(code, text, fields, WARNING)

    def extend(self, violations: Iterable[Violation]) -> None:
        self.items.extend(violations)

    def _append(self, code: str, text: str, fields: tuple[str, ...] | None, severity: str) -> None:
        if fields is None:
            fields = rules.get(code).fields
        self.items.append(Violation(code, fields, text, severity))

    def build(self) -> ValidationReport:
        return ValidationReport(self.items)


class ValidationReport:
    """Ordered result of one validation run.

    Errors and warnings are kept in the order the rule families ran.
    The report is valid when it holds no error-severity violation.
    """

    def __init__(self, items: Iterable[Violation] = ()) -> None:
        self._items = tuple(items)

    def all(self) -> list[Violation]:
        return list(self._items)

    def violations(self) -> list[Violation]:
        """Error-severity violations only."""
        return [v for v in self._items if v.is_error]

    def warnings(self) -> list[Violation]:
        return [v for v in self._items if not v.is_error]

    def has(self, rule: str) -> bool:
        """Exact match by rule code over errors and warnings."""
        return any(v.rule == rule for v in self._items)

    def count(self) -> int:
        """Number of error-severity violations."""
        return len(self.violations())

    def rules(self) -> set[str]:
        return {v.rule for v in self._items}

    @property
    def is_valid(self) -> bool:
        return self.count() == 0

    def raise_for_errors(self) -> None:
        """Raise ValidationError if any error-severity violation is present."""
        if not self.is_valid:
            raise ValidationError(self)

    def to_dict(self) -> dict:
        return {
            "valid": self.is_valid,
            "errors": [v.to_dict() for v in self.violations()],
            "warnings": [v.to_dict() for v in self.warnings()],
        }

    def __iter__(self):
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ValidationReport):
            return NotImplemented
        return self._items == other._items

    def __str__(self) -> str:
        return "\n".join(str(v) for v in self._items)

    def __repr__(self) -> str:
        return f"ValidationReport(errors={self.count()}, warnings={len(self.warnings())})"
