from __future__ import annotations

from dataclasses import dataclass

ERROR = "error"
WARNING = "warning"


@dataclass(frozen=True)
class Violation:
    """A business rule that fired, with the BT-/BG- fields it concerns."""

    rule: str
    fields: tuple[str, ...]
    text: str
    severity: str = ERROR

    @property
    def is_error(self) -> bool:
        return self.severity == ERROR

    def to_dict(self) -> dict:
        return {
            "rule": self.rule,
            "fields": list(self.fields),
            "text": self.text,
            "severity": self.severity,
        }

    def __str__(self) -> str:
        return f"{self.rule}: {self.text}"
