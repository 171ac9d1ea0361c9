"""Core validation data structures for lens descriptors."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, List, Mapping, Optional, Sequence


class SchemaViolation(ValueError):
    """Raised when a descriptor fails validation; carries every reason."""

    def __init__(self, message: str, errors: Sequence[str]) -> None:
        super().__init__(message)
        self.errors = list(errors)


@dataclass
class ValidationResult:
    """Outcome of validating one descriptor snapshot."""

    is_valid: bool
    errors: List[str] = field(default_factory=list)

    @classmethod
    def from_errors(cls, errors: Sequence[str]) -> "ValidationResult":
        return cls(is_valid=not errors, errors=list(errors))

    def raise_for_errors(self, label: str = "descriptor") -> None:
        if self.errors:
            summary = "; ".join(self.errors)
            raise SchemaViolation(f"Invalid {label}: {summary}", self.errors)

    def to_dict(self) -> dict:
        return {"errors": list(self.errors), "isValid": self.is_valid}


@dataclass(frozen=True)
class FieldRule:
    """A named check that returns a message when ``record`` violates it."""

    key: str
    check: Callable[[Mapping[str, Any]], Optional[str]]


def run_rules(record: Mapping[str, Any], rules: Sequence[FieldRule]) -> List[str]:
    """Apply ``rules`` in order and collect every message; never short-circuits."""
    messages: List[str] = []
    for rule in rules:
        message = rule.check(record)
        if message:
            messages.append(message)
    return messages
