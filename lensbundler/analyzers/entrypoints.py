"""Heuristics that detect an ``enhance`` entry point in a lens script."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class EntryPointRule:
    """One textual declaration form of the ``enhance`` capability."""

    form: str
    pattern: re.Pattern[str]

    def matches(self, text: str) -> bool:
        return self.pattern.search(text) is not None


def _rule(form: str, expression: str) -> EntryPointRule:
    return EntryPointRule(form=form, pattern=re.compile(expression))


# Textual only: comments or strings that look like a declaration also match,
# and exotic formatting (e.g. computed keys) is not recognised.
ENTRY_POINT_RULES: Tuple[EntryPointRule, ...] = (
    _rule("function-declaration", r"\bfunction\s+enhance\s*\("),
    _rule("const-binding", r"\bconst\s+enhance\s*="),
    _rule("let-binding", r"\blet\s+enhance\s*="),
    _rule("var-binding", r"\bvar\s+enhance\s*="),
    _rule("method-function", r"\benhance\s*:\s*function\b"),
    _rule("method-async-function", r"\benhance\s*:\s*async\s+function\b"),
    _rule("shorthand-alias", r"\benhance\s*:\s*enhance\b"),
)


def match_entry_point(text: str) -> Optional[EntryPointRule]:
    """Return the first rule whose declaration form appears in ``text``."""
    for rule in ENTRY_POINT_RULES:
        if rule.matches(text):
            return rule
    return None


def has_enhance_entry_point(text: str) -> bool:
    return match_entry_point(text) is not None


__all__ = ["ENTRY_POINT_RULES", "EntryPointRule", "has_enhance_entry_point", "match_entry_point"]
