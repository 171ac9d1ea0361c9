"""Fail-safe content for lenses whose script cannot be located."""

from __future__ import annotations

from .encoding import to_base64_utf8

_PLACEHOLDER_SCRIPT = """function enhance(originalContent) {
    console.log('Not Enhancing');
    return originalContent;
}"""


def placeholder_script() -> str:
    """Return a no-op ``enhance`` that hands the content back unchanged."""
    return _PLACEHOLDER_SCRIPT


def placeholder_payload() -> str:
    return to_base64_utf8(_PLACEHOLDER_SCRIPT)


__all__ = ["placeholder_payload", "placeholder_script"]
