"""Minimal and full-profile checks for FHIR lens ``Library`` descriptors."""

from __future__ import annotations

from typing import Any, List, Mapping, Optional, Tuple

from ..constants import IDENTIFIER_SYSTEM, LEE_VERSION_URL, RESOURCE_TYPE
from .base import FieldRule, ValidationResult, run_rules

NOT_AN_OBJECT = "Lens must be a JSON object"
CONTENT_NOT_ARRAY = "content must be an array"
CONTENT_WITHOUT_DATA = "content must include at least one item with base64 encoded data"


def has_content_data(item: Any) -> bool:
    """True when ``item`` is a content attachment with non-empty string ``data``."""
    return isinstance(item, Mapping) and isinstance(item.get("data"), str) and bool(item["data"])


def _is_text(record: Mapping[str, Any], key: str) -> bool:
    value = record.get(key)
    return isinstance(value, str) and bool(value)


def _non_empty_list(record: Mapping[str, Any], key: str) -> bool:
    value = record.get(key)
    return isinstance(value, list) and bool(value)


def _required_text(key: str) -> FieldRule:
    return FieldRule(
        key,
        lambda record: None if _is_text(record, key) else f"{key} is required and must be a string",
    )


def _required_list(key: str, label: str) -> FieldRule:
    return FieldRule(
        key,
        lambda record: None if _non_empty_list(record, key) else f"{key} must include at least one {label}",
    )


def _check_resource_type(record: Mapping[str, Any]) -> Optional[str]:
    if record.get("resourceType") != RESOURCE_TYPE:
        return f'resourceType must be "{RESOURCE_TYPE}"'
    return None


def _check_content(record: Mapping[str, Any]) -> Optional[str]:
    content = record.get("content")
    if not isinstance(content, list):
        return CONTENT_NOT_ARRAY
    if not any(has_content_data(item) for item in content):
        return CONTENT_WITHOUT_DATA
    return None


def _check_type(record: Mapping[str, Any]) -> Optional[str]:
    library_type = record.get("type")
    if not isinstance(library_type, Mapping):
        return "type is required and must be an object"
    coding = library_type.get("coding")
    if not isinstance(coding, list) or not coding:
        return "type.coding must include at least one coding"
    return None


def _has_lee_version(record: Mapping[str, Any]) -> bool:
    extensions = record.get("extension")
    if not isinstance(extensions, list):
        return False
    return any(isinstance(ext, Mapping) and ext.get("url") == LEE_VERSION_URL for ext in extensions)


def _check_extension(record: Mapping[str, Any]) -> Optional[str]:
    if not _has_lee_version(record):
        return f"extension must include the lee-version extension ({LEE_VERSION_URL})"
    return None


MINIMAL_RULES: Tuple[FieldRule, ...] = (
    FieldRule("resourceType", _check_resource_type),
    _required_text("url"),
    _required_text("name"),
    _required_text("status"),
    FieldRule("content", _check_content),
)

FULL_PROFILE_RULES: Tuple[FieldRule, ...] = MINIMAL_RULES + (
    _required_text("version"),
    _required_text("description"),
    _required_text("purpose"),
    _required_text("usage"),
    _required_text("copyright"),
    FieldRule("type", _check_type),
    _required_list("identifier", "identifier"),
    _required_list("jurisdiction", "jurisdiction"),
    _required_list("parameter", "parameter"),
    FieldRule("extension", _check_extension),
)


def validate_minimal(record: Any) -> ValidationResult:
    """Check the fields every bundled lens needs; all violations are reported."""
    if not isinstance(record, Mapping):
        return ValidationResult.from_errors([NOT_AN_OBJECT])
    return ValidationResult.from_errors(run_rules(record, MINIMAL_RULES))


def validate_full(record: Any) -> ValidationResult:
    """Check the complete lens profile, including the minimal fields."""
    if not isinstance(record, Mapping):
        return ValidationResult.from_errors([NOT_AN_OBJECT])
    return ValidationResult.from_errors(run_rules(record, FULL_PROFILE_RULES))


def missing_requirements(record: Any) -> List[str]:
    """Describe, in profile order, what ``record`` still lacks for full validation."""
    if not isinstance(record, Mapping):
        return [NOT_AN_OBJECT]

    missing: List[str] = []
    if not _is_text(record, "name"):
        missing.append("name (string, required): Computer-friendly name for the lens")
    if not _is_text(record, "version"):
        missing.append('version (string, required): Business version of the library (e.g., "1.0.0")')
    if not _is_text(record, "status"):
        missing.append("status (code, required): draft | active | retired | unknown")
    if not _is_text(record, "description"):
        missing.append("description (markdown, required): Natural language description of the lens")
    if not _is_text(record, "purpose"):
        missing.append("purpose (markdown, required): Why this lens is defined")
    if not _is_text(record, "usage"):
        missing.append("usage (markdown, required): Describes the clinical usage of the lens")
    if not _is_text(record, "copyright"):
        missing.append("copyright (markdown, required): Use and/or publishing restrictions")

    if not isinstance(record.get("type"), Mapping):
        missing.append('type (CodeableConcept, required): Must be "logical-library"')
    elif _check_type(record):
        missing.append('type.coding (required): Must contain code "logical-library"')

    if not _non_empty_list(record, "identifier"):
        missing.append(f'identifier (required): At least one identifier with system "{IDENTIFIER_SYSTEM}"')
    if not _non_empty_list(record, "jurisdiction"):
        missing.append("jurisdiction (required): At least one jurisdiction code")
    if not _non_empty_list(record, "parameter"):
        missing.append("parameter (required): At least one parameter definition")

    if not _non_empty_list(record, "content"):
        missing.append("content (required): At least one attachment with base64-encoded lens code")
    elif _check_content(record):
        missing.append("content[].data (base64Binary, required): Base64-encoded JavaScript lens function")

    if not isinstance(record.get("extension"), list):
        missing.append(f"extension (required): LEE version extension ({LEE_VERSION_URL})")
    elif not _has_lee_version(record):
        missing.append("extension[lee-version] (required): LEE version string")

    return missing


__all__ = [
    "CONTENT_NOT_ARRAY",
    "CONTENT_WITHOUT_DATA",
    "FULL_PROFILE_RULES",
    "MINIMAL_RULES",
    "NOT_AN_OBJECT",
    "has_content_data",
    "missing_requirements",
    "validate_full",
    "validate_minimal",
]
