"""Descriptor validation helpers."""

from .base import FieldRule, SchemaViolation, ValidationResult, run_rules
from .lens_profile import (
    has_content_data,
    missing_requirements,
    validate_full,
    validate_minimal,
)

__all__ = [
    "FieldRule",
    "SchemaViolation",
    "ValidationResult",
    "has_content_data",
    "missing_requirements",
    "run_rules",
    "validate_full",
    "validate_minimal",
]
