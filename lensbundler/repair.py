"""Content-shape repair and payload synchronisation for lens descriptors.

A descriptor's ``content`` container shows up in many malformed shapes in
hand-edited lenses. Each shape gets its own tag and its own normaliser so the
result is always ``[{"contentType": ..., "data": ...}]`` or, for a descriptor
that is already well formed, the original list with only ``content[0].data``
replaced.
"""

from __future__ import annotations

import copy
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

from .constants import SCRIPT_MEDIA_TYPE
from .encoding import to_base64_utf8
from .failsafe import placeholder_payload
from .logging import get_logger
from .models import LensFhirResource, LensMetadata, iso_timestamp
from .validators import ValidationResult, has_content_data, validate_minimal

logger = get_logger("repair")


class ContentShape(str, Enum):
    """Every shape the ``content`` container can take."""

    MISSING = "missing"
    NULL = "null"
    SCALAR_STRING = "scalar-string"
    SINGLE_OBJECT = "single-object"
    EMPTY_SEQUENCE = "empty-sequence"
    SEQUENCE_OF_EMPTY_OBJECT = "sequence-of-empty-object"
    SEQUENCE_MISSING_DATA = "sequence-missing-data"
    VALID = "valid"
    OTHER = "other"


_MISSING_SHAPES = frozenset(
    {
        ContentShape.MISSING,
        ContentShape.NULL,
        ContentShape.SCALAR_STRING,
        ContentShape.SINGLE_OBJECT,
        ContentShape.EMPTY_SEQUENCE,
        ContentShape.SEQUENCE_OF_EMPTY_OBJECT,
        ContentShape.SEQUENCE_MISSING_DATA,
    }
)


class RepairInfeasible(ValueError):
    """Raised when a descriptor cannot be fixed by content repair alone."""

    def __init__(self, message: str, errors: List[str]) -> None:
        super().__init__(message)
        self.errors = list(errors)


def classify_content(record: Mapping[str, Any]) -> ContentShape:
    if "content" not in record:
        return ContentShape.MISSING
    content = record["content"]
    if content is None:
        return ContentShape.NULL
    if isinstance(content, str):
        return ContentShape.SCALAR_STRING
    if isinstance(content, Mapping):
        return ContentShape.SINGLE_OBJECT
    if isinstance(content, list):
        if not content:
            return ContentShape.EMPTY_SEQUENCE
        first = content[0]
        if isinstance(first, Mapping) and not first:
            return ContentShape.SEQUENCE_OF_EMPTY_OBJECT
        if not has_content_data(first):
            return ContentShape.SEQUENCE_MISSING_DATA
        return ContentShape.VALID
    return ContentShape.OTHER


def is_content_missing(record: Mapping[str, Any]) -> bool:
    """True when the content container holds no usable payload at all.

    A content value of an unrelated type (a number, a boolean) is present but
    wrong and does not count as missing.
    """
    if classify_content(record) not in _MISSING_SHAPES:
        return False
    content = record.get("content")
    if isinstance(content, list):
        return not any(has_content_data(item) for item in content)
    return True


def _slot(payload: str, base: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    slot: Dict[str, Any] = dict(base or {})
    slot["contentType"] = SCRIPT_MEDIA_TYPE
    slot["data"] = payload
    return slot


def _fresh(content: Any, payload: str) -> List[Dict[str, Any]]:
    return [_slot(payload)]


def _from_object(content: Any, payload: str) -> List[Dict[str, Any]]:
    return [_slot(payload, content)]


def _from_first_item(content: Any, payload: str) -> List[Any]:
    first = content[0]
    return [_slot(payload, first if isinstance(first, Mapping) else None)] + list(content[1:])


def _replace_data(content: Any, payload: str) -> List[Any]:
    updated = list(content)
    first = dict(updated[0])
    first["data"] = payload
    updated[0] = first
    return updated


_NORMALIZERS: Dict[ContentShape, Callable[[Any, str], List[Any]]] = {
    ContentShape.MISSING: _fresh,
    ContentShape.NULL: _fresh,
    ContentShape.SCALAR_STRING: _fresh,
    ContentShape.SINGLE_OBJECT: _from_object,
    ContentShape.EMPTY_SEQUENCE: _fresh,
    ContentShape.SEQUENCE_OF_EMPTY_OBJECT: _from_first_item,
    ContentShape.SEQUENCE_MISSING_DATA: _from_first_item,
    ContentShape.VALID: _replace_data,
    ContentShape.OTHER: _fresh,
}


def synchronize_content(
    existing: Optional[Mapping[str, Any]],
    text: Optional[str] = None,
    *,
    metadata: Optional[LensMetadata] = None,
    touch_date: bool = True,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Return a descriptor whose ``content[0].data`` carries ``text``.

    With an ``existing`` descriptor the result is a deep copy in which only the
    content container and (unless ``touch_date`` is false) ``date`` differ.
    Without one, a complete ``Library`` is built from ``metadata``. When
    ``text`` is ``None`` the existing payload is kept if there is one, and the
    placeholder script is embedded otherwise.
    """
    if existing is None:
        payload = to_base64_utf8(text) if text is not None else placeholder_payload()
        resource = LensFhirResource(
            metadata or LensMetadata(name="unnamed-lens"),
            payload,
            date=iso_timestamp(now),
        )
        return resource.to_dict()

    record = copy.deepcopy(dict(existing))
    shape = classify_content(record)
    if text is not None:
        payload = to_base64_utf8(text)
    elif shape is ContentShape.VALID:
        payload = record["content"][0]["data"]
    else:
        payload = placeholder_payload()

    if shape is not ContentShape.VALID:
        logger.debug("Normalising %s content for %s", shape.value, record.get("name", "<unnamed>"))
    record["content"] = _NORMALIZERS[shape](record.get("content"), payload)
    if touch_date:
        record["date"] = iso_timestamp(now)
    return record


def is_repairable(record: Any, validation: Optional[ValidationResult] = None) -> bool:
    """Decide whether discovery may repair ``record`` automatically.

    Only a descriptor whose sole violation concerns ``content``, and whose
    content is missing rather than mistyped, qualifies.
    """
    if not isinstance(record, Mapping):
        return False
    result = validation or validate_minimal(record)
    if result.is_valid or len(result.errors) != 1:
        return False
    return "content" in result.errors[0] and is_content_missing(record)


def repair_descriptor(
    record: Mapping[str, Any],
    text: Optional[str] = None,
    *,
    touch_date: bool = False,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Fill the missing content of ``record`` and confirm it now validates."""
    validation = validate_minimal(record)
    if not is_repairable(record, validation):
        raise RepairInfeasible("Descriptor is not repairable by content injection", validation.errors)

    repaired = synchronize_content(record, text, touch_date=touch_date, now=now)
    revalidation = validate_minimal(repaired)
    if not revalidation.is_valid:
        raise RepairInfeasible("Repaired descriptor still fails validation", revalidation.errors)
    return repaired


__all__ = [
    "ContentShape",
    "RepairInfeasible",
    "classify_content",
    "is_content_missing",
    "is_repairable",
    "repair_descriptor",
    "synchronize_content",
]
