"""Byte-level comparison between a lens script and its bundled payload."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from .constants import RESOURCE_TYPE
from .encoding import decode_file, resolve_charset, to_base64_utf8
from .logging import get_logger
from .stores import DescriptorParseError, load_descriptor

logger = get_logger("integrity")


class IntegrityReason(str, Enum):
    """Terminal failure states of an integrity check."""

    SOURCE_MISSING = "source-missing"
    DESCRIPTOR_MISSING = "descriptor-missing"
    PARSE_ERROR = "parse-error"
    WRONG_RESOURCE_TYPE = "wrong-resource-type"
    NO_CONTENT_DATA = "no-content-data"
    MISMATCH = "mismatch"


_REASON_MESSAGES: Dict[IntegrityReason, str] = {
    IntegrityReason.SOURCE_MISSING: "JavaScript file not found",
    IntegrityReason.DESCRIPTOR_MISSING: "Bundle file not found",
    IntegrityReason.PARSE_ERROR: "Failed to parse bundle JSON",
    IntegrityReason.WRONG_RESOURCE_TYPE: "Bundle is not a FHIR Library resource",
    IntegrityReason.NO_CONTENT_DATA: "Bundle has no content data",
    IntegrityReason.MISMATCH: "Content mismatch - bundle is out of sync with JS file",
}


class IntegrityMismatch(RuntimeError):
    """Raised when a script and its descriptor disagree."""

    def __init__(self, result: "IntegrityResult") -> None:
        super().__init__(result.message)
        self.result = result


@dataclass
class IntegrityResult:
    """Outcome of comparing one script/descriptor pair."""

    source_path: Path
    descriptor_path: Path
    passed: bool
    reason: Optional[IntegrityReason] = None
    name: Optional[str] = None
    version: Optional[str] = None
    detail: Optional[str] = None

    @property
    def message(self) -> str:
        if self.reason is None:
            return "Integrity check passed - bundle content matches JS file"
        return _REASON_MESSAGES[self.reason]

    def raise_for_failure(self) -> None:
        if not self.passed:
            raise IntegrityMismatch(self)

    def to_dict(self, base: Optional[Path] = None) -> Dict[str, Any]:
        return {
            "jsFile": _display(self.source_path, base),
            "bundleFile": _display(self.descriptor_path, base),
            "passed": self.passed,
            "error": None if self.passed else self.message,
        }


def check_integrity(
    source_path: Path | str,
    descriptor_path: Path | str,
    charset: Optional[str] = None,
) -> IntegrityResult:
    """Compare ``base64(utf8(decode(source)))`` with the descriptor's ``content[0].data``.

    An unsupported ``charset`` raises ``UnsupportedEncodingError``; every other
    outcome is reported through the returned result.
    """
    if charset is not None:
        resolve_charset(charset)
    source = Path(source_path).expanduser().resolve()
    descriptor = Path(descriptor_path).expanduser().resolve()

    def _fail(reason: IntegrityReason, **extra: Any) -> IntegrityResult:
        logger.debug("Integrity check %s vs %s: %s", source.name, descriptor.name, reason.value)
        return IntegrityResult(source, descriptor, passed=False, reason=reason, **extra)

    if not source.is_file():
        return _fail(IntegrityReason.SOURCE_MISSING)
    if not descriptor.is_file():
        return _fail(IntegrityReason.DESCRIPTOR_MISSING)

    try:
        record = load_descriptor(descriptor)
    except DescriptorParseError as exc:
        return _fail(IntegrityReason.PARSE_ERROR, detail=exc.reason)

    if not isinstance(record, dict) or record.get("resourceType") != RESOURCE_TYPE:
        return _fail(IntegrityReason.WRONG_RESOURCE_TYPE)

    name = record.get("name") if isinstance(record.get("name"), str) else None
    version = record.get("version") if isinstance(record.get("version"), str) else None

    stored = _stored_payload(record)
    if stored is None:
        return _fail(IntegrityReason.NO_CONTENT_DATA, name=name, version=version)

    expected = to_base64_utf8(decode_file(source, charset).text)
    if expected != stored:
        return _fail(IntegrityReason.MISMATCH, name=name, version=version)

    return IntegrityResult(source, descriptor, passed=True, name=name, version=version)


def _stored_payload(record: Dict[str, Any]) -> Optional[str]:
    content = record.get("content")
    if not isinstance(content, list) or not content:
        return None
    first = content[0]
    if not isinstance(first, dict):
        return None
    data = first.get("data")
    if not isinstance(data, str) or not data:
        return None
    return data


def _display(path: Path, base: Optional[Path]) -> str:
    if base is None:
        return str(path)
    try:
        return path.relative_to(base).as_posix()
    except ValueError:
        return str(path)


__all__ = ["IntegrityMismatch", "IntegrityReason", "IntegrityResult", "check_integrity"]
