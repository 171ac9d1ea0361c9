"""Reading and writing lens descriptor JSON files."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Mapping

from ..encoding import strip_bom


class DescriptorParseError(ValueError):
    """Raised when a descriptor file is not a JSON document."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Failed to parse {path}: {reason}")
        self.path = path
        self.reason = reason


def load_descriptor(path: Path | str) -> Any:
    """Return the parsed JSON value stored at ``path``.

    The value is returned as parsed; callers decide whether a non-object
    document is acceptable. A missing file raises ``FileNotFoundError``.
    """
    descriptor_path = Path(path)
    raw = descriptor_path.read_bytes()
    try:
        return json.loads(strip_bom(raw.decode("utf-8")))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise DescriptorParseError(descriptor_path, str(exc)) from exc


def dump_descriptor(record: Mapping[str, Any]) -> str:
    return json.dumps(record, indent=2, ensure_ascii=False)


def write_descriptor(path: Path | str, record: Mapping[str, Any]) -> Path:
    """Overwrite ``path`` with ``record`` as two-space indented JSON."""
    descriptor_path = Path(path)
    descriptor_path.parent.mkdir(parents=True, exist_ok=True)
    descriptor_path.write_text(dump_descriptor(record), encoding="utf-8")
    return descriptor_path
