"""Configuration loading for lensbundler (.lensbundler.yml)."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import yaml

from .encoding import UnsupportedEncodingError, resolve_charset

CONFIG_FILENAME = ".lensbundler.yml"
_TRUE_WORDS = frozenset({"true", "yes", "on", "1"})
_FALSE_WORDS = frozenset({"false", "no", "off", "0"})


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed."""


@dataclass
class FhirConfig:
    """FHIR server used by the upload commands."""

    domain: Optional[str] = None
    timeout: Optional[float] = None


@dataclass
class MetadataDefaults:
    """Overrides applied to newly created lens ``Library`` records."""

    publisher: Optional[str] = None
    copyright: Optional[str] = None
    url: Optional[str] = None
    status: Optional[str] = None
    version: Optional[str] = None

    def as_overrides(self) -> Dict[str, Optional[str]]:
        return {
            "publisher": self.publisher,
            "copyright": self.copyright,
            "url": self.url,
            "status": self.status,
            "version": self.version,
        }


@dataclass
class LensBundlerConfig:
    """Represents the settings defined in .lensbundler.yml."""

    root: Path
    exclude: List[str] = field(default_factory=list)
    source_encoding: Optional[str] = None
    skip_date: bool = False
    fhir: FhirConfig = field(default_factory=FhirConfig)
    metadata: MetadataDefaults = field(default_factory=MetadataDefaults)


def load_config(config_path: Path) -> LensBundlerConfig:
    """Load configuration from disk; a missing file yields the defaults.

    Values are checked as they are read: exclusion patterns must compile, the
    source charset must name a known codec, ``fhir.domain`` must be an http(s)
    URL and ``fhir.timeout`` a positive number. Any violation raises
    ``ConfigError`` naming the offending key.
    """
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    if not config_file.exists():
        return LensBundlerConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    fhir_section = _section(data, "fhir")
    fhir = FhirConfig(
        domain=_domain(fhir_section.get("domain")),
        timeout=_timeout(fhir_section.get("timeout")),
    )

    metadata_section = _section(data, "metadata")
    metadata = MetadataDefaults(
        **{key: _text(metadata_section.get(key)) for key in MetadataDefaults().as_overrides()}
    )

    return LensBundlerConfig(
        root=root,
        exclude=_patterns(data.get("exclude")),
        source_encoding=_charset(data.get("source_encoding")),
        skip_date=_flag("skip_date", data.get("skip_date")),
        fhir=fhir,
        metadata=metadata,
    )


def _resolve_config_path(config_path: Path) -> Path:
    config_path = Path(config_path).expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    if config_path.name != CONFIG_FILENAME:
        return (config_path.parent / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return {} if loaded is None else loaded


def _section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{key}' in {CONFIG_FILENAME} must be a mapping")
    return value


def _text(value: Any) -> Optional[str]:
    # YAML turns bare versions like 2 or 1.0 into numbers
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        return None
    text = str(value).strip()
    return text or None


def _domain(value: Any) -> Optional[str]:
    domain = _text(value)
    if domain is None:
        return None
    if urlparse(domain).scheme not in {"http", "https"}:
        raise ConfigError(f"fhir.domain must be an http(s) URL, got {domain!r}")
    return domain


def _timeout(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        seconds = float(value) if not isinstance(value, bool) else -1.0
    except (TypeError, ValueError):
        seconds = -1.0
    if seconds <= 0:
        raise ConfigError(f"fhir.timeout must be a positive number of seconds, got {value!r}")
    return seconds


def _flag(key: str, value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in _TRUE_WORDS:
        return True
    if lowered in _FALSE_WORDS:
        return False
    raise ConfigError(f"'{key}' in {CONFIG_FILENAME} must be true or false, got {value!r}")


def _charset(value: Any) -> Optional[str]:
    name = _text(value)
    if name is None:
        return None
    try:
        resolve_charset(name)
    except UnsupportedEncodingError as exc:
        raise ConfigError(f"source_encoding in {CONFIG_FILENAME}: {exc}") from exc
    return name


def _patterns(value: Any) -> List[str]:
    if value is None:
        return []
    items = [value] if isinstance(value, str) else value
    if not isinstance(items, list):
        raise ConfigError(f"'exclude' in {CONFIG_FILENAME} must be a pattern or a list of patterns")
    patterns: List[str] = []
    for item in items:
        pattern = _text(item)
        if pattern is None:
            continue
        try:
            re.compile(pattern)
        except re.error as exc:
            raise ConfigError(f"Invalid exclude pattern {pattern!r}: {exc}") from exc
        patterns.append(pattern)
    return patterns


__all__ = [
    "CONFIG_FILENAME",
    "ConfigError",
    "FhirConfig",
    "LensBundlerConfig",
    "MetadataDefaults",
    "load_config",
]
