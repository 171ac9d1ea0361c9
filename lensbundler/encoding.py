"""Charset resolution and decoding for lens source files."""

from __future__ import annotations

import base64
import codecs
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Tuple

from .logging import get_logger

logger = get_logger("encoding")

_BYTE_ORDER_MARK = "\ufeff"

# Order matters: the UTF-32 LE mark begins with the UTF-16 LE mark.
_BOM_SIGNATURES: Tuple[Tuple[bytes, str], ...] = (
    (codecs.BOM_UTF32_LE, "utf-32-le"),
    (codecs.BOM_UTF32_BE, "utf-32-be"),
    (codecs.BOM_UTF8, "utf-8"),
    (codecs.BOM_UTF16_LE, "utf-16-le"),
    (codecs.BOM_UTF16_BE, "utf-16-be"),
)

# Names accepted by the Node tooling lenses are usually authored with.
_CHARSET_ALIASES: Dict[str, str] = {
    "utf8": "utf-8",
    "utf16le": "utf-16-le",
    "utf-16le": "utf-16-le",
    "ucs2": "utf-16-le",
    "ucs-2": "utf-16-le",
    "utf16be": "utf-16-be",
    "latin1": "latin-1",
    "binary": "latin-1",
    "win1252": "cp1252",
}

_AUTO_FALLBACKS = ("utf-8", "cp1252")
_DEFAULT_CHARSET = "utf-8"


class UnsupportedEncodingError(LookupError):
    """Raised when a requested charset is not a known text encoding."""

    def __init__(self, charset: str) -> None:
        super().__init__(f"Unsupported encoding: {charset}")
        self.charset = charset


@dataclass(frozen=True)
class SourceFile:
    """Decoded lens script along with the charset that produced the text."""

    path: Path
    text: str
    charset: str


def resolve_charset(name: str) -> str:
    """Return the canonical codec name for ``name`` or raise ``UnsupportedEncodingError``."""
    cleaned = (name or "").strip()
    if not cleaned:
        raise UnsupportedEncodingError(name)
    candidate = _CHARSET_ALIASES.get(cleaned.lower(), cleaned)
    try:
        info = codecs.lookup(candidate)
        # bytes-to-bytes codecs such as base64 or hex are not charsets.
        "".encode(info.name)
    except LookupError as exc:
        raise UnsupportedEncodingError(name) from exc
    return info.name


def decode_file(path: Path | str, charset: Optional[str] = None) -> SourceFile:
    """Read ``path`` and decode it with ``charset`` or an auto-detected one.

    A single leading byte-order mark is removed from the decoded text; line
    endings are returned untouched.
    """
    resolved = resolve_charset(charset) if charset is not None else None
    file_path = Path(path).expanduser().resolve()
    raw = file_path.read_bytes()

    if resolved is not None:
        text = _decode_explicit(raw, resolved, file_path)
    else:
        text, resolved = _decode_detected(raw)
        logger.debug("Detected %s for %s", resolved, file_path)

    return SourceFile(path=file_path, text=strip_bom(text), charset=resolved)


def strip_bom(text: str) -> str:
    if text.startswith(_BYTE_ORDER_MARK):
        return text[1:]
    return text


def to_base64_utf8(text: str) -> str:
    """Return the standard, padded base64 form of the UTF-8 bytes of ``text``."""
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def _decode_explicit(raw: bytes, charset: str, path: Optional[Path]) -> str:
    try:
        return raw.decode(charset)
    except UnicodeDecodeError:
        logger.warning(
            "%s is not valid %s; undecodable bytes were replaced",
            path if path is not None else "input",
            charset,
        )
        return raw.decode(charset, errors="replace")


def _decode_detected(raw: bytes) -> Tuple[str, str]:
    for signature, charset in _BOM_SIGNATURES:
        if raw.startswith(signature):
            try:
                return raw.decode(charset), charset
            except UnicodeDecodeError:
                break

    utf16 = _sniff_utf16(raw)
    if utf16 is not None:
        try:
            return raw.decode(utf16), utf16
        except UnicodeDecodeError:
            pass

    for charset in _AUTO_FALLBACKS:
        try:
            return raw.decode(charset), charset
        except UnicodeDecodeError:
            continue

    return raw.decode(_DEFAULT_CHARSET, errors="replace"), _DEFAULT_CHARSET


def _sniff_utf16(raw: bytes) -> Optional[str]:
    """Guess BOM-less UTF-16 from where NUL bytes fall in mostly-ASCII text."""
    if len(raw) < 4 or len(raw) % 2:
        return None
    pairs = len(raw) // 2
    even_nuls = raw[0::2].count(0)
    odd_nuls = raw[1::2].count(0)
    if odd_nuls >= pairs * 0.3 and even_nuls <= pairs * 0.05:
        return "utf-16-le"
    if even_nuls >= pairs * 0.3 and odd_nuls <= pairs * 0.05:
        return "utf-16-be"
    return None


__all__ = [
    "SourceFile",
    "UnsupportedEncodingError",
    "decode_file",
    "resolve_charset",
    "strip_bom",
    "to_base64_utf8",
]
