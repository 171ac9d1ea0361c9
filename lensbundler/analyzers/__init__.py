"""Source classification and pairing for lens scripts."""

from __future__ import annotations

from .entrypoints import ENTRY_POINT_RULES, EntryPointRule, has_enhance_entry_point, match_entry_point
from .pairing import PairingIndex, Resolution, build_pairing_index, resolve_source

__all__ = [
    "ENTRY_POINT_RULES",
    "EntryPointRule",
    "PairingIndex",
    "Resolution",
    "build_pairing_index",
    "has_enhance_entry_point",
    "match_entry_point",
    "resolve_source",
]
