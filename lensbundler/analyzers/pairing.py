"""Exact and fallback pairing between lens descriptors and their scripts."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from ..encoding import decode_file
from ..logging import get_logger
from ..tree_scanner import DESCRIPTOR_SUFFIX
from .entrypoints import has_enhance_entry_point

logger = get_logger("pairing")

EXACT_MATCH = "exact-match"
FALLBACK = "fallback"


@dataclass
class PairingIndex:
    """Descriptor-to-script lookups rebuilt from a single scan."""

    exact: Dict[Path, Path] = field(default_factory=dict)
    fallback: Dict[Path, List[Path]] = field(default_factory=dict)

    def sources(self) -> List[Path]:
        """Return every indexed script once, sorted by path."""
        seen = set(self.exact.values())
        for candidates in self.fallback.values():
            seen.update(candidates)
        return sorted(seen)

    def descriptors_for(self, source: Path) -> List[Path]:
        return sorted(descriptor for descriptor, script in self.exact.items() if script == source)


@dataclass(frozen=True)
class Resolution:
    """The script chosen for a descriptor and how it was chosen."""

    path: Path
    source: str


def descriptor_path_for(source_path: Path) -> Path:
    """Return the sibling descriptor path sharing ``source_path``'s stem."""
    return source_path.with_suffix(DESCRIPTOR_SUFFIX)


def build_pairing_index(
    source_paths: Iterable[Path],
    *,
    charset: Optional[str] = None,
    classifier: Callable[[str], bool] = has_enhance_entry_point,
) -> PairingIndex:
    """Index scripts that declare an ``enhance`` entry point.

    ``source_paths`` must already be in scan order; fallback candidate lists
    keep that order. Scripts that cannot be read are left out of the index.
    An unsupported ``charset`` is fatal and propagates.
    """
    index = PairingIndex()
    for raw_path in source_paths:
        path = Path(raw_path)
        try:
            text = decode_file(path, charset).text
        except OSError as exc:
            logger.debug("Skipping unreadable script %s: %s", path, exc)
            continue

        if not classifier(text):
            logger.debug("No enhance entry point in %s", path)
            continue

        index.exact[descriptor_path_for(path)] = path
        index.fallback.setdefault(path.parent, []).append(path)
    return index


def resolve_source(descriptor_path: Path, index: PairingIndex) -> Optional[Resolution]:
    """Pick the script for ``descriptor_path``: exact sibling first, then directory fallback."""
    descriptor_path = Path(descriptor_path)
    exact = index.exact.get(descriptor_path)
    if exact is not None:
        return Resolution(path=exact, source=EXACT_MATCH)

    candidates = index.fallback.get(descriptor_path.parent) or []
    if not candidates:
        return None
    chosen = candidates[0]
    if len(candidates) > 1:
        logger.warning(
            "Ambiguous script for %s: %d candidates (%s); using %s",
            descriptor_path.name,
            len(candidates),
            ", ".join(candidate.name for candidate in candidates),
            chosen.name,
        )
    return Resolution(path=chosen, source=FALLBACK)


__all__ = [
    "EXACT_MATCH",
    "FALLBACK",
    "PairingIndex",
    "Resolution",
    "build_pairing_index",
    "descriptor_path_for",
    "resolve_source",
]
