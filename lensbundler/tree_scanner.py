"""Directory walking and exclusion rules for lens discovery."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, List, Sequence, Tuple

from .logging import get_logger

logger = get_logger("tree_scanner")

DESCRIPTOR_SUFFIX = ".json"
SOURCE_SUFFIX = ".js"


class InvalidExclusionError(ValueError):
    """Raised when a caller-supplied exclusion is not a valid regular expression."""

    def __init__(self, pattern: str, reason: str) -> None:
        super().__init__(f"Invalid exclusion pattern {pattern!r}: {reason}")
        self.pattern = pattern


@dataclass(frozen=True)
class ExclusionRule:
    """Regular expression tested against path segments and the relative path."""

    pattern: str
    regex: re.Pattern[str] = field(compare=False, repr=False)

    @classmethod
    def compile(cls, pattern: str) -> "ExclusionRule":
        try:
            regex = re.compile(pattern)
        except re.error as exc:
            raise InvalidExclusionError(pattern, str(exc)) from exc
        return cls(pattern=pattern, regex=regex)

    def matches(self, rel_path: str) -> bool:
        if not rel_path:
            return False
        if self.regex.search(rel_path):
            return True
        return any(self.regex.search(part) for part in rel_path.split("/") if part)


DEFAULT_EXCLUSIONS: Tuple[ExclusionRule, ...] = tuple(
    ExclusionRule.compile(pattern)
    for pattern in (
        r"^node_modules$",
        r"^\.git$",
        r"^package\.json$",
        r"^package-lock\.json$",
        r"^npm-shrinkwrap\.json$",
        r"^yarn\.lock$",
        r"^pnpm-lock\.yaml$",
    )
)


@dataclass
class ScanResult:
    """Descriptor and source candidates found under a root, in traversal order."""

    root: Path
    json_paths: List[Path] = field(default_factory=list)
    source_paths: List[Path] = field(default_factory=list)


def build_exclusions(
    patterns: Iterable[str] | None = None,
    *,
    base: Sequence[ExclusionRule] = DEFAULT_EXCLUSIONS,
) -> Tuple[ExclusionRule, ...]:
    """Return ``base`` followed by compiled ``patterns`` as a new tuple."""
    extra = [ExclusionRule.compile(pattern) for pattern in (patterns or ())]
    return tuple(base) + tuple(extra)


def is_excluded(rel_path: str, rules: Sequence[ExclusionRule]) -> bool:
    normalised = rel_path.replace(os.sep, "/").strip("/")
    return any(rule.matches(normalised) for rule in rules)


class TreeScanner:
    """Walks a lens workspace and collects descriptor and script candidates."""

    def scan(
        self,
        root: Path | str,
        exclusions: Sequence[ExclusionRule] = DEFAULT_EXCLUSIONS,
    ) -> ScanResult:
        root_path = Path(root).expanduser().resolve()
        if not root_path.exists():
            raise FileNotFoundError(f"Directory not found: {root}")
        if not root_path.is_dir():
            raise NotADirectoryError(f"Path is not a directory: {root}")

        result = ScanResult(root=root_path)
        for path in _iter_files(root_path, exclusions):
            suffix = path.suffix.lower()
            if suffix == DESCRIPTOR_SUFFIX:
                result.json_paths.append(path)
            elif suffix == SOURCE_SUFFIX:
                result.source_paths.append(path)
        logger.debug(
            "Scanned %s: %d descriptor candidates, %d source candidates",
            root_path,
            len(result.json_paths),
            len(result.source_paths),
        )
        return result


def _iter_files(root: Path, rules: Sequence[ExclusionRule]) -> Iterator[Path]:
    # topdown walk with sorted entries keeps traversal order stable across runs
    for dirpath, dirnames, filenames in os.walk(root):
        current_dir = Path(dirpath)
        rel_dir = current_dir.relative_to(root).as_posix() if current_dir != root else ""

        kept_dirs = []
        for name in sorted(dirnames):
            rel_path = f"{rel_dir}/{name}" if rel_dir else name
            if is_excluded(rel_path, rules):
                logger.debug("Skipping excluded directory %s", rel_path)
                continue
            kept_dirs.append(name)
        dirnames[:] = kept_dirs

        for filename in sorted(filenames):
            rel_path = f"{rel_dir}/{filename}" if rel_dir else filename
            if is_excluded(rel_path, rules):
                continue
            yield current_dir / filename


__all__ = [
    "DEFAULT_EXCLUSIONS",
    "ExclusionRule",
    "InvalidExclusionError",
    "ScanResult",
    "TreeScanner",
    "build_exclusions",
    "is_excluded",
]
