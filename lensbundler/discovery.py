"""Lens discovery: validate every descriptor under a root and repair the repairable."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .analyzers import PairingIndex, build_pairing_index, resolve_source
from .constants import RESOURCE_TYPE, UNKNOWN_VERSION
from .encoding import decode_file
from .logging import get_logger
from .repair import RepairInfeasible, is_repairable, repair_descriptor
from .stores import DescriptorParseError, load_descriptor
from .tree_scanner import DEFAULT_EXCLUSIONS, ExclusionRule, TreeScanner
from .validators import validate_minimal

logger = get_logger("discovery")

DEFAULT_ENHANCE = "default"

PARSE_ERROR = "parse-error"
INVALID = "invalid"
REPAIR_INFEASIBLE = "repair-infeasible"


@dataclass
class LensEntry:
    """A descriptor that is valid as stored or after automatic content repair."""

    path: Path
    record: Dict[str, Any]
    has_base64: bool
    enhanced_with: Optional[Path] = None
    enhance_source: Optional[str] = None

    @property
    def name(self) -> str:
        return str(self.record.get("name", ""))

    @property
    def url(self) -> str:
        return str(self.record.get("url", ""))

    @property
    def status(self) -> str:
        return str(self.record.get("status", ""))

    @property
    def version(self) -> str:
        version = self.record.get("version")
        return version if isinstance(version, str) and version else UNKNOWN_VERSION

    @property
    def repaired(self) -> bool:
        return self.enhance_source is not None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "hasBase64": self.has_base64,
            "name": self.name,
            "path": str(self.path),
            "status": self.status,
            "url": self.url,
            "version": self.version,
        }
        if self.enhanced_with is not None:
            payload["enhancedWithJs"] = str(self.enhanced_with)
        if self.enhance_source is not None:
            payload["enhanceSource"] = self.enhance_source
        return payload


@dataclass
class DiscoveryFailure:
    """A descriptor candidate that did not become a lens entry."""

    path: Path
    kind: str
    errors: List[str] = field(default_factory=list)
    record: Any = None

    @property
    def is_library(self) -> bool:
        return isinstance(self.record, dict) and self.record.get("resourceType") == RESOURCE_TYPE


@dataclass
class DiscoveryReport:
    root: Path
    entries: List[LensEntry] = field(default_factory=list)
    failures: List[DiscoveryFailure] = field(default_factory=list)
    index: PairingIndex = field(default_factory=PairingIndex)
    outcomes: List[LensEntry | DiscoveryFailure] = field(default_factory=list)

    def accept(self, entry: LensEntry) -> None:
        self.entries.append(entry)
        self.outcomes.append(entry)

    def reject(self, failure: DiscoveryFailure) -> None:
        self.failures.append(failure)
        self.outcomes.append(failure)


class LensDiscovery:
    """Scans a tree, pairs scripts and returns every usable lens descriptor.

    Nothing is written to disk; repaired records live only in the returned
    entries.
    """

    def __init__(self, scanner: TreeScanner | None = None) -> None:
        self.scanner = scanner or TreeScanner()

    def discover(
        self,
        root: Path | str,
        exclusions: Sequence[ExclusionRule] = DEFAULT_EXCLUSIONS,
        charset: Optional[str] = None,
    ) -> DiscoveryReport:
        scan = self.scanner.scan(root, exclusions)
        index = build_pairing_index(scan.source_paths, charset=charset)
        report = DiscoveryReport(root=scan.root, index=index)
        for path in scan.json_paths:
            self._visit(path, index, charset, report)
        logger.debug(
            "Discovery under %s: %d lenses, %d rejected",
            scan.root,
            len(report.entries),
            len(report.failures),
        )
        return report

    def _visit(
        self,
        path: Path,
        index: PairingIndex,
        charset: Optional[str],
        report: DiscoveryReport,
    ) -> None:
        try:
            record = load_descriptor(path)
        except (DescriptorParseError, OSError) as exc:
            logger.debug("Error processing file %s: %s", path, exc)
            report.reject(DiscoveryFailure(path, PARSE_ERROR, [str(exc)]))
            return

        validation = validate_minimal(record)
        if validation.is_valid:
            logger.debug("Valid lens found: %s in file %s", record.get("name"), path)
            report.accept(LensEntry(path=path, record=record, has_base64=True))
            return

        if not is_repairable(record, validation):
            logger.debug("Invalid lens in file %s: %s", path, "; ".join(validation.errors))
            report.reject(DiscoveryFailure(path, INVALID, validation.errors, record))
            return

        entry = self._repair(path, record, index, charset)
        if entry is None:
            report.reject(
                DiscoveryFailure(path, REPAIR_INFEASIBLE, validation.errors, record)
            )
        else:
            report.accept(entry)

    def _repair(
        self,
        path: Path,
        record: Dict[str, Any],
        index: PairingIndex,
        charset: Optional[str],
    ) -> Optional[LensEntry]:
        resolution = resolve_source(path, index)
        text: Optional[str] = None
        enhanced_with: Optional[Path] = None
        source = DEFAULT_ENHANCE

        if resolution is not None:
            try:
                text = decode_file(resolution.path, charset).text
                enhanced_with = resolution.path
                source = resolution.source
            except OSError as exc:
                logger.debug("Failed to read %s: %s, using default enhance", resolution.path, exc)
        if enhanced_with is not None:
            logger.info("Enhancing lens %s with %s (%s)", record.get("name"), enhanced_with.name, source)
        else:
            logger.info("No enhance script found for lens %s, using default enhance", record.get("name"))

        try:
            repaired = repair_descriptor(record, text)
        except RepairInfeasible as exc:
            logger.debug("Failed to repair lens %s: %s", path, "; ".join(exc.errors))
            return None
        return LensEntry(
            path=path,
            record=repaired,
            has_base64=True,
            enhanced_with=enhanced_with,
            enhance_source=source,
        )


__all__ = [
    "DiscoveryFailure",
    "DiscoveryReport",
    "LensDiscovery",
    "LensEntry",
]
