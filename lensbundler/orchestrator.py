"""Command workflows for bundling, checking, listing and uploading lenses."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from .analyzers import PairingIndex, build_pairing_index, resolve_source
from .config import LensBundlerConfig, load_config
from .constants import RESOURCE_TYPE, TEMPLATE_URL
from .discovery import DiscoveryFailure, LensDiscovery, LensEntry
from .encoding import decode_file, to_base64_utf8
from .fhir import FhirClient, FhirUploadError, UploadOutcome
from .integrity import IntegrityReason, IntegrityResult, check_integrity
from .logging import get_logger
from .models import LensMetadata
from .repair import synchronize_content
from .scaffold import ScaffoldError, ScaffoldOutcome, TemplateScaffolder
from .stores import DescriptorParseError, load_descriptor, write_descriptor
from .tree_scanner import DESCRIPTOR_SUFFIX, ExclusionRule, TreeScanner, build_exclusions
from .validators import ValidationResult, missing_requirements, validate_full, validate_minimal

TEMPLATE_TIMEOUT = 30.0


class CommandError(RuntimeError):
    """Raised when a command cannot run with the given arguments or files."""


@dataclass
class BundleOutcome:
    """Where a bundle was written and whether it was newly created."""

    path: Path
    created: bool
    name: str


@dataclass
class BatchItem:
    path: Path
    action: str
    reason: str


@dataclass
class BatchResult:
    """Per-lens outcomes of a batch bundle or batch upload run."""

    details: List[BatchItem] = field(default_factory=list)

    def record(self, path: Path, action: str, reason: str) -> None:
        self.details.append(BatchItem(path=path, action=action, reason=reason))

    def _count(self, action: str) -> int:
        return sum(1 for item in self.details if item.action == action)

    @property
    def updated(self) -> int:
        return self._count("updated")

    @property
    def uploaded(self) -> int:
        return self._count("uploaded")

    @property
    def skipped(self) -> int:
        return self._count("skipped")

    @property
    def errors(self) -> int:
        return self._count("error")


@dataclass
class BatchCheckReport:
    results: List[IntegrityResult] = field(default_factory=list)

    @property
    def passed(self) -> List[IntegrityResult]:
        return [result for result in self.results if result.passed]

    @property
    def failed(self) -> List[IntegrityResult]:
        return [result for result in self.results if not result.passed]

    def to_dict(self, base: Optional[Path] = None) -> Dict[str, Any]:
        return {
            "total": len(self.results),
            "passed": len(self.passed),
            "failed": len(self.failed),
            "results": [result.to_dict(base) for result in self.results],
        }


@dataclass
class LensListing:
    """A ``Library`` descriptor as shown by ``lslens``."""

    path: Path
    record: Any
    has_base64: bool
    validation: ValidationResult
    enhanced_with: Optional[Path] = None
    enhance_source: Optional[str] = None

    @property
    def name(self) -> str:
        return _field(self.record, "name")

    @property
    def url(self) -> str:
        return _field(self.record, "url", "")

    @property
    def status(self) -> str:
        return _field(self.record, "status")

    @property
    def version(self) -> str:
        return _field(self.record, "version")

    @property
    def almost_valid(self) -> bool:
        errors = self.validation.errors
        return (
            not self.validation.is_valid
            and len(errors) <= 2
            and any("content" in error for error in errors)
        )

    def to_dict(self, *, include_validation: bool = False) -> Dict[str, Any]:
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
        if include_validation:
            payload["validation"] = {
                **self.validation.to_dict(),
                "fullProfile": validate_full(self.record).to_dict(),
                "missingRequirements": missing_requirements(self.record),
            }
        return payload


@dataclass
class EnhanceScript:
    """A script exposing an ``enhance`` entry point, as shown by ``lsenhancejs``."""

    path: Path
    exact: bool
    matching_descriptors: List[Path] = field(default_factory=list)

    @property
    def directory(self) -> Path:
        return self.path.parent

    def to_dict(self, *, include_details: bool = False) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"path": str(self.path)}
        if include_details:
            payload["type"] = "exact" if self.exact else "fallback"
            if self.exact:
                payload["matchingJsonFiles"] = [str(path) for path in self.matching_descriptors]
            else:
                payload["directory"] = str(self.directory)
        return payload


TemplateFetcher = Callable[[str, float], str]
ClientFactory = Callable[[str, Optional[float]], FhirClient]


class Orchestrator:
    """Coordinates the lens commands on top of discovery, repair and integrity checks."""

    def __init__(
        self,
        scanner: TreeScanner | None = None,
        discovery: LensDiscovery | None = None,
        client_factory: ClientFactory | None = None,
        template_fetcher: TemplateFetcher | None = None,
        scaffolder: TemplateScaffolder | None = None,
        cwd: Path | None = None,
    ) -> None:
        self.scanner = scanner or TreeScanner()
        self.discovery = discovery or LensDiscovery(self.scanner)
        self._client_factory = client_factory or _default_client
        self._template_fetcher = template_fetcher or fetch_template
        self.scaffolder = scaffolder or TemplateScaffolder()
        self._cwd = cwd
        self.logger = get_logger("orchestrator")

    @property
    def cwd(self) -> Path:
        return (self._cwd or Path.cwd()).resolve()

    # ------------------------------------------------------------------
    # Single lens workflows

    def run_bundle(
        self,
        file: str | Path,
        *,
        name: Optional[str] = None,
        use_defaults: bool = False,
        update: bool = False,
        package_json: bool = False,
        bundle: Optional[str | Path] = None,
        skip_date: bool = False,
        source_encoding: Optional[str] = None,
        description: Optional[str] = None,
        purpose: Optional[str] = None,
        usage: Optional[str] = None,
    ) -> BundleOutcome:
        """Embed ``file`` into its descriptor, merging into an existing one when present."""
        if package_json and use_defaults:
            raise CommandError("The --package-json flag is incompatible with --default (-d) flag")
        if package_json and name:
            raise CommandError("The --package-json flag is incompatible with --name (-n) flag")
        if not (update or name or package_json or bundle):
            raise CommandError("Either --name (-n) or --package-json (-p) flag is required when not updating")

        config = self._load_config(self.cwd)
        source_path = self._resolve_path(file)
        if not source_path.is_file():
            raise FileNotFoundError(f"JavaScript file not found: {file}")
        charset = source_encoding or config.source_encoding
        text = decode_file(source_path, charset).text

        package = self._read_package_json() if package_json else None
        if package is not None and not package.get("name"):
            raise CommandError('package.json does not contain a "name" field')
        lens_name = name or (str(package["name"]) if package is not None else None)

        target = self._bundle_target(source_path, lens_name, bundle, update)
        if target.exists():
            try:
                existing = load_descriptor(target)
            except DescriptorParseError as exc:
                raise CommandError(f"Error updating bundle: {exc}") from exc
            if not isinstance(existing, dict):
                raise CommandError(f"Bundle file {target} does not contain a JSON object")
            record = synchronize_content(existing, text, touch_date=not skip_date)
            write_descriptor(target, record)
            self.logger.info("Bundle %s updated (content and date)", target.name)
            return BundleOutcome(path=target, created=False, name=str(record.get("name", "")))

        if update:
            raise CommandError(
                f"Bundle file {target.name} does not exist. Use without -u flag to create a new bundle."
            )
        if lens_name is None:
            raise CommandError("Either --name (-n) or --package-json (-p) flag is required to create a bundle")

        if package is not None:
            metadata = LensMetadata.from_package_json(package)
        else:
            metadata = LensMetadata(name=lens_name)
            if not use_defaults:
                metadata = metadata.with_overrides(
                    description=description, purpose=purpose, usage=usage
                )
        metadata = metadata.with_overrides(**config.metadata.as_overrides())
        record = synchronize_content(None, text, metadata=metadata)
        write_descriptor(target, record)
        self.logger.info("Bundle written to file: %s", target.name)
        return BundleOutcome(path=target, created=True, name=metadata.name)

    def run_check(
        self,
        file: str | Path,
        *,
        name: Optional[str] = None,
        bundle: Optional[str | Path] = None,
        source_encoding: Optional[str] = None,
    ) -> IntegrityResult:
        """Compare a script with the payload embedded in its descriptor."""
        config = self._load_config(self.cwd)
        source_path = self._resolve_path(file)
        charset = source_encoding or config.source_encoding

        if bundle is not None:
            descriptor = self._resolve_path(bundle)
        elif name:
            descriptor = self.cwd / f"{name}{DESCRIPTOR_SUFFIX}"
        else:
            descriptor = source_path.with_suffix(DESCRIPTOR_SUFFIX)
            if source_path.is_file() and not descriptor.exists():
                located = _first_library(source_path.parent)
                if located is None:
                    self.logger.debug("No FHIR Library bundle found for %s", source_path)
                    return IntegrityResult(
                        source_path,
                        descriptor,
                        passed=False,
                        reason=IntegrityReason.DESCRIPTOR_MISSING,
                        detail=f"No FHIR Library bundle found for {source_path.name}",
                    )
                descriptor = located

        return check_integrity(source_path, descriptor, charset)

    def run_new(
        self,
        name: str,
        *,
        force: bool = False,
        use_defaults: bool = False,
        template_url: str = TEMPLATE_URL,
        description: Optional[str] = None,
        purpose: Optional[str] = None,
        usage: Optional[str] = None,
    ) -> List[Path]:
        """Create ``<name>.js`` from the lens template and its ``<name>.json`` descriptor."""
        script_path = self.cwd / f"{name}.js"
        descriptor_path = self.cwd / f"{name}{DESCRIPTOR_SUFFIX}"
        if not force:
            for path in (script_path, descriptor_path):
                if path.exists():
                    raise CommandError(f"File {path.name} already exists. Use --force (-f) to overwrite.")

        try:
            template = self._template_fetcher(template_url, TEMPLATE_TIMEOUT)
        except RuntimeError as exc:
            raise CommandError(f"Error fetching lens template: {exc}") from exc

        metadata = LensMetadata(name=name)
        if not use_defaults:
            metadata = metadata.with_overrides(description=description, purpose=purpose, usage=usage)
        metadata = metadata.with_overrides(**self._load_config(self.cwd).metadata.as_overrides())

        script_path.write_text(template, encoding="utf-8")
        write_descriptor(descriptor_path, synchronize_content(None, template, metadata=metadata))
        self.logger.info("Created %s and %s", script_path.name, descriptor_path.name)
        return [script_path, descriptor_path]

    def run_new_project(
        self,
        name: str,
        *,
        force: bool = False,
        fork: bool = False,
        use_defaults: bool = False,
        description: Optional[str] = None,
    ) -> ScaffoldOutcome:
        """Clone lens-template into the working directory (or a subdirectory) for ``name``."""
        overrides = self._load_config(self.cwd).metadata.as_overrides()
        try:
            return self.scaffolder.create(
                self.cwd,
                name,
                force=force,
                fork=fork,
                use_defaults=use_defaults,
                description=description,
                overrides=overrides,
            )
        except ScaffoldError as exc:
            raise CommandError(str(exc)) from exc

    def run_upload(self, file: str | Path, *, domain: Optional[str] = None) -> UploadOutcome:
        """Upload one descriptor to the FHIR server as stored on disk.

        The record must pass minimal validation; ``SchemaViolation`` is raised
        before any request is made otherwise.
        """
        config = self._load_config(self.cwd)
        path = self._resolve_path(file)
        if not path.is_file():
            raise FileNotFoundError(f"Bundle file not found: {file}")
        record = load_descriptor(path)
        if not isinstance(record, dict):
            raise CommandError(f"Bundle file {path.name} does not contain a JSON object")
        validate_minimal(record).raise_for_errors(path.name)
        client = self._client(domain, config)
        return client.upload(record)

    # ------------------------------------------------------------------
    # Directory workflows

    def run_batch_bundle(
        self,
        directory: str | Path,
        *,
        exclude: Sequence[str] = (),
        force: bool = False,
        skip_date: Optional[bool] = None,
        skip_valid: bool = False,
        source_encoding: Optional[str] = None,
    ) -> BatchResult:
        """Synchronise every discovered lens with its script and write it back."""
        root = self._require_directory(directory)
        config = self._load_config(root)
        exclusions = self._exclusions(config, exclude)
        charset = source_encoding or config.source_encoding
        touch_date = not (config.skip_date if skip_date is None else skip_date)

        self.logger.info("Discovering lenses under %s", root)
        report = self.discovery.discover(root, exclusions, charset)
        result = BatchResult()
        for entry in report.entries:
            prepared = self._prepare_sync(entry, report.index, charset, force, skip_valid, touch_date, result)
            if prepared is None:
                continue
            record, reason = prepared
            try:
                write_descriptor(entry.path, record)
            except OSError as exc:
                self.logger.error("Error: %s - %s", entry.path.name, exc)
                result.record(entry.path, "error", str(exc))
                continue
            self.logger.info("Updated: %s", entry.path.name)
            result.record(entry.path, "updated", reason)
        return result

    def run_batch_check(
        self,
        directory: str | Path,
        *,
        exclude: Sequence[str] = (),
        source_encoding: Optional[str] = None,
    ) -> BatchCheckReport:
        """Check every script/descriptor pair that shares a base name."""
        root = self._require_directory(directory)
        config = self._load_config(root)
        exclusions = self._exclusions(config, exclude)
        charset = source_encoding or config.source_encoding

        scan = self.scanner.scan(root, exclusions)
        index = build_pairing_index(scan.source_paths, charset=charset)
        report = BatchCheckReport()
        for descriptor, source in index.exact.items():
            report.results.append(check_integrity(source, descriptor, charset))
        return report

    def run_batch_upload(
        self,
        directory: str | Path,
        *,
        domain: Optional[str] = None,
        exclude: Sequence[str] = (),
        force: bool = False,
        skip_date: Optional[bool] = None,
        skip_valid: bool = False,
        source_encoding: Optional[str] = None,
    ) -> BatchResult:
        """Synchronise every discovered lens in memory and upload it; nothing is written."""
        root = self._require_directory(directory)
        config = self._load_config(root)
        exclusions = self._exclusions(config, exclude)
        charset = source_encoding or config.source_encoding
        touch_date = not (config.skip_date if skip_date is None else skip_date)
        client = self._client(domain, config)

        report = self.discovery.discover(root, exclusions, charset)
        result = BatchResult()
        for entry in report.entries:
            prepared = self._prepare_sync(entry, report.index, charset, force, skip_valid, touch_date, result)
            if prepared is None:
                continue
            record, _ = prepared
            try:
                outcome = client.upload(record)
            except FhirUploadError as exc:
                self.logger.error("Upload failed for %s: %s", entry.path.name, exc)
                result.record(entry.path, "error", str(exc))
                continue
            result.record(entry.path, "uploaded", f"Library {outcome.action} (status {outcome.status})")
        return result

    def run_list_lenses(
        self,
        directory: str | Path,
        *,
        include_all: bool = False,
        almost_valid: bool = False,
        exclude: Sequence[str] = (),
    ) -> List[LensListing]:
        """Return ``Library`` descriptors under ``directory`` filtered for ``lslens``."""
        root = self._require_directory(directory)
        config = self._load_config(root)
        report = self.discovery.discover(root, self._exclusions(config, exclude), config.source_encoding)

        listings: List[LensListing] = []
        for outcome in report.outcomes:
            if isinstance(outcome, LensEntry):
                listings.append(
                    LensListing(
                        path=outcome.path,
                        record=outcome.record,
                        has_base64=outcome.has_base64,
                        validation=validate_minimal(outcome.record),
                        enhanced_with=outcome.enhanced_with,
                        enhance_source=outcome.enhance_source,
                    )
                )
            elif isinstance(outcome, DiscoveryFailure) and outcome.is_library:
                listings.append(
                    LensListing(
                        path=outcome.path,
                        record=outcome.record,
                        has_base64=False,
                        validation=validate_minimal(outcome.record),
                    )
                )

        if almost_valid:
            return [listing for listing in listings if listing.almost_valid]
        if not include_all:
            return [listing for listing in listings if listing.validation.is_valid or listing.has_base64]
        return listings

    def run_list_enhance_js(
        self,
        directory: str | Path,
        *,
        exclude: Sequence[str] = (),
    ) -> List[EnhanceScript]:
        """Return every script that declares an ``enhance`` entry point, sorted by path."""
        root = self._require_directory(directory)
        config = self._load_config(root)
        scan = self.scanner.scan(root, self._exclusions(config, exclude))
        index = build_pairing_index(scan.source_paths, charset=config.source_encoding)

        scripts: List[EnhanceScript] = []
        for source in index.sources():
            descriptors = [path for path in index.descriptors_for(source) if path.exists()]
            scripts.append(EnhanceScript(path=source, exact=bool(descriptors), matching_descriptors=descriptors))
        return scripts

    # ------------------------------------------------------------------
    # Helpers

    def _prepare_sync(
        self,
        entry: LensEntry,
        index: PairingIndex,
        charset: Optional[str],
        force: bool,
        skip_valid: bool,
        touch_date: bool,
        result: BatchResult,
    ) -> Optional[tuple[Dict[str, Any], str]]:
        if not force and skip_valid and not entry.repaired:
            result.record(entry.path, "skipped", "Already has valid base64 content")
            return None

        resolution = resolve_source(entry.path, index)
        if resolution is None:
            result.record(entry.path, "skipped", "No corresponding JS file found")
            return None

        try:
            text = decode_file(resolution.path, charset).text
        except OSError as exc:
            self.logger.error("Error: %s - %s", entry.path.name, exc)
            result.record(entry.path, "error", str(exc))
            return None

        payload = to_base64_utf8(text)
        content = entry.record.get("content")
        current = content[0].get("data") if isinstance(content, list) and content and isinstance(content[0], dict) else None
        if current == payload and skip_valid and not entry.repaired:
            result.record(entry.path, "skipped", "Content already up to date")
            return None

        record = synchronize_content(entry.record, text, touch_date=touch_date)
        return record, f"Bundled with {resolution.source} JS: {resolution.path}"

    def _bundle_target(
        self,
        source_path: Path,
        name: Optional[str],
        bundle: Optional[str | Path],
        update: bool,
    ) -> Path:
        if bundle is not None:
            return self._resolve_path(bundle)
        sibling = source_path.with_suffix(DESCRIPTOR_SUFFIX)
        if sibling.exists():
            return sibling
        if name:
            return self.cwd / f"{name}{DESCRIPTOR_SUFFIX}"
        if update:
            located = _first_library(source_path.parent)
            if located is not None:
                return located
            raise CommandError("No valid FHIR Library bundle found. Please specify a name with -n or use -p flag.")
        return sibling

    def _read_package_json(self) -> Dict[str, Any]:
        path = self.cwd / "package.json"
        if not path.is_file():
            raise CommandError("package.json not found in current directory")
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise CommandError(f"Error reading package.json: {exc}") from exc
        if not isinstance(payload, dict):
            raise CommandError("package.json must contain a JSON object")
        return payload

    def _client(self, domain: Optional[str], config: LensBundlerConfig) -> FhirClient:
        resolved = domain or config.fhir.domain
        if not resolved:
            raise CommandError("A FHIR server domain is required (--domain or fhir.domain in .lensbundler.yml)")
        return self._client_factory(resolved, config.fhir.timeout)

    def _load_config(self, root: Path) -> LensBundlerConfig:
        return load_config(root)

    def _exclusions(self, config: LensBundlerConfig, patterns: Sequence[str]) -> tuple[ExclusionRule, ...]:
        return build_exclusions([*config.exclude, *patterns])

    def _require_directory(self, directory: str | Path) -> Path:
        root = self._resolve_path(directory)
        if not root.exists():
            raise FileNotFoundError(f"Directory does not exist: {directory}")
        if not root.is_dir():
            raise NotADirectoryError(f"Path is not a directory: {directory}")
        return root

    def _resolve_path(self, value: str | Path) -> Path:
        path = Path(value).expanduser()
        if not path.is_absolute():
            path = self.cwd / path
        return path.resolve()


def fetch_template(url: str, timeout: float) -> str:
    """Download the lens template script."""
    request = Request(url, headers={"Accept": "text/plain"})
    try:
        with urlopen(request, timeout=timeout) as response:  # type: ignore[arg-type]
            raw = response.read()
    except HTTPError as exc:
        raise RuntimeError(f"Template download failed with status {exc.code}") from exc
    except URLError as exc:
        raise RuntimeError(f"Template download failed: {exc.reason}") from exc
    return raw.decode("utf-8")


def _default_client(domain: str, timeout: Optional[float]) -> FhirClient:
    return FhirClient(domain, timeout=timeout)


def _first_library(directory: Path) -> Optional[Path]:
    for candidate in sorted(directory.glob(f"*{DESCRIPTOR_SUFFIX}")):
        try:
            record = load_descriptor(candidate)
        except (DescriptorParseError, OSError):
            continue
        if isinstance(record, dict) and record.get("resourceType") == RESOURCE_TYPE:
            return candidate
    return None


def _field(record: Any, key: str, default: str = "unknown") -> str:
    if isinstance(record, dict):
        value = record.get(key)
        if isinstance(value, str) and value:
            return value
    return default


__all__ = [
    "BatchCheckReport",
    "BatchResult",
    "BundleOutcome",
    "CommandError",
    "EnhanceScript",
    "LensListing",
    "Orchestrator",
    "fetch_template",
]
