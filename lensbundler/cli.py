"""CLI entrypoints for lensbundler commands."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import List, Sequence

from .config import ConfigError
from .constants import TEMPLATE_URL
from .encoding import UnsupportedEncodingError
from .fhir import FhirUploadError
from .integrity import IntegrityMismatch, IntegrityResult
from .logging import configure_logging
from .orchestrator import (
    BatchCheckReport,
    BatchResult,
    CommandError,
    EnhanceScript,
    LensListing,
    Orchestrator,
)
from .scaffold import ScaffoldOutcome
from .stores import DescriptorParseError
from .tree_scanner import InvalidExclusionError
from .validators import SchemaViolation, missing_requirements

_RULE = "=" * 60


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _add_directory_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "directory",
        nargs="?",
        default=".",
        help="Directory to scan (defaults to current directory).",
    )


def _add_exclude_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-e",
        "--exclude",
        action="append",
        default=[],
        metavar="PATTERN",
        help="Regex for files or directories to skip (repeatable, added to the defaults).",
    )


def _add_encoding_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--source-encoding",
        default=None,
        metavar="CHARSET",
        help="Charset of the JavaScript sources (auto-detected when omitted).",
    )


def _add_metadata_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--description", default=None, help="Description of the lens.")
    parser.add_argument("--purpose", default=None, help="Purpose of the lens.")
    parser.add_argument("--usage", default=None, help="Usage of the lens.")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lensbundler",
        description="Bundle, check and publish FHIR lens Library resources.",
    )
    _add_verbose_option(parser)
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write DEBUG-level logs to this file.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    bundle_parser = subparsers.add_parser(
        "bundle",
        help="Embed a lens script into its FHIR Library bundle.",
    )
    _add_verbose_option(bundle_parser, suppress_default=True)
    bundle_parser.add_argument("file", help="JavaScript file to bundle.")
    bundle_parser.add_argument("-n", "--name", default=None, help="Name of the lens.")
    bundle_parser.add_argument(
        "-d",
        "--default",
        dest="use_defaults",
        action="store_true",
        help="Use default metadata values for a new bundle.",
    )
    bundle_parser.add_argument(
        "-u",
        "--update",
        action="store_true",
        help="Only update the content and date of an existing bundle.",
    )
    bundle_parser.add_argument(
        "-p",
        "--package-json",
        action="store_true",
        help="Take lens metadata from package.json in the current directory.",
    )
    bundle_parser.add_argument("-b", "--bundle", default=None, help="Explicit bundle file to write.")
    bundle_parser.add_argument(
        "--skip-date",
        action="store_true",
        help="Keep the existing date when updating a bundle.",
    )
    _add_encoding_option(bundle_parser)
    _add_metadata_options(bundle_parser)

    check_parser = subparsers.add_parser(
        "check",
        help="Verify that a bundle's embedded content matches its script.",
    )
    _add_verbose_option(check_parser, suppress_default=True)
    check_parser.add_argument("file", help="JavaScript file to check.")
    check_parser.add_argument("-n", "--name", default=None, help="Name of the lens bundle.")
    check_parser.add_argument("-b", "--bundle", default=None, help="Bundle file to check against.")
    check_parser.add_argument("-q", "--quiet", action="store_true", help="Only set the exit code.")
    _add_encoding_option(check_parser)

    lslens_parser = subparsers.add_parser("lslens", help="List lens bundles in a directory.")
    _add_verbose_option(lslens_parser, suppress_default=True)
    _add_directory_argument(lslens_parser)
    lslens_parser.add_argument("-a", "--all", dest="include_all", action="store_true", help="List every Library, valid or not.")
    lslens_parser.add_argument(
        "--almost-valid",
        action="store_true",
        help="List lenses that fail validation only on their content.",
    )
    lslens_parser.add_argument("-j", "--json", action="store_true", help="Output as JSON.")
    lslens_parser.add_argument("-r", "--show-reasons", action="store_true", help="Show validation reasons.")
    lslens_parser.add_argument("-V", "--validate", action="store_true", help="Show the full validation report.")
    _add_exclude_option(lslens_parser)

    lsenhancejs_parser = subparsers.add_parser(
        "lsenhancejs",
        help="List JavaScript files exposing an enhance function.",
    )
    _add_verbose_option(lsenhancejs_parser, suppress_default=True)
    _add_directory_argument(lsenhancejs_parser)
    lsenhancejs_parser.add_argument("-d", "--details", action="store_true", help="Show exact/fallback details.")
    lsenhancejs_parser.add_argument("-j", "--json", action="store_true", help="Output as JSON.")
    _add_exclude_option(lsenhancejs_parser)

    batch_bundle_parser = subparsers.add_parser(
        "batch-bundle",
        help="Bundle every lens found under a directory.",
    )
    _add_verbose_option(batch_bundle_parser, suppress_default=True)
    _add_directory_argument(batch_bundle_parser)
    _add_exclude_option(batch_bundle_parser)
    batch_bundle_parser.add_argument("-f", "--force", action="store_true", help="Bundle even when content is up to date.")
    batch_bundle_parser.add_argument(
        "-d",
        "--skip-date",
        action="store_true",
        default=None,
        help="Keep existing dates.",
    )
    batch_bundle_parser.add_argument("-s", "--skip-valid", action="store_true", help="Skip lenses with valid content.")
    _add_encoding_option(batch_bundle_parser)

    batch_check_parser = subparsers.add_parser(
        "batch-check",
        help="Check every script/bundle pair under a directory.",
    )
    _add_verbose_option(batch_check_parser, suppress_default=True)
    _add_directory_argument(batch_check_parser)
    batch_check_parser.add_argument("-q", "--quiet", action="store_true", help="Only print the summary.")
    batch_check_parser.add_argument("-j", "--json", action="store_true", help="Output as JSON.")
    _add_exclude_option(batch_check_parser)
    _add_encoding_option(batch_check_parser)

    upload_parser = subparsers.add_parser("upload", help="Upload a lens bundle to a FHIR server.")
    _add_verbose_option(upload_parser, suppress_default=True)
    upload_parser.add_argument("file", help="Bundle file to upload.")
    upload_parser.add_argument("-d", "--domain", default=None, help="FHIR server base URL.")

    batch_upload_parser = subparsers.add_parser(
        "batch-upload",
        help="Bundle every lens under a directory and upload it.",
    )
    _add_verbose_option(batch_upload_parser, suppress_default=True)
    _add_directory_argument(batch_upload_parser)
    batch_upload_parser.add_argument("-d", "--domain", default=None, help="FHIR server base URL.")
    _add_exclude_option(batch_upload_parser)
    batch_upload_parser.add_argument("-f", "--force", action="store_true", help="Upload even when content is up to date.")
    batch_upload_parser.add_argument(
        "-t",
        "--skip-date",
        action="store_true",
        default=None,
        help="Keep existing dates.",
    )
    batch_upload_parser.add_argument("-s", "--skip-valid", action="store_true", help="Skip lenses with valid content.")
    _add_encoding_option(batch_upload_parser)

    new_parser = subparsers.add_parser("new", help="Create a lens script and bundle from the template.")
    _add_verbose_option(new_parser, suppress_default=True)
    new_parser.add_argument("name", help="Name of the new lens.")
    new_parser.add_argument("-f", "--force", action="store_true", help="Overwrite existing files.")
    new_parser.add_argument(
        "-d",
        "--default",
        dest="use_defaults",
        action="store_true",
        help="Use default metadata values.",
    )
    new_parser.add_argument("--template-url", default=TEMPLATE_URL, help="URL of the lens template script.")
    new_parser.add_argument(
        "-t",
        "--template",
        action="store_true",
        help="Clone the full lens-template repository instead of fetching one script.",
    )
    new_parser.add_argument(
        "--fork",
        action="store_true",
        help="Fork lens-template with the GitHub CLI and clone the fork (implies --template).",
    )
    _add_metadata_options(new_parser)

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for lensbundler commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(
        verbose=bool(args.verbose),
        quiet=bool(getattr(args, "quiet", False)),
        log_file=args.log_file,
    )

    orchestrator = Orchestrator()

    if args.command == "bundle":
        try:
            outcome = orchestrator.run_bundle(
                args.file,
                name=args.name,
                use_defaults=args.use_defaults,
                update=args.update,
                package_json=args.package_json,
                bundle=args.bundle,
                skip_date=args.skip_date,
                source_encoding=args.source_encoding,
                description=args.description,
                purpose=args.purpose,
                usage=args.usage,
            )
        except (FileNotFoundError, CommandError, ConfigError, UnsupportedEncodingError) as exc:
            parser.exit(1, f"{exc}\n")
        verb = "created" if outcome.created else "updated"
        print(f"Bundle {verb} at {_relativize(outcome.path)}")
    elif args.command == "check":
        try:
            result = orchestrator.run_check(
                args.file,
                name=args.name,
                bundle=args.bundle,
                source_encoding=args.source_encoding,
            )
            result.raise_for_failure()
        except IntegrityMismatch as exc:
            if not args.quiet:
                _print_check(exc.result)
            parser.exit(1)
        except (ConfigError, UnsupportedEncodingError) as exc:
            parser.exit(1, f"{exc}\n")
        except Exception as exc:  # pragma: no cover
            parser.exit(2, f"lensbundler check failed: {exc}\nRun with --verbose for more details.\n")
        if not args.quiet:
            _print_check(result)
    elif args.command == "lslens":
        try:
            listings = orchestrator.run_list_lenses(
                args.directory,
                include_all=args.include_all,
                almost_valid=args.almost_valid,
                exclude=args.exclude,
            )
        except (FileNotFoundError, NotADirectoryError, ConfigError, InvalidExclusionError) as exc:
            parser.exit(1, f"{exc}\n")
        _print_lenses(listings, as_json=args.json, report=args.validate or args.show_reasons)
    elif args.command == "lsenhancejs":
        try:
            scripts = orchestrator.run_list_enhance_js(args.directory, exclude=args.exclude)
        except (FileNotFoundError, NotADirectoryError, ConfigError, InvalidExclusionError) as exc:
            parser.exit(1, f"{exc}\n")
        _print_scripts(scripts, as_json=args.json, details=args.details)
    elif args.command == "batch-bundle":
        try:
            batch = orchestrator.run_batch_bundle(
                args.directory,
                exclude=args.exclude,
                force=args.force,
                skip_date=args.skip_date,
                skip_valid=args.skip_valid,
                source_encoding=args.source_encoding,
            )
        except (
            FileNotFoundError,
            NotADirectoryError,
            ConfigError,
            UnsupportedEncodingError,
            InvalidExclusionError,
        ) as exc:
            parser.exit(1, f"{exc}\n")
        _print_batch(batch, done_label="Updated", done=batch.updated)
        if batch.errors:
            parser.exit(1)
    elif args.command == "batch-check":
        try:
            check_report = orchestrator.run_batch_check(
                args.directory,
                exclude=args.exclude,
                source_encoding=args.source_encoding,
            )
        except (
            FileNotFoundError,
            NotADirectoryError,
            ConfigError,
            UnsupportedEncodingError,
            InvalidExclusionError,
        ) as exc:
            parser.exit(1, f"{exc}\n")
        except Exception as exc:  # pragma: no cover
            parser.exit(2, f"lensbundler batch-check failed: {exc}\nRun with --verbose for more details.\n")
        _print_batch_check(check_report, as_json=args.json, quiet=args.quiet)
        if check_report.failed:
            parser.exit(1)
    elif args.command == "upload":
        try:
            uploaded = orchestrator.run_upload(args.file, domain=args.domain)
        except FhirUploadError as exc:
            message = "\n".join(f"  - {line}" for line in exc.details) or f"  {exc.body.strip()}"
            parser.exit(1, f"Upload failed with status {exc.status}\nError details:\n{message}\n")
        except (
            FileNotFoundError,
            CommandError,
            ConfigError,
            DescriptorParseError,
            SchemaViolation,
        ) as exc:
            parser.exit(1, f"{exc}\n")
        print(f"Lens {uploaded.name} {uploaded.action} (status {uploaded.status})")
    elif args.command == "batch-upload":
        try:
            batch = orchestrator.run_batch_upload(
                args.directory,
                domain=args.domain,
                exclude=args.exclude,
                force=args.force,
                skip_date=args.skip_date,
                skip_valid=args.skip_valid,
                source_encoding=args.source_encoding,
            )
        except (
            FileNotFoundError,
            NotADirectoryError,
            CommandError,
            ConfigError,
            UnsupportedEncodingError,
            InvalidExclusionError,
        ) as exc:
            parser.exit(1, f"{exc}\n")
        _print_batch(batch, done_label="Uploaded", done=batch.uploaded)
        if batch.errors:
            parser.exit(1)
    elif args.command == "new" and (args.template or args.fork):
        try:
            project = orchestrator.run_new_project(
                args.name,
                force=args.force,
                fork=args.fork,
                use_defaults=args.use_defaults,
                description=args.description,
            )
        except (CommandError, ConfigError) as exc:
            parser.exit(1, f"{exc}\n")
        _print_project(project)
    elif args.command == "new":
        try:
            created = orchestrator.run_new(
                args.name,
                force=args.force,
                use_defaults=args.use_defaults,
                template_url=args.template_url,
                description=args.description,
                purpose=args.purpose,
                usage=args.usage,
            )
        except (CommandError, ConfigError) as exc:
            parser.exit(1, f"{exc}\n")
        for path in created:
            print(f"Created {_relativize(path)}")
    else:  # pragma: no cover - argparse enforces choices
        parser.exit(1, "Unknown command\n")


def _print_check(result: IntegrityResult) -> None:
    prefix = "OK" if result.passed else "FAILED"
    print(f"{prefix}: {result.message}")
    if result.detail:
        print(f"   {result.detail}")
    print(f"   JS file: {_relativize(result.source_path)}")
    print(f"   Bundle: {_relativize(result.descriptor_path)}")
    if result.name:
        print(f"   Bundle name: {result.name}")
    if result.version:
        print(f"   Bundle version: {result.version}")


def _print_lenses(listings: Sequence[LensListing], *, as_json: bool, report: bool) -> None:
    if not listings:
        print("No lenses found.")
        return
    if as_json:
        payload = [listing.to_dict(include_validation=report) for listing in listings]
        print(json.dumps(payload, indent=2, ensure_ascii=False))
        return
    if not report:
        for listing in listings:
            print(listing.path)
        return

    for listing in listings:
        print(f"\n{_RULE}")
        print(f"File: {listing.path}")
        print(f"Name: {listing.name}")
        print(f"URL: {listing.url}")
        print(f"Version: {listing.version}")
        print(f"Status: {listing.status}")
        print(f"Has Base64 Content: {'Yes' if listing.has_base64 else 'No'}")
        if listing.enhanced_with is not None:
            print(f"Enhanced with JS: {listing.enhanced_with}")
            print(f"Enhancement Source: {listing.enhance_source}")
        print("\nValidation:")
        print(f"  Valid: {'Yes' if listing.validation.is_valid else 'No'}")
        if listing.validation.errors:
            print("  Errors:")
            for error in listing.validation.errors:
                print(f"    - {error}")
        else:
            print("  No validation errors")
        missing = missing_requirements(listing.record)
        if missing:
            print("\n  Required for Full Validation:")
            for requirement in missing:
                print(f"    - {requirement}")
    print(f"\n{_RULE}")
    print(f"Total lenses found: {len(listings)}")


def _print_project(project: ScaffoldOutcome) -> None:
    location = "current directory" if project.in_place else _relativize(project.directory)
    print(_RULE)
    print("Lens project created successfully!")
    print(_RULE)
    print(f"Project directory: {location}")
    if project.script is not None:
        print(f"Lens script: {_relativize(project.script)}")
    if project.descriptor is not None:
        print(f"FHIR Library: {_relativize(project.descriptor)}")
    print("Next steps:")
    if not project.in_place:
        print(f"  cd {_relativize(project.directory)}")
    print("  Update README.md with your lens documentation")
    print("  Edit the lens script with your enhancement logic")
    print("  Bundle and upload when ready")


def _print_scripts(scripts: Sequence[EnhanceScript], *, as_json: bool, details: bool) -> None:
    if not scripts:
        print("No valid enhance JavaScript files found.")
        return
    if as_json:
        payload = [script.to_dict(include_details=details) for script in scripts]
        print(json.dumps(payload, indent=2, ensure_ascii=False))
        return
    if not details:
        for script in scripts:
            print(script.path)
        return

    for script in scripts:
        print(f"\n{_RULE}")
        print(f"File: {script.path}")
        print(f"Type: {'Exact Match' if script.exact else 'Fallback'}")
        if script.exact:
            print("Matches JSON files:")
            for descriptor in script.matching_descriptors:
                print(f"  - {descriptor}")
        else:
            print(f"Available as fallback in: {script.directory}")
    print(f"\n{_RULE}")
    print(f"Total enhance JS files found: {len(scripts)}")


def _print_batch(batch: BatchResult, *, done_label: str, done: int) -> None:
    for item in batch.details:
        print(f"{item.action}: {_relativize(item.path)} ({item.reason})")
    print(f"\n{_RULE}")
    print("Summary:")
    print(f"  Total lenses found: {len(batch.details)}")
    print(f"  {done_label}: {done}")
    print(f"  Skipped: {batch.skipped}")
    print(f"  Errors: {batch.errors}")


def _print_batch_check(report: BatchCheckReport, *, as_json: bool, quiet: bool) -> None:
    base = Path.cwd().resolve()
    if as_json:
        print(json.dumps(report.to_dict(base), indent=2, ensure_ascii=False))
        return
    if not report.results:
        print("No lens files found to check.")
        return

    rule = "=" * 70
    if not quiet:
        print(f"\n{rule}")
        print("Batch Integrity Check Results")
        print(f"{rule}\n")
        _print_check_group("PASSED", report.passed, base)
        _print_check_group("FAILED", report.failed, base)
    print(rule)
    print(f"Total: {len(report.results)} | Passed: {len(report.passed)} | Failed: {len(report.failed)}")
    print(f"{rule}\n")
    if report.failed and not quiet:
        print('Tip: run "lensbundler bundle <file> -u" to update out-of-sync bundles.')


def _print_check_group(label: str, results: List[IntegrityResult], base: Path) -> None:
    if not results:
        return
    print(f"{label} ({len(results)}):")
    for result in results:
        row = result.to_dict(base)
        print(f"   {row['jsFile']} <-> {row['bundleFile']}")
        if not result.passed:
            print(f"      Error: {result.message}")
    print("")


def _relativize(path: Path) -> str:
    try:
        return str(path.relative_to(Path.cwd().resolve()))
    except ValueError:
        return str(path)


if __name__ == "__main__":
    main(sys.argv[1:])
