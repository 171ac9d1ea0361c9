"""Create a full lens project from the lens-template git repository."""

from __future__ import annotations

import json
import re
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

from .constants import TEMPLATE_CLONE_URL, TEMPLATE_LENS_STEM, TEMPLATE_REPOSITORY
from .encoding import decode_file
from .logging import get_logger
from .models import LensMetadata
from .repair import synchronize_content
from .stores import write_descriptor

DEFAULT_AUTHOR = "Your Name <you@example.com>"
DEFAULT_LICENSE = "Apache-2.0"
README = "README.md"
LENS_README_TEMPLATE = "LENS_README_TEMPLATE.md"

Runner = Callable[..., str]


class ScaffoldError(RuntimeError):
    """Raised when the template project cannot be cloned or prepared."""


@dataclass
class ScaffoldOutcome:
    directory: Path
    in_place: bool
    script: Optional[Path] = None
    descriptor: Optional[Path] = None


def project_slug(name: str) -> str:
    return re.sub(r"\s+", "-", name.lower())


class TemplateScaffolder:
    """Clones lens-template (optionally through a GitHub fork) and renames it for a lens.

    The clone's git history is discarded, ``package.json`` gets the lens name
    and version, ``my-lens.js``/``my-lens.json`` are renamed after the lens and
    the ``Library`` descriptor is regenerated from ``package.json``.
    """

    def __init__(self, runner: Runner | None = None) -> None:
        self._runner = runner or self._default_runner
        self.logger = get_logger("scaffold")

    def create(
        self,
        parent: Path,
        name: str,
        *,
        force: bool = False,
        fork: bool = False,
        use_defaults: bool = False,
        description: Optional[str] = None,
        overrides: Optional[Mapping[str, Optional[str]]] = None,
    ) -> ScaffoldOutcome:
        parent = Path(parent)
        slug = project_slug(name)
        in_place = _is_blank_directory(parent)
        target = parent if in_place else parent / slug

        if not in_place and target.exists():
            if not force:
                raise ScaffoldError(f"Directory {slug} already exists. Use --force (-f) to overwrite.")
            self.logger.info("Removing existing directory: %s", target)
            shutil.rmtree(target)

        clone_url = self._fork(slug, parent) if fork else TEMPLATE_CLONE_URL
        self._run(["git", "clone", clone_url, "." if in_place else slug], cwd=parent)
        self.logger.info("Repository cloned to %s", target)
        git_dir = target / ".git"
        if git_dir.exists():
            shutil.rmtree(git_dir)

        package = self._update_package_json(target, name, slug, use_defaults, description)
        script, descriptor = self._rename_lens_files(target, slug)
        if package is not None and script is not None:
            descriptor = self._sync_descriptor(target / f"{slug}.json", script, package, overrides or {})
        else:
            self.logger.warning("Cannot sync metadata: package.json or %s.js missing", slug)
        self._promote_readme(target)

        return ScaffoldOutcome(directory=target, in_place=in_place, script=script, descriptor=descriptor)

    # ------------------------------------------------------------------
    # Steps

    def _fork(self, slug: str, cwd: Path) -> str:
        try:
            self._run(["gh", "--version"], cwd=cwd, capture_output=True)
        except ScaffoldError as exc:
            raise ScaffoldError(
                "GitHub CLI (gh) not found. Install from https://cli.github.com or use without --fork."
            ) from exc

        try:
            self._run(
                ["gh", "repo", "fork", TEMPLATE_REPOSITORY, "--fork-name", slug, "--clone=false"],
                cwd=cwd,
            )
        except ScaffoldError as exc:
            # an existing fork with this name is still cloneable
            self.logger.warning("Failed to fork %s as %s: %s", TEMPLATE_REPOSITORY, slug, exc)

        username = self._run(["gh", "api", "user", "--jq", ".login"], cwd=cwd, capture_output=True).strip()
        if not username:
            raise ScaffoldError("Could not retrieve GitHub username")
        return f"https://github.com/{username}/{slug}.git"

    def _update_package_json(
        self,
        target: Path,
        name: str,
        slug: str,
        use_defaults: bool,
        description: Optional[str],
    ) -> Optional[Dict[str, Any]]:
        path = target / "package.json"
        if not path.is_file():
            self.logger.warning("package.json not found in template")
            return None
        try:
            package = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ScaffoldError(f"Template package.json is not valid JSON: {exc}") from exc
        if not isinstance(package, dict):
            raise ScaffoldError("Template package.json does not contain a JSON object")

        fallback_description = f"{name} lens for Gravitate Health"
        package["name"] = slug
        package["version"] = "1.0.0"
        package["author"] = package.get("author") or DEFAULT_AUTHOR
        if use_defaults:
            package["description"] = package.get("description") or fallback_description
        else:
            package["description"] = description or fallback_description
            package["license"] = package.get("license") or DEFAULT_LICENSE

        path.write_text(json.dumps(package, indent=2), encoding="utf-8")
        self.logger.info("package.json updated for %s", slug)
        return package

    def _rename_lens_files(self, target: Path, slug: str) -> tuple[Optional[Path], Optional[Path]]:
        renamed = []
        for suffix in (".js", ".json"):
            source = target / f"{TEMPLATE_LENS_STEM}{suffix}"
            destination = target / f"{slug}{suffix}"
            if source.exists():
                source.rename(destination)
                self.logger.info("Renamed %s to %s", source.name, destination.name)
            renamed.append(destination if destination.exists() else None)
        return renamed[0], renamed[1]

    def _sync_descriptor(
        self,
        descriptor: Path,
        script: Path,
        package: Mapping[str, Any],
        overrides: Mapping[str, Optional[str]],
    ) -> Path:
        metadata = LensMetadata.from_package_json(package).with_overrides(**overrides)
        record = synchronize_content(None, decode_file(script).text, metadata=metadata)
        write_descriptor(descriptor, record)
        self.logger.info("FHIR Library created: %s", descriptor.name)
        return descriptor

    def _promote_readme(self, target: Path) -> None:
        readme = target / README
        template_readme = target / LENS_README_TEMPLATE
        if readme.exists():
            readme.unlink()
        if template_readme.exists():
            template_readme.rename(readme)

    # ------------------------------------------------------------------
    # Helpers

    def _run(self, args: Iterable[str], *, cwd: Path, capture_output: bool = False) -> str:
        command = list(args)
        try:
            return self._runner(command, cwd=cwd, capture_output=capture_output)
        except (subprocess.CalledProcessError, OSError) as exc:
            raise ScaffoldError(f"{' '.join(command)} failed: {exc}") from exc

    @staticmethod
    def _default_runner(args: Iterable[str], *, cwd: Path, capture_output: bool = False) -> str:
        completed = subprocess.run(
            list(args),
            cwd=str(cwd),
            check=True,
            text=True,
            capture_output=capture_output,
        )
        if capture_output:
            return completed.stdout
        return ""


def _is_blank_directory(path: Path) -> bool:
    entries = [entry.name for entry in path.iterdir()]
    return not entries or entries == [".git"]


__all__ = [
    "ScaffoldError",
    "ScaffoldOutcome",
    "TemplateScaffolder",
    "project_slug",
]
