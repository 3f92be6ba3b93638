"""package.json parsing and installed-package enumeration.

Manifests are decoded natively into a typed PackageManifest. Missing or
mistyped ``name``/``version``/``scripts`` fields fall back to empty values
instead of failing; only a file that cannot be read or is not a JSON object
is rejected, and callers skip it.

Public API:
    ManifestError: Raised when a manifest cannot be read or decoded
    PackageManifest: Typed view of a package.json file
    read_manifest: Parse a package.json file
    load_manifest: Parse a package.json file, returning None on failure
    iter_installed_manifests: Enumerate package.json files of installed packages
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from npm_ioc_scan.models import PackageRecord

logger = logging.getLogger(__name__)

MANIFEST_NAME = "package.json"


class ManifestError(ValueError):
    """A package.json file could not be read or decoded."""


@dataclass(frozen=True)
class PackageManifest:
    """The fields of a package.json file used by the scanners.

    Attributes:
        path: Location of the manifest file
        name: Declared package name ("" when missing)
        version: Declared version ("" when missing)
        scripts: The ``scripts`` map; values coerced to strings
    """

    path: Path
    name: str = ""
    version: str = ""
    scripts: dict[str, str] = field(default_factory=dict)

    @property
    def record(self) -> PackageRecord:
        """Return the PackageRecord describing this manifest's identity."""
        return PackageRecord(name=self.name, version=self.version, source_path=self.path)

    @classmethod
    def from_data(cls, path: Path, data: dict[str, Any]) -> PackageManifest:
        """Build a manifest from already-decoded JSON data."""
        scripts: dict[str, str] = {}
        raw_scripts = data.get("scripts")
        if isinstance(raw_scripts, dict):
            for key, value in raw_scripts.items():
                scripts[str(key)] = value if isinstance(value, str) else json.dumps(value)
        return cls(
            path=path,
            name=_as_text(data.get("name")),
            version=_as_text(data.get("version")),
            scripts=scripts,
        )


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def read_manifest(path: Path) -> PackageManifest:
    """Read and decode a package.json file.

    Raises:
        ManifestError: If the file cannot be read, is not valid JSON, or does
            not contain a JSON object.
    """
    try:
        text = path.read_text(encoding="utf-8-sig", errors="replace")
    except OSError as exc:
        raise ManifestError(f"Cannot read {path}: {exc}") from exc
    try:
        data: Any = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ManifestError(f"Invalid JSON in {path}: {exc.msg}") from exc
    if not isinstance(data, dict):
        raise ManifestError(f"{path} does not contain a JSON object")
    return PackageManifest.from_data(path, data)


def load_manifest(path: Path) -> PackageManifest | None:
    """Parse a manifest, logging and returning None when it is unusable."""
    try:
        return read_manifest(path)
    except ManifestError as exc:
        logger.debug("Skipping manifest: %s", exc)
        return None


def iter_installed_manifests(node_modules: Path) -> Iterator[Path]:
    """Yield the package.json of every package installed in ``node_modules``.

    Covers plain packages (``<pkg>/package.json``), scoped packages
    (``@scope/<pkg>/package.json``) and, recursively, packages installed in
    the nested ``node_modules`` directory of an installed package. Entries
    are visited in lexicographic order; hidden entries such as ``.bin`` and
    ``.cache`` are skipped.
    """
    for entry in _sorted_dirs(node_modules):
        if entry.name.startswith("@"):
            for scoped in _sorted_dirs(entry):
                yield from _package_and_nested(scoped)
        else:
            yield from _package_and_nested(entry)


def _package_and_nested(package_dir: Path) -> Iterator[Path]:
    manifest = package_dir / MANIFEST_NAME
    if manifest.is_file():
        yield manifest
    nested = package_dir / "node_modules"
    if nested.is_dir() and not nested.is_symlink():
        yield from iter_installed_manifests(nested)


def _sorted_dirs(directory: Path) -> list[Path]:
    try:
        entries = [
            entry
            for entry in directory.iterdir()
            if not entry.name.startswith(".") and entry.is_dir()
        ]
    except OSError as exc:
        logger.debug("Cannot list %s: %s", directory, exc)
        return []
    return sorted(entries, key=lambda p: p.name)
