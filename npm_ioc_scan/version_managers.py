"""Discovery of packages installed through Node.js version managers.

Version managers keep one isolated global ``node_modules`` per installed
runtime. A VersionManagerLayout describes where those directories live
relative to the manager's base path; the VersionManagerScanner walks every
discovery pass of a layout, reads each manifest's identity and matches
``name@version`` against the run's CombinedMatcher.

Two layouts are provided:

- NVM_LAYOUT: ``<base>/versions/node/<version>/lib/node_modules``
- NAVE_LAYOUT: ``<root>/installed/<version-or-env>/lib/node_modules`` plus a
  fallback pass over ``<root>/installed/<version-or-env>/node_modules`` for
  non-standard layouts. A manifest reachable through both passes is
  reported once per pass.

Public API:
    DiscoveryPass: One directory-layout convention inside a layout
    VersionManagerLayout: Base-path convention of a version manager
    NVM_LAYOUT, NAVE_LAYOUT: The two supported layouts
    VersionManagerScanner: Scanner for the NVM and NAVE scopes
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from npm_ioc_scan.base import ScopeScanner
from npm_ioc_scan.manifest import iter_installed_manifests, load_manifest
from npm_ioc_scan.matcher import CombinedMatcher
from npm_ioc_scan.models import Match, Scope, ScopeResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiscoveryPass:
    """A convention locating ``node_modules`` inside each runtime directory.

    Attributes:
        name: Short description used in log messages
        node_modules: Path of the node_modules directory relative to a
            runtime/environment directory
        excluded_parts: Path components that disqualify a manifest
    """

    name: str
    node_modules: tuple[str, ...]
    excluded_parts: frozenset[str] = frozenset()

    def iter_manifests(self, container: Path) -> Iterator[Path]:
        """Yield installed manifests below every runtime directory of ``container``."""
        try:
            runtimes = sorted(
                (p for p in container.iterdir() if p.is_dir()),
                key=lambda p: p.name,
            )
        except OSError as exc:
            logger.warning("Cannot list %s: %s", container, exc)
            return
        for runtime in runtimes:
            if runtime.name in self.excluded_parts:
                continue
            node_modules = runtime.joinpath(*self.node_modules)
            if not node_modules.is_dir():
                continue
            for manifest in iter_installed_manifests(node_modules):
                relative = manifest.relative_to(container).parts
                if self.excluded_parts.intersection(relative):
                    continue
                yield manifest


@dataclass(frozen=True)
class VersionManagerLayout:
    """Directory-layout convention of a version manager.

    Attributes:
        scope: Scope assigned to matches found through this layout
        label: Human-readable manager name for log messages
        container: Path of the runtimes directory relative to the base path
        passes: Discovery passes run against the runtimes directory
        container_required: Whether a missing runtimes directory is
            reported as a skipped scope rather than an empty one
        hint: Extra advice logged when no manifest was found
    """

    scope: Scope
    label: str
    container: tuple[str, ...]
    passes: tuple[DiscoveryPass, ...]
    container_required: bool = False
    hint: str = ""


LIB_NODE_MODULES = DiscoveryPass(name="lib/node_modules", node_modules=("lib", "node_modules"))

NVM_LAYOUT = VersionManagerLayout(
    scope=Scope.NVM,
    label="NVM",
    container=("versions", "node"),
    passes=(LIB_NODE_MODULES,),
)

NAVE_LAYOUT = VersionManagerLayout(
    scope=Scope.NAVE,
    label="Nave",
    container=("installed",),
    passes=(
        LIB_NODE_MODULES,
        DiscoveryPass(
            name="node_modules",
            node_modules=("node_modules",),
            excluded_parts=frozenset([".cache"]),
        ),
    ),
    container_required=True,
    hint="If you use a different convention, pass --nave-root <PATH>.",
)


class VersionManagerScanner(ScopeScanner):
    """Matches packages installed under a version manager's runtimes.

    Example::

        scanner = VersionManagerScanner(matcher, NAVE_LAYOUT)
        result = scanner.scan(Path.home() / ".nave")
    """

    def __init__(
        self,
        matcher: CombinedMatcher,
        layout: VersionManagerLayout,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.matcher: CombinedMatcher = matcher
        self.layout: VersionManagerLayout = layout

    @property
    def scope(self) -> Scope:
        return self.layout.scope

    def scan(self, base: Path) -> ScopeResult:
        """Run every discovery pass of the layout below ``base``.

        A missing base (or, for layouts that require it, a missing runtimes
        directory) is logged as a warning and skips the scope.
        """
        result = ScopeResult(scope=self.scope)
        label = self.layout.label

        if not base.is_dir():
            logger.warning("%s not found at: %s", label, base)
            result.skipped = f"{label} not found at {base}"
            return result

        container = base.joinpath(*self.layout.container)
        if not container.is_dir():
            if self.layout.container_required:
                logger.warning(
                    "'%s' directory does not exist at: %s",
                    "/".join(self.layout.container),
                    base,
                )
                result.skipped = f"{container} does not exist"
                return result
            logger.info("No %s runtimes found at: %s", label, container)
            return result

        logger.info("Checking %s at: %s", label, container)
        for discovery in self.layout.passes:
            if self.cancelled:
                break
            self.scan_pass(container, discovery, result)

        if result.items_scanned == 0:
            notice = "No packages found in %s (%s)." % (
                label,
                ", ".join(p.name for p in self.layout.passes),
            )
            if self.layout.hint:
                notice = f"{notice} {self.layout.hint}"
            logger.info(notice)
        return result

    def scan_pass(self, container: Path, discovery: DiscoveryPass, result: ScopeResult) -> None:
        """Match every manifest found by one discovery pass."""
        for manifest_path in discovery.iter_manifests(container):
            if self.cancelled:
                break
            manifest = load_manifest(manifest_path)
            if manifest is None:
                continue
            result.items_scanned += 1
            identity = manifest.record.identity
            if self.matcher.match_identity(identity):
                self._record(
                    result,
                    Match(
                        scope=self.scope,
                        location=str(manifest_path.parent),
                        matched_text=identity,
                    ),
                )
