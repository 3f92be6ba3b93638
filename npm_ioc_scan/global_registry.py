"""Matching of globally installed npm packages.

The list of top-level global packages comes from ``npm ls -g --depth=0
--json``, decoded natively. The query runs once with an explicit timeout;
a missing npm executable, a timeout, or unusable output degrades the scope
to "no findings" with a warning instead of aborting the run.

Public API:
    GLOBAL_LOCATION: Location sentinel used for NPM-GLOBAL matches
    NpmQueryError: Raised when the global package list cannot be obtained
    NpmGlobalQuery: Runs and decodes the npm query
    parse_global_listing: Decode ``npm ls --json`` output into records
    GlobalRegistryScanner: Scanner for the NPM-GLOBAL scope
"""

from __future__ import annotations

import json
import logging
import shutil
import subprocess
from typing import Any, Protocol

from npm_ioc_scan.base import ScopeScanner
from npm_ioc_scan.config import DEFAULT_NPM_TIMEOUT
from npm_ioc_scan.matcher import CombinedMatcher
from npm_ioc_scan.models import Match, PackageRecord, Scope, ScopeResult

logger = logging.getLogger(__name__)

GLOBAL_LOCATION = "(global)"


class NpmQueryError(RuntimeError):
    """The global package list could not be obtained."""


class GlobalPackageSource(Protocol):
    """Anything able to list the globally installed top-level packages."""

    def list_packages(self) -> list[PackageRecord]:
        ...


def parse_global_listing(output: str) -> list[PackageRecord]:
    """Decode the JSON printed by ``npm ls -g --depth=0 --json``.

    Packages without a ``version`` (e.g. broken links) keep an empty version.

    Raises:
        NpmQueryError: If the output is not a JSON object.
    """
    try:
        data: Any = json.loads(output)
    except json.JSONDecodeError as exc:
        raise NpmQueryError(f"npm returned invalid JSON: {exc.msg}") from exc
    if not isinstance(data, dict):
        raise NpmQueryError("npm returned an unexpected JSON document")

    dependencies: Any = data.get("dependencies") or {}
    if not isinstance(dependencies, dict):
        return []

    records: list[PackageRecord] = []
    for name, info in dependencies.items():
        version = ""
        if isinstance(info, dict) and isinstance(info.get("version"), str):
            version = info["version"]
        records.append(PackageRecord(name=str(name), version=version))
    return records


class NpmGlobalQuery:
    """Lists global packages by running the npm executable.

    Attributes:
        npm_command: Name or path of the npm executable
        timeout: Seconds to wait for npm before giving up
    """

    def __init__(self, npm_command: str = "npm", timeout: float = DEFAULT_NPM_TIMEOUT) -> None:
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")
        self.npm_command: str = npm_command
        self.timeout: float = timeout

    def list_packages(self) -> list[PackageRecord]:
        """Run the query and return the global top-level packages.

        Raises:
            NpmQueryError: If npm is unavailable, times out, or returns
                unusable output.
        """
        executable = shutil.which(self.npm_command)
        if executable is None:
            raise NpmQueryError(f"{self.npm_command} is not available in PATH")

        try:
            completed = subprocess.run(
                [executable, "ls", "-g", "--depth=0", "--json"],
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise NpmQueryError(f"npm did not answer within {self.timeout:g}s") from exc
        except OSError as exc:
            raise NpmQueryError(f"Could not run npm: {exc}") from exc

        # npm ls exits non-zero on problems such as extraneous packages but
        # still prints the listing.
        if not completed.stdout.strip():
            raise NpmQueryError(
                f"npm exited with status {completed.returncode} and no output"
            )
        return parse_global_listing(completed.stdout)


class GlobalRegistryScanner(ScopeScanner):
    """Matches the identities of global packages against the IoC list."""

    scope = Scope.NPM_GLOBAL

    def __init__(
        self,
        matcher: CombinedMatcher,
        source: GlobalPackageSource | None = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.matcher: CombinedMatcher = matcher
        self.source: GlobalPackageSource = source or NpmGlobalQuery()

    def scan(self) -> ScopeResult:
        """Query the global packages and match each ``name@version``."""
        result = ScopeResult(scope=self.scope)
        logger.info("Checking npm global (-g) ...")
        try:
            records = self.source.list_packages()
        except NpmQueryError as exc:
            logger.warning("Could not read npm -g, skipping global check: %s", exc)
            result.skipped = str(exc)
            return result

        for record in records:
            if self.cancelled:
                break
            result.items_scanned += 1
            identity = record.identity
            if self.matcher.match_identity(identity):
                self._record(
                    result,
                    Match(scope=self.scope, location=GLOBAL_LOCATION, matched_text=identity),
                )
        return result
