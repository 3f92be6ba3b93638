"""Scanner orchestrator that runs every enabled scope into one ScanReport.

This module is the central orchestrator for npm_ioc_scan. It wires the
lockfile, global registry, version manager and suspicious content scanners
to a single CombinedMatcher and a single result sink, and runs them in a
fixed order:

1. LOCKFILE - project lockfiles under the scan roots
2. NPM-GLOBAL - globally installed npm packages (when requested)
3. NVM - packages installed for each NVM runtime (when requested)
4. NAVE - packages installed for each Nave environment (when requested)
5. SCRIPTS / CODE - suspicious content heuristics (when enabled)

Each scope runs independently: an unexpected error in one scope is captured
in its ScopeResult and does not prevent the others from running. A
SinkError from the sink is not scope-specific and aborts the run.

Public API:
    Scanner: Main orchestrator class
    run_scan: Convenience function building the matcher and running a scan
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence

from npm_ioc_scan.base import MatchSink, SinkError
from npm_ioc_scan.config import ScanConfig
from npm_ioc_scan.global_registry import (
    GlobalPackageSource,
    GlobalRegistryScanner,
    NpmGlobalQuery,
)
from npm_ioc_scan.lockfiles import LockfileScanner
from npm_ioc_scan.matcher import CombinedMatcher
from npm_ioc_scan.models import ScanReport, Scope, ScopeResult
from npm_ioc_scan.suspicious import SuspiciousContentScanner
from npm_ioc_scan.version_managers import NAVE_LAYOUT, NVM_LAYOUT, VersionManagerScanner

logger = logging.getLogger(__name__)


class Scanner:
    """Runs all enabled scopes of a ScanConfig against one matcher.

    Attributes:
        config: The immutable run configuration
        matcher: The combined matcher shared by every IoC scope
        sink: Optional sink receiving every match as it is discovered
        cancel_event: Optional event; once set, the run stops early

    Example::

        config = ScanConfig(roots=(Path("."),), include_global=True)
        matcher = CombinedMatcher(["@ctrl/tinycolor@4.1.1"])
        report = Scanner(config, matcher).scan()
        print(f"Found {report.total_matches} match(es)")
    """

    def __init__(
        self,
        config: ScanConfig,
        matcher: CombinedMatcher,
        sink: MatchSink | None = None,
        cancel_event: threading.Event | None = None,
        global_source: GlobalPackageSource | None = None,
    ) -> None:
        """Initialise the Scanner.

        Args:
            config: Run configuration.
            matcher: Combined matcher compiled from the run's search terms.
            sink: Optional sink; each match is emitted as soon as found.
            cancel_event: Optional event polled between items.
            global_source: Override for the global package listing. When
                None, ``npm ls -g`` is queried with the configured timeout.
        """
        self.config: ScanConfig = config
        self.matcher: CombinedMatcher = matcher
        self.sink: MatchSink | None = sink
        self.cancel_event: threading.Event = cancel_event or threading.Event()
        self.global_source: GlobalPackageSource = global_source or NpmGlobalQuery(
            npm_command=config.npm_command,
            timeout=config.npm_timeout,
        )

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def scan(self) -> ScanReport:
        """Run every enabled scope in order and return the aggregated report."""
        report = ScanReport(
            roots=list(self.config.roots),
            term_count=len(self.matcher.terms),
        )
        steps: list[tuple[Sequence[Scope], Callable[[], list[ScopeResult]]]] = [
            ((Scope.LOCKFILE,), self._run_lockfiles),
        ]
        if self.config.include_global:
            steps.append(((Scope.NPM_GLOBAL,), self._run_global))
        if self.config.nvm_root is not None:
            steps.append(((Scope.NVM,), self._run_nvm))
        if self.config.nave_root is not None:
            steps.append(((Scope.NAVE,), self._run_nave))
        if self.config.suspicious_enabled:
            steps.append(((Scope.SCRIPTS, Scope.CODE), self._run_suspicious))

        for scopes, runner in steps:
            if self.cancel_event.is_set():
                break
            report.scope_results.extend(self._run_step(scopes, runner))

        report.interrupted = self.cancel_event.is_set()
        if report.interrupted:
            logger.warning("Scan interrupted; remaining scopes were not visited.")
        else:
            logger.info("Scan finished.")
        return report

    # ------------------------------------------------------------------
    # Individual scope runners
    # ------------------------------------------------------------------

    def _run_step(
        self,
        scopes: Sequence[Scope],
        runner: Callable[[], list[ScopeResult]],
    ) -> list[ScopeResult]:
        try:
            return runner()
        except SinkError:
            raise
        except Exception as exc:  # noqa: BLE001
            names = "/".join(s.value for s in scopes)
            logger.error("%s scan failed: %s", names, exc)
            return [ScopeResult(scope=s, error=f"{names} scan failed: {exc}") for s in scopes]

    def _scanner_kwargs(self) -> dict:
        return {"sink": self.sink, "cancel_event": self.cancel_event}

    def _run_lockfiles(self) -> list[ScopeResult]:
        scanner = LockfileScanner(self.matcher, **self._scanner_kwargs())
        return [scanner.scan(self.config.roots)]

    def _run_global(self) -> list[ScopeResult]:
        scanner = GlobalRegistryScanner(
            self.matcher, source=self.global_source, **self._scanner_kwargs()
        )
        return [scanner.scan()]

    def _run_nvm(self) -> list[ScopeResult]:
        assert self.config.nvm_root is not None
        scanner = VersionManagerScanner(self.matcher, NVM_LAYOUT, **self._scanner_kwargs())
        return [scanner.scan(self.config.nvm_root)]

    def _run_nave(self) -> list[ScopeResult]:
        assert self.config.nave_root is not None
        scanner = VersionManagerScanner(self.matcher, NAVE_LAYOUT, **self._scanner_kwargs())
        return [scanner.scan(self.config.nave_root)]

    def _run_suspicious(self) -> list[ScopeResult]:
        scanner = SuspiciousContentScanner(
            mode=self.config.suspicious_mode, **self._scanner_kwargs()
        )
        return list(scanner.scan(self.config.roots))


# ---------------------------------------------------------------------------
# Convenience function
# ---------------------------------------------------------------------------


def run_scan(
    terms: Sequence[str],
    config: ScanConfig,
    sink: MatchSink | None = None,
) -> ScanReport:
    """Compile ``terms`` and run a full scan with ``config``.

    Equivalent to::

        Scanner(config, CombinedMatcher(terms), sink=sink).scan()

    Raises:
        ValueError: If no terms are given or a term is invalid.
    """
    return Scanner(config, CombinedMatcher(terms), sink=sink).scan()
