"""Lockfile discovery and line-based IoC matching.

Lockfiles are treated as opaque text: every line of every
``package-lock.json``, ``pnpm-lock.yaml`` and ``yarn.lock`` found under the
scan roots is searched with the run's CombinedMatcher, and each matching line
becomes one LOCKFILE match. No format-aware parsing is attempted and binary
or very large files are not special-cased.

Public API:
    LOCKFILE_NAMES: File names recognised as lockfiles
    LockfileScanner: Scanner for the LOCKFILE scope
    find_lockfiles: Enumerate the lockfiles under a root
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from pathlib import Path

from npm_ioc_scan.base import ScopeScanner
from npm_ioc_scan.matcher import CombinedMatcher
from npm_ioc_scan.models import Match, Scope, ScopeResult
from npm_ioc_scan.walker import iter_files, iter_lines

logger = logging.getLogger(__name__)

LOCKFILE_NAMES: frozenset[str] = frozenset([
    "package-lock.json",
    "pnpm-lock.yaml",
    "yarn.lock",
])


def find_lockfiles(root: Path) -> Iterator[Path]:
    """Yield every lockfile under ``root`` in lexicographic order."""
    return iter_files(root, predicate=lambda p: p.name in LOCKFILE_NAMES)


class LockfileScanner(ScopeScanner):
    """Searches project lockfiles for IoC literals.

    Example::

        scanner = LockfileScanner(compile_terms(["@ctrl/tinycolor@4.1.1"]))
        result = scanner.scan([Path("~/projects").expanduser()])
        for match in result.matches:
            print(match.location, match.matched_text)
    """

    scope = Scope.LOCKFILE

    def __init__(self, matcher: CombinedMatcher, **kwargs) -> None:
        super().__init__(**kwargs)
        self.matcher: CombinedMatcher = matcher

    def scan(self, roots: Sequence[Path]) -> ScopeResult:
        """Scan every lockfile under the given roots.

        Roots that do not exist (or are not directories) are skipped with a
        warning.

        Returns:
            A ScopeResult with one match per matching lockfile line.
        """
        result = ScopeResult(scope=self.scope)
        if not roots:
            result.skipped = "no directories given"
            return result

        logger.info("Scanning directories: %s", " ".join(str(r) for r in roots))
        for root in roots:
            if self.cancelled:
                break
            if not root.is_dir():
                logger.warning("Skipped, does not exist: %s", root)
                continue
            for lockfile in find_lockfiles(root):
                if self.cancelled:
                    break
                result.items_scanned += 1
                self.scan_file(lockfile, result)
        return result

    def scan_file(self, lockfile: Path, result: ScopeResult) -> None:
        """Search a single lockfile line by line, recording each matching line."""
        try:
            for number, line in iter_lines(lockfile):
                if self.matcher.search(line) is not None:
                    self._record(
                        result,
                        Match(
                            scope=self.scope,
                            location=str(lockfile),
                            matched_text=f"{number}:{line}",
                            line_number=number,
                        ),
                    )
        except OSError as exc:
            logger.warning("Cannot read %s: %s", lockfile, exc)
