"""Data models for npm_ioc_scan matches and scan reports.

This module defines the core dataclasses and enumerations used throughout
the npm_ioc_scan package to represent discovered matches, the installation
surface they were found on, per-scope results, and the aggregated report.

Classes:
    Scope: Enumeration of installation surfaces / heuristic categories
    SuspiciousMode: How much of the scan roots the heuristic scanner reads
    Match: A single match handed to the result sink
    PackageRecord: A manifest's declared identity
    ScopeResult: The result of running a single scope
    ScanReport: Aggregated report containing all matches from a full run
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

# Maximum number of characters kept from a matched line or identity
MATCH_TEXT_LIMIT = 200


class Scope(str, Enum):
    """Installation surfaces and heuristic categories a match can come from.

    Members are declared in the order the scanner visits them, which is also
    the order rows appear in the report.
    """

    LOCKFILE = "LOCKFILE"
    NPM_GLOBAL = "NPM-GLOBAL"
    NVM = "NVM"
    NAVE = "NAVE"
    SCRIPTS = "SCRIPTS"
    CODE = "CODE"

    @property
    def rich_style(self) -> str:
        """Return a Rich markup style string for this scope."""
        styles: dict[Scope, str] = {
            Scope.LOCKFILE: "bold red",
            Scope.NPM_GLOBAL: "bold red",
            Scope.NVM: "red",
            Scope.NAVE: "red",
            Scope.SCRIPTS: "yellow",
            Scope.CODE: "yellow",
        }
        return styles.get(self, "white")

    @property
    def is_heuristic(self) -> bool:
        """Return True for scopes produced by the suspicious content scanner."""
        return self in (Scope.SCRIPTS, Scope.CODE)


class SuspiciousMode(str, Enum):
    """Coverage of the suspicious content scanner.

    - OFF: heuristic scanning disabled
    - SCRIPTS: package.json scripts plus a curated set of code/config files
    - BROAD: package.json scripts plus every readable text file
    """

    OFF = "off"
    SCRIPTS = "scripts"
    BROAD = "broad"


@dataclass(frozen=True)
class Match:
    """A single match discovered during a scan.

    Attributes:
        scope: The installation surface or heuristic category
        location: File or directory path, or a sentinel such as ``(global)``
        matched_text: The matching line or identity, at most 200 characters
        line_number: 1-indexed line number for line-based scopes
    """

    scope: Scope
    location: str
    matched_text: str
    line_number: int | None = None

    def __post_init__(self) -> None:
        if len(self.matched_text) > MATCH_TEXT_LIMIT:
            object.__setattr__(self, "matched_text", self.matched_text[:MATCH_TEXT_LIMIT])

    def as_row(self) -> tuple[str, str, str]:
        """Return the three report columns for this match."""
        return (self.scope.value, self.location, self.matched_text)

    def to_dict(self) -> dict[str, Any]:
        """Serialize this match to a JSON-serializable dictionary.

        Returns:
            A dict with all match fields, suitable for JSON output.
        """
        return {
            "scope": self.scope.value,
            "location": self.location,
            "matched_text": self.matched_text,
            "line_number": self.line_number,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Match:
        """Deserialize a Match from a dictionary.

        Args:
            data: A dict as produced by ``to_dict()``.

        Returns:
            A new Match instance.

        Raises:
            KeyError: If required keys are missing from the dict.
            ValueError: If the scope value is invalid.
        """
        return cls(
            scope=Scope(data["scope"]),
            location=data["location"],
            matched_text=data["matched_text"],
            line_number=data.get("line_number"),
        )


@dataclass(frozen=True)
class PackageRecord:
    """The declared identity of an installed package.

    Attributes:
        name: The ``name`` field of the manifest ("" when missing)
        version: The ``version`` field of the manifest ("" when missing)
        source_path: Path of the manifest the identity was read from
    """

    name: str
    version: str
    source_path: Path | None = None

    @property
    def identity(self) -> str:
        """Return the ``name@version`` string compared against the matcher."""
        return f"{self.name}@{self.version}"


@dataclass
class ScopeResult:
    """The aggregated result of running a single scope.

    Attributes:
        scope: The scope this result represents
        matches: Matches produced by this scope, in discovery order
        items_scanned: Number of files, manifests or packages examined
        skipped: Reason the scope (or part of it) was skipped, if any
        error: Error message if the scope failed unexpectedly
    """

    scope: Scope
    matches: list[Match] = field(default_factory=list)
    items_scanned: int = 0
    skipped: str | None = None
    error: str | None = None

    @property
    def has_matches(self) -> bool:
        """Return True if this scope produced any matches."""
        return len(self.matches) > 0

    def to_dict(self) -> dict[str, Any]:
        """Serialize this scope result to a JSON-serializable dictionary."""
        return {
            "scope": self.scope.value,
            "matches": [m.to_dict() for m in self.matches],
            "items_scanned": self.items_scanned,
            "skipped": self.skipped,
            "error": self.error,
        }


@dataclass
class ScanReport:
    """Aggregated report containing all matches from a complete run.

    Attributes:
        roots: The scan roots supplied by the operator
        term_count: Number of search terms the matcher was built from
        scan_timestamp: ISO 8601 timestamp when the scan was initiated
        scope_results: Per-scope results in the order the scopes ran
        interrupted: True when the operator cancelled the run
    """

    roots: list[Path] = field(default_factory=list)
    term_count: int = 0
    scan_timestamp: str = field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc).isoformat()
    )
    scope_results: list[ScopeResult] = field(default_factory=list)
    interrupted: bool = False

    @property
    def all_matches(self) -> list[Match]:
        """Return a flat list of all matches in discovery order."""
        matches: list[Match] = []
        for result in self.scope_results:
            matches.extend(result.matches)
        return matches

    @property
    def total_matches(self) -> int:
        """Return the total count of all matches."""
        return sum(len(r.matches) for r in self.scope_results)

    @property
    def ioc_matches(self) -> int:
        """Return the number of matches against the IoC list."""
        return sum(
            len(r.matches) for r in self.scope_results if not r.scope.is_heuristic
        )

    @property
    def heuristic_matches(self) -> int:
        """Return the number of suspicious content matches."""
        return sum(len(r.matches) for r in self.scope_results if r.scope.is_heuristic)

    def result_for(self, scope: Scope) -> ScopeResult | None:
        """Return the result of the given scope, or None if it did not run."""
        for result in self.scope_results:
            if result.scope == scope:
                return result
        return None

    @property
    def scope_counts(self) -> dict[str, int]:
        """Return a mapping of scope label to match count.

        Returns:
            Dict with every scope value mapped to its number of matches.
        """
        counts: dict[str, int] = {scope.value: 0 for scope in Scope}
        for match in self.all_matches:
            counts[match.scope.value] += 1
        return counts

    @property
    def exit_code(self) -> int:
        """Process exit code for a completed run.

        A completed run exits 0 regardless of the match count; only an
        operator interruption changes it.
        """
        return 130 if self.interrupted else 0

    def to_dict(self) -> dict[str, Any]:
        """Serialize this scan report to a JSON-serializable dictionary.

        Returns:
            A dict representation suitable for ``json.dumps()``.
        """
        return {
            "roots": [str(r) for r in self.roots],
            "term_count": self.term_count,
            "scan_timestamp": self.scan_timestamp,
            "interrupted": self.interrupted,
            "total_matches": self.total_matches,
            "scope_counts": self.scope_counts,
            "scope_results": [r.to_dict() for r in self.scope_results],
        }
