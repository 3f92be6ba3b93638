"""Unit tests for npm_ioc_scan.lockfiles.

Covers:
- Discovery of the three lockfile names anywhere below a root
- One match per matching line, with line numbers
- Truncation of long lines
- Missing roots and empty root lists
- Forwarding of matches to a sink in discovery order
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path

import pytest

from npm_ioc_scan.lockfiles import LockfileScanner, find_lockfiles
from npm_ioc_scan.matcher import CombinedMatcher
from npm_ioc_scan.models import Match, Scope

PACKAGE_LOCK = """\
{
  "name": "proj",
  "lockfileVersion": 3,
  "packages": {
    "node_modules/@ctrl/tinycolor": {
      "version": "4.1.1",
      "resolved": "https://registry.npmjs.org/@ctrl/tinycolor/-/tinycolor-4.1.1.tgz"
    },
    "node_modules/left-pad": {
      "version": "1.3.0"
    }
  },
  "dependencies": {
    "@ctrl/tinycolor": "4.1.1",
    "left-pad": "1.3.0"
  }
}
"""

YARN_LOCK = """\
# yarn lockfile v1

ngx-toastr@^19.0.0:
  version "19.0.2"
  resolved "https://registry.yarnpkg.com/ngx-toastr/-/ngx-toastr-19.0.2.tgz"

left-pad@^1.3.0:
  version "1.3.0"
"""


class ListSink:
    """Sink collecting emitted matches."""

    def __init__(self) -> None:
        self.matches: list[Match] = []

    def emit(self, match: Match) -> None:
        self.matches.append(match)


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


class TestFindLockfiles:
    """Tests for find_lockfiles."""

    def test_finds_all_names_recursively(self, tmp_path: Path) -> None:
        """All three lockfile names are found at any depth, sorted."""
        _write(tmp_path / "b" / "yarn.lock", "")
        _write(tmp_path / "a" / "package-lock.json", "")
        _write(tmp_path / "a" / "deep" / "pnpm-lock.yaml", "")
        found = [p.relative_to(tmp_path).as_posix() for p in find_lockfiles(tmp_path)]
        assert found == ["a/package-lock.json", "a/deep/pnpm-lock.yaml", "b/yarn.lock"]

    def test_similar_names_ignored(self, tmp_path: Path) -> None:
        """Only exact lockfile names are recognised."""
        _write(tmp_path / "package-lock.json.bak", "")
        _write(tmp_path / "yarn.lock.old", "")
        _write(tmp_path / "npm-shrinkwrap.json", "")
        _write(tmp_path / "package.json", "")
        assert list(find_lockfiles(tmp_path)) == []


class TestLockfileScanner:
    """Tests for LockfileScanner.scan."""

    def test_matching_lines(self, tmp_path: Path) -> None:
        """Each matching line produces one match with its line number."""
        lockfile = _write(tmp_path / "proj" / "package-lock.json", PACKAGE_LOCK)
        scanner = LockfileScanner(CombinedMatcher(["@ctrl/tinycolor@4.1.1"]))
        result = scanner.scan([tmp_path])

        assert result.scope == Scope.LOCKFILE
        assert result.items_scanned == 1
        # path keys and tarball URLs carry no name@version literal
        assert [m.line_number for m in result.matches] == [14]
        for match in result.matches:
            assert match.location == str(lockfile)
            assert match.matched_text.startswith(f"{match.line_number}:")

    def test_dependency_map_line(self, tmp_path: Path) -> None:
        """The quoted name/version entry of a dependency map is reported."""
        _write(tmp_path / "package-lock.json", PACKAGE_LOCK)
        result = LockfileScanner(CombinedMatcher(["@ctrl/tinycolor@4.1.1"])).scan([tmp_path])
        assert '14:    "@ctrl/tinycolor": "4.1.1",' in [m.matched_text for m in result.matches]

    def test_yarn_lock(self, tmp_path: Path) -> None:
        """Lines of yarn.lock are matched like any other lockfile."""
        _write(tmp_path / "yarn.lock", YARN_LOCK)
        result = LockfileScanner(CombinedMatcher(["ngx-toastr@19.0.2"])).scan([tmp_path])
        assert [m.line_number for m in result.matches] == [3]

    def test_only_matching_lines_reported(self, tmp_path: Path) -> None:
        """K matching lines out of N yield exactly K matches."""
        _write(tmp_path / "yarn.lock", "a\nevil-pkg@1\nb\nevil-pkg@2\nc\n")
        result = LockfileScanner(CombinedMatcher(["evil-pkg"])).scan([tmp_path])
        assert [m.matched_text for m in result.matches] == ["2:evil-pkg@1", "4:evil-pkg@2"]

    def test_no_matches(self, tmp_path: Path) -> None:
        """A clean lockfile yields no matches but counts as scanned."""
        _write(tmp_path / "yarn.lock", YARN_LOCK)
        result = LockfileScanner(CombinedMatcher(["evil-pkg"])).scan([tmp_path])
        assert result.matches == []
        assert result.items_scanned == 1

    def test_long_line_truncated(self, tmp_path: Path) -> None:
        """Matched text is capped at 200 characters."""
        _write(tmp_path / "pnpm-lock.yaml", "evil-pkg@1.0.0: " + "x" * 500 + "\n")
        result = LockfileScanner(CombinedMatcher(["evil-pkg"])).scan([tmp_path])
        assert len(result.matches[0].matched_text) == 200
        assert result.matches[0].matched_text.startswith("1:evil-pkg@1.0.0")

    def test_several_roots_in_order(self, tmp_path: Path) -> None:
        """Roots are scanned in the order given."""
        second = _write(tmp_path / "two" / "yarn.lock", "evil-pkg@1\n")
        first = _write(tmp_path / "one" / "yarn.lock", "evil-pkg@1\n")
        scanner = LockfileScanner(CombinedMatcher(["evil-pkg"]))
        result = scanner.scan([tmp_path / "two", tmp_path / "one"])
        assert [m.location for m in result.matches] == [str(second), str(first)]

    def test_missing_root_skipped(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        """A missing root is logged and skipped; other roots are still scanned."""
        _write(tmp_path / "ok" / "yarn.lock", "evil-pkg@1\n")
        missing = tmp_path / "missing"
        scanner = LockfileScanner(CombinedMatcher(["evil-pkg"]))
        with caplog.at_level(logging.WARNING, logger="npm_ioc_scan.lockfiles"):
            result = scanner.scan([missing, tmp_path / "ok"])
        assert len(result.matches) == 1
        assert f"Skipped, does not exist: {missing}" in caplog.text

    def test_no_roots(self) -> None:
        """Without roots the scope is skipped."""
        result = LockfileScanner(CombinedMatcher(["x"])).scan([])
        assert result.skipped == "no directories given"

    def test_matches_forwarded_to_sink(self, tmp_path: Path) -> None:
        """Every match reaches the sink in discovery order."""
        _write(tmp_path / "a" / "yarn.lock", "evil-pkg@1\n")
        _write(tmp_path / "b" / "yarn.lock", "evil-pkg@2\n")
        sink = ListSink()
        result = LockfileScanner(CombinedMatcher(["evil-pkg"]), sink=sink).scan([tmp_path])
        assert sink.matches == result.matches
        assert len(sink.matches) == 2

    def test_cancelled_scan_stops(self, tmp_path: Path) -> None:
        """A set cancellation event stops the scan before any file."""
        _write(tmp_path / "yarn.lock", "evil-pkg@1\n")
        event = threading.Event()
        event.set()
        result = LockfileScanner(CombinedMatcher(["evil-pkg"]), cancel_event=event).scan([tmp_path])
        assert result.matches == []
        assert result.items_scanned == 0
