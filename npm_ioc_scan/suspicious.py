"""Heuristic detection of suspicious package scripts and code.

This module works independently of the IoC list. It flags content matching
signatures of known npm supply-chain campaigns:

- dangerous shell invocations in package.json scripts (curl/wget fetching
  http/https/ipfs URLs, ``bash -c``, ``node -e``, PowerShell, eval,
  ``Function(``, spawning ``child_process``)
- global symbols planted by the crypto-stealer campaign (``runmask``,
  ``checkethereumw``, ``stealthProxyControl``)
- references to the TruffleHog credential scanner
- the campaign's Ethereum wallet address

Two sub-scans are performed per scan root:

- Script-field scan: the ``scripts`` map of every package.json outside
  dependency directories. Every rule category a script triggers yields its
  own SCRIPTS match, annotated with the category. Script values are
  matched ignoring case.
- Code scan: text files selected by the SuspiciousMode, line by line,
  against the symbol, TruffleHog and wallet signatures. Each matching line
  yields one CODE match. Code lines are matched case-sensitively, so
  ``TRUFFLEHOG`` or a lower-cased wallet address in code is not reported.

Public API:
    RuleCategory: A named signature set with its report annotation
    SCRIPT_RULES: Rule categories applied to script entries
    CODE_RULES: Rule categories applied to code lines
    ScriptHit: A script entry that triggered a category
    inspect_scripts: Apply SCRIPT_RULES to a scripts mapping
    line_is_suspicious: Apply CODE_RULES to a line of text
    is_code_candidate: File-set filter for a SuspiciousMode
    SuspiciousContentScanner: Scanner for the SCRIPTS and CODE scopes
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from npm_ioc_scan.base import ScopeScanner
from npm_ioc_scan.lockfiles import LOCKFILE_NAMES
from npm_ioc_scan.manifest import MANIFEST_NAME, load_manifest
from npm_ioc_scan.models import MATCH_TEXT_LIMIT, Match, Scope, ScopeResult, SuspiciousMode
from npm_ioc_scan.walker import (
    DEPENDENCY_DIRS,
    VCS_DIRS,
    is_binary_file,
    iter_files,
    iter_lines,
)

logger = logging.getLogger(__name__)

# Characters of a script value kept in a SCRIPTS match
SCRIPT_VALUE_LIMIT = 180

# Wallet address of the September 2025 crypto-stealer campaign
ETH_WALLET = "0xFc4a4858bafef54D1b1d7697bfb5c52F4c166976"

SHELL_SIGNATURES: tuple[str, ...] = (
    r"(?:curl|wget).*(?:https?|ipfs)://",
    r"bash\s+-c\s+",
    r"node\s+-e\s+",
    r"powershell\s+-",
    r"Invoke-WebRequest",
    r"setInterval\(.*(?:fetch|XMLHttpRequest)",
    r"eval\(",
    r"Function\(",
    r"require\(['\"]child_process['\"]\)",
)

GLOBAL_SYMBOLS: tuple[str, ...] = ("stealthProxyControl", "runmask", "checkethereumw")
TRUFFLEHOG_SIGNATURES: tuple[str, ...] = ("trufflehog", "TruffleHog")

# Code files scanned when the broad mode is off
CODE_EXTENSIONS: frozenset[str] = frozenset([
    ".js", ".ts", ".mjs", ".cjs", ".jsx", ".tsx",
    ".sh", ".bash",
    ".yml", ".yaml", ".json",
])


@dataclass(frozen=True)
class RuleCategory:
    """A signature set whose hits share one report annotation.

    Attributes:
        name: Short identifier for the category
        pattern: Compiled signature alternation
        annotation: Suffix appended to SCRIPTS matches ("" for none)
    """

    name: str
    pattern: re.Pattern[str]
    annotation: str

    def matches(self, text: str) -> bool:
        return self.pattern.search(text) is not None


def _rule(name: str, signatures: Sequence[str], annotation: str = "", flags: int = 0) -> RuleCategory:
    return RuleCategory(name=name, pattern=re.compile("|".join(signatures), flags), annotation=annotation)


# Script values are matched ignoring case
SHELL_RULE = _rule("shell", SHELL_SIGNATURES, flags=re.IGNORECASE)
GLOBAL_RULE = _rule("global", GLOBAL_SYMBOLS, "(suspicious global)", re.IGNORECASE)
TRUFFLEHOG_RULE = _rule("trufflehog", TRUFFLEHOG_SIGNATURES, "(trufflehog ref)", re.IGNORECASE)
ETH_RULE = _rule("eth", (re.escape(ETH_WALLET),), "(eth addr)", re.IGNORECASE)

# Code lines are matched case-sensitively
GLOBAL_CODE_RULE = _rule("global", GLOBAL_SYMBOLS)
TRUFFLEHOG_CODE_RULE = _rule("trufflehog", TRUFFLEHOG_SIGNATURES)
ETH_CODE_RULE = _rule("eth", (re.escape(ETH_WALLET),))

SCRIPT_RULES: tuple[RuleCategory, ...] = (SHELL_RULE, GLOBAL_RULE, TRUFFLEHOG_RULE, ETH_RULE)
CODE_RULES: tuple[RuleCategory, ...] = (GLOBAL_CODE_RULE, TRUFFLEHOG_CODE_RULE, ETH_CODE_RULE)


@dataclass(frozen=True)
class ScriptHit:
    """A script entry that triggered a rule category.

    Attributes:
        key: The script name, e.g. ``postinstall``
        value: The script command
        rule: The triggered rule category
    """

    key: str
    value: str
    rule: RuleCategory

    @property
    def text(self) -> str:
        """Return the ``key=value (annotation)`` text reported for the hit.

        The entry is shortened, never the annotation, so the result fits
        in a Match.
        """
        text = f"{self.key}={self.value[:SCRIPT_VALUE_LIMIT]}"
        if not self.rule.annotation:
            return text
        suffix = f" {self.rule.annotation}"
        return text[: MATCH_TEXT_LIMIT - len(suffix)] + suffix


def inspect_scripts(scripts: Mapping[str, str]) -> list[ScriptHit]:
    """Apply every script rule category to every entry of a scripts map.

    Returns:
        One ScriptHit per (entry, triggered category), in entry order then
        category order.
    """
    hits: list[ScriptHit] = []
    for key, value in scripts.items():
        for rule in SCRIPT_RULES:
            if rule.matches(value):
                hits.append(ScriptHit(key=key, value=value, rule=rule))
    return hits


def line_is_suspicious(line: str) -> bool:
    """Return True if a line of code matches any code rule category."""
    return any(rule.matches(line) for rule in CODE_RULES)


def is_code_candidate(path: Path, mode: SuspiciousMode) -> bool:
    """Return True if ``path`` belongs to the code file set of ``mode``.

    The default set holds script, markup/config and container-definition
    files; the broad set holds every file except lock files.
    """
    if mode == SuspiciousMode.BROAD:
        return not (path.suffix == ".lock" or path.name in LOCKFILE_NAMES)
    return path.suffix.lower() in CODE_EXTENSIONS or "Dockerfile" in path.name


class SuspiciousContentScanner(ScopeScanner):
    """Scans package scripts and code under the roots for campaign signatures.

    Attributes:
        mode: Coverage of the code scan
        excluded_dirs: Directory names never descended into
    """

    def __init__(self, mode: SuspiciousMode = SuspiciousMode.SCRIPTS, **kwargs) -> None:
        super().__init__(**kwargs)
        if mode == SuspiciousMode.OFF:
            raise ValueError("SuspiciousContentScanner requires an enabled mode")
        self.mode: SuspiciousMode = mode
        self.excluded_dirs: frozenset[str] = DEPENDENCY_DIRS | VCS_DIRS

    def scan(self, roots: Sequence[Path]) -> tuple[ScopeResult, ScopeResult]:
        """Run the script-field and code scans over every root.

        Returns:
            ``(scripts_result, code_result)``.
        """
        scripts_result = ScopeResult(scope=Scope.SCRIPTS)
        code_result = ScopeResult(scope=Scope.CODE)
        if not roots:
            scripts_result.skipped = code_result.skipped = "no directories given"
            return scripts_result, code_result

        logger.info(
            "Scanning suspicious scripts/code in: %s", " ".join(str(r) for r in roots)
        )
        for root in roots:
            if self.cancelled:
                break
            if not root.is_dir():
                continue
            self.scan_scripts(root, scripts_result)
            self.scan_code(root, code_result)
        return scripts_result, code_result

    def scan_scripts(self, root: Path, result: ScopeResult) -> None:
        """Inspect the scripts of every package.json under ``root``."""
        manifests = iter_files(
            root,
            exclude_dirs=self.excluded_dirs,
            predicate=lambda p: p.name == MANIFEST_NAME,
        )
        for manifest_path in manifests:
            if self.cancelled:
                break
            manifest = load_manifest(manifest_path)
            if manifest is None:
                continue
            result.items_scanned += 1
            for hit in inspect_scripts(manifest.scripts):
                self._record(
                    result,
                    Match(scope=Scope.SCRIPTS, location=str(manifest_path), matched_text=hit.text),
                )

    def scan_code(self, root: Path, result: ScopeResult) -> None:
        """Search the code file set under ``root`` line by line."""
        candidates = iter_files(
            root,
            exclude_dirs=self.excluded_dirs,
            predicate=lambda p: is_code_candidate(p, self.mode),
        )
        for path in candidates:
            if self.cancelled:
                break
            if is_binary_file(path):
                logger.debug("Skipping binary file: %s", path)
                continue
            result.items_scanned += 1
            try:
                for number, line in iter_lines(path):
                    if line_is_suspicious(line):
                        self._record(
                            result,
                            Match(
                                scope=Scope.CODE,
                                location=str(path),
                                matched_text=f"{number}:{line}",
                                line_number=number,
                            ),
                        )
            except OSError as exc:
                logger.warning("Cannot read %s: %s", path, exc)
