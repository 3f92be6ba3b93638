"""Compilation of search terms into one combined, metacharacter-safe matcher.

Package names and scopes such as ``@ctrl/tinycolor`` contain characters that
are significant in regular expressions, so every literal is passed through
``re.escape`` before the patterns are joined into a single alternation.

For a term carrying a version (``name@version``, split on the last ``@``)
three patterns are derived:

- the exact term, e.g. ``@ctrl/tinycolor@4.1.1``
- the name followed by ``@``, catching any version of the package
- the quoted dependency-map spelling ``"name": "version"`` found in the
  ``requires``/``dependencies`` maps of ``package-lock.json``

A term without a version yields only its exact literal.

The resulting CombinedMatcher is built once per run and shared read-only by
every scope. It supports two modes: substring search over text lines and
identity matching over ``name@version`` strings.

Public API:
    PatternKind: Enumeration of derived pattern kinds
    MatchPattern: A single escaped pattern derived from a term
    split_term: Split a term into name and version
    derive_patterns: Derive the patterns of a single term
    CombinedMatcher: The union of all patterns of a run
    compile_terms: Convenience constructor for CombinedMatcher
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum


class PatternKind(str, Enum):
    """How a pattern was derived from its term."""

    EXACT = "exact"
    NAME_PREFIX = "name_prefix"
    DEPENDENCY_ENTRY = "dependency_entry"


@dataclass(frozen=True)
class MatchPattern:
    """A regular expression source derived from a search term.

    Attributes:
        term: The search term the pattern was derived from
        kind: How the pattern was derived
        source: Regular expression source; all literal parts are escaped
    """

    term: str
    kind: PatternKind
    source: str

    @property
    def identity_source(self) -> str | None:
        """Return the source used for ``name@version`` identity matching.

        Exact literals must end where the identity ends or at the version
        separator; the name prefix pattern already ends with ``@``. The
        dependency-map spelling never applies to identities.
        """
        if self.kind == PatternKind.DEPENDENCY_ENTRY:
            return None
        if self.kind == PatternKind.NAME_PREFIX:
            return self.source
        return f"{self.source}(?=@|$)"


def split_term(term: str) -> tuple[str, str | None]:
    """Split a term on its last ``@`` into ``(name, version)``.

    A leading ``@`` is a scope marker, not a version separator, so
    ``@ctrl/tinycolor`` has no version while ``@ctrl/tinycolor@4.1.1`` does.

    Returns:
        ``(name, version)``, with ``version`` None when the term carries none.
    """
    index = term.rfind("@")
    if index <= 0:
        return term, None
    return term[:index], term[index + 1 :]


def derive_patterns(term: str) -> list[MatchPattern]:
    """Derive the escaped patterns for a single search term.

    Raises:
        ValueError: If the term is empty or contains whitespace.
    """
    if not term or any(ch.isspace() for ch in term):
        raise ValueError(f"Invalid search term: {term!r}")

    patterns = [MatchPattern(term, PatternKind.EXACT, re.escape(term))]
    name, version = split_term(term)
    if version is None or not name:
        return patterns

    prefix = MatchPattern(term, PatternKind.NAME_PREFIX, re.escape(name) + "@")
    if prefix.source != patterns[0].source:
        patterns.append(prefix)
    if version:
        patterns.append(
            MatchPattern(
                term,
                PatternKind.DEPENDENCY_ENTRY,
                '"' + re.escape(name) + r'"\s*:\s*"' + re.escape(version) + '"',
            )
        )
    return patterns


class CombinedMatcher:
    """Disjunction of all patterns derived from a run's search terms.

    Example::

        matcher = CombinedMatcher(["@ctrl/tinycolor@4.1.1", "ngx-toastr"])
        matcher.search('"node_modules/@ctrl/tinycolor@4.1.1"')  # -> matched text
        matcher.match_identity("@ctrl/tinycolor@3.0.0")          # -> True
    """

    def __init__(self, terms: Iterable[str]) -> None:
        """Compile the matcher.

        Args:
            terms: Normalized search terms. Duplicates are compiled once.

        Raises:
            ValueError: If no terms are given or a term is invalid.
        """
        self._terms: tuple[str, ...] = tuple(dict.fromkeys(terms))
        if not self._terms:
            raise ValueError("At least one search term is required")

        patterns: list[MatchPattern] = []
        seen: set[str] = set()
        for term in self._terms:
            for pattern in derive_patterns(term):
                if pattern.source not in seen:
                    seen.add(pattern.source)
                    patterns.append(pattern)
        self._patterns: tuple[MatchPattern, ...] = tuple(patterns)

        self._search_re = re.compile("|".join(p.source for p in self._patterns))
        identity_sources = [
            p.identity_source for p in self._patterns if p.identity_source is not None
        ]
        self._identity_re = re.compile("^(?:" + "|".join(identity_sources) + ")")

    @property
    def terms(self) -> tuple[str, ...]:
        """The search terms the matcher was compiled from."""
        return self._terms

    @property
    def patterns(self) -> tuple[MatchPattern, ...]:
        """The derived patterns, in term order."""
        return self._patterns

    @property
    def pattern(self) -> str:
        """The combined alternation used for substring search."""
        return self._search_re.pattern

    def search(self, text: str) -> str | None:
        """Return the first matching substring of ``text``, or None."""
        found = self._search_re.search(text)
        return found.group(0) if found else None

    def match_identity(self, identity: str) -> bool:
        """Return True if a ``name@version`` identity matches as a whole.

        ``foo`` and ``foo@1.0.0`` match identity ``foo@1.0.0``; ``foo`` does
        not match ``foo-bar@1.0.0``.
        """
        return self._identity_re.match(identity) is not None

    def __repr__(self) -> str:
        return f"CombinedMatcher(terms={list(self._terms)!r})"


def compile_terms(terms: Sequence[str]) -> CombinedMatcher:
    """Convenience function to build the combined matcher of a run."""
    return CombinedMatcher(terms)
