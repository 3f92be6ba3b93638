"""Normalization of raw indicator-of-compromise strings into search terms.

Terms come from a comma-separated inline string and/or a file with one term
per line. Every term has all whitespace removed; file lines additionally
drop everything after a ``#`` comment marker. The result is an ordered,
de-duplicated tuple of non-empty terms; an empty result is fatal.

Public API:
    TermsError: Base class for fatal term errors
    NoSearchTermsError: Raised when no term survives normalization
    TermsFileError: Raised when the terms file cannot be read
    normalize_term: Clean a single raw term
    parse_inline_terms: Split and clean a comma-separated string
    parse_terms_lines: Clean the lines of a terms file
    read_terms_file: Read and clean a terms file from disk
    collect_terms: Combine both sources and enforce a non-empty result
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from pathlib import Path

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


class TermsError(ValueError):
    """A fatal problem with the operator-supplied search terms."""


class NoSearchTermsError(TermsError):
    """No search term remained after normalization."""


class TermsFileError(TermsError):
    """The terms file does not exist or cannot be read."""


def normalize_term(raw: str) -> str:
    """Remove all whitespace from a raw term.

    Returns:
        The cleaned term, possibly empty.
    """
    return _WHITESPACE_RE.sub("", raw)


def parse_inline_terms(value: str | None) -> list[str]:
    """Split a comma-separated string into cleaned, non-empty terms."""
    if not value:
        return []
    terms: list[str] = []
    for piece in value.split(","):
        term = normalize_term(piece)
        if term:
            terms.append(term)
    return terms


def parse_terms_lines(lines: Iterable[str]) -> list[str]:
    """Clean terms file lines.

    Text after the first ``#`` is a comment. Comments are stripped before
    whitespace is removed, and lines that end up empty are skipped.
    """
    terms: list[str] = []
    for line in lines:
        term = normalize_term(line.split("#", 1)[0])
        if term:
            terms.append(term)
    return terms


def read_terms_file(path: Path) -> list[str]:
    """Read a terms file (UTF-8, BOM tolerated) and return its terms.

    Raises:
        TermsFileError: If the file does not exist or cannot be read.
    """
    if not path.is_file():
        raise TermsFileError(f"Terms file does not exist: {path}")
    try:
        text = path.read_text(encoding="utf-8-sig", errors="replace")
    except OSError as exc:
        raise TermsFileError(f"Cannot read terms file {path}: {exc}") from exc
    terms = parse_terms_lines(text.splitlines())
    logger.debug("Read %d term(s) from %s", len(terms), path)
    return terms


def collect_terms(
    inline: str | None = None,
    terms_file: Path | None = None,
) -> tuple[str, ...]:
    """Build the ordered search terms for a run.

    Inline terms come first, then file terms. Repeated terms are kept once,
    at their first position.

    Args:
        inline: Comma-separated terms, e.g. ``"@ctrl/tinycolor@4.1.1,ngx-toastr"``.
        terms_file: Optional path to a file with one term per line.

    Returns:
        A non-empty tuple of search terms.

    Raises:
        TermsFileError: If ``terms_file`` is given but cannot be read.
        NoSearchTermsError: If no term remains after normalization.
    """
    terms = parse_inline_terms(inline)
    if terms_file is not None:
        terms.extend(read_terms_file(terms_file))

    unique = tuple(dict.fromkeys(terms))
    if not unique:
        raise NoSearchTermsError(
            "You must provide terms with -t or -f "
            '(e.g., -t "@ctrl/tinycolor@4.1.1,ngx-toastr@19.0.2").'
        )
    return unique
