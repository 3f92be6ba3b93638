"""Deterministic filesystem traversal helpers shared by the scanners.

Directory entries are visited in lexicographic order so that repeated runs
over an unchanged tree produce identical report rows. Symlinked directories
are not followed.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Collection, Iterator
from pathlib import Path

logger = logging.getLogger(__name__)

# Directory names never descended into by the project-level scanners
DEPENDENCY_DIRS: frozenset[str] = frozenset(["node_modules"])
VCS_DIRS: frozenset[str] = frozenset([".git"])

# Number of leading bytes inspected by the binary sniff
_SNIFF_BYTES = 8192


def iter_files(
    root: Path,
    exclude_dirs: Collection[str] = (),
    predicate: Callable[[Path], bool] | None = None,
) -> Iterator[Path]:
    """Yield regular files under ``root`` in lexicographic order.

    Args:
        root: Directory to walk.
        exclude_dirs: Directory names pruned wherever they appear.
        predicate: Optional filter applied to each candidate file path.

    Yields:
        Paths of matching regular files.
    """

    def _on_error(exc: OSError) -> None:
        logger.debug("Cannot list %s: %s", exc.filename, exc.strerror)

    for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error):
        dirnames[:] = sorted(d for d in dirnames if d not in exclude_dirs)
        for filename in sorted(filenames):
            path = Path(dirpath) / filename
            if not path.is_file():
                continue
            if predicate is None or predicate(path):
                yield path


def is_binary_file(path: Path) -> bool:
    """Best-effort binary detection: a NUL byte in the first 8 KiB.

    Unreadable files are reported as binary so callers skip them.
    """
    try:
        with path.open("rb") as handle:
            chunk = handle.read(_SNIFF_BYTES)
    except OSError:
        return True
    return b"\x00" in chunk


def iter_lines(path: Path) -> Iterator[tuple[int, str]]:
    """Yield ``(line_number, line)`` pairs of a text file, 1-indexed.

    Undecodable bytes are replaced and line terminators stripped.

    Raises:
        OSError: If the file cannot be opened.
    """
    with path.open("r", encoding="utf-8", errors="replace", newline=None) as handle:
        for number, line in enumerate(handle, start=1):
            yield number, line.rstrip("\r\n")
