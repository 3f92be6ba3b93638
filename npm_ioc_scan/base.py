"""Shared plumbing for the per-scope scanners.

Every scope scanner records its matches into a ScopeResult and forwards
each one to the run's sink as soon as it is discovered, so the console and
TSV output follow discovery order. Scanners poll an optional cancellation
event between items and return their partial result once it is set.
"""

from __future__ import annotations

import threading
from typing import Protocol

from npm_ioc_scan.models import Match, ScopeResult


class SinkError(RuntimeError):
    """Raised when a sink cannot persist a match.

    Not an OSError, so per-file read error handling in the scanners never
    mistakes a failing report for an unreadable input file.
    """


class MatchSink(Protocol):
    """Anything that accepts matches as they are discovered."""

    def emit(self, match: Match) -> None:
        ...


class ScopeScanner:
    """Base class holding the sink and cancellation state of a scanner.

    Attributes:
        sink: Optional sink receiving every match as it is recorded
        cancel_event: Optional event; once set, scanners stop visiting items
    """

    def __init__(
        self,
        sink: MatchSink | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self.sink: MatchSink | None = sink
        self.cancel_event: threading.Event | None = cancel_event

    @property
    def cancelled(self) -> bool:
        """Return True once the operator asked the run to stop."""
        return self.cancel_event is not None and self.cancel_event.is_set()

    def _record(self, result: ScopeResult, match: Match) -> None:
        result.matches.append(match)
        if self.sink is not None:
            self.sink.emit(match)
