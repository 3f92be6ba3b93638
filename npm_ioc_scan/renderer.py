"""Result sink and Rich-based rendering of npm_ioc_scan results.

The ResultSink receives every match as soon as a scanner discovers it. It
prints one fixed-width row per match to the console and, when a report path
is given, appends a tab-separated row to the report file. The sink owns its
own "header written" state: the TSV header is written exactly once, before
the first data row (or on close when the run produced no rows). Emission is
serialized with a lock so concurrent producers never interleave rows.

After the run the Renderer prints a per-scope summary table, or the whole
ScanReport as JSON for downstream tooling.

Public API:
    TSV_HEADER: Column names of the persisted report
    format_console_row: Fixed-width console rendering of a match
    format_tsv_row: Tab-separated rendering of a match
    ResultSink: Accumulates, prints and persists matches
    Renderer: Summary and JSON rendering of a ScanReport
    render_report: Convenience function to render a ScanReport
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import IO

from rich import box
from rich.console import Console
from rich.table import Table
from rich.text import Text

from npm_ioc_scan.base import SinkError
from npm_ioc_scan.models import Match, ScanReport, Scope, ScopeResult

TSV_HEADER: tuple[str, str, str] = ("SCOPE", "LOCATION", "MATCH")

_SCOPE_LABEL: dict[Scope, str] = {
    Scope.LOCKFILE: "Project lockfiles",
    Scope.NPM_GLOBAL: "npm global packages",
    Scope.NVM: "NVM runtimes",
    Scope.NAVE: "Nave environments",
    Scope.SCRIPTS: "package.json scripts",
    Scope.CODE: "Code and config files",
}


def format_console_row(match: Match) -> str:
    """Return the fixed-width console line of a match."""
    scope, location, text = match.as_row()
    return f"{scope:<12} | {location:<60} | {text}"


def _tsv_field(value: str) -> str:
    return value.replace("\t", " ").replace("\r", " ").replace("\n", " ")


def format_tsv_row(fields: tuple[str, str, str]) -> str:
    """Return a tab-separated report line (with trailing newline)."""
    return "\t".join(_tsv_field(f) for f in fields) + "\n"


class ResultSink:
    """Collects matches in discovery order and writes them out.

    Attributes:
        console: Rich Console receiving one row per match
        report_path: Optional path of the TSV report
        matches: Every match emitted so far, in discovery order

    Example::

        with ResultSink(report_path=Path("report.tsv")) as sink:
            Scanner(config, matcher, sink=sink).scan()
    """

    def __init__(
        self,
        console: Console | None = None,
        report_path: Path | None = None,
        echo: bool = True,
    ) -> None:
        """Initialise the sink.

        Args:
            console: Optional Rich Console for the per-match rows. When None,
                a new Console writing to stdout is created.
            report_path: When given, the TSV report is (re)created at this
                path by open() or, failing that, on the first emitted row.
            echo: When False, rows are only accumulated and persisted, not
                printed (used for JSON output).
        """
        self.console: Console = console or Console(highlight=False)
        self.report_path: Path | None = report_path
        self.echo: bool = echo
        self.matches: list[Match] = []
        self._lock = threading.Lock()
        self._header_written = False
        self._report: IO[str] | None = None
        self._closed = False

    def __enter__(self) -> ResultSink:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def header_written(self) -> bool:
        """Return True once the TSV header has been written."""
        return self._header_written

    def open(self) -> None:
        """Create the TSV report and write its header.

        Calling this before a scan surfaces an unwritable report path
        up front. Does nothing without a report path or once opened.

        Raises:
            OSError: If the report cannot be created.
        """
        with self._lock:
            if self.report_path is not None and not self._header_written:
                self._open_report()

    def emit(self, match: Match) -> None:
        """Record a match, print it, and append it to the report.

        Raises:
            SinkError: If the report cannot be written.
        """
        with self._lock:
            if self._closed:
                raise RuntimeError("ResultSink is closed")
            self.matches.append(match)
            if self.report_path is not None:
                self._write_report_line(format_tsv_row(match.as_row()))
            if self.echo:
                self.console.print(
                    format_console_row(match), markup=False, highlight=False, soft_wrap=True
                )

    def close(self) -> None:
        """Flush and close the report; write the header if nothing was emitted."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            try:
                if self.report_path is not None and not self._header_written:
                    self._open_report()
                if self._report is not None:
                    self._report.close()
            except OSError as exc:
                raise SinkError(f"Cannot write report {self.report_path}: {exc}") from exc
            finally:
                self._report = None

    def _open_report(self) -> None:
        assert self.report_path is not None
        self._report = self.report_path.open("w", encoding="utf-8", newline="")
        self._report.write(format_tsv_row(TSV_HEADER))
        self._header_written = True

    def _write_report_line(self, line: str) -> None:
        try:
            if not self._header_written:
                self._open_report()
            assert self._report is not None
            self._report.write(line)
            self._report.flush()
        except OSError as exc:
            raise SinkError(f"Cannot write report {self.report_path}: {exc}") from exc


class Renderer:
    """Renders the end-of-run summary of a ScanReport.

    Attributes:
        console: The Rich Console instance used for output
    """

    def __init__(self, console: Console | None = None, no_color: bool = False) -> None:
        self.console: Console = console or Console(highlight=False, no_color=no_color)

    def render_summary(self, report: ScanReport) -> None:
        """Render a table with one row per scope that ran."""
        if not report.scope_results:
            return
        table = Table(
            box=box.ROUNDED,
            show_header=True,
            header_style="bold dim",
            border_style="dim",
            title="Scan summary",
        )
        table.add_column("Scope", no_wrap=True)
        table.add_column("Surface")
        table.add_column("Examined", justify="right")
        table.add_column("Matches", justify="right")
        table.add_column("Status")

        for result in report.scope_results:
            table.add_row(
                Text(result.scope.value, style=result.scope.rich_style, no_wrap=True),
                _SCOPE_LABEL.get(result.scope, result.scope.value),
                str(result.items_scanned),
                str(len(result.matches)),
                self._status_cell(result),
            )
        self.console.print()
        self.console.print(table)

        if report.interrupted:
            self.console.print("[bold yellow]Scan interrupted; results are partial.[/bold yellow]")
        elif report.total_matches == 0:
            self.console.print("[bold green]No matches found.[/bold green]")
        else:
            self.console.print(
                f"[bold red]{report.ioc_matches} IoC match(es)[/bold red], "
                f"[yellow]{report.heuristic_matches} suspicious content match(es)[/yellow]"
            )

    def render_json(self, report: ScanReport) -> None:
        """Render a ScanReport as pretty-printed JSON to the console."""
        output = json.dumps(report.to_dict(), indent=2, default=str)
        self.console.print(output, highlight=False, markup=False, soft_wrap=True)

    @staticmethod
    def _status_cell(result: ScopeResult) -> Text:
        if result.error:
            return Text(f"error: {result.error}", style="bold red")
        if result.skipped:
            return Text(f"skipped: {result.skipped}", style="yellow")
        if result.has_matches:
            return Text("matches", style="bold red")
        return Text("clean", style="green")


def render_report(
    report: ScanReport,
    output_format: str = "text",
    console: Console | None = None,
) -> None:
    """Convenience function to render a ScanReport.

    Args:
        report: The ScanReport to render.
        output_format: ``text`` for the summary table, ``json`` for the full
            report as JSON.
        console: Optional Rich Console to write to.

    Raises:
        ValueError: If output_format is not one of the accepted values.
    """
    accepted_formats = {"text", "json"}
    if output_format not in accepted_formats:
        raise ValueError(
            f"output_format must be one of {accepted_formats}, got '{output_format}'"
        )
    renderer = Renderer(console=console)
    if output_format == "json":
        renderer.render_json(report)
    else:
        renderer.render_summary(report)
