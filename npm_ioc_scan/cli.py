"""Command-line entry point: npm-ioc-scan.

Searches lockfiles, global npm packages, NVM runtimes and Nave environments
for known-compromised npm packages, and optionally flags suspicious package
scripts and code.

Examples::

    # Two terms in two projects and in the global packages
    npm-ioc-scan -t "@ctrl/tinycolor@4.1.1,ngx-toastr@19.0.2" -d ~/projA -d ~/projB -g

    # Terms from a file, NVM and Nave autodetected, TSV report
    npm-ioc-scan -f iocs.txt -d /srv/repos --nvm --nave -o report.tsv

    # Custom NVM and Nave locations
    npm-ioc-scan -t "koa2-swagger-ui@5.11.2" --nvm-path /opt/nvm --nave-root /home/user/.nave

Exit status is 0 whenever the scan completes, whatever the number of
matches; 1 for operator errors such as missing terms, 2 for usage errors and
130 when interrupted.
"""

from __future__ import annotations

import logging
import signal
import threading
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler

from npm_ioc_scan import __version__
from npm_ioc_scan.base import SinkError
from npm_ioc_scan.config import (
    DEFAULT_NPM_TIMEOUT,
    ScanConfig,
    default_nave_root,
    default_nvm_root,
)
from npm_ioc_scan.matcher import CombinedMatcher
from npm_ioc_scan.models import SuspiciousMode
from npm_ioc_scan.renderer import Renderer, ResultSink
from npm_ioc_scan.scanner import Scanner
from npm_ioc_scan.terms import TermsError, collect_terms

logger = logging.getLogger("npm_ioc_scan")


def configure_logging(quiet: bool = False, verbose: bool = False) -> None:
    """Route the package's log records to stderr through Rich.

    ``quiet`` keeps only errors; ``verbose`` adds per-item debug records.
    """
    level = logging.INFO
    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.DEBUG

    handler = RichHandler(
        console=Console(stderr=True),
        show_time=False,
        show_path=False,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))

    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(level)


def build_config(
    dirs: tuple[Path, ...],
    include_global: bool,
    nvm: bool,
    nvm_path: Path | None,
    nave: bool,
    nave_root: Path | None,
    suspicious: bool,
    suspicious_all: bool,
    npm_timeout: float,
) -> ScanConfig:
    """Translate command-line options into a ScanConfig.

    An explicit ``nvm_path`` enables the NVM scope on its own; ``nvm`` alone
    autodetects the NVM directory.
    """
    nvm_root: Path | None = None
    if nvm_path is not None:
        nvm_root = nvm_path.expanduser()
    elif nvm:
        nvm_root = default_nvm_root()

    resolved_nave_root: Path | None = None
    if nave_root is not None:
        resolved_nave_root = nave_root.expanduser()
    elif nave:
        resolved_nave_root = default_nave_root()

    mode = SuspiciousMode.OFF
    if suspicious_all:
        mode = SuspiciousMode.BROAD
    elif suspicious:
        mode = SuspiciousMode.SCRIPTS

    return ScanConfig(
        roots=tuple(d.expanduser() for d in dirs),
        include_global=include_global,
        nvm_root=nvm_root,
        nave_root=resolved_nave_root,
        suspicious_mode=mode,
        npm_timeout=npm_timeout,
    )


def _install_interrupt_handler(cancel_event: threading.Event):
    """Make the first Ctrl-C stop the scan gracefully; the second aborts."""

    def _handler(signum, frame):
        if cancel_event.is_set():
            raise KeyboardInterrupt
        cancel_event.set()
        logger.warning("Interrupt received; stopping after the current item.")

    try:
        return signal.signal(signal.SIGINT, _handler)
    except ValueError:
        # Not in the main thread
        return None


class _ScanCommand(click.Command):
    """Command that also accepts ``--nvm=PATH`` for ``--nvm-path PATH``.

    ``--nvm`` itself is a plain flag so it never consumes the next argument.
    """

    def parse_args(self, ctx: click.Context, args: list[str]) -> list[str]:
        rewritten: list[str] = []
        for index, arg in enumerate(args):
            if arg == "--":
                rewritten.extend(args[index:])
                break
            if arg.startswith("--nvm="):
                path = arg[len("--nvm="):]
                rewritten.extend(["--nvm-path", path] if path else ["--nvm"])
            else:
                rewritten.append(arg)
        return super().parse_args(ctx, rewritten)


@click.command(cls=_ScanCommand, context_settings={"help_option_names": ["-h", "--help"]})
@click.option("-t", "--terms", "terms", metavar="TERMS",
              help='Comma-separated search terms, e.g. "pkg@1.2.3,other".')
@click.option("-f", "--terms-file", type=click.Path(dir_okay=False, path_type=Path),
              help="File with search terms, one per line (# starts a comment).")
@click.option("-d", "--dir", "dir_options", multiple=True,
              type=click.Path(file_okay=False, path_type=Path),
              help="Directory to scan (repeatable).")
@click.option("-g", "--global", "include_global", is_flag=True,
              help="Include globally installed npm packages.")
@click.option("--nvm", is_flag=True,
              help="Include NVM runtimes ($NVM_DIR or ~/.nvm).")
@click.option("--nvm-path", type=click.Path(file_okay=False, path_type=Path),
              help="Base path for NVM; implies --nvm. Also accepted as --nvm=PATH.")
@click.option("--nave", is_flag=True, help="Include Nave environments (~/.nave).")
@click.option("--nave-root", type=click.Path(file_okay=False, path_type=Path),
              help="Base path for Nave; implies --nave.")
@click.option("-o", "--output", type=click.Path(dir_okay=False, path_type=Path),
              help="Also save the matches to FILE (TSV).")
@click.option("--suspicious", is_flag=True,
              help="Scan package.json scripts and common code/config files for "
                   "suspicious patterns.")
@click.option("--suspicious-all", is_flag=True,
              help="Like --suspicious, but scan every text file under the directories.")
@click.option("--npm-timeout", type=click.FloatRange(min=0, min_open=True),
              default=DEFAULT_NPM_TIMEOUT, show_default=True,
              help="Seconds to wait for 'npm ls -g'.")
@click.option("--format", "output_format", type=click.Choice(["text", "json"]),
              default="text", show_default=True,
              help="Console output: match rows and summary, or the report as JSON.")
@click.option("-q", "--quiet", is_flag=True, help="Only log errors.")
@click.option("-v", "--verbose", is_flag=True, help="Log skipped files and manifests.")
@click.version_option(__version__, prog_name="npm-ioc-scan")
@click.argument("dirs", nargs=-1, type=click.Path(file_okay=False, path_type=Path))
@click.pass_context
def main(
    ctx: click.Context,
    terms: str | None,
    terms_file: Path | None,
    dir_options: tuple[Path, ...],
    include_global: bool,
    nvm: bool,
    nvm_path: Path | None,
    nave: bool,
    nave_root: Path | None,
    output: Path | None,
    suspicious: bool,
    suspicious_all: bool,
    npm_timeout: float,
    output_format: str,
    quiet: bool,
    verbose: bool,
    dirs: tuple[Path, ...],
) -> None:
    """Scan lockfiles, global npm, NVM and Nave for compromised packages.

    Lockfiles searched in directories: package-lock.json, pnpm-lock.yaml,
    yarn.lock. Nave packages are looked up under
    <NAVE_ROOT>/installed/*/lib/node_modules, covering both version
    directories and named environments.
    """
    configure_logging(quiet=quiet, verbose=verbose)

    try:
        search_terms = collect_terms(terms, terms_file)
    except TermsError as exc:
        raise click.ClickException(str(exc)) from exc

    config = build_config(
        dirs=dir_options + dirs,
        include_global=include_global,
        nvm=nvm,
        nvm_path=nvm_path,
        nave=nave,
        nave_root=nave_root,
        suspicious=suspicious,
        suspicious_all=suspicious_all,
        npm_timeout=npm_timeout,
    )
    matcher = CombinedMatcher(search_terms)
    logger.debug("Combined pattern: %s", matcher.pattern)

    sink = ResultSink(report_path=output, echo=output_format == "text")
    try:
        sink.open()
    except OSError as exc:
        raise click.ClickException(f"Cannot write report {output}: {exc}") from exc

    cancel_event = threading.Event()
    previous_handler = _install_interrupt_handler(cancel_event)
    try:
        with sink:
            report = Scanner(config, matcher, sink=sink, cancel_event=cancel_event).scan()
    except SinkError as exc:
        raise click.ClickException(str(exc)) from exc
    finally:
        if previous_handler is not None:
            signal.signal(signal.SIGINT, previous_handler)

    if output is not None:
        logger.info("Report saved to: %s", output)

    if output_format == "json":
        Renderer(console=Console(highlight=False)).render_json(report)
    elif not quiet:
        Renderer(console=Console(stderr=True, highlight=False)).render_summary(report)

    ctx.exit(report.exit_code)


if __name__ == "__main__":
    main()
