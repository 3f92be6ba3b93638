"""Run configuration for npm_ioc_scan.

A single immutable ScanConfig is built once by the CLI (or by library
callers) and passed by reference into the scanner; no scanner reads flags
or environment variables on its own.

Public API:
    ScanConfig: Immutable run configuration
    default_nvm_root: Autodetected NVM base directory
    default_nave_root: Default Nave root directory
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from npm_ioc_scan.models import SuspiciousMode

# Default timeout in seconds for the ``npm ls -g`` query
DEFAULT_NPM_TIMEOUT: float = 10.0


def default_nvm_root() -> Path:
    """Return ``$NVM_DIR`` when set, otherwise ``~/.nvm``."""
    nvm_dir = os.environ.get("NVM_DIR")
    if nvm_dir:
        return Path(nvm_dir).expanduser()
    return Path.home() / ".nvm"


def default_nave_root() -> Path:
    """Return the default Nave root, ``~/.nave``."""
    return Path.home() / ".nave"


@dataclass(frozen=True)
class ScanConfig:
    """Immutable configuration for one scan run.

    Attributes:
        roots: Project directories searched for lockfiles and, when the
            suspicious scanner is enabled, for scripts and code
        include_global: Query the globally installed npm packages
        nvm_root: NVM base directory, or None to skip the NVM scope
        nave_root: Nave root directory, or None to skip the Nave scope
        suspicious_mode: Coverage of the suspicious content scanner
        npm_timeout: Seconds to wait for the npm query before giving up
        npm_command: Executable used for the global package query
    """

    roots: tuple[Path, ...] = field(default_factory=tuple)
    include_global: bool = False
    nvm_root: Path | None = None
    nave_root: Path | None = None
    suspicious_mode: SuspiciousMode = SuspiciousMode.OFF
    npm_timeout: float = DEFAULT_NPM_TIMEOUT
    npm_command: str = "npm"

    def __post_init__(self) -> None:
        if self.npm_timeout <= 0:
            raise ValueError(f"npm_timeout must be positive, got {self.npm_timeout}")
        if not self.npm_command:
            raise ValueError("npm_command must not be empty")
        # Accept any iterable of str/Path for roots
        object.__setattr__(self, "roots", tuple(Path(r) for r in self.roots))
        object.__setattr__(self, "suspicious_mode", SuspiciousMode(self.suspicious_mode))

    @property
    def suspicious_enabled(self) -> bool:
        """Return True when the suspicious content scanner should run."""
        return self.suspicious_mode != SuspiciousMode.OFF
