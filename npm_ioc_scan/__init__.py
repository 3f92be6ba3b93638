"""npm_ioc_scan - find known-compromised npm packages during incident response.

This package searches several installation surfaces for package identifiers
(``name`` or ``name@version``) published as indicators of compromise:

- Project lockfiles (package-lock.json, pnpm-lock.yaml, yarn.lock)
- Globally installed npm packages
- Packages installed for each NVM runtime and Nave environment
- Optionally, package.json scripts and code matching known campaign
  signatures (curl/wget droppers, stealer globals, TruffleHog, wallet)

Public API:
    __version__: Current package version string
    __all__: Exported public symbols

Example usage::

    from npm_ioc_scan import __version__
    print(f"npm_ioc_scan v{__version__}")
"""

__version__ = "0.1.0"
__author__ = "npm-ioc-scan contributors"
__license__ = "MIT"

__all__ = ["__version__", "__author__", "__license__"]
