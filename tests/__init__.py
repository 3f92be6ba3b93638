"""Test suite for npm_ioc_scan.

This package contains unit and integration tests for all npm_ioc_scan modules:
- test_terms: Term normalization from inline strings and terms files
- test_matcher: Pattern derivation, escaping, search and identity matching
- test_lockfiles: Line-based lockfile matching over project trees
- test_global_registry: npm ls -g decoding, failure handling and matching
- test_version_managers: NVM and Nave layouts and discovery passes
- test_suspicious: Script and code heuristics
- test_renderer: Result sink rows, TSV report and summary rendering
- test_scanner: Integration tests running every scope against fixture trees
- test_cli: Command-line options, exit codes and outputs
"""
