"""Dependency-aware use-case review for code-analysis engines.

Selects use cases from a markdown catalog, expands their prerequisites into
per-repository plans, drives a pluggable query engine through each plan, and
gates the aggregated results against release thresholds.

Importing the package has no side effects; logging and config are set up by
the CLI.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
