"""Stable constants shared across the review planes."""

from __future__ import annotations

from typing import Final

# Catalog id format.
USE_CASE_ID_PREFIX: Final[str] = "UC"
USE_CASE_ID_PATTERN_DESCRIPTION: Final[str] = "UC-001"

# Numeric id ranges for maturity layers (inclusive bounds).
LAYER_RANGES: Final[tuple[tuple[str, int, int], ...]] = (
    ("L0", 1, 30),
    ("L1", 31, 60),
    ("L2", 61, 170),
    ("L3", 171, 260),
    ("L4", 261, 310),
)
UNKNOWN_LAYER: Final[str] = "unknown"

# Default run options.
DEFAULT_UC_START: Final[int] = 1
DEFAULT_UC_END: Final[int] = 310
DEFAULT_MAX_USE_CASES: Final[int] = 60
DEFAULT_MAX_REPOS: Final[int] = 3
DEFAULT_MAX_RUNS_PER_REPO: Final[int] = 24
DEFAULT_EXPLORATION_INTENTS: Final[int] = 3
DEFAULT_INIT_TIMEOUT_SECONDS: Final[float] = 120.0
DEFAULT_QUERY_TIMEOUT_SECONDS: Final[float] = 90.0

# Default paths (relative to the config file unless overridden).
DEFAULT_CONFIG_FILE: Final[str] = "usecase_review.toml"
DEFAULT_CATALOG_PATH: Final[str] = "docs/use_case_catalog.md"
DEFAULT_REPOS_ROOT: Final[str] = "eval-corpus/external-repos"
DEFAULT_REPORT_DIR: Final[str] = "state/usecase-review"
MANIFEST_FILENAMES: Final[tuple[str, ...]] = ("manifest.json", "manifest.yaml", "manifest.yml")

# Open-ended prompts issued after the planned steps of each repository.
EXPLORATION_INTENTS: Final[tuple[str, ...]] = (
    "Explain the overall architecture of this repository and its main entry points.",
    "Which parts of this codebase are the riskiest to change, and why?",
    "Where is error handling or input validation weakest in this repository?",
    "Trace how configuration values flow from their source to where they are used.",
    "Which modules have the most inbound dependencies and what do they provide?",
)

__all__ = [
    "DEFAULT_CATALOG_PATH",
    "DEFAULT_CONFIG_FILE",
    "DEFAULT_EXPLORATION_INTENTS",
    "DEFAULT_INIT_TIMEOUT_SECONDS",
    "DEFAULT_MAX_REPOS",
    "DEFAULT_MAX_RUNS_PER_REPO",
    "DEFAULT_MAX_USE_CASES",
    "DEFAULT_QUERY_TIMEOUT_SECONDS",
    "DEFAULT_REPORT_DIR",
    "DEFAULT_REPOS_ROOT",
    "DEFAULT_UC_END",
    "DEFAULT_UC_START",
    "EXPLORATION_INTENTS",
    "LAYER_RANGES",
    "MANIFEST_FILENAMES",
    "UNKNOWN_LAYER",
    "USE_CASE_ID_PATTERN_DESCRIPTION",
    "USE_CASE_ID_PREFIX",
]
