"""Input ingestion: use-case catalog, run history, and repository manifest."""

from usecase_review.ingestion.catalog import (
    CatalogLoadError,
    load_catalog,
    parse_catalog,
    parse_dependency_cell,
)
from usecase_review.ingestion.history import (
    HistoryLoad,
    HistoryStatus,
    build_history_stats,
    load_history,
)
from usecase_review.ingestion.manifest import ManifestLoadError, RepoTarget, discover_repos

__all__ = [
    "CatalogLoadError",
    "HistoryLoad",
    "HistoryStatus",
    "ManifestLoadError",
    "RepoTarget",
    "build_history_stats",
    "discover_repos",
    "load_catalog",
    "load_history",
    "parse_catalog",
    "parse_dependency_cell",
]
