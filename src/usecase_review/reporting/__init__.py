"""Report assembly and persistence."""

from usecase_review.reporting.report import (
    ReportLoadError,
    ReportPaths,
    ReviewReport,
    build_report,
    load_report,
    render_markdown,
    summary_from_report,
    write_repo_report,
    write_report,
)

__all__ = [
    "ReportLoadError",
    "ReportPaths",
    "ReviewReport",
    "build_report",
    "load_report",
    "render_markdown",
    "summary_from_report",
    "write_repo_report",
    "write_report",
]
