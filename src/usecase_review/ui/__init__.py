"""UI package exports for the CLI router and plain-text rendering."""

from usecase_review.ui.cli import CLIError, build_parser, run_cli
from usecase_review.ui.render import CLIRenderer, ProgressPrinter, create_renderer

__all__ = [
    "CLIError",
    "CLIRenderer",
    "ProgressPrinter",
    "build_parser",
    "create_renderer",
    "run_cli",
]
