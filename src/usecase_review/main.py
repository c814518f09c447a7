"""Process boundary for ``uc-review``: turns outcomes and failures into exit codes."""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


class ExitCode(IntEnum):
    SUCCESS = 0
    GATE_REJECTED = 1
    CONFIG_ERROR = 2
    ENGINE_ERROR = 3
    INTERNAL_ERROR = 4
    CANCELLED = 130


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Run the CLI and always return an ``ExitCode`` value.

    Used by ``python -m usecase_review`` and the ``uc-review`` script.
    Expected failures print one line on stderr; anything unclassified prints
    its traceback and exits with ``INTERNAL_ERROR``.
    """

    try:
        from usecase_review.ui.cli import run_cli

        outcome: object = run_cli(argv)
    except SystemExit as exc:
        outcome = exc.code
    except KeyboardInterrupt:
        print("interrupted", file=sys.stderr)
        return ExitCode.CANCELLED
    except BaseException as exc:  # noqa: BLE001
        code = classify_failure(exc)
        if code is ExitCode.INTERNAL_ERROR:
            traceback.print_exception(exc, file=sys.stderr)
        else:
            print(str(exc).strip() or type(exc).__name__, file=sys.stderr)
        return code
    return _as_exit_code(outcome)


def _as_exit_code(outcome: object) -> int:
    if outcome is None:
        return ExitCode.SUCCESS
    if isinstance(outcome, int) and outcome in set(ExitCode):
        return outcome
    if isinstance(outcome, str) and outcome.strip():
        print(outcome.strip(), file=sys.stderr)
    return ExitCode.INTERNAL_ERROR


def classify_failure(exc: BaseException) -> ExitCode:
    """Exit code for the first recognised error along the cause chain."""

    from usecase_review.config import ConfigLoadError, ConfigValidationError
    from usecase_review.control_plane import EngineError
    from usecase_review.ingestion import CatalogLoadError, ManifestLoadError
    from usecase_review.utils.concurrency import ReviewCancelledError

    routes: tuple[tuple[tuple[type[BaseException], ...], ExitCode], ...] = (
        ((ReviewCancelledError,), ExitCode.CANCELLED),
        (
            (
                ConfigLoadError,
                ConfigValidationError,
                CatalogLoadError,
                ManifestLoadError,
                FileNotFoundError,
                NotADirectoryError,
                PermissionError,
            ),
            ExitCode.CONFIG_ERROR,
        ),
        ((EngineError,), ExitCode.ENGINE_ERROR),
    )
    for link in _causes(exc):
        for types, code in routes:
            if isinstance(link, types):
                return code
    return ExitCode.INTERNAL_ERROR


def _causes(exc: BaseException) -> Iterator[BaseException]:
    visited: set[int] = set()
    link: BaseException | None = exc
    while link is not None and id(link) not in visited:
        visited.add(id(link))
        yield link
        if link.__cause__ is not None:
            link = link.__cause__
        elif link.__suppress_context__:
            link = None
        else:
            link = link.__context__


__all__ = ["ExitCode", "classify_failure", "cli_entrypoint"]
