"""Plain-text CLI output and the review progress printer.

Respects ``NO_COLOR`` and ``--no-color``; output is plain text either way, so
it stays stable when piped or captured in tests.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING, TextIO

from usecase_review.observability.events import ReviewEvent, ReviewEventType

if TYPE_CHECKING:
    from collections.abc import Sequence


def _color_allowed(no_color_flag: bool, stream: TextIO) -> bool:
    if no_color_flag or os.environ.get("NO_COLOR", ""):
        return False
    return hasattr(stream, "isatty") and stream.isatty()


class CLIRenderer:
    """Thin line-oriented renderer."""

    def __init__(
        self,
        *,
        no_color: bool = False,
        verbose: bool = False,
        stream: TextIO | None = None,
    ) -> None:
        self.verbose = verbose
        self._stream = stream if stream is not None else sys.stdout
        self._color = _color_allowed(no_color, self._stream)

    def _write(self, line: str = "") -> None:
        print(line, file=self._stream)

    def heading(self, text: str) -> None:
        self._write(text)

    def kv(self, key: str, value: object) -> None:
        self._write(f"{key}: {value}")

    def text(self, line: str) -> None:
        self._write(line)

    def section(self, title: str) -> None:
        self._write(f"\n{title}")

    def warning(self, text: str) -> None:
        self._write(f"  Warning: {text}")

    def items(self, entries: Sequence[str], *, prefix: str = "- ") -> None:
        for entry in entries:
            self._write(f"  {prefix}{entry}")

    def table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[str]],
        *,
        title: str | None = None,
    ) -> None:
        """Left-aligned columns sized to the widest cell."""

        if not rows:
            return
        widths = [len(header) for header in headers]
        for row in rows:
            for index, cell in enumerate(row[: len(headers)]):
                widths[index] = max(widths[index], len(str(cell)))

        def pad(cells: Sequence[str]) -> str:
            return "  ".join(
                (str(cells[i]) if i < len(cells) else "").ljust(widths[i])
                for i in range(len(headers))
            ).rstrip()

        if title:
            self.section(title)
        self._write(f"  {pad(headers)}")
        self._write(f"  {'  '.join('-' * width for width in widths)}")
        for row in rows:
            self._write(f"  {pad(row)}")

    def ok(self, label: str) -> None:
        self._write(f"  OK  {label}")

    def fail(self, label: str) -> None:
        self._write(f"  FAIL  {label}")


class ProgressPrinter:
    """Event-bus subscriber that prints one line per review milestone."""

    def __init__(self, renderer: CLIRenderer) -> None:
        self._renderer = renderer

    def __call__(self, event: ReviewEvent) -> None:
        payload = event.payload
        if event.type is ReviewEventType.REVIEW_STARTED:
            repos = payload.get("repos", [])
            self._renderer.text(
                f"Review {payload.get('run_id')}: {payload.get('selected')} use cases "
                f"across {len(repos) if isinstance(repos, list) else 0} repos"
            )
        elif event.type is ReviewEventType.REPO_STARTED:
            self._renderer.text(f"[{event.repo}] starting ({payload.get('items')} planned steps)")
        elif event.type is ReviewEventType.REPO_NOT_READY:
            self._renderer.warning(f"[{event.repo}] not ready: {payload.get('error')}")
        elif event.type is ReviewEventType.CASCADE_TRIGGERED:
            self._renderer.warning(
                f"[{event.repo}] {event.use_case_id} stopped the repo: {payload.get('error')}"
            )
        elif event.type is ReviewEventType.STEP_COMPLETED and self._renderer.verbose:
            status = "ok" if payload.get("success") else "fail"
            self._renderer.text(
                f"[{event.repo}] {event.use_case_id} ({payload.get('step_kind')}) {status}"
            )
        elif event.type is ReviewEventType.REPO_COMPLETED:
            self._renderer.text(
                f"[{event.repo}] {payload.get('passed')}/{payload.get('steps')} passed "
                f"({payload.get('state')})"
            )


def create_renderer(*, no_color: bool = False, verbose: bool = False) -> CLIRenderer:
    return CLIRenderer(no_color=no_color, verbose=verbose)


__all__ = ["CLIRenderer", "ProgressPrinter", "create_renderer"]
